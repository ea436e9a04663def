"""Assemble paginated listing responses."""

from __future__ import annotations

from collections.abc import Sequence

from advocatedir.serving.models import Advocate, AdvocateListResponse, PaginationMeta
from advocatedir.services.query_plan import PaginationSpec


def total_pages(total: int, limit: int) -> int:
    """
    Return the number of pages needed for ``total`` rows.

    Returns
    -------
    int
        ``ceil(total / limit)``; zero rows yield zero pages.
    """
    if total <= 0:
        return 0
    return -(-total // limit)


def build_pagination(total: int, pagination: PaginationSpec) -> PaginationMeta:
    """Compute page bookkeeping for a result set."""
    pages = total_pages(total, pagination.limit)
    return PaginationMeta(
        page=pagination.page,
        limit=pagination.limit,
        total=total,
        total_pages=pages,
        has_next=pagination.page < pages,
        has_prev=pagination.page > 1,
    )


def assemble_page(
    advocates: Sequence[Advocate],
    total: int,
    pagination: PaginationSpec,
) -> AdvocateListResponse:
    """
    Combine one page of advocates with its pagination metadata.

    Parameters
    ----------
    advocates
        Rows for the requested page, already ordered.
    total
        Number of rows matching the filters across all pages.
    pagination
        Requested page window.

    Returns
    -------
    AdvocateListResponse
        ``{data, pagination}`` payload.
    """
    return AdvocateListResponse(data=list(advocates), pagination=build_pagination(total, pagination))


__all__ = ["assemble_page", "build_pagination", "total_pages"]
