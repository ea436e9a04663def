"""Shared typed protocols for the record store and cancellation seams."""

from __future__ import annotations

from typing import Any, Protocol

from advocatedir.services.query_plan import Column, OrderBy, Predicate

RowDict = dict[str, Any]


class AdvocateStore(Protocol):
    """Read-only record store consumed by the query executor."""

    def count(self, predicates: tuple[Predicate, ...]) -> int:
        """Return the number of rows matching all predicates."""
        ...

    def query(
        self,
        predicates: tuple[Predicate, ...],
        order: OrderBy,
        offset: int,
        limit: int,
    ) -> list[RowDict]:
        """Return one ordered page of matching rows."""
        ...

    def distinct(self, column: Column, *, limit: int) -> list[str]:
        """Return sorted, non-null distinct values of a column."""
        ...

    def ping(self) -> None:
        """Raise when the store cannot serve queries."""
        ...


class CancelToken(Protocol):
    """Cooperative cancellation flag, satisfied by ``threading.Event``."""

    def is_set(self) -> bool:
        """Return True once the caller has abandoned the request."""
        ...


__all__ = ["AdvocateStore", "CancelToken", "RowDict"]
