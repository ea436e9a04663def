"""Run query plans against an injected record store."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from advocatedir.serving.models import Advocate
from advocatedir.serving.protocols import AdvocateStore, CancelToken, RowDict
from advocatedir.services import errors
from advocatedir.services.query_plan import (
    Column,
    Equals,
    OrderBy,
    QueryPlan,
    SortField,
    SortSpec,
    resolve_sort,
)

LOG = logging.getLogger("advocatedir.services.executor")

DEFAULT_MAX_ROWS = 500
LIST_FAILURE_MESSAGE = "Failed to fetch advocates"
LOOKUP_FAILURE_MESSAGE = "Failed to fetch advocate"
DISTINCT_FAILURE_MESSAGE = "Failed to fetch distinct values"

_ROW_KEYS: tuple[tuple[Column, str], ...] = (
    (Column.ID, "id"),
    (Column.FIRST_NAME, "first_name"),
    (Column.LAST_NAME, "last_name"),
    (Column.CITY, "city"),
    (Column.DEGREE, "degree"),
    (Column.YEARS_OF_EXPERIENCE, "years_of_experience"),
    (Column.PHONE_NUMBER, "phone_number"),
    (Column.CREATED_AT, "created_at"),
)


def map_advocate_row(row: Mapping[str, Any]) -> Advocate:
    """
    Convert a store row into an :class:`Advocate`.

    A specialties value that is not a list becomes an empty list.

    Returns
    -------
    Advocate
        Typed record.
    """
    payload: dict[str, Any] = {name: row.get(column.value) for column, name in _ROW_KEYS}
    specialties = row.get(Column.SPECIALTIES.value)
    payload["specialties"] = (
        [str(item) for item in specialties] if isinstance(specialties, list | tuple) else []
    )
    return Advocate.model_validate(payload)


def _check_cancelled(cancel: CancelToken | None) -> None:
    if cancel is not None and cancel.is_set():
        raise errors.request_cancelled()


@dataclass
class QueryExecutor:
    """
    Execute plans through an :class:`AdvocateStore`.

    Store failures that are not already ``AppError`` instances are logged with
    context and replaced by a Database error carrying a generic message.
    """

    store: AdvocateStore
    max_rows: int = DEFAULT_MAX_ROWS

    def _call[T](self, operation: str, failure: str, func: Callable[[], T]) -> T:
        try:
            return func()
        except errors.AppError:
            raise
        except Exception as exc:
            LOG.exception("Store call failed operation=%s", operation)
            raise errors.database_query_error(failure) from exc

    def _map_rows(self, operation: str, failure: str, rows: list[RowDict]) -> list[Advocate]:
        try:
            return [map_advocate_row(row) for row in rows]
        except PydanticValidationError as exc:
            LOG.exception("Store returned a malformed row operation=%s", operation)
            raise errors.database_query_error(failure) from exc

    def run(
        self, plan: QueryPlan, cancel: CancelToken | None = None
    ) -> tuple[list[Advocate], int]:
        """
        Run the count and page queries for a plan.

        Parameters
        ----------
        plan
            Composed query plan.
        cancel
            Optional token checked before each store call.

        Returns
        -------
        tuple[list[Advocate], int]
            Page rows and the total number of matching rows.

        Raises
        ------
        AppError
            ``DatabaseError`` on store failure, ``ServiceUnavailableError``
            when the request was cancelled.
        """
        _check_cancelled(cancel)
        total = self._call("count", LIST_FAILURE_MESSAGE, lambda: self.store.count(plan.predicates))
        _check_cancelled(cancel)
        rows = self._call(
            "query",
            LIST_FAILURE_MESSAGE,
            lambda: self.store.query(plan.predicates, plan.order, plan.offset, plan.limit),
        )
        return self._map_rows("query", LIST_FAILURE_MESSAGE, rows), int(total)

    def fetch_by_id(self, advocate_id: int, cancel: CancelToken | None = None) -> Advocate | None:
        """
        Return the advocate with the given id, or ``None`` when absent.

        Raises
        ------
        AppError
            ``DatabaseError`` on store failure.
        """
        _check_cancelled(cancel)
        rows = self._call(
            "fetch_by_id",
            LOOKUP_FAILURE_MESSAGE,
            lambda: self.store.query(
                (Equals(Column.ID, advocate_id),), OrderBy(Column.ID), 0, 1
            ),
        )
        if not rows:
            return None
        return self._map_rows("fetch_by_id", LOOKUP_FAILURE_MESSAGE, rows)[0]

    def fetch_by_city(self, city: str, cancel: CancelToken | None = None) -> list[Advocate]:
        """
        Return advocates in a city ordered by last name, capped at ``max_rows``.

        Raises
        ------
        AppError
            ``DatabaseError`` on store failure.
        """
        _check_cancelled(cancel)
        order = resolve_sort(SortSpec(field=SortField.LAST_NAME))
        rows = self._call(
            "fetch_by_city",
            LIST_FAILURE_MESSAGE,
            lambda: self.store.query((Equals(Column.CITY, city),), order, 0, self.max_rows),
        )
        return self._map_rows("fetch_by_city", LIST_FAILURE_MESSAGE, rows)

    def distinct_values(self, column: Column, cancel: CancelToken | None = None) -> list[str]:
        """
        Return distinct non-null values of a column.

        Raises
        ------
        AppError
            ``DatabaseError`` on store failure.
        """
        _check_cancelled(cancel)
        return self._call(
            f"distinct:{column.value}",
            DISTINCT_FAILURE_MESSAGE,
            lambda: self.store.distinct(column, limit=self.max_rows),
        )

    def ping(self) -> None:
        """
        Probe the store.

        Raises
        ------
        AppError
            ``DatabaseError`` coded ``DATABASE_CONNECTION_ERROR`` when the probe fails.
        """
        try:
            self.store.ping()
        except errors.AppError:
            raise
        except Exception as exc:
            LOG.exception("Store health probe failed")
            raise errors.database_connection_error() from exc


__all__ = [
    "DEFAULT_MAX_ROWS",
    "DISTINCT_FAILURE_MESSAGE",
    "LIST_FAILURE_MESSAGE",
    "LOOKUP_FAILURE_MESSAGE",
    "QueryExecutor",
    "map_advocate_row",
]
