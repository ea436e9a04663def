"""DuckDB record store for advocates."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any, assert_never

from advocatedir.services.query_plan import (
    LIKE_ESCAPE,
    Column,
    Equals,
    OrderBy,
    Predicate,
    Range,
    TextMatch,
)
from advocatedir.storage.repositories.base import (
    BaseRepository,
    RowDict,
    fetch_all_dicts,
    fetch_scalar,
)
from advocatedir.storage.schemas import ADVOCATES

LOG = logging.getLogger("advocatedir.storage.advocates")

_TABLE = f'"{ADVOCATES.schema}"."{ADVOCATES.name}"'
_SELECT_COLUMNS = ", ".join(f'"{name}"' for name in ADVOCATES.column_names())
_INSERT_SQL = (
    f"INSERT INTO {_TABLE} ({_SELECT_COLUMNS}) "  # noqa: S608 - identifiers from schema
    f"VALUES ({', '.join('?' for _ in ADVOCATES.columns)})"
)


def _ident(column: Column) -> str:
    return f'"{column.value}"'


def _text_expr(column: Column) -> str:
    if column is Column.SPECIALTIES:
        return f"lower(list_aggregate({_ident(column)}, 'string_agg', ' '))"
    return f"lower({_ident(column)})"


def compile_predicates(predicates: Iterable[Predicate]) -> tuple[str, list[object]]:
    """
    Compile predicates into a WHERE clause with positional parameters.

    Column names come only from :class:`Column`; values are always bound.

    Returns
    -------
    tuple[str, list[object]]
        ``WHERE ...`` clause (empty when unfiltered) and its parameters.
    """
    clauses: list[str] = []
    params: list[object] = []
    for predicate in predicates:
        match predicate:
            case TextMatch(columns=columns, pattern=pattern):
                parts = [f"{_text_expr(col)} LIKE ? ESCAPE '{LIKE_ESCAPE}'" for col in columns]
                clauses.append(f"({' OR '.join(parts)})")
                params.extend(pattern for _ in columns)
            case Equals(column=column, value=value):
                clauses.append(f"{_ident(column)} = ?")
                params.append(value)
            case Range(column=column, bound=bound, value=value):
                clauses.append(f"{_ident(column)} {bound.value} ?")
                params.append(value)
            case _:
                assert_never(predicate)
    if not clauses:
        return "", params
    return "WHERE " + " AND ".join(clauses), params


def compile_order(order: OrderBy) -> str:
    """
    Compile an ordering with nulls last and the tie-break column.

    Returns
    -------
    str
        ``ORDER BY`` clause.
    """
    direction = "DESC" if order.descending else "ASC"
    clause = f"ORDER BY {_ident(order.column)} {direction} NULLS LAST"
    if order.tie_breaker is not order.column:
        clause += f", {_ident(order.tie_breaker)} ASC"
    return clause


def _seed_row(record: Mapping[str, Any]) -> tuple[object, ...]:
    created_at = record.get("createdAt", record.get("created_at"))
    if isinstance(created_at, str):
        created_at = datetime.fromisoformat(created_at)
    specialties = record.get("specialties") or []
    return (
        int(record["id"]),
        record.get("firstName", record.get("first_name")),
        record.get("lastName", record.get("last_name")),
        record["city"],
        record["degree"],
        [str(item) for item in specialties],
        int(record.get("yearsOfExperience", record.get("years_of_experience", 0))),
        int(record.get("phoneNumber", record.get("phone_number", 0))),
        created_at,
    )


@dataclass(frozen=True)
class AdvocateRepository(BaseRepository):
    """Read advocates through parameter-bound SQL; one cursor per call."""

    def count(self, predicates: tuple[Predicate, ...]) -> int:
        """
        Return the number of advocates matching all predicates.

        Returns
        -------
        int
            Row count.
        """
        where, params = compile_predicates(predicates)
        sql = f"SELECT COUNT(*) FROM {_TABLE} {where}"  # noqa: S608 - compiled from enums
        with self.cursor() as cur:
            value = fetch_scalar(cur, sql, params)
        return int(value or 0)

    def query(
        self,
        predicates: tuple[Predicate, ...],
        order: OrderBy,
        offset: int,
        limit: int,
    ) -> list[RowDict]:
        """
        Return one ordered page of advocates.

        Returns
        -------
        list[RowDict]
            Rows keyed by column name.
        """
        where, params = compile_predicates(predicates)
        sql = (
            f"SELECT {_SELECT_COLUMNS} FROM {_TABLE} {where} "  # noqa: S608 - compiled from enums
            f"{compile_order(order)} LIMIT ? OFFSET ?"
        )
        params.extend([limit, offset])
        LOG.debug("advocates.query sql=%s params=%s", sql, params)
        with self.cursor() as cur:
            return fetch_all_dicts(cur, sql, params)

    def distinct(self, column: Column, *, limit: int) -> list[str]:
        """
        Return sorted, non-null distinct values of a column.

        Returns
        -------
        list[str]
            Distinct values in ascending order.
        """
        col = _ident(column)
        sql = (
            f"SELECT DISTINCT {col} FROM {_TABLE} "  # noqa: S608 - compiled from enums
            f"WHERE {col} IS NOT NULL ORDER BY {col} LIMIT ?"
        )
        with self.cursor() as cur:
            rows = cur.execute(sql, [limit]).fetchall()
        return [str(row[0]) for row in rows]

    def ping(self) -> None:
        """Run a trivial query against the store."""
        with self.cursor() as cur:
            cur.execute(f"SELECT 1 FROM {_TABLE} LIMIT 1").fetchall()  # noqa: S608

    def insert_advocates(self, records: Sequence[Mapping[str, Any]]) -> int:
        """
        Insert seed records; outside the read-only query path.

        Parameters
        ----------
        records
            Mappings using camelCase or snake_case keys.

        Returns
        -------
        int
            Number of rows inserted.
        """
        rows = [_seed_row(record) for record in records]
        if not rows:
            return 0
        with self.cursor() as cur:
            cur.executemany(_INSERT_SQL, rows)
        LOG.info("Inserted %d advocate rows", len(rows))
        return len(rows)


__all__ = ["AdvocateRepository", "compile_order", "compile_predicates"]
