"""Shared repository helpers for DuckDB-backed storage."""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass

from advocatedir.serving.protocols import RowDict
from advocatedir.storage.gateway import DuckDBConnection, StorageGateway


def fetch_scalar(con: DuckDBConnection, sql: str, params: Sequence[object]) -> object:
    """
    Execute a query and return the first column of the first row.

    Returns
    -------
    object
        Scalar value, or ``None`` when the query yields no rows.
    """
    row = con.execute(sql, list(params)).fetchone()
    if row is None:
        return None
    return row[0]


def fetch_all_dicts(con: DuckDBConnection, sql: str, params: Sequence[object]) -> list[RowDict]:
    """
    Execute a query and return all rows as mappings.

    Returns
    -------
    list[RowDict]
        List of rows represented as dictionaries keyed by column name.
    """
    result = con.execute(sql, list(params))
    rows = result.fetchall()
    cols = [desc[0] for desc in result.description]
    return [{col: row[idx] for idx, col in enumerate(cols)} for row in rows]


@dataclass(frozen=True)
class BaseRepository:
    """Base class for repositories bound to a gateway."""

    gateway: StorageGateway

    @property
    def con(self) -> DuckDBConnection:
        """Return the underlying DuckDB connection."""
        return self.gateway.con

    @contextmanager
    def cursor(self) -> Iterator[DuckDBConnection]:
        """
        Yield a dedicated cursor so concurrent callers never share one.

        Yields
        ------
        DuckDBConnection
            Cursor over the gateway's database, closed on exit.
        """
        cur = self.gateway.con.cursor()
        try:
            yield cur
        finally:
            cur.close()


__all__ = ["BaseRepository", "RowDict", "fetch_all_dicts", "fetch_scalar"]
