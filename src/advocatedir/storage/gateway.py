"""Composition root types for DuckDB access."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import duckdb

from advocatedir.storage.schemas import apply_all_schemas, assert_schema_alignment

DuckDBConnection = duckdb.DuckDBPyConnection
DuckDBError = duckdb.Error

MEMORY_PATH = Path(":memory:")


@dataclass(frozen=True)
class StorageConfig:
    """Define configuration for opening the advocates DuckDB database."""

    db_path: Path
    read_only: bool = False
    apply_schema: bool = False
    validate_schema: bool = False

    @classmethod
    def for_seed(cls, db_path: Path) -> StorageConfig:
        """
        Build a write-capable configuration used when loading seed rows.

        Parameters
        ----------
        db_path
            DuckDB database path; parent directories are created on open.

        Returns
        -------
        StorageConfig
            Configuration that applies the schema before use.
        """
        return cls(db_path=db_path, read_only=False, apply_schema=True, validate_schema=True)

    @classmethod
    def for_readonly(cls, db_path: Path) -> StorageConfig:
        """
        Build a read-only configuration for serving surfaces.

        Parameters
        ----------
        db_path
            DuckDB database path to open read-only.

        Returns
        -------
        StorageConfig
            Read-only configuration that validates the schema on open.
        """
        return cls(db_path=db_path, read_only=True, apply_schema=False, validate_schema=True)


class StorageGateway(Protocol):
    """Narrow interface exposing the DuckDB connection and its configuration."""

    config: StorageConfig

    @property
    def con(self) -> DuckDBConnection:
        """Return the live DuckDB connection."""
        ...

    def close(self) -> None:
        """Close the underlying connection."""
        ...

    def execute(self, sql: str, params: Sequence[object] | None = None) -> DuckDBConnection:
        """Execute SQL with bound parameters."""
        ...


@dataclass
class _DuckDBGateway:
    """Concrete StorageGateway implementation."""

    config: StorageConfig
    con: DuckDBConnection

    def close(self) -> None:
        """Close the underlying connection."""
        self.con.close()

    def execute(self, sql: str, params: Sequence[object] | None = None) -> DuckDBConnection:
        """
        Execute a SQL statement using the active DuckDB connection.

        Returns
        -------
        DuckDBConnection
            Connection representing the executed query.
        """
        return self.con.execute(sql, params)


def _connect(config: StorageConfig) -> DuckDBConnection:
    """
    Open a DuckDB connection using the provided configuration.

    Parameters
    ----------
    config
        Storage configuration controlling path, schema application, and validation.

    Returns
    -------
    DuckDBConnection
        Live DuckDB connection with the schema applied when requested.

    Raises
    ------
    FileNotFoundError
        Raised when a read-only connection targets a missing database file.
    """
    in_memory = config.db_path == MEMORY_PATH
    if config.read_only and not in_memory and not config.db_path.is_file():
        message = f"DuckDB database not found at {config.db_path}"
        raise FileNotFoundError(message)
    if not config.read_only and not in_memory:
        config.db_path.parent.mkdir(parents=True, exist_ok=True)

    con = duckdb.connect(str(config.db_path), read_only=config.read_only and not in_memory)
    if config.apply_schema and not config.read_only:
        apply_all_schemas(con)
    if config.validate_schema:
        assert_schema_alignment(con)
    return con


def open_gateway(config: StorageConfig) -> StorageGateway:
    """
    Create a StorageGateway bound to a DuckDB database.

    Parameters
    ----------
    config
        Storage configuration describing connection options.

    Returns
    -------
    StorageGateway
        Gateway owning the connection.
    """
    return _DuckDBGateway(config=config, con=_connect(config))


def open_memory_gateway(*, apply_schema: bool = True, validate_schema: bool = True) -> StorageGateway:
    """
    Create an in-memory StorageGateway for tests and one-shot queries.

    Parameters
    ----------
    apply_schema
        When True, create the advocates table.
    validate_schema
        When True, validate schema alignment after setup.

    Returns
    -------
    StorageGateway
        Gateway backed by an in-memory DuckDB connection.
    """
    cfg = StorageConfig(
        db_path=MEMORY_PATH,
        read_only=False,
        apply_schema=apply_schema,
        validate_schema=validate_schema,
    )
    return open_gateway(cfg)


__all__ = [
    "MEMORY_PATH",
    "DuckDBConnection",
    "DuckDBError",
    "StorageConfig",
    "StorageGateway",
    "open_gateway",
    "open_memory_gateway",
]
