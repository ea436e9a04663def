"""DuckDB schema definitions for the advocates store."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from duckdb import DuckDBPyConnection

from advocatedir.services.query_plan import Column

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ColumnDef:
    """Definition of a single table column."""

    name: str
    type: str
    nullable: bool = True


@dataclass(frozen=True)
class Index:
    """Secondary index definition."""

    name: str
    columns: tuple[str, ...]
    unique: bool = False


@dataclass(frozen=True)
class TableSchema:
    """Schema definition for a DuckDB table."""

    schema: str
    name: str
    columns: tuple[ColumnDef, ...]
    primary_key: tuple[str, ...] = ()
    indexes: tuple[Index, ...] = ()

    @property
    def fq_name(self) -> str:
        """Fully qualified table name."""
        return f"{self.schema}.{self.name}"

    def column_names(self) -> list[str]:
        """
        Ordered column names.

        Returns
        -------
        list[str]
            Column names in definition order.
        """
        return [col.name for col in self.columns]


ADVOCATES = TableSchema(
    schema="main",
    name="advocates",
    columns=(
        ColumnDef(Column.ID.value, "BIGINT", nullable=False),
        ColumnDef(Column.FIRST_NAME.value, "VARCHAR", nullable=False),
        ColumnDef(Column.LAST_NAME.value, "VARCHAR", nullable=False),
        ColumnDef(Column.CITY.value, "VARCHAR", nullable=False),
        ColumnDef(Column.DEGREE.value, "VARCHAR", nullable=False),
        ColumnDef(Column.SPECIALTIES.value, "VARCHAR[]"),
        ColumnDef(Column.YEARS_OF_EXPERIENCE.value, "INTEGER", nullable=False),
        ColumnDef(Column.PHONE_NUMBER.value, "BIGINT", nullable=False),
        ColumnDef(Column.CREATED_AT.value, "TIMESTAMP"),
    ),
    primary_key=(Column.ID.value,),
    indexes=(
        Index("idx_advocates_city", (Column.CITY.value,)),
        Index("idx_advocates_degree", (Column.DEGREE.value,)),
        Index("idx_advocates_last_name", (Column.LAST_NAME.value,)),
        Index("idx_advocates_experience", (Column.YEARS_OF_EXPERIENCE.value,)),
    ),
)

TABLE_SCHEMAS: dict[str, TableSchema] = {ADVOCATES.fq_name: ADVOCATES}


def _quote(identifier: str) -> str:
    """
    Quote an identifier for DuckDB.

    Returns
    -------
    str
        Identifier wrapped in double quotes with internal quotes escaped.
    """
    escaped = identifier.replace('"', '""')
    return f'"{escaped}"'


def _build_table_ddl(table: TableSchema) -> str:
    """
    Generate non-destructive CREATE TABLE DDL from a TableSchema.

    Returns
    -------
    str
        CREATE TABLE IF NOT EXISTS statement for the provided schema.
    """
    col_lines: list[str] = []
    for col in table.columns:
        nullable_sql = "" if col.nullable else " NOT NULL"
        col_lines.append(f"    {_quote(col.name)} {col.type}{nullable_sql}")
    if table.primary_key:
        pk_cols = ", ".join(_quote(col) for col in table.primary_key)
        col_lines.append(f"    PRIMARY KEY ({pk_cols})")
    cols_sql = ",\n".join(col_lines)
    return (
        f"CREATE TABLE IF NOT EXISTS {_quote(table.schema)}.{_quote(table.name)} (\n{cols_sql}\n);"
    )


def _build_index_ddl(table: TableSchema) -> list[str]:
    statements: list[str] = []
    for index in table.indexes:
        columns = ", ".join(_quote(col) for col in index.columns)
        uniqueness = "UNIQUE " if index.unique else ""
        statements.append(
            f"CREATE {uniqueness}INDEX IF NOT EXISTS {_quote(index.name)} "
            f"ON {_quote(table.schema)}.{_quote(table.name)}({columns});"
        )
    return statements


TABLE_DDL: dict[str, str] = {key: _build_table_ddl(schema) for key, schema in TABLE_SCHEMAS.items()}
INDEX_DDL: tuple[str, ...] = tuple(
    ddl for schema in TABLE_SCHEMAS.values() for ddl in _build_index_ddl(schema)
)


def apply_all_schemas(
    con: DuckDBPyConnection,
    extra_ddl: Iterable[str] | None = None,
) -> None:
    """
    Create all known tables and indexes without dropping existing data.

    Existing tables are left untouched; use :func:`assert_schema_alignment`
    to detect drift.
    """
    for ddl in TABLE_DDL.values():
        con.execute(ddl)
    for ddl in INDEX_DDL:
        con.execute(ddl)
    if extra_ddl:
        for stmt in extra_ddl:
            con.execute(stmt)


def assert_schema_alignment(
    con: DuckDBPyConnection,
    *,
    strict: bool = True,
    logger: logging.Logger | None = None,
) -> list[str]:
    """
    Validate that the live DuckDB schema matches :data:`TABLE_SCHEMAS`.

    Returns
    -------
    list[str]
        Human-readable drift messages; empty when aligned.

    Raises
    ------
    RuntimeError
        If strict is True and schema drift is detected.
    """
    issues: list[str] = []
    for table in TABLE_SCHEMAS.values():
        rows = con.execute(
            """
            SELECT column_name
            FROM information_schema.columns
            WHERE table_schema = ? AND table_name = ?
            ORDER BY ordinal_position
            """,
            [table.schema, table.name],
        ).fetchall()
        actual = [row[0] for row in rows]
        expected = table.column_names()
        if actual != expected:
            issues.append(f"{table.fq_name}: expected {expected} got {actual}")

    if issues:
        message = "; ".join(issues)
        logref = logger or log
        logref.error("Schema drift detected: %s", message)
        if strict:
            error_message = f"Schema drift detected: {message}"
            raise RuntimeError(error_message)
    return issues


__all__ = [
    "ADVOCATES",
    "INDEX_DDL",
    "TABLE_DDL",
    "TABLE_SCHEMAS",
    "ColumnDef",
    "Index",
    "TableSchema",
    "apply_all_schemas",
    "assert_schema_alignment",
]
