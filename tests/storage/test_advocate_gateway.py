"""Tests for gateway opening modes and schema alignment."""

from __future__ import annotations

from pathlib import Path

import duckdb
import pytest

from advocatedir.storage.gateway import StorageConfig, open_gateway, open_memory_gateway
from advocatedir.storage.schemas import ADVOCATES, INDEX_DDL, TABLE_DDL, assert_schema_alignment
from tests._helpers.expect import expect_equal, expect_in, expect_length, expect_true
from tests._helpers.seed import SAMPLE_ADVOCATES, seed_advocates


def test_table_ddl_is_non_destructive() -> None:
    """Generated DDL creates tables and indexes only when missing."""
    ddl = TABLE_DDL[ADVOCATES.fq_name]
    expect_in('CREATE TABLE IF NOT EXISTS "main"."advocates"', ddl)
    expect_in('PRIMARY KEY ("id")', ddl)
    expect_length(INDEX_DDL, len(ADVOCATES.indexes))
    expect_true(all("IF NOT EXISTS" in stmt for stmt in INDEX_DDL))


def test_memory_gateway_applies_schema() -> None:
    """An in-memory gateway starts with an aligned, empty advocates table."""
    gateway = open_memory_gateway()
    try:
        expect_equal(assert_schema_alignment(gateway.con), [])
        row = gateway.execute('SELECT COUNT(*) FROM "main"."advocates"').fetchone()
        expect_equal(row, (0,))
    finally:
        gateway.close()


def test_schema_drift_is_detected() -> None:
    """Missing tables are reported, and raise in strict mode."""
    gateway = open_memory_gateway(apply_schema=False, validate_schema=False)
    try:
        issues = assert_schema_alignment(gateway.con, strict=False)
        expect_length(issues, 1)
        with pytest.raises(RuntimeError, match="Schema drift"):
            assert_schema_alignment(gateway.con)
    finally:
        gateway.close()


def test_readonly_gateway_requires_existing_file(tmp_path: Path) -> None:
    """Read-only opens fail fast on a missing database file."""
    with pytest.raises(FileNotFoundError):
        open_gateway(StorageConfig.for_readonly(tmp_path / "missing.duckdb"))


def test_seed_then_readonly_roundtrip(tmp_path: Path) -> None:
    """A seeded file can be reopened read-only and rejects writes."""
    db_path = tmp_path / "nested" / "advocates.duckdb"
    writer = open_gateway(StorageConfig.for_seed(db_path))
    try:
        seed_advocates(writer)
    finally:
        writer.close()

    reader = open_gateway(StorageConfig.for_readonly(db_path))
    try:
        row = reader.execute('SELECT COUNT(*) FROM "main"."advocates"').fetchone()
        expect_equal(row, (len(SAMPLE_ADVOCATES),))
        with pytest.raises(duckdb.Error):
            reader.execute('DELETE FROM "main"."advocates"')
    finally:
        reader.close()
