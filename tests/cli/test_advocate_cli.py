"""CLI tests for seeding and querying a DuckDB file."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from advocatedir.cli.main import main, make_parser
from tests._helpers.expect import expect_equal, expect_in
from tests._helpers.seed import SAMPLE_ADVOCATES


@pytest.fixture
def seeded_db(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> Path:
    """
    Seed a DuckDB file through the CLI.

    Returns
    -------
    Path
        Path to the seeded database.
    """
    source = tmp_path / "advocates.json"
    source.write_text(json.dumps(list(SAMPLE_ADVOCATES)), encoding="utf-8")
    db_path = tmp_path / "db" / "advocates.duckdb"
    exit_code = main(["seed", "--db-path", str(db_path), "--input", str(source)])
    expect_equal(exit_code, 0)
    payload = json.loads(capsys.readouterr().out)
    expect_equal(payload["inserted"], len(SAMPLE_ADVOCATES))
    return db_path


def _run(argv: list[str], capsys: pytest.CaptureFixture[str]) -> tuple[int, dict[str, Any]]:
    exit_code = main(argv)
    return exit_code, json.loads(capsys.readouterr().out)


def test_query_list_with_filters(seeded_db: Path, capsys: pytest.CaptureFixture[str]) -> None:
    """A filtered listing prints the success envelope."""
    exit_code, payload = _run(
        ["query", "--db-path", str(seeded_db), "--param", "city=Chicago"], capsys
    )
    expect_equal(exit_code, 0)
    data = payload["data"]
    expect_equal([row["lastName"] for row in data], ["Doctorow", "Park"])
    expect_equal(payload["pagination"]["total"], 2)


def test_query_repeated_param_keeps_first(
    seeded_db: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    """Repeated --param keys keep their first value."""
    exit_code, payload = _run(
        [
            "query",
            "--db-path",
            str(seeded_db),
            "--param",
            "page=2",
            "--param",
            "page=5",
            "--param",
            "limit=3",
        ],
        capsys,
    )
    expect_equal(exit_code, 0)
    expect_equal(payload["pagination"]["page"], 2)


def test_query_by_id_not_found(seeded_db: Path, capsys: pytest.CaptureFixture[str]) -> None:
    """A missing record prints the error envelope with data null and exits 1."""
    exit_code, payload = _run(
        ["query", "--db-path", str(seeded_db), "--kind", "by-id", "--param", "id=999"], capsys
    )
    expect_equal(exit_code, 1)
    expect_equal(payload["data"], None)
    expect_equal(payload["error"], "ResourceNotFoundError")
    expect_in("'999'", str(payload["message"]))


def test_query_invalid_parameter(seeded_db: Path, capsys: pytest.CaptureFixture[str]) -> None:
    """Validation failures print the error envelope with an empty data list."""
    exit_code, payload = _run(
        ["query", "--db-path", str(seeded_db), "--param", "limit=500"], capsys
    )
    expect_equal(exit_code, 1)
    expect_equal(payload["data"], [])
    expect_equal(payload["parameter"], "limit")


def test_query_strict_sort(seeded_db: Path, capsys: pytest.CaptureFixture[str]) -> None:
    """--strict-sort rejects unknown sort keys that would otherwise fall back."""
    lenient, _ = _run(
        ["query", "--db-path", str(seeded_db), "--param", "sortBy=phoneNumber"], capsys
    )
    strict, payload = _run(
        [
            "query",
            "--db-path",
            str(seeded_db),
            "--strict-sort",
            "--param",
            "sortBy=phoneNumber",
        ],
        capsys,
    )
    expect_equal((lenient, strict), (0, 1))
    expect_equal(payload["parameter"], "sortBy")


def test_query_distinct_kinds(seeded_db: Path, capsys: pytest.CaptureFixture[str]) -> None:
    """The cities and degrees kinds print sorted values."""
    _, cities = _run(["query", "--db-path", str(seeded_db), "--kind", "cities"], capsys)
    _, degrees = _run(["query", "--db-path", str(seeded_db), "--kind", "degrees"], capsys)
    expect_equal(cities["data"], ["Chicago", "Los Angeles", "New York", "San Francisco"])
    expect_equal(degrees["data"], ["LCSW", "MD", "MSW", "PhD"])


def test_query_missing_database_fails(tmp_path: Path) -> None:
    """Querying a missing file exits non-zero."""
    expect_equal(main(["query", "--db-path", str(tmp_path / "absent.duckdb")]), 1)


def test_seed_rejects_non_list_input(tmp_path: Path) -> None:
    """Seed input must be a JSON list."""
    source = tmp_path / "bad.json"
    source.write_text(json.dumps({"id": 1}), encoding="utf-8")
    exit_code = main(
        ["seed", "--db-path", str(tmp_path / "x.duckdb"), "--input", str(source)]
    )
    expect_equal(exit_code, 1)


def test_parser_rejects_malformed_param() -> None:
    """Parameters must be key=value."""
    parser = make_parser()
    with pytest.raises(SystemExit):
        parser.parse_args(["query", "--db-path", "x.duckdb", "--param", "novalue"])
    args = parser.parse_args(["query", "--db-path", "x.duckdb", "--param", "search=a=b"])
    expect_equal(args.params, [("search", "a=b")])
    expect_equal(args.kind, "list")
