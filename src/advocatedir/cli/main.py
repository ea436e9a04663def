"""CLI entrypoint for serving, querying and seeding the advocate directory."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from collections.abc import Callable, Iterable
from pathlib import Path

import uvicorn

from advocatedir.config.serving_models import ServingConfig
from advocatedir.serving.http.fastapi import create_app
from advocatedir.serving.models import CamelModel, error_envelope
from advocatedir.serving.wiring import build_query_service
from advocatedir.services import errors
from advocatedir.services.query_service import AdvocateQueryService
from advocatedir.storage.gateway import StorageConfig, open_gateway
from advocatedir.storage.repositories.advocates import AdvocateRepository

LOG = logging.getLogger("advocatedir.cli")

CommandHandler = Callable[..., int]

QUERY_KINDS = ("list", "by-id", "by-city", "cities", "degrees")


# ---------------------------------------------------------------------------
# Argument parsing / logging setup
# ---------------------------------------------------------------------------


def _setup_logging(verbosity: int) -> None:
    """
    Configure logging based on -v/--verbose count.

    0 -> WARNING, 1 -> INFO, 2+ -> DEBUG.
    """
    if verbosity <= 0:
        level = logging.WARNING
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.DEBUG

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def _parse_param(text: str) -> tuple[str, str]:
    """
    Split a ``key=value`` argument.

    Returns
    -------
    tuple[str, str]
        Key and value.

    Raises
    ------
    argparse.ArgumentTypeError
        When the argument has no ``=`` or an empty key.
    """
    key, sep, value = text.partition("=")
    if not sep or not key:
        message = f"Expected key=value, got {text!r}"
        raise argparse.ArgumentTypeError(message)
    return key, value


def _add_db_arg(p: argparse.ArgumentParser, *, required: bool) -> None:
    p.add_argument(
        "--db-path",
        type=Path,
        required=required,
        default=None,
        help="Path to the advocates DuckDB file (default: ADVOCATES_DB_PATH)",
    )


def _make_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="advocatedir",
        description="Advocate directory API, query and seed CLI",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (can be repeated)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    p_serve = subparsers.add_parser("serve", help="Run the HTTP API with uvicorn")
    _add_db_arg(p_serve, required=False)
    p_serve.add_argument("--host", default="127.0.0.1", help="Bind address")
    p_serve.add_argument("--port", type=int, default=8000, help="Bind port")
    p_serve.set_defaults(func=_cmd_serve)

    p_query = subparsers.add_parser("query", help="Run one query and print the JSON envelope")
    _add_db_arg(p_query, required=True)
    p_query.add_argument(
        "--kind",
        choices=QUERY_KINDS,
        default="list",
        help="Operation to run (default: list)",
    )
    p_query.add_argument(
        "--param",
        dest="params",
        type=_parse_param,
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Query parameter; repeat for several (first occurrence of a key wins)",
    )
    p_query.add_argument(
        "--strict-sort",
        action="store_true",
        help="Reject unknown sortBy values instead of falling back to lastName",
    )
    p_query.set_defaults(func=_cmd_query)

    p_seed = subparsers.add_parser("seed", help="Create the schema and insert rows from JSON")
    _add_db_arg(p_seed, required=True)
    p_seed.add_argument(
        "--input",
        type=Path,
        required=True,
        help="JSON file holding a list of advocate objects",
    )
    p_seed.set_defaults(func=_cmd_seed)

    return parser


def make_parser() -> argparse.ArgumentParser:
    """
    Public helper to construct the CLI parser (for tests/tools).

    Returns
    -------
    argparse.ArgumentParser
        Configured parser with all subcommands registered.
    """
    return _make_parser()


# ---------------------------------------------------------------------------
# Command implementations
# ---------------------------------------------------------------------------


def _config_from_args(args: argparse.Namespace, **overrides: object) -> ServingConfig:
    base = ServingConfig.from_env()
    updates: dict[str, object] = dict(overrides)
    if args.db_path is not None:
        updates["db_path"] = args.db_path
    return ServingConfig.model_validate({**base.model_dump(), **updates})


def _write_json(payload: object) -> None:
    sys.stdout.write(json.dumps(payload, default=str))
    sys.stdout.write("\n")


def _cmd_serve(args: argparse.Namespace) -> int:
    cfg = _config_from_args(args)
    LOG.info("cli.serve host=%s port=%s db_path=%s", args.host, args.port, cfg.db_path)
    app = create_app(config_loader=lambda: cfg)
    uvicorn.run(app, host=args.host, port=args.port)
    return 0


def _run_query(service: AdvocateQueryService, kind: str, params: dict[str, str]) -> CamelModel:
    if kind == "by-id":
        return service.get_advocate(params)
    if kind == "by-city":
        return service.list_advocates_by_city(params)
    if kind == "cities":
        return service.list_cities()
    if kind == "degrees":
        return service.list_degrees()
    return service.list_advocates(params)


def _cmd_query(args: argparse.Namespace) -> int:
    cfg = _config_from_args(args, read_only=True, strict_sort=args.strict_sort)
    params: dict[str, str] = {}
    for key, value in args.params:
        params.setdefault(key, value)
    gateway = open_gateway(StorageConfig.for_readonly(cfg.db_path))
    try:
        service = build_query_service(AdvocateRepository(gateway=gateway), cfg, transport="cli")
        try:
            response = _run_query(service, args.kind, params)
        except errors.AppError as exc:
            errors.log_app_error(LOG, exc)
            _write_json(error_envelope(exc, single_record=args.kind == "by-id"))
            return 1
        _write_json(response.model_dump(mode="json", by_alias=True))
        return 0
    finally:
        gateway.close()


def _cmd_seed(args: argparse.Namespace) -> int:
    records = json.loads(args.input.read_text(encoding="utf-8"))
    if not isinstance(records, list):
        LOG.error("Seed input must be a JSON list of advocate objects: %s", args.input)
        return 1
    gateway = open_gateway(StorageConfig.for_seed(args.db_path))
    try:
        inserted = AdvocateRepository(gateway=gateway).insert_advocates(records)
    finally:
        gateway.close()
    _write_json({"inserted": inserted, "db_path": str(args.db_path)})
    return 0


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: Iterable[str] | None = None) -> int:
    """
    CLI entrypoint for the advocate directory commands.

    Parameters
    ----------
    argv:
        Optional argument list (defaults to sys.argv).

    Returns
    -------
    int
        Exit code (0 on success).
    """
    parser = _make_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    _setup_logging(args.verbose)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        func: CommandHandler = args.func
        return int(func(args))
    except Exception:  # noqa: BLE001 pragma: no cover - error path
        LOG.exception("CLI command failed command=%s", args.command)
        return 1


if __name__ == "__main__":
    sys.exit(main())
