"""Serving configuration for the advocate API and CLI."""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel, Field, model_validator

DEFAULT_DB_PATH = Path("build") / "db" / "advocates.duckdb"


def _parse_env_flag(value: str | None, *, default: bool) -> bool:
    """
    Interpret a string environment value as a boolean.

    Parameters
    ----------
    value:
        Raw environment variable value or None.
    default:
        Value to return when the environment variable is unset.

    Returns
    -------
    bool
        Parsed boolean flag.
    """
    if value is None:
        return default
    return value.lower() not in {"0", "false", "no", "off"}


class ServingConfig(BaseModel):
    """Runtime settings shared by the HTTP surface and the CLI."""

    db_path: Path = Field(
        default=DEFAULT_DB_PATH,
        description="Path to the advocates DuckDB file, or ':memory:'.",
    )
    read_only: bool = Field(
        default=True,
        description="Whether to open the DuckDB connection in read-only mode.",
    )
    max_rows_per_call: int = Field(
        default=500,
        description="Hard cap on rows returned by unpaginated calls (by-city, distinct values).",
    )
    strict_sort: bool = Field(
        default=False,
        description="Reject unknown sortBy values instead of falling back to lastName.",
    )
    expose_error_details: bool = Field(
        default=False,
        description="Surface unexpected exception text in error responses.",
    )
    disconnect_poll_seconds: float = Field(
        default=0.05,
        description="Interval between client-disconnect checks while a query runs.",
    )
    enable_observability: bool = Field(
        default=False,
        description="Emit structured service_call log lines.",
    )

    @classmethod
    def from_env(cls) -> ServingConfig:
        """
        Construct a ServingConfig from environment variables.

        Returns
        -------
        ServingConfig
            Validated configuration populated from environment values.
        """
        db_path = Path(os.environ.get("ADVOCATES_DB_PATH", str(DEFAULT_DB_PATH)))
        return cls(
            db_path=db_path,
            read_only=_parse_env_flag(os.environ.get("ADVOCATES_READ_ONLY"), default=True),
            max_rows_per_call=int(os.environ.get("ADVOCATES_MAX_ROWS", "500")),
            strict_sort=_parse_env_flag(os.environ.get("ADVOCATES_STRICT_SORT"), default=False),
            expose_error_details=_parse_env_flag(
                os.environ.get("ADVOCATES_EXPOSE_ERROR_DETAILS"), default=False
            ),
            disconnect_poll_seconds=float(
                os.environ.get("ADVOCATES_DISCONNECT_POLL_SEC", "0.05")
            ),
            enable_observability=_parse_env_flag(
                os.environ.get("ADVOCATES_OBSERVABILITY"), default=False
            ),
        )

    @model_validator(mode="after")
    def _validate_limits(self) -> ServingConfig:
        """
        Normalize the database path and validate numeric limits.

        Returns
        -------
        ServingConfig
            Normalized configuration.

        Raises
        ------
        ValueError
            When a limit is out of range.
        """
        if str(self.db_path) != ":memory:":
            self.db_path = self.db_path.expanduser().resolve()
        if self.max_rows_per_call <= 0:
            message = "max_rows_per_call must be positive"
            raise ValueError(message)
        if self.disconnect_poll_seconds <= 0:
            message = "disconnect_poll_seconds must be positive"
            raise ValueError(message)
        return self


__all__ = ["DEFAULT_DB_PATH", "ServingConfig"]
