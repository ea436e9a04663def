"""Typed response models for the advocate listing surfaces."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from advocatedir.services.errors import AppError


class CamelModel(BaseModel):
    """Base model whose wire names are camelCase aliases."""

    model_config = ConfigDict(populate_by_name=True)


class Advocate(CamelModel):
    """Read-only advocate record."""

    id: int = Field(ge=1)
    first_name: str = Field(alias="firstName")
    last_name: str = Field(alias="lastName")
    city: str
    degree: str
    specialties: list[str] = Field(default_factory=list)
    years_of_experience: int = Field(ge=0, alias="yearsOfExperience")
    phone_number: int = Field(alias="phoneNumber")
    created_at: datetime | None = Field(default=None, alias="createdAt")


class PaginationMeta(CamelModel):
    """Page bookkeeping returned alongside listing data."""

    page: int
    limit: int
    total: int
    total_pages: int = Field(alias="totalPages")
    has_next: bool = Field(alias="hasNext")
    has_prev: bool = Field(alias="hasPrev")


class AdvocateListResponse(CamelModel):
    """Paginated listing payload."""

    data: list[Advocate]
    pagination: PaginationMeta


class AdvocateResponse(CamelModel):
    """Single-record payload."""

    data: Advocate


class AdvocateCollectionResponse(CamelModel):
    """Unpaginated record list, used for by-city lookups."""

    data: list[Advocate]


class ValueListResponse(CamelModel):
    """Distinct column values such as cities or degrees."""

    data: list[str]


class ErrorEnvelope(CamelModel):
    """Error payload returned by every surface on failure."""

    data: list[Advocate] | None
    error: str
    message: str
    code: str
    parameter: str | None = None
    field: str | None = None


class HealthLimits(CamelModel):
    """Limits reported by the health probe."""

    max_limit: int = Field(alias="maxLimit")
    max_rows_per_call: int = Field(alias="maxRowsPerCall")


class HealthResponse(CamelModel):
    """Health probe payload."""

    status: str
    read_only: bool = Field(alias="readOnly")
    limits: HealthLimits


def error_envelope(error: AppError, *, single_record: bool = False) -> dict[str, object]:
    """
    Build the error envelope returned in place of a success payload.

    Parameters
    ----------
    error
        Error to report.
    single_record
        Report ``data: null`` instead of an empty list.

    Returns
    -------
    dict[str, object]
        ``{data, error, message, code, parameter?, field?}``.
    """
    payload: dict[str, object] = {
        "data": None if single_record else [],
        "error": error.kind.value,
        "message": error.message,
        "code": error.code,
    }
    if error.parameter:
        payload["parameter"] = error.parameter
    if error.field:
        payload["field"] = error.field
    return payload


__all__ = [
    "Advocate",
    "AdvocateCollectionResponse",
    "AdvocateListResponse",
    "AdvocateResponse",
    "CamelModel",
    "ErrorEnvelope",
    "HealthLimits",
    "HealthResponse",
    "PaginationMeta",
    "ValueListResponse",
    "error_envelope",
]
