"""Request parameter validation for the advocate listing surfaces."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic import ValidationError as PydanticValidationError

from advocatedir.security.sanitizer import (
    DEFAULT_MAX_LENGTH,
    sanitize_city,
    sanitize_number,
    sanitize_query_params,
    sanitize_search_term,
    sanitize_string,
)
from advocatedir.services import errors
from advocatedir.services.query_plan import (
    DEFAULT_SORT_FIELD,
    MAX_LIMIT,
    MIN_LIMIT,
    MIN_PAGE,
    FilterCriteria,
    PaginationSpec,
    SortField,
    SortOrder,
    SortSpec,
)

LOG = logging.getLogger("advocatedir.services.validation")

MAX_PAGE = 1000
DEFAULT_LIMIT = 20
MIN_EXPERIENCE = 0
MAX_EXPERIENCE = 50

SORT_ALIASES: dict[str, SortField] = {"experience": SortField.YEARS_OF_EXPERIENCE}

EXPERIENCE_RANGE_MESSAGE = "Minimum experience cannot be greater than maximum experience"
ID_REQUIRED_MESSAGE = "id is required"
ID_FORMAT_MESSAGE = "invalid id format"

RawParams = Mapping[str, str | Sequence[str] | None]


def first_values(items: Iterable[tuple[str, str]]) -> dict[str, str]:
    """
    Collapse repeated keys keeping the first occurrence.

    Parameters
    ----------
    items
        ``(key, value)`` pairs in request order, e.g. ``QueryParams.multi_items()``.

    Returns
    -------
    dict[str, str]
        Single-valued mapping.
    """
    collapsed: dict[str, str] = {}
    for key, value in items:
        collapsed.setdefault(key, value)
    return collapsed


def _present(params: RawParams) -> dict[str, str]:
    """Drop absent and blank values so defaults apply."""
    present: dict[str, str] = {}
    for key, raw in params.items():
        if raw is None:
            continue
        if isinstance(raw, str):
            value = raw
        elif raw:
            value = raw[0]
        else:
            continue
        if value.strip():
            present[key] = value
    return present


def _integer(value: object, *, parameter: str, minimum: int, maximum: int | None) -> int:
    if isinstance(value, str | int | float):
        return int(
            sanitize_number(
                value, parameter=parameter, minimum=minimum, maximum=maximum, integer=True
            )
        )
    raise errors.invalid_parameter(parameter, "Invalid number format", value=value)


class _FrozenParams(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class ListParams(_FrozenParams):
    """Validated listing parameters with every default applied."""

    page: int = MIN_PAGE
    limit: int = DEFAULT_LIMIT
    search: str | None = None
    city: str | None = None
    degree: str | None = None
    min_experience: int | None = Field(default=None, alias="minExperience")
    max_experience: int | None = Field(default=None, alias="maxExperience")
    sort_by: SortField = Field(default=DEFAULT_SORT_FIELD, alias="sortBy")
    sort_order: SortOrder = Field(default=SortOrder.ASC, alias="sortOrder")

    @field_validator("page", mode="before")
    @classmethod
    def _check_page(cls, value: object) -> int:
        return _integer(value, parameter="page", minimum=MIN_PAGE, maximum=MAX_PAGE)

    @field_validator("limit", mode="before")
    @classmethod
    def _check_limit(cls, value: object) -> int:
        return _integer(value, parameter="limit", minimum=MIN_LIMIT, maximum=MAX_LIMIT)

    @field_validator("search", mode="before")
    @classmethod
    def _check_search(cls, value: object) -> str | None:
        cleaned = sanitize_search_term(str(value))
        return cleaned or None

    @field_validator("city", mode="before")
    @classmethod
    def _check_city(cls, value: object) -> str:
        return sanitize_city(str(value))

    @field_validator("degree", mode="before")
    @classmethod
    def _check_degree(cls, value: object) -> str | None:
        cleaned = sanitize_string(str(value), max_length=None)
        if len(cleaned) > DEFAULT_MAX_LENGTH:
            message = f"degree must be at most {DEFAULT_MAX_LENGTH} characters"
            raise errors.invalid_parameter("degree", message, value=value)
        return cleaned or None

    @field_validator("min_experience", mode="before")
    @classmethod
    def _check_min_experience(cls, value: object) -> int:
        return _integer(
            value, parameter="minExperience", minimum=MIN_EXPERIENCE, maximum=MAX_EXPERIENCE
        )

    @field_validator("max_experience", mode="before")
    @classmethod
    def _check_max_experience(cls, value: object) -> int:
        return _integer(
            value, parameter="maxExperience", minimum=MIN_EXPERIENCE, maximum=MAX_EXPERIENCE
        )

    @field_validator("sort_by", mode="before")
    @classmethod
    def _check_sort_by(cls, value: object, info: ValidationInfo) -> SortField:
        text = str(value).strip()
        if text in SORT_ALIASES:
            return SORT_ALIASES[text]
        try:
            return SortField(text)
        except ValueError:
            strict = bool((info.context or {}).get("strict_sort", False))
            if strict:
                allowed = ", ".join(field.value for field in SortField)
                message = f"sortBy must be one of: {allowed}"
                raise errors.invalid_parameter("sortBy", message, value=value) from None
            LOG.debug("Unknown sortBy %r; falling back to %s", text, DEFAULT_SORT_FIELD.value)
            return DEFAULT_SORT_FIELD

    @field_validator("sort_order", mode="before")
    @classmethod
    def _check_sort_order(cls, value: object) -> SortOrder:
        try:
            return SortOrder(str(value).strip())
        except ValueError:
            message = "sortOrder must be one of: asc, desc"
            raise errors.invalid_parameter("sortOrder", message, value=value) from None

    def criteria(self) -> FilterCriteria:
        """Return the filter portion as :class:`FilterCriteria`."""
        return FilterCriteria(
            search=self.search,
            city=self.city,
            degree=self.degree,
            min_experience=self.min_experience,
            max_experience=self.max_experience,
        )

    def sort(self) -> SortSpec:
        """Return the ordering portion as :class:`SortSpec`."""
        return SortSpec(field=self.sort_by, order=self.sort_order)

    def pagination(self) -> PaginationSpec:
        """Return the page window as :class:`PaginationSpec`."""
        return PaginationSpec(page=self.page, limit=self.limit)


class IdParams(_FrozenParams):
    """Validated single-record lookup parameters."""

    id: int

    @field_validator("id", mode="before")
    @classmethod
    def _check_id(cls, value: object) -> int:
        try:
            return _integer(value, parameter="id", minimum=1, maximum=None)
        except errors.AppError as exc:
            raise errors.invalid_parameter("id", ID_FORMAT_MESSAGE, value=value) from exc


class CityParams(_FrozenParams):
    """Validated by-city lookup parameters."""

    city: str

    @field_validator("city", mode="before")
    @classmethod
    def _check_city(cls, value: object) -> str:
        return sanitize_city(str(value))


def _first_violation(exc: PydanticValidationError, model: type[BaseModel]) -> errors.AppError:
    """Translate the first pydantic error into an InvalidParameter error."""
    details = exc.errors()
    if not details:
        return errors.invalid_parameter("request", "Invalid request parameters")
    first = details[0]
    loc = first.get("loc") or ("request",)
    name = str(loc[0])
    field_info = model.model_fields.get(name)
    parameter = field_info.alias if field_info is not None and field_info.alias else name
    return errors.invalid_parameter(parameter, first.get("msg") or None, value=first.get("input"))


def validate_list_params(params: RawParams, *, strict_sort: bool = False) -> ListParams:
    """
    Validate listing parameters.

    Parameters
    ----------
    params
        Raw parameters keyed by their wire names (``minExperience``, ``sortBy``...).
    strict_sort
        Reject unknown ``sortBy`` values instead of falling back to ``lastName``.

    Returns
    -------
    ListParams
        Frozen, fully defaulted parameters.

    Raises
    ------
    AppError
        ``InvalidParameterError`` describing the first violation.
    """
    try:
        validated = ListParams.model_validate(
            _present(params), context={"strict_sort": strict_sort}
        )
    except PydanticValidationError as exc:
        raise _first_violation(exc, ListParams) from exc
    if (
        validated.min_experience is not None
        and validated.max_experience is not None
        and validated.min_experience > validated.max_experience
    ):
        raise errors.invalid_parameter(
            "minExperience",
            EXPERIENCE_RANGE_MESSAGE,
            value=validated.min_experience,
            field="minExperience",
        )
    return validated


def validate_id_params(params: RawParams) -> IdParams:
    """
    Validate single-record lookup parameters.

    Returns
    -------
    IdParams
        Parameters holding a positive integer id.

    Raises
    ------
    AppError
        ``InvalidParameterError`` when the id is missing or malformed.
    """
    present = _present(params)
    if "id" not in present:
        raise errors.invalid_parameter("id", ID_REQUIRED_MESSAGE)
    try:
        return IdParams.model_validate(present)
    except PydanticValidationError as exc:
        raise errors.invalid_parameter("id", ID_FORMAT_MESSAGE, value=present["id"]) from exc


def validate_city_params(params: RawParams) -> CityParams:
    """
    Validate by-city lookup parameters.

    Raises
    ------
    AppError
        ``InvalidParameterError`` when the city is missing or not allow-listed.
    """
    present = _present(params)
    if "city" not in present:
        raise errors.invalid_parameter("city", "City is required")
    try:
        return CityParams.model_validate(present)
    except PydanticValidationError as exc:
        raise _first_violation(exc, CityParams) from exc


def sanitize_and_validate_list(params: RawParams, *, strict_sort: bool = False) -> ListParams:
    """Sanitize raw listing parameters then validate them."""
    return validate_list_params(sanitize_query_params(params), strict_sort=strict_sort)


def sanitize_and_validate_id(params: RawParams) -> IdParams:
    """Sanitize raw lookup parameters then validate the id."""
    return validate_id_params(sanitize_query_params(params))


def sanitize_and_validate_city(params: RawParams) -> CityParams:
    """Sanitize raw lookup parameters then validate the city."""
    return validate_city_params(sanitize_query_params(params))


__all__ = [
    "DEFAULT_LIMIT",
    "EXPERIENCE_RANGE_MESSAGE",
    "ID_FORMAT_MESSAGE",
    "ID_REQUIRED_MESSAGE",
    "MAX_EXPERIENCE",
    "MAX_PAGE",
    "MIN_EXPERIENCE",
    "SORT_ALIASES",
    "CityParams",
    "RawParams",
    "IdParams",
    "ListParams",
    "first_values",
    "sanitize_and_validate_city",
    "sanitize_and_validate_id",
    "sanitize_and_validate_list",
    "validate_city_params",
    "validate_id_params",
    "validate_list_params",
]
