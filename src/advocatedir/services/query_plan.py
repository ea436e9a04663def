"""
Compose validated filter, sort and pagination values into an abstract query plan.

The plan names columns only through :class:`Column` and carries every user
value as data; the store binds those values as parameters.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from types import MappingProxyType

MIN_LIMIT = 1
MAX_LIMIT = 100
MIN_PAGE = 1

LIKE_ESCAPE = "\\"


class Column(StrEnum):
    """Physical columns of the advocates table."""

    ID = "id"
    FIRST_NAME = "first_name"
    LAST_NAME = "last_name"
    CITY = "city"
    DEGREE = "degree"
    SPECIALTIES = "specialties"
    YEARS_OF_EXPERIENCE = "years_of_experience"
    PHONE_NUMBER = "phone_number"
    CREATED_AT = "created_at"


class SortField(StrEnum):
    """Sort keys accepted from callers."""

    FIRST_NAME = "firstName"
    LAST_NAME = "lastName"
    CITY = "city"
    DEGREE = "degree"
    YEARS_OF_EXPERIENCE = "yearsOfExperience"
    CREATED_AT = "createdAt"


class SortOrder(StrEnum):
    """Sort direction."""

    ASC = "asc"
    DESC = "desc"


class Bound(StrEnum):
    """Inclusive range bound used by :class:`Range` predicates."""

    AT_LEAST = ">="
    AT_MOST = "<="


DEFAULT_SORT_FIELD = SortField.LAST_NAME
TIE_BREAK_COLUMN = Column.ID

SORT_COLUMNS: MappingProxyType[SortField, Column] = MappingProxyType(
    {
        SortField.FIRST_NAME: Column.FIRST_NAME,
        SortField.LAST_NAME: Column.LAST_NAME,
        SortField.CITY: Column.CITY,
        SortField.DEGREE: Column.DEGREE,
        SortField.YEARS_OF_EXPERIENCE: Column.YEARS_OF_EXPERIENCE,
        SortField.CREATED_AT: Column.CREATED_AT,
    }
)

SEARCH_COLUMNS: tuple[Column, ...] = (
    Column.FIRST_NAME,
    Column.LAST_NAME,
    Column.CITY,
    Column.DEGREE,
    Column.SPECIALTIES,
)


@dataclass(frozen=True)
class FilterCriteria:
    """Optional filters applied to the listing."""

    search: str | None = None
    city: str | None = None
    degree: str | None = None
    min_experience: int | None = None
    max_experience: int | None = None

    def __post_init__(self) -> None:
        if (
            self.min_experience is not None
            and self.max_experience is not None
            and self.min_experience > self.max_experience
        ):
            message = "min_experience must not exceed max_experience"
            raise ValueError(message)


@dataclass(frozen=True)
class SortSpec:
    """Requested ordering."""

    field: SortField = DEFAULT_SORT_FIELD
    order: SortOrder = SortOrder.ASC


@dataclass(frozen=True)
class PaginationSpec:
    """Page window; ``offset`` is derived."""

    page: int = MIN_PAGE
    limit: int = 20

    def __post_init__(self) -> None:
        if self.page < MIN_PAGE:
            message = f"page must be >= {MIN_PAGE}, got {self.page}"
            raise ValueError(message)
        if not MIN_LIMIT <= self.limit <= MAX_LIMIT:
            message = f"limit must be within [{MIN_LIMIT}, {MAX_LIMIT}], got {self.limit}"
            raise ValueError(message)

    @property
    def offset(self) -> int:
        """Rows skipped before the page starts."""
        return (self.page - 1) * self.limit


@dataclass(frozen=True)
class TextMatch:
    """Case-insensitive substring match over several columns, OR-combined."""

    columns: tuple[Column, ...]
    pattern: str


@dataclass(frozen=True)
class Equals:
    """Exact match on one column."""

    column: Column
    value: str | int


@dataclass(frozen=True)
class Range:
    """Inclusive bound on a numeric column."""

    column: Column
    bound: Bound
    value: int


type Predicate = TextMatch | Equals | Range


@dataclass(frozen=True)
class OrderBy:
    """Resolved physical ordering with a stable tie-break."""

    column: Column
    descending: bool = False
    tie_breaker: Column = TIE_BREAK_COLUMN


@dataclass(frozen=True)
class QueryPlan:
    """Abstract query description consumed by the record store."""

    predicates: tuple[Predicate, ...]
    order: OrderBy
    offset: int
    limit: int


def escape_like(text: str) -> str:
    """
    Escape LIKE wildcards so user text matches literally.

    Returns
    -------
    str
        Text with ``\\``, ``%`` and ``_`` escaped by :data:`LIKE_ESCAPE`.
    """
    return (
        text.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", f"{LIKE_ESCAPE}%")
        .replace("_", f"{LIKE_ESCAPE}_")
    )


def contains_pattern(text: str) -> str:
    """Return a lower-cased, escaped ``%text%`` LIKE pattern."""
    return f"%{escape_like(text.lower())}%"


def build_predicates(criteria: FilterCriteria) -> tuple[Predicate, ...]:
    """
    Translate filter criteria into AND-combined predicates.

    Returns
    -------
    tuple[Predicate, ...]
        Predicates in a stable order: search, city, degree, experience bounds.
    """
    predicates: list[Predicate] = []
    if criteria.search and criteria.search.strip():
        predicates.append(
            TextMatch(columns=SEARCH_COLUMNS, pattern=contains_pattern(criteria.search.strip()))
        )
    if criteria.city and criteria.city.strip():
        predicates.append(Equals(Column.CITY, criteria.city))
    if criteria.degree and criteria.degree.strip():
        predicates.append(Equals(Column.DEGREE, criteria.degree))
    if criteria.min_experience is not None:
        predicates.append(
            Range(Column.YEARS_OF_EXPERIENCE, Bound.AT_LEAST, criteria.min_experience)
        )
    if criteria.max_experience is not None:
        predicates.append(Range(Column.YEARS_OF_EXPERIENCE, Bound.AT_MOST, criteria.max_experience))
    return tuple(predicates)


def resolve_sort(sort: SortSpec) -> OrderBy:
    """Map a sort spec onto its physical column through :data:`SORT_COLUMNS`."""
    return OrderBy(column=SORT_COLUMNS[sort.field], descending=sort.order is SortOrder.DESC)


def compose_query(
    criteria: FilterCriteria,
    sort: SortSpec,
    pagination: PaginationSpec,
) -> QueryPlan:
    """
    Combine validated values into a query plan.

    Parameters
    ----------
    criteria
        Filters to apply.
    sort
        Ordering, already constrained to the allow-list.
    pagination
        Page window.

    Returns
    -------
    QueryPlan
        Predicates, ordering, offset and limit for the store.
    """
    return QueryPlan(
        predicates=build_predicates(criteria),
        order=resolve_sort(sort),
        offset=pagination.offset,
        limit=pagination.limit,
    )


__all__ = [
    "DEFAULT_SORT_FIELD",
    "LIKE_ESCAPE",
    "MAX_LIMIT",
    "MIN_LIMIT",
    "MIN_PAGE",
    "SEARCH_COLUMNS",
    "SORT_COLUMNS",
    "TIE_BREAK_COLUMN",
    "Bound",
    "Column",
    "Equals",
    "FilterCriteria",
    "OrderBy",
    "PaginationSpec",
    "Predicate",
    "QueryPlan",
    "Range",
    "SortField",
    "SortOrder",
    "SortSpec",
    "TextMatch",
    "build_predicates",
    "compose_query",
    "contains_pattern",
    "escape_like",
    "resolve_sort",
]
