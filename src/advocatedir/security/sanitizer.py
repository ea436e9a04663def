"""
Input sanitization for untrusted request text.

Generic string and search-term sanitizers never fail: they always return a
best-effort cleaned string. The city, email, URL and number sanitizers enforce
constraints and raise ``InvalidParameterError`` instead of silently repairing
input.

Pattern removal here sits on top of parameter binding in the store; it is not
a substitute for it.
"""

from __future__ import annotations

import math
import re
from collections.abc import Iterable, Mapping, Sequence
from enum import StrEnum

from pydantic import AnyUrl, EmailStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from advocatedir.services import errors

DEFAULT_MAX_LENGTH = 100
SEARCH_MAX_LENGTH = 100
CITY_MAX_LENGTH = 100
EMAIL_MAX_LENGTH = 254
URL_MAX_LENGTH = 2048

# Bound on strip passes; nested payloads such as "<scr<script>ipt>" need more than one.
_MAX_PASSES = 8

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_WHITESPACE = re.compile(r"\s+")
_SPECIAL_CHARS = re.compile(r"[<>\"'&]")

_STRUCTURAL_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"<script\b[^>]*>.*?</script\s*>", re.IGNORECASE | re.DOTALL),
    re.compile(r"<style\b[^>]*>.*?</style\s*>", re.IGNORECASE | re.DOTALL),
    re.compile(r"<iframe\b[^>]*>.*?</iframe\s*>", re.IGNORECASE | re.DOTALL),
    re.compile(r"<object\b[^>]*>.*?</object\s*>", re.IGNORECASE | re.DOTALL),
    re.compile(r"<embed\b[^>]*>", re.IGNORECASE),
    re.compile(r"<[^>]*>"),
    re.compile(r"(?:javascript|vbscript|data)\s*:", re.IGNORECASE),
    re.compile(r"\bon\w+\s*=", re.IGNORECASE),
    re.compile(r"alert\s*\([^)]*\)?", re.IGNORECASE),
)

_SEARCH_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"--|/\*|\*/|;"),
    re.compile(
        r"\b(?:union|select|insert|update|delete|drop|create|alter|exec|execute"
        r"|script|javascript|vbscript|onload|onerror|onclick)\b",
        re.IGNORECASE,
    ),
    re.compile(r"\b(?:and|or)\b\s+\d+\s*=\s*\d+", re.IGNORECASE),
    _SPECIAL_CHARS,
)

_CITY_ALLOWED = re.compile(r"[A-Za-z \-'.]+")
_INTEGER = re.compile(r"[+-]?[0-9]+")
_DECIMAL = re.compile(r"[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")

_EMAIL_ADAPTER: TypeAdapter[str] = TypeAdapter(EmailStr)
_URL_ADAPTER: TypeAdapter[AnyUrl] = TypeAdapter(AnyUrl)


class SanitizeMode(StrEnum):
    """How aggressively free text is cleaned."""

    PLAIN = "plain"
    SPECIAL_CHARS = "special_chars"
    RAW = "raw"


def _remove_until_stable(value: str, patterns: Iterable[re.Pattern[str]], repl: str) -> str:
    compiled = tuple(patterns)
    for _ in range(_MAX_PASSES):
        previous = value
        for pattern in compiled:
            value = pattern.sub(repl, value)
        if value == previous:
            break
    return value


def _normalize_whitespace(value: str) -> str:
    return _WHITESPACE.sub(" ", value).strip()


def _truncate(value: str, max_length: int | None) -> str:
    if max_length is None or len(value) <= max_length:
        return value
    return value[:max_length]


def strip_control_chars(value: str) -> str:
    """Remove null bytes and C0 control characters (tab and newlines are kept)."""
    return _CONTROL_CHARS.sub("", value)


def sanitize_string(
    value: str | None,
    *,
    max_length: int | None = DEFAULT_MAX_LENGTH,
    mode: SanitizeMode = SanitizeMode.PLAIN,
) -> str:
    """
    Clean free text so it is safe to reflect or use as a filter value.

    Parameters
    ----------
    value
        Raw input; ``None`` yields an empty string.
    max_length
        Maximum number of characters kept; ``None`` disables truncation.
    mode
        ``PLAIN`` strips markup and replaces ``< > " ' &`` with spaces,
        ``SPECIAL_CHARS`` strips markup but keeps those characters, and
        ``RAW`` only removes control characters and truncates.

    Returns
    -------
    str
        Cleaned text, possibly empty.
    """
    if value is None:
        return ""
    cleaned = strip_control_chars(str(value))
    if mode is SanitizeMode.RAW:
        return _truncate(cleaned, max_length)

    cleaned = _remove_until_stable(cleaned, _STRUCTURAL_PATTERNS, " ")
    if mode is SanitizeMode.PLAIN:
        cleaned = _SPECIAL_CHARS.sub(" ", cleaned)
    cleaned = _normalize_whitespace(cleaned)
    return _truncate(cleaned, max_length).strip()


def sanitize_search_term(value: str | None) -> str:
    """
    Clean a search term and drop SQL/script injection patterns.

    Returns
    -------
    str
        Cleaned term, or an empty string when nothing safe remains.
    """
    if not value:
        return ""
    cleaned = sanitize_string(value, max_length=SEARCH_MAX_LENGTH)
    cleaned = _remove_until_stable(cleaned, _SEARCH_PATTERNS, " ")
    return _normalize_whitespace(cleaned)


def sanitize_city(value: str | None, *, parameter: str = "city") -> str:
    """
    Validate a city name against the allow-listed character class.

    Parameters
    ----------
    value
        Raw city name.
    parameter
        Parameter name reported on failure.

    Returns
    -------
    str
        Whitespace-normalized city name.

    Raises
    ------
    AppError
        ``InvalidParameterError`` when the city is missing, too long, or
        contains characters outside letters, space, hyphen, apostrophe, period.
    """
    if value is None or not value.strip():
        raise errors.invalid_parameter(parameter, "City is required")
    if len(value) > CITY_MAX_LENGTH:
        raise errors.invalid_parameter(parameter, "City name is too long", value=value)
    city = _normalize_whitespace(value)
    if not _CITY_ALLOWED.fullmatch(city):
        raise errors.invalid_parameter(
            parameter, "City name contains invalid characters", value=value
        )
    return city


def sanitize_email(value: str | None, *, parameter: str = "email") -> str:
    """
    Clean and validate an email address.

    Returns
    -------
    str
        Lower-cased email address.

    Raises
    ------
    AppError
        ``InvalidParameterError`` when missing or malformed.
    """
    if not value:
        raise errors.invalid_parameter(parameter, "Email is required")
    cleaned = sanitize_string(value, max_length=EMAIL_MAX_LENGTH, mode=SanitizeMode.SPECIAL_CHARS)
    try:
        _EMAIL_ADAPTER.validate_python(cleaned)
    except PydanticValidationError as exc:
        raise errors.invalid_parameter(parameter, "Invalid email format", value=value) from exc
    return cleaned.lower()


def sanitize_url(
    value: str | None,
    *,
    protocols: Sequence[str] = ("http", "https"),
    require_protocol: bool = True,
    parameter: str = "url",
) -> str:
    """
    Clean and validate a URL restricted to the given protocols.

    Returns
    -------
    str
        Cleaned URL text as supplied by the caller.

    Raises
    ------
    AppError
        ``InvalidParameterError`` when missing, malformed or using another scheme.
    """
    if not value:
        raise errors.invalid_parameter(parameter, "URL is required")
    cleaned = sanitize_string(value, max_length=URL_MAX_LENGTH, mode=SanitizeMode.RAW).strip()
    candidate = cleaned
    if "://" not in candidate and not require_protocol:
        candidate = f"{protocols[0]}://{candidate}"
    try:
        parsed = _URL_ADAPTER.validate_python(candidate)
    except PydanticValidationError as exc:
        raise errors.invalid_parameter(parameter, "Invalid URL format", value=value) from exc
    if parsed.scheme not in protocols or not parsed.host:
        raise errors.invalid_parameter(parameter, "Invalid URL format", value=value)
    return cleaned


def sanitize_number(
    value: str | float | None,
    *,
    parameter: str = "number",
    minimum: float | None = None,
    maximum: float | None = None,
    integer: bool = False,
) -> int | float:
    """
    Parse a numeric value using a strict ASCII grammar and check its bounds.

    Parameters
    ----------
    value
        Raw numeric text or an already numeric value.
    parameter
        Parameter name reported on failure.
    minimum
        Inclusive lower bound.
    maximum
        Inclusive upper bound.
    integer
        Require an integral value and return it as ``int``.

    Returns
    -------
    int | float
        Parsed number.

    Raises
    ------
    AppError
        ``InvalidParameterError`` naming ``parameter`` on any violation.
    """
    if value is None:
        raise errors.invalid_parameter(parameter, "Number value is required")
    if isinstance(value, bool):
        raise errors.invalid_parameter(parameter, "Invalid number format", value=value)
    if isinstance(value, (int, float)):
        number: int | float = value
    else:
        text = value.strip()
        if _INTEGER.fullmatch(text):
            number = int(text)
        elif _DECIMAL.fullmatch(text):
            number = float(text)
        else:
            raise errors.invalid_parameter(parameter, "Invalid number format", value=value)
    if isinstance(number, float):
        if not math.isfinite(number):
            raise errors.invalid_parameter(parameter, "Invalid number format", value=value)
        if integer:
            if not number.is_integer():
                raise errors.invalid_parameter(parameter, "Integer value required", value=value)
            number = int(number)
    if minimum is not None and number < minimum:
        raise errors.invalid_parameter(
            parameter, f"Value must be at least {minimum}", value=value
        )
    if maximum is not None and number > maximum:
        raise errors.invalid_parameter(parameter, f"Value must be at most {maximum}", value=value)
    return number


def sanitize_fields(
    record: Mapping[str, object],
    fields: Iterable[str],
    *,
    max_length: int | None = DEFAULT_MAX_LENGTH,
    mode: SanitizeMode = SanitizeMode.PLAIN,
) -> dict[str, object]:
    """
    Return a copy of ``record`` with the named string fields sanitized.

    Returns
    -------
    dict[str, object]
        New mapping; non-string values are copied unchanged.
    """
    cleaned = dict(record)
    for name in fields:
        current = cleaned.get(name)
        if isinstance(current, str):
            cleaned[name] = sanitize_string(current, max_length=max_length, mode=mode)
    return cleaned


def sanitize_query_params(
    params: Mapping[str, str | Sequence[str] | None],
) -> dict[str, str]:
    """
    Sanitize raw query parameters key by key.

    ``search`` goes through :func:`sanitize_search_term`; ``city`` is left
    untouched so the strict allow-list check sees the caller's exact input;
    every other key is cleaned in ``PLAIN`` mode without truncation, leaving
    length limits to validation. Multi-valued entries keep their first value
    and ``None`` entries are dropped.

    Returns
    -------
    dict[str, str]
        Sanitized single-valued parameters.
    """
    sanitized: dict[str, str] = {}
    for key, raw in params.items():
        if raw is None:
            continue
        if isinstance(raw, str):
            value = raw
        elif raw:
            value = raw[0]
        else:
            continue
        if key == "search":
            sanitized[key] = sanitize_search_term(value)
        elif key == "city":
            sanitized[key] = value
        else:
            sanitized[key] = sanitize_string(value, max_length=None)
    return sanitized


__all__ = [
    "CITY_MAX_LENGTH",
    "DEFAULT_MAX_LENGTH",
    "EMAIL_MAX_LENGTH",
    "SEARCH_MAX_LENGTH",
    "URL_MAX_LENGTH",
    "SanitizeMode",
    "sanitize_city",
    "sanitize_email",
    "sanitize_fields",
    "sanitize_number",
    "sanitize_query_params",
    "sanitize_search_term",
    "sanitize_string",
    "sanitize_url",
    "strip_control_chars",
]
