"""Transport-agnostic advocate query application service."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from advocatedir.serving.models import (
    AdvocateCollectionResponse,
    AdvocateListResponse,
    AdvocateResponse,
    HealthLimits,
    HealthResponse,
    ValueListResponse,
)
from advocatedir.serving.protocols import CancelToken
from advocatedir.services import errors
from advocatedir.services.executor import QueryExecutor
from advocatedir.services.query_plan import MAX_LIMIT, Column, compose_query
from advocatedir.services.results import assemble_page
from advocatedir.services.validation import (
    RawParams,
    sanitize_and_validate_city,
    sanitize_and_validate_id,
    sanitize_and_validate_list,
)

LOG = logging.getLogger("advocatedir.services.query")

RESOURCE_NAME = "Advocate"


@dataclass
class ServiceCallMetrics:
    """Structured metrics describing a service invocation."""

    name: str
    transport: str
    duration_ms: float
    rows: int | None = None
    total: int | None = None
    error: str | None = None


@dataclass
class ServiceObservability:
    """Configuration for service-level observability."""

    enabled: bool = False
    logger: logging.Logger = field(default_factory=lambda: LOG)

    def record(self, metrics: ServiceCallMetrics) -> None:
        """
        Emit a structured log line for a service call.

        Parameters
        ----------
        metrics:
            Call metrics describing the invocation outcome.
        """
        if not self.enabled or not self.logger.isEnabledFor(logging.INFO):
            return
        payload: dict[str, object] = {
            "name": metrics.name,
            "transport": metrics.transport,
            "duration_ms": round(metrics.duration_ms, 2),
        }
        if metrics.rows is not None:
            payload["rows"] = metrics.rows
        if metrics.total is not None:
            payload["total"] = metrics.total
        if metrics.error is not None:
            payload["error"] = metrics.error
        self.logger.info("service_call %s", payload)


def _extract_counts(result: object) -> tuple[int | None, int | None]:
    """
    Derive row and total counts from response shapes.

    Returns
    -------
    tuple[int | None, int | None]
        ``(rows, total)`` where inferrable.
    """
    if isinstance(result, AdvocateListResponse):
        return len(result.data), result.pagination.total
    if isinstance(result, AdvocateCollectionResponse | ValueListResponse):
        return len(result.data), None
    if isinstance(result, AdvocateResponse):
        return 1, None
    return None, None


def _observe_call[T](
    observability: ServiceObservability | None,
    *,
    transport: str,
    name: str,
    func: Callable[[], T],
) -> T:
    """
    Execute a callable while capturing observability signals.

    Returns
    -------
    T
        Result returned by the wrapped callable.
    """
    start = time.perf_counter()
    try:
        result = func()
    except Exception as exc:
        duration_ms = (time.perf_counter() - start) * 1000
        if observability is not None:
            error_name = (
                exc.kind.value if isinstance(exc, errors.AppError) else exc.__class__.__name__
            )
            observability.record(
                ServiceCallMetrics(
                    name=name, transport=transport, duration_ms=duration_ms, error=error_name
                )
            )
        raise
    duration_ms = (time.perf_counter() - start) * 1000
    if observability is not None:
        rows, total = _extract_counts(result)
        observability.record(
            ServiceCallMetrics(
                name=name, transport=transport, duration_ms=duration_ms, rows=rows, total=total
            )
        )
    return result


@dataclass
class AdvocateQueryService:
    """
    Run the sanitize, validate, compose, execute and assemble pipeline.

    Every operation accepts raw parameters keyed by their wire names and an
    optional cancellation token; failures surface as ``AppError``.
    """

    executor: QueryExecutor
    strict_sort: bool = False
    read_only: bool = True
    transport: str = "local"
    observability: ServiceObservability | None = None

    def list_advocates(
        self, params: RawParams, *, cancel: CancelToken | None = None
    ) -> AdvocateListResponse:
        """
        Return one filtered, sorted page of advocates.

        Returns
        -------
        AdvocateListResponse
            Page rows plus pagination metadata.
        """

        def _run() -> AdvocateListResponse:
            validated = sanitize_and_validate_list(params, strict_sort=self.strict_sort)
            pagination = validated.pagination()
            plan = compose_query(validated.criteria(), validated.sort(), pagination)
            advocates, total = self.executor.run(plan, cancel)
            return assemble_page(advocates, total, pagination)

        return _observe_call(
            self.observability, transport=self.transport, name="list_advocates", func=_run
        )

    def get_advocate(
        self, params: RawParams, *, cancel: CancelToken | None = None
    ) -> AdvocateResponse:
        """
        Return a single advocate by id.

        Raises
        ------
        AppError
            ``ResourceNotFoundError`` when no advocate has the id.
        """

        def _run() -> AdvocateResponse:
            validated = sanitize_and_validate_id(params)
            advocate = self.executor.fetch_by_id(validated.id, cancel)
            if advocate is None:
                raise errors.resource_not_found(RESOURCE_NAME, validated.id)
            return AdvocateResponse(data=advocate)

        return _observe_call(
            self.observability, transport=self.transport, name="get_advocate", func=_run
        )

    def list_advocates_by_city(
        self, params: RawParams, *, cancel: CancelToken | None = None
    ) -> AdvocateCollectionResponse:
        """Return every advocate in a city; an unknown city yields an empty list."""

        def _run() -> AdvocateCollectionResponse:
            validated = sanitize_and_validate_city(params)
            return AdvocateCollectionResponse(
                data=self.executor.fetch_by_city(validated.city, cancel)
            )

        return _observe_call(
            self.observability, transport=self.transport, name="list_advocates_by_city", func=_run
        )

    def list_cities(self, *, cancel: CancelToken | None = None) -> ValueListResponse:
        """Return distinct cities in ascending order."""
        return _observe_call(
            self.observability,
            transport=self.transport,
            name="list_cities",
            func=lambda: ValueListResponse(
                data=self.executor.distinct_values(Column.CITY, cancel)
            ),
        )

    def list_degrees(self, *, cancel: CancelToken | None = None) -> ValueListResponse:
        """Return distinct degrees in ascending order."""
        return _observe_call(
            self.observability,
            transport=self.transport,
            name="list_degrees",
            func=lambda: ValueListResponse(
                data=self.executor.distinct_values(Column.DEGREE, cancel)
            ),
        )

    def health(self) -> HealthResponse:
        """
        Probe the store and report the configured limits.

        Raises
        ------
        AppError
            ``DatabaseError`` when the store probe fails.
        """
        self.executor.ping()
        return HealthResponse(
            status="ok",
            read_only=self.read_only,
            limits=HealthLimits(max_limit=MAX_LIMIT, max_rows_per_call=self.executor.max_rows),
        )


__all__ = [
    "RESOURCE_NAME",
    "AdvocateQueryService",
    "ServiceCallMetrics",
    "ServiceObservability",
]
