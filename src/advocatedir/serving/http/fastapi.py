"""FastAPI server exposing the advocate listing pipeline over DuckDB."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Annotated, Any

import anyio
from fastapi import APIRouter, Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.responses import Response

from advocatedir.config.serving_models import ServingConfig
from advocatedir.serving.models import (
    AdvocateCollectionResponse,
    AdvocateListResponse,
    AdvocateResponse,
    CamelModel,
    ErrorEnvelope,
    HealthResponse,
    ValueListResponse,
    error_envelope,
)
from advocatedir.serving.protocols import CancelToken
from advocatedir.serving.wiring import BackendResource, build_backend_resource
from advocatedir.services import errors
from advocatedir.services.query_service import AdvocateQueryService
from advocatedir.services.validation import first_values
from advocatedir.storage.gateway import MEMORY_PATH, StorageConfig, StorageGateway, open_gateway

LOG = logging.getLogger("advocatedir.serving.http.fastapi")

API_PREFIX = "/api/advocates"
BY_ID_PATH = f"{API_PREFIX}/by-id"
HEALTH_PATH = "/health"

# Routes whose success payload carries a single object; their errors report ``data: null``.
_SINGLE_RECORD_PATHS = frozenset({BY_ID_PATH, HEALTH_PATH})

_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    status.HTTP_400_BAD_REQUEST: {"model": ErrorEnvelope},
    status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorEnvelope},
    status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorEnvelope},
}


def _ensure_readable_db(path: Path) -> None:
    """
    Validate that the DuckDB path exists and is readable.

    Parameters
    ----------
    path:
        Path to the DuckDB database file.

    Raises
    ------
    FileNotFoundError
        If the path does not exist.
    ValueError
        If the path is not a file.
    PermissionError
        If the file cannot be opened for reading.
    """
    if not path.exists():
        message = f"DuckDB database not found at {path}"
        raise FileNotFoundError(message)
    if not path.is_file():
        message = f"DuckDB path {path} is not a file"
        raise ValueError(message)
    try:
        with path.open("rb"):
            return
    except PermissionError as exc:
        message = f"DuckDB path {path} is not readable"
        raise PermissionError(message) from exc


def load_api_config() -> ServingConfig:
    """
    Load and validate server configuration from environment variables.

    Returns
    -------
    ServingConfig
        Validated configuration for the FastAPI surface.
    """
    config = ServingConfig.from_env()
    if config.read_only and config.db_path != MEMORY_PATH:
        _ensure_readable_db(config.db_path)
    return config


def create_backend_resource(cfg: ServingConfig, *, gateway: StorageGateway) -> BackendResource:
    """
    Instantiate the DuckDB backend for the API.

    Returns
    -------
    BackendResource
        Store, service and shutdown hook.
    """
    return build_backend_resource(cfg, gateway=gateway, transport="http")


def error_response(error: errors.AppError, *, path: str) -> JSONResponse:
    """
    Convert an AppError into the JSON error envelope.

    Parameters
    ----------
    error:
        Error to serialize.
    path:
        Request path; single-record routes report ``data: null``.

    Returns
    -------
    JSONResponse
        Response carrying the error's status.
    """
    payload = error_envelope(error, single_record=path in _SINGLE_RECORD_PATHS)
    return JSONResponse(status_code=error.status, content=payload)


def _expose_details(request: Request) -> bool:
    config: ServingConfig | None = getattr(request.app.state, "config", None)
    return bool(config is not None and config.expose_error_details)


def install_exception_handlers(app: FastAPI) -> None:
    """Register global exception handlers for consistent error envelopes."""

    @app.exception_handler(errors.AppError)
    def _handle_app_error(request: Request, exc: errors.AppError) -> JSONResponse:
        errors.log_app_error(LOG, exc, request.url.path)
        return error_response(exc, path=request.url.path)

    @app.exception_handler(RequestValidationError)
    def _handle_validation_error(
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        LOG.info("Request validation failed path=%s errors=%s", request.url.path, exc.errors())
        return error_response(
            errors.bad_request("Request validation failed"), path=request.url.path
        )

    @app.exception_handler(Exception)
    def _handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        LOG.exception("Unhandled error path=%s", request.url.path)
        error = errors.handle_unknown_error(exc, expose_details=_expose_details(request))
        return error_response(error, path=request.url.path)


def install_logging_middleware(app: FastAPI) -> None:
    """Add structured logging for each request."""

    @app.middleware("http")
    async def _log_request(
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000
        LOG.info(
            "Handled %s %s status=%s duration_ms=%.2f params=%s",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            dict(request.query_params),
        )
        return response


def get_app_config(request: Request) -> ServingConfig:
    """
    Retrieve the validated application configuration from state.

    Returns
    -------
    ServingConfig
        Loaded application configuration.

    Raises
    ------
    AppError
        ``ServiceUnavailableError`` if the configuration is missing.
    """
    config: ServingConfig | None = getattr(request.app.state, "config", None)
    if config is None:
        message = "Server configuration is not initialized"
        raise errors.service_unavailable(message)
    return config


def get_service(request: Request) -> AdvocateQueryService:
    """
    Retrieve the shared query service from state.

    Returns
    -------
    AdvocateQueryService
        Service used to satisfy API queries.

    Raises
    ------
    AppError
        ``ServiceUnavailableError`` if the service is missing.
    """
    service: AdvocateQueryService | None = getattr(request.app.state, "service", None)
    if service is None:
        message = "Query service is not initialized"
        raise errors.service_unavailable(message)
    return service


ConfigDep = Annotated[ServingConfig, Depends(get_app_config)]
ServiceDep = Annotated[AdvocateQueryService, Depends(get_service)]


async def _watch_disconnect(
    request: Request, cancel: threading.Event, poll_seconds: float
) -> None:
    while not cancel.is_set():
        if await request.is_disconnected():
            LOG.info("Client disconnected path=%s; cancelling query", request.url.path)
            cancel.set()
            return
        await anyio.sleep(poll_seconds)


async def run_cancellable[T: CamelModel](
    request: Request,
    config: ServingConfig,
    call: Callable[[CancelToken], T],
) -> T:
    """
    Run a blocking pipeline call in a worker thread, cancelling on disconnect.

    Parameters
    ----------
    request:
        Incoming request polled for client disconnects.
    config:
        Configuration supplying the poll interval.
    call:
        Pipeline call receiving the cancellation token.

    Returns
    -------
    T
        Result of the pipeline call.

    Raises
    ------
    Exception
        Whatever the pipeline call raised, unchanged.
    """
    cancel = threading.Event()
    result: T | None = None
    failure: Exception | None = None
    async with anyio.create_task_group() as tg:
        tg.start_soon(_watch_disconnect, request, cancel, config.disconnect_poll_seconds)
        try:
            result = await anyio.to_thread.run_sync(call, cancel)
        except Exception as exc:  # noqa: BLE001 - re-raised below
            failure = exc
        finally:
            tg.cancel_scope.cancel()
    # Raised outside the task group so callers see the original exception type.
    if failure is not None:
        raise failure
    if result is None:
        message = "Pipeline call returned no result"
        raise errors.service_unavailable(message)
    return result


def build_advocates_router() -> APIRouter:
    """
    Construct the router for advocate listing endpoints.

    Returns
    -------
    APIRouter
        Router exposing listing, lookup and distinct-value endpoints.
    """
    router = APIRouter(prefix=API_PREFIX, responses=_ERROR_RESPONSES)

    @router.get("", response_model=AdvocateListResponse, summary="List advocates")
    async def list_advocates(
        request: Request, service: ServiceDep, config: ConfigDep
    ) -> AdvocateListResponse:
        """
        Return one filtered, sorted page of advocates.

        Returns
        -------
        AdvocateListResponse
            Page rows plus pagination metadata.
        """
        params = first_values(request.query_params.multi_items())
        return await run_cancellable(
            request, config, lambda cancel: service.list_advocates(params, cancel=cancel)
        )

    @router.get(
        "/by-id",
        response_model=AdvocateResponse,
        summary="Get an advocate by id",
        responses={status.HTTP_404_NOT_FOUND: {"model": ErrorEnvelope}},
    )
    async def get_advocate(
        request: Request, service: ServiceDep, config: ConfigDep
    ) -> AdvocateResponse:
        """
        Return a single advocate.

        Returns
        -------
        AdvocateResponse
            Advocate wrapped in ``data``.
        """
        params = first_values(request.query_params.multi_items())
        return await run_cancellable(
            request, config, lambda cancel: service.get_advocate(params, cancel=cancel)
        )

    @router.get(
        "/by-city", response_model=AdvocateCollectionResponse, summary="List advocates in a city"
    )
    async def list_by_city(
        request: Request, service: ServiceDep, config: ConfigDep
    ) -> AdvocateCollectionResponse:
        """Return every advocate in a city; unknown cities yield an empty list."""
        params = first_values(request.query_params.multi_items())
        return await run_cancellable(
            request, config, lambda cancel: service.list_advocates_by_city(params, cancel=cancel)
        )

    @router.get("/cities", response_model=ValueListResponse, summary="List distinct cities")
    async def list_cities(
        request: Request, service: ServiceDep, config: ConfigDep
    ) -> ValueListResponse:
        """Return distinct cities."""
        return await run_cancellable(
            request, config, lambda cancel: service.list_cities(cancel=cancel)
        )

    @router.get("/degrees", response_model=ValueListResponse, summary="List distinct degrees")
    async def list_degrees(
        request: Request, service: ServiceDep, config: ConfigDep
    ) -> ValueListResponse:
        """Return distinct degrees."""
        return await run_cancellable(
            request, config, lambda cancel: service.list_degrees(cancel=cancel)
        )

    return router


def build_health_router() -> APIRouter:
    """
    Construct the router for health endpoints.

    Returns
    -------
    APIRouter
        Router exposing the health probe.
    """
    router = APIRouter()

    @router.get(HEALTH_PATH, response_model=HealthResponse, summary="Health probe")
    async def health(service: ServiceDep) -> HealthResponse:
        """
        Report store connectivity and limits.

        Returns
        -------
        HealthResponse
            Status, read-only flag and limits.
        """
        return await anyio.to_thread.run_sync(service.health)

    return router


def register_routes(app: FastAPI) -> None:
    """Wire all API routes onto the provided FastAPI application."""
    app.include_router(build_advocates_router())
    app.include_router(build_health_router())


def _open_configured_gateway(config: ServingConfig) -> StorageGateway:
    if config.read_only:
        return open_gateway(StorageConfig.for_readonly(config.db_path))
    return open_gateway(StorageConfig.for_seed(config.db_path))


def create_app(
    *,
    config_loader: Callable[[], ServingConfig] = load_api_config,
    backend_factory: Callable[..., BackendResource] = create_backend_resource,
    gateway: StorageGateway | None = None,
) -> FastAPI:
    """
    Build the FastAPI application with configured lifecycle and routes.

    Parameters
    ----------
    config_loader:
        Factory for loading application configuration.
    backend_factory:
        Factory that yields a backend resource for the given configuration.
    gateway:
        Optional StorageGateway; opened from the configuration when omitted.

    Returns
    -------
    FastAPI
        Configured FastAPI instance.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        config = config_loader()
        gw = gateway if gateway is not None else _open_configured_gateway(config)
        backend_resource = backend_factory(config, gateway=gw)
        app.state.config = config
        app.state.service = backend_resource.service
        LOG.info(
            "Advocate API ready db_path=%s read_only=%s max_rows=%s",
            config.db_path,
            config.read_only,
            config.max_rows_per_call,
        )
        try:
            yield
        finally:
            backend_resource.close()

    app = FastAPI(
        title="Advocate Directory API",
        description="Filtered, sorted, paginated advocate listings over DuckDB.",
        version="0.1.0",
        lifespan=lifespan,
    )

    install_exception_handlers(app)
    install_logging_middleware(app)
    register_routes(app)
    return app


app = create_app()
