"""Shared backend wiring for the HTTP surface and the CLI."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from advocatedir.config.serving_models import ServingConfig
from advocatedir.serving.protocols import AdvocateStore
from advocatedir.services.executor import QueryExecutor
from advocatedir.services.query_service import AdvocateQueryService, ServiceObservability
from advocatedir.storage.gateway import StorageGateway
from advocatedir.storage.repositories.advocates import AdvocateRepository

__all__ = [
    "BackendResource",
    "build_backend_resource",
    "build_query_service",
    "get_observability_from_config",
]


@dataclass
class BackendResource:
    """Bundle of store, service, and cleanup hook."""

    store: AdvocateStore
    service: AdvocateQueryService
    close: Callable[[], None]


def get_observability_from_config(cfg: ServingConfig) -> ServiceObservability | None:
    """
    Derive service observability settings from configuration flags.

    Returns
    -------
    ServiceObservability | None
        Enabled observability config when toggled on; otherwise ``None``.
    """
    if not cfg.enable_observability:
        return None
    return ServiceObservability(enabled=True)


def build_query_service(
    store: AdvocateStore,
    cfg: ServingConfig,
    *,
    transport: str = "local",
) -> AdvocateQueryService:
    """
    Construct the query service over an arbitrary record store.

    Parameters
    ----------
    store:
        Record store implementation (DuckDB repository or a test fake).
    cfg:
        Serving configuration supplying limits and flags.
    transport:
        Label recorded by observability.

    Returns
    -------
    AdvocateQueryService
        Service ready to answer listing and lookup calls.
    """
    executor = QueryExecutor(store=store, max_rows=cfg.max_rows_per_call)
    return AdvocateQueryService(
        executor=executor,
        strict_sort=cfg.strict_sort,
        read_only=cfg.read_only,
        transport=transport,
        observability=get_observability_from_config(cfg),
    )


def build_backend_resource(
    cfg: ServingConfig,
    *,
    gateway: StorageGateway,
    transport: str = "http",
) -> BackendResource:
    """
    Construct the DuckDB-backed store and service with unified wiring.

    Parameters
    ----------
    cfg:
        Validated serving configuration.
    gateway:
        StorageGateway supplying the DuckDB connection.
    transport:
        Label recorded by observability.

    Returns
    -------
    BackendResource
        Store, service, and a close hook that releases the gateway.
    """
    store = AdvocateRepository(gateway=gateway)
    service = build_query_service(store, cfg, transport=transport)
    return BackendResource(store=store, service=service, close=gateway.close)
