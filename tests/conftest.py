"""Pytest configuration for the advocate directory test suite."""

from __future__ import annotations

from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from advocatedir.config.serving_models import ServingConfig
from advocatedir.serving.http.fastapi import create_app
from advocatedir.serving.wiring import build_query_service
from advocatedir.services.query_service import AdvocateQueryService
from advocatedir.storage.gateway import MEMORY_PATH, StorageGateway, open_memory_gateway
from advocatedir.storage.repositories.advocates import AdvocateRepository
from tests._helpers.seed import seed_advocates


@pytest.fixture
def memory_config() -> ServingConfig:
    """
    Serving configuration pointing at an in-memory database.

    Returns
    -------
    ServingConfig
        Configuration with default limits.
    """
    return ServingConfig(db_path=MEMORY_PATH, read_only=True)


@pytest.fixture
def seeded_gateway() -> Iterator[StorageGateway]:
    """
    Provide an in-memory gateway holding the sample advocates.

    Yields
    ------
    StorageGateway
        Gateway with schema applied and rows inserted.
    """
    gateway = open_memory_gateway()
    seed_advocates(gateway)
    try:
        yield gateway
    finally:
        gateway.close()


@pytest.fixture
def repository(seeded_gateway: StorageGateway) -> AdvocateRepository:
    """
    Repository bound to the seeded gateway.

    Returns
    -------
    AdvocateRepository
        DuckDB-backed store.
    """
    return AdvocateRepository(gateway=seeded_gateway)


@pytest.fixture
def query_service(
    repository: AdvocateRepository, memory_config: ServingConfig
) -> AdvocateQueryService:
    """
    Query service over the seeded DuckDB store.

    Returns
    -------
    AdvocateQueryService
        Service wired the same way the API wires it.
    """
    return build_query_service(repository, memory_config)


@pytest.fixture
def api_client(
    seeded_gateway: StorageGateway, memory_config: ServingConfig
) -> Iterator[TestClient]:
    """
    TestClient over the FastAPI app backed by the seeded gateway.

    Yields
    ------
    TestClient
        Client with the lifespan entered; server exceptions become 500 responses.
    """
    app = create_app(config_loader=lambda: memory_config, gateway=seeded_gateway)
    with TestClient(app, raise_server_exceptions=False) as client:
        yield client
