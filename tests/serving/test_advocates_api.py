"""HTTP tests for the advocate FastAPI surface."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from types import SimpleNamespace
from typing import Any

import anyio
import pytest
from fastapi.testclient import TestClient

from advocatedir.config.serving_models import ServingConfig
from advocatedir.serving.http.fastapi import create_app, run_cancellable
from advocatedir.serving.models import ValueListResponse
from advocatedir.serving.protocols import CancelToken
from advocatedir.serving.wiring import BackendResource, build_query_service
from advocatedir.services import errors
from advocatedir.services.query_service import AdvocateQueryService
from advocatedir.storage.gateway import MEMORY_PATH, StorageGateway
from tests._helpers.expect import expect_equal, expect_in, expect_length, expect_not_in
from tests._helpers.fakes import FakeAdvocateStore

ADVOCATES = "/api/advocates"


@dataclass
class ExplodingService(AdvocateQueryService):
    """Service whose listing raises an unexpected exception."""

    def list_advocates(self, params: Any, *, cancel: CancelToken | None = None) -> Any:
        message = "duckdb dsn=/srv/secret.duckdb refused"
        raise RuntimeError(message)


def _client_for_store(
    store: FakeAdvocateStore,
    config: ServingConfig,
    *,
    service_factory: Callable[..., AdvocateQueryService] | None = None,
) -> TestClient:
    def _backend(cfg: ServingConfig, *, gateway: StorageGateway) -> BackendResource:
        service = build_query_service(store, cfg, transport="http")
        if service_factory is not None:
            service = service_factory(executor=service.executor)
        return BackendResource(store=store, service=service, close=lambda: None)

    app = create_app(
        config_loader=lambda: config,
        backend_factory=_backend,
        gateway=object(),  # type: ignore[arg-type]
    )
    return TestClient(app, raise_server_exceptions=False)


def test_listing_scenario(api_client: TestClient) -> None:
    """The doctor search in New York returns John Doe and page metadata."""
    response = api_client.get(
        ADVOCATES,
        params={
            "search": "doctor",
            "city": "New York",
            "sortBy": "lastName",
            "sortOrder": "asc",
            "page": "1",
            "limit": "20",
        },
    )
    expect_equal(response.status_code, 200)
    body = response.json()
    expect_length(body["data"], 1)
    expect_equal(body["data"][0]["firstName"], "John")
    expect_equal(body["data"][0]["yearsOfExperience"], 10)
    expect_equal(
        body["pagination"],
        {"page": 1, "limit": 20, "total": 1, "totalPages": 1, "hasNext": False, "hasPrev": False},
    )


def test_repeated_params_keep_first_value(api_client: TestClient) -> None:
    """Repeated query keys use their first occurrence."""
    response = api_client.get(f"{ADVOCATES}?page=2&page=9&limit=3&limit=50")
    expect_equal(response.status_code, 200)
    pagination = response.json()["pagination"]
    expect_equal((pagination["page"], pagination["limit"]), (2, 3))


def test_invalid_limit_envelope(api_client: TestClient) -> None:
    """Validation failures return 400 with an empty data list."""
    response = api_client.get(ADVOCATES, params={"limit": "0"})
    expect_equal(response.status_code, 400)
    body = response.json()
    expect_equal(body["data"], [])
    expect_equal(body["error"], "InvalidParameterError")
    expect_equal(body["code"], "INVALID_PARAMETER")
    expect_equal(body["parameter"], "limit")


def test_crossed_experience_envelope(api_client: TestClient) -> None:
    """Crossed experience bounds are reported on minExperience."""
    response = api_client.get(ADVOCATES, params={"minExperience": "9", "maxExperience": "2"})
    expect_equal(response.status_code, 400)
    body = response.json()
    expect_equal(body["message"], "Minimum experience cannot be greater than maximum experience")
    expect_equal(body["field"], "minExperience")


def test_get_by_id(api_client: TestClient) -> None:
    """An existing id returns the record object."""
    response = api_client.get(f"{ADVOCATES}/by-id", params={"id": "1"})
    expect_equal(response.status_code, 200)
    data = response.json()["data"]
    expect_equal((data["id"], data["lastName"]), (1, "Doe"))
    expect_equal(data["specialties"], ["Primary care doctor referrals", "Anxiety"])


def test_get_by_id_not_found(api_client: TestClient) -> None:
    """Unknown ids return 404 with data null and the id in the message."""
    response = api_client.get(f"{ADVOCATES}/by-id", params={"id": "999"})
    expect_equal(response.status_code, 404)
    body = response.json()
    expect_equal(body["data"], None)
    expect_equal(body["error"], "ResourceNotFoundError")
    expect_in("'999'", body["message"])


@pytest.mark.parametrize("query", ["", "?id=abc", "?id=0"])
def test_get_by_id_invalid(api_client: TestClient, query: str) -> None:
    """Missing or malformed ids return 400 with data null."""
    response = api_client.get(f"{ADVOCATES}/by-id{query}")
    expect_equal(response.status_code, 400)
    body = response.json()
    expect_equal(body["data"], None)
    expect_equal(body["parameter"], "id")


def test_by_city(api_client: TestClient) -> None:
    """By-city lists matching advocates and rejects disallowed city text."""
    ok = api_client.get(f"{ADVOCATES}/by-city", params={"city": "Chicago"})
    expect_equal(ok.status_code, 200)
    expect_equal([row["lastName"] for row in ok.json()["data"]], ["Doctorow", "Park"])

    bad = api_client.get(f"{ADVOCATES}/by-city", params={"city": "New York!"})
    expect_equal(bad.status_code, 400)
    expect_equal(bad.json()["data"], [])
    expect_equal(bad.json()["parameter"], "city")


def test_distinct_endpoints(api_client: TestClient) -> None:
    """Cities and degrees endpoints return sorted strings."""
    cities = api_client.get(f"{ADVOCATES}/cities").json()
    degrees = api_client.get(f"{ADVOCATES}/degrees").json()
    expect_equal(cities, {"data": ["Chicago", "Los Angeles", "New York", "San Francisco"]})
    expect_equal(degrees, {"data": ["LCSW", "MD", "MSW", "PhD"]})


def test_health(api_client: TestClient) -> None:
    """Health reports status, read-only flag and limits."""
    response = api_client.get("/health")
    expect_equal(response.status_code, 200)
    expect_equal(
        response.json(),
        {"status": "ok", "readOnly": True, "limits": {"maxLimit": 100, "maxRowsPerCall": 500}},
    )


def test_store_failure_is_generic_database_error(memory_config: ServingConfig) -> None:
    """Driver failures reach callers only as a generic Database error."""
    store = FakeAdvocateStore(failure=RuntimeError("IO Error: /srv/secret.duckdb"))
    with _client_for_store(store, memory_config) as client:
        listing = client.get(ADVOCATES)
        health = client.get("/health")
    expect_equal(listing.status_code, 500)
    body = listing.json()
    expect_equal(body["data"], [])
    expect_equal(body["error"], "DatabaseError")
    expect_not_in("secret", body["message"])
    expect_equal(health.status_code, 500)
    expect_equal(health.json()["data"], None)
    expect_equal(health.json()["code"], "DATABASE_CONNECTION_ERROR")


def test_unexpected_exception_hides_details(memory_config: ServingConfig) -> None:
    """Unhandled exceptions become a 500 envelope without internal text."""
    with _client_for_store(
        FakeAdvocateStore(), memory_config, service_factory=ExplodingService
    ) as client:
        response = client.get(ADVOCATES)
    expect_equal(response.status_code, 500)
    body = response.json()
    expect_equal(body["error"], "DatabaseError")
    expect_equal(body["message"], errors.GENERIC_FAILURE_MESSAGE)
    expect_equal(body["data"], [])


def test_unexpected_exception_details_when_enabled() -> None:
    """Exception text is surfaced only when explicitly enabled."""
    config = ServingConfig(db_path=MEMORY_PATH, expose_error_details=True)
    with _client_for_store(
        FakeAdvocateStore(), config, service_factory=ExplodingService
    ) as client:
        response = client.get(ADVOCATES)
    expect_equal(response.status_code, 500)
    expect_in("refused", response.json()["message"])


def test_uninitialized_service_is_unavailable(
    seeded_gateway: StorageGateway, memory_config: ServingConfig
) -> None:
    """Requests served before startup report 503."""
    app = create_app(config_loader=lambda: memory_config, gateway=seeded_gateway)
    client = TestClient(app, raise_server_exceptions=False)
    response = client.get(ADVOCATES)
    expect_equal(response.status_code, 503)
    expect_equal(response.json()["error"], "ServiceUnavailableError")
    health = client.get("/health")
    expect_equal(health.status_code, 503)
    expect_equal(health.json()["data"], None)


@dataclass
class _FakeRequest:
    """Request stand-in exposing only what disconnect polling needs."""

    disconnected: bool
    url: SimpleNamespace

    async def is_disconnected(self) -> bool:
        return self.disconnected


def _wait_for_cancel(token: CancelToken) -> ValueListResponse:
    deadline = time.monotonic() + 5.0
    while time.monotonic() < deadline:
        if token.is_set():
            raise errors.request_cancelled()
        time.sleep(0.01)
    return ValueListResponse(data=["finished"])


def test_run_cancellable_signals_disconnect(memory_config: ServingConfig) -> None:
    """A disconnected client sets the token and the call's error propagates unchanged."""
    request = _FakeRequest(disconnected=True, url=SimpleNamespace(path="/api/advocates"))

    async def _main() -> None:
        await run_cancellable(request, memory_config, _wait_for_cancel)  # type: ignore[arg-type]

    with pytest.raises(errors.AppError) as excinfo:
        anyio.run(_main)
    expect_equal(excinfo.value.code, "REQUEST_CANCELLED")


def test_run_cancellable_returns_result(memory_config: ServingConfig) -> None:
    """Connected clients receive the call's result and the token stays clear."""
    request = _FakeRequest(disconnected=False, url=SimpleNamespace(path="/api/advocates"))
    seen: list[bool] = []

    def _call(token: CancelToken) -> ValueListResponse:
        seen.append(token.is_set())
        return ValueListResponse(data=["ok"])

    async def _main() -> ValueListResponse:
        return await run_cancellable(request, memory_config, _call)  # type: ignore[arg-type]

    result = anyio.run(_main)
    expect_equal(result.data, ["ok"])
    expect_equal(seen, [False])
