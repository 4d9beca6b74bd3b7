from http import HTTPStatus
from pathlib import Path

import pytest
from sqlalchemy import create_engine

from rwebapi.app import HealthResponse, build_openapi_spec, create_app, health_check
from rwebapi.config import ApplicationSettings, DatabaseSettings, Settings
from rwebapi.db import AppState
from rwebapi.errors import BadRequest, InternalServerError, NotFound


def _settings() -> Settings:
    password = "password"
    return Settings(
        database=DatabaseSettings(
            host="localhost",
            port=5432,
            name="rust_api_db",
            username="user",
            password=password,
            max_connections=10,
            min_connections=5,
        ),
        application=ApplicationSettings(
            host="127.0.0.1", port=8080, environment="development", api_version="v1"
        ),
    )


@pytest.fixture
def healthy_state(tmp_path: Path):
    engine = create_engine(f"sqlite:///{tmp_path / 'app.db'}")
    yield AppState(db=engine, config=_settings())
    engine.dispose()


@pytest.fixture
def broken_state(tmp_path: Path):
    engine = create_engine(f"sqlite:///{tmp_path / 'missing' / 'app.db'}")
    yield AppState(db=engine, config=_settings())
    engine.dispose()


def test_health_check_healthy(healthy_state):
    body, status = health_check(healthy_state)
    assert status == HTTPStatus.OK
    assert body == HealthResponse("healthy", "v1", "development", "connected")


def test_health_check_unhealthy(broken_state):
    body, status = health_check(broken_state)
    assert status == HTTPStatus.SERVICE_UNAVAILABLE
    assert body.status == "unhealthy"
    assert body.database == "disconnected"


def test_health_endpoint(healthy_state):
    client = create_app(healthy_state).test_client()
    response = client.get("/api/v1/health")
    assert response.status_code == HTTPStatus.OK
    assert response.get_json() == {
        "status": "healthy",
        "version": "v1",
        "environment": "development",
        "database": "connected",
    }


def test_health_endpoint_unavailable(broken_state):
    client = create_app(broken_state).test_client()
    response = client.get("/api/v1/health")
    assert response.status_code == HTTPStatus.SERVICE_UNAVAILABLE
    assert response.get_json()["status"] == "unhealthy"


def test_unknown_route_is_404(healthy_state):
    client = create_app(healthy_state).test_client()
    assert client.get("/api/v2/health").status_code == HTTPStatus.NOT_FOUND


def test_openapi_spec_contents():
    spec = build_openapi_spec("v9", "http://localhost:1234")
    assert spec["info"]["title"] == "R-Web API Service"
    assert spec["info"]["version"] == "v9"
    assert spec["info"]["description"] == "R-Web REST API documentation"
    assert spec["servers"] == [
        {"url": "http://localhost:1234", "description": "Local development server"}
    ]
    operation = spec["paths"]["/api/v1/health"]["get"]
    assert operation["tags"] == ["health"]
    assert operation["summary"] == "Health check endpoint"


def test_openapi_endpoint_uses_bind_address(healthy_state):
    client = create_app(healthy_state).test_client()
    spec = client.get("/openapi.json").get_json()
    assert spec["servers"][0]["url"] == "http://127.0.0.1:8080"
    assert set(spec["components"]["schemas"]["HealthResponse"]["properties"]) == {
        "status",
        "version",
        "environment",
        "database",
    }


@pytest.mark.parametrize("path", ["/redoc", "/scalar"])
def test_docs_pages_reference_spec(healthy_state, path):
    client = create_app(healthy_state).test_client()
    response = client.get(path)
    assert response.status_code == HTTPStatus.OK
    assert response.mimetype == "text/html"
    assert "/openapi.json" in response.get_data(as_text=True)


def test_cors_echoes_origin(healthy_state):
    client = create_app(healthy_state).test_client()
    response = client.get("/api/v1/health", headers={"Origin": "http://example.com"})
    assert response.headers["Access-Control-Allow-Origin"] == "http://example.com"


def test_cors_preflight(healthy_state):
    client = create_app(healthy_state).test_client()
    response = client.options(
        "/api/v1/health",
        headers={
            "Origin": "http://example.com",
            "Access-Control-Request-Method": "GET",
            "Access-Control-Request-Headers": "X-Custom",
        },
    )
    assert response.headers["Access-Control-Allow-Origin"] == "http://example.com"
    assert response.headers["Access-Control-Allow-Methods"] == "GET"
    assert response.headers["Access-Control-Allow-Headers"] == "X-Custom"


@pytest.mark.parametrize(
    ("error", "status", "body"),
    [
        (NotFound("no such user"), HTTPStatus.NOT_FOUND, "no such user"),
        (BadRequest("bad input"), HTTPStatus.BAD_REQUEST, "bad input"),
        (InternalServerError("boom"), HTTPStatus.INTERNAL_SERVER_ERROR, "Internal server error"),
    ],
)
def test_api_errors_become_responses(healthy_state, error, status, body):
    app = create_app(healthy_state)

    def failing():
        raise error

    app.add_url_rule("/fail", "fail", failing)
    response = app.test_client().get("/fail")
    assert response.status_code == status
    assert response.get_json() == body