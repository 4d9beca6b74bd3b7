"""The HTTP application: routes, health check, OpenAPI document and server command."""

from __future__ import annotations

import argparse
import logging
import sys
import time
from collections.abc import Sequence
from dataclasses import asdict, dataclass
from http import HTTPStatus
from typing import Any

from flask import Flask, Response, current_app, g, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from rwebapi.config import load_settings
from rwebapi.db import AppState, init_db, ping
from rwebapi.errors import ApiError

log = logging.getLogger(__name__)

_STATE_KEY = "rwebapi_state"
_API_TITLE = "R-Web API Service"
_API_DESCRIPTION = "R-Web REST API documentation"
_SERVER_DESCRIPTION = "Local development server"

_REDOC_PAGE = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{title}</title></head>
<body>
<redoc spec-url="{spec_url}"></redoc>
<script src="{script}"></script>
</body>
</html>
"""

_SCALAR_PAGE = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{title}</title></head>
<body>
<script id="api-reference" data-url="{spec_url}"></script>
<script src="{script}"></script>
</body>
</html>
"""


@dataclass(frozen=True)
class HealthResponse:
    """Body of the health check."""

    status: str
    version: str
    environment: str
    database: str

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


def health_check(state: AppState) -> tuple[HealthResponse, HTTPStatus]:
    """Ping the database and report the service's health with its HTTP status."""
    application = state.config.application
    try:
        ping(state.db)
    except SQLAlchemyError:
        return (
            HealthResponse("unhealthy", application.api_version, application.environment,
                           "disconnected"),
            HTTPStatus.SERVICE_UNAVAILABLE,
        )
    return (
        HealthResponse("healthy", application.api_version, application.environment, "connected"),
        HTTPStatus.OK,
    )


def build_openapi_spec(api_version: str, base_url: str) -> dict[str, Any]:
    """Return the OpenAPI document describing the service."""
    health_ref = {"$ref": "#/components/schemas/HealthResponse"}
    return {
        "openapi": "3.0.3",
        "info": {
            "title": _API_TITLE,
            "version": api_version,
            "description": _API_DESCRIPTION,
        },
        "servers": [{"url": base_url, "description": _SERVER_DESCRIPTION}],
        "paths": {
            "/api/v1/health": {
                "get": {
                    "tags": ["health"],
                    "summary": "Health check endpoint",
                    "description": "Check if the API and database are healthy",
                    "operationId": "health_check",
                    "responses": {
                        "200": {
                            "description": "The service and its database are healthy",
                            "content": {"application/json": {"schema": health_ref}},
                        },
                        "503": {
                            "description": "The database cannot be reached",
                            "content": {"application/json": {"schema": health_ref}},
                        },
                    },
                }
            }
        },
        "components": {
            "schemas": {
                "HealthResponse": {
                    "title": "HealthResponse",
                    "type": "object",
                    "required": ["database", "environment", "status", "version"],
                    "properties": {
                        "status": {"type": "string"},
                        "version": {"type": "string"},
                        "environment": {"type": "string"},
                        "database": {"type": "string"},
                    },
                }
            }
        },
        "tags": [{"name": "health"}],
    }


def _state() -> AppState:
    return current_app.extensions[_STATE_KEY]


def _register_v1(app: Flask) -> None:
    @app.get("/api/v1/health")
    def health() -> tuple[Response, int]:
        body, status = health_check(_state())
        return jsonify(body.to_dict()), int(status)


def _register_docs(app: Flask, spec: dict[str, Any]) -> None:
    @app.get("/openapi.json")
    def openapi() -> Response:
        return jsonify(spec)

    @app.get("/redoc")
    def redoc() -> Response:
        page = _REDOC_PAGE.format(
            title=_API_TITLE, spec_url="/openapi.json", script=app.config["REDOC_SCRIPT_URL"]
        )
        return Response(page, mimetype="text/html")

    @app.get("/scalar")
    def scalar() -> Response:
        page = _SCALAR_PAGE.format(
            title=_API_TITLE, spec_url="/openapi.json", script=app.config["SCALAR_SCRIPT_URL"]
        )
        return Response(page, mimetype="text/html")


def _register_middleware(app: Flask) -> None:
    @app.before_request
    def start_timer() -> None:
        g.request_started = time.perf_counter()

    @app.after_request
    def cors_and_log(response: Response) -> Response:
        origin = request.headers.get("Origin")
        if origin:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.vary.add("Origin")
            if request.method == "OPTIONS":
                wanted_method = request.headers.get("Access-Control-Request-Method")
                if wanted_method:
                    response.headers["Access-Control-Allow-Methods"] = wanted_method
                wanted_headers = request.headers.get("Access-Control-Request-Headers")
                if wanted_headers:
                    response.headers["Access-Control-Allow-Headers"] = wanted_headers
        started = g.get("request_started")
        elapsed = time.perf_counter() - started if started is not None else 0.0
        log.info(
            '%s "%s %s %s" %s %s %.6f',
            request.remote_addr or "-",
            request.method,
            request.full_path.rstrip("?"),
            request.environ.get("SERVER_PROTOCOL", "HTTP/1.1"),
            response.status_code,
            response.calculate_content_length() or "-",
            elapsed,
        )
        return response

    @app.errorhandler(ApiError)
    def api_error(error: ApiError) -> tuple[Response, int]:
        status, body = error.to_response()
        return jsonify(body), status


def create_app(state: AppState) -> Flask:
    """Build the Flask application serving the API for ``state``."""
    app = Flask(__name__)
    app.config.setdefault("REDOC_SCRIPT_URL", "/static/redoc.standalone.js")
    app.config.setdefault("SCALAR_SCRIPT_URL", "/static/scalar.standalone.js")
    app.extensions[_STATE_KEY] = state

    base_url = f"http://{state.config.get_bind_address()}"
    spec = build_openapi_spec(state.config.application.api_version, base_url)

    _register_middleware(app)
    _register_v1(app)
    _register_docs(app, spec)
    return app


def main(argv: Sequence[str] | None = None) -> int:
    """Start the HTTP server with settings from the environment."""
    argparse.ArgumentParser(prog="rwebapi-server", description="Run the API server.").parse_args(
        argv
    )
    logging.basicConfig(level=logging.INFO)
    log.info("Starting r-web server...")

    try:
        settings = load_settings()
    except (ValueError, OSError) as err:
        print(f"Failed to read configuration: {err}", file=sys.stderr)
        return 1

    log.info("Environment: %s", settings.application.environment)
    log.info("Connecting to database...")
    try:
        engine = init_db(settings)
    except (SQLAlchemyError, ImportError) as err:
        print(f"Failed to connect to database: {err}", file=sys.stderr)
        return 1

    state = AppState(db=engine, config=settings)
    app = create_app(state)
    log.info("Starting HTTP server at http://%s", settings.get_bind_address())
    try:
        app.run(host=settings.application.host, port=settings.application.port)
    finally:
        engine.dispose()
    return 0