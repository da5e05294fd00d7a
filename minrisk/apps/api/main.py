from __future__ import annotations

import logging
import time
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.openapi.utils import get_openapi
from fastapi.responses import Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from minrisk.apps.api.errors import (
    http_exception_handler,
    minrisk_error_handler,
    starlette_http_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from minrisk.apps.api.response import API_VERSION, cors_headers
from minrisk.apps.api.routes.ai import router as ai_router
from minrisk.apps.api.routes.health import router as health_router
from minrisk.apps.api.routes.invitations import router as invitations_router
from minrisk.apps.api.routes.owners import router as owners_router
from minrisk.apps.api.routes.users import router as users_router
from minrisk.apps.api.routes.webhooks import router as webhooks_router
from minrisk.core.config import get_settings
from minrisk.core.errors import MinRiskError
from minrisk.core.logging import configure_logging


logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    configure_logging()
    settings = get_settings()
    app = FastAPI(title="MinRisk API")

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):  # type: ignore[override]
        # Preserve incoming request IDs or assign a new one for traceability.
        request_id = request.headers.get("X-Request-Id") or str(uuid4())
        request.state.request_id = request_id
        # Preflight never reaches the routers; every path answers with the fixed CORS set.
        if request.method == "OPTIONS":
            return Response(status_code=200, headers=cors_headers() | {"X-Request-Id": request_id})
        start = time.monotonic()
        response = await call_next(request)
        latency_ms = (time.monotonic() - start) * 1000.0
        logger.info(
            "request_completed method=%s path=%s status=%s latency_ms=%.1f request_id=%s",
            request.method,
            request.url.path,
            response.status_code,
            latency_ms,
            request_id,
        )
        for key, value in cors_headers().items():
            response.headers.setdefault(key, value)
        response.headers.setdefault("X-Request-Id", request_id)
        return response

    @app.exception_handler(MinRiskError)
    async def _minrisk_error_handler(request: Request, exc: MinRiskError):
        return await minrisk_error_handler(request, exc)

    @app.exception_handler(StarletteHTTPException)
    async def _starlette_http_exception_handler(request: Request, exc: StarletteHTTPException):
        return await starlette_http_exception_handler(request, exc)

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):
        return await unhandled_exception_handler(request, exc)

    @app.exception_handler(RequestValidationError)
    async def _validation_exception_handler(request: Request, exc: RequestValidationError):
        return await validation_exception_handler(request, exc)

    @app.exception_handler(HTTPException)
    async def _http_exception_handler(request: Request, exc: HTTPException):
        return await http_exception_handler(request, exc)

    # Mount versioned v1 API routes.
    app.include_router(health_router, prefix=f"/{API_VERSION}")
    app.include_router(invitations_router, prefix=f"/{API_VERSION}")
    # Organization user administration shares the invitation authorization policy.
    app.include_router(users_router, prefix=f"/{API_VERSION}")
    app.include_router(ai_router, prefix=f"/{API_VERSION}")
    app.include_router(owners_router, prefix=f"/{API_VERSION}")
    app.include_router(webhooks_router, prefix=f"/{API_VERSION}")

    def custom_openapi() -> dict:
        # Inject bearer auth into the OpenAPI schema.
        if app.openapi_schema:
            return app.openapi_schema
        schema = get_openapi(
            title="MinRisk API",
            version=API_VERSION,
            routes=app.routes,
        )
        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes["BearerAuth"] = {"type": "http", "scheme": "bearer"}
        security_schemes["SessionToken"] = {
            "type": "apiKey",
            "in": "header",
            "name": settings.auth_custom_token_header,
        }
        public_paths = {f"/{API_VERSION}/health", f"/{API_VERSION}/webhooks/identity"}
        for path, operations in schema.get("paths", {}).items():
            if path in public_paths:
                continue
            for operation in operations.values():
                operation.setdefault("security", [{"SessionToken": []}, {"BearerAuth": []}])
        app.openapi_schema = schema
        return app.openapi_schema

    app.openapi = custom_openapi

    return app


app = create_app()
