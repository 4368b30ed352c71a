"""HTTP API for the sample service: welcome, health and users endpoints."""

from __future__ import annotations

import logging
import time
from typing import Callable, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import ServiceSettings
from .models import isoformat, utcnow
from .users import UserStore, UserValidationError

logger = logging.getLogger("sampleapp.service")

WELCOME_MESSAGE = "Welcome to Buildkite Sample App! 🎉"

_PROCESS_STARTED = time.monotonic()

_SECURITY_HEADERS: Dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
    "X-XSS-Protection": "0",
}


class WelcomeResponse(BaseModel):
    message: str
    version: str
    environment: str
    timestamp: str


class HealthResponse(BaseModel):
    status: str
    uptime: float
    timestamp: str
    service: str


def _request_path(request: Request) -> str:
    path = request.url.path
    query = request.url.query
    return f"{path}?{query}" if query else path


def _route_not_found(request: Request) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"error": "Route not found", "path": _request_path(request)},
    )


async def _read_json_object(request: Request) -> Dict[str, object]:
    try:
        payload = await request.json()
    except ValueError:
        return {}
    if not isinstance(payload, dict):
        return {}
    return payload


def create_app(
    *,
    settings: Optional[ServiceSettings] = None,
    store: Optional[UserStore] = None,
    started_at: Optional[float] = None,
    monotonic: Callable[[], float] = time.monotonic,
) -> FastAPI:
    """Create the sample service application.

    ``store`` defaults to a freshly seeded :class:`UserStore`; ``started_at``
    is the monotonic origin used for the reported uptime and defaults to the
    moment this module was imported.
    """

    resolved_settings = settings or ServiceSettings.from_env()
    user_store = store if store is not None else UserStore()
    origin = _PROCESS_STARTED if started_at is None else started_at

    app = FastAPI(
        title="Buildkite Sample App",
        version=resolved_settings.version,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.settings = resolved_settings
    app.state.users = user_store

    @app.middleware("http")
    async def _secure_responses(request: Request, call_next):
        try:
            response = await call_next(request)
        except Exception:
            logger.exception("Unhandled error while serving %s %s", request.method, request.url.path)
            response = JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={"error": "Internal server error"},
            )
        for header, value in _SECURITY_HEADERS.items():
            response.headers.setdefault(header, value)
        return response

    # Registered last so it wraps every response, errors included.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        # Unknown methods on known paths are reported as missing routes too.
        if exc.status_code in (status.HTTP_404_NOT_FOUND, status.HTTP_405_METHOD_NOT_ALLOWED):
            return _route_not_found(request)
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})

    @app.get("/", response_model=WelcomeResponse)
    async def index() -> WelcomeResponse:
        return WelcomeResponse(
            message=WELCOME_MESSAGE,
            version=resolved_settings.version,
            environment=resolved_settings.environment,
            timestamp=isoformat(utcnow()),
        )

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(
            status="healthy",
            uptime=max(0.0, monotonic() - origin),
            timestamp=isoformat(utcnow()),
            service=resolved_settings.service_name,
        )

    @app.get("/api/users")
    async def list_users():
        return [user.to_dict() for user in user_store.list()]

    @app.post("/api/users", status_code=status.HTTP_201_CREATED)
    async def create_user(request: Request):
        payload = await _read_json_object(request)
        try:
            user = user_store.create(payload.get("name"), payload.get("email"))
        except UserValidationError as exc:
            return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": str(exc)})
        logger.info("Created user %s <%s>", user.id, user.email)
        return user.to_dict()

    return app


__all__ = ["WELCOME_MESSAGE", "create_app"]
