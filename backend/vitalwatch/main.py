from contextlib import asynccontextmanager
import logging
import uuid

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from vitalwatch.api import (
    alerts,
    devices,
    health,
    predictions,
    readings,
    realtime,
    thresholds,
)
from vitalwatch.api.deps import require_api_key
from vitalwatch.config import settings
from vitalwatch.database import close_db, init_db
from vitalwatch.errors import VitalWatchError
from vitalwatch.logging import configure_logging, request_id_var
from vitalwatch.services.monitoring.alerts import drain_notifications

configure_logging()
logger = logging.getLogger("vitalwatch")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    logger.info("Starting VitalWatch API (storage=%s)", settings.storage_backend)
    try:
        await init_db()
        logger.info("Database initialized")
    except Exception:
        logger.exception("Failed to initialize database")
        raise

    yield

    logger.info("Shutting down VitalWatch API")
    try:
        await drain_notifications()
    except Exception:
        logger.exception("Error finishing pending notifications")
    try:
        await close_db()
        logger.info("Database connections closed")
    except Exception:
        logger.exception("Error closing database")
    logger.info("VitalWatch API shutdown complete")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
    # VitalWatch API

    Real-time vital-sign monitoring for remote patients.

    ## Features

    - **Ingestion** - Validate and store readings from wearable devices
    - **Thresholds** - Per-patient warning and critical bands
    - **Alerts** - Deduplicated alerts with acknowledge/resolve/escalate
    - **Risk** - Rule-based deterioration scoring and anomaly detection
    - **Live updates** - WebSocket fan-out to dashboards
    """,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

@app.middleware("http")
async def add_request_id(request: Request, call_next):
    request_id = request.headers.get("X-Request-Id", str(uuid.uuid4()))
    request_id_var.set(request_id)
    response = await call_next(request)
    response.headers.setdefault("X-Request-Id", request_id)
    return response

@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    response.headers.setdefault("Permissions-Policy", "geolocation=(), microphone=(), camera=()")
    response.headers.setdefault(
        "Content-Security-Policy",
        "default-src 'none'; frame-ancestors 'none'; base-uri 'none'",
    )
    if not settings.debug:
        response.headers.setdefault(
            "Strict-Transport-Security",
            "max-age=63072000; includeSubDomains; preload",
        )
    return response

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

app.include_router(health.router)
app.include_router(realtime.router)
for module in (readings, alerts, devices, predictions, thresholds):
    app.include_router(
        module.router,
        prefix=settings.api_prefix,
        dependencies=[Depends(require_api_key)],
    )


def _error_body(message, status_code: int, error_type: str, **extra) -> dict:
    return {
        "error": {
            "message": message,
            "status_code": status_code,
            "type": error_type,
            **extra,
            "request_id": request_id_var.get(),
        }
    }


@app.exception_handler(HTTPException)
async def http_exception_handler(_request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(
            exc.detail, exc.status_code, getattr(exc, "error_type", "http_error")
        ),
    )


@app.exception_handler(VitalWatchError)
async def domain_exception_handler(_request: Request, exc: VitalWatchError):
    if exc.status_code >= 500:
        logger.error("Request failed: %s", exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.message, exc.status_code, exc.error_type),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content=_error_body(
            "Validation error", 422, "validation_error", details=[
                {key: value for key, value in error.items() if key != "ctx"}
                for error in exc.errors()
            ],
        ),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(_request: Request, _exc: Exception):
    logger.exception("Unhandled error")
    return JSONResponse(
        status_code=500,
        content=_error_body("Internal server error", 500, "server_error"),
    )
