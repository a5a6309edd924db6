import logging
import random
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import settings
from .database import create_tables
from .exceptions import (
    AutomationAccessError,
    ConfigurationError,
    IntegrationError,
    LoopReviewsError,
    WebhookVerificationError,
)
from .routers.account import router as account_router
from .routers.auth import router as auth_router
from .routers.automation import router as automation_router
from .routers.billing import router as billing_router
from .routers.campaigns import router as campaigns_router
from .routers.dashboard import router as dashboard_router
from .routers.google_places import router as google_places_router
from .routers.health import router as health_router
from .routers.integrations import router as integrations_router
from .routers.onboarding import router as onboarding_router
from .routers.public import router as public_router
from .routers.review_link import router as review_link_router
from .routers.review_management import router as review_management_router
from .routers.review_requests import router as review_requests_router
from .routers.reviews import router as reviews_router
from .routers.support import router as support_router
from .routers.templates import router as templates_router
from .routers.tracking import router as tracking_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await create_tables()
    logger.info(f"{settings.app_name} started ({settings.environment})")
    yield


app = FastAPI(
    title="Loop Reviews API",
    description="""
# Loop Reviews API

Multi-tenant review collection for small businesses: send review requests,
track how customers move through the review page and follow up automatically.

## Authentication

Sign in with `POST /api/auth/signin`. The `session` cookie it sets
authenticates every other `/api/...` call; public review pages and webhooks
need no session.

## Errors

Every error has the shape `{"success": false, "error": "<message>"}`.

## Rate limits

- Click tracking: 10 events per minute per IP and customer id

## Operations

- **Health Check**: `/health`
- **Metrics**: `/metrics` (requires `X-Metrics-Token` outside debug)
""",
    version="1.0.0",
    contact={
        "name": "Loop Reviews Support",
        "email": settings.support_email,
    },
    lifespan=lifespan,
)

# Include routers
app.include_router(health_router)
app.include_router(auth_router)
app.include_router(tracking_router)
app.include_router(reviews_router)
app.include_router(review_requests_router)
app.include_router(review_link_router)
app.include_router(public_router)
app.include_router(automation_router)
app.include_router(campaigns_router)
app.include_router(templates_router)
app.include_router(review_management_router)
app.include_router(dashboard_router)
app.include_router(integrations_router)
app.include_router(google_places_router)
app.include_router(billing_router)
app.include_router(account_router)
app.include_router(onboarding_router)
app.include_router(support_router)

# CORS for the web client; credentials so the session cookie travels
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Prometheus metrics
REQUEST_COUNT = Counter("http_requests_total", "Total HTTP requests", [
                        "method", "route", "status"])
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2, 5)
)


def error_response(status_code: int, message: str, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message},
        headers=headers,
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return error_response(exc.status_code, message, getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{field}: {first.get('msg')}" if field else first.get("msg")
    else:
        message = "Invalid request"
    return error_response(400, message)


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    logger.error(f"{exc.service} is not configured ({request.url.path})")
    return error_response(500, str(exc))


@app.exception_handler(IntegrationError)
async def integration_error_handler(request: Request, exc: IntegrationError):
    logger.warning(f"{exc.platform} error on {request.url.path}: {exc}")
    return error_response(exc.status_code, str(exc))


@app.exception_handler(WebhookVerificationError)
async def webhook_error_handler(request: Request, exc: WebhookVerificationError):
    return error_response(400, str(exc))


@app.exception_handler(AutomationAccessError)
async def automation_access_handler(request: Request, exc: AutomationAccessError):
    return error_response(403, str(exc))


@app.exception_handler(LoopReviewsError)
async def domain_error_handler(request: Request, exc: LoopReviewsError):
    logger.error(f"Unhandled {type(exc).__name__} on {request.url.path}: {exc}")
    return error_response(500, str(exc))


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return error_response(500, "Internal server error")


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    request_id = str(uuid.uuid4())
    # Lightweight dict log (every request in debug, sampled otherwise)
    if settings.debug or random.random() < settings.log_sample_rate:
        logger.info({
            "event": "request",
            "method": request.method,
            "path": request.url.path,
            "rid": request_id,
        })
    start = time.perf_counter()
    response = await call_next(request)
    REQUEST_LATENCY.observe(time.perf_counter() - start)
    route = getattr(request.scope.get("route"), "path", request.url.path)
    REQUEST_COUNT.labels(method=request.method,
                         route=route, status=response.status_code).inc()
    response.headers["X-Request-ID"] = request_id
    return response


@app.get("/metrics")
async def metrics(request: Request):
    # In dev/debug mode, expose metrics without auth
    if not settings.debug:
        token = request.headers.get("X-Metrics-Token")
        if not settings.metrics_token or token != settings.metrics_token:
            return error_response(403, "Forbidden")
    data = generate_latest()
    return PlainTextResponse(content=data, media_type=CONTENT_TYPE_LATEST)
