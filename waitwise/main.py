"""
Waitwise - appointment slots and walk-in queue for barbershops.
Main FastAPI application entry point.
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from waitwise.config import get_settings
from waitwise.api.router import api_router
from waitwise.errors import WaitwiseError
from waitwise.utils.logging import (
    configure_structured_logging,
    generate_correlation_id,
    set_correlation_id,
)

logger = logging.getLogger("waitwise")


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Injects a correlation ID into every request context and response header."""

    async def dispatch(self, request: Request, call_next) -> Response:
        cid = request.headers.get("X-Correlation-ID") or generate_correlation_id()
        set_correlation_id(cid)
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = cid
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    settings = get_settings()
    logger.info("Waitwise starting up (env=%s)", settings.app_env)

    if not (settings.twilio_account_sid and settings.twilio_auth_token):
        logger.warning(
            "TWILIO_ACCOUNT_SID / TWILIO_AUTH_TOKEN not set - "
            "next-in-line SMS will fail until configured."
        )

    # Initialize Sentry if configured
    if settings.sentry_dsn:
        try:
            import sentry_sdk
            sentry_sdk.init(
                dsn=settings.sentry_dsn,
                traces_sample_rate=0.1,
                environment=settings.app_env,
            )
            logger.info("Sentry initialized")
        except Exception as e:
            logger.warning("Sentry initialization failed: %s", str(e))

    yield

    from waitwise.utils.redis_client import close_redis
    await close_redis()
    logger.info("Waitwise shutdown complete")


async def waitwise_error_handler(request: Request, exc: WaitwiseError) -> JSONResponse:
    """Render domain errors as {"error": message} with their status code."""
    if exc.status_code >= 500:
        logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc.message)
    else:
        logger.info("%s on %s: %s", type(exc).__name__, request.url.path, exc.message)
    headers = {"Retry-After": "1"} if exc.retryable else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message},
        headers=headers,
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render malformed request bodies as a 400 {"error": message}."""
    message = "Invalid request"
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(
            part for part in first.get("loc", ()) if isinstance(part, str) and part != "body"
        )
        detail = first.get("msg", "invalid value")
        message = f"Invalid {field}: {detail}" if field else f"Invalid request: {detail}"
    logger.info("Invalid request on %s: %s", request.url.path, message)
    return JSONResponse(status_code=400, content={"error": message})


def create_app() -> FastAPI:
    """Application factory."""
    settings = get_settings()

    # Configure structured JSON logging with correlation IDs
    configure_structured_logging(settings.log_level)

    application = FastAPI(
        title="Waitwise",
        description="Appointment slots and walk-in queue for barbershops",
        version="1.0.0",
        lifespan=lifespan,
    )

    origins = ["http://localhost:3000", "http://localhost:5173", settings.app_base_url]
    origins += [o.strip() for o in settings.allowed_origins.split(",") if o.strip()]
    application.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=[
            "Authorization", "Content-Type", "X-Correlation-ID",
            "Accept", "Origin", "X-Requested-With",
        ],
    )

    # Correlation ID middleware (must be added AFTER CORS so it runs on every request)
    application.add_middleware(CorrelationIdMiddleware)

    application.add_exception_handler(WaitwiseError, waitwise_error_handler)
    application.add_exception_handler(RequestValidationError, validation_error_handler)
    application.include_router(api_router)

    return application


app = create_app()
