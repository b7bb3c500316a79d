# ==== ONRAMP ORDER ENGINE MAIN APPLICATION MODULE ==== #

"""
Main FastAPI application for the business onramp order engine.

This module wires the middleware stack, observability, operational endpoints,
the merchant and liquidity-provider routers and the error rendering that
turns OnrampErrors into structured JSON responses.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from sqlalchemy import text

from onramp import __version__
from onramp.business.reason_codes import ErrorCode
from onramp.errors import OnrampError
from onramp.middleware.business_context import BusinessContextMiddleware
from onramp.middleware.correlation import CorrelationMiddleware
from onramp.observability.logging import get_logger, init_logging
from onramp.observability.metrics import init_metrics, metrics_router
from onramp.observability.tracing import init_tracing
from onramp.routes import liquidity_webhooks, onramp
from onramp.settings import settings
from onramp.storage.db import close_database, get_session, init_database


logger = get_logger(__name__)


# ==== APPLICATION LIFECYCLE MANAGEMENT ==== #


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager for startup and shutdown operations.

    Args:
        app (FastAPI): FastAPI application instance

    Yields:
        None: Control back to FastAPI during application runtime
    """
    # --► STARTUP SEQUENCE
    init_logging(settings.LOG_LEVEL, settings.LOG_DIR)
    init_tracing(settings.SERVICE_NAME)
    init_database()
    logger.info("Onramp engine started", environment=settings.APP_ENV, version=__version__)

    yield

    # --► SHUTDOWN SEQUENCE
    await close_database()
    logger.info("Onramp engine stopped")


# ==== APPLICATION FACTORY ==== #


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        FastAPI: Fully configured FastAPI application instance
    """
    app = FastAPI(
        title="Business Onramp Engine",
        description="Fiat-to-crypto onramp orders for business customers",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.APP_ENV == "dev" else None,
        redoc_url="/redoc" if settings.APP_ENV == "dev" else None,
    )

    # --► OBSERVABILITY INITIALIZATION
    init_metrics(app)

    # --► MIDDLEWARE STACK CONFIGURATION
    # Last added runs first: business context is resolved inside the
    # correlation span, and CORS wraps both so error responses carry headers
    app.add_middleware(BusinessContextMiddleware, require_business=True)
    app.add_middleware(CorrelationMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Correlation-Id"],
    )

    # --► OPERATIONAL ENDPOINTS
    _register_health_endpoints(app)
    _register_info_endpoint(app)

    # --► ROUTER REGISTRATION
    _register_routers(app)

    # --► EXCEPTION HANDLERS
    _register_exception_handlers(app)

    # --► OPENTELEMETRY INSTRUMENTATION
    FastAPIInstrumentor.instrument_app(app)

    return app


# ==== ENDPOINT REGISTRATION HELPERS ==== #


async def _database_status() -> str:
    try:
        async with get_session() as db:
            await db.execute(text("SELECT 1"))
        return "connected"
    except Exception as e:
        logger.warning("Database check failed", error=str(e))
        return "disconnected"


def _register_health_endpoints(app: FastAPI) -> None:
    """
    Register liveness and readiness probes.

    Args:
        app (FastAPI): FastAPI application instance
    """
    @app.get("/healthz", tags=["health"])
    async def health_check() -> dict:
        """Liveness probe; never touches collaborators."""
        return {
            "status": "ok",
            "service": settings.SERVICE_NAME,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.get("/readyz", tags=["health"])
    async def readiness_check() -> JSONResponse:
        """
        Readiness probe for container orchestration.

        Returns:
            JSONResponse: 200 when the database answers, 503 otherwise
        """
        database_status = await _database_status()
        ready = database_status == "connected"
        return JSONResponse(
            status_code=200 if ready else 503,
            content={
                "status": "ready" if ready else "not_ready",
                "service": settings.SERVICE_NAME,
                "environment": settings.APP_ENV,
                "database_status": database_status,
            },
        )


def _register_info_endpoint(app: FastAPI) -> None:
    """
    Register application information endpoint.

    Args:
        app (FastAPI): FastAPI application instance
    """
    @app.get("/info", tags=["info"])
    async def app_info() -> dict:
        """Service metadata and configured collaborators."""
        return {
            "service": settings.SERVICE_NAME,
            "version": __version__,
            "environment": settings.APP_ENV,
            "database_status": await _database_status(),
            "fiat_currency": settings.FIAT_CURRENCY,
            "base_chain_id": settings.BASE_CHAIN_ID,
            "payment_provider": "enabled" if settings.MONNIFY_API_KEY else "disabled",
        }


def _register_routers(app: FastAPI) -> None:
    """
    Register all application routers with their prefixes and tags.

    Args:
        app (FastAPI): FastAPI application instance
    """
    app.include_router(metrics_router, prefix="", tags=["monitoring"])
    app.include_router(onramp.router, prefix="/api/v1/business-onramp", tags=["business-onramp"])
    app.include_router(
        liquidity_webhooks.router,
        prefix="/api/v1/liquidity-webhook",
        tags=["liquidity-webhook"],
    )


# ==== EXCEPTION HANDLERS ==== #


def _correlation_id(request: Request) -> str:
    return getattr(request.state, "correlation_id", "unknown")


def _register_exception_handlers(app: FastAPI) -> None:
    """
    Register exception handlers producing the structured error body.

    Args:
        app (FastAPI): FastAPI application instance
    """
    @app.exception_handler(OnrampError)
    async def onramp_error_handler(request: Request, exc: OnrampError) -> JSONResponse:
        """
        Render a domain error with its own status code.

        Args:
            request (Request): HTTP request that raised the error
            exc (OnrampError): Domain error

        Returns:
            JSONResponse: ``{"success": false, "message", "code", ...}``
        """
        if exc.status_code >= 500:
            logger.error("Request failed", path=request.url.path, code=exc.code, error=exc.message)
        else:
            logger.info("Request rejected", path=request.url.path, code=exc.code,
                        status_code=exc.status_code)
        content = exc.to_dict()
        content["correlation_id"] = _correlation_id(request)
        return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(content))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        """Render body and query validation failures as 400 INVALID_REQUEST."""
        errors = [
            {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "message": "Invalid request",
                "code": ErrorCode.INVALID_REQUEST.value,
                "details": {"errors": errors},
                "correlation_id": _correlation_id(request),
            },
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Global exception handler for unhandled errors.

        Internals are logged, never returned to the caller.
        """
        logger.exception("Unhandled error", path=request.url.path, error=str(exc))
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "message": "An unexpected error occurred",
                "code": ErrorCode.INTERNAL_ERROR.value,
                "correlation_id": _correlation_id(request),
            },
        )

    @app.exception_handler(404)
    async def not_found_handler(request: Request, exc) -> JSONResponse:
        """Handle 404 Not Found with the structured error body."""
        return JSONResponse(
            status_code=404,
            content={
                "success": False,
                "message": "The requested resource was not found",
                "code": ErrorCode.NOT_FOUND.value,
                "correlation_id": _correlation_id(request),
            },
        )

    @app.exception_handler(405)
    async def method_not_allowed_handler(request: Request, exc) -> JSONResponse:
        """Handle 405 Method Not Allowed with the structured error body."""
        return JSONResponse(
            status_code=405,
            content={
                "success": False,
                "message": "Method not allowed",
                "code": "METHOD_NOT_ALLOWED",
                "correlation_id": _correlation_id(request),
            },
        )


# ==== APPLICATION INSTANCE ==== #


# Create application instance for deployment
app = create_app()
