"""Main FastAPI application."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

import structlog
from alembic import script
from alembic.config import Config
from alembic.runtime import migration
from fastapi import FastAPI, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from opentelemetry import trace
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from sqlalchemy import text
from sqlalchemy.engine import Connection

from railwatch import __version__
from railwatch.api import routes, stations
from railwatch.core.config import settings
from railwatch.core.database import get_engine
from railwatch.core.logging import configure_logging
from railwatch.core.redis import create_redis_client
from railwatch.core.telemetry import get_tracer_provider, shutdown_tracer_provider
from railwatch.middleware import AccessLoggingMiddleware

# Configured at import so uvicorn startup logs go through structlog
configure_logging(log_level=settings.LOG_LEVEL)

logger = structlog.get_logger(__name__)


def _check_alembic_migrations(sync_conn: Connection) -> str | None:
    """
    Validate that the database is at the Alembic head revision.

    Args:
        sync_conn: Synchronous SQLAlchemy connection

    Returns:
        Current revision ID

    Raises:
        RuntimeError: If the database is not initialized or migrations are pending
    """
    current_rev = migration.MigrationContext.configure(sync_conn).get_current_revision()

    alembic_ini_path = Path(settings.ALEMBIC_INI_PATH)
    if not alembic_ini_path.exists():
        logger.warning("alembic_ini_not_found", path=settings.ALEMBIC_INI_PATH, action="skipping migration validation")
        return current_rev

    head_rev = script.ScriptDirectory.from_config(Config(str(alembic_ini_path))).get_current_head()

    if current_rev is None:
        msg = "Database has not been initialized! Please run: alembic upgrade head"
        raise RuntimeError(msg)
    if current_rev != head_rev:
        msg = f"Database migration required (current {current_rev}, expected {head_rev}). Run: alembic upgrade head"
        raise RuntimeError(msg)

    return current_rev


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Set up tracing, then validate the database outside DEBUG mode."""
    if settings.OTEL_ENABLED and (provider := get_tracer_provider()):
        trace.set_tracer_provider(provider)
        logger.info("otel_tracer_provider_initialized")

    if settings.DEBUG:
        logger.info("debug_mode_startup", message="skipping database validation")
    else:
        try:
            async with get_engine().begin() as conn:
                await conn.execute(text("SELECT 1"))
                current_rev = await conn.run_sync(_check_alembic_migrations)
                logger.info("database_migration_valid", revision=current_rev)
        except Exception as e:
            logger.error("startup_failed", error=str(e), error_type=type(e).__name__)
            raise
        logger.info("startup_complete")

    yield

    logger.info("shutdown_starting")
    if settings.OTEL_ENABLED:
        shutdown_tracer_provider()
    if not settings.DEBUG:
        await get_engine().dispose()
    logger.info("shutdown_complete")


app = FastAPI(
    title="RailWatch API",
    description="Rail disruption monitoring for recurring journeys",
    version=__version__,
    lifespan=lifespan,
)

# TracerProvider is set later in lifespan (after fork)
if settings.OTEL_ENABLED:
    FastAPIInstrumentor().instrument_app(
        app,
        excluded_urls=",".join(settings.OTEL_EXCLUDED_URLS),
    )
    logger.info("otel_fastapi_instrumented", excluded_urls=settings.OTEL_EXCLUDED_URLS)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(AccessLoggingMiddleware)

app.include_router(routes.router, prefix=settings.API_V1_PREFIX)
app.include_router(stations.router, prefix=settings.API_V1_PREFIX)


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {"message": "RailWatch API", "version": __version__}


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Liveness check endpoint."""
    return {"status": "healthy"}


@app.get("/ready", response_model=None)
async def readiness_check() -> dict[str, str] | JSONResponse:
    """Readiness check: the database and Redis must answer."""
    checks: dict[str, str] = {}

    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        logger.warning("readiness_database_failed", error=str(e))
        checks["database"] = "unavailable"

    redis_client = create_redis_client()
    try:
        await redis_client.ping()
        checks["redis"] = "ok"
    except Exception as e:
        logger.warning("readiness_redis_failed", error=str(e))
        checks["redis"] = "unavailable"
    finally:
        await redis_client.aclose()

    if any(value != "ok" for value in checks.values()):
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"status": "not_ready", **checks})
    return {"status": "ready", **checks}
