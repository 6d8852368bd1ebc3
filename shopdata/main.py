"""
Shopdata - Main Application Entry Point

FastAPI application that executes Shopify datasets in the background and
serves their previews, exports and source schemas.
"""

from contextlib import asynccontextmanager
from typing import Any, cast

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

from shopdata.config import settings
from shopdata.connectors import postgres_pool
from shopdata.core.orchestrator import orchestrator

APP_NAME = "Shopdata"
APP_VERSION = "0.1.0"
APP_DESCRIPTION = "Shopify dataset execution, schema caching and preview service"

# Per-request chatter from the HTTP and database clients
_QUIET_LOGGERS = ("httpx", "httpcore", "asyncpg")


def configure_logging() -> None:
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if settings.LOG_FILE:
        handlers.append(logging.FileHandler(settings.LOG_FILE))
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL),
        format=settings.LOG_FORMAT,
        handlers=handlers,
    )
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


configure_logging()
logger = logging.getLogger(__name__)


def _environment() -> str:
    return "development" if settings.APP_DEBUG else "production"


async def _open_database() -> None:
    if not settings.POSTGRES_CONNECT_ON_STARTUP:
        logger.info(
            "🐘 Postgres pool will connect on first query "
            "(POSTGRES_CONNECT_ON_STARTUP=false)"
        )
        return
    try:
        await postgres_pool.get_default_pool().initialize()
        logger.info("✅ Postgres pool initialized")
    except Exception as e:
        # Executions and previews fail individually until Postgres is back.
        logger.error(f"❌ Failed to initialize connection pool: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"🚀 {APP_NAME} {APP_VERSION} starting ({_environment()})")
    await _open_database()

    yield

    logger.info(f"🛑 {APP_NAME} shutting down...")
    # In-flight executions are recorded as failed when cancelled
    try:
        await orchestrator.shutdown(timeout_seconds=5.0)
    except Exception as e:
        logger.warning("Orchestrator shutdown encountered an error: %s", e)

    try:
        await postgres_pool.close_default_pool()
    except Exception as e:
        logger.error(f"Error closing connection pool: {e}")


app = FastAPI(
    title=APP_NAME,
    description=APP_DESCRIPTION,
    version=APP_VERSION,
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
)

if settings.APP_DEBUG:
    app.add_middleware(
        cast(Any, CORSMiddleware),
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    logger.info(f"🔓 CORS enabled for origins: {settings.CORS_ORIGINS}")


# ============================================================================
# Health & Info
# ============================================================================


async def _postgres_check() -> dict[str, Any]:
    try:
        pool = postgres_pool.get_default_pool()
        stats = await pool.get_pool_stats()
        healthy = await pool.is_healthy()
    except Exception as e:
        return {"status": "unhealthy", "error": str(e)}
    return {"status": "healthy" if healthy else "unhealthy", "pool": stats}


@app.get("/health")
async def health_check():
    """
    Liveness plus dependency checks.

    Reports "degraded" rather than failing when Postgres is unreachable so the
    process is not restarted while executions are still in flight.
    """
    postgres = await _postgres_check()
    return {
        "status": "healthy" if postgres["status"] == "healthy" else "degraded",
        "service": "shopdata",
        "version": APP_VERSION,
        "environment": _environment(),
        "checks": {
            "postgres": postgres,
            "executions": {"in_flight": len(orchestrator.in_flight())},
        },
    }


@app.get("/api/info")
async def api_info():
    return {
        "name": APP_NAME,
        "version": APP_VERSION,
        "description": APP_DESCRIPTION,
        "shopify_api_version": settings.SHOPIFY_DEFAULT_API_VERSION,
        "features": {
            "dataset_types": ["predefined", "dependent", "custom"],
            "merge_strategies": ["nested", "flat", "reference"],
            "export_formats": ["json", "csv", "xlsx"],
            "max_page_size": settings.SHOPIFY_MAX_PAGE_SIZE,
            "secondary_batch_size": settings.SECONDARY_BATCH_SIZE,
            "schema_cache_ttl_days": settings.SCHEMA_CACHE_TTL_DAYS,
        },
        "endpoints": {
            "api_docs": "/api/docs",
            "health": "/health",
            "execute": "/api/datasets/execute",
            "preview": "/api/executions/{execution_id}/preview",
            "schema": "/api/sources/{source_id}/schema",
            "validate_query": "/api/sources/{source_id}/validate-query",
            "history": "/api/datasets/{dataset_id}/executions",
            "execution": "/api/executions/{execution_id}",
        },
    }


# ============================================================================
# API Routes
# ============================================================================

from shopdata.api.routes import datasets  # noqa: E402
from shopdata.api.routes import executions  # noqa: E402
from shopdata.api.routes import sources  # noqa: E402

app.include_router(datasets.router, prefix="/api/datasets", tags=["datasets"])
app.include_router(executions.router, prefix="/api/executions", tags=["executions"])
app.include_router(sources.router, prefix="/api/sources", tags=["sources"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "shopdata.main:app",
        host=settings.APP_HOST,
        port=settings.APP_PORT,
        reload=settings.APP_RELOAD,
    )
