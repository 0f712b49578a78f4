# Main application entry point

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
import uvicorn

from kqlmock import __version__
from kqlmock.api.routes import router
from kqlmock.common.logging_config import setup_logging
from kqlmock.common.metrics import get_metrics, get_metrics_content_type, tables_registered
from kqlmock.common.middleware import RequestTrackingMiddleware
from kqlmock.config.settings import get_settings
from kqlmock.ingest.processor import TableIngestor
from kqlmock.query.duckdb_engine import DuckDbQueryEngine
from kqlmock.query.orchestrator import BatchQueryOrchestrator
from kqlmock.query.registry import TableRegistry

settings = get_settings()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan - startup and shutdown."""
    # Startup
    registry = TableRegistry()
    app.state.registry = registry
    app.state.ingestor = TableIngestor(
        registry, policy=settings.column_type_policy)
    app.state.orchestrator = BatchQueryOrchestrator(
        DuckDbQueryEngine(registry),
        timeout_seconds=settings.query_timeout_seconds,
        max_concurrency=settings.max_concurrent_queries,
    )
    logger.info(
        f"Table registry ready (column type policy: "
        f"{settings.column_type_policy.value})")

    yield

    # Shutdown
    registry.clear()
    tables_registered.set(0)
    logger.info("Table registry cleared")


def create_app() -> FastAPI:
    setup_logging(settings.log_level, json_format=settings.log_json)

    app = FastAPI(
        title="KQL Mock API",
        description="Local test double for a KQL log-analytics query endpoint",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(RequestTrackingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {
            "service": "KQL Mock API",
            "version": __version__,
            "status": "running",
            "docs": "/docs"
        }

    @app.get("/health")
    async def health():
        """Health check endpoint (alias for /live)"""
        return {"status": "healthy"}

    @app.get("/live")
    async def liveness():
        """Liveness check endpoint"""
        return {"status": "alive"}

    @app.get("/ready")
    async def readiness(request: Request):
        """Readiness check endpoint"""
        registry = getattr(request.app.state, "registry", None)
        return {
            "status": "ready" if registry is not None else "not_ready",
            "tables": len(registry) if registry is not None else 0,
        }

    if settings.metrics_enabled:
        @app.get("/metrics")
        async def metrics():
            """Prometheus metrics endpoint"""
            return Response(content=get_metrics(), media_type=get_metrics_content_type())

    return app


app = create_app()


def main() -> None:
    """Run the API server with uvicorn."""
    uvicorn.run(
        "kqlmock.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.debug
    )


if __name__ == "__main__":
    main()
