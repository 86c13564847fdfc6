"""
Store Provisioning Platform — Intent API

Main entrypoint. Sets up FastAPI with:
  - CORS for dashboard access
  - Rate limiting (slowapi)
  - Prometheus metrics (/metrics)
  - Health check (/health) with Redis and reconciler status
  - Store routes (/api/stores)
  - Readiness reconciler running for the lifetime of the app
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from config import settings
from routers.stores import limiter, router as stores_router
from services import metrics
from services.store_service import StoreService

VERSION = "1.0.0"

# --- Logging ---
logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("intent-api")


def create_app(store_service: Optional[StoreService] = None) -> FastAPI:
    service = store_service or StoreService()

    # --- Lifespan ---
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Store Platform Intent API starting...")
        await service.start()
        yield
        logger.info("Store Platform Intent API shutting down...")
        await service.stop()

    app = FastAPI(
        title="Store Provisioning Platform API",
        description="Intent API for Kubernetes namespace-per-store provisioning",
        version=VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.store_service = service

    # --- CORS ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
        allow_credentials=True,
    )

    # --- Rate Limiting ---
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    app.include_router(stores_router, prefix="/api")

    # --- Health check ---
    @app.get("/health")
    async def health():
        """Health check with Redis connectivity and reconciler status."""
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "redis": await service.events.ping(),
            "reconciler": "running" if service.reconciler.running else "stopped",
            "version": VERSION,
        }

    # --- Prometheus metrics endpoint ---
    @app.get("/metrics", response_class=PlainTextResponse)
    async def metrics_endpoint():
        """Expose Prometheus metrics."""
        metrics.update_gauges(await service.count_stores_by_state())
        return PlainTextResponse(
            content=generate_latest().decode("utf-8"),
            media_type=CONTENT_TYPE_LATEST,
        )

    # --- Global exception handler ---
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    return app


app = create_app()


# --- Entry point ---
if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        log_level=settings.LOG_LEVEL.lower(),
        reload=False,
    )
