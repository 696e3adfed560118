"""Main FastAPI application.

This module sets up the FastAPI application with middleware, routers, and
lifecycle management. The pipeline service is built once at startup from
settings and shared by every request.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from lenschain import __version__
from lenschain.api.middleware import setup_cors, setup_error_handlers
from lenschain.api.routers import pipelines
from lenschain.config import settings
from lenschain.runtime.tracing import get_tracer
from lenschain.service import build_service, set_pipeline_service

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan (startup and shutdown).

    Args:
        app: FastAPI application instance.
    """
    # Startup
    logger.info("Starting API server...")
    service = build_service(settings)
    set_pipeline_service(service)
    logger.info(
        f"Pipeline service initialized with {len(service.registry)} pipelines "
        f"from {settings.pipeline_catalog_dir}"
    )

    yield

    # Shutdown
    logger.info("Shutting down API server...")
    try:
        get_tracer().flush()
    except Exception as e:
        logger.error(f"Error flushing traces: {e}", exc_info=True)
    set_pipeline_service(None)


# Create FastAPI app
app = FastAPI(
    title=settings.api_title,
    description="Detect life events in text and run cross-lens action pipelines",
    version=__version__,
    lifespan=lifespan,
)

# Set up middleware
setup_cors(app)
setup_error_handlers(app)

# Include routers
app.include_router(pipelines.router, tags=["pipelines"])


@app.get("/")
async def root():
    """Root endpoint for health check."""
    return {
        "status": "ok",
        "service": settings.api_title,
        "version": __version__,
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


# Allow running the API directly with: python -m lenschain.api.api
# For production, use: uvicorn lenschain.api.api:app --host 0.0.0.0 --port 8000
if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    uvicorn.run(
        "lenschain.api.api:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
