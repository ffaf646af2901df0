# lessonflow/main.py
"""
FastAPI entry point for the lesson lifecycle engine.

Run with:
    uvicorn lessonflow.main:app
"""

from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI

from .core.config import settings
from .core.constants import BRAND_NAME
from .core.redis import close_async_redis_client
from .database import Base, engine
from .routes.v1 import lessons as lessons_v1, prometheus as prometheus_v1

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)

API_TITLE = f"{BRAND_NAME} API"
API_VERSION = "1.0.0"


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup/shutdown."""
    logger.info(f"{BRAND_NAME} API starting up (environment: {settings.environment})")

    if settings.database_url.startswith("sqlite"):
        # Local development only; real deployments manage the schema out of band
        from . import models  # noqa: F401

        Base.metadata.create_all(bind=engine)

    yield

    logger.info(f"{BRAND_NAME} API shutting down...")
    try:
        await close_async_redis_client()
    except Exception as e:
        logger.error(f"[REDIS-PUBSUB] Error closing async Redis client: {e}")


def create_app() -> FastAPI:
    app = FastAPI(
        title=API_TITLE,
        version=API_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=app_lifespan,
    )

    api_v1 = APIRouter(prefix="/api/v1")
    api_v1.include_router(lessons_v1.router, prefix="/lessons")  # type: ignore[attr-defined]
    api_v1.include_router(prometheus_v1.router)  # type: ignore[attr-defined]
    app.include_router(api_v1)

    @app.get("/health", tags=["monitoring"])
    async def health() -> dict:
        return {"status": "healthy", "service": BRAND_NAME}

    return app


app = create_app()
