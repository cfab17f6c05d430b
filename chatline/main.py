import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from chatline.api.error_handlers import register_error_handlers
from chatline.api.v1.endpoints.live import live_endpoint
from chatline.api.v1.router import api_router
from chatline.core.config import settings
from chatline.core.database import init_models
from chatline.core.minio import minio_client
from chatline.core.redis import redis_client

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle"""
    logger.info("Starting up...")
    await init_models()
    await redis_client.connect()
    try:
        await minio_client.ensure_bucket_exists()
    except Exception as e:
        logger.warning(f"Object storage unavailable at startup: {e}")

    yield

    logger.info("Shutting down...")
    await redis_client.disconnect()


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    openapi_url="/api/v1/openapi.json",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    lifespan=lifespan
)

# Set up CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

# Include API router
app.include_router(api_router, prefix="/api/v1")

# WebSocket endpoint for live views
app.websocket("/ws/live")(live_endpoint)


@app.get("/")
async def root():
    return {
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": "/api/docs",
        "health": "/health",
        "api": "/api/v1",
        "websocket": "/ws/live"
    }


@app.get("/health")
async def health_check():
    redis_status = "healthy"
    try:
        if not await redis_client.ping():
            redis_status = "disconnected"
    except Exception as e:
        logger.warning(f"Redis health check failed: {e}")
        redis_status = "unhealthy"

    minio_status = "healthy"
    try:
        await minio_client.ensure_bucket_exists()
    except Exception as e:
        logger.warning(f"MinIO health check failed: {e}")
        minio_status = "unhealthy"

    return {
        "status": "healthy" if redis_status == "healthy" and minio_status == "healthy" else "degraded",
        "services": {
            "redis": redis_status,
            "minio": minio_status
        }
    }
