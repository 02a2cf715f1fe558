"""
Food Delivery Integration - Main FastAPI Application
"""
from fastapi import FastAPI

from app.core.config import settings
from app.core.logging import setup_logging, get_logger
from app.core.middleware import setup_middleware, setup_exception_handlers
from app.api.routes import router as api_router
from app.api.webhooks.platforms import router as webhooks_router
from app.db.database import engine, init_db
from app.domain.services.uber_eats.base import close_shared_http_client

# Setup logging before anything else
setup_logging(
    level=settings.log_level,
    json_format=not settings.DEBUG,
    app_name=settings.APP_NAME
)

logger = get_logger(__name__)


_OPENAPI_TAGS = [
    {
        "name": "Webhooks",
        "description": "Order webhooks from Uber Eats, Rappi and Didi Food. Always answered with HTTP 200.",
    },
    {"name": "Orders", "description": "Read access to normalized, stored orders."},
    {"name": "Health", "description": "Liveness probe."},
]


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description=(
        "Receives order webhooks from food-delivery platforms, normalizes them "
        "into one order envelope and stores each (platform, order id) once."
    ),
    openapi_tags=_OPENAPI_TAGS,
)

setup_middleware(app)
setup_exception_handlers(app)

app.include_router(webhooks_router, prefix="/webhook", tags=["Webhooks"])
app.include_router(api_router, prefix="/api")


@app.on_event("startup")
async def startup() -> None:
    """Initialize database tables on startup"""
    logger.info(
        "Starting application",
        extra_data={"app_name": settings.APP_NAME, "database": settings.DB_FILE},
    )
    await init_db()
    logger.info("Database tables initialized")


@app.on_event("shutdown")
async def shutdown() -> None:
    """Cleanup on shutdown"""
    logger.info("Shutting down application")
    await close_shared_http_client()
    await engine.dispose()
    logger.info("Database connections disposed")


@app.get("/health", summary="Liveness probe", tags=["Health"])
async def health_check() -> dict[str, str]:
    return {"status": "healthy"}


def run() -> None:
    import uvicorn

    logger.info(
        f"Food Delivery Integration listening on port {settings.PORT}",
        extra_data={"host": settings.HOST, "port": settings.PORT},
    )
    uvicorn.run(app, host=settings.HOST, port=settings.PORT, log_config=None)


if __name__ == "__main__":
    run()
