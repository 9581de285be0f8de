# backend/tutormarket/main.py
"""
TutorMarket booking API application.

Run locally with ``uvicorn tutormarket.main:app --reload`` from ``backend/``.
"""

from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI

from .api.dependencies.services import get_event_publisher
from .core.config import is_running_tests, settings
from .core.constants import API_DESCRIPTION, API_TITLE, API_VERSION, BRAND_NAME
from .database import Base, engine
from .errors import register_error_handlers
from .routes.v1 import (
    appeals as appeals_v1,
    bookings as bookings_v1,
    health as health_v1,
    internal as internal_v1,
    users as users_v1,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup/shutdown."""
    logger.info(f"{BRAND_NAME} API starting up...")
    logger.info(f"Environment: {settings.environment}")
    if is_running_tests():
        logger.info("Running under pytest (test mode active)")

    if engine.dialect.name == "sqlite":
        # Local development convenience; production schemas are managed by migrations
        Base.metadata.create_all(bind=engine)

    yield

    logger.info(f"{BRAND_NAME} API shutting down...")
    if get_event_publisher.cache_info().currsize:
        get_event_publisher().executor.shutdown(wait=True)


app = FastAPI(
    title=API_TITLE,
    description=API_DESCRIPTION,
    version=API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=app_lifespan,
)
register_error_handlers(app)

api_v1 = APIRouter(prefix="/api/v1")
api_v1.include_router(bookings_v1.router, prefix="/bookings")
api_v1.include_router(appeals_v1.router, prefix="/appeals")
api_v1.include_router(users_v1.router, prefix="/users")
api_v1.include_router(internal_v1.router, prefix="/internal")

app.include_router(api_v1)
app.include_router(health_v1.router)
