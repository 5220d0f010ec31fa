"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError

from user_registry.config import settings
from user_registry.database.engine import dispose_db, init_db
from user_registry.exceptions import (
    UserRegistryError,
    registry_error_handler,
    request_validation_handler,
    unhandled_error_handler,
)
from user_registry.routes.users import router as users_router

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle hook."""
    logger.info("Starting %s …", settings.app_name)
    await init_db()
    logger.info("Database initialised")
    yield
    logger.info("Shutting down %s …", settings.app_name)
    await dispose_db()


app = FastAPI(
    title=settings.app_name,
    description="CRUD, search and bulk import API for user records",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_exception_handler(UserRegistryError, registry_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)
app.add_exception_handler(Exception, unhandled_error_handler)

app.include_router(users_router)


@app.get("/health")
async def health_check():
    """Simple liveness probe."""
    return {"status": "healthy", "app": settings.app_name}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "user_registry.main:app",
        host="127.0.0.1",
        port=8000,
        reload=settings.debug,
    )
