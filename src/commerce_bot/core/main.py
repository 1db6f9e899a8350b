"""Main FastAPI application."""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Callable

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware

from commerce_bot.api.v1 import auth
from commerce_bot.core.database import Base, check_connection, engine
from commerce_bot.core.dependencies import get_commerce_settings
from commerce_bot.plugins.commerce_layer import create_commerce_router
from commerce_bot.plugins.slack import create_slack_router

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("api")


# Request tracing middleware
class RequestTracingMiddleware(BaseHTTPMiddleware):
    """Request tracing middleware."""

    async def dispatch(self, request: Request, call_next: Callable) -> Any:
        # Query strings carry OAuth codes; log the path only
        logger.info("Request: %s %s", request.method, request.url.path)
        response = await call_next(request)
        logger.info("Response status: %s", response.status_code)
        return response


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Lifespan for the FastAPI application."""
    logger.info("Initializing database...")
    check_connection()
    Base.metadata.create_all(bind=engine)
    settings = get_commerce_settings()
    logger.info("Commerce bot started in %s mode", settings.application_mode.value)
    yield


app = FastAPI(
    title="Commerce Bot API",
    description="Slack bot backend for Commerce Layer organizations",
    version="1.0.0",
    lifespan=lifespan,
)

# Add request tracing middleware
app.add_middleware(RequestTracingMiddleware)

app.include_router(create_slack_router(), prefix="/slack")
app.include_router(create_commerce_router(), prefix="/commerce")

# Include routers
app.include_router(auth.router, prefix="/api/v1")


@app.get("/")
async def root() -> dict:
    """Root endpoint."""
    return {"message": "Welcome to the Commerce Bot API"}
