"""
Podio Push Relay - Main FastAPI Application

Relays Podio change notifications to downstream consumers.

Key Features:
- Signed webhook endpoint for deliveries pushed by Podio
- Managed Bayeux subscriptions to Podio's push bus, one per channel
- Fan-out forwarding of every received event to the configured targets
"""
import logging
from contextlib import asynccontextmanager
from functools import partial
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from . import __version__
from .api import router
from .bayeux import MemoryBroker, create_bus_client
from .core.config import settings
from .services.event_relay import EventRelay
from .services.subscription_manager import SubscriptionManager

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# =============================================================================
# Application Lifecycle
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Builds the relay and subscription manager on startup; tears down every
    subscription and drains pending forwards on shutdown.
    """
    # Startup
    logger.info(f"Starting Podio Push Relay with {settings.bus_adapter} bus adapter")

    if not settings.podio_push_secret:
        logger.warning("PODIO_PUSH_SECRET is not set, signed webhook deliveries will be rejected")

    targets = settings.forward_targets
    if not targets:
        logger.warning("No forward targets configured, events will be dropped")

    broker = MemoryBroker() if settings.bus_adapter == "memory" else None
    client_factory = partial(
        create_bus_client,
        settings.bayeux_url,
        settings.bus_timeout_seconds,
        settings.bus_retry_seconds,
        adapter=settings.bus_adapter,
        broker=broker,
    )

    relay = EventRelay(
        targets,
        timeout_seconds=settings.forward_timeout_seconds,
        queue_size=settings.relay_queue_size,
    )
    relay.start()
    manager = SubscriptionManager(
        relay,
        client_factory,
        confirm_timeout=settings.subscribe_confirm_timeout_seconds,
    )

    app.state.event_relay = relay
    app.state.subscription_manager = manager

    logger.info(f"Podio Push Relay ready on port {settings.service_port}")

    yield

    # Shutdown
    logger.info("Shutting down Podio Push Relay")
    await manager.shutdown()
    await relay.close(drain_timeout=settings.relay_drain_timeout_seconds)
    logger.info("Podio Push Relay shutdown complete")


# =============================================================================
# FastAPI Application
# =============================================================================


app = FastAPI(
    title="Podio Push Relay",
    description="Relays Podio push notifications to downstream consumers",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(router)


@app.get("/", tags=["Info"])
async def root():
    """Root endpoint with service info."""
    return {
        "service": settings.service_name,
        "version": __version__,
        "docs": "/docs",
    }


# =============================================================================
# Error Handlers
# =============================================================================


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies are reported as 400."""
    errors = [{k: v for k, v in e.items() if k not in ("ctx", "input")} for e in exc.errors()]
    logger.warning(f"Invalid payload for {request.url.path}: {errors}")
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid payload", "detail": jsonable_encoder(errors)},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Global exception handler for unhandled errors."""
    logger.error(f"Unhandled error: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "detail": str(exc) if settings.debug else "An unexpected error occurred",
        },
    )


def run() -> None:
    """Console entry point."""
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.service_port)


if __name__ == "__main__":
    run()
