"""FastAPI application for the batch web API."""

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import RedirectResponse

from config import paths, settings
from gateway import Gateway, GeminiGateway

from .registry import BatchRegistry


# Global instances
registry: BatchRegistry | None = None
gateway: Gateway | None = None
shutdown_event: asyncio.Event | None = None


def get_registry() -> BatchRegistry:
    """Get the batch registry instance."""
    global registry
    if registry is None:
        raise RuntimeError("Batch registry not initialized")
    return registry


def get_gateway() -> Gateway:
    """Get the shared model gateway."""
    global gateway
    if gateway is None:
        raise RuntimeError("Gateway not initialized")
    return gateway


def get_shutdown_event() -> asyncio.Event:
    """Get the shutdown event."""
    global shutdown_event
    if shutdown_event is None:
        raise RuntimeError("Shutdown event not initialized")
    return shutdown_event


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle app startup and shutdown."""
    global registry, gateway, shutdown_event

    paths.batches_dir.mkdir(parents=True, exist_ok=True)

    shutdown_event = asyncio.Event()
    registry = BatchRegistry(max_sessions=settings.server.max_sessions)
    gateway = GeminiGateway()

    yield

    # Shutdown: signal SSE connections to close
    shutdown_event.set()
    await asyncio.sleep(0.5)  # Grace period for SSE connections to close

    await registry.shutdown()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Lookbook Studio",
        description="Batch AI fashion image generation",
        version="1.0.0",
        lifespan=lifespan,
    )

    from .routes import router
    app.include_router(router)

    @app.get("/", include_in_schema=False)
    async def root():
        return RedirectResponse(url="/docs")

    return app


# Create the app instance
app = create_app()
