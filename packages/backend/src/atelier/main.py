"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. The two SSE gateways are built here and stored on app.state,
so every request (and every test client) sees the same instances.
Lifespan shuts them down on exit, which ends every open stream.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from atelier import __version__
from atelier.api import api_router
from atelier.config import settings
from atelier.logging_config import configure_logging
from atelier.realtime.data_events import DataEventsGateway
from atelier.realtime.messages import MessageEventsGateway

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: Anything before `yield` runs at startup, after `yield` runs at
    shutdown. Shutting the gateways down closes every SSE stream, so
    uvicorn isn't left waiting on responses that never finish.
    """
    logger.info(
        "atelier.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    yield

    logger.info("atelier.shutdown")
    app.state.data_events.shutdown()
    app.state.message_events.shutdown()


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    configure_logging()

    app = FastAPI(
        title="Atelier real-time API",
        description="Data-change and messaging notification streams for the arts center back office",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.data_events = DataEventsGateway(name="data_events")
    app.state.message_events = MessageEventsGateway(name="messages")

    # ── Middleware stack ──────────────────────────────────────
    # Note: Starlette middleware executes in reverse order of registration.
    # Request flow: RequestId → Security → CORS → handler

    from atelier.middleware.request_id import RequestIdMiddleware
    from atelier.middleware.security import SecurityHeadersMiddleware

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestIdMiddleware)

    app.include_router(api_router)

    return app


# Default app instance (used by uvicorn: atelier.main:app)
app = create_app()
