"""Main FastAPI application for the LifeSignal relay control surface."""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from . import __version__
from .api import control, journal, owners
from .api.middleware import ProblemDetailsMiddleware, install_problem_handlers
from .api.schemas import HealthResponse
from .bootstrap import RelayComponents, build_relay
from .config import get_config
from .utils.logging_config import get_logger

logger = get_logger('api')


def create_app(components: Optional[RelayComponents] = None, auto_start: bool = False) -> FastAPI:
    """
    Build the control surface.

    Args:
        components: Pre-built relay; built from the environment at startup if omitted
        auto_start: Start relaying as soon as the app starts
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        relay = components
        owned = relay is None
        if relay is None:
            relay = build_relay(get_config())
        app.state.relay = relay

        if auto_start:
            await relay.supervisor.start()
        try:
            yield
        finally:
            if owned or auto_start:
                await relay.supervisor.close()

    app = FastAPI(
        title="LifeSignal Relay",
        description="Bridges the LifeSignal registry ledger and the grace-period automation ledger",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    if components is not None:
        app.state.relay = components

    install_problem_handlers(app)
    app.add_middleware(ProblemDetailsMiddleware)

    app.include_router(control.router)
    app.include_router(owners.router)
    app.include_router(journal.router)

    @app.get("/health", response_model=HealthResponse)
    async def health_check() -> HealthResponse:
        """Liveness of the HTTP process; relay health is reported by /status."""
        return HealthResponse(status="healthy", service="lifesignal-relay", version=__version__)

    return app
