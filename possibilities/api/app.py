"""FastAPI Application Factory.

Creates the possibilities API with the engine attached to ``app.state``
and engine exceptions mapped to structured error responses.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from possibilities.api.errors import handle_possibility_error
from possibilities.api.models import HealthResponse
from possibilities.api.routes import router
from possibilities.engine import PossibilityEngine, build_engine
from possibilities.logging_config import LoggingConfig, configure_logging
from possibilities.model_providers.exceptions import PossibilityError
from possibilities.settings import Settings, get_settings

logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"


def create_app(
    engine: Optional[PossibilityEngine] = None,
    settings: Optional[Settings] = None,
    configure_logs: bool = True,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        engine: Engine to serve. Built from settings if not provided.
        settings: Settings for the engine and logging. Uses
                  ``get_settings()`` if not provided.
        configure_logs: Set up structured logging at startup.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if configure_logs:
            configure_logging(LoggingConfig.from_settings(settings))
            logger.info("Structured logging initialized")
        logger.info(
            "Possibilities API starting with %d models", len(app.state.engine.catalog)
        )
        yield
        logger.info("Possibilities API shutting down")

    app = FastAPI(
        title="Possibilities API",
        version=API_VERSION,
        description="Multi-provider candidate generation with confidence ranking",
        lifespan=lifespan,
    )
    app.state.engine = engine or build_engine(settings)
    app.add_exception_handler(PossibilityError, handle_possibility_error)

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        current = app.state.engine
        return HealthResponse(
            status="ok",
            version=API_VERSION,
            models=len(current.catalog),
            providers=current.catalog.provider_ids(),
        )

    app.include_router(router)
    return app
