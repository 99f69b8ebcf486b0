"""
FastAPI application for the Support Knowledge Hub.
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI

from src.harvester.run_state import WorkerState
from src.shared.errors import AppErrors
from src.shared.logging_config import configure_logging
from src.shared.settings import Settings
from src.web.dependencies import ServiceContainer, build_services

log = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    services: Optional[ServiceContainer] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Configuration (defaults to Settings.from_env())
        services: Prebuilt service container, mainly for tests
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan: load indexes, run the harvester, stop it on shutdown."""
        container = services or build_services(settings or Settings.from_env())
        app.state.services = container

        if not container.embedder.is_configured:
            log.warning(AppErrors.OPENAI_NOT_CONFIGURED)
        container.solutions.initialize()
        container.articles.initialize()
        if container.settings.harvest_enabled:
            container.harvester.start()
        else:
            log.info("Harvester disabled by configuration")

        yield

        container.harvester.stop()

    app = FastAPI(title="Support Knowledge Hub", version="0.1.0", lifespan=lifespan)

    from src.web.routers import articles, harvester, solutions

    app.include_router(solutions.router)
    app.include_router(articles.router)
    app.include_router(harvester.router)

    @app.get("/health")
    async def health():
        container: ServiceContainer = app.state.services
        state = container.run_state.snapshot()
        warnings = []
        if not container.embedder.is_configured:
            warnings.append(AppErrors.OPENAI_NOT_CONFIGURED)
        if not state.is_configured:
            warnings.append(AppErrors.JIRA_NOT_CONFIGURED)
        if state.worker_state == WorkerState.DISABLED:
            warnings.append(AppErrors.STORAGE_UNAVAILABLE)
        return {
            "status": "ok",
            "solutions": container.solutions.count(),
            "articles": container.articles.count(),
            "embedding_configured": container.embedder.is_configured,
            "harvester_state": state.worker_state.value,
            "warnings": warnings,
        }

    return app


def main():
    configure_logging()
    uvicorn.run(
        "src.web.app:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        reload=False,
    )


if __name__ == "__main__":
    main()
