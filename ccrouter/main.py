import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import APIRouter, FastAPI

from ccrouter import __version__
from ccrouter.api.endpoints import register_transformer_routes
from ccrouter.api.endpoints import router as api_router
from ccrouter.api.services.container import Services, build_services
from ccrouter.core.config import config
from ccrouter.core.logging import configure_root_logging

logger = logging.getLogger(__name__)


def create_app(services: Services | None = None) -> FastAPI:
    """Build the FastAPI application around a service container.

    Transformer end points are registered from the container's transformer
    registry, so the container is built before the routes are.
    """
    if services is None:
        services = build_services()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await services.startup()
        try:
            yield
        finally:
            await services.aclose()
            logger.info("Services shut down")

    app = FastAPI(title="Claude Code Router", version=__version__, lifespan=lifespan)
    app.state.services = services

    transformer_router = APIRouter()
    register_transformer_routes(transformer_router, services)
    app.include_router(api_router)
    app.include_router(transformer_router)
    return app


def main() -> None:
    log_level = configure_root_logging().lower()

    logger.info(f"Claude Code Router v{__version__}")
    logger.info(f"Config file: {config.config_file}")
    logger.info(f"Server: {config.host}:{config.port}")

    uvicorn.run(
        "ccrouter.main:create_app",
        factory=True,
        host=config.host,
        port=config.port,
        log_level=log_level,
        access_log=log_level == "debug",
        reload=False,
    )


if __name__ == "__main__":
    main()
