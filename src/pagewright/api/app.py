"""FastAPI application factory for the pagewright relay."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from pagewright.config.credentials import CredentialResolver
    from pagewright.config.schema import PagewrightConfig
    from pagewright.providers.manager import ProviderFactory

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Lifespan handler: build the credential chain and provider manager."""
    from pagewright.api.relay import RELAY_EXCLUDED
    from pagewright.config.credentials import default_resolver
    from pagewright.providers.manager import ProviderManager

    config: PagewrightConfig = app.state.config
    if app.state.resolver is None:
        app.state.resolver = default_resolver(config)

    app.state.provider_manager = ProviderManager(
        config,
        app.state.resolver,
        factory=app.state.provider_factory,
        exclude=RELAY_EXCLUDED,
    )
    logger.info(
        "Relay ready at %s; available providers: %s",
        config.relay.base_path,
        ", ".join(app.state.provider_manager.get_available_providers()) or "(none)",
    )

    yield


def create_app(
    config: PagewrightConfig | None = None,
    *,
    resolver: CredentialResolver | None = None,
    factory: ProviderFactory | None = None,
) -> FastAPI:
    """Create and configure the relay application."""
    from pagewright import __version__
    from pagewright.config.loader import load_config
    from pagewright.providers.factory import create_provider

    if config is None:
        config = load_config()

    app = FastAPI(
        title="pagewright",
        description="AI relay for the pagewright site builder",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.resolver = resolver
    app.state.provider_factory = factory or create_provider

    from fastapi.middleware.cors import CORSMiddleware

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.relay.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from pagewright.api.health import router as health_router
    from pagewright.api.relay import create_relay_router

    app.include_router(create_relay_router(config.relay.base_path))
    app.include_router(health_router)

    return app
