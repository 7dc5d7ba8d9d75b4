"""
FastAPI Application Entry Point
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from callpilot.api.v1.endpoints import health
from callpilot.api.v1.routes import api_router
from callpilot.core.config import ConfigManager, Settings, get_settings
from callpilot.domain.services.call_session_engine import CallSessionEngine
from callpilot.domain.services.session_registry import SessionRegistry
from callpilot.domain.services.tenant_context import TenantContext
from callpilot.domain.services.webhook_urls import WebhookURLResolver
from callpilot.infrastructure.encryption import CredentialEncryptionService
from callpilot.infrastructure.storage.audio_store import AudioStore
from callpilot.infrastructure.storage.config_store import TenantConfigStore

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan - startup and shutdown events.

    Startup:
    - Starts the idle-session sweep

    Shutdown:
    - Drops all live sessions
    - Closes every tenant's conversation store
    """
    logger.info("Starting CallPilot...")
    await app.state.registry.start()
    logger.info("CallPilot started successfully")

    yield  # Application is running

    logger.info("Shutting down CallPilot...")
    try:
        await app.state.registry.shutdown()
        app.state.tenants.close()
    except Exception as e:
        logger.error(f"Error during shutdown: {e}", exc_info=True)
    logger.info("CallPilot shutdown complete")


def create_app(settings: Optional[Settings] = None, tenants: Optional[TenantContext] = None) -> FastAPI:
    """
    Build the application and its shared services.

    Tests pass their own settings and a TenantContext wired to fake providers.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    prompts = ConfigManager(settings.environment, settings.config_dir).get_prompts()
    if tenants is None:
        encryption = CredentialEncryptionService(settings.encryption_key, settings.old_encryption_keys)
        tenants = TenantContext(settings, TenantConfigStore(settings.data_dir, encryption))

    registry = SessionRegistry(
        idle_timeout_seconds=settings.session_idle_timeout_seconds,
        sweep_interval_seconds=settings.session_sweep_interval_seconds,
    )
    resolver = WebhookURLResolver(settings.public_base_url, settings.api_prefix)
    engine = CallSessionEngine(
        tenants=tenants,
        registry=registry,
        resolver=resolver,
        audio_store=AudioStore(settings.data_dir),
        prompts=prompts,
        gateway_timeout_seconds=settings.gateway_timeout_seconds,
        max_turn_errors=settings.max_turn_errors,
        max_silent_prompts=settings.max_silent_prompts,
    )

    app = FastAPI(
        title="CallPilot",
        description="Multi-tenant AI voice call orchestration",
        version="1.0.0",
        debug=settings.debug,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.tenants = tenants
    app.state.registry = registry
    app.state.resolver = resolver
    app.state.engine = engine

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router)
    app.include_router(api_router, prefix=settings.api_prefix)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("callpilot.main:app", host="0.0.0.0", port=8000, reload=True)
