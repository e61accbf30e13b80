from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from credit_ledger_api.core.settings import settings
from credit_ledger_api.db.base import Base
import credit_ledger_api.models  # noqa: F401 (register tables for create_all)
from credit_ledger_api.db.session import engine
from credit_ledger_api.domain.packages import PackageCatalog
from .api.routes import api_router
from .core.logging import configure_logging
from .observability.tracing import configure_tracing


APP_VERSION = "0.1.0"
SERVICE_NAME = "credit-ledger-api"


@asynccontextmanager
async def lifespan(app: FastAPI):
    catalog = PackageCatalog.from_settings(settings)
    logger.info("Package tiers loaded", tiers=catalog.describe(), tolerance=str(catalog.tolerance))

    if settings.db_auto_create:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Ledger tables ensured", database_url=engine.url.render_as_string(hide_password=True))
    else:
        logger.info("Ledger schema managed by migrations", reason="db_auto_create is false")

    if not settings.stripe_webhook_secret:
        logger.warning("Stripe webhook secret not configured; webhook deliveries will be rejected")
    if not settings.cal_api_key:
        logger.info("Cal.com reconciliation disabled", reason="cal_api_key is empty")

    try:
        yield
    finally:
        await engine.dispose()


def create_app() -> FastAPI:
    """Application factory for the credit ledger FastAPI service."""
    configure_logging(
        service_name=SERVICE_NAME,
        environment=settings.environment,
        version=APP_VERSION,
        level=settings.log_level,
    )

    app = FastAPI(
        title="Credit Ledger API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    if settings.tracing_enabled:
        configure_tracing(
            app,
            service_name=SERVICE_NAME,
            service_version=APP_VERSION,
            environment=settings.environment,
        )

    app.include_router(api_router)

    @app.get("/healthz", tags=["Health"])
    async def health_check() -> dict[str, str]:
        return {
            "status": "ok",
            "environment": settings.environment,
            "version": APP_VERSION,
        }

    return app
