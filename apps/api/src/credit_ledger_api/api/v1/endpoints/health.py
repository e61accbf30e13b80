from __future__ import annotations

from typing import Dict, Literal

from fastapi import APIRouter, Depends
from loguru import logger
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from credit_ledger_api.core.settings import settings
from credit_ledger_api.db.session import get_session
from credit_ledger_api.models.ledger import LedgerEntry


router = APIRouter()


class ComponentStatus(BaseModel):
    status: Literal["ready", "disabled", "error", "degraded"]
    detail: str | None = Field(default=None, description="Human readable status detail")


class ReadinessPayload(BaseModel):
    status: Literal["ready", "degraded", "error"]
    components: Dict[str, ComponentStatus]


@router.get("/healthz", summary="Service health check")
async def service_health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/health/healthz", include_in_schema=False)
async def service_health_alias() -> dict[str, str]:
    """Backward-compatible alias under /health."""

    return await service_health()


@router.get("/readyz", summary="Service readiness", response_model=ReadinessPayload)
async def service_readiness(session: AsyncSession = Depends(get_session)) -> ReadinessPayload:
    components: Dict[str, ComponentStatus] = {}
    status: Literal["ready", "degraded", "error"] = "ready"

    try:
        await session.execute(select(LedgerEntry.id).limit(1))
        components["ledger"] = ComponentStatus(status="ready")
    except SQLAlchemyError as error:
        logger.warning("Ledger readiness probe failed", error=str(error))
        components["ledger"] = ComponentStatus(status="error", detail=f"Ledger unavailable ({error.__class__.__name__})")
        status = "error"

    if settings.stripe_webhook_secret:
        components["stripe_webhooks"] = ComponentStatus(status="ready")
    else:
        components["stripe_webhooks"] = ComponentStatus(
            status="error",
            detail="Stripe webhook secret not configured",
        )
        status = "error" if status == "error" else "degraded"

    if settings.stripe_secret_key:
        components["stripe_lookup"] = ComponentStatus(status="ready")
    else:
        components["stripe_lookup"] = ComponentStatus(
            status="degraded",
            detail="Stripe secret key not configured (purchase lookups will report errors)",
        )
        status = "error" if status == "error" else "degraded"

    if settings.cal_api_key:
        components["scheduling"] = ComponentStatus(status="ready")
    else:
        components["scheduling"] = ComponentStatus(
            status="disabled",
            detail="Cal.com API key not configured (booking reconciliation skipped)",
        )

    return ReadinessPayload(status=status, components=components)


@router.get("/health/readyz", include_in_schema=False, response_model=ReadinessPayload)
async def service_readiness_alias(session: AsyncSession = Depends(get_session)) -> ReadinessPayload:
    """Backward-compatible alias for readiness checks under /health."""

    return await service_readiness(session)
