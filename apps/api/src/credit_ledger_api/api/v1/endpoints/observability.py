"""Observability endpoints for webhook ingestion and purchase lookups."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from credit_ledger_api.api.dependencies.security import require_admin_api_key
from credit_ledger_api.observability.credits import get_credit_store


router = APIRouter(prefix="/observability", tags=["Observability"])


@router.get(
    "/credits",
    dependencies=[Depends(require_admin_api_key)],
    summary="Credit ledger observability snapshot",
)
async def get_credit_snapshot() -> dict[str, object]:
    """Webhook outcomes and resolver strategy counters (requires admin API key)."""
    return get_credit_store().snapshot().as_dict()
