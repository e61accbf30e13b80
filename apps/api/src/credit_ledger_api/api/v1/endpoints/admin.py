"""Operator endpoints for reviewing and correcting credits."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status

from credit_ledger_api.api.dependencies.security import admin_actor, require_admin_api_key
from credit_ledger_api.api.dependencies.services import get_adjustment_service, get_ledger_store
from credit_ledger_api.core.errors import LedgerStorageError, LedgerValidationError
from credit_ledger_api.schemas.api import (
    BalanceListItem,
    LedgerEntryResponse,
    ManualAdjustmentRequest,
    ManualAdjustmentResponse,
)
from credit_ledger_api.services.ledger.adjustments import ManualAdjustmentService
from credit_ledger_api.services.ledger.store import LedgerStore

router = APIRouter(
    prefix="/admin/credits",
    tags=["admin"],
    dependencies=[Depends(require_admin_api_key)],
)


@router.post("/adjustments", response_model=ManualAdjustmentResponse, status_code=status.HTTP_201_CREATED)
async def create_adjustment(
    payload: ManualAdjustmentRequest,
    actor: str = Depends(admin_actor),
    service: ManualAdjustmentService = Depends(get_adjustment_service),
) -> ManualAdjustmentResponse:
    try:
        result = await service.adjust(payload.email, payload.delta, payload.reason, actor)
    except LedgerValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": exc.message, "code": exc.code},
        ) from exc
    except LedgerStorageError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=exc.message) from exc

    return ManualAdjustmentResponse(
        email=result.entry.customer_identity,
        delta=result.entry.delta,
        balance=result.balance,
        entry=LedgerEntryResponse.model_validate(result.entry),
    )


@router.get("/entries", response_model=list[LedgerEntryResponse])
async def recent_entries(
    limit: int = Query(50, ge=1, le=500),
    email: str | None = Query(None, description="Only entries for this customer"),
    store: LedgerStore = Depends(get_ledger_store),
) -> list[LedgerEntryResponse]:
    try:
        if email:
            entries = await store.list_entries_for(email, limit)
        else:
            entries = await store.list_recent_entries(limit)
    except LedgerValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": exc.message, "code": exc.code},
        ) from exc
    except LedgerStorageError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=exc.message) from exc
    return [LedgerEntryResponse.model_validate(entry) for entry in entries]


@router.get("/balances", response_model=list[BalanceListItem])
async def balances(
    limit: int = Query(100, ge=1, le=1000),
    store: LedgerStore = Depends(get_ledger_store),
) -> list[BalanceListItem]:
    try:
        rows = await store.list_balances(limit)
    except LedgerStorageError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=exc.message) from exc
    return [BalanceListItem(email=email, balance=balance) for email, balance in rows.items()]
