"""Customer-facing credit status endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status

from credit_ledger_api.api.dependencies.services import get_credit_status_service, get_ledger_store
from credit_ledger_api.core.errors import ExternalProviderError, LedgerStorageError, LedgerValidationError
from credit_ledger_api.schemas.api import BalanceResponse, CreditStatusResponse
from credit_ledger_api.services.credits.status import CreditStatusService
from credit_ledger_api.services.ledger.store import LedgerStore

router = APIRouter(prefix="/credits", tags=["credits"])


@router.get("/status", response_model=CreditStatusResponse, summary="Last purchase, remaining credits and usage")
async def credit_status(
    email: str = Query(..., description="Email used for the payment"),
    cal_email: str | None = Query(default=None, description="Scheduling email when different"),
    service: CreditStatusService = Depends(get_credit_status_service),
) -> CreditStatusResponse:
    try:
        result = await service.get_status(email, cal_email)
    except LedgerValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": exc.message, "code": exc.code},
        ) from exc
    except ExternalProviderError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=exc.as_dict()) from exc
    return CreditStatusResponse.model_validate(result.as_dict())


@router.get("/balance", response_model=BalanceResponse, summary="Ledger balance only")
async def credit_balance(
    email: str = Query(...),
    store: LedgerStore = Depends(get_ledger_store),
) -> BalanceResponse:
    try:
        balance = await store.get_balance(email)
    except LedgerValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": exc.message, "code": exc.code},
        ) from exc
    except LedgerStorageError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=exc.message) from exc
    return BalanceResponse(email=email.strip().lower(), balance=balance)
