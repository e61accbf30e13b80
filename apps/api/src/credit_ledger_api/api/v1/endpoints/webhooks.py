"""Stripe webhook endpoint."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, status

from credit_ledger_api.api.dependencies.services import get_webhook_ingestor
from credit_ledger_api.core.errors import (
    LedgerStorageError,
    LedgerValidationError,
    WebhookAuthenticationError,
    WebhookConfigurationError,
)
from credit_ledger_api.services.billing.webhooks import StripeWebhookIngestor

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/stripe", summary="Credit the ledger from a Stripe checkout event")
async def stripe_webhook(
    request: Request,
    ingestor: StripeWebhookIngestor = Depends(get_webhook_ingestor),
) -> dict[str, Any]:
    payload = await request.body()
    signature = request.headers.get("Stripe-Signature")

    try:
        return await ingestor.ingest(payload, signature)
    except WebhookConfigurationError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=exc.message) from exc
    except WebhookAuthenticationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message) from exc
    except LedgerValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": exc.message, "code": exc.code},
        ) from exc
    except LedgerStorageError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="DB insert failed") from exc
