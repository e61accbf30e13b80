"""Stripe ``checkout.session.completed`` ingestion into the credit ledger."""

from __future__ import annotations

from typing import Any

import stripe
from loguru import logger
from pydantic import ValidationError

from credit_ledger_api.core.errors import (
    LedgerValidationError,
    WebhookAuthenticationError,
    WebhookConfigurationError,
)
from credit_ledger_api.core.settings import settings
from credit_ledger_api.domain.extractors import first_match, path
from credit_ledger_api.domain.packages import PackageCatalog, cents_to_amount
from credit_ledger_api.models.ledger import LedgerSourceEnum
from credit_ledger_api.observability.credits import get_credit_store
from credit_ledger_api.schemas.stripe import StripeEvent, to_plain
from credit_ledger_api.services.ledger.store import LedgerStore

CHECKOUT_COMPLETED = "checkout.session.completed"

SESSION_EMAIL_EXTRACTORS = (
    path("customer_details", "email"),
    path("customer_email"),
)


class StripeWebhookIngestor:
    """Verifies, filters and credits Stripe checkout events."""

    def __init__(self, store: LedgerStore, catalog: PackageCatalog, *, webhook_secret: str | None = None) -> None:
        self._store = store
        self._catalog = catalog
        self._webhook_secret = settings.stripe_webhook_secret if webhook_secret is None else webhook_secret

    def verify(self, payload: bytes | str, signature: str | None) -> StripeEvent:
        if not self._webhook_secret:
            raise WebhookConfigurationError("Stripe webhook secret not configured")
        if not signature:
            raise WebhookAuthenticationError("Missing Stripe signature header", code="missing_signature")

        body = payload.decode("utf-8") if isinstance(payload, bytes) else payload
        try:
            event = stripe.Webhook.construct_event(payload=body, sig_header=signature, secret=self._webhook_secret)
        except stripe.SignatureVerificationError as exc:
            raise WebhookAuthenticationError("Invalid Stripe signature") from exc
        except ValueError as exc:
            raise WebhookAuthenticationError("Invalid payload body", code="invalid_payload") from exc

        try:
            return StripeEvent.model_validate(to_plain(event))
        except ValidationError as exc:
            raise WebhookAuthenticationError("Invalid payload body", code="invalid_payload") from exc

    async def handle(self, event: StripeEvent) -> dict[str, Any]:
        """Apply a verified event. The ledger write is committed before returning."""

        store = get_credit_store()
        if event.type != CHECKOUT_COMPLETED:
            store.record_webhook("ignored", event_type=event.type)
            logger.info("Stripe event ignored", event_type=event.type, event_id=event.id)
            return {"received": True, "ignored": event.type}

        session = event.data.object
        session_id = session.get("id")
        if not session_id:
            store.record_webhook("rejected", event_type=event.type, error="missing_session_id")
            raise LedgerValidationError("Checkout session has no id", code="missing_session_id")

        email = first_match(session, SESSION_EMAIL_EXTRACTORS)
        if not email:
            store.record_webhook("rejected", event_type=event.type, session_id=session_id, error="missing_email")
            raise LedgerValidationError("No customer email found on session", code="missing_email")

        metadata = session.get("metadata") or {}
        tag = metadata.get("package") if isinstance(metadata, dict) else None
        classification = self._catalog.classify(
            tag=str(tag) if tag is not None else None,
            amount=cents_to_amount(session.get("amount_total")),
        )

        try:
            result = await self._store.append_entry(
                str(email),
                classification.credits,
                LedgerSourceEnum.STRIPE,
                external_id=str(session_id),
            )
            if not result.duplicate:
                await self._store.commit()
        except LedgerValidationError as exc:
            store.record_webhook("rejected", event_type=event.type, session_id=session_id, error=exc.code)
            raise
        except Exception as exc:
            store.record_webhook("failed", event_type=event.type, session_id=session_id, error=str(exc))
            raise

        if result.duplicate:
            store.record_webhook("duplicate", event_type=event.type, session_id=session_id)
            return {"received": True, "duplicate": True}

        store.record_webhook("credited", event_type=event.type, session_id=session_id)
        logger.info(
            "Stripe checkout credited",
            session_id=session_id,
            customer_identity=result.entry.customer_identity,
            credits=classification.credits,
            package_id=classification.package_id,
            matched_by=classification.method,
        )
        return {
            "received": True,
            "email": result.entry.customer_identity,
            "credits_added": classification.credits,
            "session_id": session_id,
            "package": classification.package_id,
        }

    async def ingest(self, payload: bytes | str, signature: str | None) -> dict[str, Any]:
        try:
            event = self.verify(payload, signature)
        except (WebhookConfigurationError, WebhookAuthenticationError) as exc:
            get_credit_store().record_webhook("rejected", error=exc.code)
            logger.warning("Stripe webhook rejected", code=exc.code, error=exc.message)
            raise
        return await self.handle(event)


__all__ = ["CHECKOUT_COMPLETED", "StripeWebhookIngestor"]
