"""Find a customer's most recent qualifying purchase in Stripe.

Strategies run in a fixed order and the first match wins:

``registered_customer``
    Customer lookup by email, then that customer's newest qualifying
    PaymentIntent, then newest paid Charge. Invoices are collected on the way.
``payment_intent_receipt_email``
    Recent PaymentIntents whose ``receipt_email`` matches (guest checkout).
``charge_receipt_email``
    Recent Charges whose ``receipt_email`` or billing email matches.
``checkout_session``
    Recent Checkout Sessions for the email; the referenced PaymentIntent is
    retrieved and accepted when it qualifies.

Each strategy runs inside its own guard so one provider failure only costs
that strategy. ``resolve`` raises only when every strategy failed.
"""

from __future__ import annotations

from typing import Awaitable, Callable

from loguru import logger

from credit_ledger_api.core.errors import ExternalProviderError
from credit_ledger_api.domain.identity import emails_match, normalize_email
from credit_ledger_api.domain.packages import PackageCatalog, PackageClassification
from credit_ledger_api.domain.records import PurchaseRecord, ResolutionOutcome, StrategyAttempt
from credit_ledger_api.observability.credits import get_credit_store
from credit_ledger_api.schemas.stripe import (
    StripeCharge,
    StripeCheckoutSession,
    StripePaymentIntent,
    invoices_from_response,
    package_tag_from_sessions,
    purchase_from_charge,
    purchase_from_payment_intent,
    validate_stripe,
)
from credit_ledger_api.services.payments.stripe_gateway import PROVIDER_NAME, StripeGateway

REGISTERED_CUSTOMER_HISTORY_LIMIT = 10
_SESSION_BACKED_STRATEGIES = frozenset({"payment_intent", "payment_intent_guest", "checkout_session"})

Strategy = Callable[[str, ResolutionOutcome], Awaitable[PurchaseRecord | None]]


class PaymentResolutionError(ExternalProviderError):
    """Every resolver strategy failed; ``outcome`` keeps the partial results."""

    def __init__(self, outcome: ResolutionOutcome) -> None:
        failed = ", ".join(attempt.name for attempt in outcome.attempts)
        super().__init__(
            f"All payment lookup strategies failed ({failed})",
            provider=PROVIDER_NAME,
            code="all_strategies_failed",
        )
        self.outcome = outcome


class PaymentResolver:
    def __init__(self, gateway: StripeGateway, catalog: PackageCatalog) -> None:
        self._gateway = gateway
        self._catalog = catalog

    def _strategies(self) -> list[tuple[str, Strategy]]:
        return [
            ("registered_customer", self._registered_customer),
            ("payment_intent_receipt_email", self._payment_intent_by_receipt_email),
            ("charge_receipt_email", self._charge_by_receipt_email),
            ("checkout_session", self._checkout_session),
        ]

    async def resolve(self, email: str) -> ResolutionOutcome:
        identity = normalize_email(email)
        outcome = ResolutionOutcome(email=identity)

        for name, strategy in self._strategies():
            attempt = StrategyAttempt(name=name)
            outcome.attempts.append(attempt)
            try:
                purchase = await strategy(identity, outcome)
            except ExternalProviderError as exc:
                if exc.strategy is None:
                    exc.strategy = name
                attempt.error = exc
                logger.warning(
                    "Payment lookup strategy failed",
                    strategy=name,
                    code=exc.code,
                    error=exc.message,
                )
                continue
            if purchase is None:
                continue

            attempt.matched = True
            purchase.package = await self.classify(purchase)
            outcome.purchase = purchase
            logger.info(
                "Payment lookup matched",
                strategy=name,
                payment_id=purchase.payment_id,
                package_id=purchase.package.package_id,
            )
            break

        failed = [attempt.name for attempt in outcome.attempts if attempt.failed]
        store = get_credit_store()
        if not outcome.found and outcome.attempts and len(failed) == len(outcome.attempts):
            error = PaymentResolutionError(outcome)
            store.record_lookup(matched_strategy=None, failed_strategies=failed, error=error.message)
            raise error

        store.record_lookup(
            matched_strategy=outcome.purchase.strategy if outcome.purchase else None,
            failed_strategies=failed,
        )
        return outcome

    async def classify(self, purchase: PurchaseRecord) -> PackageClassification:
        """Metadata tag, then the creating checkout session's tag, then description, then amount."""

        tag = (purchase.package_tag or "").strip() or None
        if tag is None and purchase.strategy in _SESSION_BACKED_STRATEGIES:
            try:
                sessions = await self._gateway.list_checkout_sessions(
                    payment_intent=purchase.payment_id,
                    limit=1,
                    strategy="package_lookup",
                )
            except ExternalProviderError as exc:
                logger.warning(
                    "Checkout session package lookup failed",
                    payment_id=purchase.payment_id,
                    error=exc.message,
                )
                sessions = []
            tag = package_tag_from_sessions(sessions)
        return self._catalog.classify(tag=tag, amount=purchase.amount, description=purchase.description)

    async def _registered_customer(self, email: str, outcome: ResolutionOutcome) -> PurchaseRecord | None:
        customer = await self._gateway.find_customer(email, strategy="registered_customer")
        if customer is None:
            return None
        outcome.customer_id = customer.id
        outcome.customer_name = customer.name

        try:
            outcome.invoices = invoices_from_response(
                await self._gateway.list_invoices(customer.id, strategy="registered_customer"),
                strategy="registered_customer",
            )
        except ExternalProviderError as exc:
            outcome.invoice_error = exc
            logger.warning("Invoice lookup failed", customer_id=customer.id, error=exc.message)

        for raw in await self._gateway.list_payment_intents(
            customer=customer.id,
            limit=REGISTERED_CUSTOMER_HISTORY_LIMIT,
            strategy="registered_customer",
        ):
            intent = validate_stripe(StripePaymentIntent, raw, strategy="registered_customer")
            if intent.qualifies:
                return purchase_from_payment_intent(intent, "payment_intent", customer=customer)

        for raw in await self._gateway.list_charges(
            customer=customer.id,
            limit=REGISTERED_CUSTOMER_HISTORY_LIMIT,
            strategy="registered_customer",
        ):
            charge = validate_stripe(StripeCharge, raw, strategy="registered_customer")
            if charge.qualifies:
                return purchase_from_charge(charge, "charge", customer=customer)
        return None

    async def _payment_intent_by_receipt_email(
        self, email: str, outcome: ResolutionOutcome
    ) -> PurchaseRecord | None:
        for raw in await self._gateway.list_payment_intents(strategy="payment_intent_receipt_email"):
            intent = validate_stripe(StripePaymentIntent, raw, strategy="payment_intent_receipt_email")
            if not emails_match(intent.receipt_email, email):
                continue
            if intent.qualifies:
                return purchase_from_payment_intent(intent, "payment_intent_guest")
        return None

    async def _charge_by_receipt_email(self, email: str, outcome: ResolutionOutcome) -> PurchaseRecord | None:
        for raw in await self._gateway.list_charges(strategy="charge_receipt_email"):
            charge = validate_stripe(StripeCharge, raw, strategy="charge_receipt_email")
            if not emails_match(charge.contact_email, email):
                continue
            if charge.qualifies:
                return purchase_from_charge(charge, "charge_guest")
        return None

    async def _checkout_session(self, email: str, outcome: ResolutionOutcome) -> PurchaseRecord | None:
        sessions = await self._gateway.list_checkout_sessions(strategy="checkout_session")
        for session in sessions:
            if not emails_match(session.contact_email, email) or not session.payment_intent:
                continue
            try:
                intent = await self._gateway.retrieve_payment_intent(
                    session.payment_intent,
                    strategy="checkout_session",
                )
            except ExternalProviderError as exc:
                logger.warning(
                    "Checkout session payment intent lookup failed",
                    session_id=session.id,
                    payment_intent=session.payment_intent,
                    error=exc.message,
                )
                continue
            if intent.qualifies:
                purchase = purchase_from_payment_intent(intent, "checkout_session")
                if purchase.package_tag is None:
                    purchase.package_tag = _session_tag(session)
                return purchase
        return None


def _session_tag(session: StripeCheckoutSession) -> str | None:
    return session.metadata.get("package") or None


__all__ = ["PaymentResolutionError", "PaymentResolver"]
