"""Credit status lookup: purchase, remaining credits and usage since purchase."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from loguru import logger

from credit_ledger_api.core.errors import ExternalProviderError, LedgerStorageError
from credit_ledger_api.domain.identity import normalize_email
from credit_ledger_api.domain.records import BookingReconciliation, ResolutionOutcome
from credit_ledger_api.services.ledger.store import BookingSnapshotRepository, LedgerStore
from credit_ledger_api.services.payments.resolver import PaymentResolutionError, PaymentResolver
from credit_ledger_api.services.scheduling.reconciler import BookingReconciler

ConsumptionSource = Literal["ledger", "scheduling_provider", "booking_snapshots", "none"]


@dataclass(slots=True)
class CreditStatus:
    email: str
    cal_email: str
    outcome: ResolutionOutcome
    remaining_credits: int | None = None
    consumed: int = 0
    consumption_source: ConsumptionSource = "none"
    reconciliation: BookingReconciliation = field(default_factory=BookingReconciliation)
    resolver_error: ExternalProviderError | None = None
    ledger_error: LedgerStorageError | None = None

    def as_dict(self) -> dict[str, Any]:
        purchase = self.outcome.purchase
        package = purchase.package if purchase else None
        return {
            "found": self.outcome.found,
            "email": self.email,
            "cal_email": self.cal_email,
            "customer_id": self.outcome.customer_id,
            "customer_name": self.outcome.customer_name,
            "is_guest": self.outcome.customer_id is None,
            "payment": purchase.as_payment_dict() if purchase else None,
            "purchase_date": purchase.created_at.isoformat() if purchase else None,
            "package": package.as_dict() if package else None,
            "remaining_credits": self.remaining_credits,
            "completed_bookings_since_purchase": self.consumed,
            "consumption_source": self.consumption_source,
            "bookings": [booking.as_dict() for booking in self.reconciliation.bookings],
            "bookings_count": self.reconciliation.consumed_count,
            "invoices": [invoice.as_dict() for invoice in self.outcome.invoices],
            "diagnostics": {
                "strategies_attempted": self.outcome.strategies_attempted,
                "matched_strategy": purchase.strategy if purchase else None,
                "stripe_errors": [error.as_dict() for error in self.outcome.errors],
                "resolver_error": self.resolver_error.as_dict() if self.resolver_error else None,
                "scheduling": self.reconciliation.diagnostics(),
                "ledger_error": self.ledger_error.message if self.ledger_error else None,
            },
        }


class CreditStatusService:
    """Runs resolver, then reconciler, then ledger reads for one customer.

    Provider failures degrade into diagnostics. Only a resolver that failed
    every strategy together with an unreadable ledger is raised.
    """

    def __init__(
        self,
        ledger: LedgerStore,
        resolver: PaymentResolver,
        reconciler: BookingReconciler,
        snapshots: BookingSnapshotRepository | None = None,
    ) -> None:
        self._ledger = ledger
        self._resolver = resolver
        self._reconciler = reconciler
        self._snapshots = snapshots

    async def get_status(self, email: str, cal_email: str | None = None) -> CreditStatus:
        identity = normalize_email(email)
        scheduling_identity = normalize_email(cal_email, field="cal_email") if cal_email else identity

        resolver_error: ExternalProviderError | None = None
        try:
            outcome = await self._resolver.resolve(identity)
        except PaymentResolutionError as exc:
            resolver_error = exc
            outcome = exc.outcome

        status = CreditStatus(
            email=identity,
            cal_email=scheduling_identity,
            outcome=outcome,
            resolver_error=resolver_error,
        )

        try:
            status.remaining_credits = await self._ledger.get_balance(identity)
        except LedgerStorageError as exc:
            status.ledger_error = exc
            logger.error("Ledger balance unavailable", error=exc.message)

        if resolver_error is not None and status.ledger_error is not None:
            raise resolver_error

        purchase = outcome.purchase
        if purchase is None:
            return status

        status.reconciliation = await self._reconciler.reconcile(scheduling_identity, purchase.created_at)
        await self._apply_consumption(status, purchase.created_at)
        logger.info(
            "Credit status resolved",
            strategy=purchase.strategy,
            remaining_credits=status.remaining_credits,
            consumed=status.consumed,
            consumption_source=status.consumption_source,
        )
        return status

    async def _apply_consumption(self, status: CreditStatus, since) -> None:
        ledger_count = 0
        if status.ledger_error is None:
            try:
                ledger_count = await self._ledger.count_consumption_since(status.email, since)
            except LedgerStorageError as exc:
                status.ledger_error = exc
                logger.error("Ledger consumption count unavailable", error=exc.message)

        if ledger_count > 0:
            status.consumed, status.consumption_source = ledger_count, "ledger"
            return

        provider_count = status.reconciliation.consumed_count
        if provider_count > 0:
            status.consumed, status.consumption_source = provider_count, "scheduling_provider"
            return

        if self._snapshots is not None:
            try:
                snapshot_count = await self._snapshots.count_since(status.cal_email, since)
            except LedgerStorageError as exc:
                logger.warning("Booking snapshot count unavailable", error=exc.message)
                snapshot_count = 0
            if snapshot_count > 0:
                status.consumed, status.consumption_source = snapshot_count, "booking_snapshots"
                return

        if status.ledger_error is None:
            status.consumption_source = "ledger"


__all__ = ["CreditStatus", "CreditStatusService"]
