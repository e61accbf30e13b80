"""Derived views recomputed on every status query."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Literal

from credit_ledger_api.core.errors import ExternalProviderError
from credit_ledger_api.domain.packages import PackageClassification

PurchaseStrategy = Literal[
    "payment_intent",
    "charge",
    "payment_intent_guest",
    "charge_guest",
    "checkout_session",
]


@dataclass(slots=True)
class PurchaseRecord:
    """Most recent qualifying payment found for a customer."""

    payment_id: str
    amount: Decimal
    currency: str
    status: str
    created_at: datetime
    strategy: PurchaseStrategy
    description: str | None = None
    package_tag: str | None = None
    customer_id: str | None = None
    customer_name: str | None = None
    package: PackageClassification | None = None

    @property
    def is_guest(self) -> bool:
        return self.customer_id is None

    def as_payment_dict(self) -> dict[str, Any]:
        return {
            "id": self.payment_id,
            "amount": float(self.amount),
            "currency": self.currency,
            "status": self.status,
            "created": self.created_at.isoformat(),
            "strategy": self.strategy,
        }


@dataclass(slots=True)
class BookingSnapshot:
    """A scheduling-provider booking as seen at query time."""

    booking_id: str
    status: str | None
    start: datetime | None
    created_at: datetime | None
    title: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.booking_id,
            "status": self.status,
            "title": self.title,
            "start": self.start.isoformat() if self.start else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass(slots=True)
class InvoiceSummary:
    invoice_id: str
    amount_paid: Decimal
    currency: str
    status: str | None
    created_at: datetime | None
    number: str | None = None
    amount_due: Decimal = Decimal("0")
    paid: bool = False
    hosted_invoice_url: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.invoice_id,
            "number": self.number,
            "amount_due": float(self.amount_due),
            "amount_paid": float(self.amount_paid),
            "currency": self.currency,
            "status": self.status,
            "created": self.created_at.isoformat() if self.created_at else None,
            "paid": self.paid,
            "hosted_invoice_url": self.hosted_invoice_url,
        }


@dataclass(slots=True)
class StrategyAttempt:
    """Outcome of one resolver strategy."""

    name: str
    matched: bool = False
    error: ExternalProviderError | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    def as_dict(self) -> dict[str, Any]:
        return {
            "strategy": self.name,
            "matched": self.matched,
            "error": self.error.as_dict() if self.error else None,
        }


@dataclass(slots=True)
class ResolutionOutcome:
    """Resolver result. ``found`` is False when every strategy ran cleanly without a match."""

    email: str
    purchase: PurchaseRecord | None = None
    attempts: list[StrategyAttempt] = field(default_factory=list)
    invoices: list[InvoiceSummary] = field(default_factory=list)
    customer_id: str | None = None
    customer_name: str | None = None
    invoice_error: ExternalProviderError | None = None

    @property
    def found(self) -> bool:
        return self.purchase is not None

    @property
    def errors(self) -> list[ExternalProviderError]:
        errors = [attempt.error for attempt in self.attempts if attempt.error is not None]
        if self.invoice_error is not None:
            errors.append(self.invoice_error)
        return errors

    @property
    def strategies_attempted(self) -> list[str]:
        return [attempt.name for attempt in self.attempts]


@dataclass(slots=True)
class BookingReconciliation:
    """Bookings made at or after a purchase."""

    bookings: list[BookingSnapshot] = field(default_factory=list)
    total_fetched: int = 0
    anomalies: list[dict[str, Any]] = field(default_factory=list)
    queried: bool = False
    error: ExternalProviderError | None = None
    response_status: int | None = None

    @property
    def consumed_count(self) -> int:
        return len(self.bookings)

    def diagnostics(self) -> dict[str, Any]:
        return {
            "queried": self.queried,
            "error": self.error.as_dict() if self.error else None,
            "response_status": self.response_status,
            "total_fetched": self.total_fetched,
            "anomalies": list(self.anomalies),
        }


__all__ = [
    "BookingReconciliation",
    "BookingSnapshot",
    "InvoiceSummary",
    "PurchaseRecord",
    "PurchaseStrategy",
    "ResolutionOutcome",
    "StrategyAttempt",
]
