"""Typed views over the Stripe objects the ledger reads.

Stripe SDK objects are normalized to plain dictionaries with ``to_plain`` and
then validated into these models, so the resolver never pokes at raw SDK
attributes.
"""

from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any, Iterable, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from credit_ledger_api.core.errors import ExternalProviderError
from credit_ledger_api.domain.extractors import first_match, path
from credit_ledger_api.domain.packages import cents_to_amount
from credit_ledger_api.domain.records import InvoiceSummary, PurchaseRecord, PurchaseStrategy

QUALIFYING_PAYMENT_INTENT_STATUSES = frozenset({"succeeded", "requires_capture"})


def to_plain(value: Any) -> Any:
    """Recursively convert Stripe objects (or test fakes) into dicts and lists."""

    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Mapping):
        return {str(key): to_plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_plain(item) for item in value]
    if isinstance(value, SimpleNamespace):
        return {key: to_plain(item) for key, item in vars(value).items()}
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_plain(to_dict())
    return value


def list_data(response: Any) -> list[dict[str, Any]]:
    """Extract the ``data`` array from a Stripe list response."""

    plain = to_plain(response)
    if isinstance(plain, list):
        items = plain
    elif isinstance(plain, Mapping):
        items = plain.get("data") or []
    else:
        items = []
    return [item for item in items if isinstance(item, dict)]


def _timestamp(value: int | None) -> datetime:
    return datetime.fromtimestamp(int(value or 0), tz=timezone.utc)


class _StripeModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    @field_validator("metadata", mode="before", check_fields=False)
    @classmethod
    def _coerce_metadata(cls, value: Any) -> dict[str, str]:
        if not isinstance(value, Mapping):
            return {}
        return {str(key): str(item) for key, item in value.items() if item is not None}


def _expandable_id(value: Any) -> Any:
    if isinstance(value, Mapping):
        return value.get("id")
    return value


class StripeCustomer(_StripeModel):
    id: str
    email: str | None = None
    name: str | None = None


class StripeBillingDetails(BaseModel):
    model_config = ConfigDict(extra="ignore")

    email: str | None = None
    name: str | None = None


class StripePaymentIntent(_StripeModel):
    id: str
    amount: int = 0
    amount_received: int | None = None
    currency: str = "usd"
    status: str | None = None
    created: int = 0
    receipt_email: str | None = None
    description: str | None = None
    customer: str | None = None
    metadata: dict[str, str] = Field(default_factory=dict)

    @field_validator("customer", mode="before")
    @classmethod
    def _expand_customer(cls, value: Any) -> Any:
        return _expandable_id(value)

    @property
    def qualifies(self) -> bool:
        return (self.status or "") in QUALIFYING_PAYMENT_INTENT_STATUSES


class StripeCharge(_StripeModel):
    id: str
    amount: int = 0
    currency: str = "usd"
    status: str | None = None
    paid: bool = False
    created: int = 0
    receipt_email: str | None = None
    billing_details: StripeBillingDetails | None = None
    description: str | None = None
    customer: str | None = None
    payment_intent: str | None = None
    metadata: dict[str, str] = Field(default_factory=dict)

    @field_validator("customer", "payment_intent", mode="before")
    @classmethod
    def _expand_ids(cls, value: Any) -> Any:
        return _expandable_id(value)

    @property
    def qualifies(self) -> bool:
        return self.paid is True

    @property
    def contact_email(self) -> str | None:
        return first_match(self, [path("receipt_email"), path("billing_details", "email")])


class StripeCustomerDetails(BaseModel):
    model_config = ConfigDict(extra="ignore")

    email: str | None = None
    name: str | None = None


class StripeCheckoutSession(_StripeModel):
    id: str
    customer_email: str | None = None
    customer_details: StripeCustomerDetails | None = None
    amount_total: int | None = None
    currency: str | None = None
    payment_intent: str | None = None
    payment_status: str | None = None
    status: str | None = None
    created: int = 0
    metadata: dict[str, str] = Field(default_factory=dict)

    @field_validator("payment_intent", mode="before")
    @classmethod
    def _expand_payment_intent(cls, value: Any) -> Any:
        return _expandable_id(value)

    @property
    def contact_email(self) -> str | None:
        return first_match(self, [path("customer_details", "email"), path("customer_email")])


class StripeInvoice(_StripeModel):
    id: str
    number: str | None = None
    amount_due: int = 0
    amount_paid: int = 0
    currency: str = "usd"
    status: str | None = None
    paid: bool = False
    created: int | None = None
    hosted_invoice_url: str | None = None


class StripeEventData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    object: dict[str, Any] = Field(default_factory=dict)


class StripeEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    type: str
    data: StripeEventData = Field(default_factory=StripeEventData)


def validate_stripe(model: type[_StripeModel], payload: Any, *, strategy: str | None = None) -> Any:
    """Validate one Stripe object, raising ``malformed_response`` when it does not fit ``model``."""

    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise ExternalProviderError(
            f"Malformed Stripe {model.__name__} payload: {exc.error_count()} validation error(s)",
            provider="stripe",
            strategy=strategy,
            code="malformed_response",
        ) from exc


def parse_many(model: type[_StripeModel], response: Any, *, strategy: str | None = None) -> list[Any]:
    return [validate_stripe(model, item, strategy=strategy) for item in list_data(response)]


def purchase_from_payment_intent(
    intent: StripePaymentIntent,
    strategy: PurchaseStrategy,
    *,
    customer: StripeCustomer | None = None,
) -> PurchaseRecord:
    return PurchaseRecord(
        payment_id=intent.id,
        amount=cents_to_amount(intent.amount),
        currency=intent.currency.upper(),
        status=intent.status or "unknown",
        created_at=_timestamp(intent.created),
        strategy=strategy,
        description=intent.description,
        package_tag=intent.metadata.get("package"),
        customer_id=customer.id if customer else None,
        customer_name=customer.name if customer else None,
    )


def purchase_from_charge(
    charge: StripeCharge,
    strategy: PurchaseStrategy,
    *,
    customer: StripeCustomer | None = None,
) -> PurchaseRecord:
    return PurchaseRecord(
        payment_id=charge.id,
        amount=cents_to_amount(charge.amount),
        currency=charge.currency.upper(),
        status=charge.status or ("succeeded" if charge.paid else "unknown"),
        created_at=_timestamp(charge.created),
        strategy=strategy,
        description=charge.description,
        package_tag=charge.metadata.get("package"),
        customer_id=customer.id if customer else None,
        customer_name=customer.name if customer else None,
    )


def invoices_from_response(response: Any, *, strategy: str | None = None) -> list[InvoiceSummary]:
    summaries: list[InvoiceSummary] = []
    for invoice in parse_many(StripeInvoice, response, strategy=strategy):
        summaries.append(
            InvoiceSummary(
                invoice_id=invoice.id,
                number=invoice.number,
                amount_due=cents_to_amount(invoice.amount_due),
                amount_paid=cents_to_amount(invoice.amount_paid),
                paid=invoice.paid,
                hosted_invoice_url=invoice.hosted_invoice_url,
                currency=invoice.currency.upper(),
                status=invoice.status,
                created_at=_timestamp(invoice.created) if invoice.created else None,
            )
        )
    return summaries


def package_tag_from_sessions(sessions: Iterable[StripeCheckoutSession]) -> str | None:
    for session in sessions:
        tag = session.metadata.get("package")
        if tag:
            return tag
    return None


__all__ = [
    "QUALIFYING_PAYMENT_INTENT_STATUSES",
    "StripeCharge",
    "StripeCheckoutSession",
    "StripeCustomer",
    "StripeEvent",
    "StripeInvoice",
    "StripePaymentIntent",
    "invoices_from_response",
    "list_data",
    "package_tag_from_sessions",
    "parse_many",
    "purchase_from_charge",
    "purchase_from_payment_intent",
    "to_plain",
    "validate_stripe",
]
