"""Request and response models for the credit endpoints."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class LedgerEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    customer_identity: str
    delta: int
    source: str
    external_id: str | None = None
    note: str | None = None
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class ManualAdjustmentRequest(BaseModel):
    email: str = Field(..., description="Customer email to adjust")
    delta: int = Field(..., description="Signed credit change, never zero")
    reason: str | None = Field(default=None, max_length=500, description="Shown on the ledger entry")

    @field_validator("delta")
    @classmethod
    def _non_zero(cls, value: int) -> int:
        if value == 0:
            raise ValueError("delta must be non-zero")
        return value


class ManualAdjustmentResponse(BaseModel):
    email: str
    delta: int
    balance: int
    entry: LedgerEntryResponse


class BalanceResponse(BaseModel):
    email: str
    balance: int


class BalanceListItem(BaseModel):
    email: str
    balance: int


class CreditStatusResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    found: bool
    email: str
    cal_email: str
    customer_id: str | None = None
    customer_name: str | None = None
    is_guest: bool = True
    payment: dict[str, Any] | None = None
    purchase_date: str | None = None
    package: dict[str, Any] | None = None
    remaining_credits: int | None = None
    completed_bookings_since_purchase: int = 0
    consumption_source: str = "none"
    bookings: list[dict[str, Any]] = Field(default_factory=list)
    bookings_count: int = 0
    invoices: list[dict[str, Any]] = Field(default_factory=list)
    diagnostics: dict[str, Any] = Field(default_factory=dict)


__all__ = [
    "BalanceListItem",
    "BalanceResponse",
    "CreditStatusResponse",
    "LedgerEntryResponse",
    "ManualAdjustmentRequest",
    "ManualAdjustmentResponse",
]
