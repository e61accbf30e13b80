"""Cal.com booking payloads."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from credit_ledger_api.core.errors import ExternalProviderError
from credit_ledger_api.domain.records import BookingSnapshot

PROVIDER_NAME = "cal.com"


def _ensure_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class CalAttendee(BaseModel):
    model_config = ConfigDict(extra="ignore")

    email: str | None = None
    name: str | None = None


class CalBooking(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    uid: str | None = None
    id: int | str | None = None
    title: str | None = None
    status: str | None = None
    start: datetime | None = None
    created_at: datetime | None = Field(default=None, alias="createdAt")
    attendees: list[CalAttendee] = Field(default_factory=list)

    @field_validator("start", "created_at", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("start", "created_at")
    @classmethod
    def _to_utc(cls, value: datetime | None) -> datetime | None:
        return _ensure_utc(value)

    @property
    def booking_id(self) -> str:
        if self.uid:
            return self.uid
        if self.id is not None:
            return str(self.id)
        return "unknown"


class CalBookingsEnvelope(BaseModel):
    """``{"status": "success", "data": [...]}`` or the legacy ``{"bookings": [...]}``."""

    model_config = ConfigDict(extra="allow")

    status: str | None = None
    message: str | None = None
    data: list[dict[str, Any]] | dict[str, Any] | None = None
    bookings: list[dict[str, Any]] | None = None
    error: Any = None


def parse_bookings_response(payload: Any, *, status_code: int | None = None) -> list[CalBooking]:
    """Map any accepted response shape onto booking models.

    Raises ``ExternalProviderError`` for error envelopes and for shapes that
    carry no booking list at all.
    """

    if isinstance(payload, list):
        raw_items = payload
    elif isinstance(payload, dict):
        try:
            envelope = CalBookingsEnvelope.model_validate(payload)
        except ValidationError as exc:
            raise ExternalProviderError(
                "Unrecognized bookings response",
                provider=PROVIDER_NAME,
                status_code=status_code,
                code="unexpected_response",
            ) from exc
        if (envelope.status or "").lower() == "error" or envelope.error:
            raise ExternalProviderError(
                _error_message(envelope),
                provider=PROVIDER_NAME,
                status_code=status_code,
                code="provider_error_response",
            )
        if isinstance(envelope.data, dict):
            raw_items = envelope.data.get("bookings") or []
        elif envelope.data is not None:
            raw_items = envelope.data
        elif envelope.bookings is not None:
            raw_items = envelope.bookings
        elif envelope.message:
            raise ExternalProviderError(
                envelope.message,
                provider=PROVIDER_NAME,
                status_code=status_code,
                code="provider_error_response",
            )
        else:
            raise ExternalProviderError(
                "Bookings response did not include a booking list",
                provider=PROVIDER_NAME,
                status_code=status_code,
                code="unexpected_response",
            )
    else:
        raise ExternalProviderError(
            "Unrecognized bookings response",
            provider=PROVIDER_NAME,
            status_code=status_code,
            code="unexpected_response",
        )

    bookings: list[CalBooking] = []
    for item in raw_items:
        if not isinstance(item, dict):
            continue
        try:
            bookings.append(CalBooking.model_validate(item))
        except ValidationError:
            # Unparseable timestamps are treated like missing ones.
            cleaned = {
                key: item[key] if key == "id" else str(item[key])
                for key in ("uid", "id", "title", "status")
                if isinstance(item.get(key), (str, int)) and not isinstance(item.get(key), bool)
            }
            bookings.append(CalBooking.model_validate(cleaned))
    return bookings


def _error_message(envelope: CalBookingsEnvelope) -> str:
    if isinstance(envelope.error, dict):
        message = envelope.error.get("message")
        if message:
            return str(message)
    if isinstance(envelope.error, str) and envelope.error:
        return envelope.error
    return envelope.message or "Scheduling provider returned an error"


def snapshot_from_booking(booking: CalBooking) -> BookingSnapshot:
    return BookingSnapshot(
        booking_id=booking.booking_id,
        status=booking.status,
        start=booking.start,
        created_at=booking.created_at,
        title=booking.title,
    )


__all__ = [
    "CalAttendee",
    "CalBooking",
    "CalBookingsEnvelope",
    "PROVIDER_NAME",
    "parse_bookings_response",
    "snapshot_from_booking",
]
