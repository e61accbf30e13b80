"""Count scheduling-provider bookings made since a purchase."""

from __future__ import annotations

from datetime import datetime

from loguru import logger

from credit_ledger_api.core.errors import ExternalProviderError, LedgerStorageError
from credit_ledger_api.domain.extractors import first_match, path
from credit_ledger_api.domain.identity import normalize_email
from credit_ledger_api.domain.records import BookingReconciliation, BookingSnapshot
from credit_ledger_api.observability.credits import get_credit_store
from credit_ledger_api.schemas.cal import snapshot_from_booking
from credit_ledger_api.services.ledger.store import BookingSnapshotRepository, ensure_aware
from credit_ledger_api.services.scheduling.cal_client import CalComClient

# A booking counts from its scheduled start; creation time is the fallback.
BOOKING_TIME_EXTRACTORS = (path("start"), path("created_at"))


def booking_time(booking: BookingSnapshot) -> datetime | None:
    return first_match(booking, BOOKING_TIME_EXTRACTORS)


def filter_since(
    bookings: list[BookingSnapshot],
    purchased_at: datetime | None,
) -> tuple[list[BookingSnapshot], list[dict[str, object]]]:
    """Keep bookings at or after ``purchased_at``; bookings with no timestamp become anomalies."""

    kept: list[BookingSnapshot] = []
    anomalies: list[dict[str, object]] = []
    boundary = ensure_aware(purchased_at) if purchased_at else None
    for booking in bookings:
        when = booking_time(booking)
        if when is None:
            anomalies.append({"booking_id": booking.booking_id, "reason": "missing_timestamp"})
            continue
        if boundary is None or ensure_aware(when) >= boundary:
            kept.append(booking)
    return kept, anomalies


class BookingReconciler:
    def __init__(
        self,
        client: CalComClient,
        snapshot_repository: BookingSnapshotRepository | None = None,
    ) -> None:
        self._client = client
        self._snapshots = snapshot_repository

    async def reconcile(self, scheduling_email: str, purchased_at: datetime | None) -> BookingReconciliation:
        identity = normalize_email(scheduling_email, field="cal_email")
        result = BookingReconciliation()
        store = get_credit_store()

        if not self._client.configured:
            result.error = ExternalProviderError(
                "Scheduling provider not configured",
                provider="cal.com",
                code="not_configured",
            )
            store.record_scheduling("skipped")
            return result

        result.queried = True
        try:
            page = await self._client.list_bookings(identity)
        except ExternalProviderError as exc:
            result.error = exc
            result.response_status = exc.status_code
            store.record_scheduling("failed")
            logger.warning(
                "Booking reconciliation degraded",
                code=exc.code,
                error=exc.message,
                status_code=exc.status_code,
            )
            return result

        snapshots = [snapshot_from_booking(booking) for booking in page.bookings]
        result.response_status = page.status_code
        result.total_fetched = len(snapshots)
        result.bookings, result.anomalies = filter_since(snapshots, purchased_at)

        for anomaly in result.anomalies:
            logger.warning("Booking has no start or creation time", booking_id=anomaly["booking_id"])

        if self._snapshots is not None and snapshots:
            try:
                await self._snapshots.upsert_many(identity, snapshots)
                await self._snapshots.commit()
            except LedgerStorageError as exc:
                logger.warning("Booking snapshot persistence failed", error=exc.message)

        store.record_scheduling("queried")
        logger.info(
            "Bookings reconciled",
            total_fetched=result.total_fetched,
            consumed=result.consumed_count,
            anomalies=len(result.anomalies),
        )
        return result


__all__ = ["BookingReconciler", "booking_time", "filter_since"]
