from __future__ import annotations

from datetime import datetime, timezone

import httpx
import pytest

from credit_ledger_api.domain.records import BookingSnapshot
from credit_ledger_api.services.ledger.store import BookingSnapshotRepository
from credit_ledger_api.services.scheduling.cal_client import CalComClient
from credit_ledger_api.services.scheduling.reconciler import BookingReconciler, filter_since

PURCHASED_AT = datetime(2026, 10, 1, 12, tzinfo=timezone.utc)


def _snapshot(booking_id: str, *, start=None, created_at=None) -> BookingSnapshot:
    return BookingSnapshot(booking_id=booking_id, status="accepted", start=start, created_at=created_at)


def test_filter_since_boundary_is_inclusive() -> None:
    bookings = [
        _snapshot("exact", start=PURCHASED_AT),
        _snapshot("before", start=datetime(2026, 9, 30, tzinfo=timezone.utc)),
        _snapshot("created_only", created_at=datetime(2026, 10, 2, tzinfo=timezone.utc)),
        _snapshot("naive", start=datetime(2026, 10, 3, 9)),
    ]

    kept, anomalies = filter_since(bookings, PURCHASED_AT)

    assert [booking.booking_id for booking in kept] == ["exact", "created_only", "naive"]
    assert anomalies == []


def test_filter_since_flags_bookings_without_timestamps() -> None:
    kept, anomalies = filter_since([_snapshot("ghost")], PURCHASED_AT)

    assert kept == []
    assert anomalies == [{"booking_id": "ghost", "reason": "missing_timestamp"}]


def test_filter_since_without_purchase_date_keeps_everything() -> None:
    kept, _ = filter_since([_snapshot("old", start=datetime(2020, 1, 1, tzinfo=timezone.utc))], None)

    assert len(kept) == 1


def _cal_client(payload) -> CalComClient:
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json=payload))
    return CalComClient("cal_test_key", http_client=httpx.AsyncClient(transport=transport))


@pytest.mark.asyncio
async def test_reconcile_counts_and_persists_snapshots(session_factory, reset_credit_store):
    payload = {
        "status": "success",
        "data": [
            {"uid": "bk_after", "status": "accepted", "start": "2026-10-04T10:00:00Z"},
            {"uid": "bk_before", "status": "accepted", "start": "2026-09-20T10:00:00Z"},
            {"uid": "bk_undated", "status": "cancelled"},
        ],
    }

    async with session_factory() as session:
        repository = BookingSnapshotRepository(session, counted_statuses=["accepted"])
        reconciler = BookingReconciler(_cal_client(payload), snapshot_repository=repository)

        result = await reconciler.reconcile("Client@Example.com", PURCHASED_AT)
        persisted = await repository.count_since("client@example.com", PURCHASED_AT)

    assert result.queried is True
    assert result.total_fetched == 3
    assert result.consumed_count == 1
    assert result.anomalies == [{"booking_id": "bk_undated", "reason": "missing_timestamp"}]
    assert result.diagnostics()["response_status"] == 200
    assert persisted == 1
    assert reset_credit_store.snapshot().scheduling_totals == {"queried": 1}


@pytest.mark.asyncio
async def test_reconcile_degrades_on_provider_error(reset_credit_store):
    reconciler = BookingReconciler(_cal_client({"status": "error", "error": "invalid key"}))

    result = await reconciler.reconcile("a@b.com", PURCHASED_AT)

    assert result.queried is True
    assert result.consumed_count == 0
    assert result.error is not None
    assert result.diagnostics()["error"]["code"] == "provider_error_response"
    assert reset_credit_store.snapshot().scheduling_totals == {"failed": 1}


@pytest.mark.asyncio
async def test_reconcile_skips_when_unconfigured(reset_credit_store):
    result = await BookingReconciler(CalComClient("")).reconcile("a@b.com", PURCHASED_AT)

    assert result.queried is False
    assert result.error.code == "not_configured"
    assert reset_credit_store.snapshot().scheduling_totals == {"skipped": 1}


@pytest.mark.asyncio
async def test_reconcile_flags_numeric_uid_with_bad_timestamp() -> None:
    payload = {"status": "success", "data": [{"uid": 123, "start": "garbage"}]}

    result = await BookingReconciler(_cal_client(payload)).reconcile("a@b.com", PURCHASED_AT)

    assert result.queried is True
    assert result.error is None
    assert result.bookings == []
    assert result.anomalies == [{"booking_id": "123", "reason": "missing_timestamp"}]
