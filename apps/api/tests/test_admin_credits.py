from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from credit_ledger_api.core.errors import LedgerValidationError
from credit_ledger_api.core.settings import settings
from credit_ledger_api.services.ledger.adjustments import ManualAdjustmentService, manual_external_id
from credit_ledger_api.services.ledger.store import LedgerStore

ADMIN_KEY = "admin-test-key"


@pytest.fixture
def admin_key():
    previous = settings.admin_api_key
    settings.admin_api_key = ADMIN_KEY
    try:
        yield ADMIN_KEY
    finally:
        settings.admin_api_key = previous


def test_manual_external_id_is_sanitized() -> None:
    assert manual_external_id("Ops Lead <ops@example.com>", now=1760000000) == (
        "admin_1760000000_Ops_Lead_ops@example.com_"
    )
    assert manual_external_id("   ", now=1) == "admin_1_admin"


@pytest.mark.asyncio
async def test_adjustment_service_appends_manual_entry(session_factory):
    async with session_factory() as session:
        store = LedgerStore(session)
        await store.append_entry("a@b.com", 4, "stripe", external_id="cs_123")
        await store.commit()

        result = await ManualAdjustmentService(store).adjust("A@B.com", -1, actor="ops")

    assert result.balance == 3
    assert result.entry.source == "manual"
    assert result.entry.note == "Manual adjustment"
    assert result.entry.external_id.startswith("admin_")
    assert result.entry.external_id.endswith("_ops")


@pytest.mark.asyncio
async def test_adjustment_service_rejects_zero(session_factory):
    async with session_factory() as session:
        with pytest.raises(LedgerValidationError) as excinfo:
            await ManualAdjustmentService(LedgerStore(session)).adjust("a@b.com", 0)

    assert excinfo.value.code == "zero_delta"


@pytest.mark.asyncio
async def test_admin_endpoints_require_key(app_with_db, admin_key):
    app, _ = app_with_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        missing = await client.get("/api/v1/admin/credits/entries")
        wrong = await client.get("/api/v1/admin/credits/entries", headers={"X-API-Key": "nope"})

    assert missing.status_code == 401
    assert wrong.status_code == 401


@pytest.mark.asyncio
async def test_admin_endpoints_unavailable_without_configured_key(app_with_db):
    app, _ = app_with_db
    previous = settings.admin_api_key
    settings.admin_api_key = ""
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get("/api/v1/admin/credits/balances", headers={"X-API-Key": "anything"})
    finally:
        settings.admin_api_key = previous

    assert response.status_code == 503


@pytest.mark.asyncio
async def test_adjust_then_list_entries_and_balances(app_with_db, admin_key):
    app, _ = app_with_db
    headers = {"X-API-Key": admin_key, "X-Admin-User": "coach"}

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        created = await client.post(
            "/api/v1/admin/credits/adjustments",
            json={"email": "Client@Example.com", "delta": 3, "reason": "Goodwill credit"},
            headers=headers,
        )
        debit = await client.post(
            "/api/v1/admin/credits/adjustments",
            json={"email": "client@example.com", "delta": -1},
            headers=headers,
        )
        entries = await client.get("/api/v1/admin/credits/entries?limit=10", headers=headers)
        balances = await client.get("/api/v1/admin/credits/balances", headers=headers)
        balance = await client.get("/api/v1/credits/balance", params={"email": "client@example.com"})

    assert created.status_code == 201
    body = created.json()
    assert body["email"] == "client@example.com"
    assert body["balance"] == 3
    assert body["entry"]["note"] == "Goodwill credit"
    assert body["entry"]["external_id"].endswith("_coach")

    assert debit.status_code == 201
    assert debit.json()["balance"] == 2
    assert debit.json()["entry"]["note"] == "Manual adjustment"

    assert entries.status_code == 200
    assert len(entries.json()) == 2
    assert balances.json() == [{"email": "client@example.com", "balance": 2}]
    assert balance.json() == {"email": "client@example.com", "balance": 2}


@pytest.mark.asyncio
async def test_zero_delta_adjustment_is_unprocessable(app_with_db, admin_key):
    app, _ = app_with_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.post(
            "/api/v1/admin/credits/adjustments",
            json={"email": "client@example.com", "delta": 0},
            headers={"X-API-Key": admin_key},
        )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_invalid_email_adjustment_is_bad_request(app_with_db, admin_key):
    app, _ = app_with_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.post(
            "/api/v1/admin/credits/adjustments",
            json={"email": "not-an-email", "delta": 2},
            headers={"X-API-Key": admin_key},
        )

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "invalid_email"


@pytest.mark.asyncio
async def test_entries_can_be_filtered_by_customer(app_with_db, admin_key):
    app, session_factory = app_with_db
    async with session_factory() as session:
        store = LedgerStore(session)
        await store.append_entry("a@b.com", 4, "stripe", external_id="cs_a")
        await store.append_entry("other@b.com", 8, "stripe", external_id="cs_other")
        await store.append_entry("a@b.com", -1, "manual", note="Booked")
        await store.commit()

    headers = {"X-API-Key": admin_key}
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        filtered = await client.get("/api/v1/admin/credits/entries", params={"email": "A@B.com"}, headers=headers)
        invalid = await client.get("/api/v1/admin/credits/entries", params={"email": "nope"}, headers=headers)

    assert filtered.status_code == 200
    assert {entry["customer_identity"] for entry in filtered.json()} == {"a@b.com"}
    assert sorted(entry["delta"] for entry in filtered.json()) == [-1, 4]
    assert invalid.status_code == 400
    assert invalid.json()["detail"]["code"] == "invalid_email"
