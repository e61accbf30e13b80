from __future__ import annotations

import hashlib
import hmac
import json
import time
from datetime import datetime, timezone

import pytest
import stripe
from httpx import ASGITransport, AsyncClient

from credit_ledger_api.core.settings import settings
from credit_ledger_api.services.ledger.store import LedgerStore

PURCHASED = int(datetime(2026, 10, 1, 12, tzinfo=timezone.utc).timestamp())


@pytest.fixture
def provider_settings():
    previous = (
        settings.stripe_secret_key,
        settings.stripe_webhook_secret,
        settings.cal_api_key,
        settings.booking_snapshot_persist_enabled,
    )
    settings.stripe_secret_key = "sk_test_123"
    settings.stripe_webhook_secret = "whsec_e2e"
    settings.cal_api_key = ""
    settings.booking_snapshot_persist_enabled = False
    try:
        yield settings
    finally:
        (
            settings.stripe_secret_key,
            settings.stripe_webhook_secret,
            settings.cal_api_key,
            settings.booking_snapshot_persist_enabled,
        ) = previous


@pytest.fixture
def fake_stripe(monkeypatch):
    calls: list[tuple[str, dict]] = []

    def _recorder(name, response):
        def _call(*args, **kwargs):
            calls.append((name, kwargs))
            return response

        return _call

    monkeypatch.setattr(stripe.Customer, "list", _recorder("customer_list", {"data": []}))
    monkeypatch.setattr(
        stripe.PaymentIntent,
        "list",
        _recorder(
            "payment_intent_list",
            {
                "data": [
                    {
                        "id": "pi_123",
                        "amount": 15000,
                        "currency": "usd",
                        "status": "succeeded",
                        "created": PURCHASED,
                        "receipt_email": "a@b.com",
                        "metadata": {},
                    }
                ]
            },
        ),
    )
    monkeypatch.setattr(stripe.Charge, "list", _recorder("charge_list", {"data": []}))
    monkeypatch.setattr(
        stripe.checkout.Session,
        "list",
        _recorder("session_list", {"data": [{"id": "cs_123", "payment_intent": "pi_123", "metadata": {}}]}),
    )
    return calls


def _signed(payload: str, secret: str) -> str:
    timestamp = int(time.time())
    digest = hmac.new(secret.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


@pytest.mark.asyncio
async def test_webhook_then_status_reports_balance_and_package(app_with_db, provider_settings, fake_stripe):
    app, _ = app_with_db
    payload = json.dumps(
        {
            "id": "evt_1",
            "object": "event",
            "type": "checkout.session.completed",
            "data": {
                "object": {
                    "id": "cs_123",
                    "object": "checkout.session",
                    "amount_total": 15000,
                    "customer_details": {"email": "a@b.com"},
                    "metadata": {},
                }
            },
        }
    )
    headers = {"Stripe-Signature": _signed(payload, "whsec_e2e"), "Content-Type": "application/json"}

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        first = await client.post("/api/v1/webhooks/stripe", content=payload, headers=headers)
        replay = await client.post("/api/v1/webhooks/stripe", content=payload, headers=headers)
        status_response = await client.get("/api/v1/credits/status", params={"email": "A@B.com"})

    assert first.json()["credits_added"] == 4
    assert replay.json() == {"received": True, "duplicate": True}

    assert status_response.status_code == 200
    body = status_response.json()
    assert body["found"] is True
    assert body["email"] == "a@b.com"
    assert body["cal_email"] == "a@b.com"
    assert body["is_guest"] is True
    assert body["remaining_credits"] == 4
    assert body["package"] == {"package_id": "4_pack", "package_name": "4-Pack", "credits": 4}
    assert body["payment"]["id"] == "pi_123"
    assert body["payment"]["amount"] == 150.0
    assert body["payment"]["currency"] == "USD"
    assert body["payment"]["strategy"] == "payment_intent_guest"
    assert body["purchase_date"] == "2026-10-01T12:00:00+00:00"
    assert body["completed_bookings_since_purchase"] == 0
    assert body["consumption_source"] == "ledger"
    diagnostics = body["diagnostics"]
    assert diagnostics["matched_strategy"] == "payment_intent_guest"
    assert diagnostics["stripe_errors"] == []
    assert diagnostics["scheduling"]["queried"] is False
    assert diagnostics["scheduling"]["error"]["code"] == "not_configured"

    session_lookups = [kwargs for name, kwargs in fake_stripe if name == "session_list"]
    assert session_lookups[0]["payment_intent"] == "pi_123"
    assert all(kwargs["api_key"] == "sk_test_123" for _, kwargs in fake_stripe)


@pytest.mark.asyncio
async def test_status_reports_ledger_when_stripe_unavailable(app_with_db, provider_settings):
    app, session_factory = app_with_db
    provider_settings.stripe_secret_key = ""

    async with session_factory() as session:
        store = LedgerStore(session)
        await store.append_entry("a@b.com", 2, "manual", note="Comp")
        await store.commit()

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/api/v1/credits/status", params={"email": "a@b.com", "cal_email": "Cal@B.com"})

    assert response.status_code == 200
    body = response.json()
    assert body["found"] is False
    assert body["remaining_credits"] == 2
    assert body["cal_email"] == "cal@b.com"
    assert body["diagnostics"]["resolver_error"]["code"] == "all_strategies_failed"
    assert {error["code"] for error in body["diagnostics"]["stripe_errors"]} == {"not_configured"}
    assert len(body["diagnostics"]["strategies_attempted"]) == 4


@pytest.mark.asyncio
async def test_status_rejects_invalid_email(app_with_db, provider_settings):
    app, _ = app_with_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/api/v1/credits/status", params={"email": "nope"})

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "invalid_email"


@pytest.mark.asyncio
async def test_status_survives_malformed_stripe_payload(app_with_db, provider_settings, monkeypatch):
    app, session_factory = app_with_db
    monkeypatch.setattr(stripe.Customer, "list", lambda **kwargs: {"data": []})
    monkeypatch.setattr(stripe.PaymentIntent, "list", lambda **kwargs: {"data": []})
    monkeypatch.setattr(stripe.Charge, "list", lambda **kwargs: {"data": []})
    monkeypatch.setattr(stripe.checkout.Session, "list", lambda **kwargs: {"data": [{"customer_email": "a@b.com"}]})

    async with session_factory() as session:
        store = LedgerStore(session)
        await store.append_entry("a@b.com", 3, "manual", note="Comp")
        await store.commit()

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/api/v1/credits/status", params={"email": "a@b.com"})

    assert response.status_code == 200
    body = response.json()
    assert body["found"] is False
    assert body["remaining_credits"] == 3
    assert [(error["strategy"], error["code"]) for error in body["diagnostics"]["stripe_errors"]] == [
        ("checkout_session", "malformed_response")
    ]
