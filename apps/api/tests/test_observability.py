import pytest
from httpx import ASGITransport, AsyncClient

from credit_ledger_api.core.settings import settings
from credit_ledger_api.observability.credits import CreditObservabilityStore


def test_store_tracks_webhook_and_lookup_outcomes() -> None:
    store = CreditObservabilityStore()

    store.record_webhook("credited", event_type="checkout.session.completed", session_id="cs_1")
    store.record_webhook("rejected", event_type="checkout.session.completed", error="missing_email")
    store.record_lookup(matched_strategy="charge_guest", failed_strategies=["registered_customer"])
    store.record_lookup(matched_strategy=None, failed_strategies=[])
    store.record_scheduling("skipped")

    payload = store.snapshot().as_dict()
    assert payload["webhooks"]["totals"] == {"credited": 1, "rejected": 1}
    assert payload["webhooks"]["events"]["last_session_id"] == "cs_1"
    assert payload["webhooks"]["events"]["last_failure_reason"] == "missing_email"
    assert payload["lookups"]["totals"] == {"found": 1, "not_found": 1}
    assert payload["lookups"]["strategy_hits"] == {"charge_guest": 1}
    assert payload["lookups"]["strategy_failures"] == {"registered_customer": 1}
    assert payload["scheduling"]["totals"] == {"skipped": 1}

    store.reset()
    assert store.snapshot().webhook_totals == {}


@pytest.mark.asyncio
async def test_observability_endpoint_requires_admin_key(app_with_db, reset_credit_store) -> None:
    app, _ = app_with_db
    previous = settings.admin_api_key
    settings.admin_api_key = "obs-key"
    reset_credit_store.record_webhook("ignored", event_type="invoice.paid")
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            denied = await client.get("/api/v1/observability/credits")
            allowed = await client.get("/api/v1/observability/credits", headers={"X-API-Key": "obs-key"})
    finally:
        settings.admin_api_key = previous

    assert denied.status_code == 401
    assert allowed.status_code == 200
    assert allowed.json()["webhooks"]["totals"] == {"ignored": 1}
