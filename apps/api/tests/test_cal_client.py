from __future__ import annotations

from datetime import datetime, timezone

import httpx
import pytest

from credit_ledger_api.core.errors import ExternalProviderError, ProviderTimeoutError
from credit_ledger_api.services.scheduling.cal_client import CalComClient


def _client(handler) -> CalComClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return CalComClient("cal_test_key", api_version="2024-08-13", http_client=http_client)


@pytest.mark.asyncio
async def test_list_bookings_sends_auth_and_filter() -> None:
    captured: dict[str, httpx.Request] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["request"] = request
        return httpx.Response(
            200,
            json={
                "status": "success",
                "data": [
                    {
                        "uid": "bk_1",
                        "title": "Session",
                        "status": "accepted",
                        "start": "2026-10-05T15:00:00.000Z",
                        "createdAt": "2026-10-02T09:00:00Z",
                        "attendees": [{"email": "Client@Example.com"}],
                    }
                ],
            },
        )

    page = await _client(handler).list_bookings("client@example.com")

    request = captured["request"]
    assert request.url.path == "/v2/bookings"
    assert request.url.params["attendeeEmail"] == "client@example.com"
    assert request.headers["Authorization"] == "Bearer cal_test_key"
    assert request.headers["cal-api-version"] == "2024-08-13"
    assert page.status_code == 200
    booking = page.bookings[0]
    assert booking.booking_id == "bk_1"
    assert booking.start == datetime(2026, 10, 5, 15, tzinfo=timezone.utc)
    assert booking.created_at == datetime(2026, 10, 2, 9, tzinfo=timezone.utc)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        [{"id": 7, "status": "accepted"}],
        {"bookings": [{"id": 7, "status": "accepted"}]},
        {"status": "success", "data": {"bookings": [{"id": 7, "status": "accepted"}]}},
    ],
)
async def test_accepts_every_known_envelope(payload) -> None:
    page = await _client(lambda request: httpx.Response(200, json=payload)).list_bookings("a@b.com")

    assert [booking.booking_id for booking in page.bookings] == ["7"]


@pytest.mark.asyncio
async def test_unparseable_timestamp_becomes_missing() -> None:
    payload = {"data": [{"uid": "bk_bad", "start": "not-a-date", "status": "accepted"}]}

    page = await _client(lambda request: httpx.Response(200, json=payload)).list_bookings("a@b.com")

    assert page.bookings[0].booking_id == "bk_bad"
    assert page.bookings[0].start is None


@pytest.mark.asyncio
async def test_numeric_uid_and_status_survive_bad_timestamp() -> None:
    payload = {"status": "success", "data": [{"uid": 123, "status": 2, "start": "garbage", "attendees": "n/a"}]}

    page = await _client(lambda request: httpx.Response(200, json=payload)).list_bookings("a@b.com")

    booking = page.bookings[0]
    assert booking.booking_id == "123"
    assert booking.status == "2"
    assert booking.start is None
    assert booking.created_at is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("response", "code"),
    [
        (httpx.Response(200, json={"status": "error", "error": {"message": "bad key"}}), "provider_error_response"),
        (httpx.Response(200, json={"message": "Unauthorized"}), "provider_error_response"),
        (httpx.Response(200, json={"status": "success"}), "unexpected_response"),
        (httpx.Response(401, json={"message": "Invalid API key"}), "http_error"),
        (httpx.Response(200, text="<html>maintenance</html>"), "invalid_json"),
    ],
)
async def test_error_shapes_raise_provider_error(response, code) -> None:
    with pytest.raises(ExternalProviderError) as excinfo:
        await _client(lambda request: response).list_bookings("a@b.com")

    assert excinfo.value.code == code
    assert excinfo.value.provider == "cal.com"


@pytest.mark.asyncio
async def test_timeout_raises_provider_timeout() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(ProviderTimeoutError):
        await _client(handler).list_bookings("a@b.com")


@pytest.mark.asyncio
async def test_unconfigured_client_refuses() -> None:
    client = CalComClient("")

    assert client.configured is False
    with pytest.raises(ExternalProviderError) as excinfo:
        await client.list_bookings("a@b.com")
    assert excinfo.value.code == "not_configured"
