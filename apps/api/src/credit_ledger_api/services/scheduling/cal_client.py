"""HTTP client for the Cal.com bookings API."""

from __future__ import annotations

from dataclasses import dataclass

import httpx
from loguru import logger

from credit_ledger_api.core.errors import ExternalProviderError, ProviderTimeoutError
from credit_ledger_api.core.settings import settings
from credit_ledger_api.observability.tracing import provider_span
from credit_ledger_api.schemas.cal import PROVIDER_NAME, CalBooking, parse_bookings_response


@dataclass(slots=True)
class CalBookingsPage:
    bookings: list[CalBooking]
    status_code: int


class CalComClient:
    """Fetches bookings by attendee email.

    An injected ``http_client`` is borrowed and left open; otherwise a client
    is created per call with the configured timeout.
    """

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "https://api.cal.com",
        api_version: str | None = None,
        timeout_seconds: float = 5.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._api_version = api_version
        self._timeout_seconds = timeout_seconds
        self._http_client = http_client

    @classmethod
    def from_settings(cls, http_client: httpx.AsyncClient | None = None) -> "CalComClient":
        return cls(
            settings.cal_api_key,
            base_url=settings.cal_api_base_url,
            api_version=settings.cal_api_version or None,
            timeout_seconds=settings.cal_timeout_seconds,
            http_client=http_client,
        )

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    def _headers(self) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Accept": "application/json",
        }
        if self._api_version:
            headers["cal-api-version"] = self._api_version
        return headers

    async def list_bookings(self, attendee_email: str) -> CalBookingsPage:
        if not self._api_key:
            raise ExternalProviderError(
                "Cal.com API key not configured",
                provider=PROVIDER_NAME,
                code="not_configured",
            )

        url = f"{self._base_url}/v2/bookings"
        client = self._http_client or httpx.AsyncClient(timeout=self._timeout_seconds)
        owns_client = self._http_client is None
        try:
            with provider_span(PROVIDER_NAME, "list_bookings"):
                response = await client.get(
                    url,
                    params={"attendeeEmail": attendee_email},
                    headers=self._headers(),
                    timeout=self._timeout_seconds,
                )
        except httpx.TimeoutException as exc:
            logger.warning("Cal.com bookings request timed out", url=url)
            raise ProviderTimeoutError(
                f"Cal.com bookings request timed out after {self._timeout_seconds}s",
                provider=PROVIDER_NAME,
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning("Cal.com bookings request failed", url=url, error=str(exc))
            raise ExternalProviderError(
                f"Cal.com bookings request failed: {exc}",
                provider=PROVIDER_NAME,
                code="transport_error",
            ) from exc
        finally:
            if owns_client:
                await client.aclose()

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if response.status_code >= 400:
            message = f"Cal.com responded with HTTP {response.status_code}"
            if isinstance(payload, dict) and (payload.get("message") or payload.get("error")):
                detail = payload.get("message") or payload.get("error")
                if isinstance(detail, dict):
                    detail = detail.get("message") or detail
                message = f"{message}: {detail}"
            logger.warning("Cal.com bookings request rejected", status_code=response.status_code)
            raise ExternalProviderError(
                message,
                provider=PROVIDER_NAME,
                status_code=response.status_code,
                code="http_error",
            )

        if payload is None:
            raise ExternalProviderError(
                "Cal.com returned a non-JSON body",
                provider=PROVIDER_NAME,
                status_code=response.status_code,
                code="invalid_json",
            )

        bookings = parse_bookings_response(payload, status_code=response.status_code)
        logger.info(
            "Cal.com bookings fetched",
            status_code=response.status_code,
            total=len(bookings),
        )
        return CalBookingsPage(bookings=bookings, status_code=response.status_code)


__all__ = ["CalBookingsPage", "CalComClient"]
