"""Read-only asynchronous wrapper around the Stripe SDK."""

from __future__ import annotations

import asyncio
from typing import Any

import stripe
from loguru import logger

from credit_ledger_api.core.errors import ExternalProviderError, ProviderTimeoutError
from credit_ledger_api.core.settings import settings
from credit_ledger_api.observability.tracing import provider_span
from credit_ledger_api.schemas.stripe import (
    StripeCheckoutSession,
    StripeCustomer,
    StripePaymentIntent,
    list_data,
    parse_many,
    to_plain,
    validate_stripe,
)

PROVIDER_NAME = "stripe"


class StripeGateway:
    """Every call runs in a worker thread bounded by ``timeout_seconds``."""

    def __init__(self, secret_key: str, *, timeout_seconds: float = 5.0, search_limit: int = 100) -> None:
        self._secret_key = secret_key
        self.timeout_seconds = timeout_seconds
        self.search_limit = search_limit

    @classmethod
    def from_settings(cls) -> "StripeGateway":
        return cls(
            settings.stripe_secret_key,
            timeout_seconds=settings.stripe_timeout_seconds,
            search_limit=settings.stripe_search_limit,
        )

    @property
    def configured(self) -> bool:
        return bool(self._secret_key)

    async def _run(self, operation: str, func: Any, *args: Any, strategy: str | None = None, **kwargs: Any) -> Any:
        if not self._secret_key:
            raise ExternalProviderError(
                "Stripe secret key not configured",
                provider=PROVIDER_NAME,
                strategy=strategy,
                code="not_configured",
            )
        kwargs.setdefault("api_key", self._secret_key)
        try:
            with provider_span(PROVIDER_NAME, operation, strategy=strategy):
                return await asyncio.wait_for(
                    asyncio.to_thread(func, *args, **kwargs),
                    timeout=self.timeout_seconds,
                )
        except asyncio.TimeoutError as exc:
            logger.warning("Stripe call timed out", operation=operation, strategy=strategy)
            raise ProviderTimeoutError(
                f"Stripe {operation} timed out after {self.timeout_seconds}s",
                provider=PROVIDER_NAME,
                strategy=strategy,
            ) from exc
        except stripe.StripeError as exc:
            logger.warning(
                "Stripe call failed",
                operation=operation,
                strategy=strategy,
                error=str(exc),
                http_status=getattr(exc, "http_status", None),
            )
            raise ExternalProviderError(
                str(getattr(exc, "user_message", None) or exc) or f"Stripe {operation} failed",
                provider=PROVIDER_NAME,
                strategy=strategy,
                status_code=getattr(exc, "http_status", None),
                code=getattr(exc, "code", None) or "stripe_error",
            ) from exc

    async def find_customer(self, email: str, *, strategy: str | None = None) -> StripeCustomer | None:
        response = await self._run("customer_lookup", stripe.Customer.list, email=email, limit=1, strategy=strategy)
        items = list_data(response)
        if not items:
            return None
        return validate_stripe(StripeCustomer, items[0], strategy=strategy)

    async def list_payment_intents(
        self,
        *,
        customer: str | None = None,
        limit: int | None = None,
        strategy: str | None = None,
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"limit": limit or self.search_limit}
        if customer:
            params["customer"] = customer
        response = await self._run("payment_intent_list", stripe.PaymentIntent.list, strategy=strategy, **params)
        return list_data(response)

    async def list_charges(
        self,
        *,
        customer: str | None = None,
        limit: int | None = None,
        strategy: str | None = None,
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"limit": limit or self.search_limit}
        if customer:
            params["customer"] = customer
        response = await self._run("charge_list", stripe.Charge.list, strategy=strategy, **params)
        return list_data(response)

    async def list_invoices(self, customer: str, *, strategy: str | None = None) -> list[dict[str, Any]]:
        response = await self._run(
            "invoice_list",
            stripe.Invoice.list,
            customer=customer,
            limit=self.search_limit,
            strategy=strategy,
        )
        return list_data(response)

    async def list_checkout_sessions(
        self,
        *,
        payment_intent: str | None = None,
        limit: int | None = None,
        strategy: str | None = None,
    ) -> list[StripeCheckoutSession]:
        params: dict[str, Any] = {"limit": limit or self.search_limit}
        if payment_intent:
            params["payment_intent"] = payment_intent
        response = await self._run("checkout_session_list", stripe.checkout.Session.list, strategy=strategy, **params)
        return parse_many(StripeCheckoutSession, response, strategy=strategy)

    async def retrieve_payment_intent(self, payment_intent_id: str, *, strategy: str | None = None) -> StripePaymentIntent:
        response = await self._run(
            "payment_intent_retrieve",
            stripe.PaymentIntent.retrieve,
            payment_intent_id,
            strategy=strategy,
        )
        return validate_stripe(StripePaymentIntent, to_plain(response), strategy=strategy)


__all__ = ["PROVIDER_NAME", "StripeGateway"]
