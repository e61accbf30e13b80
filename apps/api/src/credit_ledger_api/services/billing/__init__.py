"""Billing webhook ingestion."""

from .webhooks import CHECKOUT_COMPLETED, StripeWebhookIngestor

__all__ = ["CHECKOUT_COMPLETED", "StripeWebhookIngestor"]
