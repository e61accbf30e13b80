"""Stripe purchase lookup services."""

from .resolver import PaymentResolutionError, PaymentResolver
from .stripe_gateway import StripeGateway

__all__ = ["PaymentResolutionError", "PaymentResolver", "StripeGateway"]
