"""Scheduling-provider reconciliation."""

from .cal_client import CalBookingsPage, CalComClient
from .reconciler import BookingReconciler, filter_since

__all__ = ["BookingReconciler", "CalBookingsPage", "CalComClient", "filter_since"]
