"""Per-request service wiring."""

from __future__ import annotations

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from credit_ledger_api.core.settings import settings
from credit_ledger_api.db.session import get_session
from credit_ledger_api.domain.packages import PackageCatalog
from credit_ledger_api.services.billing.webhooks import StripeWebhookIngestor
from credit_ledger_api.services.credits.status import CreditStatusService
from credit_ledger_api.services.ledger.adjustments import ManualAdjustmentService
from credit_ledger_api.services.ledger.store import BookingSnapshotRepository, LedgerStore
from credit_ledger_api.services.payments.resolver import PaymentResolver
from credit_ledger_api.services.payments.stripe_gateway import StripeGateway
from credit_ledger_api.services.scheduling.cal_client import CalComClient
from credit_ledger_api.services.scheduling.reconciler import BookingReconciler


def get_package_catalog() -> PackageCatalog:
    return PackageCatalog.from_settings(settings)


def get_stripe_gateway() -> StripeGateway:
    return StripeGateway.from_settings()


def get_cal_client() -> CalComClient:
    return CalComClient.from_settings()


async def get_ledger_store(session: AsyncSession = Depends(get_session)) -> LedgerStore:
    return LedgerStore(session)


async def get_webhook_ingestor(
    store: LedgerStore = Depends(get_ledger_store),
    catalog: PackageCatalog = Depends(get_package_catalog),
) -> StripeWebhookIngestor:
    return StripeWebhookIngestor(store, catalog)


async def get_adjustment_service(store: LedgerStore = Depends(get_ledger_store)) -> ManualAdjustmentService:
    return ManualAdjustmentService(store)


async def get_credit_status_service(
    session: AsyncSession = Depends(get_session),
    catalog: PackageCatalog = Depends(get_package_catalog),
    gateway: StripeGateway = Depends(get_stripe_gateway),
    cal_client: CalComClient = Depends(get_cal_client),
) -> CreditStatusService:
    snapshots = BookingSnapshotRepository(session, counted_statuses=settings.booking_snapshot_statuses)
    reconciler = BookingReconciler(
        cal_client,
        snapshot_repository=snapshots if settings.booking_snapshot_persist_enabled else None,
    )
    return CreditStatusService(
        LedgerStore(session),
        PaymentResolver(gateway, catalog),
        reconciler,
        snapshots=snapshots,
    )
