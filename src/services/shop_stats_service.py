"""Per-shop dashboard statistics."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from src.core.config import get_settings
from src.core.document_store import CUSTOMERS, EXPENSES, ORDERS, PAYMENTS, DocumentStore, get_document_store, where
from src.core.normalization import ZERO, to_decimal, total_received
from src.core.stats_cache import StatsCache
from src.models.base import parse_records
from src.models.enums import OrderStatus
from src.models.ledger import OrderRecord, PaymentRecord

logger = logging.getLogger(__name__)


@dataclass
class DashboardStats:
    total_customers: int = 0
    total_orders: int = 0
    pending_orders: int = 0
    in_progress_orders: int = 0
    completed_orders: int = 0
    total_revenue: Decimal = ZERO
    total_expenses: Decimal = ZERO
    pending_payments: Decimal = ZERO


def compute_dashboard_stats(
    customers: Iterable[dict[str, Any]],
    orders: Iterable[dict[str, Any]],
    payments: Iterable[dict[str, Any]],
    expenses: Iterable[dict[str, Any]],
) -> DashboardStats:
    """Fold a shop's raw collections into dashboard totals.

    Revenue counts completed non-refund payments, with a missing status
    counted as completed. Pending payments sum only payments explicitly
    stored as PENDING.
    """
    order_records = parse_records(OrderRecord, orders)
    payment_records = parse_records(PaymentRecord, payments)

    return DashboardStats(
        total_customers=sum(1 for _ in customers),
        total_orders=len(order_records),
        pending_orders=sum(1 for o in order_records if o.status == OrderStatus.PENDING),
        in_progress_orders=sum(1 for o in order_records if o.status == OrderStatus.IN_PROGRESS),
        completed_orders=sum(1 for o in order_records if o.status == OrderStatus.COMPLETED),
        total_revenue=total_received(payment_records),
        total_expenses=sum((to_decimal(e.get("amount")) for e in expenses), ZERO),
        pending_payments=sum((p.amount for p in payment_records if p.is_stored_pending), ZERO),
    )


def dashboard_cache_key(shop_id: str) -> str:
    return f"dashboard:{shop_id}"


class ShopStatsService:
    """Serves dashboard statistics through the stats cache."""

    def __init__(self, cache: StatsCache, store: DocumentStore | None = None):
        """Initialize shop stats service.

        Args:
            cache: Stats cache shared by the application.
            store: Optional document store for testing.
        """
        self.cache = cache
        self._store = store

    @property
    def store(self) -> DocumentStore:
        """Get document store."""
        if self._store is None:
            self._store = get_document_store()
        return self._store

    async def compute_stats(self, shop_id: str) -> DashboardStats:
        """Read the shop's collections and compute fresh totals."""
        by_shop = [where("shop_id", "==", shop_id)]
        customers = await self.store.get_collection(CUSTOMERS, by_shop)
        orders = await self.store.get_collection(ORDERS, by_shop)
        payments = await self.store.get_collection(PAYMENTS, by_shop)
        expenses = await self.store.get_collection(EXPENSES, by_shop)
        return compute_dashboard_stats(customers, orders, payments, expenses)

    async def get_dashboard_stats(self, shop_id: str, refresh: bool = False) -> tuple[DashboardStats, bool]:
        """Get cached dashboard stats.

        Returns:
            tuple: ``(stats, is_stale)``.
        """
        key = dashboard_cache_key(shop_id)
        return await self.cache.get_or_load(
            key,
            lambda: self.compute_stats(shop_id),
            ttl=get_settings().dashboard_stats_ttl_seconds,
            force=refresh,
        )

    def invalidate(self, shop_id: str) -> None:
        """Drop cached stats after a write that changes them."""
        self.cache.invalidate(dashboard_cache_key(shop_id))
