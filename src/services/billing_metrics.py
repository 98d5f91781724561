"""Platform-wide subscription revenue metrics.

``compute_analytics`` is a pure function of the shops, subscriptions and
plans collections plus the current instant. Every plan price is first
converted to a monthly amount so plans with different billing cycles can be
summed.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

from src.core.config import get_settings
from src.core.document_store import PLANS, SHOPS, SUBSCRIPTIONS, DocumentStore, get_document_store
from src.core.normalization import ZERO, utcnow
from src.core.stats_cache import StatsCache
from src.models.base import parse_records
from src.models.billing import BillingPlanRecord, ShopRecord, SubscriptionRecord
from src.models.enums import BillingCycle, SubscriptionStatus

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")
DAYS_PER_MONTH = Decimal("30")
MONTHS_PER_YEAR = Decimal("12")
RECENT_SUBSCRIPTIONS_LIMIT = 5

ANALYTICS_CACHE_KEY = "admin:analytics"


def monthly_recurring_amount(price: Decimal, cycle: BillingCycle | None) -> Decimal:
    """Convert a plan price to its monthly equivalent.

    MONTHLY is the price itself, YEARLY is price / 12 and DAILY is
    price * 30. An unknown cycle contributes nothing.
    """
    if cycle == BillingCycle.MONTHLY:
        return price
    if cycle == BillingCycle.YEARLY:
        return price / MONTHS_PER_YEAR
    if cycle == BillingCycle.DAILY:
        return price * DAYS_PER_MONTH
    return ZERO


def percentage(part: Decimal | int, whole: Decimal | int) -> Decimal:
    """part / whole * 100, or 0 when whole is 0."""
    if not whole:
        return ZERO
    return Decimal(part) / Decimal(whole) * HUNDRED


@dataclass
class AnalyticsSnapshot:
    """Aggregate billing metrics at a point in time. Money is unrounded."""

    generated_at: datetime
    total_shops: int = 0
    active_shops: int = 0
    active_subscriptions: int = 0
    total_mrr: Decimal = ZERO
    total_arr: Decimal = ZERO
    churn_rate: Decimal = ZERO
    cancelled_in_window: int = 0
    new_shops_this_month: int = 0
    new_shops_last_month: int = 0
    monthly_growth: Decimal = ZERO
    total_revenue: Decimal = ZERO
    average_revenue_per_shop: Decimal = ZERO
    plan_distribution: dict[str, int] = field(default_factory=dict)
    recent_subscriptions: list[SubscriptionRecord] = field(default_factory=list)
    skipped_records: int = 0


def current_active_subscriptions(subscriptions: Iterable[SubscriptionRecord]) -> list[SubscriptionRecord]:
    """ACTIVE subscriptions, keeping only the first one found per shop."""
    seen: set[str] = set()
    active: list[SubscriptionRecord] = []
    for subscription in subscriptions:
        if subscription.status != SubscriptionStatus.ACTIVE:
            continue
        if subscription.shop_id in seen:
            logger.warning(
                "Shop %s has more than one active subscription; ignoring %s",
                subscription.shop_id,
                subscription.id,
            )
            continue
        seen.add(subscription.shop_id)
        active.append(subscription)
    return active


def compute_analytics(
    shops: Iterable[dict[str, Any] | ShopRecord],
    subscriptions: Iterable[dict[str, Any] | SubscriptionRecord],
    plans: Iterable[dict[str, Any] | BillingPlanRecord],
    now: datetime,
    window_days: int = 30,
) -> AnalyticsSnapshot:
    """Fold shops, subscriptions and plans into an analytics snapshot.

    Raw rows are parsed one by one; rows that fail validation are skipped
    and counted in ``skipped_records``. Subscriptions whose plan cannot be
    found contribute nothing to revenue or the plan distribution.

    MRR, ARR and the plan distribution count one subscription per shop:
    the first ACTIVE one in input order. Extra ACTIVE rows on the same shop
    are ignored, so three ACTIVE subscriptions on one shop add a single
    plan price, not three.

    Args:
        shops: Shop rows or records.
        subscriptions: Subscription rows or records.
        plans: Plan rows or records.
        now: End of the trailing windows.
        window_days: Length of the churn and growth windows.

    Returns:
        AnalyticsSnapshot: The computed metrics.
    """
    shop_rows, subscription_rows, plan_rows = list(shops), list(subscriptions), list(plans)
    shop_records = _as_records(ShopRecord, shop_rows)
    subscription_records = _as_records(SubscriptionRecord, subscription_rows)
    plan_records = _as_records(BillingPlanRecord, plan_rows)
    skipped = (
        len(shop_rows) - len(shop_records)
        + len(subscription_rows) - len(subscription_records)
        + len(plan_rows) - len(plan_records)
    )

    plans_by_id = {plan.id: plan for plan in plan_records}
    window_start = now - timedelta(days=window_days)
    previous_window_start = now - timedelta(days=2 * window_days)

    active = current_active_subscriptions(subscription_records)

    total_mrr = ZERO
    total_revenue = ZERO
    distribution: dict[str, int] = {}
    for subscription in active:
        plan = plans_by_id.get(subscription.plan_id)
        if plan is None:
            logger.debug("No plan %s for subscription %s", subscription.plan_id, subscription.id)
            continue
        cycle = subscription.billing_cycle or plan.billing_cycle
        total_mrr += monthly_recurring_amount(plan.price, cycle)
        total_revenue += plan.price
        distribution[plan.name] = distribution.get(plan.name, 0) + 1

    cancelled = [
        s
        for s in subscription_records
        if s.status == SubscriptionStatus.CANCELLED
        and s.cancelled_at is not None
        and window_start <= s.cancelled_at <= now
    ]
    churn_rate = percentage(len(cancelled), len(active) + len(cancelled))

    created = [shop.created_at for shop in shop_records if shop.created_at is not None]
    new_this_month = sum(1 for c in created if c >= window_start)
    new_last_month = sum(1 for c in created if previous_window_start <= c < window_start)
    monthly_growth = percentage(new_this_month - new_last_month, new_last_month)

    active_shops = sum(1 for shop in shop_records if shop.is_active)
    average_revenue = total_mrr / active_shops if active_shops else ZERO

    recent = sorted(active, key=lambda s: s.created_at, reverse=True)[:RECENT_SUBSCRIPTIONS_LIMIT]

    if skipped:
        logger.warning("Analytics skipped %d invalid records", skipped)

    return AnalyticsSnapshot(
        generated_at=now,
        total_shops=len(shop_records),
        active_shops=active_shops,
        active_subscriptions=len(active),
        total_mrr=total_mrr,
        total_arr=total_mrr * MONTHS_PER_YEAR,
        churn_rate=churn_rate,
        cancelled_in_window=len(cancelled),
        new_shops_this_month=new_this_month,
        new_shops_last_month=new_last_month,
        monthly_growth=monthly_growth,
        total_revenue=total_revenue,
        average_revenue_per_shop=average_revenue,
        plan_distribution=distribution,
        recent_subscriptions=recent,
        skipped_records=skipped,
    )


def _as_records(model: type, rows: list[Any]) -> list[Any]:
    records: list[Any] = []
    for row in rows:
        if isinstance(row, model):
            records.append(row)
        else:
            records.extend(parse_records(model, [row]))
    return records


class BillingAnalyticsService:
    """Loads billing collections and serves cached analytics snapshots."""

    def __init__(self, cache: StatsCache, store: DocumentStore | None = None):
        """Initialize analytics service.

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

    async def compute_snapshot(self, now: datetime | None = None) -> AnalyticsSnapshot:
        """Read all three collections and compute a fresh snapshot."""
        shops = await self.store.get_collection(SHOPS)
        subscriptions = await self.store.get_collection(SUBSCRIPTIONS)
        plans = await self.store.get_collection(PLANS)
        settings = get_settings()
        return compute_analytics(
            shops,
            subscriptions,
            plans,
            now or utcnow(),
            window_days=settings.churn_window_days,
        )

    async def get_snapshot(self, now: datetime | None = None, refresh: bool = False) -> tuple[AnalyticsSnapshot, bool]:
        """Get the analytics snapshot through the cache.

        Returns:
            tuple: ``(snapshot, is_stale)``.
        """
        return await self.cache.get_or_load(
            ANALYTICS_CACHE_KEY,
            lambda: self.compute_snapshot(now),
            ttl=get_settings().analytics_ttl_seconds,
            force=refresh,
        )
