"""FastAPI dependency injection functions."""

from typing import Annotated

from fastapi import Depends, Request

from src.core.document_store import DocumentStore, get_document_store
from src.core.stats_cache import StatsCache, StatsCacheConfig
from src.services.billing_metrics import BillingAnalyticsService
from src.services.debt_service import DebtService
from src.services.order_service import OrderService
from src.services.payment_service import PaymentService
from src.services.plan_service import PlanService
from src.services.shop_stats_service import ShopStatsService
from src.services.subscription_service import SubscriptionService


def get_store() -> DocumentStore:
    """Document store used by every service; overridden in tests."""
    return get_document_store()


def get_stats_cache(request: Request) -> StatsCache:
    """Stats cache created by the application lifespan.

    Falls back to a fresh cache on app.state when the lifespan did not run.
    """
    cache = getattr(request.app.state, "stats_cache", None)
    if cache is None:
        cache = StatsCache(StatsCacheConfig.from_settings())
        request.app.state.stats_cache = cache
    return cache


StoreDep = Annotated[DocumentStore, Depends(get_store)]
CacheDep = Annotated[StatsCache, Depends(get_stats_cache)]


def get_debt_service(store: StoreDep) -> DebtService:
    return DebtService(store=store)


def get_payment_service(store: StoreDep) -> PaymentService:
    return PaymentService(store=store)


def get_order_service(store: StoreDep) -> OrderService:
    return OrderService(store=store)


def get_plan_service(store: StoreDep) -> PlanService:
    return PlanService(store=store)


def get_subscription_service(store: StoreDep) -> SubscriptionService:
    return SubscriptionService(store=store)


def get_shop_stats_service(store: StoreDep, cache: CacheDep) -> ShopStatsService:
    return ShopStatsService(cache=cache, store=store)


def get_billing_analytics_service(store: StoreDep, cache: CacheDep) -> BillingAnalyticsService:
    return BillingAnalyticsService(cache=cache, store=store)
