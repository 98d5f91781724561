"""Platform admin API routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from src.api.deps import get_billing_analytics_service
from src.schemas.billing import AnalyticsResponse, SubscriptionResponse
from src.services.billing_metrics import BillingAnalyticsService

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/analytics", response_model=AnalyticsResponse)
async def get_analytics(
    refresh: Annotated[bool, Query(description="Bypass the cache")] = False,
    analytics_service: BillingAnalyticsService = Depends(get_billing_analytics_service),
) -> AnalyticsResponse:
    """Get MRR, ARR, churn, growth and plan distribution across all shops."""
    snapshot, is_stale = await analytics_service.get_snapshot(refresh=refresh)
    return AnalyticsResponse(
        generated_at=snapshot.generated_at,
        total_shops=snapshot.total_shops,
        active_shops=snapshot.active_shops,
        active_subscriptions=snapshot.active_subscriptions,
        total_mrr=snapshot.total_mrr,
        total_arr=snapshot.total_arr,
        churn_rate=snapshot.churn_rate,
        cancelled_in_window=snapshot.cancelled_in_window,
        new_shops_this_month=snapshot.new_shops_this_month,
        new_shops_last_month=snapshot.new_shops_last_month,
        monthly_growth=snapshot.monthly_growth,
        total_revenue=snapshot.total_revenue,
        average_revenue_per_shop=snapshot.average_revenue_per_shop,
        plan_distribution=snapshot.plan_distribution,
        recent_subscriptions=[SubscriptionResponse.model_validate(s) for s in snapshot.recent_subscriptions],
        skipped_records=snapshot.skipped_records,
        is_stale=is_stale,
    )
