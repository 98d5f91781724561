"""Shop dashboard API routes."""

from dataclasses import asdict
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from src.api.deps import get_payment_service, get_shop_stats_service
from src.schemas.ledger import DashboardStatsResponse, PaymentResponse
from src.services.payment_service import PaymentService
from src.services.shop_stats_service import ShopStatsService

router = APIRouter(prefix="/shops", tags=["shops"])


@router.get("/{shop_id}/stats", response_model=DashboardStatsResponse)
async def get_dashboard_stats(
    shop_id: str,
    refresh: Annotated[bool, Query(description="Bypass the cache")] = False,
    stats_service: ShopStatsService = Depends(get_shop_stats_service),
) -> DashboardStatsResponse:
    """Get dashboard totals for a shop.

    Served from cache; when the database is unreachable a previously cached
    copy is returned with ``is_stale`` set.
    """
    stats, is_stale = await stats_service.get_dashboard_stats(shop_id, refresh=refresh)
    return DashboardStatsResponse(**asdict(stats), is_stale=is_stale)


@router.get("/{shop_id}/payments", response_model=list[PaymentResponse])
async def list_shop_payments(
    shop_id: str,
    payment_service: PaymentService = Depends(get_payment_service),
) -> list[PaymentResponse]:
    """List all payments of a shop, newest first."""
    payments = await payment_service.list_shop_payments(shop_id)
    return [PaymentResponse.model_validate(p) for p in payments]
