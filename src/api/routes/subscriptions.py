"""Subscription API routes."""

from fastapi import APIRouter, Depends, status

from src.api.deps import get_subscription_service
from src.core.normalization import utcnow
from src.schemas.billing import (
    PlanOptionResponse,
    PlanOptionsResponse,
    SubscriptionResponse,
    SubscriptionStateResponse,
    TrialStatusResponse,
    UpgradeRequest,
)
from src.services.subscription_service import SubscriptionService
from src.services.subscription_state import trial_status

router = APIRouter(tags=["subscriptions"])


@router.get("/shops/{shop_id}/subscription", response_model=SubscriptionStateResponse)
async def get_subscription_state(
    shop_id: str,
    subscription_service: SubscriptionService = Depends(get_subscription_service),
) -> SubscriptionStateResponse:
    """Get a shop's access state.

    A trial or paid period that has just ended is recorded as lapsed.
    """
    now = utcnow()
    state, subscription = await subscription_service.check_subscription_status(shop_id, now=now)
    trial = trial_status(subscription, now)
    return SubscriptionStateResponse(
        status=state.status,
        is_active=state.is_active,
        is_locked=state.is_locked,
        days_until_expiry=state.days_until_expiry,
        period_end=state.period_end,
        expired_on=state.expired_on,
        message=state.message,
        subscription=SubscriptionResponse.model_validate(subscription) if subscription else None,
        trial=TrialStatusResponse.model_validate(trial) if trial.is_trial else None,
    )


@router.post(
    "/shops/{shop_id}/subscription/trial",
    response_model=SubscriptionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def start_trial(
    shop_id: str,
    subscription_service: SubscriptionService = Depends(get_subscription_service),
) -> SubscriptionResponse:
    """Start the free trial for a new shop."""
    subscription = await subscription_service.create_trial_subscription(shop_id)
    return SubscriptionResponse.model_validate(subscription)


@router.post(
    "/shops/{shop_id}/subscription/upgrade",
    response_model=SubscriptionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def upgrade_subscription(
    shop_id: str,
    data: UpgradeRequest,
    subscription_service: SubscriptionService = Depends(get_subscription_service),
) -> SubscriptionResponse:
    """Subscribe a shop to a paid plan after payment."""
    subscription = await subscription_service.upgrade_subscription(
        shop_id, data.plan_id, payment_reference=data.payment_reference
    )
    return SubscriptionResponse.model_validate(subscription)


@router.get("/shops/{shop_id}/subscription/plans", response_model=PlanOptionsResponse)
async def get_plan_options(
    shop_id: str,
    subscription_service: SubscriptionService = Depends(get_subscription_service),
) -> PlanOptionsResponse:
    """Plans the shop may move to, labelled UPGRADE, DOWNGRADE or LATERAL."""
    options = await subscription_service.get_plan_options(shop_id)
    return PlanOptionsResponse(options=[PlanOptionResponse.model_validate(o) for o in options])


@router.post("/subscriptions/{subscription_id}/cancel", response_model=SubscriptionResponse)
async def cancel_subscription(
    subscription_id: str,
    subscription_service: SubscriptionService = Depends(get_subscription_service),
) -> SubscriptionResponse:
    """Cancel a subscription."""
    subscription = await subscription_service.cancel_subscription(subscription_id)
    return SubscriptionResponse.model_validate(subscription)
