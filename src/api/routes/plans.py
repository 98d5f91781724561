"""Billing plan API routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status

from src.api.deps import get_plan_service
from src.schemas.billing import BillingPlanCreateRequest, BillingPlanResponse, BillingPlanUpdateRequest
from src.services.plan_service import PlanService

router = APIRouter(prefix="/billing/plans", tags=["billing"])


@router.get("", response_model=list[BillingPlanResponse])
async def list_plans(
    active_only: Annotated[bool, Query(description="Only active plans")] = False,
    plan_service: PlanService = Depends(get_plan_service),
) -> list[BillingPlanResponse]:
    """List billing plans, cheapest first."""
    plans = await plan_service.list_plans(active_only=active_only)
    return [BillingPlanResponse.model_validate(p) for p in plans]


@router.get("/{plan_id}", response_model=BillingPlanResponse)
async def get_plan(
    plan_id: str,
    plan_service: PlanService = Depends(get_plan_service),
) -> BillingPlanResponse:
    """Get a plan by ID."""
    return BillingPlanResponse.model_validate(await plan_service.get_plan(plan_id))


@router.post("", response_model=BillingPlanResponse, status_code=status.HTTP_201_CREATED)
async def create_plan(
    data: BillingPlanCreateRequest,
    plan_service: PlanService = Depends(get_plan_service),
) -> BillingPlanResponse:
    """Create a billing plan."""
    plan = await plan_service.create_plan(data.model_dump())
    return BillingPlanResponse.model_validate(plan)


@router.patch("/{plan_id}", response_model=BillingPlanResponse)
async def update_plan(
    plan_id: str,
    data: BillingPlanUpdateRequest,
    plan_service: PlanService = Depends(get_plan_service),
) -> BillingPlanResponse:
    """Edit a billing plan. Omitted fields are left unchanged."""
    plan = await plan_service.update_plan(plan_id, data.model_dump(exclude_unset=True))
    return BillingPlanResponse.model_validate(plan)
