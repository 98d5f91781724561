"""Billing plan, subscription and analytics Pydantic schemas."""

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field

from src.models.enums import BillingCycle, BillingPlanType, SubscriptionStatus
from src.schemas.common import CachedResponse, Money
from src.services.subscription_state import PlanChange, SubscriptionStateCode


class PlanLimitsSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    customers: int = Field(default=0, ge=0)
    orders: int = Field(default=0, ge=0)
    team_members: int = Field(default=0, ge=0)
    storage: int = Field(default=0, ge=0, description="Storage in MB")


class BillingPlanBase(BaseModel):
    """Plan fields shared across schemas."""

    name: str = Field(..., min_length=1, max_length=255)
    type: BillingPlanType = Field(default=BillingPlanType.PROFESSIONAL)
    price: Money = Field(..., ge=0)
    currency: str = Field(default="GHS", min_length=3, max_length=3)
    billing_cycle: BillingCycle = Field(default=BillingCycle.MONTHLY)
    features: list[str] = Field(default_factory=list)
    limits: PlanLimitsSchema = Field(default_factory=PlanLimitsSchema)
    is_active: bool = True


class BillingPlanCreateRequest(BillingPlanBase):
    """Schema for creating a plan."""


class BillingPlanUpdateRequest(BaseModel):
    """Schema for editing a plan; omitted fields are left unchanged."""

    name: str | None = Field(default=None, min_length=1, max_length=255)
    price: Money | None = Field(default=None, ge=0)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    billing_cycle: BillingCycle | None = None
    features: list[str] | None = None
    limits: PlanLimitsSchema | None = None
    is_active: bool | None = None


class BillingPlanResponse(BillingPlanBase):
    model_config = ConfigDict(from_attributes=True)

    id: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


class SubscriptionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    shop_id: str
    plan_id: str
    status: SubscriptionStatus
    billing_cycle: BillingCycle | None = None
    current_period_start: datetime
    current_period_end: datetime
    trial_ends_at: datetime | None = None
    cancelled_at: datetime | None = None
    superseded_by: str | None = None
    payment_reference: str | None = None
    created_at: datetime


class TrialStatusResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    is_trial: bool
    days_left: int
    hours_left: int
    is_expired: bool


class SubscriptionStateResponse(BaseModel):
    """A shop's access state."""

    model_config = ConfigDict(from_attributes=True)

    status: SubscriptionStateCode
    is_active: bool
    is_locked: bool
    days_until_expiry: int | None = Field(default=None, description="Whole days left; null once expired")
    period_end: datetime | None = None
    expired_on: date | None = None
    message: str | None = Field(default=None, description="e.g. 'Expired on 2024-05-01'")
    subscription: SubscriptionResponse | None = None
    trial: TrialStatusResponse | None = None


class UpgradeRequest(BaseModel):
    plan_id: str = Field(..., min_length=1)
    payment_reference: str | None = Field(default=None, max_length=255, description="Payment provider reference")


class PlanOptionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    plan: BillingPlanResponse
    change: PlanChange
    is_current: bool


class PlanOptionsResponse(BaseModel):
    options: list[PlanOptionResponse]


class AnalyticsResponse(CachedResponse):
    """Platform billing analytics."""

    model_config = ConfigDict(from_attributes=True)

    generated_at: datetime
    total_shops: int
    active_shops: int
    active_subscriptions: int
    total_mrr: Money
    total_arr: Money
    churn_rate: Money = Field(description="Percent of subscriptions cancelled in the trailing window")
    cancelled_in_window: int
    new_shops_this_month: int
    new_shops_last_month: int
    monthly_growth: Money = Field(description="Percent change in new shops versus the previous window")
    total_revenue: Money
    average_revenue_per_shop: Money
    plan_distribution: dict[str, int]
    recent_subscriptions: list[SubscriptionResponse]
    skipped_records: int
