"""Billing plan, subscription and shop records."""

from datetime import datetime
from decimal import Decimal
from typing import Any, TypedDict

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.core.normalization import (
    ZERO,
    normalize_features,
    normalize_optional_timestamp,
    normalize_timestamp,
    to_decimal,
    utcnow,
)
from src.models.base import StoredRecord
from src.models.enums import BillingCycle, BillingPlanType, ShopStatus, SubscriptionStatus


class PlanLimits(BaseModel):
    """Usage limits attached to a plan. Storage is in MB."""

    customers: int = 0
    orders: int = 0
    team_members: int = Field(default=0, validation_alias="teamMembers")
    storage: int = 0

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class BillingPlanRecord(StoredRecord):
    """A priceable tier."""

    id: str
    name: str
    type: BillingPlanType = BillingPlanType.PROFESSIONAL
    price: Decimal = ZERO
    currency: str = "GHS"
    billing_cycle: BillingCycle = BillingCycle.MONTHLY
    features: list[str] = Field(default_factory=list)
    limits: PlanLimits = Field(default_factory=PlanLimits)
    is_active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("price", mode="before")
    @classmethod
    def _money(cls, value: Any) -> Decimal:
        return to_decimal(value)

    @field_validator("features", mode="before")
    @classmethod
    def _features(cls, value: Any) -> list[str]:
        return normalize_features(value)

    @field_validator("limits", mode="before")
    @classmethod
    def _limits(cls, value: Any) -> Any:
        return value or {}

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _timestamps(cls, value: Any) -> datetime | None:
        return normalize_optional_timestamp(value)


class SubscriptionRecord(StoredRecord):
    """Binds a shop to a plan.

    ``billing_cycle`` can be missing on early rows; consumers fall back to
    the plan's cycle.
    """

    id: str
    shop_id: str
    plan_id: str
    status: SubscriptionStatus
    billing_cycle: BillingCycle | None = None
    current_period_start: datetime = Field(default_factory=utcnow)
    current_period_end: datetime = Field(default_factory=utcnow)
    cancelled_at: datetime | None = None
    trial_ends_at: datetime | None = None
    superseded_by: str | None = None
    payment_reference: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime | None = None

    @field_validator("current_period_start", "current_period_end", "created_at", mode="before")
    @classmethod
    def _timestamps(cls, value: Any) -> datetime:
        return normalize_timestamp(value)

    @field_validator("cancelled_at", "trial_ends_at", "updated_at", mode="before")
    @classmethod
    def _optional_timestamps(cls, value: Any) -> datetime | None:
        return normalize_optional_timestamp(value)


class ShopRecord(StoredRecord):
    """A tenant shop, as far as billing metrics need it."""

    id: str
    name: str = ""
    owner_id: str | None = None
    status: ShopStatus | None = None
    currency: str = "GHS"
    created_at: datetime | None = None

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, value: Any) -> Any:
        if isinstance(value, str) and value.upper() in ShopStatus._value2member_map_:
            return value.upper()
        return value

    @field_validator("created_at", mode="before")
    @classmethod
    def _created_at(cls, value: Any) -> datetime | None:
        return normalize_optional_timestamp(value)

    @property
    def is_active(self) -> bool:
        return self.status == ShopStatus.ACTIVE


class BillingPlanCreate(TypedDict, total=False):
    """Data required to create a plan."""

    name: str
    type: str
    price: Decimal
    currency: str
    billing_cycle: str
    features: list[str]
    limits: dict[str, int]
    is_active: bool


class BillingPlanUpdate(TypedDict, total=False):
    """Fields an admin may edit on a plan."""

    name: str
    price: Decimal
    currency: str
    billing_cycle: str
    features: list[str]
    limits: dict[str, int]
    is_active: bool
