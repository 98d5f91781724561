"""Database model type definitions."""

from src.models.enums import (
    BillingCycle,
    BillingPlanType,
    DebtStatus,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    PaymentType,
    ShopStatus,
    SubscriptionStatus,
)

__all__ = [
    "BillingCycle",
    "BillingPlanType",
    "DebtStatus",
    "OrderStatus",
    "PaymentMethod",
    "PaymentStatus",
    "PaymentType",
    "ShopStatus",
    "SubscriptionStatus",
]
