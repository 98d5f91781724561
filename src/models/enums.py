"""Enum values shared by the ledger and billing records.

Values match what is persisted in the database.
"""

from enum import Enum


class OrderStatus(str, Enum):
    """Order lifecycle states."""

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, Enum):
    """Payment processing states."""

    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class PaymentType(str, Enum):
    """What a payment was taken for."""

    ORDER_PAYMENT = "ORDER_PAYMENT"
    ADVANCE = "ADVANCE"
    REFUND = "REFUND"


class PaymentMethod(str, Enum):
    """How money was received."""

    CASH = "CASH"
    MOBILE_MONEY = "MOBILE_MONEY"
    CARD = "CARD"
    BANK_TRANSFER = "BANK_TRANSFER"
    OTHER = "OTHER"


class DebtStatus(str, Enum):
    """Debt collection states."""

    ACTIVE = "ACTIVE"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"
    WRITTEN_OFF = "WRITTEN_OFF"


class BillingCycle(str, Enum):
    """How often a plan is charged."""

    DAILY = "DAILY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


class BillingPlanType(str, Enum):
    """Plan tiers."""

    FREE = "FREE"
    PROFESSIONAL = "PROFESSIONAL"
    ENTERPRISE = "ENTERPRISE"


class SubscriptionStatus(str, Enum):
    """Persisted subscription states."""

    TRIAL = "TRIAL"
    ACTIVE = "ACTIVE"
    PAST_DUE = "PAST_DUE"
    CANCELLED = "CANCELLED"


class ShopStatus(str, Enum):
    """Shop account states."""

    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    SUSPENDED = "SUSPENDED"


OUTSTANDING_DEBT_STATUSES = (DebtStatus.ACTIVE, DebtStatus.PARTIALLY_PAID)
