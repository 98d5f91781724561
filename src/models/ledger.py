"""Order, payment and debt records."""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import Field, field_validator, model_validator

from src.core.normalization import (
    ZERO,
    normalize_optional_timestamp,
    normalize_timestamp,
    resolve_payment_completion_state,
    to_decimal,
    utcnow,
)
from src.models.base import StoredRecord
from src.models.enums import DebtStatus, OrderStatus, PaymentMethod, PaymentStatus, PaymentType


class OrderRecord(StoredRecord):
    """A unit of work for a customer.

    ``paid_amount`` is None on orders written before payments were tracked
    on the order itself.
    """

    id: str
    shop_id: str
    customer_id: str
    customer_name: str = ""
    description: str = ""
    amount: Decimal = ZERO
    paid_amount: Decimal | None = None
    overpaid_amount: Decimal = ZERO
    currency: str = "GHS"
    status: OrderStatus = OrderStatus.PENDING
    due_date: datetime | None = None
    notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("amount", "overpaid_amount", mode="before")
    @classmethod
    def _money(cls, value: Any) -> Decimal:
        return to_decimal(value)

    @field_validator("paid_amount", mode="before")
    @classmethod
    def _optional_money(cls, value: Any) -> Decimal | None:
        return None if value is None else to_decimal(value)

    @field_validator("due_date", "created_at", "updated_at", mode="before")
    @classmethod
    def _timestamps(cls, value: Any) -> datetime | None:
        return normalize_optional_timestamp(value)

    @property
    def paid(self) -> Decimal:
        """Paid amount with the legacy missing value read as zero."""
        return self.paid_amount if self.paid_amount is not None else ZERO

    @property
    def remaining(self) -> Decimal:
        """Agreed total minus what has been paid; negative when overpaid."""
        return self.amount - self.paid


class PaymentRecord(StoredRecord):
    """An immutable record of money received against an order.

    ``status`` stays None for legacy rows; aggregation resolves it through
    ``resolve_payment_completion_state``. Unknown stored values resolve to
    PENDING there, so ``stored_status`` keeps the value as written.
    """

    id: str
    shop_id: str
    customer_id: str
    order_id: str | None = None
    amount: Decimal = ZERO
    currency: str = "GHS"
    type: PaymentType = PaymentType.ORDER_PAYMENT
    method: PaymentMethod = PaymentMethod.OTHER
    status: PaymentStatus | None = None
    transaction_id: str | None = None
    notes: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    created_by: str | None = None
    stored_status: str | None = Field(default=None, exclude=True)

    @model_validator(mode="before")
    @classmethod
    def _keep_stored_status(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("status") is not None:
            raw = data["status"]
            return {**data, "stored_status": str(getattr(raw, "value", raw)).strip().upper()}
        return data

    @field_validator("amount", mode="before")
    @classmethod
    def _money(cls, value: Any) -> Decimal:
        return to_decimal(value)

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, value: Any) -> PaymentStatus | None:
        if value is None:
            return None
        return resolve_payment_completion_state(value)

    @field_validator("type", mode="before")
    @classmethod
    def _type(cls, value: Any) -> Any:
        return PaymentType.ORDER_PAYMENT if value is None else value

    @field_validator("method", mode="before")
    @classmethod
    def _method(cls, value: Any) -> Any:
        if value is None or value not in PaymentMethod._value2member_map_:
            return PaymentMethod.OTHER
        return value

    @field_validator("created_at", mode="before")
    @classmethod
    def _created_at(cls, value: Any) -> datetime:
        return normalize_timestamp(value)

    @property
    def is_stored_pending(self) -> bool:
        """Whether the row was written with an explicit PENDING status."""
        return self.stored_status == PaymentStatus.PENDING.value


class DebtRecord(StoredRecord):
    """Outstanding balance on an order that completed unpaid."""

    id: str
    shop_id: str
    customer_id: str
    customer_name: str = ""
    order_id: str
    order_description: str = ""
    original_amount: Decimal = ZERO
    paid_amount: Decimal = ZERO
    remaining_amount: Decimal = ZERO
    currency: str = "GHS"
    due_date: datetime | None = None
    status: DebtStatus = DebtStatus.ACTIVE
    order_completed_date: datetime = Field(default_factory=utcnow)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime | None = None
    notes: str | None = None

    @field_validator("original_amount", "paid_amount", "remaining_amount", mode="before")
    @classmethod
    def _money(cls, value: Any) -> Decimal:
        return to_decimal(value)

    @field_validator("due_date", "updated_at", mode="before")
    @classmethod
    def _optional_timestamps(cls, value: Any) -> datetime | None:
        return normalize_optional_timestamp(value)

    @field_validator("order_completed_date", "created_at", mode="before")
    @classmethod
    def _timestamps(cls, value: Any) -> datetime:
        return normalize_timestamp(value)

    @property
    def is_outstanding(self) -> bool:
        return self.status in (DebtStatus.ACTIVE, DebtStatus.PARTIALLY_PAID)
