"""Order, payment and debt Pydantic schemas for API request/response models."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from src.models.enums import DebtStatus, OrderStatus, PaymentMethod, PaymentStatus, PaymentType
from src.schemas.common import CachedResponse, Money


class PaymentCreate(BaseModel):
    """Schema for recording a payment against an order."""

    amount: Money = Field(..., gt=0, description="Amount received")
    method: PaymentMethod = Field(..., description="How the money was received")
    payment_type: PaymentType = Field(default=PaymentType.ORDER_PAYMENT, description="ORDER_PAYMENT or ADVANCE")
    date: datetime | None = Field(default=None, description="When it was received; defaults to now")
    notes: str | None = Field(default=None, max_length=1000)
    transaction_id: str | None = Field(default=None, max_length=255, description="External reference")
    created_by: str | None = Field(default=None, description="Recording user id")


class OrderStatusUpdate(BaseModel):
    """Schema for an order status transition request."""

    status: OrderStatus = Field(..., description="Target status")


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: str
    shop_id: str
    customer_id: str
    customer_name: str
    description: str
    amount: Money
    paid_amount: Money = Field(validation_alias="paid", description="Paid so far; 0 for legacy orders")
    overpaid_amount: Money
    currency: str
    status: OrderStatus
    due_date: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    shop_id: str
    customer_id: str
    order_id: str | None
    amount: Money
    currency: str
    method: PaymentMethod
    type: PaymentType
    status: PaymentStatus | None = Field(description="Stored status; null on legacy payments, which count as completed")
    transaction_id: str | None = None
    notes: str | None = None
    created_at: datetime
    created_by: str | None = None


class DebtResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    shop_id: str
    customer_id: str
    customer_name: str
    order_id: str
    order_description: str
    original_amount: Money
    paid_amount: Money
    remaining_amount: Money
    currency: str
    status: DebtStatus
    due_date: datetime | None = None
    order_completed_date: datetime
    created_at: datetime
    updated_at: datetime | None = None
    notes: str | None = None


class DebtUpdateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    debt_id: str
    applied_amount: Money
    paid_amount: Money
    remaining_amount: Money
    status: DebtStatus
    over_collected: Money


class PaymentRecordResponse(BaseModel):
    """Result of recording a payment."""

    model_config = ConfigDict(from_attributes=True)

    payment: PaymentResponse
    order: OrderResponse
    debt_update: DebtUpdateResponse | None = None
    overpaid_amount: Money
    balance_due: Money


class PaymentListResponse(BaseModel):
    payments: list[PaymentResponse]
    total_received: Money = Field(description="Completed non-refund payments, legacy payments included")


class OrderTransitionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    order: OrderResponse
    debt: DebtResponse | None = None
    debt_created: bool = False


class DebtWriteOff(BaseModel):
    notes: str | None = Field(default=None, max_length=1000)


class DebtSummaryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_outstanding: Money
    total_original: Money
    total_collected: Money
    outstanding_count: int
    customer_count: int
    by_status: dict[str, int]


class DebtListResponse(BaseModel):
    debts: list[DebtResponse]
    summary: DebtSummaryResponse


class DebtBackfillResponse(BaseModel):
    created: list[DebtResponse]
    created_count: int


class DashboardStatsResponse(CachedResponse):
    """Shop dashboard totals."""

    model_config = ConfigDict(from_attributes=True)

    total_customers: int
    total_orders: int
    pending_orders: int
    in_progress_orders: int
    completed_orders: int
    total_revenue: Money
    total_expenses: Money
    pending_payments: Money
