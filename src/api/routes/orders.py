"""Order payment and status API routes."""

from fastapi import APIRouter, Depends, status

from src.api.deps import get_order_service, get_payment_service, get_shop_stats_service
from src.core.normalization import total_received
from src.schemas.ledger import (
    OrderResponse,
    OrderStatusUpdate,
    OrderTransitionResponse,
    PaymentCreate,
    PaymentListResponse,
    PaymentRecordResponse,
    PaymentResponse,
)
from src.services.order_service import OrderService
from src.services.payment_service import PaymentService
from src.services.shop_stats_service import ShopStatsService

router = APIRouter(prefix="/orders", tags=["orders"])


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: str,
    order_service: OrderService = Depends(get_order_service),
) -> OrderResponse:
    """Get an order by ID."""
    order = await order_service.get_order(order_id)
    return OrderResponse.model_validate(order)


@router.post("/{order_id}/payments", response_model=PaymentRecordResponse, status_code=status.HTTP_201_CREATED)
async def record_payment(
    order_id: str,
    data: PaymentCreate,
    payment_service: PaymentService = Depends(get_payment_service),
    stats_service: ShopStatsService = Depends(get_shop_stats_service),
) -> PaymentRecordResponse:
    """Record a payment against an order.

    Updates the order's paid amount and status and any outstanding debt
    together. Returns 409 if the order changed concurrently; the client
    should reload and retry.
    """
    result = await payment_service.record_payment(
        order_id=order_id,
        amount=data.amount,
        method=data.method,
        date=data.date,
        notes=data.notes,
        payment_type=data.payment_type,
        created_by=data.created_by,
        transaction_id=data.transaction_id,
    )
    stats_service.invalidate(result.order.shop_id)
    return PaymentRecordResponse.model_validate(result)


@router.get("/{order_id}/payments", response_model=PaymentListResponse)
async def list_order_payments(
    order_id: str,
    payment_service: PaymentService = Depends(get_payment_service),
) -> PaymentListResponse:
    """List an order's payments, oldest first."""
    payments = await payment_service.list_payments(order_id)
    return PaymentListResponse(
        payments=[PaymentResponse.model_validate(p) for p in payments],
        total_received=total_received(payments),
    )


@router.post("/{order_id}/status", response_model=OrderTransitionResponse)
async def transition_order(
    order_id: str,
    data: OrderStatusUpdate,
    order_service: OrderService = Depends(get_order_service),
    stats_service: ShopStatsService = Depends(get_shop_stats_service),
) -> OrderTransitionResponse:
    """Move an order to a new status.

    Completing an order with an unpaid balance creates its debt. Repeating
    the completion returns the same debt without creating another.
    """
    result = await order_service.transition_order(order_id, data.status)
    stats_service.invalidate(result.order.shop_id)
    return OrderTransitionResponse.model_validate(result)
