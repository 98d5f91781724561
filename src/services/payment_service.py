"""Payment recording against orders."""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from src.api.middleware.error_handler import ConflictError, NotFoundError, ValidationError
from src.core.document_store import ORDERS, PAYMENTS, DocumentStore, get_document_store, where
from src.core.normalization import ZERO, normalize_timestamp, to_decimal, total_received, utcnow
from src.models.base import parse_records
from src.models.enums import DebtStatus, OrderStatus, PaymentMethod, PaymentStatus, PaymentType
from src.models.ledger import OrderRecord, PaymentRecord
from src.services.debt_service import DebtService, DebtUpdate

logger = logging.getLogger(__name__)


@dataclass
class PaymentRecordResult:
    """Everything written by a single record_payment call."""

    payment: PaymentRecord
    order: OrderRecord
    debt_update: DebtUpdate | None = None
    overpaid_amount: Decimal = ZERO

    @property
    def balance_due(self) -> Decimal:
        return max(self.order.amount - self.order.paid, ZERO)


def current_paid_amount(order: OrderRecord, history: list[PaymentRecord]) -> Decimal:
    """Amount paid so far; orders without a stored paid amount fall back to their history."""
    return order.paid_amount if order.paid_amount is not None else total_received(history)


def resolve_order_status(current: OrderStatus, new_paid: Decimal, amount: Decimal) -> OrderStatus:
    """Order status after a payment.

    A COMPLETED order stays COMPLETED whatever the amount; otherwise the
    order is COMPLETED once fully paid and IN_PROGRESS before that.
    """
    if current == OrderStatus.COMPLETED or new_paid >= amount:
        return OrderStatus.COMPLETED
    return OrderStatus.IN_PROGRESS


class PaymentService:
    """Service for recording and listing payments."""

    def __init__(
        self,
        store: DocumentStore | None = None,
        debt_service: DebtService | None = None,
    ):
        """Initialize payment service.

        Args:
            store: Optional document store for testing.
            debt_service: Optional debt service for testing.
        """
        self._store = store
        self._debt_service = debt_service

    @property
    def store(self) -> DocumentStore:
        """Get document store."""
        if self._store is None:
            self._store = get_document_store()
        return self._store

    @property
    def debt_service(self) -> DebtService:
        """Get debt service."""
        if self._debt_service is None:
            self._debt_service = DebtService(store=self.store)
        return self._debt_service

    async def list_payments(self, order_id: str) -> list[PaymentRecord]:
        """Payment history of an order, oldest first."""
        rows = await self.store.get_collection(PAYMENTS, [where("order_id", "==", order_id)])
        return sorted(parse_records(PaymentRecord, rows), key=lambda p: p.created_at)

    async def list_shop_payments(self, shop_id: str) -> list[PaymentRecord]:
        """All payments of a shop, newest first."""
        rows = await self.store.get_collection(PAYMENTS, [where("shop_id", "==", shop_id)])
        return sorted(parse_records(PaymentRecord, rows), key=lambda p: p.created_at, reverse=True)

    async def record_payment(
        self,
        order_id: str,
        amount: Decimal | int | str,
        method: PaymentMethod | str,
        date: datetime | None = None,
        notes: str | None = None,
        payment_type: PaymentType | str = PaymentType.ORDER_PAYMENT,
        created_by: str | None = None,
        transaction_id: str | None = None,
    ) -> PaymentRecordResult:
        """Record a completed payment against an order.

        The order's paid amount and status, the new payment record and the
        order's debt (if any) are written together: the order update is a
        compare-and-swap on its previous paid amount and status, and a
        failure after it undoes the earlier writes before re-raising.
        If the undo itself fails, for example because the connection is
        gone, the order keeps the new paid amount without a payment behind
        it; the failure is logged with the order id and the original error
        is raised.

        Over-payment is accepted. The order's paid amount keeps the full
        total, the excess is stamped on the order as ``overpaid_amount`` and
        any debt's remaining balance is clamped at zero.

        Args:
            order_id: Order being paid.
            amount: Positive amount received.
            method: How the money was received.
            date: When it was received (defaults to now).
            notes: Optional free text.
            payment_type: ORDER_PAYMENT or ADVANCE.
            created_by: Id of the recording user.
            transaction_id: External reference, e.g. a mobile money id.

        Returns:
            PaymentRecordResult: Payment, updated order and debt update.

        Raises:
            ValidationError: Bad input, a cancelled order or a written-off debt, before any write.
            NotFoundError: If the order does not exist.
            ConflictError: If the order changed since it was read.
        """
        amount = to_decimal(amount)
        if amount <= ZERO:
            raise ValidationError(
                "Payment amount must be greater than 0",
                details=[{"loc": ["amount"], "msg": "must be greater than 0", "type": "value_error"}],
            )
        try:
            method = PaymentMethod(method)
        except ValueError:
            raise ValidationError(f"Unsupported payment method: {method}") from None
        try:
            payment_type = PaymentType(payment_type)
        except ValueError:
            raise ValidationError(f"Unsupported payment type: {payment_type}") from None
        if payment_type == PaymentType.REFUND:
            raise ValidationError("Refunds are not recorded as order payments")

        row = await self.store.get_document(ORDERS, order_id)
        if row is None:
            raise NotFoundError(f"Order {order_id} not found")
        order = OrderRecord.from_row(row)
        if order.status == OrderStatus.CANCELLED:
            raise ValidationError(f"Order {order_id} is cancelled and cannot take payments")

        # History is read right before the write
        history = await self.list_payments(order.id)
        new_paid = current_paid_amount(order, history) + amount
        new_status = resolve_order_status(order.status, new_paid, order.amount)
        overpaid = max(new_paid - order.amount, ZERO)
        if overpaid > ZERO:
            logger.warning("Order %s overpaid by %s", order.id, overpaid)

        debt = await self.debt_service.get_debt_for_order(order.id)
        if debt is not None and debt.status == DebtStatus.WRITTEN_OFF:
            raise ValidationError(f"Debt {debt.id} for order {order_id} was written off and cannot take payments")

        order_fields = {"paid_amount": new_paid, "status": new_status, "overpaid_amount": overpaid}
        matched = await self.store.update_document_if(
            ORDERS,
            order.id,
            order_fields,
            expected={"paid_amount": order.paid_amount, "status": order.status},
        )
        if not matched:
            raise ConflictError(f"Order {order.id} was modified concurrently; retry the payment")

        undo: list[Callable[[], Awaitable[None]]] = [
            lambda: self.store.update_document(
                ORDERS,
                order.id,
                {"paid_amount": order.paid_amount, "status": order.status, "overpaid_amount": order.overpaid_amount},
            )
        ]

        payment_data = {
            "shop_id": order.shop_id,
            "customer_id": order.customer_id,
            "order_id": order.id,
            "amount": amount,
            "currency": order.currency,
            "method": method,
            "type": payment_type,
            "status": PaymentStatus.COMPLETED,
            "notes": notes,
            "transaction_id": transaction_id,
            "created_by": created_by,
            "created_at": normalize_timestamp(date) if date is not None else utcnow(),
        }
        debt_update: DebtUpdate | None = None
        try:
            payment_id = await self.store.add_document(PAYMENTS, payment_data)
            undo.append(lambda: self.store.delete_document(PAYMENTS, payment_id))

            if debt is not None and debt.is_outstanding:
                debt_update = await self.debt_service.apply_payment_to(debt, amount)
        except Exception:
            await self._compensate(order.id, undo)
            raise

        logger.info(
            "Recorded payment %s of %s on order %s (paid %s of %s, %s)",
            payment_id,
            amount,
            order.id,
            new_paid,
            order.amount,
            new_status.value,
        )
        return PaymentRecordResult(
            payment=PaymentRecord.from_row({**payment_data, "id": payment_id}),
            order=order.model_copy(update=order_fields),
            debt_update=debt_update,
            overpaid_amount=overpaid,
        )

    async def _compensate(self, order_id: str, undo: list[Callable[[], Awaitable[None]]]) -> None:
        """Run undo steps newest first. Failures are logged; the caller re-raises."""
        for step in reversed(undo):
            try:
                await step()
            except Exception as e:
                logger.error("Rollback step failed for order %s: %s", order_id, e)
