"""Order status lifecycle.

PENDING -> IN_PROGRESS -> COMPLETED, with CANCELLED reachable from PENDING
or IN_PROGRESS. COMPLETED and CANCELLED are terminal. Completing an order
with an unpaid balance creates its debt exactly once.
"""

import logging
from dataclasses import dataclass

from src.api.middleware.error_handler import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from src.core.document_store import ORDERS, PAYMENTS, DocumentStore, get_document_store, where
from src.core.normalization import ZERO
from src.models.base import parse_records
from src.models.enums import OrderStatus
from src.models.ledger import DebtRecord, OrderRecord, PaymentRecord
from src.services.debt_service import DebtService
from src.services.payment_service import current_paid_amount

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.IN_PROGRESS, OrderStatus.COMPLETED, OrderStatus.CANCELLED}),
    OrderStatus.IN_PROGRESS: frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    """Whether an order may move from current to target.

    Staying in the same state is always allowed; it is a no-op except for
    COMPLETED, where it re-checks the debt.
    """
    return current == target or target in ALLOWED_TRANSITIONS[current]


@dataclass
class OrderTransitionResult:
    """Outcome of a status transition."""

    order: OrderRecord
    debt: DebtRecord | None = None
    debt_created: bool = False


class OrderService:
    """Service for order status transitions."""

    def __init__(
        self,
        store: DocumentStore | None = None,
        debt_service: DebtService | None = None,
    ):
        """Initialize order service.

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

    async def get_order(self, order_id: str) -> OrderRecord:
        """Get an order by id.

        Raises:
            NotFoundError: If the order does not exist.
        """
        row = await self.store.get_document(ORDERS, order_id)
        if row is None:
            raise NotFoundError(f"Order {order_id} not found")
        return OrderRecord.from_row(row)

    async def transition_order(self, order_id: str, target: OrderStatus | str) -> OrderTransitionResult:
        """Move an order to a new status.

        Args:
            order_id: Order to transition.
            target: Requested status.

        Returns:
            OrderTransitionResult: Updated order and, on completion, its debt.

        Raises:
            ValidationError: If target is not a known status.
            NotFoundError: If the order does not exist.
            InvalidTransitionError: If the lifecycle forbids the move.
            ConflictError: If the order changed since it was read.
        """
        try:
            target = OrderStatus(target)
        except ValueError:
            raise ValidationError(f"Unknown order status: {target}") from None

        order = await self.get_order(order_id)
        if not can_transition(order.status, target):
            raise InvalidTransitionError(order.status.value, target.value)

        if target == OrderStatus.COMPLETED:
            return await self._complete(order)
        if order.status == target:
            return OrderTransitionResult(order=order)

        matched = await self.store.update_document_if(
            ORDERS, order.id, {"status": target}, expected={"status": order.status}
        )
        if not matched:
            raise ConflictError(f"Order {order.id} was modified concurrently")
        logger.info("Order %s moved %s -> %s", order.id, order.status.value, target.value)
        return OrderTransitionResult(order=order.model_copy(update={"status": target}))

    async def _complete(self, order: OrderRecord) -> OrderTransitionResult:
        """Complete an order, creating its debt first when a balance remains.

        Re-entering COMPLETED only re-checks the debt; the existing debt is
        returned rather than a second one created.
        """
        payment_rows = await self.store.get_collection(PAYMENTS, [where("order_id", "==", order.id)])
        paid = current_paid_amount(order, parse_records(PaymentRecord, payment_rows))
        remaining = order.amount - paid
        paid_order = order.model_copy(update={"paid_amount": paid})

        debt: DebtRecord | None = None
        created = False
        if remaining > ZERO:
            result = await self.debt_service.create_debt_record(paid_order, remaining)
            debt, created = result.debt, result.created

        if order.status == OrderStatus.COMPLETED:
            return OrderTransitionResult(order=order, debt=debt, debt_created=created)

        data = {"status": OrderStatus.COMPLETED}
        if order.paid_amount is None:
            data["paid_amount"] = paid
        try:
            matched = await self.store.update_document_if(
                ORDERS,
                order.id,
                data,
                expected={"status": order.status, "paid_amount": order.paid_amount},
            )
        except Exception:
            if created:
                await self.debt_service.delete_debt(debt.id)
            raise
        if not matched:
            if created:
                await self.debt_service.delete_debt(debt.id)
            raise ConflictError(f"Order {order.id} was modified concurrently")

        logger.info(
            "Order %s completed with %s outstanding%s",
            order.id,
            max(remaining, ZERO),
            " (debt created)" if created else "",
        )
        return OrderTransitionResult(
            order=paid_order.model_copy(update={"status": OrderStatus.COMPLETED}),
            debt=debt,
            debt_created=created,
        )
