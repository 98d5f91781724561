"""Debt ledger: one record per order that completed with an unpaid balance."""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from src.api.middleware.error_handler import ConflictError, NotFoundError, ValidationError
from src.core.document_store import DEBTS, ORDERS, PAYMENTS, DocumentStore, get_document_store, where
from src.core.normalization import ZERO, to_decimal, total_received, utcnow
from src.models.base import parse_records
from src.models.enums import OUTSTANDING_DEBT_STATUSES, DebtStatus, OrderStatus
from src.models.ledger import DebtRecord, OrderRecord, PaymentRecord

logger = logging.getLogger(__name__)


@dataclass
class DebtCreateResult:
    """Outcome of create_debt_record; ``created`` is False for an existing debt."""

    debt: DebtRecord
    created: bool


@dataclass
class DebtUpdate:
    """New balances for a debt after a payment."""

    debt_id: str
    applied_amount: Decimal
    paid_amount: Decimal
    remaining_amount: Decimal
    status: DebtStatus
    over_collected: Decimal = ZERO

    def as_fields(self) -> dict[str, Any]:
        return {
            "paid_amount": self.paid_amount,
            "remaining_amount": self.remaining_amount,
            "status": self.status,
        }


@dataclass
class DebtSummary:
    """Totals shown on the debtors page."""

    total_outstanding: Decimal = ZERO
    total_original: Decimal = ZERO
    total_collected: Decimal = ZERO
    outstanding_count: int = 0
    customer_count: int = 0
    by_status: dict[str, int] = field(default_factory=dict)


def initial_debt_status(paid_amount: Decimal) -> DebtStatus:
    """Status of a new debt: ACTIVE when nothing was paid, else PARTIALLY_PAID."""
    return DebtStatus.ACTIVE if paid_amount <= ZERO else DebtStatus.PARTIALLY_PAID


def plan_payment(debt: DebtRecord, amount: Decimal) -> DebtUpdate:
    """Compute a debt's balances after a payment without touching storage.

    Over-collection is clamped: the remaining balance stops at zero and the
    excess is reported in ``over_collected``, while ``paid_amount`` still
    accumulates everything that was received.

    Args:
        debt: Current debt record.
        amount: Positive payment amount.

    Returns:
        DebtUpdate: The balances to persist.
    """
    amount = to_decimal(amount)
    new_paid = debt.paid_amount + amount
    raw_remaining = debt.remaining_amount - amount
    remaining = max(raw_remaining, ZERO)
    return DebtUpdate(
        debt_id=debt.id,
        applied_amount=amount,
        paid_amount=new_paid,
        remaining_amount=remaining,
        status=DebtStatus.PAID if remaining <= ZERO else DebtStatus.PARTIALLY_PAID,
        over_collected=max(-raw_remaining, ZERO),
    )


def summarize_debts(debts: list[DebtRecord]) -> DebtSummary:
    """Aggregate totals and per-status counts for a list of debts."""
    summary = DebtSummary(by_status={status.value: 0 for status in DebtStatus})
    customers: set[str] = set()
    for debt in debts:
        summary.by_status[debt.status.value] += 1
        summary.total_original += debt.original_amount
        summary.total_collected += debt.paid_amount
        if debt.is_outstanding:
            summary.total_outstanding += debt.remaining_amount
            summary.outstanding_count += 1
            customers.add(debt.customer_id)
    summary.customer_count = len(customers)
    return summary


class DebtService:
    """Service for debt ledger operations."""

    def __init__(self, store: DocumentStore | None = None):
        """Initialize debt service.

        Args:
            store: Optional document store for testing.
        """
        self._store = store

    @property
    def store(self) -> DocumentStore:
        """Get document store."""
        if self._store is None:
            self._store = get_document_store()
        return self._store

    async def get_debt(self, debt_id: str) -> DebtRecord:
        """Get a debt by id.

        Raises:
            NotFoundError: If the debt does not exist.
        """
        row = await self.store.get_document(DEBTS, debt_id)
        if row is None:
            raise NotFoundError(f"Debt {debt_id} not found")
        return DebtRecord.from_row(row)

    async def get_debt_for_order(self, order_id: str) -> DebtRecord | None:
        """Get the debt for an order, if one exists."""
        rows = await self.store.get_collection(DEBTS, [where("order_id", "==", order_id)])
        debts = parse_records(DebtRecord, rows)
        if not debts:
            return None
        if len(debts) > 1:
            logger.warning("Order %s has %d debt records; using the oldest", order_id, len(debts))
        return min(debts, key=lambda d: d.created_at)

    async def create_debt_record(self, order: OrderRecord, remaining_amount: Decimal) -> DebtCreateResult:
        """Create the single debt for a completed order.

        Idempotent: if the order already has a debt, that debt is returned
        unchanged with ``created=False``.

        Args:
            order: The order being completed.
            remaining_amount: Outstanding balance, must be positive.

        Returns:
            DebtCreateResult: The debt and whether it was created now.

        Raises:
            ValidationError: If remaining_amount is not positive.
        """
        remaining_amount = to_decimal(remaining_amount)
        if remaining_amount <= ZERO:
            raise ValidationError(
                "Debt remaining amount must be positive",
                details=[{"loc": ["remaining_amount"], "msg": str(remaining_amount), "type": "value_error"}],
            )

        existing = await self.get_debt_for_order(order.id)
        if existing is not None:
            logger.info("Debt %s already exists for order %s", existing.id, order.id)
            return DebtCreateResult(debt=existing, created=False)

        now = utcnow()
        debt_data = {
            "shop_id": order.shop_id,
            "customer_id": order.customer_id,
            "customer_name": order.customer_name,
            "order_id": order.id,
            "order_description": order.description,
            "original_amount": order.amount,
            "paid_amount": order.paid,
            "remaining_amount": remaining_amount,
            "currency": order.currency,
            "due_date": order.due_date,
            "status": initial_debt_status(order.paid),
            "order_completed_date": now,
            "created_at": now,
            "notes": f"Debt from completed order: {order.description}",
        }
        debt_id = await self.store.add_document(DEBTS, debt_data)
        logger.info("Created debt %s for order %s (remaining %s)", debt_id, order.id, remaining_amount)
        return DebtCreateResult(debt=DebtRecord.from_row({**debt_data, "id": debt_id}), created=True)

    async def apply_payment_to(self, debt: DebtRecord, payment_amount: Decimal) -> DebtUpdate:
        """Apply a payment to an already loaded debt.

        The write only lands if the debt still holds the balances it was
        read with.

        Raises:
            ValidationError: If the debt was written off.
            ConflictError: If the debt changed since it was read.
        """
        if debt.status == DebtStatus.WRITTEN_OFF:
            raise ValidationError(f"Debt {debt.id} was written off and cannot take payments")

        update = plan_payment(debt, payment_amount)
        if update.over_collected > ZERO:
            logger.warning(
                "Debt %s over-collected by %s; remaining clamped at 0",
                debt.id,
                update.over_collected,
            )

        matched = await self.store.update_document_if(
            DEBTS,
            debt.id,
            update.as_fields(),
            expected={"paid_amount": debt.paid_amount, "remaining_amount": debt.remaining_amount},
        )
        if not matched:
            raise ConflictError(f"Debt {debt.id} was modified concurrently")
        logger.info("Debt %s now %s (remaining %s)", debt.id, update.status.value, update.remaining_amount)
        return update

    async def apply_payment(self, debt_id: str, payment_amount: Decimal) -> DebtUpdate:
        """Apply a payment to a debt by id.

        Raises:
            ValidationError: If the amount is not positive or the debt was written off.
            NotFoundError: If the debt does not exist.
            ConflictError: If the debt changed concurrently.
        """
        payment_amount = to_decimal(payment_amount)
        if payment_amount <= ZERO:
            raise ValidationError("Payment amount must be greater than 0")
        debt = await self.get_debt(debt_id)
        return await self.apply_payment_to(debt, payment_amount)

    async def delete_debt(self, debt_id: str) -> None:
        await self.store.delete_document(DEBTS, debt_id)

    async def write_off_debt(self, debt_id: str, notes: str | None = None) -> DebtRecord:
        """Mark a debt as written off. Paid debts cannot be written off.

        Raises:
            NotFoundError: If the debt does not exist.
            ValidationError: If the debt is already settled.
        """
        debt = await self.get_debt(debt_id)
        if debt.status == DebtStatus.WRITTEN_OFF:
            return debt
        if debt.status == DebtStatus.PAID:
            raise ValidationError(f"Debt {debt_id} is already paid")

        data: dict[str, Any] = {"status": DebtStatus.WRITTEN_OFF}
        if notes:
            data["notes"] = notes
        await self.store.update_document(DEBTS, debt_id, data)
        logger.info("Debt %s written off (remaining %s)", debt_id, debt.remaining_amount)
        return debt.model_copy(update={"status": DebtStatus.WRITTEN_OFF, "notes": notes or debt.notes})

    async def list_shop_debts(self, shop_id: str, customer_id: str | None = None) -> list[DebtRecord]:
        """All debts of a shop, optionally for one customer, newest first."""
        filters = [where("shop_id", "==", shop_id)]
        if customer_id:
            filters.append(where("customer_id", "==", customer_id))
        rows = await self.store.get_collection(DEBTS, filters)
        return sorted(parse_records(DebtRecord, rows), key=lambda d: d.created_at, reverse=True)

    async def list_outstanding(self, shop_id: str, customer_id: str | None = None) -> list[DebtRecord]:
        """ACTIVE and PARTIALLY_PAID debts of a shop, newest first."""
        filters = [
            where("shop_id", "==", shop_id),
            where("status", "in", list(OUTSTANDING_DEBT_STATUSES)),
        ]
        if customer_id:
            filters.append(where("customer_id", "==", customer_id))
        rows = await self.store.get_collection(DEBTS, filters)
        return sorted(parse_records(DebtRecord, rows), key=lambda d: d.created_at, reverse=True)

    async def ensure_debt_records_for_completed_orders(self, shop_id: str) -> list[DebtRecord]:
        """Create missing debts for completed orders that still have a balance.

        Orders completed before the ledger existed never got a debt. The paid
        amount is recomputed from the payment history so legacy orders without
        a stored paid amount are handled. Orders that already have a debt are
        skipped, so running this again creates nothing.

        Returns:
            list[DebtRecord]: The debts created by this run.
        """
        debt_rows = await self.store.get_collection(DEBTS, [where("shop_id", "==", shop_id)])
        order_rows = await self.store.get_collection(
            ORDERS,
            [where("shop_id", "==", shop_id), where("status", "==", OrderStatus.COMPLETED)],
        )
        debt_order_ids = {row.get("order_id") for row in debt_rows}

        created: list[DebtRecord] = []
        for order in parse_records(OrderRecord, order_rows):
            if order.id in debt_order_ids:
                continue
            payment_rows = await self.store.get_collection(PAYMENTS, [where("order_id", "==", order.id)])
            total_paid = total_received(parse_records(PaymentRecord, payment_rows))
            remaining = order.amount - total_paid
            if remaining <= ZERO:
                continue
            result = await self.create_debt_record(order.model_copy(update={"paid_amount": total_paid}), remaining)
            debt_order_ids.add(order.id)
            if result.created:
                created.append(result.debt)

        if created:
            logger.info("Backfilled %d debt records for shop %s", len(created), shop_id)
        return created
