"""Unit tests for PaymentService."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from src.api.middleware.error_handler import (
    ConflictError,
    NotFoundError,
    ServiceUnavailableError,
    StoreError,
    ValidationError,
)
from src.core.document_store import DEBTS, ORDERS, PAYMENTS
from src.models.enums import DebtStatus, OrderStatus, PaymentStatus
from src.models.ledger import OrderRecord
from src.services.payment_service import PaymentService, current_paid_amount, resolve_order_status
from tests.factories import debt_row, order_row, payment_row


class TestResolveOrderStatus:
    """Tests for the order status chosen after a payment."""

    def test_partial_payment_moves_to_in_progress(self) -> None:
        assert resolve_order_status(OrderStatus.PENDING, Decimal("100"), Decimal("500")) == OrderStatus.IN_PROGRESS

    def test_full_payment_completes(self) -> None:
        assert resolve_order_status(OrderStatus.IN_PROGRESS, Decimal("500"), Decimal("500")) == OrderStatus.COMPLETED

    def test_completed_never_regresses(self) -> None:
        """A completed order stays completed even if still underpaid."""
        assert resolve_order_status(OrderStatus.COMPLETED, Decimal("100"), Decimal("500")) == OrderStatus.COMPLETED

    def test_legacy_paid_amount_comes_from_history(self) -> None:
        order = OrderRecord.from_row(order_row(paid_amount=None))
        assert current_paid_amount(order, []) == Decimal("0")


class TestRecordPayment:
    """Tests for record_payment."""

    @pytest.mark.asyncio
    async def test_first_partial_payment(self, store) -> None:
        order = order_row(amount="500", paid_amount="0", status="PENDING")
        store.seed(ORDERS, order)

        result = await PaymentService(store=store).record_payment(order["id"], Decimal("200"), "CASH")

        stored = store.row(ORDERS, order["id"])
        assert Decimal(stored["paid_amount"]) == Decimal("200")
        assert stored["status"] == "IN_PROGRESS"
        assert result.order.status == OrderStatus.IN_PROGRESS
        assert result.balance_due == Decimal("300")
        assert result.payment.status == PaymentStatus.COMPLETED
        assert len(store.rows(PAYMENTS)) == 1

    @pytest.mark.asyncio
    async def test_full_payment_completes_order(self, store) -> None:
        order = order_row(amount="500", paid_amount="200", status="IN_PROGRESS")
        store.seed(ORDERS, order)

        result = await PaymentService(store=store).record_payment(order["id"], "300", "MOBILE_MONEY")

        assert store.row(ORDERS, order["id"])["status"] == "COMPLETED"
        assert result.balance_due == Decimal("0")
        assert result.overpaid_amount == Decimal("0")

    @pytest.mark.asyncio
    async def test_overpayment_is_recorded_on_order(self, store) -> None:
        order = order_row(amount="500", paid_amount="400", status="IN_PROGRESS")
        store.seed(ORDERS, order)

        result = await PaymentService(store=store).record_payment(order["id"], Decimal("150"), "CASH")

        stored = store.row(ORDERS, order["id"])
        assert Decimal(stored["paid_amount"]) == Decimal("550")
        assert Decimal(stored["overpaid_amount"]) == Decimal("50")
        assert result.overpaid_amount == Decimal("50")

    @pytest.mark.asyncio
    async def test_payment_on_completed_order_reduces_debt(self, store) -> None:
        """Paying off a completed order updates its debt and keeps the order completed."""
        order = order_row(amount="500", paid_amount="200", status="COMPLETED")
        debt = debt_row(order, paid_amount="200", remaining_amount="300")
        store.seed(ORDERS, order)
        store.seed(DEBTS, debt)

        result = await PaymentService(store=store).record_payment(order["id"], Decimal("100"), "CASH")

        assert result.order.status == OrderStatus.COMPLETED
        assert result.debt_update.status == DebtStatus.PARTIALLY_PAID
        stored_debt = store.row(DEBTS, debt["id"])
        assert Decimal(stored_debt["remaining_amount"]) == Decimal("200")
        assert Decimal(stored_debt["paid_amount"]) == Decimal("300")

    @pytest.mark.asyncio
    async def test_over_collection_clamps_debt(self, store) -> None:
        order = order_row(amount="500", paid_amount="200", status="COMPLETED")
        debt = debt_row(order, paid_amount="200", remaining_amount="300")
        store.seed(ORDERS, order)
        store.seed(DEBTS, debt)

        result = await PaymentService(store=store).record_payment(order["id"], Decimal("400"), "CASH")

        assert result.debt_update.remaining_amount == Decimal("0")
        assert result.debt_update.over_collected == Decimal("100")
        assert store.row(DEBTS, debt["id"])["status"] == "PAID"
        assert Decimal(store.row(ORDERS, order["id"])["overpaid_amount"]) == Decimal("100")

    @pytest.mark.asyncio
    async def test_paid_debt_is_left_alone(self, store) -> None:
        order = order_row(amount="500", paid_amount="500", status="COMPLETED")
        debt = debt_row(order, paid_amount="500", remaining_amount="0", status="PAID")
        store.seed(ORDERS, order)
        store.seed(DEBTS, debt)

        result = await PaymentService(store=store).record_payment(order["id"], Decimal("10"), "CASH")

        assert result.debt_update is None
        assert ("update_document_if", DEBTS) not in store.calls

    @pytest.mark.asyncio
    async def test_legacy_order_uses_payment_history(self, store) -> None:
        """An order without a stored paid amount counts its legacy payments."""
        order = order_row(amount="500", paid_amount=None, status="IN_PROGRESS")
        store.seed(ORDERS, order)
        store.seed(PAYMENTS, payment_row(order, amount="300", status=None))

        await PaymentService(store=store).record_payment(order["id"], Decimal("200"), "CASH")

        stored = store.row(ORDERS, order["id"])
        assert Decimal(stored["paid_amount"]) == Decimal("500")
        assert stored["status"] == "COMPLETED"

    @pytest.mark.asyncio
    async def test_explicit_date_and_metadata(self, store) -> None:
        order = order_row()
        store.seed(ORDERS, order)
        when = datetime(2024, 6, 1, 9, 30, tzinfo=timezone.utc)

        result = await PaymentService(store=store).record_payment(
            order["id"],
            Decimal("50"),
            "CARD",
            date=when,
            notes="deposit",
            payment_type="ADVANCE",
            created_by="user-9",
            transaction_id="MM-123",
        )

        assert result.payment.created_at == when
        assert result.payment.transaction_id == "MM-123"
        stored = store.row(PAYMENTS, result.payment.id)
        assert stored["type"] == "ADVANCE"
        assert stored["created_by"] == "user-9"


class TestRecordPaymentValidation:
    """Invalid requests fail before anything is read or written."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "amount,method,payment_type",
        [
            (Decimal("0"), "CASH", "ORDER_PAYMENT"),
            (Decimal("-10"), "CASH", "ORDER_PAYMENT"),
            (Decimal("10"), "CHEQUE", "ORDER_PAYMENT"),
            (Decimal("10"), "CASH", "GIFT"),
            (Decimal("10"), "CASH", "REFUND"),
        ],
    )
    async def test_rejects_bad_input_without_io(self, store, amount, method, payment_type) -> None:
        with pytest.raises(ValidationError):
            await PaymentService(store=store).record_payment("o1", amount, method, payment_type=payment_type)

        assert store.calls == []

    @pytest.mark.asyncio
    async def test_cancelled_order_rejected(self, store) -> None:
        order = order_row(status="CANCELLED")
        store.seed(ORDERS, order)

        with pytest.raises(ValidationError):
            await PaymentService(store=store).record_payment(order["id"], Decimal("10"), "CASH")

        assert store.rows(PAYMENTS) == []

    @pytest.mark.asyncio
    async def test_written_off_debt_rejected(self, store) -> None:
        order = order_row(status="COMPLETED", paid_amount="200")
        store.seed(ORDERS, order)
        store.seed(DEBTS, debt_row(order, status="WRITTEN_OFF"))

        with pytest.raises(ValidationError):
            await PaymentService(store=store).record_payment(order["id"], Decimal("50"), "CASH")

        assert store.rows(PAYMENTS) == []
        assert ("update_document_if", ORDERS) not in store.calls

    @pytest.mark.asyncio
    async def test_missing_order(self, store) -> None:
        with pytest.raises(NotFoundError):
            await PaymentService(store=store).record_payment("missing", Decimal("10"), "CASH")


class TestRecordPaymentFailures:
    """Partial failures are undone so no write is left half applied."""

    @pytest.mark.asyncio
    async def test_concurrent_order_change_conflicts(self, store) -> None:
        order = order_row(amount="500", paid_amount="0")
        store.seed(ORDERS, order)
        service = PaymentService(store=store)

        original = store.update_document_if

        async def racing_update(collection, doc_id, data, expected):
            # Another payment lands between the read and the write
            store.collections[ORDERS][order["id"]]["paid_amount"] = "100"
            return await original(collection, doc_id, data, expected)

        store.update_document_if = racing_update

        with pytest.raises(ConflictError):
            await service.record_payment(order["id"], Decimal("50"), "CASH")

        assert store.rows(PAYMENTS) == []
        assert store.row(ORDERS, order["id"])["paid_amount"] == "100"

    @pytest.mark.asyncio
    async def test_failed_payment_insert_restores_order(self, store) -> None:
        order = order_row(amount="500", paid_amount="100", status="IN_PROGRESS")
        store.seed(ORDERS, order)
        store.fail_on[("add_document", PAYMENTS)] = ServiceUnavailableError()

        with pytest.raises(ServiceUnavailableError):
            await PaymentService(store=store).record_payment(order["id"], Decimal("400"), "CASH")

        stored = store.row(ORDERS, order["id"])
        assert Decimal(stored["paid_amount"]) == Decimal("100")
        assert stored["status"] == "IN_PROGRESS"
        assert store.rows(PAYMENTS) == []

    @pytest.mark.asyncio
    async def test_failed_debt_update_removes_payment(self, store) -> None:
        order = order_row(amount="500", paid_amount="200", status="COMPLETED")
        debt = debt_row(order, paid_amount="200", remaining_amount="300")
        store.seed(ORDERS, order)
        store.seed(DEBTS, debt)
        store.fail_on[("update_document_if", DEBTS)] = StoreError()

        with pytest.raises(StoreError):
            await PaymentService(store=store).record_payment(order["id"], Decimal("100"), "CASH")

        assert Decimal(store.row(ORDERS, order["id"])["paid_amount"]) == Decimal("200")
        assert store.rows(PAYMENTS) == []
        assert Decimal(store.row(DEBTS, debt["id"])["remaining_amount"]) == Decimal("300")

    @pytest.mark.asyncio
    async def test_failed_rollback_raises_original_error(self, store) -> None:
        """A lost connection can leave the order ahead of its payment history."""
        order = order_row(amount="500", paid_amount="100", status="IN_PROGRESS")
        store.seed(ORDERS, order)
        store.fail_on[("add_document", PAYMENTS)] = ServiceUnavailableError()
        store.fail_on[("update_document", ORDERS)] = StoreError()

        with pytest.raises(ServiceUnavailableError):
            await PaymentService(store=store).record_payment(order["id"], Decimal("400"), "CASH")

        assert ("update_document", ORDERS) in store.calls
        assert Decimal(store.row(ORDERS, order["id"])["paid_amount"]) == Decimal("500")
        assert store.rows(PAYMENTS) == []


class TestListPayments:
    """Tests for list_payments and list_shop_payments."""

    @pytest.mark.asyncio
    async def test_order_history_oldest_first(self, store) -> None:
        order = order_row()
        late = payment_row(order, created_at="2024-03-01T00:00:00Z")
        early = payment_row(order, created_at=1704067200000)
        store.seed(PAYMENTS, late, early, payment_row(order_row()))

        payments = await PaymentService(store=store).list_payments(order["id"])

        assert [p.id for p in payments] == [early["id"], late["id"]]

    @pytest.mark.asyncio
    async def test_shop_payments_newest_first(self, store) -> None:
        early = payment_row(created_at="2024-01-01T00:00:00Z")
        late = payment_row(created_at="2024-03-01T00:00:00Z")
        store.seed(PAYMENTS, early, late, payment_row(shop_id="shop-2"))

        payments = await PaymentService(store=store).list_shop_payments("shop-1")

        assert [p.id for p in payments] == [late["id"], early["id"]]
