"""Unit tests for SubscriptionService."""

from datetime import timedelta

import pytest

from src.api.middleware.error_handler import NotFoundError, ValidationError
from src.core.document_store import PLANS, SUBSCRIPTIONS
from src.core.normalization import normalize_timestamp, utcnow
from src.models.enums import BillingCycle, SubscriptionStatus
from src.services.subscription_service import SubscriptionService
from src.services.subscription_state import PlanChange, SubscriptionStateCode
from tests.factories import NOW, free_plan_row, plan_row, subscription_row


class TestCheckSubscriptionStatus:
    """Tests for check_subscription_status."""

    @pytest.mark.asyncio
    async def test_uses_newest_subscription(self, store) -> None:
        store.seed(
            SUBSCRIPTIONS,
            subscription_row(status="CANCELLED", created_at=(NOW - timedelta(days=60)).isoformat()),
            subscription_row(status="ACTIVE", created_at=(NOW - timedelta(days=5)).isoformat()),
        )

        state, subscription = await SubscriptionService(store=store).check_subscription_status("shop-1", now=NOW)

        assert state.status == SubscriptionStateCode.ACTIVE
        assert subscription.status == SubscriptionStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_persists_expired_trial(self, store) -> None:
        row = subscription_row(status="TRIAL", trial_ends_at=(NOW - timedelta(days=1)).isoformat())
        store.seed(SUBSCRIPTIONS, row)

        state, subscription = await SubscriptionService(store=store).check_subscription_status("shop-1", now=NOW)

        assert state.status == SubscriptionStateCode.TRIAL_EXPIRED
        assert subscription.status == SubscriptionStatus.CANCELLED
        assert store.row(SUBSCRIPTIONS, row["id"])["status"] == "CANCELLED"

    @pytest.mark.asyncio
    async def test_persists_expired_paid_period(self, store) -> None:
        row = subscription_row(current_period_end=(NOW - timedelta(days=2)).isoformat())
        store.seed(SUBSCRIPTIONS, row)

        state, _ = await SubscriptionService(store=store).check_subscription_status("shop-1", now=NOW)

        assert state.status == SubscriptionStateCode.EXPIRED
        assert store.row(SUBSCRIPTIONS, row["id"])["status"] == "PAST_DUE"

    @pytest.mark.asyncio
    async def test_current_subscription_is_not_written(self, store) -> None:
        store.seed(SUBSCRIPTIONS, subscription_row())

        await SubscriptionService(store=store).check_subscription_status("shop-1", now=NOW)

        assert ("update_document", SUBSCRIPTIONS) not in store.calls

    @pytest.mark.asyncio
    async def test_no_subscription(self, store) -> None:
        state, subscription = await SubscriptionService(store=store).check_subscription_status("shop-1", now=NOW)

        assert state.status == SubscriptionStateCode.NO_SUBSCRIPTION
        assert subscription is None


class TestCreateTrial:
    """Tests for create_trial_subscription."""

    @pytest.mark.asyncio
    async def test_starts_trial_on_free_plan(self, store, test_settings) -> None:
        free = free_plan_row()
        store.seed(PLANS, free, plan_row())

        subscription = await SubscriptionService(store=store).create_trial_subscription("shop-9")

        assert subscription.status == SubscriptionStatus.TRIAL
        assert subscription.plan_id == free["id"]
        assert subscription.trial_ends_at - subscription.current_period_start == timedelta(
            days=test_settings.trial_days
        )
        assert len(store.rows(SUBSCRIPTIONS)) == 1

    @pytest.mark.asyncio
    async def test_one_trial_per_shop(self, store) -> None:
        store.seed(PLANS, free_plan_row())
        store.seed(SUBSCRIPTIONS, subscription_row(shop_id="shop-9", status="CANCELLED"))

        with pytest.raises(ValidationError):
            await SubscriptionService(store=store).create_trial_subscription("shop-9")

    @pytest.mark.asyncio
    async def test_requires_active_free_plan(self, store) -> None:
        store.seed(PLANS, free_plan_row(is_active=False))

        with pytest.raises(NotFoundError):
            await SubscriptionService(store=store).create_trial_subscription("shop-9")


class TestUpgrade:
    """Tests for upgrade_subscription."""

    @pytest.mark.asyncio
    async def test_supersedes_current_subscription(self, store) -> None:
        """The old subscription is closed without counting as churn."""
        yearly = plan_row(name="Standard Plan (Yearly)", price="430", billing_cycle="YEARLY")
        trial = subscription_row(status="TRIAL", trial_ends_at=(NOW + timedelta(days=1)).isoformat())
        store.seed(PLANS, yearly)
        store.seed(SUBSCRIPTIONS, trial)

        subscription = await SubscriptionService(store=store).upgrade_subscription(
            "shop-1", yearly["id"], payment_reference="PAY-1"
        )

        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.billing_cycle == BillingCycle.YEARLY
        assert subscription.current_period_end - subscription.current_period_start == timedelta(days=365)
        assert subscription.payment_reference == "PAY-1"
        old = store.row(SUBSCRIPTIONS, trial["id"])
        assert old["status"] == "CANCELLED"
        assert old["superseded_by"] == subscription.id
        assert old.get("cancelled_at") is None

    @pytest.mark.asyncio
    async def test_rejects_free_plan(self, store) -> None:
        free = free_plan_row()
        store.seed(PLANS, free)

        with pytest.raises(ValidationError):
            await SubscriptionService(store=store).upgrade_subscription("shop-1", free["id"])

    @pytest.mark.asyncio
    async def test_rejects_inactive_plan(self, store) -> None:
        retired = plan_row(is_active=False)
        store.seed(PLANS, retired)

        with pytest.raises(ValidationError):
            await SubscriptionService(store=store).upgrade_subscription("shop-1", retired["id"])

    @pytest.mark.asyncio
    async def test_unknown_plan(self, store) -> None:
        with pytest.raises(NotFoundError):
            await SubscriptionService(store=store).upgrade_subscription("shop-1", "missing")


class TestCancel:
    """Tests for cancel_subscription."""

    @pytest.mark.asyncio
    async def test_stamps_cancelled_at(self, store) -> None:
        row = subscription_row()
        store.seed(SUBSCRIPTIONS, row)
        before = utcnow()

        subscription = await SubscriptionService(store=store).cancel_subscription(row["id"])

        assert subscription.status == SubscriptionStatus.CANCELLED
        assert subscription.cancelled_at >= before
        stored = store.row(SUBSCRIPTIONS, row["id"])
        assert normalize_timestamp(stored["cancelled_at"]) == subscription.cancelled_at

    @pytest.mark.asyncio
    async def test_already_cancelled_is_unchanged(self, store) -> None:
        row = subscription_row(status="CANCELLED", cancelled_at=NOW.isoformat())
        store.seed(SUBSCRIPTIONS, row)

        subscription = await SubscriptionService(store=store).cancel_subscription(row["id"])

        assert subscription.cancelled_at == NOW
        assert ("update_document", SUBSCRIPTIONS) not in store.calls


class TestPlanOptions:
    """Tests for get_plan_options."""

    @pytest.mark.asyncio
    async def test_labels_against_current_plan(self, store) -> None:
        monthly = plan_row(name="Standard Plan", price="43")
        yearly = plan_row(name="Standard Plan (Yearly)", price="430", billing_cycle="YEARLY")
        store.seed(PLANS, free_plan_row(), monthly, yearly)
        store.seed(SUBSCRIPTIONS, subscription_row(yearly))

        options = await SubscriptionService(store=store).get_plan_options("shop-1")

        by_name = {o.plan.name: o for o in options}
        assert set(by_name) == {"Standard Plan", "Standard Plan (Yearly)"}
        assert by_name["Standard Plan"].change == PlanChange.DOWNGRADE
        assert by_name["Standard Plan (Yearly)"].change == PlanChange.LATERAL
        assert by_name["Standard Plan (Yearly)"].is_current is True

    @pytest.mark.asyncio
    async def test_shop_without_subscription(self, store) -> None:
        store.seed(PLANS, free_plan_row(), plan_row(price="43"))

        options = await SubscriptionService(store=store).get_plan_options("shop-1")

        assert [o.change for o in options] == [PlanChange.UPGRADE]
        assert options[0].is_current is False
