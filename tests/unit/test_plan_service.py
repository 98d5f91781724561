"""Unit tests for PlanService."""

from decimal import Decimal

import pytest

from src.api.middleware.error_handler import NotFoundError, ValidationError
from src.core.document_store import PLANS
from src.models.enums import BillingCycle, BillingPlanType
from src.services.plan_service import DEFAULT_PLANS, PlanService
from tests.factories import free_plan_row, plan_row


class TestListPlans:
    """Tests for list_plans and get_plan."""

    @pytest.mark.asyncio
    async def test_cheapest_first(self, store) -> None:
        store.seed(PLANS, plan_row(name="Yearly", price="430"), free_plan_row(), plan_row(name="Monthly", price="43"))

        plans = await PlanService(store=store).list_plans()

        assert [p.name for p in plans] == ["Free Trial", "Monthly", "Yearly"]

    @pytest.mark.asyncio
    async def test_active_only(self, store) -> None:
        store.seed(PLANS, plan_row(name="Current"), plan_row(name="Retired", is_active=False))

        plans = await PlanService(store=store).list_plans(active_only=True)

        assert [p.name for p in plans] == ["Current"]

    @pytest.mark.asyncio
    async def test_legacy_feature_map(self, store) -> None:
        row = plan_row(features={"1": "Reports", "0": "Orders"}, limits={"teamMembers": 4})
        store.seed(PLANS, row)

        plan = await PlanService(store=store).get_plan(row["id"])

        assert plan.features == ["Orders", "Reports"]
        assert plan.limits.team_members == 4

    @pytest.mark.asyncio
    async def test_missing_plan(self, store) -> None:
        service = PlanService(store=store)

        with pytest.raises(NotFoundError):
            await service.get_plan("missing")
        assert await service.find_plan("missing") is None


class TestCreateAndUpdate:
    """Tests for create_plan and update_plan."""

    @pytest.mark.asyncio
    async def test_create_normalizes_fields(self, store) -> None:
        plan = await PlanService(store=store).create_plan(
            {"name": "Enterprise", "type": "ENTERPRISE", "price": "99.90", "billing_cycle": "MONTHLY"}
        )

        assert plan.type == BillingPlanType.ENTERPRISE
        assert plan.price == Decimal("99.90")
        assert plan.is_active is True
        assert store.row(PLANS, plan.id)["price"] == "99.90"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "data",
        [
            {"name": "", "price": "10"},
            {"name": "Bad", "price": "-1"},
            {"name": "Bad", "price": "10", "billing_cycle": "WEEKLY"},
            {"name": "Bad", "price": "10", "type": "GOLD"},
        ],
    )
    async def test_create_rejects_invalid(self, store, data: dict) -> None:
        with pytest.raises(ValidationError):
            await PlanService(store=store).create_plan(data)
        assert store.rows(PLANS) == []

    @pytest.mark.asyncio
    async def test_update_merges_fields(self, store) -> None:
        row = plan_row(price="43")
        store.seed(PLANS, row)

        plan = await PlanService(store=store).update_plan(row["id"], {"price": Decimal("45"), "is_active": False})

        assert plan.price == Decimal("45")
        assert plan.is_active is False
        assert plan.name == row["name"]
        assert store.row(PLANS, row["id"])["is_active"] is False

    @pytest.mark.asyncio
    async def test_empty_update_writes_nothing(self, store) -> None:
        row = plan_row()
        store.seed(PLANS, row)

        await PlanService(store=store).update_plan(row["id"], {})

        assert ("update_document", PLANS) not in store.calls


class TestSeedDefaultPlans:
    """Tests for seed_default_plans."""

    @pytest.mark.asyncio
    async def test_seeds_empty_catalogue_once(self, store) -> None:
        service = PlanService(store=store)

        created = await service.seed_default_plans()
        again = await service.seed_default_plans()

        assert len(created) == len(DEFAULT_PLANS)
        assert again == []
        assert len(store.rows(PLANS)) == len(DEFAULT_PLANS)

    @pytest.mark.asyncio
    async def test_default_catalogue(self, store) -> None:
        created = await PlanService(store=store).seed_default_plans()

        by_name = {p.name: p for p in created}
        assert by_name["Free Trial"].type == BillingPlanType.FREE
        assert by_name["Free Trial"].billing_cycle == BillingCycle.DAILY
        assert by_name["Standard Plan"].price == Decimal("43")
        assert by_name["Standard Plan"].billing_cycle == BillingCycle.MONTHLY
        assert by_name["Standard Plan"].limits.customers == 200
