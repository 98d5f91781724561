"""Billing plan catalogue."""

import logging
from decimal import Decimal
from typing import Any

from src.api.middleware.error_handler import NotFoundError, ValidationError
from src.core.document_store import PLANS, DocumentStore, get_document_store, where
from src.core.normalization import ZERO, normalize_features, to_decimal
from src.models.base import parse_records
from src.models.billing import BillingPlanCreate, BillingPlanRecord, BillingPlanUpdate, PlanLimits
from src.models.enums import BillingCycle, BillingPlanType

logger = logging.getLogger(__name__)

_COMMON_FEATURES = [
    "Full access to all features",
    "Customer management",
    "Order tracking",
    "Measurement management",
    "Payment tracking",
    "Inventory management",
    "Mobile app access",
]

_STANDARD_FEATURES = [*_COMMON_FEATURES, "Priority support", "Advanced reporting", "Data export", "Custom branding"]

DEFAULT_PLANS: list[BillingPlanCreate] = [
    {
        "name": "Free Trial",
        "type": BillingPlanType.FREE.value,
        "price": Decimal("0"),
        "currency": "GHS",
        "billing_cycle": BillingCycle.DAILY.value,
        "features": [*_COMMON_FEATURES, "Basic support"],
        "limits": {"customers": 50, "orders": 100, "team_members": 3, "storage": 500},
        "is_active": True,
    },
    {
        "name": "Standard Plan",
        "type": BillingPlanType.PROFESSIONAL.value,
        "price": Decimal("43"),
        "currency": "GHS",
        "billing_cycle": BillingCycle.MONTHLY.value,
        "features": _STANDARD_FEATURES,
        "limits": {"customers": 200, "orders": 500, "team_members": 5, "storage": 2000},
        "is_active": True,
    },
    {
        "name": "Standard Plan (Yearly)",
        "type": BillingPlanType.PROFESSIONAL.value,
        "price": Decimal("430"),
        "currency": "GHS",
        "billing_cycle": BillingCycle.YEARLY.value,
        "features": _STANDARD_FEATURES,
        "limits": {"customers": 200, "orders": 500, "team_members": 5, "storage": 2000},
        "is_active": True,
    },
]


def _clean_plan_data(data: dict[str, Any], partial: bool) -> dict[str, Any]:
    """Validate and normalize plan fields before they are written."""
    cleaned = {k: v for k, v in data.items() if v is not None}
    if not partial and not str(cleaned.get("name", "")).strip():
        raise ValidationError("Plan name is required")
    if "price" in cleaned:
        cleaned["price"] = to_decimal(cleaned["price"])
        if cleaned["price"] < ZERO:
            raise ValidationError("Plan price cannot be negative")
    try:
        if "type" in cleaned:
            cleaned["type"] = BillingPlanType(cleaned["type"])
        if "billing_cycle" in cleaned:
            cleaned["billing_cycle"] = BillingCycle(cleaned["billing_cycle"])
    except ValueError as e:
        raise ValidationError(str(e)) from None
    if "features" in cleaned:
        cleaned["features"] = normalize_features(cleaned["features"])
    if "limits" in cleaned:
        cleaned["limits"] = PlanLimits.model_validate(cleaned["limits"]).model_dump()
    return cleaned


class PlanService:
    """Service for billing plan operations."""

    def __init__(self, store: DocumentStore | None = None):
        """Initialize plan service.

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

    async def list_plans(self, active_only: bool = False) -> list[BillingPlanRecord]:
        """List plans, cheapest first."""
        filters = [where("is_active", "==", True)] if active_only else None
        rows = await self.store.get_collection(PLANS, filters)
        return sorted(parse_records(BillingPlanRecord, rows), key=lambda p: p.price)

    async def get_plan(self, plan_id: str) -> BillingPlanRecord:
        """Get a plan by id.

        Raises:
            NotFoundError: If the plan does not exist.
        """
        row = await self.store.get_document(PLANS, plan_id)
        if row is None:
            raise NotFoundError(f"Plan {plan_id} not found")
        return BillingPlanRecord.from_row(row)

    async def find_plan(self, plan_id: str) -> BillingPlanRecord | None:
        row = await self.store.get_document(PLANS, plan_id)
        return BillingPlanRecord.from_row(row) if row else None

    async def create_plan(self, data: BillingPlanCreate) -> BillingPlanRecord:
        """Create a plan.

        Raises:
            ValidationError: If the plan data is invalid.
        """
        cleaned = _clean_plan_data(dict(data), partial=False)
        cleaned.setdefault("is_active", True)
        plan_id = await self.store.add_document(PLANS, cleaned)
        logger.info("Created plan %s (%s)", plan_id, cleaned["name"])
        return BillingPlanRecord.from_row({**cleaned, "id": plan_id})

    async def update_plan(self, plan_id: str, data: BillingPlanUpdate) -> BillingPlanRecord:
        """Apply an admin edit to a plan.

        Raises:
            NotFoundError: If the plan does not exist.
            ValidationError: If the update is invalid.
        """
        plan = await self.get_plan(plan_id)
        cleaned = _clean_plan_data(dict(data), partial=True)
        if not cleaned:
            return plan
        await self.store.update_document(PLANS, plan_id, cleaned)
        logger.info("Updated plan %s fields %s", plan_id, sorted(cleaned))
        return BillingPlanRecord.from_row({**plan.model_dump(), **cleaned})

    async def seed_default_plans(self) -> list[BillingPlanRecord]:
        """Insert the default catalogue when no plans exist.

        Returns:
            list[BillingPlanRecord]: Created plans; empty if plans were already present.
        """
        existing = await self.store.get_collection(PLANS)
        if existing:
            logger.info("Found %d existing plans, skipping seed", len(existing))
            return []
        return [await self.create_plan(plan) for plan in DEFAULT_PLANS]
