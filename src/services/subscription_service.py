"""Shop subscriptions: trials, upgrades, cancellation and status checks."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from src.api.middleware.error_handler import NotFoundError, ValidationError
from src.core.config import get_settings
from src.core.document_store import PLANS, SUBSCRIPTIONS, DocumentStore, get_document_store, where
from src.core.normalization import utcnow
from src.models.base import parse_records
from src.models.billing import BillingPlanRecord, SubscriptionRecord
from src.models.enums import BillingPlanType, SubscriptionStatus
from src.services.plan_service import PlanService
from src.services.subscription_state import (
    PlanChange,
    SubscriptionState,
    available_plans,
    billing_period,
    classify_plan_change,
    derive_subscription_state,
)

logger = logging.getLogger(__name__)

CURRENT_STATUSES = (SubscriptionStatus.TRIAL, SubscriptionStatus.ACTIVE, SubscriptionStatus.PAST_DUE)


@dataclass
class PlanOption:
    """A plan offered to a shop with how it compares to the current one."""

    plan: BillingPlanRecord
    change: PlanChange
    is_current: bool = False


class SubscriptionService:
    """Service for subscription lifecycle operations."""

    def __init__(
        self,
        store: DocumentStore | None = None,
        plan_service: PlanService | None = None,
    ):
        """Initialize subscription service.

        Args:
            store: Optional document store for testing.
            plan_service: Optional plan service for testing.
        """
        self._store = store
        self._plan_service = plan_service

    @property
    def store(self) -> DocumentStore:
        """Get document store."""
        if self._store is None:
            self._store = get_document_store()
        return self._store

    @property
    def plan_service(self) -> PlanService:
        """Get plan service."""
        if self._plan_service is None:
            self._plan_service = PlanService(store=self.store)
        return self._plan_service

    async def list_shop_subscriptions(self, shop_id: str) -> list[SubscriptionRecord]:
        """All subscriptions of a shop, newest first."""
        rows = await self.store.get_collection(SUBSCRIPTIONS, [where("shop_id", "==", shop_id)])
        return sorted(parse_records(SubscriptionRecord, rows), key=lambda s: s.created_at, reverse=True)

    async def get_shop_subscription(self, shop_id: str) -> SubscriptionRecord | None:
        """The shop's newest subscription, or None."""
        subscriptions = await self.list_shop_subscriptions(shop_id)
        return subscriptions[0] if subscriptions else None

    async def get_subscription(self, subscription_id: str) -> SubscriptionRecord:
        row = await self.store.get_document(SUBSCRIPTIONS, subscription_id)
        if row is None:
            raise NotFoundError(f"Subscription {subscription_id} not found")
        return SubscriptionRecord.from_row(row)

    async def check_subscription_status(
        self, shop_id: str, now: datetime | None = None
    ) -> tuple[SubscriptionState, SubscriptionRecord | None]:
        """Derive a shop's access state and persist a lapse if one just happened.

        An expired trial is stored as CANCELLED and an expired paid period as
        PAST_DUE.

        Returns:
            tuple: The derived state and the subscription it was derived from.
        """
        now = now or utcnow()
        subscription = await self.get_shop_subscription(shop_id)
        state = derive_subscription_state(subscription, now)

        if subscription is not None and state.lapse_to is not None:
            await self.store.update_document(SUBSCRIPTIONS, subscription.id, {"status": state.lapse_to})
            logger.info(
                "Subscription %s for shop %s lapsed %s -> %s",
                subscription.id,
                shop_id,
                subscription.status.value,
                state.lapse_to.value,
            )
            subscription = subscription.model_copy(update={"status": state.lapse_to})
        return state, subscription

    async def create_trial_subscription(self, shop_id: str) -> SubscriptionRecord:
        """Start a trial on the active FREE plan.

        Raises:
            NotFoundError: If no active FREE plan exists.
            ValidationError: If the shop ever had a subscription; trials are one per shop.
        """
        existing = await self.get_shop_subscription(shop_id)
        if existing is not None:
            raise ValidationError(f"Shop {shop_id} already has a subscription")

        rows = await self.store.get_collection(
            PLANS,
            [where("type", "==", BillingPlanType.FREE), where("is_active", "==", True)],
        )
        trial_plans = parse_records(BillingPlanRecord, rows)
        if not trial_plans:
            raise NotFoundError("No trial plan found")
        plan = trial_plans[0]

        now = utcnow()
        trial_ends_at = now + timedelta(days=get_settings().trial_days)
        data = {
            "shop_id": shop_id,
            "plan_id": plan.id,
            "status": SubscriptionStatus.TRIAL,
            "billing_cycle": plan.billing_cycle,
            "current_period_start": now,
            "current_period_end": trial_ends_at,
            "trial_ends_at": trial_ends_at,
            "created_at": now,
        }
        subscription_id = await self.store.add_document(SUBSCRIPTIONS, data)
        logger.info("Trial subscription %s created for shop %s", subscription_id, shop_id)
        return SubscriptionRecord.from_row({**data, "id": subscription_id})

    async def upgrade_subscription(
        self, shop_id: str, plan_id: str, payment_reference: str | None = None
    ) -> SubscriptionRecord:
        """Start a paid period on a plan and supersede earlier current subscriptions.

        Superseded subscriptions are stored as CANCELLED without a
        ``cancelled_at`` so they are not counted as churn.

        Raises:
            NotFoundError: If the plan does not exist.
            ValidationError: If the plan is inactive or FREE.
        """
        plan = await self.plan_service.get_plan(plan_id)
        if not plan.is_active:
            raise ValidationError(f"Plan {plan_id} is not active")
        if plan.type == BillingPlanType.FREE:
            raise ValidationError("The free plan is only available as a trial")

        previous = [s for s in await self.list_shop_subscriptions(shop_id) if s.status in CURRENT_STATUSES]

        now = utcnow()
        data = {
            "shop_id": shop_id,
            "plan_id": plan.id,
            "status": SubscriptionStatus.ACTIVE,
            "billing_cycle": plan.billing_cycle,
            "current_period_start": now,
            "current_period_end": now + billing_period(plan.billing_cycle),
            "payment_reference": payment_reference,
            "created_at": now,
        }
        subscription_id = await self.store.add_document(SUBSCRIPTIONS, data)

        for old in previous:
            await self.store.update_document(
                SUBSCRIPTIONS,
                old.id,
                {"status": SubscriptionStatus.CANCELLED, "superseded_by": subscription_id},
            )
        logger.info(
            "Shop %s subscribed to plan %s (%s), superseding %d",
            shop_id,
            plan.id,
            subscription_id,
            len(previous),
        )
        return SubscriptionRecord.from_row({**data, "id": subscription_id})

    async def cancel_subscription(self, subscription_id: str) -> SubscriptionRecord:
        """Cancel a subscription and stamp ``cancelled_at``."""
        subscription = await self.get_subscription(subscription_id)
        if subscription.status == SubscriptionStatus.CANCELLED:
            return subscription
        now = utcnow()
        await self.store.update_document(
            SUBSCRIPTIONS,
            subscription_id,
            {"status": SubscriptionStatus.CANCELLED, "cancelled_at": now},
        )
        logger.info("Subscription %s cancelled", subscription_id)
        return subscription.model_copy(update={"status": SubscriptionStatus.CANCELLED, "cancelled_at": now})

    async def get_plan_options(self, shop_id: str) -> list[PlanOption]:
        """Plans the shop may switch to, labelled upgrade, downgrade or lateral."""
        subscription = await self.get_shop_subscription(shop_id)
        plans = await self.plan_service.list_plans(active_only=True)
        current = None
        if subscription is not None:
            current = next((p for p in plans if p.id == subscription.plan_id), None)
            if current is None:
                current = await self.plan_service.find_plan(subscription.plan_id)
        return [
            PlanOption(
                plan=plan,
                change=classify_plan_change(current, plan),
                is_current=current is not None and plan.id == current.id,
            )
            for plan in available_plans(plans, subscription)
        ]
