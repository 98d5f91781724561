"""Subscription access state, derived without touching storage."""

import math
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum

from src.models.billing import BillingPlanRecord, SubscriptionRecord
from src.models.enums import BillingCycle, BillingPlanType, SubscriptionStatus

ONE_DAY = timedelta(days=1)
ONE_HOUR = timedelta(hours=1)

PERIOD_DAYS: dict[BillingCycle, int] = {
    BillingCycle.DAILY: 1,
    BillingCycle.MONTHLY: 30,
    BillingCycle.YEARLY: 365,
}


class SubscriptionStateCode(str, Enum):
    """Access status reported for a shop."""

    TRIAL = "TRIAL"
    ACTIVE = "ACTIVE"
    PAST_DUE = "PAST_DUE"
    CANCELLED = "CANCELLED"
    TRIAL_EXPIRED = "TRIAL_EXPIRED"
    EXPIRED = "EXPIRED"
    NO_SUBSCRIPTION = "NO_SUBSCRIPTION"


class PlanChange(str, Enum):
    UPGRADE = "UPGRADE"
    DOWNGRADE = "DOWNGRADE"
    LATERAL = "LATERAL"


@dataclass(frozen=True)
class SubscriptionState:
    """What a shop may do right now.

    ``days_until_expiry`` never goes negative; once the period has ended it
    is None and ``expired_on`` is set instead. ``lapse_to`` is the stored
    status the subscription should move to, if it just lapsed.
    """

    status: SubscriptionStateCode
    is_active: bool
    is_locked: bool
    days_until_expiry: int | None = None
    period_end: datetime | None = None
    expired_on: date | None = None
    message: str | None = None
    lapse_to: SubscriptionStatus | None = None


@dataclass(frozen=True)
class TrialStatus:
    is_trial: bool
    days_left: int = 0
    hours_left: int = 0
    is_expired: bool = False


def billing_period(cycle: BillingCycle) -> timedelta:
    """Length of one billing period."""
    return timedelta(days=PERIOD_DAYS[cycle])


def period_end_of(subscription: SubscriptionRecord) -> datetime:
    """End of the current period; trials end at ``trial_ends_at`` when set."""
    if subscription.status == SubscriptionStatus.TRIAL and subscription.trial_ends_at is not None:
        return subscription.trial_ends_at
    return subscription.current_period_end


def days_until(end: datetime, now: datetime) -> int:
    """Whole days left, rounded up, never negative."""
    return max(0, math.ceil((end - now) / ONE_DAY))


def _expired(
    code: SubscriptionStateCode,
    end: datetime,
    lapse_to: SubscriptionStatus | None = None,
) -> SubscriptionState:
    return SubscriptionState(
        status=code,
        is_active=False,
        is_locked=True,
        period_end=end,
        expired_on=end.date(),
        message=f"Expired on {end:%Y-%m-%d}",
        lapse_to=lapse_to,
    )


def derive_subscription_state(subscription: SubscriptionRecord | None, now: datetime) -> SubscriptionState:
    """Derive a shop's access state from its current subscription.

    Args:
        subscription: The shop's newest subscription, or None.
        now: Current instant.

    Returns:
        SubscriptionState: Access flags, countdown and lapse instruction.
    """
    if subscription is None:
        return SubscriptionState(
            status=SubscriptionStateCode.NO_SUBSCRIPTION,
            is_active=False,
            is_locked=True,
            message="No subscription",
        )

    end = period_end_of(subscription)
    ended = now > end

    if subscription.status == SubscriptionStatus.TRIAL:
        if ended:
            return _expired(SubscriptionStateCode.TRIAL_EXPIRED, end, lapse_to=SubscriptionStatus.CANCELLED)
        return SubscriptionState(
            status=SubscriptionStateCode.TRIAL,
            is_active=True,
            is_locked=False,
            days_until_expiry=days_until(end, now),
            period_end=end,
        )

    if subscription.status == SubscriptionStatus.ACTIVE:
        if ended:
            return _expired(SubscriptionStateCode.EXPIRED, end, lapse_to=SubscriptionStatus.PAST_DUE)
        return SubscriptionState(
            status=SubscriptionStateCode.ACTIVE,
            is_active=True,
            is_locked=False,
            days_until_expiry=days_until(end, now),
            period_end=end,
        )

    code = SubscriptionStateCode(subscription.status.value)
    if ended:
        return _expired(code, end)
    return SubscriptionState(status=code, is_active=False, is_locked=True, period_end=end)


def trial_status(subscription: SubscriptionRecord | None, now: datetime) -> TrialStatus:
    """Trial countdown in whole days and remaining hours."""
    if subscription is None or subscription.status != SubscriptionStatus.TRIAL:
        return TrialStatus(is_trial=False)

    left = period_end_of(subscription) - now
    if left <= timedelta(0):
        return TrialStatus(is_trial=True, is_expired=True)
    return TrialStatus(
        is_trial=True,
        days_left=left // ONE_DAY,
        hours_left=(left % ONE_DAY) // ONE_HOUR,
    )


def classify_plan_change(current: BillingPlanRecord | None, candidate: BillingPlanRecord) -> PlanChange:
    """Compare a candidate plan to the current one by price.

    Without a current plan any priced plan is an upgrade.
    """
    current_price = current.price if current is not None else 0
    if candidate.price > current_price:
        return PlanChange.UPGRADE
    if candidate.price < current_price:
        return PlanChange.DOWNGRADE
    return PlanChange.LATERAL


def available_plans(
    plans: Iterable[BillingPlanRecord],
    subscription: SubscriptionRecord | None,
) -> list[BillingPlanRecord]:
    """Plans a shop may switch to.

    Trial shops are offered only the monthly PROFESSIONAL plan; everyone
    else sees every active plan except FREE.
    """
    active = [plan for plan in plans if plan.is_active]
    if subscription is not None and subscription.status == SubscriptionStatus.TRIAL:
        return [
            plan
            for plan in active
            if plan.type == BillingPlanType.PROFESSIONAL and plan.billing_cycle == BillingCycle.MONTHLY
        ]
    return [plan for plan in active if plan.type != BillingPlanType.FREE]
