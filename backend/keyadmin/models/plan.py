from dataclasses import dataclass
from enum import StrEnum


class TierClass(StrEnum):
    """Top-level partition of the indexed key schema."""

    FREE = "free"
    PAID = "paid"


class PaidPlan(StrEnum):
    MONTH = "month"
    THREE_MONTH = "3month"
    SIX_MONTH = "6month"
    LIFETIME = "lifetime"


class CredentialTier(StrEnum):
    FREE = "Free"
    PAID_MONTH = "Paid Month"
    PAID_3_MONTH = "Paid 3 Month"
    PAID_6_MONTH = "Paid 6 Month"
    PAID_LIFETIME = "Paid Lifetime"

    @property
    def tier_class(self) -> TierClass:
        return TierClass.FREE if self is CredentialTier.FREE else TierClass.PAID


PLAN_TIERS: dict[PaidPlan, CredentialTier] = {
    PaidPlan.MONTH: CredentialTier.PAID_MONTH,
    PaidPlan.THREE_MONTH: CredentialTier.PAID_3_MONTH,
    PaidPlan.SIX_MONTH: CredentialTier.PAID_6_MONTH,
    PaidPlan.LIFETIME: CredentialTier.PAID_LIFETIME,
}

_PLAN_ALIASES = {
    "three": PaidPlan.THREE_MONTH,
    "3": PaidPlan.THREE_MONTH,
    "six": PaidPlan.SIX_MONTH,
    "6": PaidPlan.SIX_MONTH,
}


def normalize_plan(raw: object) -> PaidPlan:
    """
    Map admin input to a paid plan.

    Case-insensitive; "three"/"3" and "six"/"6" are shorthands. Empty or
    unknown input falls back to the monthly plan instead of failing.
    """
    value = str(raw or "").strip().lower()
    if value in _PLAN_ALIASES:
        return _PLAN_ALIASES[value]
    try:
        return PaidPlan(value)
    except ValueError:
        return PaidPlan.MONTH


@dataclass(frozen=True, slots=True)
class PlanDurations:
    """Key lifetime in days for each paid plan."""

    month_days: int = 30
    three_month_days: int = 90
    six_month_days: int = 180
    lifetime_days: int = 365

    def days_for(self, plan: PaidPlan) -> int:
        days = {
            PaidPlan.MONTH: self.month_days,
            PaidPlan.THREE_MONTH: self.three_month_days,
            PaidPlan.SIX_MONTH: self.six_month_days,
            PaidPlan.LIFETIME: self.lifetime_days,
        }[plan]
        return days if days > 0 else 30


DEFAULT_DURATIONS = PlanDurations()
