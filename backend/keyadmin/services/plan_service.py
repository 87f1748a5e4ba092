import re
from collections.abc import Mapping
from typing import Any

import structlog

from keyadmin.models.plan import DEFAULT_DURATIONS, PlanDurations
from keyadmin.services.kv_store import DualBackendStore

logger = structlog.get_logger()

MONTH_ALIASES = ("monthDays", "paidMonthDays", "month", "monthTTL")
LIFETIME_ALIASES = ("lifetimeDays", "paidLifetimeDays", "lifetime", "lifetimeTTL")
THREE_MONTH_ALIASES = ("threeMonthDays", "paid3MonthDays", "3monthDays", "3MonthDays")
SIX_MONTH_ALIASES = ("sixMonthDays", "paid6MonthDays", "6monthDays", "6MonthDays")

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def _first_set(cfg: Mapping[str, Any], aliases: tuple[str, ...]) -> Any:
    """First alias whose value is not None. Blank values count as set."""
    for name in aliases:
        value = cfg.get(name)
        if value is not None:
            return value
    return None


def coerce_days(value: Any) -> int | None:
    """
    Coerce a configured day count to a positive integer.

    Accepts ints, floats (truncated) and strings with a leading integer
    ("45", "45 days"). Anything else, zero or negative gives None.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        days = value
    elif isinstance(value, float):
        if value != value or value in (float("inf"), float("-inf")):
            return None
        days = int(value)
    elif isinstance(value, str):
        match = _LEADING_INT.match(value)
        if not match:
            return None
        days = int(match.group(1))
    else:
        return None
    return days if days > 0 else None


def durations_from_record(record: Mapping[str, Any]) -> PlanDurations:
    """Read plan durations out of a configuration record (nested or flat)."""
    nested = record.get("paidPlanConfig")
    cfg = nested if isinstance(nested, Mapping) else record

    month = coerce_days(_first_set(cfg, MONTH_ALIASES)) or DEFAULT_DURATIONS.month_days
    lifetime = coerce_days(_first_set(cfg, LIFETIME_ALIASES)) or DEFAULT_DURATIONS.lifetime_days
    three_month = coerce_days(_first_set(cfg, THREE_MONTH_ALIASES)) or month * 3
    six_month = coerce_days(_first_set(cfg, SIX_MONTH_ALIASES)) or month * 6

    return PlanDurations(
        month_days=month,
        three_month_days=three_month,
        six_month_days=six_month,
        lifetime_days=lifetime,
    )


async def resolve_durations(store: DualBackendStore) -> PlanDurations:
    """
    Resolve paid plan durations.

    The current config key wins; the legacy global key config is the fallback.
    Without a remote store no lookup happens and the defaults apply.
    """
    if not store.has_remote:
        return DEFAULT_DURATIONS

    keyspace = store.keyspace
    for key in (keyspace.plan_config, keyspace.legacy_key_config):
        record = await store.get(key)
        if isinstance(record, Mapping):
            durations = durations_from_record(record)
            logger.debug("plan_durations_resolved", config_key=key, durations=durations)
            return durations

    return DEFAULT_DURATIONS
