"""
Canonical key records.

Both storage generations hold keys as loosely shaped JSON objects whose field
names drifted over time (``token`` vs ``key``, ``discordId`` vs
``ownerDiscordId``...). Each raw object is read exactly once through
``FIELD_ALIASES`` into a ``CredentialRecord``; the rest of the code only looks
at the canonical attributes. Writes patch the original mapping so that fields
this service does not know about (binding info, provider metadata) survive.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from keyadmin.models.plan import PLAN_TIERS, CredentialTier, PaidPlan, TierClass
from keyadmin.services.time_utils import MAX_MS, MS_PER_DAY, iso_from_ms, ms_from_iso

LEGACY_DELETE_REASON = "discord-user-delete"
ADMIN_SOURCE = "admin-dashboard"


class SchemaGeneration(StrEnum):
    LEGACY = "legacy"
    INDEXED = "indexed"


FIELD_ALIASES: dict[SchemaGeneration, dict[str, tuple[str, ...]]] = {
    # Legacy arrays are partitioned on discordId alone
    SchemaGeneration.LEGACY: {
        "token": ("token", "key"),
        "owner_account_id": ("discordId",),
        "tier": ("tier",),
        "plan": ("plan", "type"),
        "expires_at_ms": ("expiresAtMs",),
        "expires_at": ("expiresAt",),
    },
    SchemaGeneration.INDEXED: {
        "token": ("token", "key"),
        "owner_account_id": ("discordId", "ownerDiscordId"),
        "tier": ("tier",),
        "plan": ("plan", "type"),
        "expires_at_ms": ("expiresAtMs",),
        "expires_at": ("expiresAt",),
    },
}


def first_present(data: Mapping[str, Any], aliases: tuple[str, ...]) -> Any:
    """Return the first alias value that is neither missing, None nor blank."""
    for name in aliases:
        value = data.get(name)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def _as_text(value: Any) -> str:
    return str(value).strip() if value is not None else ""


def _as_ms(ms_value: Any, iso_value: Any) -> int | None:
    if isinstance(ms_value, (int, float)) and not isinstance(ms_value, bool):
        return int(ms_value)
    if isinstance(iso_value, str):
        return ms_from_iso(iso_value)
    return None


def _resolve_tier(
    data: Mapping[str, Any],
    aliases: dict[str, tuple[str, ...]],
    tier_class: TierClass | None,
) -> CredentialTier | None:
    label = _as_text(first_present(data, aliases["tier"]))
    for tier in CredentialTier:
        if label.lower() == tier.value.lower():
            return tier

    plan = _as_text(first_present(data, aliases["plan"])).lower()
    if plan in {p.value for p in PaidPlan}:
        return PLAN_TIERS[PaidPlan(plan)]

    if data.get("free") is True or tier_class is TierClass.FREE:
        return CredentialTier.FREE
    if data.get("paid") is True or tier_class is TierClass.PAID:
        return CredentialTier.PAID_MONTH
    return None


@dataclass(frozen=True, slots=True)
class CredentialRecord:
    generation: SchemaGeneration
    token: str
    owner_account_id: str
    tier: CredentialTier | None
    expires_at_ms: int | None
    deleted: bool
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_wire(
        cls,
        data: Mapping[str, Any],
        generation: SchemaGeneration,
        tier_class: TierClass | None = None,
    ) -> CredentialRecord:
        aliases = FIELD_ALIASES[generation]
        return cls(
            generation=generation,
            token=_as_text(first_present(data, aliases["token"])),
            owner_account_id=_as_text(first_present(data, aliases["owner_account_id"])),
            tier=_resolve_tier(data, aliases, tier_class),
            expires_at_ms=_as_ms(
                first_present(data, aliases["expires_at_ms"]),
                first_present(data, aliases["expires_at"]),
            ),
            deleted=data.get("deleted", False) is True,
            raw=dict(data),
        )

    @classmethod
    def new_paid(
        cls,
        *,
        token: str,
        account_id: str,
        plan: PaidPlan,
        created_at_ms: int,
        ttl_days: int,
    ) -> CredentialRecord:
        """Build a fresh paid key in the indexed wire shape."""
        tier = PLAN_TIERS[plan]
        expires_at_ms = min(created_at_ms + ttl_days * MS_PER_DAY, MAX_MS)
        expires_after_ms = expires_at_ms - created_at_ms
        wire = {
            "token": token,
            "key": token,
            "free": False,
            "paid": True,
            "valid": True,
            "deleted": False,
            "type": plan.value,
            "tier": tier.value,
            "plan": plan.value,
            "discordId": account_id,
            "ownerDiscordId": account_id,
            "provider": ADMIN_SOURCE,
            "source": ADMIN_SOURCE,
            "createdAt": iso_from_ms(created_at_ms),
            "createdAtMs": created_at_ms,
            "expiresAt": iso_from_ms(expires_at_ms),
            "expiresAtMs": expires_at_ms,
            "expiresAfterMs": expires_after_ms,
        }
        return cls.from_wire(wire, SchemaGeneration.INDEXED, TierClass.PAID)

    @property
    def tier_class(self) -> TierClass | None:
        return self.tier.tier_class if self.tier else None

    def belongs_to(self, account_id: str) -> bool:
        return bool(self.owner_account_id) and self.owner_account_id == account_id

    def to_wire(self) -> dict[str, Any]:
        return dict(self.raw)

    def archived(self, *, deleted_at: str, deleted_by: str) -> dict[str, Any]:
        """Copy destined for the legacy deleted-keys array."""
        return {
            **self.raw,
            "deletedAt": deleted_at,
            "deleteReason": LEGACY_DELETE_REASON,
            "deleteByAccountId": deleted_by,
            "deleteByDiscordId": deleted_by,
        }

    def tombstoned(self, *, deleted_at: str, deleted_by: str) -> dict[str, Any]:
        """Soft-deleted form written back under the token key."""
        return {
            **self.raw,
            "deleted": True,
            "valid": False,
            "deletedAt": deleted_at,
            "deletedByDiscordId": deleted_by,
        }
