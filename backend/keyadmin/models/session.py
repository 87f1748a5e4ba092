from __future__ import annotations

from collections.abc import Collection, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from keyadmin.models.credential import first_present

ACCOUNT_ALIASES = ("discordId", "ownerDiscordId")
TOKEN_ALIASES = ("keyToken", "token", "key", "keyId")


class SessionMatchPolicy(StrEnum):
    """How an exec entry is tied to the account being deleted."""

    EITHER = "either"  # account id OR key token
    BOTH = "both"  # account id AND key token
    TOKEN = "token"  # key token only


@dataclass(frozen=True, slots=True)
class SessionEntry:
    """An indexed exec entry (a key redeemed on some runtime)."""

    entry_id: str
    account_id: str
    token: str
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_wire(cls, entry_id: str, data: Mapping[str, Any]) -> SessionEntry:
        account_id = first_present(data, ACCOUNT_ALIASES)
        token = first_present(data, TOKEN_ALIASES)
        return cls(
            entry_id=entry_id,
            account_id=str(account_id).strip() if account_id is not None else "",
            token=str(token).strip() if token is not None else "",
            raw=dict(data),
        )

    def matches(
        self,
        account_id: str,
        tokens: Collection[str],
        policy: SessionMatchPolicy = SessionMatchPolicy.EITHER,
    ) -> bool:
        by_account = bool(self.account_id) and self.account_id == account_id
        by_token = bool(self.token) and self.token in tokens
        if policy is SessionMatchPolicy.BOTH:
            return by_account and by_token
        if policy is SessionMatchPolicy.TOKEN:
            return by_token
        return by_account or by_token
