"""
Key layout of the remote store and file names of the legacy JSON mirror.

Both schema generations live under one namespace prefix (``exhub`` by default):

- legacy blobs: one key per store holding a whole array/object
- indexed keys: one record per token / entry / profile plus index keys
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from keyadmin.models.plan import TierClass


@dataclass(frozen=True, slots=True)
class LegacyBlob:
    """A legacy store: a single remote key mirrored to a single JSON file."""

    kv_key: str
    file_name: str
    default_factory: Callable[[], Any] = field(default=list)

    def default(self) -> Any:
        return self.default_factory()


@dataclass(frozen=True, slots=True)
class Keyspace:
    namespace: str = "exhub"

    # Legacy stores

    @property
    def redeemed_keys(self) -> LegacyBlob:
        return LegacyBlob(f"{self.namespace}:redeemed-keys", "redeemed-keys.json", list)

    @property
    def deleted_keys(self) -> LegacyBlob:
        return LegacyBlob(f"{self.namespace}:deleted-keys", "deleted-keys.json", list)

    @property
    def exec_users(self) -> LegacyBlob:
        return LegacyBlob(f"{self.namespace}:exec-users", "exec-users.json", dict)

    @property
    def discord_users(self) -> LegacyBlob:
        return LegacyBlob(f"{self.namespace}:discord-users", "discord-users.json", dict)

    # Indexed credentials

    def user_index(self, tier_class: TierClass, account_id: str) -> str:
        return f"{self.namespace}:{tier_class.value}key:user:{account_id}"

    def token_record(self, tier_class: TierClass, token: str) -> str:
        return f"{self.namespace}:{tier_class.value}key:token:{token}"

    # Indexed exec entries

    @property
    def exec_users_index(self) -> str:
        return f"{self.namespace}:exec-users:index"

    def exec_user_entry(self, entry_id: str) -> str:
        return f"{self.namespace}:exec-user:{entry_id}"

    # Indexed Discord profiles

    def profile(self, account_id: str) -> str:
        return f"{self.namespace}:discord:userprofile:{account_id}"

    @property
    def profile_index(self) -> str:
        return f"{self.namespace}:discord:userindex"

    # Plan configuration

    @property
    def plan_config(self) -> str:
        return f"{self.namespace}:paid-plan-config"

    @property
    def legacy_key_config(self) -> str:
        return f"{self.namespace}:global-key-config"
