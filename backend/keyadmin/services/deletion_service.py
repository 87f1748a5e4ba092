"""
Cascading delete of everything a Discord account owns.

One account touches both storage generations:

- legacy: redeemed-keys array, deleted-keys array, exec-users object (keyed by
  key token) and discord-users object (keyed by account id)
- indexed: free/paid token records with their per-account index lists, the
  exec entry set with one record per entry, and the profile record with the
  profile id list

Stages run in a fixed order and each one is guarded on its own: a failing
stage is logged and recorded in ``DeletionResult.failed_stages`` while the
following stages still run. Nothing is atomic across stages. Legacy blobs are
mutated in memory and written back once, at the end.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

import structlog

from keyadmin.config import settings
from keyadmin.models.credential import CredentialRecord, SchemaGeneration
from keyadmin.models.plan import TierClass
from keyadmin.models.session import SessionEntry, SessionMatchPolicy
from keyadmin.services.accounts import normalize_account_id
from keyadmin.services.kv_store import DualBackendStore
from keyadmin.services.time_utils import iso_from_ms, now_ms

logger = structlog.get_logger()


@dataclass(slots=True)
class DeletionResult:
    account_id: str
    legacy_keys: int = 0
    free_keys: int = 0
    paid_keys: int = 0
    legacy_session_entries: int = 0
    indexed_session_entries: int = 0
    legacy_profile: bool = False
    indexed_profile: bool = False
    failed_stages: list[str] = field(default_factory=list)

    @property
    def removed_credentials(self) -> int:
        return self.legacy_keys + self.free_keys + self.paid_keys

    @property
    def removed_session_entries(self) -> int:
        return self.legacy_session_entries + self.indexed_session_entries

    @property
    def profile_removed(self) -> bool:
        return self.legacy_profile or self.indexed_profile


@dataclass(slots=True)
class _LegacyState:
    redeemed: list[Any] = field(default_factory=list)
    deleted: list[Any] = field(default_factory=list)
    exec_users: dict[str, Any] = field(default_factory=dict)
    discord_users: dict[str, Any] = field(default_factory=dict)


def _as_list(value: Any, name: str) -> list[Any]:
    if isinstance(value, list):
        return value
    logger.warning("legacy_store_not_array", store=name, value_type=type(value).__name__)
    return []


def _as_dict(value: Any, name: str) -> dict[str, Any]:
    if isinstance(value, dict):
        return value
    logger.warning("legacy_store_not_object", store=name, value_type=type(value).__name__)
    return {}


class AccountDeletion:
    """One run of the cascade for a single account id."""

    def __init__(
        self,
        store: DualBackendStore,
        account_id: str,
        policy: SessionMatchPolicy,
    ) -> None:
        self.store = store
        self.account_id = account_id
        self.policy = policy
        self.deleted_at = iso_from_ms(now_ms())
        # Every key token seen for this account, legacy and indexed
        self.tokens: set[str] = set()
        self.result = DeletionResult(account_id=account_id)
        self._legacy = _LegacyState()
        self._legacy_loaded = False

    async def run(self) -> DeletionResult:
        await self._stage("load_legacy", self._load_legacy)
        if self._legacy_loaded:
            await self._stage("legacy_keys", self._delete_legacy_keys)
            await self._stage("legacy_exec_and_profile", self._delete_legacy_exec_and_profile)

        if self.store.has_remote:
            await self._stage("free_keys", lambda: self._tombstone_indexed_keys(TierClass.FREE))
            await self._stage("paid_keys", lambda: self._tombstone_indexed_keys(TierClass.PAID))
            await self._stage("exec_entries", self._delete_exec_entries)
            await self._stage("profile", self._delete_profile)

        if self._legacy_loaded:
            await self._stage("persist_legacy", self._persist_legacy)

        return self.result

    async def _stage(self, name: str, stage: Callable[[], Awaitable[None]]) -> None:
        try:
            await stage()
        except Exception:
            logger.exception("account_delete_stage_failed", stage=name, account_id=self.account_id)
            self.result.failed_stages.append(name)

    # Legacy stores

    async def _load_legacy(self) -> None:
        ks = self.store.keyspace
        self._legacy = _LegacyState(
            redeemed=_as_list((await self.store.load_legacy(ks.redeemed_keys)).value, "redeemed-keys"),
            deleted=_as_list((await self.store.load_legacy(ks.deleted_keys)).value, "deleted-keys"),
            exec_users=_as_dict((await self.store.load_legacy(ks.exec_users)).value, "exec-users"),
            discord_users=_as_dict(
                (await self.store.load_legacy(ks.discord_users)).value, "discord-users"
            ),
        )
        self._legacy_loaded = True

    async def _delete_legacy_keys(self) -> None:
        keep: list[Any] = []
        matched: list[CredentialRecord] = []
        for item in self._legacy.redeemed:
            if isinstance(item, Mapping):
                record = CredentialRecord.from_wire(item, SchemaGeneration.LEGACY)
                if record.belongs_to(self.account_id):
                    matched.append(record)
                    continue
            keep.append(item)

        archived = [
            record.archived(deleted_at=self.deleted_at, deleted_by=self.account_id)
            for record in matched
        ]
        self._legacy.redeemed = keep
        self._legacy.deleted = [*self._legacy.deleted, *archived]
        self.tokens.update(record.token for record in matched if record.token)
        self.result.legacy_keys = len(matched)

    async def _delete_legacy_exec_and_profile(self) -> None:
        exec_users = self._legacy.exec_users
        for token in list(self.tokens):
            if token in exec_users:
                del exec_users[token]
                self.result.legacy_session_entries += 1

        if self.account_id in self._legacy.discord_users:
            del self._legacy.discord_users[self.account_id]
            self.result.legacy_profile = True

    async def _persist_legacy(self) -> None:
        ks = self.store.keyspace
        await self.store.save_legacy(ks.redeemed_keys, self._legacy.redeemed)
        await self.store.save_legacy(ks.deleted_keys, self._legacy.deleted)
        await self.store.save_legacy(ks.exec_users, self._legacy.exec_users)
        await self.store.save_legacy(ks.discord_users, self._legacy.discord_users)

    # Indexed stores

    async def _tombstone_indexed_keys(self, tier_class: TierClass) -> None:
        ks = self.store.keyspace
        index_key = ks.user_index(tier_class, self.account_id)
        tokens = await self.store.get(index_key)
        if not isinstance(tokens, list) or not tokens:
            return

        for raw_token in tokens:
            token = str(raw_token).strip() if raw_token is not None else ""
            if not token:
                continue
            self.tokens.add(token)

            record_key = ks.token_record(tier_class, token)
            data = await self.store.get(record_key)
            if not isinstance(data, Mapping) or not data:
                continue

            record = CredentialRecord.from_wire(data, SchemaGeneration.INDEXED, tier_class)
            if record.deleted:
                continue
            await self.store.set(
                record_key,
                record.tombstoned(deleted_at=self.deleted_at, deleted_by=self.account_id),
            )
            if tier_class is TierClass.FREE:
                self.result.free_keys += 1
            else:
                self.result.paid_keys += 1

        # The whole index is retired, not filtered
        await self.store.set(index_key, [])

    async def _delete_exec_entries(self) -> None:
        ks = self.store.keyspace
        index_key = ks.exec_users_index
        for entry_id in await self.store.set_members(index_key):
            entry_key = ks.exec_user_entry(entry_id)
            data = await self.store.get(entry_key)
            if data is None:
                # Dangling id
                await self.store.set_remove(index_key, entry_id)
                continue
            if not isinstance(data, Mapping):
                continue

            entry = SessionEntry.from_wire(entry_id, data)
            if entry.matches(self.account_id, self.tokens, self.policy):
                await self.store.delete(entry_key)
                await self.store.set_remove(index_key, entry_id)
                self.result.indexed_session_entries += 1

    async def _delete_profile(self) -> None:
        ks = self.store.keyspace
        profile_key = ks.profile(self.account_id)
        if await self.store.get(profile_key):
            self.result.indexed_profile = True
        await self.store.delete(profile_key)

        profile_ids = await self.store.get(ks.profile_index)
        if isinstance(profile_ids, list):
            cleaned = (str(i).strip() if i is not None else "" for i in profile_ids)
            await self.store.set(
                ks.profile_index,
                [i for i in cleaned if i and i != self.account_id],
            )


async def delete_account_data(
    store: DualBackendStore,
    account_id: Any,
    policy: SessionMatchPolicy | None = None,
) -> DeletionResult:
    """
    Delete every key, exec entry and profile owned by a Discord account.

    Raises InvalidAccountIdError for a blank id before touching any store.
    Running it again for the same account is a no-op.
    """
    account_id = normalize_account_id(account_id)
    policy = policy or SessionMatchPolicy(settings.session_match_policy)

    logger.info("account_delete_started", account_id=account_id)
    result = await AccountDeletion(store, account_id, policy).run()
    logger.info(
        "account_delete_finished",
        account_id=account_id,
        removed_keys=result.removed_credentials,
        legacy_keys=result.legacy_keys,
        free_keys=result.free_keys,
        paid_keys=result.paid_keys,
        exec_entries=result.removed_session_entries,
        profile_removed=result.profile_removed,
        failed_stages=result.failed_stages,
    )
    return result
