from dataclasses import dataclass
from enum import StrEnum
from typing import Any

import structlog

from keyadmin.models.credential import CredentialRecord
from keyadmin.models.plan import PaidPlan, TierClass, normalize_plan
from keyadmin.services.accounts import normalize_account_id
from keyadmin.services.kv_store import DualBackendStore
from keyadmin.services.plan_service import resolve_durations
from keyadmin.services.time_utils import now_ms
from keyadmin.services.token_service import mint_unique_token

logger = structlog.get_logger()


class IssuedTo(StrEnum):
    INDEXED = "indexed"
    LOCAL_LEGACY = "local-legacy"


@dataclass(frozen=True, slots=True)
class IssuedCredential:
    account_id: str
    token: str
    plan: PaidPlan
    tier_class: TierClass
    expires_at_ms: int
    expires_at_iso: str
    record: dict[str, Any]
    stored_in: IssuedTo


async def _append_to_user_index(store: DualBackendStore, account_id: str, token: str) -> None:
    index_key = store.keyspace.user_index(TierClass.PAID, account_id)
    tokens = await store.get(index_key)
    if not isinstance(tokens, list):
        tokens = []
    if token not in tokens:
        tokens.append(token)
    await store.set(index_key, tokens)


async def _append_to_local_redeemed(store: DualBackendStore, record: dict[str, Any]) -> None:
    blob = store.keyspace.redeemed_keys
    redeemed = (await store.load_legacy(blob)).value
    if not isinstance(redeemed, list):
        logger.warning("legacy_store_not_array", store=blob.file_name)
        redeemed = []
    redeemed.append({**record, "store": "local-redeemed", "legacy": True})
    await store.save_legacy(blob, redeemed)


async def issue_paid_key(
    store: DualBackendStore,
    account_id: Any,
    plan: Any = None,
) -> IssuedCredential:
    """
    Issue a new paid key for a Discord account.

    With a remote store the key goes to the indexed schema (token record plus
    the account's paid index). Without one it is appended to the local legacy
    redeemed-keys file. Every call mints a new, independent key.
    """
    account_id = normalize_account_id(account_id)
    paid_plan = normalize_plan(plan)

    durations = await resolve_durations(store)
    ttl_days = durations.days_for(paid_plan)

    token = await mint_unique_token(store, TierClass.PAID)
    credential = CredentialRecord.new_paid(
        token=token,
        account_id=account_id,
        plan=paid_plan,
        created_at_ms=now_ms(),
        ttl_days=ttl_days,
    )
    record = credential.to_wire()

    if store.has_remote:
        await store.set(store.keyspace.token_record(TierClass.PAID, token), record)
        await _append_to_user_index(store, account_id, token)
        stored_in = IssuedTo.INDEXED
    else:
        await _append_to_local_redeemed(store, record)
        stored_in = IssuedTo.LOCAL_LEGACY

    logger.info(
        "paid_key_issued",
        account_id=account_id,
        plan=paid_plan.value,
        ttl_days=ttl_days,
        stored_in=stored_in.value,
    )

    return IssuedCredential(
        account_id=account_id,
        token=token,
        plan=paid_plan,
        tier_class=credential.tier_class,
        expires_at_ms=credential.expires_at_ms,
        expires_at_iso=record["expiresAt"],
        record=record,
        stored_in=stored_in,
    )
