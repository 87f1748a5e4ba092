from dataclasses import dataclass, field
from typing import Any

import structlog

from keyadmin.services.accounts import normalize_account_ids
from keyadmin.services.deletion_service import DeletionResult, delete_account_data
from keyadmin.services.issuance_service import IssuedCredential, issue_paid_key
from keyadmin.services.kv_store import DualBackendStore

logger = structlog.get_logger()


@dataclass(slots=True)
class BulkDeleteSummary:
    users_processed: int = 0
    keys_removed: int = 0
    session_entries_removed: int = 0
    profiles_removed: int = 0
    failed_account_ids: list[str] = field(default_factory=list)
    partial_account_ids: list[str] = field(default_factory=list)

    def add(self, result: DeletionResult) -> None:
        self.users_processed += 1
        self.keys_removed += result.removed_credentials
        self.session_entries_removed += result.removed_session_entries
        self.profiles_removed += 1 if result.profile_removed else 0
        if result.failed_stages:
            self.partial_account_ids.append(result.account_id)


async def bulk_delete(store: DualBackendStore, account_ids: Any) -> BulkDeleteSummary:
    """
    Delete the data of several Discord accounts, one after another.

    Ids are trimmed and de-duplicated first. A failure for one id is logged
    and skipped; it never aborts the rest of the batch.
    """
    summary = BulkDeleteSummary()
    for account_id in normalize_account_ids(account_ids):
        try:
            result = await delete_account_data(store, account_id)
        except Exception:
            logger.exception("bulk_delete_account_failed", account_id=account_id)
            summary.failed_account_ids.append(account_id)
            continue
        summary.add(result)

    logger.info(
        "bulk_delete_finished",
        users=summary.users_processed,
        keys=summary.keys_removed,
        exec_entries=summary.session_entries_removed,
        profiles=summary.profiles_removed,
        failed=len(summary.failed_account_ids),
    )
    return summary


async def issue_one(store: DualBackendStore, account_id: Any, plan: Any = None) -> IssuedCredential:
    return await issue_paid_key(store, account_id, plan)
