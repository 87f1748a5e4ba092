import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Request

from keyadmin.config import settings
from keyadmin.dependencies import get_store
from keyadmin.middleware.rate_limit import limiter
from keyadmin.schemas.admin import (
    BulkDeleteRequest,
    BulkDeleteResponse,
    GeneratePaidKeyRequest,
    GeneratePaidKeyResponse,
)
from keyadmin.services.accounts import InvalidAccountIdError, normalize_account_ids
from keyadmin.services.admin_service import bulk_delete, issue_one
from keyadmin.services.discord_service import mask_token, send_audit_notification
from keyadmin.services.kv_store import DualBackendStore

router = APIRouter()
logger = structlog.get_logger()


def verify_admin_api_key(x_api_key: str = Header(..., alias="X-API-Key")) -> None:
    """Verify the admin API key sent by the dashboard."""
    if not settings.admin_api_key:
        raise HTTPException(status_code=503, detail="Admin API not configured")
    if x_api_key != settings.admin_api_key:
        raise HTTPException(status_code=401, detail="Invalid API key")


@router.post("/bulk-delete-users", response_model=BulkDeleteResponse)
@limiter.limit(settings.rate_limit_admin)
async def bulk_delete_users(
    request: Request,
    selection: BulkDeleteRequest,
    store: DualBackendStore = Depends(get_store),
    _: None = Depends(verify_admin_api_key),
):
    """
    Delete all keys, exec entries and profiles of the selected Discord users.

    Processes ids one at a time; a failure for one id does not stop the batch.
    """
    account_ids = normalize_account_ids(selection.selected_ids())
    if not account_ids:
        logger.info("bulk_delete_no_selection")
        return BulkDeleteResponse(status="no_selection")

    summary = await bulk_delete(store, account_ids)

    await send_audit_notification(
        "bulk-delete-users",
        {
            "Users": summary.users_processed,
            "Keys": summary.keys_removed,
            "Exec entries": summary.session_entries_removed,
            "Profiles": summary.profiles_removed,
            "Failed": len(summary.failed_account_ids),
        },
    )

    return BulkDeleteResponse(
        status="completed",
        users_processed=summary.users_processed,
        keys_removed=summary.keys_removed,
        session_entries_removed=summary.session_entries_removed,
        profiles_removed=summary.profiles_removed,
        failed_account_ids=summary.failed_account_ids,
    )


@router.post("/generate-paid-key", response_model=GeneratePaidKeyResponse, status_code=201)
@limiter.limit(settings.rate_limit_admin)
async def generate_paid_key(
    request: Request,
    payload: GeneratePaidKeyRequest,
    store: DualBackendStore = Depends(get_store),
    _: None = Depends(verify_admin_api_key),
):
    """Generate a paid key (month, 3month, 6month, lifetime) for one Discord user."""
    account_id = payload.selected_id()
    if not account_id:
        raise HTTPException(status_code=400, detail="MissingDiscordId")

    try:
        issued = await issue_one(store, account_id, payload.plan)
    except InvalidAccountIdError as e:
        raise HTTPException(status_code=400, detail=str(e))

    await send_audit_notification(
        "generate-paid-key",
        {
            "Discord ID": issued.account_id,
            "Plan": issued.plan.value,
            "Token": mask_token(issued.token),
            "Expires": issued.expires_at_iso,
        },
    )

    return GeneratePaidKeyResponse(
        account_id=issued.account_id,
        generated_plan=issued.plan.value,
        generated_token=issued.token,
        expires_at=issued.expires_at_iso,
        expires_at_ms=issued.expires_at_ms,
    )
