"""Discord webhook notifications: error alerts and admin audit trail."""

import threading
from datetime import UTC, datetime, timedelta

import httpx
import structlog

from keyadmin.config import settings

logger = structlog.get_logger()

COLOR_RED = 15158332
COLOR_BLUE = 3447003

# Error alerts are rate limited to prevent alert storms
_last_alert_time: datetime | None = None
_alert_cooldown = timedelta(seconds=30)
_alert_lock = threading.Lock()


def _truncate(value: object, limit: int) -> str:
    text = str(value)
    return text[:limit] + "..." if len(text) > limit else text


def _embed(title: str, color: int, fields: list[dict]) -> dict:
    return {
        "embeds": [
            {
                "title": title,
                "color": color,
                "fields": fields,
                "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            }
        ]
    }


def mask_token(token: str) -> str:
    """Keep the prefix block of a key token, hide the rest."""
    prefix, _, rest = token.partition("-")
    return f"{prefix}-****" if rest else "****"


async def _post(webhook_url: str, payload: dict, kind: str) -> bool:
    try:
        async with httpx.AsyncClient() as client:
            response = await client.post(webhook_url, json=payload, timeout=10.0)
            response.raise_for_status()
            logger.info("discord_notification_sent", webhook_type=kind)
            return True
    except httpx.HTTPStatusError as e:
        logger.error(
            "discord_webhook_error",
            webhook_type=kind,
            status_code=e.response.status_code,
        )
        return False
    except httpx.RequestError as e:
        logger.error(
            "discord_webhook_request_error",
            webhook_type=kind,
            error=str(e),
        )
        return False


def _should_send_alert() -> bool:
    """Check if we should send an alert (rate limiting)."""
    global _last_alert_time
    with _alert_lock:
        now = datetime.now(UTC)
        if _last_alert_time and (now - _last_alert_time) < _alert_cooldown:
            return False
        _last_alert_time = now
        return True


def reset_alert_rate_limit() -> None:
    """Reset the rate limit state. Used in tests."""
    global _last_alert_time
    with _alert_lock:
        _last_alert_time = None


async def send_error_alert(
    error_type: str,
    message: str,
    *,
    path: str | None = None,
    correlation_id: str | None = None,
    status_code: int | None = None,
) -> bool:
    """
    Send an error alert to the alerts webhook.

    Returns True if the alert was delivered. Never raises; at most one alert
    per 30 seconds goes out.
    """
    webhook_url = settings.discord_alerts_webhook_url
    if not webhook_url:
        logger.debug("discord_alerts_webhook_not_configured")
        return False

    if not _should_send_alert():
        logger.info("discord_alert_rate_limited", error_type=error_type)
        return False

    fields = [{"name": "Error Type", "value": error_type, "inline": True}]
    if status_code:
        fields.append({"name": "Status", "value": str(status_code), "inline": True})
    if path:
        fields.append({"name": "Path", "value": path, "inline": True})
    if correlation_id:
        fields.append({"name": "Correlation ID", "value": correlation_id, "inline": True})
    if message:
        fields.append({"name": "Message", "value": _truncate(message, 500), "inline": False})

    return await _post(webhook_url, _embed("Key Admin Error", COLOR_RED, fields), "alerts")


async def send_audit_notification(action: str, details: dict[str, object]) -> bool:
    """
    Post an admin action (bulk delete, key generation) to the audit webhook.

    Returns True if delivered. Failures are logged; the admin action itself
    has already completed.
    """
    webhook_url = settings.discord_audit_webhook_url
    if not webhook_url:
        logger.debug("discord_audit_webhook_not_configured", action=action)
        return False

    fields = [{"name": "Action", "value": action, "inline": False}]
    for key, value in details.items():
        fields.append({"name": key, "value": _truncate(value, 200), "inline": True})

    return await _post(webhook_url, _embed("Key Admin Audit", COLOR_BLUE, fields), "audit")
