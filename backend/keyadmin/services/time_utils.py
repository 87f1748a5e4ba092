from datetime import UTC, datetime, timedelta

MS_PER_DAY = 24 * 60 * 60 * 1000

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
_ONE_MS = timedelta(milliseconds=1)

# Latest instant a datetime can represent: 9999-12-31T23:59:59.999Z
MAX_MS = (datetime.max.replace(microsecond=999000, tzinfo=UTC) - _EPOCH) // _ONE_MS


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return (datetime.now(UTC) - _EPOCH) // _ONE_MS


def iso_from_ms(ms: int) -> str:
    """Epoch milliseconds to ISO-8601 UTC with millisecond precision, e.g. 2026-01-31T10:00:00.000Z."""
    dt = _EPOCH + timedelta(milliseconds=min(ms, MAX_MS))
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def ms_from_iso(value: str) -> int | None:
    """Parse an ISO-8601 timestamp into epoch milliseconds; None when unparsable."""
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return (dt - _EPOCH) // _ONE_MS
