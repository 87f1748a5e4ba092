from collections.abc import Iterable
from typing import Any


class InvalidAccountIdError(ValueError):
    """Raised when a required account id is missing or blank."""


def normalize_account_id(raw: Any) -> str:
    """Trim an account id; raise InvalidAccountIdError when nothing is left."""
    account_id = str(raw).strip() if raw is not None else ""
    if not account_id:
        raise InvalidAccountIdError("Account id is required")
    return account_id


def normalize_account_ids(raw: Any) -> list[str]:
    """
    Normalize a selection of account ids.

    A scalar becomes a one-element list. Ids are trimmed, blanks dropped and
    duplicates removed, first occurrence order preserved.
    """
    if raw is None:
        return []
    if isinstance(raw, (str, int)) or not isinstance(raw, Iterable):
        raw = [raw]

    seen: dict[str, None] = {}
    for item in raw:
        account_id = str(item).strip() if item is not None else ""
        if account_id:
            seen.setdefault(account_id)
    return list(seen)
