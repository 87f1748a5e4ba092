import secrets

import structlog

from keyadmin.config import settings
from keyadmin.models.plan import TierClass
from keyadmin.services.kv_store import DualBackendStore

logger = structlog.get_logger()

# Uppercase without 0/O and 1/I
PAID_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
# Mixed case without 0/O/o, 1/I/l
FREE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789abcdefghijkmnpqrstuvwxyz"

BLOCK_COUNT = 3
BLOCK_LENGTH = 4


def _alphabet(tier_class: TierClass) -> str:
    return PAID_ALPHABET if tier_class is TierClass.PAID else FREE_ALPHABET


def _prefix(tier_class: TierClass) -> str:
    return settings.paid_token_prefix if tier_class is TierClass.PAID else settings.free_token_prefix


def generate_key_token(tier_class: TierClass = TierClass.PAID) -> str:
    """Generate a PREFIX-XXXX-XXXX-XXXX key token. No collision tracking here."""
    alphabet = _alphabet(tier_class)
    blocks = [
        "".join(secrets.choice(alphabet) for _ in range(BLOCK_LENGTH)) for _ in range(BLOCK_COUNT)
    ]
    return "-".join([_prefix(tier_class), *blocks])


async def token_exists(store: DualBackendStore, token: str) -> bool:
    """True when either token namespace already holds a record for this token."""
    for tier_class in TierClass:
        if await store.get(store.keyspace.token_record(tier_class, token)) is not None:
            return True
    return False


async def mint_unique_token(
    store: DualBackendStore,
    tier_class: TierClass = TierClass.PAID,
    max_attempts: int | None = None,
) -> str:
    """
    Generate a token not yet present in the store.

    Gives up after ``max_attempts`` and returns the last candidate unchecked.
    Without a remote store nothing can be checked.
    """
    attempts = max_attempts or settings.token_mint_attempts
    token = generate_key_token(tier_class)
    if not store.has_remote:
        return token

    for attempt in range(1, attempts + 1):
        if not await token_exists(store, token):
            return token
        logger.warning("key_token_collision", attempt=attempt, tier_class=tier_class.value)
        token = generate_key_token(tier_class)

    logger.error("key_token_uniqueness_unverified", attempts=attempts)
    return token
