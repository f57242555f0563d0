import hashlib
import logging
from typing import Iterable, List, Optional

from fastapi import HTTPException, status
from redis.asyncio import Redis

from app.repositories.devices import SessionRepository

logger = logging.getLogger(__name__)


def _token_hash(session_token: str) -> str:
    return hashlib.sha256(session_token.encode()).hexdigest()


def _revoked_key(session_token: str) -> str:
    return f"revoked:session:{_token_hash(session_token)}"


async def mark_revoked(redis: Redis, tokens: Iterable[str], ttl_seconds: int) -> None:
    pipe = redis.pipeline(transaction=False)
    for token in tokens:
        pipe.set(_revoked_key(token), "1", ex=ttl_seconds)
    await pipe.execute()


async def is_revoked(redis: Redis, session_token: str) -> bool:
    return bool(await redis.get(_revoked_key(session_token)))


async def revoke_sessions(
    sessions: SessionRepository,
    redis: Redis,
    user_id: str,
    current_token: str,
    session_id: Optional[str],
    revoke_all_others: bool,
    ttl_seconds: int,
) -> tuple[str, List[str]]:
    """
    Revoke one of the caller's sessions, or every session but the current one.

    Revoked tokens go to the Redis denylist so bearer auth rejects them before
    they expire at the identity provider.
    """
    if revoke_all_others:
        revoked = await sessions.revoke_all_except(user_id, current_token)
        message = "All other sessions have been revoked"
    elif session_id:
        revoked = await sessions.revoke(user_id, session_id)
        message = "Session has been revoked"
    else:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="sessionId or revokeAllOthers parameter required",
        )
    if revoked:
        await mark_revoked(redis, revoked, ttl_seconds)
    logger.info("Revoked %d session(s) for user %s", len(revoked), user_id)
    return message, revoked
