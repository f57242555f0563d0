from fastapi import Depends, Header, HTTPException, status

from app.core.config import Settings
from app.core.deps import get_redis, get_settings_dep
from app.core.security import TokenClaims, verify_token
from app.services.tokens import is_revoked


def bearer_token(authorization: str | None) -> str | None:
    if not authorization or not authorization.lower().startswith("bearer "):
        return None
    return authorization.split(" ", 1)[1].strip() or None


async def get_current_claims(
    authorization: str | None = Header(default=None),
    settings: Settings = Depends(get_settings_dep),
    redis=Depends(get_redis),
) -> TokenClaims:
    token = bearer_token(authorization)
    if token is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    claims = verify_token(token, settings)
    if await is_revoked(redis, token):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Session revoked")
    return claims


async def get_optional_claims(
    authorization: str | None = Header(default=None),
    settings: Settings = Depends(get_settings_dep),
) -> TokenClaims | None:
    """Claims when a valid bearer token is present, ``None`` otherwise. Never rejects."""
    token = bearer_token(authorization)
    if token is None:
        return None
    try:
        return verify_token(token, settings)
    except HTTPException:
        return None
