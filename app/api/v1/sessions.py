from fastapi import APIRouter, Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import bearer_token, get_current_claims
from app.core.config import Settings
from app.core.deps import get_db_session, get_redis, get_settings_dep
from app.core.security import TokenClaims
from app.repositories.devices import SessionRepository
from app.schemas.account import RevokeSessionIn, RevokeSessionOut
from app.services.tokens import revoke_sessions

router = APIRouter()


@router.post("/revoke", response_model=RevokeSessionOut)
async def revoke_session(
    payload: RevokeSessionIn,
    authorization: str | None = Header(default=None),
    claims: TokenClaims = Depends(get_current_claims),
    session: AsyncSession = Depends(get_db_session),
    redis=Depends(get_redis),
    settings: Settings = Depends(get_settings_dep),
):
    message, revoked = await revoke_sessions(
        SessionRepository(session),
        redis,
        claims.sub,
        bearer_token(authorization) or "",
        payload.session_id,
        payload.revoke_all_others,
        settings.revoked_session_ttl_seconds,
    )
    return RevokeSessionOut(success=True, message=message, revoked=len(revoked))
