from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import get_current_claims
from app.core.deps import get_db_session, get_two_factor_service
from app.core.security import TokenClaims
from app.repositories.profiles import ProfileRepository
from app.schemas.account import TwoFactorEnableIn, TwoFactorSetupOut, TwoFactorVerifyIn, TwoFactorVerifyOut
from app.services.two_factor import TwoFactorService

router = APIRouter()


@router.post("/setup", response_model=TwoFactorSetupOut)
async def setup_2fa(
    claims: TokenClaims = Depends(get_current_claims),
    session: AsyncSession = Depends(get_db_session),
    service: TwoFactorService = Depends(get_two_factor_service),
):
    profile = await ProfileRepository(session).get(claims.sub)
    label = (profile.email if profile else None) or claims.email or "user"
    return await service.setup(claims.sub, label)


@router.post("/enable")
async def enable_2fa(
    payload: TwoFactorEnableIn,
    claims: TokenClaims = Depends(get_current_claims),
    service: TwoFactorService = Depends(get_two_factor_service),
):
    await service.enable(claims.sub, payload.token)
    return {"success": True}


@router.post("/verify", response_model=TwoFactorVerifyOut)
async def verify_2fa(
    payload: TwoFactorVerifyIn,
    service: TwoFactorService = Depends(get_two_factor_service),
):
    # pre-login step: the caller only holds the pending user id
    return await service.verify(payload.user_id, payload.token)
