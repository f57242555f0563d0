from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import get_current_claims
from app.core.clock import format_alert_timestamp, utcnow
from app.core.config import Settings
from app.core.deps import ClientContext, get_client_context, get_db_session, get_settings_dep
from app.core.security import TokenClaims
from app.repositories.profiles import ProfileRepository
from app.schemas.account import PasswordExpiryOut
from app.services.password import password_expiry
from app.workers.celery_app import send_password_change_email

router = APIRouter()


@router.get("/expiry", response_model=PasswordExpiryOut)
async def check_password_expiry(
    claims: TokenClaims = Depends(get_current_claims),
    session: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_settings_dep),
):
    profile = await ProfileRepository(session).get(claims.sub)
    changed_at = profile.password_changed_at if profile else None
    return password_expiry(changed_at, utcnow(), settings.password_max_age_days)


@router.post("/changed")
async def password_changed(
    background_tasks: BackgroundTasks,
    claims: TokenClaims = Depends(get_current_claims),
    client: ClientContext = Depends(get_client_context),
    session: AsyncSession = Depends(get_db_session),
):
    profile = await ProfileRepository(session).get(claims.sub)
    email = (profile.email if profile else None) or claims.email
    if not email:
        return {"success": False}
    background_tasks.add_task(
        send_password_change_email.delay,
        email=email,
        user_name=(profile.full_name if profile else None) or email,
        timestamp=format_alert_timestamp(utcnow()),
        ip_address=client.ip_address,
    )
    return {"success": True}
