from fastapi import APIRouter, Depends

from app.core.auth import get_optional_claims
from app.core.deps import ClientContext, get_client_context, get_event_logger
from app.core.security import TokenClaims
from app.schemas.events import SecurityEventIn, SecurityEventOut
from app.services.audit import SecurityEventLogger

router = APIRouter()


@router.post("", response_model=SecurityEventOut)
async def log_security_event(
    payload: SecurityEventIn,
    client: ClientContext = Depends(get_client_context),
    claims: TokenClaims | None = Depends(get_optional_claims),
    event_logger: SecurityEventLogger = Depends(get_event_logger),
):
    user_id = payload.user_id or (claims.sub if claims else None)
    return await event_logger.log(
        user_id,
        payload.event_type,
        payload.event_details,
        payload.success,
        ip_address=client.ip_address,
        user_agent=client.user_agent,
    )
