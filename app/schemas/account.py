from typing import List, Optional
from pydantic import Field

from app.schemas.base import CamelModel


class RevokeSessionIn(CamelModel):
    session_id: Optional[str] = None
    revoke_all_others: bool = False


class RevokeSessionOut(CamelModel):
    success: bool = True
    message: str
    revoked: int = 0


class PasswordExpiryOut(CamelModel):
    is_expired: bool
    days_until_expiry: Optional[int] = None


class TwoFactorSetupOut(CamelModel):
    secret: str
    otpauth_url: str
    recovery_codes: List[str]


class TwoFactorEnableIn(CamelModel):
    token: str = Field(..., min_length=6, max_length=16)


class TwoFactorVerifyIn(CamelModel):
    token: str = Field(..., min_length=1, max_length=16)
    user_id: str = Field(..., max_length=64)


class TwoFactorVerifyOut(CamelModel):
    valid: bool
    used_recovery_code: bool = False
