import logging
import secrets
import string
from typing import List

import pyotp
from fastapi import HTTPException, status

from app.core.config import Settings
from app.repositories.profiles import ProfileRepository
from app.schemas.account import TwoFactorSetupOut, TwoFactorVerifyOut

logger = logging.getLogger(__name__)

RECOVERY_CODE_COUNT = 10
RECOVERY_CODE_LENGTH = 8
_RECOVERY_ALPHABET = string.ascii_uppercase + string.digits


def generate_recovery_codes(count: int = RECOVERY_CODE_COUNT) -> List[str]:
    return [
        "".join(secrets.choice(_RECOVERY_ALPHABET) for _ in range(RECOVERY_CODE_LENGTH))
        for _ in range(count)
    ]


def verify_totp(secret: str, token: str) -> bool:
    # one step of clock drift either way
    return pyotp.TOTP(secret).verify(token.strip(), valid_window=1)


class TwoFactorService:
    """TOTP enrolment and verification backed by ``user_2fa``."""

    def __init__(self, profiles: ProfileRepository, settings: Settings):
        self.profiles = profiles
        self.settings = settings

    async def setup(self, user_id: str, label: str) -> TwoFactorSetupOut:
        secret = pyotp.random_base32()
        codes = generate_recovery_codes()
        await self.profiles.save_two_factor(user_id, secret, enabled=False, recovery_codes=codes)
        uri = pyotp.TOTP(secret).provisioning_uri(name=label, issuer_name=self.settings.totp_issuer)
        return TwoFactorSetupOut(secret=secret, otpauth_url=uri, recovery_codes=codes)

    async def enable(self, user_id: str, token: str) -> None:
        record = await self.profiles.get_two_factor(user_id)
        if record is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="2FA not set up. Please set up 2FA first.")
        if not verify_totp(record.secret, token):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid verification code")
        await self.profiles.set_two_factor_enabled(user_id, True)
        logger.info("2FA enabled for user %s", user_id)

    async def verify(self, user_id: str, token: str) -> TwoFactorVerifyOut:
        record = await self.profiles.get_two_factor(user_id)
        if record is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="2FA not set up for this user")
        if not record.enabled:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="2FA not enabled for this user")

        codes = list(record.recovery_codes or [])
        if token in codes:
            codes.remove(token)
            await self.profiles.set_recovery_codes(user_id, codes)
            logger.info("Recovery code used by user %s (%d left)", user_id, len(codes))
            return TwoFactorVerifyOut(valid=True, used_recovery_code=True)

        return TwoFactorVerifyOut(valid=verify_totp(record.secret, token), used_recovery_code=False)
