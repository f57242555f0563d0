import datetime as dt
from typing import List, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import as_utc
from app.models.profile import Profile, UserTwoFactor


class ProfileRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, user_id: str) -> Optional[Profile]:
        return await self.db.get(Profile, user_id)

    async def get_two_factor(self, user_id: str) -> Optional[UserTwoFactor]:
        return await self.db.get(UserTwoFactor, user_id)

    async def save_two_factor(
        self, user_id: str, secret: str, enabled: bool, recovery_codes: List[str]
    ) -> UserTwoFactor:
        record = await self.get_two_factor(user_id)
        if record is None:
            record = UserTwoFactor(user_id=user_id)
            self.db.add(record)
        record.secret = secret
        record.enabled = enabled
        record.recovery_codes = list(recovery_codes)
        await self.db.commit()
        return record

    async def set_two_factor_enabled(self, user_id: str, enabled: bool) -> None:
        await self.db.execute(
            update(UserTwoFactor).where(UserTwoFactor.user_id == user_id).values(enabled=enabled)
        )
        await self.db.commit()

    async def set_recovery_codes(self, user_id: str, recovery_codes: List[str]) -> None:
        await self.db.execute(
            update(UserTwoFactor)
            .where(UserTwoFactor.user_id == user_id)
            .values(recovery_codes=list(recovery_codes))
        )
        await self.db.commit()

    async def due_for_expiry_notice(
        self, changed_before: dt.datetime, notified_before: dt.datetime
    ) -> List[Profile]:
        stmt = select(Profile).where(
            Profile.password_changed_at.is_not(None),
            Profile.password_changed_at < as_utc(changed_before),
            or_(
                Profile.password_expiry_notified_at.is_(None),
                Profile.password_expiry_notified_at < as_utc(notified_before),
            ),
        )
        return list((await self.db.execute(stmt)).scalars().all())

    async def mark_expiry_notified(self, user_id: str, now: dt.datetime) -> None:
        await self.db.execute(
            update(Profile).where(Profile.id == user_id).values(password_expiry_notified_at=as_utc(now))
        )
        await self.db.commit()
