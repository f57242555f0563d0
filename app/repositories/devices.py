import datetime as dt
from typing import List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import as_utc
from app.models.device import UserDevice, UserSession
from app.schemas.device import DeviceDetails


class DeviceRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_fingerprint(self, user_id: str, fingerprint: str) -> Optional[UserDevice]:
        stmt = select(UserDevice).where(
            UserDevice.user_id == user_id, UserDevice.device_fingerprint == fingerprint
        )
        return (await self.db.execute(stmt)).scalar_one_or_none()

    async def insert(
        self, user_id: str, fingerprint: str, details: DeviceDetails, now: dt.datetime
    ) -> UserDevice:
        """
        Create an untrusted device row.

        Raises ``IntegrityError`` when a concurrent request already created the
        same (user, fingerprint) pair; the session is rolled back first.
        """
        device = UserDevice(
            user_id=user_id,
            device_fingerprint=fingerprint,
            device_name=f"{details.browser} on {details.os}",
            browser=details.browser,
            browser_version=details.browser_version,
            os=details.os,
            os_version=details.os_version,
            device_type=details.device_type,
            screen_resolution=details.screen_resolution,
            timezone=details.timezone,
            is_trusted=False,
            first_seen_at=as_utc(now),
            last_used_at=as_utc(now),
        )
        self.db.add(device)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise
        await self.db.refresh(device)
        return device

    async def touch(self, device: UserDevice, now: dt.datetime) -> None:
        await self.db.execute(
            update(UserDevice).where(UserDevice.id == device.id).values(last_used_at=as_utc(now))
        )
        await self.db.commit()

    async def list_for_user(self, user_id: str) -> List[UserDevice]:
        stmt = select(UserDevice).where(UserDevice.user_id == user_id)
        return list((await self.db.execute(stmt)).scalars().all())

    async def count_first_seen_since(self, user_id: str, since: dt.datetime) -> int:
        stmt = select(func.count(UserDevice.id)).where(
            UserDevice.user_id == user_id, UserDevice.first_seen_at >= as_utc(since)
        )
        return (await self.db.execute(stmt)).scalar_one()


class SessionRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_token(self, session_token: str) -> Optional[UserSession]:
        stmt = select(UserSession).where(UserSession.session_token == session_token)
        return (await self.db.execute(stmt)).scalar_one_or_none()

    async def upsert(self, user_id: str, device_id: str, session_token: str, now: dt.datetime) -> None:
        """Insert the session or refresh ``last_active_at`` when the token is already known."""
        now = as_utc(now)
        refresh = (
            update(UserSession)
            .where(UserSession.session_token == session_token)
            .values(user_id=user_id, device_id=device_id, last_active_at=now)
        )
        if await self.get_by_token(session_token) is not None:
            await self.db.execute(refresh)
            await self.db.commit()
            return
        self.db.add(
            UserSession(
                user_id=user_id,
                device_id=device_id,
                session_token=session_token,
                last_active_at=now,
                created_at=now,
            )
        )
        try:
            await self.db.commit()
        except IntegrityError:
            # lost the race on the token unique key
            await self.db.rollback()
            await self.db.execute(refresh)
            await self.db.commit()

    async def count_active(self, user_id: str) -> int:
        stmt = select(func.count(UserSession.id)).where(
            UserSession.user_id == user_id, UserSession.is_revoked.is_(False)
        )
        return (await self.db.execute(stmt)).scalar_one()

    async def revoke(self, user_id: str, session_id: str) -> List[str]:
        """Revoke one session owned by ``user_id``; returns the revoked tokens."""
        stmt = select(UserSession).where(
            UserSession.id == session_id,
            UserSession.user_id == user_id,
            UserSession.is_revoked.is_(False),
        )
        return await self._revoke_matching(stmt)

    async def revoke_all_except(self, user_id: str, keep_token: str) -> List[str]:
        stmt = select(UserSession).where(
            UserSession.user_id == user_id,
            UserSession.session_token != keep_token,
            UserSession.is_revoked.is_(False),
        )
        return await self._revoke_matching(stmt)

    async def _revoke_matching(self, stmt) -> List[str]:
        sessions = list((await self.db.execute(stmt)).scalars().all())
        if not sessions:
            return []
        await self.db.execute(
            update(UserSession)
            .where(UserSession.id.in_([s.id for s in sessions]))
            .values(is_revoked=True)
        )
        await self.db.commit()
        return [s.session_token for s in sessions]
