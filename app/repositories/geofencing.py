import datetime as dt
from typing import List

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import as_utc
from app.models.geofencing import GeofencingException, GeofencingRule


class GeofencingRepository:
    """Read-only view of the admin-managed rules and per-user exceptions."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def active_exceptions(self, user_id: str, now: dt.datetime) -> List[GeofencingException]:
        stmt = select(GeofencingException).where(
            GeofencingException.user_id == user_id,
            or_(GeofencingException.expires_at.is_(None), GeofencingException.expires_at > as_utc(now)),
        )
        return list((await self.db.execute(stmt)).scalars().all())

    async def active_rules(self) -> List[GeofencingRule]:
        """Active rules, most recently created first."""
        stmt = (
            select(GeofencingRule)
            .where(GeofencingRule.is_active.is_(True))
            .order_by(GeofencingRule.created_at.desc())
        )
        return list((await self.db.execute(stmt)).scalars().all())
