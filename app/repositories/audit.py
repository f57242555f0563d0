"""Append-only access to ``security_audit_log``."""
import datetime as dt
from typing import Any, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import as_utc
from app.models.audit import SecurityAuditLog


class AuditLogRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def append(self, **values: Any) -> SecurityAuditLog:
        """Insert one row and commit. Rows are never updated or deleted."""
        if values.get("created_at") is not None:
            values["created_at"] = as_utc(values["created_at"])
        entry = SecurityAuditLog(**values)
        self.db.add(entry)
        await self.db.commit()
        await self.db.refresh(entry)
        return entry

    async def count_failed_logins_from_ip(
        self, ip_address: str, since: dt.datetime, exclude_id: Optional[int] = None
    ) -> int:
        stmt = select(func.count(SecurityAuditLog.id)).where(
            SecurityAuditLog.event_type == "login_failed",
            SecurityAuditLog.ip_address == ip_address,
            SecurityAuditLog.created_at >= as_utc(since),
        )
        if exclude_id is not None:
            stmt = stmt.where(SecurityAuditLog.id != exclude_id)
        return (await self.db.execute(stmt)).scalar_one()

    async def recent_login_ips(
        self, user_id: str, limit: int, exclude_id: Optional[int] = None
    ) -> List[str]:
        """IP addresses of the user's most recent successful logins, newest first."""
        stmt = (
            select(SecurityAuditLog.ip_address)
            .where(
                SecurityAuditLog.user_id == user_id,
                SecurityAuditLog.event_type == "login",
                SecurityAuditLog.success.is_(True),
            )
            .order_by(SecurityAuditLog.created_at.desc(), SecurityAuditLog.id.desc())
            .limit(limit)
        )
        if exclude_id is not None:
            stmt = stmt.where(SecurityAuditLog.id != exclude_id)
        return list((await self.db.execute(stmt)).scalars().all())

    async def count_successful_logins(
        self, user_id: str, since: dt.datetime, exclude_id: Optional[int] = None
    ) -> int:
        stmt = select(func.count(SecurityAuditLog.id)).where(
            SecurityAuditLog.user_id == user_id,
            SecurityAuditLog.event_type == "login",
            SecurityAuditLog.success.is_(True),
            SecurityAuditLog.created_at >= as_utc(since),
        )
        if exclude_id is not None:
            stmt = stmt.where(SecurityAuditLog.id != exclude_id)
        return (await self.db.execute(stmt)).scalar_one()
