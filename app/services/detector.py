import datetime as dt
import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from app.core.clock import local_now
from app.repositories.audit import AuditLogRepository

logger = logging.getLogger(__name__)

FAILED_LOGIN_WINDOW = dt.timedelta(minutes=15)
FAILED_LOGIN_THRESHOLD = 3
RAPID_LOGIN_WINDOW = dt.timedelta(seconds=60)
RAPID_LOGIN_THRESHOLD = 3
NEW_IP_HISTORY_LIMIT = 10
UNUSUAL_HOURS = range(2, 5)


@dataclass(frozen=True)
class SuspiciousFlag:
    alert_type: str
    alert_details: str


class SuspiciousActivityDetector:
    """
    Advisory pattern checks over the audit log.

    ``current_entry_id`` excludes the row just written for this event so that
    every threshold counts *prior* activity only.
    """

    def __init__(self, audit: AuditLogRepository, clock: Callable[[], dt.datetime] = local_now):
        self.audit = audit
        self.clock = clock

    async def scan(
        self,
        user_id: Optional[str],
        event_type: str,
        ip_address: str,
        event_details: Optional[dict[str, Any]] = None,
        success: bool = True,
        current_entry_id: Optional[int] = None,
    ) -> List[SuspiciousFlag]:
        try:
            return await self._scan(user_id, event_type, ip_address, success, current_entry_id)
        except SQLAlchemyError:
            logger.exception("Suspicious activity scan failed (user=%s, event=%s)", user_id, event_type)
            return []

    async def _scan(
        self,
        user_id: Optional[str],
        event_type: str,
        ip_address: str,
        success: bool,
        current_entry_id: Optional[int],
    ) -> List[SuspiciousFlag]:
        now = self.clock()
        flags: List[SuspiciousFlag] = []

        if event_type == "login_failed":
            prior = await self.audit.count_failed_logins_from_ip(
                ip_address, now - FAILED_LOGIN_WINDOW, exclude_id=current_entry_id
            )
            if prior >= FAILED_LOGIN_THRESHOLD:
                flags.append(SuspiciousFlag(
                    "Multiple Failed Login Attempts",
                    f"{prior + 1} failed login attempts detected from your IP address in the last 15 minutes.",
                ))

        if event_type != "login" or not success or not user_id:
            return flags

        history = await self.audit.recent_login_ips(user_id, NEW_IP_HISTORY_LIMIT, exclude_id=current_entry_id)
        if history and ip_address not in history:
            flags.append(SuspiciousFlag(
                "Login from New Location",
                "A successful login was detected from a new IP address that hasn't been used before.",
            ))

        if now.hour in UNUSUAL_HOURS:
            flags.append(SuspiciousFlag(
                "Unusual Login Time",
                f"A login was detected during unusual hours ({now.hour}:00 AM). "
                "This is outside normal business hours.",
            ))

        recent = await self.audit.count_successful_logins(
            user_id, now - RAPID_LOGIN_WINDOW, exclude_id=current_entry_id
        )
        if recent >= RAPID_LOGIN_THRESHOLD:
            flags.append(SuspiciousFlag(
                "Rapid Login Attempts",
                f"Multiple successful logins detected within a very short time period ({recent + 1} in 1 minute).",
            ))

        return flags
