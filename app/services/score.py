import datetime as dt
import logging
from typing import Callable, Optional

from app.core.clock import as_utc, utcnow
from app.repositories.devices import DeviceRepository, SessionRepository
from app.repositories.profiles import ProfileRepository
from app.schemas.score import (
    ActiveSessionsBreakdown,
    PasswordAgeBreakdown,
    ScoreBreakdown,
    SecurityScore,
    TrustedDevicesBreakdown,
    TwoFactorBreakdown,
)

logger = logging.getLogger(__name__)

RECENT_DEVICE_WINDOW = dt.timedelta(days=7)


def score_two_factor(enabled: bool) -> tuple[TwoFactorBreakdown, Optional[str]]:
    if enabled:
        return TwoFactorBreakdown(score=30, enabled=True), None
    return TwoFactorBreakdown(), "Enable two-factor authentication for enhanced security"


def score_password_age(days_old: Optional[int]) -> tuple[PasswordAgeBreakdown, Optional[str]]:
    if days_old is None:
        return PasswordAgeBreakdown(), None
    if days_old <= 30:
        return PasswordAgeBreakdown(score=25, days_old=days_old), None
    if days_old <= 60:
        return (
            PasswordAgeBreakdown(score=15, days_old=days_old),
            "Consider changing your password - it has been over 30 days",
        )
    if days_old <= 90:
        return (
            PasswordAgeBreakdown(score=5, days_old=days_old),
            "Change your password soon - it will expire at 90 days",
        )
    return PasswordAgeBreakdown(score=0, days_old=days_old), "Your password has expired - change it immediately"


def score_devices(trusted: int, total: int, recent: int) -> tuple[TrustedDevicesBreakdown, Optional[str]]:
    breakdown = TrustedDevicesBreakdown(trusted_count=trusted, total_count=total)
    if trusted > 0:
        breakdown.score = 20
    if recent == 0:
        breakdown.score += 10
        return breakdown, None
    return breakdown, "Review recent device logins and mark trusted devices"


def score_sessions(count: int) -> tuple[ActiveSessionsBreakdown, Optional[str]]:
    if count == 1:
        return ActiveSessionsBreakdown(score=15, session_count=count), None
    if count <= 3:
        return ActiveSessionsBreakdown(score=10, session_count=count), None
    return (
        ActiveSessionsBreakdown(score=5, session_count=count),
        "You have multiple active sessions - consider revoking unused ones",
    )


def risk_level(total: int) -> str:
    if total >= 80:
        return "low"
    if total >= 50:
        return "medium"
    return "high"


def build_score(
    two_factor_enabled: bool,
    password_days_old: Optional[int],
    trusted_devices: int,
    total_devices: int,
    recent_devices: int,
    active_sessions: int,
) -> SecurityScore:
    """Combine the four sub-scores; recommendations keep category order."""
    two_factor, r1 = score_two_factor(two_factor_enabled)
    password_age, r2 = score_password_age(password_days_old)
    devices, r3 = score_devices(trusted_devices, total_devices, recent_devices)
    sessions, r4 = score_sessions(active_sessions)

    total = two_factor.score + password_age.score + devices.score + sessions.score
    return SecurityScore(
        total_score=total,
        breakdown=ScoreBreakdown(
            two_factor=two_factor,
            password_age=password_age,
            trusted_devices=devices,
            active_sessions=sessions,
        ),
        risk_level=risk_level(total),
        recommendations=[r for r in (r1, r2, r3, r4) if r],
    )


class SecurityScoreCalculator:
    def __init__(
        self,
        profiles: ProfileRepository,
        devices: DeviceRepository,
        sessions: SessionRepository,
        clock: Callable[[], dt.datetime] = utcnow,
    ):
        self.profiles = profiles
        self.devices = devices
        self.sessions = sessions
        self.clock = clock

    async def calculate(self, user_id: str) -> SecurityScore:
        now = self.clock()

        two_factor = await self.profiles.get_two_factor(user_id)
        profile = await self.profiles.get(user_id)
        days_old = None
        if profile is not None and profile.password_changed_at is not None:
            days_old = (now - as_utc(profile.password_changed_at)).days

        devices = await self.devices.list_for_user(user_id)
        recent = await self.devices.count_first_seen_since(user_id, now - RECENT_DEVICE_WINDOW)
        session_count = await self.sessions.count_active(user_id)

        score = build_score(
            two_factor_enabled=bool(two_factor and two_factor.enabled),
            password_days_old=days_old,
            trusted_devices=sum(1 for d in devices if d.is_trusted),
            total_devices=len(devices),
            recent_devices=recent,
            active_sessions=session_count,
        )
        logger.info("Security score for %s: %d (%s)", user_id, score.total_score, score.risk_level)
        return score
