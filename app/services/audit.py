import datetime as dt
import logging
from typing import Any, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from app.core.clock import utcnow
from app.core.errors import AuditLogWriteError
from app.repositories.audit import AuditLogRepository
from app.schemas.events import SecurityEventOut
from app.schemas.geo import GeolocationResult
from app.services.alerts import AlertNotifier
from app.services.detector import SuspiciousActivityDetector, SuspiciousFlag
from app.services.geolocation import GeolocationResolver

logger = logging.getLogger(__name__)


def high_risk_flag(event_type: str, success: bool, geo: GeolocationResult) -> Optional[SuspiciousFlag]:
    if event_type != "login" or not success or not geo.is_high_risk:
        return None
    return SuspiciousFlag(
        "Login from High-Risk Region",
        f"A login was detected from {geo.city or 'a location'} in {geo.country or 'a high-risk country'}. "
        "This region is flagged for security concerns.",
    )


class SecurityEventLogger:
    """
    Single write path for auth-relevant events.

    The audit insert is the one hard dependency: if it fails the call fails.
    Geolocation, detection and alerting all degrade silently around it.
    """

    def __init__(
        self,
        audit: AuditLogRepository,
        resolver: GeolocationResolver,
        detector: SuspiciousActivityDetector,
        notifier: AlertNotifier,
        clock: Callable[[], dt.datetime] = utcnow,
    ):
        self.audit = audit
        self.resolver = resolver
        self.detector = detector
        self.notifier = notifier
        self.clock = clock

    async def log(
        self,
        user_id: Optional[str],
        event_type: str,
        event_details: Optional[dict[str, Any]],
        success: bool,
        ip_address: str = "unknown",
        user_agent: str = "unknown",
    ) -> SecurityEventOut:
        geo = await self.resolver.resolve(ip_address)

        try:
            entry = await self.audit.append(
                user_id=user_id or None,
                event_type=event_type,
                event_details=event_details or {},
                ip_address=ip_address,
                user_agent=user_agent,
                success=success,
                latitude=geo.latitude,
                longitude=geo.longitude,
                city=geo.city,
                country=geo.country,
                country_code=geo.country_code,
                region=geo.region,
                is_high_risk=geo.is_high_risk,
                created_at=self.clock(),
            )
        except SQLAlchemyError as exc:
            logger.error("Error logging security event %s for user %s: %s", event_type, user_id, exc)
            raise AuditLogWriteError(str(exc)) from exc

        flags = await self.detector.scan(
            user_id, event_type, ip_address, event_details, success=success, current_entry_id=entry.id
        )
        risk = high_risk_flag(event_type, success, geo)
        if risk is not None and user_id:
            flags.append(risk)

        alerts_sent = 0
        if user_id:
            location = geo.location_label if geo.country_code else None
            for flag in flags:
                if await self.notifier.notify(user_id, flag.alert_type, flag.alert_details, ip_address, location):
                    alerts_sent += 1
        elif flags:
            logger.warning(
                "Suspicious %s from %s with no user to notify: %s",
                event_type, ip_address, ", ".join(f.alert_type for f in flags),
            )

        logger.info("Logged %s user=%s ip=%s flags=%d", event_type, user_id, ip_address, len(flags))
        return SecurityEventOut(success=True, alerts_sent=alerts_sent)
