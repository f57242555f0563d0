import datetime as dt
import logging
from typing import Callable, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError

from app.core.clock import format_alert_timestamp, utcnow
from app.repositories.profiles import ProfileRepository
from app.schemas.events import SecurityAlert

logger = logging.getLogger(__name__)


class AlertDispatcher(Protocol):
    def dispatch(self, alert: SecurityAlert) -> None:
        """Submit the alert and return immediately; delivery is best effort."""


class CeleryAlertDispatcher:
    """Hands alerts to the worker queue; the caller never waits on delivery."""

    def dispatch(self, alert: SecurityAlert) -> None:
        from app.workers.celery_app import send_security_alert

        send_security_alert.apply_async(
            kwargs={"alert": alert.model_dump(by_alias=True)},
            ignore_result=True,
            retry=False,
        )


class AlertNotifier:
    """Resolves the recipient for a user and fires one alert, swallowing failures."""

    def __init__(
        self,
        profiles: ProfileRepository,
        dispatcher: AlertDispatcher,
        clock: Callable[[], dt.datetime] = utcnow,
    ):
        self.profiles = profiles
        self.dispatcher = dispatcher
        self.clock = clock

    async def notify(
        self,
        user_id: str,
        alert_type: str,
        alert_details: str,
        ip_address: str,
        location: Optional[str] = None,
    ) -> bool:
        try:
            profile = await self.profiles.get(user_id)
        except SQLAlchemyError:
            logger.exception("Could not load profile for alert %r (user=%s)", alert_type, user_id)
            return False
        if profile is None or not profile.email:
            logger.info("No email on file for user %s; skipping %r alert", user_id, alert_type)
            return False

        alert = SecurityAlert(
            email=profile.email,
            user_name=profile.full_name or profile.email,
            alert_type=alert_type,
            alert_details=alert_details,
            timestamp=format_alert_timestamp(self.clock()),
            ip_address=ip_address,
            location=location,
        )
        try:
            self.dispatcher.dispatch(alert)
        except Exception:
            logger.exception("Alert dispatch failed for %r (user=%s)", alert_type, user_id)
            return False
        logger.info("Queued %r alert for user %s", alert_type, user_id)
        return True
