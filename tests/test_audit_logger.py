import datetime as dt

import httpx
import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from app.core.errors import AuditLogWriteError
from app.models.audit import SecurityAuditLog
from app.repositories.audit import AuditLogRepository
from app.services.audit import SecurityEventLogger
from app.services.detector import SuspiciousActivityDetector
from app.services.geolocation import GeolocationResolver

from tests.factories import FIXED_NOW


def _resolver(settings, country_code="BR", country="Brazil", city="Sao Paulo"):
    body = {"city": city, "country_code": country_code, "country_name": country, "region": city,
            "latitude": 1.5, "longitude": 2.5}
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json=body))
    return GeolocationResolver(settings, client=httpx.AsyncClient(transport=transport))


def _logger(db, settings, notifier, audit=None, **geo) -> SecurityEventLogger:
    audit = audit or AuditLogRepository(db)
    return SecurityEventLogger(
        audit,
        _resolver(settings, **geo),
        SuspiciousActivityDetector(audit, clock=lambda: FIXED_NOW),
        notifier,
        clock=lambda: FIXED_NOW,
    )


@pytest.mark.asyncio
async def test_event_is_persisted_with_geolocation(db, settings, notifier):
    result = await _logger(db, settings, notifier).log(
        "user-1", "logout", {"reason": "manual"}, True, ip_address="187.10.20.30", user_agent="Firefox"
    )
    assert result.success is True
    assert result.alerts_sent == 0

    row = (await db.execute(select(SecurityAuditLog))).scalar_one()
    assert row.user_id == "user-1"
    assert row.event_type == "logout"
    assert row.event_details == {"reason": "manual"}
    assert row.country_code == "BR"
    assert row.city == "Sao Paulo"
    assert row.latitude == pytest.approx(1.5)
    assert row.is_high_risk is False


@pytest.mark.asyncio
async def test_anonymous_event_is_logged(db, settings, notifier, dispatcher):
    result = await _logger(db, settings, notifier).log(None, "signup", {}, False, ip_address="187.10.20.30")
    assert result.alerts_sent == 0
    row = (await db.execute(select(SecurityAuditLog))).scalar_one()
    assert row.user_id is None
    assert dispatcher.alerts == []


@pytest.mark.asyncio
async def test_high_risk_login_alerts(db, user, settings, notifier, dispatcher):
    event_logger = _logger(db, settings, notifier, country_code="KP", country="North Korea", city="Pyongyang")
    result = await event_logger.log("user-1", "login", {}, True, ip_address="175.45.176.1")

    assert dispatcher.alert_types == ["Login from High-Risk Region"]
    assert result.alerts_sent == 1
    alert = dispatcher.alerts[0]
    assert alert.location == "Pyongyang, North Korea"
    assert alert.ip_address == "175.45.176.1"
    assert alert.timestamp == "Monday, March 9, 2026 at 2:00:00 PM UTC"


@pytest.mark.asyncio
async def test_alerts_without_email_are_not_counted(db, settings, notifier, dispatcher):
    # no profile row for user-1
    event_logger = _logger(db, settings, notifier, country_code="KP", country="North Korea")
    result = await event_logger.log("user-1", "login", {}, True, ip_address="175.45.176.1")
    assert result.alerts_sent == 0
    assert dispatcher.alerts == []


@pytest.mark.asyncio
async def test_dispatch_failure_does_not_fail_logging(db, user, settings):
    from app.repositories.profiles import ProfileRepository
    from app.services.alerts import AlertNotifier
    from tests.factories import FailingDispatcher

    notifier = AlertNotifier(ProfileRepository(db), FailingDispatcher())
    event_logger = _logger(db, settings, notifier, country_code="IR", country="Iran")
    result = await event_logger.log("user-1", "login", {}, True, ip_address="5.1.2.3")
    assert result.success is True
    assert result.alerts_sent == 0


class _FailingAudit(AuditLogRepository):
    async def append(self, **values):
        raise OperationalError("INSERT", {}, Exception("disk full"))


@pytest.mark.asyncio
async def test_insert_failure_is_fatal(db, settings, notifier):
    event_logger = _logger(db, settings, notifier, audit=_FailingAudit(db))
    with pytest.raises(AuditLogWriteError) as excinfo:
        await event_logger.log("user-1", "login", {}, True, ip_address="187.10.20.30")
    assert excinfo.value.public_message == "Failed to log event"


@pytest.mark.asyncio
async def test_repeated_failures_alert_user(db, user, settings, notifier, dispatcher):
    audit = AuditLogRepository(db)
    for minutes in (9, 6, 3):
        await audit.append(
            user_id="user-1", event_type="login_failed", event_details={}, ip_address="10.0.0.9",
            user_agent="pytest", success=False, created_at=FIXED_NOW - dt.timedelta(minutes=minutes),
        )
    result = await _logger(db, settings, notifier, audit=audit).log(
        "user-1", "login_failed", {}, False, ip_address="10.0.0.9"
    )
    assert dispatcher.alert_types == ["Multiple Failed Login Attempts"]
    assert result.alerts_sent == 1
