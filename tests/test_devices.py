import datetime as dt

import pytest
from sqlalchemy import func, select

from app.core.clock import as_utc
from app.models.device import UserDevice, UserSession
from app.repositories.devices import DeviceRepository, SessionRepository
from app.schemas.device import DeviceDetails
from app.services.devices import DeviceSessionTracker

from tests.factories import FIXED_NOW

DETAILS = DeviceDetails(
    browser="Chrome",
    browser_version="122.0",
    os="Windows",
    os_version="10",
    device_type="Desktop",
    screen_resolution="1920x1080",
    timezone="America/Sao_Paulo",
)


class _Clock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture()
def clock():
    return _Clock(FIXED_NOW)


@pytest.fixture()
def tracker(db, notifier, clock):
    return DeviceSessionTracker(DeviceRepository(db), SessionRepository(db), notifier, clock=clock)


async def _count(db, model):
    return (await db.execute(select(func.count()).select_from(model))).scalar_one()


@pytest.mark.asyncio
async def test_new_device_is_recorded_and_alerted(db, user, tracker, dispatcher):
    result = await tracker.track("user-1", "fp-abc", "token-1", DETAILS, ip_address="187.10.20.30")

    assert result.success is True
    assert result.is_new_device is True
    assert result.is_trusted is False
    device = (await db.execute(select(UserDevice))).scalar_one()
    assert device.device_name == "Chrome on Windows"
    assert device.is_trusted is False
    assert dispatcher.alert_types == ["New Device Login"]
    assert "Desktop running Windows with Chrome browser" in dispatcher.alerts[0].alert_details


@pytest.mark.asyncio
async def test_tracking_is_idempotent_per_device(db, user, tracker, clock, dispatcher):
    await tracker.track("user-1", "fp-abc", "token-1", DETAILS)
    clock.now = FIXED_NOW + dt.timedelta(hours=2)
    second = await tracker.track("user-1", "fp-abc", "token-2", DETAILS)

    assert second.is_new_device is False
    assert await _count(db, UserDevice) == 1
    assert await _count(db, UserSession) == 2
    device = (await db.execute(select(UserDevice))).scalar_one()
    await db.refresh(device)
    assert as_utc(device.last_used_at) == FIXED_NOW + dt.timedelta(hours=2)
    assert as_utc(device.first_seen_at) == FIXED_NOW
    assert dispatcher.alert_types == ["New Device Login"]


@pytest.mark.asyncio
async def test_same_token_refreshes_session(db, tracker, clock):
    await tracker.track("user-1", "fp-abc", "token-1", DETAILS)
    clock.now = FIXED_NOW + dt.timedelta(minutes=30)
    await tracker.track("user-1", "fp-abc", "token-1", DETAILS)

    session = (await db.execute(select(UserSession))).scalar_one()
    await db.refresh(session)
    assert as_utc(session.last_active_at) == FIXED_NOW + dt.timedelta(minutes=30)


@pytest.mark.asyncio
async def test_same_fingerprint_other_user_is_new(db, tracker):
    await tracker.track("user-1", "fp-abc", "token-1", DETAILS)
    result = await tracker.track("user-2", "fp-abc", "token-2", DETAILS)
    assert result.is_new_device is True
    assert await _count(db, UserDevice) == 2


@pytest.mark.asyncio
async def test_trusted_flag_is_reported(db, tracker):
    await tracker.track("user-1", "fp-abc", "token-1", DETAILS)
    device = (await db.execute(select(UserDevice))).scalar_one()
    device.is_trusted = True
    await db.commit()

    result = await tracker.track("user-1", "fp-abc", "token-2", DETAILS)
    assert result.is_trusted is True


class _BrokenSessions:
    async def upsert(self, *args, **kwargs):
        from sqlalchemy.exc import OperationalError

        raise OperationalError("INSERT", {}, Exception("locked"))


@pytest.mark.asyncio
async def test_session_failure_is_not_fatal(db, notifier):
    tracker = DeviceSessionTracker(DeviceRepository(db), _BrokenSessions(), notifier, clock=lambda: FIXED_NOW)
    result = await tracker.track("user-1", "fp-abc", "token-1", DETAILS)
    assert result.success is True
    assert result.is_new_device is True
