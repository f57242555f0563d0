import datetime as dt
import logging
from typing import Callable

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.core.clock import utcnow
from app.repositories.devices import DeviceRepository, SessionRepository
from app.schemas.device import DeviceDetails, TrackDeviceOut
from app.services.alerts import AlertNotifier

logger = logging.getLogger(__name__)


class DeviceSessionTracker:
    def __init__(
        self,
        devices: DeviceRepository,
        sessions: SessionRepository,
        notifier: AlertNotifier,
        clock: Callable[[], dt.datetime] = utcnow,
    ):
        self.devices = devices
        self.sessions = sessions
        self.notifier = notifier
        self.clock = clock

    async def track(
        self,
        user_id: str,
        device_fingerprint: str,
        session_token: str,
        device_info: DeviceDetails,
        ip_address: str = "unknown",
    ) -> TrackDeviceOut:
        """
        Record that ``user_id`` is active on this device and session.

        Device lookup/insert errors propagate; the session upsert is best effort.
        """
        now = self.clock()
        is_new_device = False

        device = await self.devices.get_by_fingerprint(user_id, device_fingerprint)
        if device is None:
            try:
                device = await self.devices.insert(user_id, device_fingerprint, device_info, now)
                is_new_device = True
            except IntegrityError:
                # a concurrent login created it first
                device = await self.devices.get_by_fingerprint(user_id, device_fingerprint)
                if device is None:
                    raise
                await self.devices.touch(device, now)
        else:
            await self.devices.touch(device, now)

        device_id = device.id
        is_trusted = bool(device.is_trusted)

        if is_new_device:
            logger.info("New device %s for user %s", device_id, user_id)
            await self.notifier.notify(
                user_id,
                "New Device Login",
                f"A login was detected from a new device: {device_info.device_type} running "
                f"{device_info.os} with {device_info.browser} browser. "
                "If this wasn't you, please secure your account immediately.",
                ip_address,
            )

        if session_token:
            try:
                await self.sessions.upsert(user_id, device_id, session_token, now)
            except SQLAlchemyError:
                logger.exception("Error creating/updating session for device %s", device_id)
        else:
            logger.warning("track called without a session token (user=%s)", user_id)

        return TrackDeviceOut(success=True, is_new_device=is_new_device, is_trusted=is_trusted)
