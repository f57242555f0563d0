from typing import Optional
from pydantic import Field

from app.schemas.base import CamelModel


class DeviceEnvironment(CamelModel):
    user_agent: str = ""
    language: str = ""
    screen_width: int = 0
    screen_height: int = 0
    color_depth: int = 0
    timezone: str = ""
    timezone_offset: int = 0
    session_storage: bool = False
    local_storage: bool = False
    hardware_concurrency: Optional[int] = None
    device_memory: Optional[float] = None


class DeviceDetails(CamelModel):
    browser: str = "Unknown"
    browser_version: str = "Unknown"
    os: str = "Unknown"
    os_version: str = "Unknown"
    device_type: str = "Desktop"
    screen_resolution: str = ""
    timezone: str = ""


class DeviceInfo(DeviceDetails):
    fingerprint: str


class TrackDeviceIn(CamelModel):
    user_id: str = Field(..., max_length=64)
    device_fingerprint: str = Field(..., min_length=1, max_length=128)
    session_token: str = Field(default="", max_length=2048)
    device_info: DeviceDetails


class TrackDeviceOut(CamelModel):
    success: bool = True
    is_new_device: bool
    is_trusted: bool
