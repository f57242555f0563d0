from fastapi import APIRouter, Depends

from app.core.deps import ClientContext, get_client_context, get_device_tracker
from app.schemas.device import DeviceEnvironment, DeviceInfo, TrackDeviceIn, TrackDeviceOut
from app.services.devices import DeviceSessionTracker
from app.services.fingerprint import compute_fingerprint

router = APIRouter()


@router.post("/track", response_model=TrackDeviceOut)
async def track_device(
    payload: TrackDeviceIn,
    client: ClientContext = Depends(get_client_context),
    tracker: DeviceSessionTracker = Depends(get_device_tracker),
):
    return await tracker.track(
        payload.user_id,
        payload.device_fingerprint,
        payload.session_token,
        payload.device_info,
        ip_address=client.ip_address,
    )


@router.post("/fingerprint", response_model=DeviceInfo)
async def fingerprint(env: DeviceEnvironment):
    return compute_fingerprint(env)
