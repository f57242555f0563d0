from fastapi import APIRouter
from app.api.v1 import devices, events, geofencing, geolocation, password, security, sessions, two_factor

api_router = APIRouter(prefix="/v1")
api_router.include_router(geolocation.router, prefix="/geolocation", tags=["geolocation"])
api_router.include_router(geofencing.router, prefix="/geofencing", tags=["geofencing"])
api_router.include_router(events.router, prefix="/events", tags=["events"])
api_router.include_router(devices.router, prefix="/devices", tags=["devices"])
api_router.include_router(security.router, prefix="/security", tags=["security"])
api_router.include_router(sessions.router, prefix="/sessions", tags=["sessions"])
api_router.include_router(password.router, prefix="/password", tags=["password"])
api_router.include_router(two_factor.router, prefix="/2fa", tags=["2fa"])
