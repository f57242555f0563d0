from collections.abc import AsyncGenerator
from dataclasses import dataclass

from fastapi import Depends, Request
from redis import asyncio as aioredis
from redis.asyncio import ConnectionPool, Redis
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings, Settings
from app.db.session import async_session
from app.repositories.audit import AuditLogRepository
from app.repositories.devices import DeviceRepository, SessionRepository
from app.repositories.geofencing import GeofencingRepository
from app.repositories.profiles import ProfileRepository
from app.services.alerts import AlertDispatcher, AlertNotifier, CeleryAlertDispatcher
from app.services.audit import SecurityEventLogger
from app.services.detector import SuspiciousActivityDetector
from app.services.devices import DeviceSessionTracker
from app.services.geofencing import GeofencingEvaluator
from app.services.geolocation import GeolocationResolver
from app.services.score import SecurityScoreCalculator
from app.services.two_factor import TwoFactorService

_redis_pool: ConnectionPool | None = None
_alert_dispatcher = CeleryAlertDispatcher()


@dataclass(frozen=True)
class ClientContext:
    ip_address: str
    user_agent: str


async def get_settings_dep() -> Settings:
    return get_settings()


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    async with async_session() as session:
        yield session


def _ensure_redis_pool(url: str) -> ConnectionPool:
    global _redis_pool
    settings = get_settings()
    if not url.startswith("rediss://") and settings.environment != "development":
        raise RuntimeError("Redis URL must use TLS (rediss://) for production safety")
    if _redis_pool is None:
        _redis_pool = ConnectionPool.from_url(
            url,
            max_connections=64,
            decode_responses=True,
            socket_timeout=1.0,
            socket_connect_timeout=1.0,
            health_check_interval=30,
        )
    return _redis_pool


async def get_redis(settings: Settings = Depends(get_settings_dep)):
    pool = _ensure_redis_pool(settings.redis_url)
    client: Redis = aioredis.Redis(connection_pool=pool)
    try:
        yield client
    finally:
        # do not close the pool; just disconnect this client object
        await client.aclose()


def get_client_context(request: Request) -> ClientContext:
    forwarded = request.headers.get("x-forwarded-for")
    ip_address = (
        (forwarded.split(",")[0].strip() if forwarded else None)
        or request.headers.get("x-real-ip")
        or "unknown"
    )
    return ClientContext(ip_address=ip_address, user_agent=request.headers.get("user-agent") or "unknown")


def get_alert_dispatcher() -> AlertDispatcher:
    return _alert_dispatcher


def get_geolocation_resolver(settings: Settings = Depends(get_settings_dep)) -> GeolocationResolver:
    return GeolocationResolver(settings)


def get_alert_notifier(
    session: AsyncSession = Depends(get_db_session),
    dispatcher: AlertDispatcher = Depends(get_alert_dispatcher),
) -> AlertNotifier:
    return AlertNotifier(ProfileRepository(session), dispatcher)


def get_geofencing_evaluator(
    session: AsyncSession = Depends(get_db_session),
    notifier: AlertNotifier = Depends(get_alert_notifier),
) -> GeofencingEvaluator:
    return GeofencingEvaluator(GeofencingRepository(session), notifier)


def get_event_logger(
    session: AsyncSession = Depends(get_db_session),
    resolver: GeolocationResolver = Depends(get_geolocation_resolver),
    notifier: AlertNotifier = Depends(get_alert_notifier),
) -> SecurityEventLogger:
    audit = AuditLogRepository(session)
    return SecurityEventLogger(audit, resolver, SuspiciousActivityDetector(audit), notifier)


def get_device_tracker(
    session: AsyncSession = Depends(get_db_session),
    notifier: AlertNotifier = Depends(get_alert_notifier),
) -> DeviceSessionTracker:
    return DeviceSessionTracker(DeviceRepository(session), SessionRepository(session), notifier)


def get_score_calculator(session: AsyncSession = Depends(get_db_session)) -> SecurityScoreCalculator:
    return SecurityScoreCalculator(ProfileRepository(session), DeviceRepository(session), SessionRepository(session))


def get_two_factor_service(
    session: AsyncSession = Depends(get_db_session),
    settings: Settings = Depends(get_settings_dep),
) -> TwoFactorService:
    return TwoFactorService(ProfileRepository(session), settings)
