import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")

import pytest
from fakeredis import FakeAsyncRedis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import Settings
from app.db.session import make_engine
from app.models import audit, device, geofencing, profile  # noqa: F401  register tables
from app.models.base import Base
from app.models.profile import Profile
from app.repositories.profiles import ProfileRepository
from app.services.alerts import AlertNotifier

from tests.factories import FIXED_NOW, RecordingDispatcher


@pytest.fixture(scope="session")
def settings() -> Settings:
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        redis_url="redis://localhost:6379/0",
        jwt_secret_key="test-secret",
        jwt_algorithm="HS256",
        jwt_issuer="https://issuer.test",
        jwt_audience="authenticated",
        jwt_clock_skew_seconds=30,
        resend_api_key="re_test",
        geolocation_api_url="https://geo.test",
    )


@pytest.fixture()
async def engine():
    engine = make_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture()
async def db(engine):
    session_factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    async with session_factory() as session:
        yield session


@pytest.fixture()
async def redis():
    client = FakeAsyncRedis(decode_responses=True)
    try:
        yield client
    finally:
        await client.flushall()
        await client.aclose()


@pytest.fixture()
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture()
def notifier(db, dispatcher) -> AlertNotifier:
    return AlertNotifier(ProfileRepository(db), dispatcher, clock=lambda: FIXED_NOW)


@pytest.fixture()
async def user(db) -> Profile:
    record = Profile(id="user-1", email="ana@example.com", full_name="Ana Silva")
    db.add(record)
    await db.commit()
    return record
