import datetime as dt

import httpx
import pytest
from jose import jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.deps import (
    get_alert_dispatcher,
    get_db_session,
    get_geolocation_resolver,
    get_redis,
    get_settings_dep,
)
from app.main import get_application
from app.models.audit import SecurityAuditLog
from app.models.geofencing import GeofencingRule
from app.services.geolocation import GeolocationResolver
from app.services.tokens import mark_revoked

from tests.factories import FIXED_NOW

GEO_BODY = {"city": "Berlin", "country_code": "DE", "country_name": "Germany", "region": "Berlin"}


def _bearer(settings, sub="user-1"):
    now = dt.datetime.now(dt.timezone.utc)
    return jwt.encode(
        {
            "sub": sub,
            "email": "ana@example.com",
            "exp": int((now + dt.timedelta(minutes=5)).timestamp()),
            "aud": settings.jwt_audience,
            "iss": settings.jwt_issuer,
        },
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )


@pytest.fixture()
def app(engine, settings, redis, dispatcher):
    app = get_application()
    session_factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    async def _db():
        async with session_factory() as session:
            yield session

    async def _redis():
        yield redis

    async def _settings():
        return settings

    geo_transport = httpx.MockTransport(lambda request: httpx.Response(200, json=GEO_BODY))

    app.dependency_overrides[get_db_session] = _db
    app.dependency_overrides[get_redis] = _redis
    app.dependency_overrides[get_settings_dep] = _settings
    app.dependency_overrides[get_alert_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_geolocation_resolver] = lambda: GeolocationResolver(
        settings, client=httpx.AsyncClient(transport=geo_transport)
    )
    return app


@pytest.fixture()
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.mark.asyncio
async def test_score_requires_auth(client):
    resp = await client.get("/v1/security/score")
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_score_for_authenticated_user(client, settings):
    resp = await client.get("/v1/security/score", headers={"Authorization": f"Bearer {_bearer(settings)}"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["maxScore"] == 100
    assert set(body["breakdown"]) == {"twoFactor", "passwordAge", "trustedDevices", "activeSessions"}
    assert resp.headers["X-Frame-Options"] == "DENY"


@pytest.mark.asyncio
async def test_revoked_session_is_rejected(client, settings, redis):
    token = _bearer(settings)
    await mark_revoked(redis, [token], ttl_seconds=60)
    resp = await client.get("/v1/security/score", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Session revoked"


@pytest.mark.asyncio
async def test_geofencing_check_allows_without_rules(client):
    resp = await client.post("/v1/geofencing/check", json={"userId": "user-1", "countryCode": "BR"})
    assert resp.status_code == 200
    assert resp.json() == {"allowed": True}


@pytest.mark.asyncio
async def test_geofencing_check_blocks(client, engine):
    session_factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    async with session_factory() as session:
        session.add(GeofencingRule(rule_name="No DE", rule_type="block", country_codes=["DE"], created_at=FIXED_NOW))
        await session.commit()

    resp = await client.post(
        "/v1/geofencing/check",
        json={"userId": "user-1", "countryCode": "DE", "city": "Berlin", "country": "Germany"},
    )
    assert resp.status_code == 200
    assert resp.json() == {
        "allowed": False,
        "reason": "Access from Germany is not permitted",
        "ruleMatched": "No DE",
    }


@pytest.mark.asyncio
async def test_geofencing_check_missing_location(client):
    resp = await client.post("/v1/geofencing/check", json={"userId": "user-1"})
    assert resp.status_code == 200
    assert resp.json() == {"allowed": True, "reason": "Location could not be determined"}


@pytest.mark.asyncio
async def test_geolocation_uses_forwarded_ip(client):
    resp = await client.post(
        "/v1/geolocation", json={"ipAddress": "current"}, headers={"X-Forwarded-For": "85.214.1.1, 10.0.0.1"}
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["countryCode"] == "DE"
    assert body["isHighRisk"] is False
    assert "degraded" not in body


@pytest.mark.asyncio
async def test_log_event_records_client_context(client, engine):
    resp = await client.post(
        "/v1/events",
        json={"userId": "user-1", "eventType": "login", "eventDetails": {"method": "password"}, "success": True},
        headers={"X-Real-IP": "85.214.1.1", "User-Agent": "pytest-agent"},
    )
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "alertsSent": 0}

    session_factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    async with session_factory() as session:
        row = (await session.execute(select(SecurityAuditLog))).scalar_one()
    assert row.ip_address == "85.214.1.1"
    assert row.user_agent == "pytest-agent"
    assert row.country_code == "DE"


@pytest.mark.asyncio
async def test_log_event_falls_back_to_token_subject(client, engine, settings):
    resp = await client.post(
        "/v1/events",
        json={"eventType": "logout", "success": True},
        headers={"Authorization": f"Bearer {_bearer(settings, sub='user-7')}"},
    )
    assert resp.status_code == 200
    session_factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    async with session_factory() as session:
        row = (await session.execute(select(SecurityAuditLog))).scalar_one()
    assert row.user_id == "user-7"


@pytest.mark.asyncio
async def test_track_device_twice(client):
    payload = {
        "userId": "user-1",
        "deviceFingerprint": "fp-abc",
        "sessionToken": "token-1",
        "deviceInfo": {"browser": "Firefox", "os": "Linux", "deviceType": "Desktop"},
    }
    first = await client.post("/v1/devices/track", json=payload)
    second = await client.post("/v1/devices/track", json={**payload, "sessionToken": "token-2"})
    assert first.json() == {"success": True, "isNewDevice": True, "isTrusted": False}
    assert second.json() == {"success": True, "isNewDevice": False, "isTrusted": False}


@pytest.mark.asyncio
async def test_fingerprint_endpoint(client):
    env = {"userAgent": "Mozilla/5.0 (X11; Linux x86_64; rv:123.0) Gecko/20100101 Firefox/123.0",
           "screenWidth": 1280, "screenHeight": 800}
    first = await client.post("/v1/devices/fingerprint", json=env)
    second = await client.post("/v1/devices/fingerprint", json=env)
    assert first.status_code == 200
    assert first.json()["fingerprint"] == second.json()["fingerprint"]
    assert first.json()["browser"] == "Firefox"
    assert first.json()["screenResolution"] == "1280x800"


@pytest.mark.asyncio
async def test_revoke_requires_target(client, settings):
    resp = await client.post(
        "/v1/sessions/revoke", json={}, headers={"Authorization": f"Bearer {_bearer(settings)}"}
    )
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_password_expiry_without_profile(client, settings):
    resp = await client.get("/v1/password/expiry", headers={"Authorization": f"Bearer {_bearer(settings)}"})
    assert resp.status_code == 200
    assert resp.json() == {"isExpired": False, "daysUntilExpiry": None}


@pytest.mark.asyncio
async def test_audit_write_failure_returns_error_body(app, client):
    from app.core.deps import get_event_logger
    from app.core.errors import AuditLogWriteError

    class _Broken:
        async def log(self, *args, **kwargs):
            raise AuditLogWriteError("disk full")

    app.dependency_overrides[get_event_logger] = lambda: _Broken()
    resp = await client.post("/v1/events", json={"eventType": "login", "success": True})
    assert resp.status_code == 500
    assert resp.json() == {"error": "Failed to log event"}


@pytest.mark.asyncio
async def test_password_changed_queues_email(client, settings, monkeypatch):
    from app.api.v1 import password

    queued = []

    class _Task:
        @staticmethod
        def delay(**kwargs):
            queued.append(kwargs)

    monkeypatch.setattr(password, "send_password_change_email", _Task)
    resp = await client.post(
        "/v1/password/changed",
        headers={"Authorization": f"Bearer {_bearer(settings)}", "X-Forwarded-For": "85.214.1.1"},
    )
    assert resp.json() == {"success": True}
    assert len(queued) == 1
    assert queued[0]["email"] == "ana@example.com"
    assert queued[0]["ip_address"] == "85.214.1.1"


@pytest.mark.asyncio
async def test_two_factor_setup_requires_auth(client):
    resp = await client.post("/v1/2fa/setup")
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_geofencing_check_without_user_id(client):
    resp = await client.post("/v1/geofencing/check", json={"countryCode": "BR"})
    assert resp.status_code == 200
    assert resp.json() == {"allowed": True}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "content",
    [b"not json", b"", b"[1, 2]", b'{"userId": "user-1", "countryCode": 55}'],
)
async def test_geofencing_check_malformed_body_fails_open(client, content):
    resp = await client.post(
        "/v1/geofencing/check", content=content, headers={"Content-Type": "application/json"}
    )
    assert resp.status_code == 200
    assert resp.json() == {"allowed": True, "reason": "Error checking geofencing rules"}


@pytest.mark.asyncio
async def test_log_event_accepts_null_details(client, engine):
    resp = await client.post("/v1/events", json={"eventType": "logout", "eventDetails": None, "success": True})
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "alertsSent": 0}

    session_factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    async with session_factory() as session:
        row = (await session.execute(select(SecurityAuditLog))).scalar_one()
    assert row.event_details == {}
