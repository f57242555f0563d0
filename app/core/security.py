import datetime as dt
from typing import Any

import httpx
from fastapi import HTTPException, status
from jose import jwt, JWTError
from pydantic import BaseModel, ValidationError

from app.core.config import Settings


class TokenClaims(BaseModel):
    """Claims issued by the identity provider; only ``sub`` is required."""

    sub: str
    exp: int
    email: str | None = None
    role: str | None = None
    session_id: str | None = None
    aud: str | list[str] | None = None
    iss: str | None = None
    nbf: int | None = None
    iat: int | None = None
    kid: str | None = None


class JWKSCache:
    """Very small in-process JWKS cache; relies on signed JWKS endpoint."""

    def __init__(self):
        self.cached_at: dt.datetime | None = None
        self.jwks: dict[str, Any] | None = None

    def is_fresh(self, ttl_seconds: int) -> bool:
        return self.cached_at is not None and (dt.datetime.now(dt.timezone.utc) - self.cached_at).total_seconds() < ttl_seconds

    def load(self, settings: Settings) -> dict[str, Any] | None:
        if settings.jwks_url is None:
            return None
        if self.is_fresh(settings.jwks_cache_ttl_seconds) and self.jwks:
            return self.jwks
        try:
            resp = httpx.get(settings.jwks_url, timeout=2.0)
            resp.raise_for_status()
            data = resp.json()
            if "keys" not in data:
                raise ValueError("JWKS missing keys")
        except (httpx.HTTPError, ValueError) as exc:
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Unable to fetch JWKS") from exc
        self.cached_at = dt.datetime.now(dt.timezone.utc)
        self.jwks = data
        return data


jwks_cache = JWKSCache()


def _select_key(kid: str | None, settings: Settings) -> dict[str, Any] | str:
    # Prefer JWKS endpoint
    if settings.jwks_url:
        jwks = jwks_cache.load(settings)
        if jwks:
            for key in jwks.get("keys", []):
                if kid and key.get("kid") == kid:
                    return key
            if not kid and jwks.get("keys"):
                return jwks["keys"][0]
            if kid:
                raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown KID")

    if settings.jwt_public_key:
        return settings.jwt_public_key
    if settings.jwt_secret_key and settings.jwt_algorithm.startswith("HS"):
        return settings.jwt_secret_key

    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="No verification key available")


def _get_leeway(settings: Settings) -> int:
    return max(0, settings.jwt_clock_skew_seconds)


def verify_token(token: str, settings: Settings) -> TokenClaims:
    """
    Verify an identity-provider JWT; enforce aud/iss when configured and nbf/iat skew.
    """
    try:
        header = jwt.get_unverified_header(token)
    except JWTError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token header") from exc

    key = _select_key(header.get("kid"), settings)
    options = {
        "verify_aud": settings.jwt_audience is not None,
        "verify_iss": settings.jwt_issuer is not None,
        "leeway": _get_leeway(settings),
    }
    try:
        payload = jwt.decode(
            token,
            key,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
            options=options,
        )
        claims = TokenClaims(**{**payload, "kid": header.get("kid")})
    except (JWTError, ValidationError) as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token verification failed") from exc

    now_ts = int(dt.datetime.now(dt.timezone.utc).timestamp())
    leeway = _get_leeway(settings)
    if claims.nbf and claims.nbf - leeway > now_ts:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token not yet valid")
    if claims.iat and claims.iat - leeway > now_ts:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token issued in the future")

    return claims
