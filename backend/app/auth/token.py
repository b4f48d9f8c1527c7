"""
JWT Token Verification — OIDC-Compatible

Any provider that signs RS256 tokens and publishes a JWKS works (Clerk,
Auth0, Cognito, Keycloak):

    Issuer:   AUTH_ISSUER
    JWKS URI: AUTH_JWKS_URL  or  <issuer>/.well-known/jwks.json
    Claims:   sub (required), email (optional), exp, iss, aud (optional)

We fetch the public JWKS once and cache it (TTL: 1 hour). If a kid is
missing we force-refresh — handles key rotation transparently.

The verified `sub` is the caller's opaque external id; the local users row
is created lazily from it on first upload.
"""

from __future__ import annotations

import logging
import time
from typing import Annotated, Optional

import httpx
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwk, jwt
from pydantic import BaseModel

from app.core.config import settings
from app.schemas.documents import ApiErrors

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# HTTP Bearer extractor — missing header handled below as a structured 401
# ---------------------------------------------------------------------------

bearer_scheme = HTTPBearer(auto_error=False)


# ---------------------------------------------------------------------------
# Verified token payload
# ---------------------------------------------------------------------------

class TokenPayload(BaseModel):
    """Parsed, validated JWT claims — passed to route handlers."""
    sub:   str             # provider user ID
    email: Optional[str] = None
    exp:   int
    iss:   str


def _unauthorized(reason: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=ApiErrors.unauthorized(reason).model_dump(),
        headers={"WWW-Authenticate": "Bearer"},
    )


# ---------------------------------------------------------------------------
# JWKS cache (in-memory, TTL-based)
# ---------------------------------------------------------------------------

_JWKS_CACHE: dict[str, tuple[dict, float]] = {}   # jwks_url → (jwks, fetched_at)
_JWKS_TTL   = 3600   # 1 hour


async def _fetch_jwks(jwks_url: str) -> dict:
    """Fetch JWKS from the provider's endpoint with TTL caching."""
    now = time.monotonic()
    cached = _JWKS_CACHE.get(jwks_url)
    if cached and (now - cached[1]) < _JWKS_TTL:
        return cached[0]

    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            resp = await client.get(jwks_url)
            resp.raise_for_status()
            jwks = resp.json()
    except httpx.HTTPError as exc:
        logger.error("JWKS fetch failed | url=%s error=%s", jwks_url, exc)
        raise _unauthorized("Unable to verify token signature") from exc

    _JWKS_CACHE[jwks_url] = (jwks, now)
    logger.debug("JWKS refreshed: %s", jwks_url)
    return jwks


async def _get_signing_key(token: str):
    """
    Extract kid from token header, fetch matching public key from JWKS.
    Force-refreshes the cache if the kid is not found (handles key rotation).
    """
    try:
        header = jwt.get_unverified_header(token)
    except JWTError as exc:
        raise _unauthorized("Invalid token header") from exc

    kid = header.get("kid")
    jwks_url = settings.jwks_url

    for attempt in range(2):   # 0 = cached, 1 = force refresh
        if attempt == 1:
            _JWKS_CACHE.pop(jwks_url, None)

        jwks = await _fetch_jwks(jwks_url)
        for key_data in jwks.get("keys", []):
            if key_data.get("kid") == kid:
                return jwk.construct(key_data, algorithm="RS256")

    raise _unauthorized(f"Unable to find signing key for kid={kid}")


# ---------------------------------------------------------------------------
# Main verification function
# ---------------------------------------------------------------------------

async def verify_token(token: str) -> TokenPayload:
    """
    Verify a JWT token:
      1. Fetch matching public key from JWKS (cached).
      2. Verify signature, expiry, issuer and (when configured) audience.
      3. Return a typed TokenPayload.
    """
    signing_key = await _get_signing_key(token)

    try:
        claims = jwt.decode(
            token,
            signing_key,
            algorithms=["RS256"],
            audience=settings.auth_audience or None,
            issuer=settings.auth_issuer,
            options={
                "verify_exp": True,
                "verify_aud": bool(settings.auth_audience),
            },
        )
    except ExpiredSignatureError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=ApiErrors.token_expired().model_dump(),
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc
    except JWTError as exc:
        raise _unauthorized(f"Invalid token: {exc}") from exc

    if not claims.get("sub"):
        raise _unauthorized("Token missing sub claim")

    return TokenPayload(
        sub=claims["sub"],
        email=claims.get("email"),
        exp=claims["exp"],
        iss=claims["iss"],
    )


# ---------------------------------------------------------------------------
# FastAPI dependency
# ---------------------------------------------------------------------------

async def get_current_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)],
) -> TokenPayload:
    """
    FastAPI dependency that extracts and validates the Bearer token.

        @router.get("/documents")
        async def list_docs(user: TokenPayload = Depends(get_current_user)):
            ...
    """
    if credentials is None or not credentials.credentials:
        raise _unauthorized("Missing or invalid Authorization header.")
    return await verify_token(credentials.credentials)
