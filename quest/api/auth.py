"""Clerk session auth — RS256 JWTs verified against the instance JWKS."""
from typing import Any

import httpx
import structlog
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

log = structlog.get_logger()

security = HTTPBearer(auto_error=False)

_jwks_cache: dict[str, Any] | None = None


async def fetch_jwks(refresh: bool = False) -> dict[str, Any]:
    """Clerk JWKS, fetched once per process unless `refresh` is set."""
    global _jwks_cache
    if _jwks_cache is not None and not refresh:
        return _jwks_cache

    from config.settings import get_settings
    settings = get_settings()
    if not settings.clerk_jwks_url:
        raise RuntimeError("CLERK_JWKS_URL is not configured")

    async with httpx.AsyncClient(timeout=10.0) as client:
        resp = await client.get(settings.clerk_jwks_url)
        resp.raise_for_status()
        _jwks_cache = resp.json()
    log.info("auth.jwks.fetched", keys=len(_jwks_cache.get("keys", [])))
    return _jwks_cache


def _find_key(jwks: dict[str, Any], kid: str | None) -> dict[str, Any] | None:
    for key in jwks.get("keys", []):
        if key.get("kid") == kid:
            return key
    return None


async def verify_session_token(token: str) -> str:
    """Return the Clerk user id (`sub`) for a valid session token.

    Raises HTTPException(401) on any verification failure.
    """
    from config.settings import get_settings
    settings = get_settings()

    try:
        header = jwt.get_unverified_header(token)
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")

    try:
        jwks = await fetch_jwks()
        key = _find_key(jwks, header.get("kid"))
        if key is None:
            # Clerk rotated its signing key
            key = _find_key(await fetch_jwks(refresh=True), header.get("kid"))
    except (httpx.HTTPError, RuntimeError) as exc:
        log.error("auth.jwks.failed", error=str(exc))
        raise HTTPException(status_code=401, detail="Unable to verify token")
    if key is None:
        raise HTTPException(status_code=401, detail="Unknown signing key")

    try:
        payload = jwt.decode(
            token,
            key,
            algorithms=["RS256"],
            issuer=settings.clerk_issuer or None,
            options={"verify_aud": False},
        )
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token")
    return user_id


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> str:
    if credentials is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return await verify_session_token(credentials.credentials)
