"""
Bearer-token authentication against the external identity provider.

Handles:
- HS256 verification with a shared secret (development / tests)
- RS256 verification against the provider's JWKS, with issuer/audience checks
- FastAPI dependencies for the current user and admin-only routes
- Test helpers for deterministic tokens (no network)
"""
import json
import logging
import time
from typing import Any, Callable, Dict, Optional

import httpx
import jwt
from fastapi import Depends, Request
from jwt.algorithms import RSAAlgorithm

from roundtable.core.config import Settings, settings as default_settings
from roundtable.core.database import Database, get_database
from roundtable.core.errors import PermissionError, UnauthenticatedError
from roundtable.models.user import AuthenticatedUser, User

logger = logging.getLogger("roundtable.auth")

# JWKS override (tests) and cache keyed by jwks_url
_jwks_provider_override: Optional[Callable[[str], Dict[str, Any]]] = None
_jwks_cache: Dict[str, Dict[str, Any]] = {}


def set_jwks_provider_for_tests(provider: Optional[Callable[[str], Dict[str, Any]]]) -> None:
    """Set or clear JWKS provider override for deterministic testing (no network)."""
    global _jwks_provider_override
    _jwks_provider_override = provider
    _jwks_cache.clear()


def _default_fetch_jwks(jwks_url: str) -> Dict[str, Any]:
    response = httpx.get(jwks_url, timeout=5.0)
    response.raise_for_status()
    return response.json()


def get_jwks(jwks_url: str) -> Dict[str, Any]:
    """Fetch JWKS using override (tests) or default fetcher. Cached per url."""
    if jwks_url in _jwks_cache:
        return _jwks_cache[jwks_url]

    if _jwks_provider_override:
        jwks = _jwks_provider_override(jwks_url)
    else:
        jwks = _default_fetch_jwks(jwks_url)

    _jwks_cache[jwks_url] = jwks
    return jwks


def _decode(token: str, cfg: Settings) -> Dict[str, Any]:
    if cfg.AUTH_JWT_SECRET:
        return jwt.decode(
            token,
            cfg.AUTH_JWT_SECRET,
            algorithms=["HS256"],
            options={"verify_signature": True, "verify_exp": True, "verify_aud": False},
        )

    if not cfg.AUTH_JWKS_URL and not cfg.AUTH_ISSUER:
        raise jwt.InvalidTokenError("AUTH_ISSUER or AUTH_JWKS_URL must be configured for RS256 verification")

    jwks_url = cfg.AUTH_JWKS_URL or f"{cfg.AUTH_ISSUER.rstrip('/')}/.well-known/jwks.json"
    kid = jwt.get_unverified_header(token).get("kid")
    if not kid:
        raise jwt.InvalidTokenError("Token missing 'kid' in header")

    matching_key = next((key for key in get_jwks(jwks_url).get("keys", []) if key.get("kid") == kid), None)
    if not matching_key:
        raise jwt.InvalidTokenError(f"Key ID '{kid}' not found in JWKS")

    public_key = RSAAlgorithm.from_jwk(json.dumps(matching_key))
    return jwt.decode(
        token,
        public_key,
        algorithms=["RS256"],
        audience=cfg.AUTH_AUDIENCE,
        issuer=cfg.AUTH_ISSUER,
        options={
            "verify_signature": True,
            "verify_exp": True,
            "verify_aud": bool(cfg.AUTH_AUDIENCE),
        },
    )


def verify_token(token: str, settings_obj: Optional[Settings] = None) -> AuthenticatedUser:
    """
    Verify a bearer token and return the identity it carries.

    Raises:
        UnauthenticatedError: signature, expiry, issuer or audience check failed
    """
    cfg = settings_obj or default_settings
    try:
        claims = _decode(token, cfg)
    except jwt.ExpiredSignatureError:
        raise UnauthenticatedError("Invalid or expired token")
    except (jwt.PyJWTError, httpx.HTTPError, ValueError) as e:
        logger.debug(f"Token verification failed: {e}")
        raise UnauthenticatedError("Invalid or expired token")

    uid = claims.get("sub") or claims.get("user_id")
    if not uid:
        raise UnauthenticatedError("Invalid or expired token")

    return AuthenticatedUser(uid=uid, email=claims.get("email"), name=claims.get("name"))


def _request_settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or default_settings


def get_current_user(request: Request, db: Database = Depends(get_database)) -> AuthenticatedUser:
    """
    Authenticate the request from its `Authorization: Bearer <token>` header.

    The profile document is created on first login. Kept synchronous so
    FastAPI runs it in the threadpool: the JWKS fetch and the profile upsert
    both block.

    Raises:
        UnauthenticatedError: header missing or token invalid
    """
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise UnauthenticatedError("Missing or invalid authorization header")

    user = verify_token(auth_header[7:], _request_settings(request))

    from roundtable.features.users.service import ensure_user
    try:
        ensure_user(db, user.uid, email=user.email, name=user.name)
    except Exception as e:
        # Don't block auth if the profile upsert fails
        logger.warning(f"Failed to upsert user {user.uid}: {e}")

    return user


def get_current_user_id(user: AuthenticatedUser = Depends(get_current_user)) -> str:
    return user.uid


def require_admin(
    user: AuthenticatedUser = Depends(get_current_user),
    db: Database = Depends(get_database),
) -> User:
    """Admin routes: the caller's own profile must be active and flagged admin."""
    from roundtable.features.users.service import get_user

    profile = get_user(db, user.uid)
    if not profile or not (profile.is_admin and profile.is_active):
        raise PermissionError("Unauthorized: Admin access required")
    return profile


# ============================================================================
# Test Helpers (deterministic, no network)
# ============================================================================

def create_test_jwt(
    sub: str = "test_user_123",
    email: Optional[str] = "test@example.com",
    name: Optional[str] = None,
    exp_minutes: int = 60,
    secret: str = "test-secret-key",
    algorithm: str = "HS256",
    private_key: Optional[str] = None,
    kid: Optional[str] = None,
    issuer: Optional[str] = None,
    audience: Optional[str] = None,
) -> str:
    """
    Create a signed JWT for tests.
    Supports HS256 (default) and RS256 (for JWKS-based tests).
    """
    now = int(time.time())
    payload = {
        "sub": sub,
        "email": email,
        "iat": now,
        "exp": now + (exp_minutes * 60),
    }
    if name:
        payload["name"] = name
    if issuer:
        payload["iss"] = issuer
    if audience:
        payload["aud"] = audience

    headers = {"kid": kid} if kid else None
    key = private_key if algorithm == "RS256" and private_key else secret
    return jwt.encode(payload, key, algorithm=algorithm, headers=headers)
