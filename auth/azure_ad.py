# auth/azure_ad.py
"""
Azure AD validation of the signed-in user's bearer token.

The validated token becomes the user assertion for the On-Behalf-Of
exchange. Tokens are validated for:
- Signature (RSA with Azure AD public keys)
- Expiration
- Issuer (Azure AD tenant, v1 or v2)
- Audience (this client's app ID or app ID URI)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, List, Optional, Set

import jwt
from fastapi import HTTPException, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import PyJWKClient

from .config import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserContext:
    claims: Dict = field(default_factory=dict)
    assertion: str = ""

    @property
    def display_name(self) -> Optional[str]:
        return self.claims.get("name") or self.claims.get("preferred_username") or self.claims.get("upn")


# ======================================================
# CONFIGURATION
# ======================================================

def get_valid_audiences(settings: Settings) -> Set[str]:
    if not settings.client_id:
        return set()
    return {settings.client_id, f"api://{settings.client_id}"}


def get_valid_issuers(settings: Settings) -> Set[str]:
    if not settings.tenant_id:
        return set()
    return {
        f"https://sts.windows.net/{settings.tenant_id}/",  # v1 tokens
        f"{settings.instance.rstrip('/')}/{settings.tenant_id}/v2.0",  # v2 tokens
    }


def jwks_url(settings: Settings) -> str:
    return f"{settings.instance.rstrip('/')}/{settings.tenant_id}/discovery/v2.0/keys"


# ======================================================
# JWT VALIDATION
# ======================================================

@lru_cache(maxsize=4)
def get_jwks_client(url: str) -> PyJWKClient:
    """
    Cached JWKS client for fetching Azure AD public keys.
    Keys are cached to avoid repeated network calls.
    """
    return PyJWKClient(url, cache_keys=True, max_cached_keys=16)


def _unauthorized(error: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=401,
        detail={"error": error, "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


def validate_user_token(token: str, settings: Settings) -> Dict:
    """
    Validate an Azure AD JWT token.

    Returns:
        Decoded token payload (dict with claims)

    Raises:
        HTTPException: 500 if this service is misconfigured, 401 if the token is invalid
    """
    valid_audiences = get_valid_audiences(settings)
    valid_issuers = get_valid_issuers(settings)

    if not valid_audiences or not valid_issuers:
        raise HTTPException(
            status_code=500,
            detail={
                "error": "server_misconfiguration",
                "message": "Azure AD authentication not configured (AZURE_CLIENT_ID and AZURE_TENANT_ID required)",
            },
        )

    try:
        kid = jwt.get_unverified_header(token).get("kid")
    except jwt.DecodeError as e:
        raise _unauthorized("invalid_token", f"Malformed token: {e}")
    if not kid:
        raise _unauthorized("invalid_token", "Token missing 'kid' header")

    try:
        signing_key = get_jwks_client(jwks_url(settings)).get_signing_key(kid)
    except jwt.PyJWKClientError as e:
        raise _unauthorized("invalid_token", f"Unable to fetch signing key: {e}")

    try:
        payload = jwt.decode(
            token,
            signing_key.key,
            algorithms=["RS256"],
            audience=list(valid_audiences),
            options={"require": ["exp", "iat", "aud"]},
        )
    except jwt.ExpiredSignatureError:
        raise _unauthorized("token_expired", "Token has expired")
    except jwt.InvalidAudienceError:
        raise _unauthorized(
            "invalid_audience",
            f"Token audience does not match. Expected one of: {sorted(valid_audiences)}",
        )
    except jwt.InvalidTokenError as e:
        raise _unauthorized("invalid_token", str(e))

    # Issuer checked manually to accept both v1 and v2 formats
    token_issuer = payload.get("iss", "")
    if token_issuer not in valid_issuers:
        raise _unauthorized("invalid_issuer", f"Token issuer '{token_issuer}' not trusted")

    return payload


# ======================================================
# FASTAPI DEPENDENCIES
# ======================================================

bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
) -> UserContext:
    """
    FastAPI dependency supplying the signed-in user and their raw token.

    Usage:
        @app.post("/chat")
        def chat(body: ChatRequest, user: UserContext = Depends(get_current_user)):
            ...
    """
    if not credentials or not credentials.credentials:
        raise _unauthorized(
            "missing_token", "Authorization header required. Expected: Bearer <token>"
        )

    settings: Settings = request.app.state.settings
    token = credentials.credentials

    # Signature checks can be disabled for local dev; the identity provider
    # still validates the token during the On-Behalf-Of exchange.
    if not settings.validate_user_token:
        try:
            claims = jwt.decode(token, options={"verify_signature": False})
        except jwt.InvalidTokenError as e:
            raise _unauthorized("invalid_token", str(e))
        return UserContext(claims=claims, assertion=token)

    return UserContext(claims=validate_user_token(token, settings), assertion=token)


# ======================================================
# DIAGNOSTICS
# ======================================================

def get_azure_ad_config_status(settings: Settings) -> Dict:
    """
    Return current Azure AD configuration status (for diagnostics).
    Does NOT return secret values.
    """
    audiences: List[str] = sorted(get_valid_audiences(settings))
    return {
        "validation_enabled": settings.validate_user_token,
        "tenant_id_configured": bool(settings.tenant_id),
        "client_id_configured": bool(settings.client_id),
        "valid_audiences": audiences,
        "valid_issuers": sorted(get_valid_issuers(settings)),
        "jwks_url": jwks_url(settings) if settings.tenant_id else None,
    }
