from __future__ import annotations

import logging
from typing import Any, Mapping

import jwt

from minrisk.core.config import get_settings
from minrisk.core.errors import AuthenticationError
from minrisk.providers.identity.base import IdentityProvider, IdentityUser


logger = logging.getLogger(__name__)


def parse_bearer_token(header_value: str | None) -> str | None:
    # Enforce Bearer format; anything else is treated as a missing credential.
    if not header_value:
        return None
    parts = header_value.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AuthenticationError("Missing or invalid bearer token")
    return parts[1]


def extract_token(headers: Mapping[str, str]) -> str:
    # The custom session header takes precedence over Authorization.
    settings = get_settings()
    custom = (headers.get(settings.auth_custom_token_header) or "").strip()
    if custom:
        return custom
    token = parse_bearer_token(headers.get(settings.auth_token_header))
    if not token:
        raise AuthenticationError("Missing authorization header")
    return token


def _decode_local(token: str, secret: str, audience: str) -> dict[str, Any]:
    try:
        return jwt.decode(token, secret, algorithms=["HS256"], audience=audience)
    except jwt.ExpiredSignatureError as exc:
        raise AuthenticationError("Token has expired") from exc
    except jwt.InvalidTokenError as exc:
        raise AuthenticationError("Unauthorized") from exc


async def authenticate_token(token: str, provider: IdentityProvider) -> IdentityUser:
    settings = get_settings()
    if settings.identity_jwt_secret:
        claims = _decode_local(token, settings.identity_jwt_secret, settings.identity_jwt_audience)
        subject = claims.get("sub")
        if not subject:
            raise AuthenticationError("Unauthorized")
        return IdentityUser(
            id=str(subject),
            email=claims.get("email"),
            user_metadata=dict(claims.get("user_metadata") or {}),
        )

    user = await provider.get_user(token)
    if user is None:
        logger.info("auth_token_rejected provider=%s", settings.identity_provider)
        raise AuthenticationError("Unauthorized")
    return user
