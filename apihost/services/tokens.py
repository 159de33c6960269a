"""Bearer access token handling."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import jwt

from apihost.config import get_settings
from apihost.errors import UnauthorizedError


def create_access_token(subject: str, expires_delta: timedelta | None = None) -> str:
    """Create a signed access token for a user id."""
    security = get_settings().security
    if expires_delta is None:
        expires_delta = timedelta(minutes=security.access_token_ttl_minutes)

    payload = {
        "sub": subject,
        "exp": datetime.now(UTC) + expires_delta,
        "iat": datetime.now(UTC),
    }
    return jwt.encode(payload, security.jwt_secret, algorithm=security.jwt_algorithm)


def decode_access_token(token: str) -> str:
    """Decode and validate an access token.

    Returns:
        The subject (user id)

    Raises:
        UnauthorizedError: Token expired, malformed or badly signed
    """
    security = get_settings().security
    try:
        payload = jwt.decode(
            token,
            security.jwt_secret,
            algorithms=[security.jwt_algorithm],
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Token expired")
    except jwt.InvalidTokenError:
        raise UnauthorizedError("Invalid token")

    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject:
        raise UnauthorizedError("Invalid token")
    return subject
