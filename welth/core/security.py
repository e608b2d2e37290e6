"""
Verification of session tokens issued by the hosted identity provider.

The provider signs a short-lived JWT whose ``sub`` is its own user id; we
never issue tokens ourselves.
"""

from dataclasses import dataclass
from typing import Optional

import jwt

from welth.core.config import settings
from welth.core.exceptions import UnauthorizedError


@dataclass
class AuthIdentity:
    subject: str
    email: Optional[str] = None
    name: Optional[str] = None
    image_url: Optional[str] = None


def decode_session_token(token: str) -> AuthIdentity:
    options = {"require": ["sub", "exp"]}
    try:
        claims = jwt.decode(
            token,
            settings.AUTH_SECRET_KEY,
            algorithms=[settings.AUTH_ALGORITHM],
            issuer=settings.AUTH_ISSUER,
            options=options,
        )
    except jwt.PyJWTError as e:
        raise UnauthorizedError(f"Invalid session token: {e}")

    return AuthIdentity(
        subject=claims["sub"],
        email=claims.get("email"),
        name=claims.get("name"),
        image_url=claims.get("picture"),
    )
