from __future__ import annotations

import hmac
from typing import Any

import jwt
from jwt import InvalidTokenError

# Audience claim the identity service stamps on user access tokens.
ACCESS_TOKEN_AUDIENCE = "authenticated"


def parse_bearer(header: str | None) -> str | None:
    """Return the token of an `Authorization: Bearer <token>` header, or None."""
    if not header:
        return None
    scheme, _, token = header.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    token = token.strip()
    return token or None


def decode_access_token(token: str, secret: str) -> dict[str, Any]:
    try:
        return jwt.decode(
            token,
            secret,
            algorithms=["HS256"],
            audience=ACCESS_TOKEN_AUDIENCE,
            options={"require": ["exp", "sub"]},
        )
    except InvalidTokenError as e:
        raise ValueError("Invalid token") from e


def secrets_match(provided: str | None, expected: str | None) -> bool:
    # An unset secret never matches, even against an empty header.
    if not expected or provided is None:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))
