"""Caller identity for dashboard actions.

Session management belongs to the external identity provider.  It issues
HS256 access tokens whose ``sub`` claim is the user's UUID and whose audience
is ``settings.jwt_audience``.  LeadsRadar only verifies those tokens and turns
them into a :class:`CallerContext`, which is injected into each request rather
than held as ambient global state.

Design decisions:
- decode_token() raises Unauthorized for any invalid, expired, or malformed
  token so the HTTP layer renders a uniform 401
- create_token() is provided for testing and CLI use only
"""

from __future__ import annotations

import datetime
import uuid
from dataclasses import dataclass, field

from jose import JWTError, jwt

from leadsradar.config import settings
from leadsradar.errors import Unauthorized

_ALGORITHM = "HS256"


@dataclass(frozen=True)
class CallerContext:
    """Authenticated dashboard caller.

    Attributes:
        user_id: Identity-provider user id; owner of keys and leads.
        email:   Email claim when present.
    """

    user_id: uuid.UUID
    email: str | None = field(default=None)


def decode_token(token: str) -> CallerContext:
    """Verify an access token and return the caller it identifies.

    Raises:
        Unauthorized: If the signature, audience, or expiry is invalid, or the
                      ``sub`` claim is not a UUID.
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[_ALGORITHM],
            audience=settings.jwt_audience,
        )
    except JWTError as exc:
        raise Unauthorized(detail=f"Invalid token: {exc}") from exc

    subject = payload.get("sub")
    try:
        user_id = uuid.UUID(str(subject))
    except ValueError:
        raise Unauthorized(detail="Token subject is not a user id")

    return CallerContext(user_id=user_id, email=payload.get("email"))


def create_token(
    user_id: uuid.UUID | str,
    email: str | None = None,
    expires_in: datetime.timedelta = datetime.timedelta(hours=1),
) -> str:
    """Sign an access token the way the identity provider does (tests and CLI only)."""
    now = datetime.datetime.now(datetime.timezone.utc)
    claims = {
        "sub": str(user_id),
        "aud": settings.jwt_audience,
        "iat": int(now.timestamp()),
        "exp": int((now + expires_in).timestamp()),
    }
    if email:
        claims["email"] = email
    return jwt.encode(claims, settings.jwt_secret, algorithm=_ALGORITHM)
