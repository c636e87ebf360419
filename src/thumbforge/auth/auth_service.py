"""JWT verification supplying the trusted owner id."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt
from jwt import ExpiredSignatureError
from jwt import InvalidTokenError as PyJWTInvalidTokenError
import structlog


logger = structlog.get_logger(__name__)

OWNER_CLAIMS = ("userId", "sub")


def _utcnow() -> datetime:
    """Return timezone-aware UTC now."""
    return datetime.now(tz=timezone.utc)


class AuthError(Exception):
    """Base class for auth failures."""


class InvalidTokenError(AuthError):
    """Raised when token cannot be decoded or carries no owner."""


class TokenExpiredError(AuthError):
    """Raised when token is expired."""


@dataclass(slots=True)
class TokenVerifier:
    """Verify HS256 tokens issued by the account service."""

    signing_key: str
    token_ttl: timedelta = timedelta(days=7)
    algorithm: str = "HS256"

    def __post_init__(self) -> None:
        if not self.signing_key:
            raise RuntimeError("JWT_SECRET is not configured")

    def issue_token(self, owner_id: str, *, email: str | None = None) -> str:
        """Mint a token for tests and local development.

        Production tokens come from the account service; ThumbForge only
        verifies them. No route calls this.
        """
        now = _utcnow()
        claims: dict[str, Any] = {
            "userId": owner_id,
            "iat": int(now.timestamp()),
            "exp": int((now + self.token_ttl).timestamp()),
        }
        if email:
            claims["email"] = email
        return jwt.encode(claims, self.signing_key, algorithm=self.algorithm)

    def owner_id(self, token: str) -> str:
        """Return the owner id carried by ``token``."""
        try:
            payload = jwt.decode(token, self.signing_key, algorithms=[self.algorithm])
        except ExpiredSignatureError as exc:
            logger.info("auth.token.expired")
            raise TokenExpiredError("token expired") from exc
        except PyJWTInvalidTokenError as exc:
            logger.warning("auth.token.invalid", error=str(exc))
            raise InvalidTokenError("invalid token") from exc

        for claim in OWNER_CLAIMS:
            value = payload.get(claim)
            if value:
                return str(value)
        logger.warning("auth.token.missing_owner", claims=sorted(payload))
        raise InvalidTokenError("token carries no owner id")
