"""Session token handling.

Session credentials are signed JWTs. Expiry is the only invalidation
mechanism; there is no revocation list.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Any

import jwt
from fastapi import status
from loguru import logger
from pydantic import BaseModel, Field

from eloquentlog.core.config import Settings, settings
from eloquentlog.core.domain.exceptions import DomainException


class SessionTokenErrorKind(StrEnum):
    """Why a session token was rejected."""

    MALFORMED = "malformed"
    SIGNATURE_INVALID = "signature_invalid"
    EXPIRED = "expired"


class SessionTokenError(DomainException):
    """Raised when a session token cannot be verified."""

    http_status_code = status.HTTP_401_UNAUTHORIZED
    error_code = "SESSION_TOKEN_INVALID"
    kind: SessionTokenErrorKind = SessionTokenErrorKind.MALFORMED

    def __init__(self, message: str = "Session token is invalid"):
        super().__init__(message)


class MalformedSessionTokenError(SessionTokenError):
    error_code = "SESSION_TOKEN_MALFORMED"
    kind = SessionTokenErrorKind.MALFORMED

    def __init__(self) -> None:
        super().__init__("Session token is malformed")


class SessionTokenSignatureInvalidError(SessionTokenError):
    error_code = "SESSION_TOKEN_SIGNATURE_INVALID"
    kind = SessionTokenErrorKind.SIGNATURE_INVALID

    def __init__(self) -> None:
        super().__init__("Session token signature is invalid")


class SessionTokenExpiredError(SessionTokenError):
    error_code = "SESSION_TOKEN_EXPIRED"
    kind = SessionTokenErrorKind.EXPIRED

    def __init__(self) -> None:
        super().__init__("Session token has expired")


class SessionTokenPayload(BaseModel):
    """Verified session token content."""

    user_id: str = Field(..., description="Subject (用户ID)")
    claims: dict[str, Any] = Field(default_factory=dict, description="自定义 claims")
    issued_at: datetime = Field(..., description="签发时间")
    expires_at: datetime = Field(..., description="过期时间")


@dataclass(frozen=True)
class SessionTokenConfig:
    """Immutable signing configuration."""

    secret: str
    issuer: str
    algorithm: str = "HS256"
    default_ttl: timedelta = timedelta(days=1)

    @classmethod
    def from_settings(cls, config: Settings) -> "SessionTokenConfig":
        return cls(
            secret=config.SECRET_KEY,
            issuer=config.SESSION_TOKEN_ISSUER,
            algorithm=config.JWT_ALGORITHM,
            default_ttl=timedelta(minutes=config.SESSION_TOKEN_EXPIRE_MINUTES),
        )


class SessionTokenAuthority:
    """Issues and verifies signed, expiring session credentials."""

    def __init__(self, config: SessionTokenConfig):
        if not config.secret:
            raise ValueError("Session token secret must not be empty")
        self._config = config

    def issue(
        self,
        user_id: str | int,
        claims: dict[str, Any] | None = None,
        ttl: timedelta | None = None,
        *,
        now: datetime | None = None,
    ) -> str:
        """Create a signed token for ``user_id`` carrying ``claims``."""
        issued_at = now or datetime.now(UTC)
        expires_at = issued_at + (ttl if ttl is not None else self._config.default_ttl)

        to_encode = {
            "sub": str(user_id),
            "iss": self._config.issuer,
            "iat": issued_at,
            "exp": expires_at,
            "claims": dict(claims or {}),
        }
        return jwt.encode(
            to_encode, self._config.secret, algorithm=self._config.algorithm
        )

    def verify(self, token: str) -> SessionTokenPayload:
        """Decode and validate a session token.

        Raises:
            SessionTokenExpiredError: ``exp`` has passed
            SessionTokenSignatureInvalidError: signed with another secret
            MalformedSessionTokenError: anything else that is not a valid token
        """
        try:
            payload = jwt.decode(
                token,
                self._config.secret,
                algorithms=[self._config.algorithm],
                issuer=self._config.issuer,
                options={"require": ["sub", "exp", "iat", "iss"]},
            )
        except jwt.ExpiredSignatureError:
            raise SessionTokenExpiredError()
        # InvalidSignatureError subclasses DecodeError; keep it first
        except jwt.InvalidSignatureError:
            logger.warning("Session token signature mismatch")
            raise SessionTokenSignatureInvalidError()
        except jwt.InvalidTokenError as e:
            logger.warning(f"Malformed session token: {e}")
            raise MalformedSessionTokenError()

        claims = payload.get("claims", {})
        if not isinstance(claims, dict):
            raise MalformedSessionTokenError()

        return SessionTokenPayload(
            user_id=payload["sub"],
            claims=claims,
            issued_at=datetime.fromtimestamp(payload["iat"], UTC),
            expires_at=datetime.fromtimestamp(payload["exp"], UTC),
        )


def get_session_token_authority() -> SessionTokenAuthority:
    """Get a session token authority configured from settings."""
    return SessionTokenAuthority(SessionTokenConfig.from_settings(settings))
