"""
JWT token handling for authentication.

This module provides functionality for:
- Creating access tokens (short-lived, full principal claims)
- Creating refresh tokens (long-lived, subject email only)
- Validating tokens of an expected type
"""
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional
import jwt
from pydantic import BaseModel

from identity.config import Settings
from identity.auth.errors import ExpiredToken, InvalidSignature, InvalidToken

ACCESS = "access"
REFRESH = "refresh"
AUDIENCES = {
    ACCESS: "identity:access",
    REFRESH: "identity:refresh",
}

class TokenPair(BaseModel):
    """Access and refresh tokens minted together."""
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    issued_at: datetime
    access_expires_at: datetime
    refresh_expires_at: datetime

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)

class TokenIssuer:
    """Mints and validates signed bearer tokens."""

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        access_token_ttl: timedelta = timedelta(minutes=30),
        refresh_token_ttl: timedelta = timedelta(days=7),
        clock: Callable[[], datetime] = _utcnow,
    ):
        if not secret_key:
            raise ValueError("A signing key is required")
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.access_token_ttl = access_token_ttl
        self.refresh_token_ttl = refresh_token_ttl
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenIssuer":
        return cls(
            secret_key=settings.jwt_secret_key,
            algorithm=settings.jwt_algorithm,
            access_token_ttl=timedelta(minutes=settings.access_token_expire_minutes),
            refresh_token_ttl=timedelta(days=settings.refresh_token_expire_days),
        )

    def create_access_token(self, principal: Any, issued_at: Optional[datetime] = None) -> str:
        """
        Create a JWT access token for an authenticated principal.

        Args:
            principal: Object with ``id``, ``email``, ``first_name`` and ``last_name``
            issued_at: Issue time, defaults to now

        Returns:
            Encoded JWT token string
        """
        issued_at = issued_at or self._clock()
        claims = {
            "sub": str(principal.id),
            "email": principal.email,
            "firstName": principal.first_name,
            "lastName": principal.last_name,
        }
        return self._encode(claims, ACCESS, issued_at, self.access_token_ttl)

    def create_refresh_token(self, subject_email: str, issued_at: Optional[datetime] = None) -> str:
        """
        Create a JWT refresh token bound only to the subject's email.

        Refresh tokens carry their own type and audience, so ``verify``
        rejects them wherever an access token is expected.
        """
        if not subject_email:
            raise ValueError("A subject email is required")
        issued_at = issued_at or self._clock()
        claims = {"sub": subject_email, "email": subject_email}
        return self._encode(claims, REFRESH, issued_at, self.refresh_token_ttl)

    def issue_session(self, principal: Any) -> TokenPair:
        """Create both tokens for a principal with a shared issue time."""
        issued_at = self._clock()
        return TokenPair(
            access_token=self.create_access_token(principal, issued_at),
            refresh_token=self.create_refresh_token(principal.email, issued_at),
            issued_at=issued_at,
            access_expires_at=issued_at + self.access_token_ttl,
            refresh_expires_at=issued_at + self.refresh_token_ttl,
        )

    def verify(self, token: str, expected_type: str = ACCESS) -> Dict[str, Any]:
        """
        Verify a JWT token and return its claims.

        Args:
            token: JWT token string
            expected_type: ``"access"`` or ``"refresh"``

        Returns:
            Decoded claims

        Raises:
            ExpiredToken: If the token is past its expiry
            InvalidSignature: If the token was not signed with our key
            InvalidToken: If the token is malformed or of the wrong type
        """
        if expected_type not in AUDIENCES:
            raise ValueError(f"Unknown token type: {expected_type}")
        if not token or not isinstance(token, str):
            raise InvalidToken("Token is missing.")
        try:
            claims = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                audience=AUDIENCES[expected_type],
                options={"require": ["exp", "iat", "sub", "aud", "type"]},
            )
        except jwt.ExpiredSignatureError as e:
            raise ExpiredToken() from e
        except jwt.InvalidSignatureError as e:
            raise InvalidSignature() from e
        except jwt.InvalidAudienceError as e:
            raise InvalidToken(f"Expected a {expected_type} token.") from e
        except jwt.InvalidTokenError as e:
            raise InvalidToken(f"Invalid token: {e}") from e

        # Audience already discriminates; the type claim is a second check
        if claims.get("type") != expected_type:
            raise InvalidToken(f"Expected a {expected_type} token.")
        return claims

    def _encode(self, claims: Dict[str, Any], token_type: str, issued_at: datetime, ttl: timedelta) -> str:
        to_encode = claims.copy()
        to_encode.update({
            "type": token_type,
            "aud": AUDIENCES[token_type],
            "iat": issued_at,
            "exp": issued_at + ttl,
            "jti": uuid.uuid4().hex,
        })
        return jwt.encode(to_encode, self.secret_key, algorithm=self.algorithm)
