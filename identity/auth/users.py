"""
User authentication service.

This module provides functionality for:
- User registration
- User login (password verification and token issuance)
- Refresh-token rotation
- Recording signup/login activity
"""
import re
import asyncio
import functools
from concurrent.futures import Executor, ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from identity.base_microservice import BaseMicroservice
from identity.config import Settings
from identity.auth.errors import (
    MissingFields, InvalidEmail, UserAlreadyExists, NoSuchUser, InvalidPassword
)
from identity.auth.jwt import TokenIssuer, REFRESH
from identity.auth.models import ActivityType, Credential, NewUserProfile
from identity.auth.passwords import PasswordHasher
from identity.auth.stores import UserStore, ActivityStore

# Local part of non-special characters (or a quoted string), then either a
# bracketed IPv4 literal or dotted labels ending in a 2+ letter TLD
EMAIL_PATTERN = re.compile(
    r'^(([^<>()\[\]\\.,;:\s@"]+(\.[^<>()\[\]\\.,;:\s@"]+)*)|(".+"))'
    r'@((\[[0-9]{1,3}\.[0-9]{1,3}\.[0-9]{1,3}\.[0-9]{1,3}\])|(([a-zA-Z\-0-9]+\.)+[a-zA-Z]{2,}))$'
)

class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

# Request models: every field optional so the service can report MissingFields itself
class RegisterRequest(_CamelModel):
    """Model for user registration."""
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = Field(None, repr=False)

class LoginRequest(_CamelModel):
    """Model for user login."""
    email: Optional[str] = None
    password: Optional[str] = Field(None, repr=False)

class RefreshRequest(_CamelModel):
    refresh_token: Optional[str] = Field(None, repr=False)

class PublicProfile(_CamelModel):
    """Model for user information returned to clients."""
    id: int
    first_name: str
    last_name: str
    email: str

class AuthenticatedSession(_CamelModel):
    """Tokens plus the non-secret profile fields of the authenticated user."""
    id: int
    access_token: str = Field(repr=False)
    refresh_token: str = Field(repr=False)
    token_type: str = "bearer"
    first_name: str
    last_name: str
    email: str
    issued_at: datetime
    access_expires_at: datetime
    refresh_expires_at: datetime

def normalize_email(email: str) -> str:
    return email.strip().lower()

def is_valid_email(email: str) -> bool:
    return EMAIL_PATTERN.match(str(email).lower()) is not None

def _is_blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()

class AuthenticationService(BaseMicroservice):
    """
    Orchestrates registration and login.

    The stores, hasher and issuer are passed in at construction. Password
    hashing and verification run on a bounded thread pool so a burst of
    logins does not block the event loop.
    """

    def __init__(
        self,
        user_store: UserStore,
        activity_store: ActivityStore,
        hasher: PasswordHasher,
        issuer: TokenIssuer,
        executor: Optional[Executor] = None,
        max_workers: int = 4,
    ):
        super().__init__("identity.auth")
        self.user_store = user_store
        self.activity_store = activity_store
        self.hasher = hasher
        self.issuer = issuer
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="password-hasher"
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        user_store: UserStore,
        activity_store: ActivityStore,
    ) -> "AuthenticationService":
        return cls(
            user_store=user_store,
            activity_store=activity_store,
            hasher=PasswordHasher.from_settings(settings),
            issuer=TokenIssuer.from_settings(settings),
            max_workers=settings.hasher_max_workers,
        )

    def close(self) -> None:
        """Shut down the hashing pool if this service created it."""
        if self._owns_executor:
            self._executor.shutdown(wait=True)

    async def _run_blocking(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, functools.partial(func, *args))

    async def register(self, request: RegisterRequest) -> PublicProfile:
        """
        Register a new user.

        Args:
            request: Registration details

        Returns:
            Public profile of the new user (no password hash)

        Raises:
            MissingFields: If any of first name, last name, email or password is absent
            InvalidEmail: If the email is not a syntactically valid address
            UserAlreadyExists: If the normalized email is already registered
            InvalidInput: If the password cannot be hashed
        """
        missing = [
            name for name, value in (
                ("firstName", request.first_name),
                ("lastName", request.last_name),
                ("email", request.email),
            ) if _is_blank(value)
        ]
        if not request.password:
            missing.append("password")
        if missing:
            raise MissingFields(missing)

        email = normalize_email(request.email)
        if not is_valid_email(email):
            raise InvalidEmail()

        if await self.user_store.find_by_email(email) is not None:
            raise UserAlreadyExists()

        password_hash = await self._run_blocking(self.hasher.hash, request.password)
        profile = NewUserProfile(
            first_name=request.first_name.strip(),
            last_name=request.last_name.strip(),
            email=email,
        )
        credential = await self.user_store.create(profile, password_hash)
        await self.activity_store.append(credential.id, ActivityType.SIGNUP, _utcnow())

        self.log_event("user.registered", {"id": credential.id, "email": credential.email})
        return _public_profile(credential)

    async def login(self, request: LoginRequest) -> AuthenticatedSession:
        """
        Authenticate a user and issue tokens.

        Args:
            request: Login credentials

        Returns:
            Session with access and refresh tokens and profile fields

        Raises:
            MissingFields: If email or password is absent
            NoSuchUser: If no user has this email
            InvalidPassword: If the password does not match
            VerificationError: If the stored hash is malformed
        """
        missing = []
        if _is_blank(request.email):
            missing.append("email")
        if not request.password:
            missing.append("password")
        if missing:
            raise MissingFields(missing)

        email = normalize_email(request.email)
        credential = await self.user_store.find_by_email(email)
        if credential is None:
            # Keep the unknown-user path about as slow as a wrong password
            await self._run_blocking(self.hasher.dummy_verify, request.password)
            raise NoSuchUser()

        matches = await self._run_blocking(
            self.hasher.verify, request.password, credential.hashed_password
        )
        if not matches:
            raise InvalidPassword()

        if self.hasher.needs_rehash(credential.hashed_password):
            self.logger.info(f"Stored password hash for user {credential.id} uses outdated parameters")

        session = self._issue_session(credential)
        await self.activity_store.append(credential.id, ActivityType.LOGIN, session.issued_at)

        self.log_event("user.login", {"id": credential.id, "email": credential.email})
        return session

    async def refresh(self, refresh_token: str) -> AuthenticatedSession:
        """
        Exchange a refresh token for a new session.

        Raises:
            InvalidToken: If the token is malformed, expired, forged or not a refresh token
            NoSuchUser: If the token's subject no longer exists
        """
        claims = self.issuer.verify(refresh_token, expected_type=REFRESH)
        credential = await self.user_store.find_by_email(normalize_email(claims["sub"]))
        if credential is None:
            raise NoSuchUser()

        session = self._issue_session(credential)
        self.log_event("token.refreshed", {"id": credential.id})
        return session

    def _issue_session(self, credential: Credential) -> AuthenticatedSession:
        tokens = self.issuer.issue_session(credential)
        return AuthenticatedSession(
            id=credential.id,
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            token_type=tokens.token_type,
            first_name=credential.first_name,
            last_name=credential.last_name,
            email=credential.email,
            issued_at=tokens.issued_at,
            access_expires_at=tokens.access_expires_at,
            refresh_expires_at=tokens.refresh_expires_at,
        )

def _public_profile(credential: Credential) -> PublicProfile:
    return PublicProfile(
        id=credential.id,
        first_name=credential.first_name,
        last_name=credential.last_name,
        email=credential.email,
    )

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)
