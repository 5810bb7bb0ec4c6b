"""
User and activity stores.

The authentication service only talks to the ``UserStore`` and
``ActivityStore`` protocols. Two implementations ship here:

- SQLAlchemy stores, opening one ``AsyncSession`` per call from an injected
  session factory
- In-memory stores for tests and for embedding the service without a database

Store failures other than a uniqueness violation propagate unchanged.
"""
import itertools
from datetime import datetime
from typing import Dict, List, Optional, Protocol
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from identity.auth.errors import UserAlreadyExists
from identity.auth.models import (
    User, LoginActivity, ActivityType, ActivityRecord, Credential, NewUserProfile
)

class UserStore(Protocol):
    async def find_by_email(self, email: str) -> Optional[Credential]:
        ...

    async def create(self, profile: NewUserProfile, password_hash: str) -> Credential:
        """Persist a new user. Raises UserAlreadyExists if the email is taken."""
        ...

class ActivityStore(Protocol):
    async def append(self, user_id: int, activity_type: ActivityType, timestamp: datetime) -> ActivityRecord:
        ...

    async def list_for_user(self, user_id: int) -> List[ActivityRecord]:
        ...

class SQLAlchemyUserStore:
    """UserStore backed by the ``users`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def find_by_email(self, email: str) -> Optional[Credential]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(User).where(User.email == email)
            )
            user = result.scalar_one_or_none()
            if user is None:
                return None
            return Credential.model_validate(user)

    async def create(self, profile: NewUserProfile, password_hash: str) -> Credential:
        async with self._session_factory() as session:
            new_user = User(
                first_name=profile.first_name,
                last_name=profile.last_name,
                email=profile.email,
                hashed_password=password_hash,
            )
            session.add(new_user)
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise UserAlreadyExists() from e
            await session.refresh(new_user)
            return Credential.model_validate(new_user)

class SQLAlchemyActivityStore:
    """ActivityStore backed by the ``login_activity`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def append(self, user_id: int, activity_type: ActivityType, timestamp: datetime) -> ActivityRecord:
        async with self._session_factory() as session:
            activity = LoginActivity(
                user_id=user_id,
                activity_type=ActivityType(activity_type).value,
                created_at=timestamp,
            )
            session.add(activity)
            await session.commit()
            await session.refresh(activity)
            return ActivityRecord.model_validate(activity)

    async def list_for_user(self, user_id: int) -> List[ActivityRecord]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(LoginActivity)
                .where(LoginActivity.user_id == user_id)
                .order_by(LoginActivity.id)
            )
            return [ActivityRecord.model_validate(a) for a in result.scalars().all()]

class InMemoryUserStore:
    """UserStore kept in a dict keyed by email."""

    def __init__(self):
        self._users: Dict[str, Credential] = {}
        self._ids = itertools.count(1)

    async def find_by_email(self, email: str) -> Optional[Credential]:
        return self._users.get(email)

    async def create(self, profile: NewUserProfile, password_hash: str) -> Credential:
        # No await between the check and the insert, so this is atomic on the loop
        if profile.email in self._users:
            raise UserAlreadyExists()
        credential = Credential(
            id=next(self._ids),
            first_name=profile.first_name,
            last_name=profile.last_name,
            email=profile.email,
            hashed_password=password_hash,
            created_at=datetime.now().astimezone(),
        )
        self._users[profile.email] = credential
        return credential

class InMemoryActivityStore:
    """ActivityStore kept in an append-only list."""

    def __init__(self):
        self.records: List[ActivityRecord] = []
        self._ids = itertools.count(1)

    async def append(self, user_id: int, activity_type: ActivityType, timestamp: datetime) -> ActivityRecord:
        record = ActivityRecord(
            id=next(self._ids),
            user_id=user_id,
            activity_type=activity_type,
            created_at=timestamp,
        )
        self.records.append(record)
        return record

    async def list_for_user(self, user_id: int) -> List[ActivityRecord]:
        return [r for r in self.records if r.user_id == user_id]
