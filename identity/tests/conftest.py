import pytest
from datetime import timedelta

from identity.auth.jwt import TokenIssuer
from identity.auth.passwords import PasswordHasher
from identity.auth.stores import InMemoryUserStore, InMemoryActivityStore
from identity.auth.users import AuthenticationService

TEST_SECRET = "test-secret-key-with-enough-length-for-hs256"

@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"

@pytest.fixture
def hasher():
    # Low work factors keep the suite fast
    return PasswordHasher(
        scheme="argon2id",
        argon2_time_cost=1,
        argon2_memory_cost=1024,
        argon2_parallelism=1,
        bcrypt_rounds=4,
    )

@pytest.fixture
def bcrypt_hasher():
    return PasswordHasher(scheme="bcrypt", bcrypt_rounds=4)

@pytest.fixture
def issuer():
    return TokenIssuer(
        secret_key=TEST_SECRET,
        access_token_ttl=timedelta(minutes=15),
        refresh_token_ttl=timedelta(days=7),
    )

@pytest.fixture
def user_store():
    return InMemoryUserStore()

@pytest.fixture
def activity_store():
    return InMemoryActivityStore()

@pytest.fixture
def service(user_store, activity_store, hasher, issuer):
    auth_service = AuthenticationService(
        user_store=user_store,
        activity_store=activity_store,
        hasher=hasher,
        issuer=issuer,
        max_workers=2,
    )
    yield auth_service
    auth_service.close()
