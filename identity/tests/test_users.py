"""
Test cases for registration, login and refresh in the authentication service.
"""
import threading
import pytest
from concurrent.futures import ThreadPoolExecutor

from identity.auth.errors import (
    MissingFields, InvalidEmail, UserAlreadyExists, NoSuchUser, InvalidPassword,
    InvalidToken, VerificationError,
)
from identity.auth.models import ActivityType, NewUserProfile
from identity.auth.passwords import PasswordHasher
from identity.auth.stores import InMemoryUserStore
from identity.auth.users import (
    AuthenticationService, RegisterRequest, LoginRequest, is_valid_email
)

def register_request(**overrides):
    data = {"firstName": "A", "lastName": "B", "email": "a@b.com", "password": "Secret123"}
    data.update(overrides)
    return RegisterRequest(**data)

@pytest.mark.asyncio
async def test_register_then_login(service, issuer):
    """Register and log in with the same credentials."""
    profile = await service.register(register_request())

    assert profile.model_dump(by_alias=True) == {
        "id": profile.id,
        "firstName": "A",
        "lastName": "B",
        "email": "a@b.com",
    }

    session = await service.login(LoginRequest(email="a@b.com", password="Secret123"))
    assert session.id == profile.id
    assert session.email == "a@b.com"
    assert session.first_name == "A"
    assert session.last_name == "B"
    assert session.access_token
    assert session.refresh_token

    claims = issuer.verify(session.access_token)
    assert claims["sub"] == str(profile.id)

    # The refresh token is no good where an access token is expected
    with pytest.raises(InvalidToken):
        issuer.verify(session.refresh_token)

@pytest.mark.asyncio
async def test_register_stores_hash_not_plaintext(service, user_store, hasher):
    await service.register(register_request())
    credential = await user_store.find_by_email("a@b.com")
    assert credential.hashed_password != "Secret123"
    assert hasher.verify("Secret123", credential.hashed_password)

@pytest.mark.asyncio
@pytest.mark.parametrize("missing", ["firstName", "lastName", "email", "password"])
async def test_register_missing_field(service, user_store, activity_store, missing):
    request = register_request(**{missing: None})
    with pytest.raises(MissingFields) as excinfo:
        await service.register(request)
    assert missing in excinfo.value.fields
    assert await user_store.find_by_email("a@b.com") is None
    assert activity_store.records == []

@pytest.mark.asyncio
async def test_register_blank_name_counts_as_missing(service):
    with pytest.raises(MissingFields):
        await service.register(register_request(lastName="   "))

@pytest.mark.asyncio
async def test_register_invalid_email(service, activity_store):
    with pytest.raises(InvalidEmail):
        await service.register(register_request(email="not-an-email"))
    assert activity_store.records == []

@pytest.mark.asyncio
async def test_register_duplicate_email_is_case_insensitive(service):
    await service.register(register_request())
    with pytest.raises(UserAlreadyExists):
        await service.register(register_request(email="  A@B.COM "))

@pytest.mark.asyncio
async def test_register_normalizes_email(service):
    profile = await service.register(register_request(email="Mixed.Case@Example.COM"))
    assert profile.email == "mixed.case@example.com"

    session = await service.login(LoginRequest(email="MIXED.case@example.com", password="Secret123"))
    assert session.id == profile.id

@pytest.mark.asyncio
async def test_store_uniqueness_backstop(activity_store, hasher, issuer):
    """A concurrent registration that slips past the lookup is still rejected by the store."""
    class RacingUserStore(InMemoryUserStore):
        async def find_by_email(self, email):
            return None

    store = RacingUserStore()
    await store.create(NewUserProfile(first_name="X", last_name="Y", email="a@b.com"), "hash")

    racing = AuthenticationService(store, activity_store, hasher, issuer)
    try:
        with pytest.raises(UserAlreadyExists):
            await racing.register(register_request())
    finally:
        racing.close()
    assert activity_store.records == []

@pytest.mark.asyncio
async def test_login_wrong_password(service, activity_store):
    await service.register(register_request())
    with pytest.raises(InvalidPassword):
        await service.login(LoginRequest(email="a@b.com", password="Wrong123"))
    assert [r.activity_type for r in activity_store.records] == [ActivityType.SIGNUP]

@pytest.mark.asyncio
async def test_login_unknown_user(service):
    with pytest.raises(NoSuchUser):
        await service.login(LoginRequest(email="nobody@b.com", password="Secret123"))

@pytest.mark.asyncio
@pytest.mark.parametrize("email,password", [(None, "Secret123"), ("a@b.com", None), ("", "")])
async def test_login_missing_fields(service, email, password):
    with pytest.raises(MissingFields):
        await service.login(LoginRequest(email=email, password=password))

@pytest.mark.asyncio
async def test_login_with_malformed_stored_hash(service, user_store):
    await user_store.create(
        NewUserProfile(first_name="A", last_name="B", email="a@b.com"), "not-a-real-hash"
    )
    with pytest.raises(VerificationError):
        await service.login(LoginRequest(email="a@b.com", password="Secret123"))

@pytest.mark.asyncio
async def test_one_activity_record_per_success(service, activity_store):
    profile = await service.register(register_request())
    await service.login(LoginRequest(email="a@b.com", password="Secret123"))
    await service.login(LoginRequest(email="a@b.com", password="Secret123"))

    records = await activity_store.list_for_user(profile.id)
    assert [r.activity_type for r in records] == [
        ActivityType.SIGNUP, ActivityType.LOGIN, ActivityType.LOGIN
    ]

@pytest.mark.asyncio
async def test_each_login_mints_a_fresh_session(service):
    await service.register(register_request())
    first = await service.login(LoginRequest(email="a@b.com", password="Secret123"))
    second = await service.login(LoginRequest(email="a@b.com", password="Secret123"))
    assert first.access_token != second.access_token
    assert first.refresh_token != second.refresh_token

@pytest.mark.asyncio
async def test_refresh_rotates_tokens(service, issuer, activity_store):
    await service.register(register_request())
    session = await service.login(LoginRequest(email="a@b.com", password="Secret123"))

    rotated = await service.refresh(session.refresh_token)
    assert rotated.id == session.id
    assert rotated.refresh_token != session.refresh_token
    assert issuer.verify(rotated.access_token)["email"] == "a@b.com"
    # Refresh does not count as a login
    assert len(activity_store.records) == 2

@pytest.mark.asyncio
async def test_refresh_rejects_access_token(service):
    await service.register(register_request())
    session = await service.login(LoginRequest(email="a@b.com", password="Secret123"))
    with pytest.raises(InvalidToken):
        await service.refresh(session.access_token)

@pytest.mark.asyncio
async def test_refresh_for_deleted_user(service, issuer):
    token = issuer.create_refresh_token("gone@b.com")
    with pytest.raises(NoSuchUser):
        await service.refresh(token)

@pytest.mark.asyncio
async def test_store_failures_propagate(activity_store, hasher, issuer):
    class BrokenUserStore(InMemoryUserStore):
        async def find_by_email(self, email):
            raise ConnectionError("database unavailable")

    broken = AuthenticationService(BrokenUserStore(), activity_store, hasher, issuer)
    try:
        with pytest.raises(ConnectionError):
            await broken.login(LoginRequest(email="a@b.com", password="Secret123"))
    finally:
        broken.close()

@pytest.mark.asyncio
async def test_hashing_runs_on_worker_pool(user_store, activity_store, hasher, issuer):
    threads = []

    class RecordingHasher(PasswordHasher):
        def hash(self, plaintext):
            threads.append(threading.current_thread().name)
            return super().hash(plaintext)

    recording = RecordingHasher(argon2_time_cost=1, argon2_memory_cost=1024, argon2_parallelism=1)
    # Drop the dummy hash made during construction
    threads.clear()
    with ThreadPoolExecutor(max_workers=1, thread_name_prefix="test-pool") as pool:
        auth = AuthenticationService(user_store, activity_store, recording, issuer, executor=pool)
        await auth.register(register_request())
        auth.close()

    assert len(threads) == 1
    assert threads[0].startswith("test-pool")

@pytest.mark.asyncio
async def test_events_logged_without_secrets(service, caplog):
    with caplog.at_level("INFO"):
        await service.register(register_request())
        session = await service.login(LoginRequest(email="a@b.com", password="Secret123"))
    assert "user.registered" in caplog.text
    assert "user.login" in caplog.text
    assert "Secret123" not in caplog.text
    assert session.access_token not in caplog.text

def test_request_repr_hides_password():
    assert "Secret123" not in repr(register_request())
    assert "Secret123" not in repr(LoginRequest(email="a@b.com", password="Secret123"))

@pytest.mark.parametrize("email,valid", [
    ("a@b.com", True),
    ("first.last@sub.example.org", True),
    ('"quoted name"@example.com', True),
    ("user@[192.168.0.1]", True),
    ("not-an-email", False),
    ("a@b", False),
    ("a@b.c", False),
    ("a b@example.com", False),
    ("a..b@example.com", False),
    ("@example.com", False),
])
def test_email_grammar(email, valid):
    assert is_valid_email(email) is valid

def test_service_from_settings(user_store, activity_store):
    from datetime import timedelta
    from identity.config import Settings

    settings = Settings(
        jwt_secret_key="test-secret-key-with-enough-length-for-hs256",
        password_scheme="bcrypt",
        bcrypt_rounds=4,
        access_token_expire_minutes=5,
        refresh_token_expire_days=2,
        hasher_max_workers=1,
    )
    auth = AuthenticationService.from_settings(settings, user_store, activity_store)
    try:
        assert auth.hasher.scheme == "bcrypt"
        assert auth.issuer.access_token_ttl == timedelta(minutes=5)
        assert auth.issuer.refresh_token_ttl == timedelta(days=2)
    finally:
        auth.close()
