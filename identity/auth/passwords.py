"""
Password hashing and verification.

Hashes are self-describing strings carrying the algorithm, its work
factors, the salt and the digest:

- Argon2id (default): ``$argon2id$v=19$m=65536,t=3,p=4$<salt>$<digest>``
- bcrypt: ``$2b$12$<salt><digest>``

Verification picks the scheme from the hash prefix, so hashes produced
under a previous scheme keep verifying after ``PASSWORD_SCHEME`` changes.
Both libraries compare digests in constant time.
"""
import bcrypt
from argon2 import PasswordHasher as Argon2Hasher
from argon2 import exceptions as argon2_exceptions

from identity.config import Settings
from identity.auth.errors import InvalidInput, VerificationError

ARGON2_PREFIX = "$argon2"
BCRYPT_PREFIXES = ("$2a$", "$2b$", "$2y$")
# bcrypt only looks at the first 72 bytes of the password
BCRYPT_MAX_BYTES = 72

class PasswordHasher:
    """Derives and verifies salted password hashes."""

    def __init__(
        self,
        scheme: str = "argon2id",
        bcrypt_rounds: int = 12,
        argon2_time_cost: int = 3,
        argon2_memory_cost: int = 65536,
        argon2_parallelism: int = 4,
    ):
        if scheme not in ("argon2id", "bcrypt"):
            raise ValueError(f"Unsupported password scheme: {scheme}")
        self.scheme = scheme
        self.bcrypt_rounds = bcrypt_rounds
        self._argon2 = Argon2Hasher(
            time_cost=argon2_time_cost,
            memory_cost=argon2_memory_cost,
            parallelism=argon2_parallelism,
        )
        # Hashed once here so dummy_verify only ever pays for a verify
        self._dummy_hash = self.hash("dummy-password-for-timing")

    @classmethod
    def from_settings(cls, settings: Settings) -> "PasswordHasher":
        return cls(
            scheme=settings.password_scheme,
            bcrypt_rounds=settings.bcrypt_rounds,
            argon2_time_cost=settings.argon2_time_cost,
            argon2_memory_cost=settings.argon2_memory_cost,
            argon2_parallelism=settings.argon2_parallelism,
        )

    def hash(self, plaintext: str) -> str:
        """
        Hash a password with a fresh random salt.

        Args:
            plaintext: The password to hash

        Returns:
            Encoded hash string

        Raises:
            InvalidInput: If the password is missing, empty or not a string,
                or too long for bcrypt
        """
        _check_plaintext(plaintext)
        if self.scheme == "bcrypt":
            encoded = plaintext.encode("utf-8")
            if len(encoded) > BCRYPT_MAX_BYTES:
                raise InvalidInput(f"Password must be at most {BCRYPT_MAX_BYTES} bytes for bcrypt.")
            return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=self.bcrypt_rounds)).decode("utf-8")
        return self._argon2.hash(plaintext)

    def verify(self, plaintext: str, stored_hash: str) -> bool:
        """
        Check a candidate password against a stored hash.

        Returns:
            True on a match, False on a well-formed mismatch

        Raises:
            InvalidInput: If the candidate password is missing or empty
            VerificationError: If the stored hash is malformed
        """
        _check_plaintext(plaintext)
        if not isinstance(stored_hash, str) or not stored_hash:
            raise VerificationError()

        if stored_hash.startswith(ARGON2_PREFIX):
            try:
                return self._argon2.verify(stored_hash, plaintext)
            except argon2_exceptions.VerifyMismatchError:
                return False
            except (argon2_exceptions.InvalidHashError, argon2_exceptions.VerificationError) as e:
                raise VerificationError(f"Stored password hash is malformed: {e}") from e

        if stored_hash.startswith(BCRYPT_PREFIXES):
            encoded = plaintext.encode("utf-8")
            if len(encoded) > BCRYPT_MAX_BYTES:
                # Never hashed by us, so it cannot match
                return False
            try:
                return bcrypt.checkpw(encoded, stored_hash.encode("utf-8"))
            except ValueError as e:
                raise VerificationError(f"Stored password hash is malformed: {e}") from e

        raise VerificationError("Stored password hash uses an unknown scheme.")

    def needs_rehash(self, stored_hash: str) -> bool:
        """Whether a stored hash was made with another scheme or different work factors."""
        if not isinstance(stored_hash, str):
            raise VerificationError()
        if stored_hash.startswith(ARGON2_PREFIX):
            if self.scheme != "argon2id":
                return True
            try:
                return self._argon2.check_needs_rehash(stored_hash)
            except argon2_exceptions.InvalidHashError as e:
                raise VerificationError(f"Stored password hash is malformed: {e}") from e
        if stored_hash.startswith(BCRYPT_PREFIXES):
            if self.scheme != "bcrypt":
                return True
            rounds = stored_hash[4:6]
            if not rounds.isdigit():
                raise VerificationError()
            return int(rounds) != self.bcrypt_rounds
        raise VerificationError("Stored password hash uses an unknown scheme.")

    def dummy_verify(self, plaintext: str) -> None:
        """
        Spend roughly the cost of a real verification and discard the result.

        The dummy hash uses the configured scheme; users still on a legacy
        scheme verify at that scheme's cost instead.
        """
        self.verify(plaintext, self._dummy_hash)

def _check_plaintext(plaintext) -> None:
    if not isinstance(plaintext, str) or plaintext == "":
        raise InvalidInput()
