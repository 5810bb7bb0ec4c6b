"""
Error taxonomy for the authentication service.

Every error carries an ``ErrorKind`` tag so a transport layer can map
failures to responses by matching on ``error.kind``.
"""
import enum
from typing import Optional

class ErrorKind(str, enum.Enum):
    MISSING_FIELDS = "missing_fields"
    INVALID_EMAIL = "invalid_email"
    USER_ALREADY_EXISTS = "user_already_exists"
    NO_SUCH_USER = "no_such_user"
    INVALID_PASSWORD = "invalid_password"
    INVALID_INPUT = "invalid_input"
    VERIFICATION_ERROR = "verification_error"
    INVALID_TOKEN = "invalid_token"
    EXPIRED_TOKEN = "expired_token"
    INVALID_SIGNATURE = "invalid_signature"

class AuthError(Exception):
    """Base class for all recoverable authentication failures."""
    kind: ErrorKind
    default_message = "Authentication error."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

class MissingFields(AuthError):
    kind = ErrorKind.MISSING_FIELDS
    default_message = "You must send all required details."

    def __init__(self, fields=(), message: Optional[str] = None):
        self.fields = tuple(fields)
        if message is None and self.fields:
            message = f"Missing required fields: {', '.join(self.fields)}."
        super().__init__(message)

class InvalidEmail(AuthError):
    kind = ErrorKind.INVALID_EMAIL
    default_message = "Please use a valid email address."

class UserAlreadyExists(AuthError):
    kind = ErrorKind.USER_ALREADY_EXISTS
    default_message = "User already registered."

class NoSuchUser(AuthError):
    kind = ErrorKind.NO_SUCH_USER
    default_message = "No matching user."

class InvalidPassword(AuthError):
    kind = ErrorKind.INVALID_PASSWORD
    default_message = "Incorrect password."

class InvalidInput(AuthError):
    """Raised by the password hasher for unusable plaintext."""
    kind = ErrorKind.INVALID_INPUT
    default_message = "Password must be a non-empty string."

class VerificationError(AuthError):
    """Raised when a stored password hash cannot be parsed."""
    kind = ErrorKind.VERIFICATION_ERROR
    default_message = "Stored password hash is malformed."

class InvalidToken(AuthError):
    kind = ErrorKind.INVALID_TOKEN
    default_message = "Invalid token."

class ExpiredToken(InvalidToken):
    kind = ErrorKind.EXPIRED_TOKEN
    default_message = "Token has expired."

class InvalidSignature(InvalidToken):
    kind = ErrorKind.INVALID_SIGNATURE
    default_message = "Token signature is invalid."
