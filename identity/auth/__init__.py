"""
Authentication service for the identity layer.

This package provides:
- Password hashing and verification (Argon2id, bcrypt)
- JWT access and refresh tokens
- User registration and login with an activity audit trail
"""
from identity.auth.errors import (
    AuthError, ErrorKind, MissingFields, InvalidEmail, UserAlreadyExists, NoSuchUser,
    InvalidPassword, InvalidInput, VerificationError, InvalidToken, ExpiredToken,
    InvalidSignature,
)
from identity.auth.passwords import PasswordHasher
from identity.auth.jwt import TokenIssuer, TokenPair
from identity.auth.users import (
    AuthenticationService, RegisterRequest, LoginRequest, PublicProfile, AuthenticatedSession,
)
