"""
Authentication router.

This module provides the FastAPI router for authentication endpoints:
- User registration and login
- Refresh-token rotation
- Liveness ping

The ``AuthenticationService`` is looked up from ``app.state`` so the
router holds no service instance of its own.
"""
from datetime import datetime, timezone
from fastapi import APIRouter, Depends, Request, status

from identity.base_microservice import BaseMicroservice
from identity.auth.errors import AuthError, ErrorKind
from identity.auth.users import (
    AuthenticationService, RegisterRequest, LoginRequest, RefreshRequest
)

# Create router
router = APIRouter(tags=["auth"])

base_service = BaseMicroservice()

# Exhaustive over ErrorKind; checked by the test suite
ERROR_STATUS_CODES = {
    ErrorKind.MISSING_FIELDS: status.HTTP_400_BAD_REQUEST,
    ErrorKind.INVALID_EMAIL: status.HTTP_400_BAD_REQUEST,
    ErrorKind.INVALID_INPUT: status.HTTP_400_BAD_REQUEST,
    ErrorKind.USER_ALREADY_EXISTS: status.HTTP_409_CONFLICT,
    ErrorKind.NO_SUCH_USER: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.INVALID_PASSWORD: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.INVALID_TOKEN: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.EXPIRED_TOKEN: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.INVALID_SIGNATURE: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.VERIFICATION_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

def get_auth_service(request: Request) -> AuthenticationService:
    """Dependency returning the service built by the app factory."""
    return request.app.state.auth_service

def error_response(error: AuthError):
    """Render an AuthError in the standard MCP envelope."""
    status_code = ERROR_STATUS_CODES[error.kind]
    response = base_service.mcp_response(
        data={"kind": error.kind.value},
        message=error.message,
        status="error",
        status_code=status_code,
    )
    if status_code == status.HTTP_401_UNAUTHORIZED:
        response.headers["WWW-Authenticate"] = "Bearer"
    return response

@router.get("/ping")
async def ping():
    """Liveness check for the auth service."""
    return base_service.mcp_response(
        data={"timestamp": datetime.now(timezone.utc).isoformat()},
        message="Auth service is alive",
    )

@router.post("/register")
async def register_user(
    body: RegisterRequest,
    service: AuthenticationService = Depends(get_auth_service),
):
    """
    Register a new user.

    Returns:
        201 with the public profile of the new user
    """
    try:
        profile = await service.register(body)
    except AuthError as e:
        base_service.log_event("user.register.failed", {"reason": e.kind.value})
        return error_response(e)
    except Exception as e:
        base_service.log_error(e, context="User registration")
        raise
    return base_service.mcp_response(
        data=profile.model_dump(by_alias=True, mode="json"),
        message="User registered successfully",
        status_code=status.HTTP_201_CREATED,
    )

@router.post("/login")
async def login(
    body: LoginRequest,
    service: AuthenticationService = Depends(get_auth_service),
):
    """
    Authenticate a user and return access and refresh tokens.
    """
    try:
        session = await service.login(body)
    except AuthError as e:
        # Log failed login attempt
        base_service.log_event("user.login.failed", {"reason": e.kind.value})
        return error_response(e)
    except Exception as e:
        base_service.log_error(e, context="User login")
        raise
    return base_service.mcp_response(
        data=session.model_dump(by_alias=True, mode="json"),
        message="Login successful",
    )

@router.post("/refresh")
async def refresh_token(
    body: RefreshRequest,
    service: AuthenticationService = Depends(get_auth_service),
):
    """
    Exchange a refresh token for a new access and refresh token.
    """
    try:
        session = await service.refresh(body.refresh_token)
    except AuthError as e:
        base_service.log_event("token.refresh.failed", {"reason": e.kind.value})
        return error_response(e)
    except Exception as e:
        base_service.log_error(e, context="Token refresh")
        raise
    return base_service.mcp_response(
        data=session.model_dump(by_alias=True, mode="json"),
        message="Token refreshed",
    )
