"""Authentication API endpoints."""

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import (
    AuthContext,
    get_auth_service,
    get_prediction_service,
    get_profile_service,
    require_auth,
    require_bearer_token,
)
from app.errors import ApiError, ErrorKind
from app.rate_limit import limiter
from app.schemas.auth import (
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    MessageResponse,
    RefreshRequest,
    RefreshResponse,
    RegisterRequest,
    ResetPasswordRequest,
    SessionResponse,
)
from app.schemas.user import (
    MeResponse,
    PredictionStats,
    ProfileResponse,
    ProfileUpdateRequest,
    ProfileUpdateResponse,
    UserResponse,
)
from app.services.auth import AuthResult, AuthService
from app.services.prediction import PredictionService
from app.services.profile import HEALTH_FIELDS, ProfileService
from app.services.sessions import DeviceInfo

logger = logging.getLogger("diabeacheck")

router = APIRouter(prefix="/api/auth", tags=["Authentication"])

FORGOT_PASSWORD_MESSAGE = "If an account with that email exists, a password reset link has been sent"


def _device(request: Request) -> DeviceInfo:
    return DeviceInfo(
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("User-Agent"),
    )


def _raise_for(result: AuthResult) -> None:
    if not result.success:
        raise ApiError(result.error or ErrorKind.INTERNAL_FAILURE, result.message or "Request failed", result.details)


def _session_response(message: str, result: AuthResult) -> SessionResponse:
    return SessionResponse(
        message=message,
        user=UserResponse.model_validate(result.user),
        token=result.session.bearer_token,  # type: ignore[union-attr]
        refresh_token=result.session.refresh_token,  # type: ignore[union-attr]
        expires_at=result.session.expires_at,  # type: ignore[union-attr]
    )


@router.post("/register", response_model=SessionResponse, status_code=201)
@limiter.limit("5/minute")
def register(
    request: Request,
    body: RegisterRequest,
    db: Session = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service),
) -> SessionResponse:
    """Register a new user account and log it in."""
    result = auth_service.register(
        db,
        email=body.email,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
        phone=body.phone,
        date_of_birth=body.date_of_birth,
        gender=body.gender,
        device=_device(request),
    )
    _raise_for(result)
    return _session_response("User registered successfully", result)


@router.post("/login", response_model=SessionResponse)
@limiter.limit("10/minute")
def login(
    request: Request,
    body: LoginRequest,
    db: Session = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service),
) -> SessionResponse:
    """Authenticate and receive a session."""
    result = auth_service.login(db, body.email, body.password, device=_device(request))
    _raise_for(result)
    return _session_response("Login successful", result)


@router.post("/logout", response_model=MessageResponse)
def logout(
    token: str = Depends(require_bearer_token),
    db: Session = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Revoke the current session. Repeating the call is not an error."""
    _raise_for(auth_service.logout(db, token))
    return MessageResponse(message="Logout successful")


@router.post("/refresh", response_model=RefreshResponse)
@limiter.limit("20/minute")
def refresh(
    request: Request,
    body: RefreshRequest,
    db: Session = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service),
) -> RefreshResponse:
    """Exchange a refresh token for a new session."""
    result = auth_service.refresh(db, body.refresh_token)
    _raise_for(result)
    return RefreshResponse(
        message="Token refreshed successfully",
        token=result.session.bearer_token,  # type: ignore[union-attr]
        refresh_token=result.session.refresh_token,  # type: ignore[union-attr]
        expires_at=result.session.expires_at,  # type: ignore[union-attr]
    )


@router.post("/forgot-password", response_model=MessageResponse)
@limiter.limit("3/minute")
def forgot_password(
    request: Request,
    body: ForgotPasswordRequest,
    db: Session = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Request a password reset. The response never reveals whether the account exists."""
    result = auth_service.request_password_reset(db, body.email)
    if not result.success:
        logger.error("Password reset request failed: %s", result.message)
    return MessageResponse(message=FORGOT_PASSWORD_MESSAGE)


@router.post("/reset-password", response_model=MessageResponse)
@limiter.limit("5/minute")
def reset_password(
    request: Request,
    body: ResetPasswordRequest,
    db: Session = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Reset password using a valid token."""
    _raise_for(auth_service.reset_password(db, body.token, body.password))
    return MessageResponse(message="Password reset successfully")


@router.get("/me", response_model=MeResponse)
def me(
    ctx: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
    profile_service: ProfileService = Depends(get_profile_service),
    prediction_service: PredictionService = Depends(get_prediction_service),
) -> MeResponse:
    """Current user with health profile and prediction statistics."""
    profile = profile_service.get_profile(db, ctx.user_id)
    stats = prediction_service.get_user_stats(db, ctx.user_id)
    return MeResponse(
        user=UserResponse.model_validate(ctx.user),
        profile=ProfileResponse.model_validate(profile) if profile else None,
        stats=PredictionStats(**stats),
    )


@router.put("/profile", response_model=ProfileUpdateResponse)
def update_profile(
    body: ProfileUpdateRequest,
    ctx: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
    profile_service: ProfileService = Depends(get_profile_service),
) -> ProfileUpdateResponse:
    """Update basic user fields and the health profile."""
    errors = profile_service.validate_update(body.first_name, body.last_name, body.phone, body.gender)
    if errors:
        raise ApiError(ErrorKind.VALIDATION_FAILED, "Validation failed", errors)

    user = profile_service.update_user(
        db,
        ctx.user,
        first_name=body.first_name,
        last_name=body.last_name,
        phone=body.phone,
        date_of_birth=body.date_of_birth,
        gender=body.gender,
    )
    profile = profile_service.update_health_profile(db, user.id, body.model_dump(include=set(HEALTH_FIELDS)))
    return ProfileUpdateResponse(
        message="Profile updated successfully",
        user=UserResponse.model_validate(user),
        profile=ProfileResponse.model_validate(profile) if profile else None,
    )


@router.put("/change-password", response_model=MessageResponse)
def change_password(
    body: ChangePasswordRequest,
    ctx: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Change the current user's password."""
    _raise_for(auth_service.change_password(db, ctx.user, body.current_password, body.new_password))
    logger.info("Password changed: user_id=%s", ctx.user_id)
    return MessageResponse(message="Password changed successfully")
