# plantstore/auth/routes.py
from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from plantstore.auth import services
from plantstore.auth.dependencies import AuthContext, get_auth_context, get_current_user
from plantstore.auth.sessions import SessionLedger
from plantstore.config import settings
from plantstore.database import get_db
from plantstore.models import User
from plantstore.observability import get_logger
from plantstore.schemas import (
    AuthResponse,
    ChangePasswordRequest,
    ForgotPasswordRequest,
    ForgotPasswordResponse,
    LoginRequest,
    MessageResponse,
    ProfileResponse,
    ProfileUpdate,
    RegisterRequest,
    ResetPasswordRequest,
    SessionsResponse,
    TokenResponse,
)

logger = get_logger(__name__)

router = APIRouter()

RESET_REQUESTED_MESSAGE = "If an account with that email exists, a password reset link has been sent"


def _set_token_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.TOKEN_COOKIE_NAME,
        value=token,
        max_age=settings.ACCESS_TOKEN_EXPIRE_SECONDS,
        httponly=True,
        samesite="lax",
        secure=settings.is_production,
    )


def _auth_response(result: services.LoginResult) -> AuthResponse:
    user = result.user
    return AuthResponse(id=user.id, name=user.name, email=user.email, is_admin=user.is_admin, token=result.token)


# ---------- REGISTER ----------
@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register(body: RegisterRequest, request: Request, response: Response, db: Session = Depends(get_db)):
    result, verification_token = services.register_user(db, body.name, body.email, body.password, request)
    # mail delivery is out of scope; the raw token is never logged
    logger.info("verification_email_queued", user_id=result.user.id, has_token=bool(verification_token))
    _set_token_cookie(response, result.token)
    return _auth_response(result)


# ---------- Swagger login endpoint ----------
@router.post("/swagger-login", response_model=TokenResponse)
def login_swagger(request: Request, form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
    """
    OAuth2 login endpoint for Swagger UI.
    Form data: username (the email address), password.
    """
    result = services.authenticate_user(email=form_data.username, password=form_data.password, db=db, request=request)
    return TokenResponse(access_token=result.token)


# ---------- LOGIN ----------
@router.post("/login", response_model=AuthResponse)
def login(body: LoginRequest, request: Request, response: Response, db: Session = Depends(get_db)):
    result = services.authenticate_user(email=body.email, password=body.password, db=db, request=request)
    _set_token_cookie(response, result.token)
    return _auth_response(result)


# ---------- LOGOUT ----------
@router.post("/logout", response_model=MessageResponse)
def logout(response: Response, context: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    """Revokes the session behind the presented token only; other devices stay signed in."""
    services.logout_user(db, context.user, context.claims)
    response.delete_cookie(settings.TOKEN_COOKIE_NAME, httponly=True, samesite="lax")
    return MessageResponse(message="Logged out successfully")


# ---------- SESSIONS ----------
@router.get("/sessions", response_model=SessionsResponse)
def list_sessions(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return SessionsResponse(sessions=SessionLedger(db, user).list_sessions())


@router.delete("/sessions", response_model=MessageResponse)
def revoke_all_sessions(response: Response, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    count = SessionLedger(db, user).revoke_all()
    db.commit()
    logger.info("sessions_revoked_all", user_id=user.id, count=count)
    response.delete_cookie(settings.TOKEN_COOKIE_NAME, httponly=True, samesite="lax")
    return MessageResponse(message="All sessions revoked")


@router.delete("/sessions/{jti}", response_model=MessageResponse)
def revoke_session(jti: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    SessionLedger(db, user).revoke(jti)
    db.commit()
    logger.info("session_revoked", user_id=user.id, jti=jti)
    return MessageResponse(message="Session revoked")


# ---------- PASSWORD RESET ----------
@router.post("/forgot-password", response_model=ForgotPasswordResponse, response_model_exclude_none=True)
def forgot_password(body: ForgotPasswordRequest, db: Session = Depends(get_db)):
    # same answer whether or not the account exists
    raw_token = services.request_password_reset(db, body.email)
    payload = ForgotPasswordResponse(message=RESET_REQUESTED_MESSAGE)
    if raw_token and settings.DEBUG_TOKENS:
        payload.reset_token = raw_token
    return payload


@router.put("/reset-password/{token}", response_model=MessageResponse)
def reset_password(token: str, body: ResetPasswordRequest, db: Session = Depends(get_db)):
    services.reset_password(db, token, body.password)
    return MessageResponse(message="Password reset successful. Please log in with your new password")


@router.get("/verify-email/{token}", response_model=MessageResponse)
def verify_email(token: str, db: Session = Depends(get_db)):
    services.verify_email(db, token)
    return MessageResponse(message="Email verified successfully")


# ---------- PROFILE ----------
def _profile(db: Session, user: User) -> ProfileResponse:
    return ProfileResponse(
        id=user.id,
        name=user.name,
        email=user.email,
        role=user.role.value,
        is_admin=user.is_admin,
        is_verified=user.is_verified,
        session_stats=SessionLedger(db, user).stats(),
    )


@router.get("/profile", response_model=ProfileResponse)
def get_profile(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return _profile(db, user)


@router.put("/profile", response_model=ProfileResponse)
def update_profile(body: ProfileUpdate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    user = services.update_profile(db, user, name=body.name, email=body.email)
    return _profile(db, user)


@router.put("/password", response_model=AuthResponse)
def change_password(
    body: ChangePasswordRequest,
    request: Request,
    response: Response,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Every existing session is revoked; the response carries a fresh token."""
    result = services.change_password(db, user, body.current_password, body.new_password, request)
    _set_token_cookie(response, result.token)
    return _auth_response(result)
