from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from stockpos.core.api_docs import error_responses
from stockpos.core.config import settings
from stockpos.core.deps import get_db
from stockpos.core.rate_limit import LoginRateLimiter, login_key
from stockpos.core.security import create_access_token, decode_token
from stockpos.core.security_current import get_current_user, oauth2_scheme
from stockpos.models.user import User
from stockpos.schemas.auth import (
    ChangePasswordIn,
    LoginIn,
    LoginOut,
    TokenOut,
    TokenValidationOut,
    UserOut,
)
from stockpos.schemas.common import Envelope
from stockpos.services import user_service

router = APIRouter(prefix="/auth", tags=["auth"])

login_rate_limiter = LoginRateLimiter(
    max_attempts=settings.auth_rate_limit_max_attempts,
    window_seconds=settings.auth_rate_limit_window_seconds,
    lock_seconds=settings.auth_rate_limit_lock_seconds,
)


def user_out(user: User) -> UserOut:
    return UserOut(
        id=user.id,
        username=user.username,
        full_name=user.full_name,
        email=user.email,
        role=user.role,
        is_active=bool(user.is_active),
        last_login_at=user.last_login_at,
        created_at=user.created_at,
    )


def _client_ip(request: Request) -> str:
    forwarded_for = request.headers.get("x-forwarded-for", "").strip()
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def _login(db: Session, request: Request, username: str, password: str) -> User:
    key = login_key(username, _client_ip(request))
    retry_after = login_rate_limiter.retry_after(key)
    if retry_after > 0:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many failed attempts. Try again later.",
            headers={"Retry-After": str(retry_after)},
        )

    user = user_service.authenticate(db, username, password)
    if user is None:
        login_rate_limiter.record_failure(key)
        raise HTTPException(status_code=401, detail="Invalid credentials")

    login_rate_limiter.reset(key)
    return user


@router.post(
    "/login",
    response_model=Envelope[LoginOut],
    summary="Login",
    description="Returns a bearer token and the user profile. Repeated failures lock the username for a while.",
    responses=error_responses(400, 401, 429, 500),
)
def login(payload: LoginIn, request: Request, db: Session = Depends(get_db)):
    user = _login(db, request, payload.username, payload.password)
    token = create_access_token(user.id, user.role)
    return Envelope(
        data=LoginOut(
            token=token,
            expires_in=settings.access_token_expire_minutes * 60,
            user=user_out(user),
        ),
        message="Login successful",
    )


@router.post(
    "/token",
    response_model=TokenOut,
    summary="OAuth2 password token (Swagger Authorize)",
    description="Form-data login endpoint used by Swagger Authorize.",
    responses=error_responses(401, 429, 500),
)
def login_for_swagger(
    request: Request,
    db: Session = Depends(get_db),
    form_data: OAuth2PasswordRequestForm = Depends(),
):
    user = _login(db, request, form_data.username, form_data.password)
    return TokenOut(access_token=create_access_token(user.id, user.role))


@router.get(
    "/me",
    response_model=Envelope[UserOut],
    summary="Current user",
    responses=error_responses(401, 500),
)
def me(user: User = Depends(get_current_user)):
    return Envelope(data=user_out(user))


@router.get(
    "/validate",
    response_model=Envelope[TokenValidationOut],
    summary="Validate token",
    responses=error_responses(401, 500),
)
def validate_token(
    token: str = Depends(oauth2_scheme),
    user: User = Depends(get_current_user),
):
    claims = decode_token(token)
    return Envelope(data=TokenValidationOut(valid=True, user=user_out(user), expires_at=claims.expires_at))


@router.post(
    "/change-password",
    response_model=Envelope[None],
    summary="Change own password",
    responses=error_responses(400, 401, 500),
)
def change_password(
    payload: ChangePasswordIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    user_service.change_password(db, user, payload.current_password, payload.new_password)
    return Envelope(message="Password updated")


@router.post(
    "/logout",
    response_model=Envelope[None],
    summary="Logout",
    description="Tokens are stateless; clients discard theirs. Kept for client symmetry.",
    responses=error_responses(401, 500),
)
def logout(_: User = Depends(get_current_user)):
    return Envelope(message="Logged out")
