"""
api/routes/v1/auth.py -- Registration and session endpoints.

Routes:
  POST /api/v1/auth/register   -- self-service sign-up (SELF_REGISTRATION_ENABLED)
  POST /api/v1/auth/login      -- password login; sets JWT cookie, returns token
  POST /api/v1/auth/logout     -- clears cookie; 200
  GET  /api/v1/auth/me         -- current user info (requires auth)

Security:
  POST /login is rate-limited to 10 requests/minute per IP.
  authenticate_user() provides timing equalization -- use it, never inline.
  Cache-Control: no-store on login responses.
  Wrong username and wrong password produce the same 401 body.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, LoginRequest, LoginResponse, RegisterRequest, UserResponse
from auth.dependencies import get_current_user
from auth.models import User
from auth.store import UserStore
from auth.tokens import authenticate_user, clear_auth_cookie, create_access_token, hash_password, set_auth_cookie
from core.config import get_settings

logger = logging.getLogger("vulntrack.auth")

# Auth policy:
# - POST /api/v1/auth/register: public (unless disabled by config)
# - POST /api/v1/auth/login:    public
# - POST /api/v1/auth/logout:   public -- clearing a cookie needs no prior auth
# - GET  /api/v1/auth/me:       requires auth (get_current_user)
router = APIRouter()


@limiter.limit("5/minute")
@router.post("/auth/register", response_model=UserResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> UserResponse:
    """Create a regular user account.

    New accounts always get role "user"; admins are created with
    `python main.py create-user --admin`.
    """
    if not get_settings().self_registration_enabled:
        raise HTTPException(
            status_code=403,
            detail=ErrorDetail(code="registration_disabled", message="Self-registration is disabled.").model_dump(),
        )
    user_store: UserStore = request.app.state.user_store
    try:
        user_id = user_store.create_user(
            User(username=body.username, email=body.email, role="user", hashed_password=hash_password(body.password))
        )
    except IntegrityError as exc:
        raise HTTPException(
            status_code=409,
            detail=ErrorDetail(code="conflict", message="Username or email already exists.").model_dump(),
        ) from exc
    logger.info("User registered: %s", body.username)
    return _user_to_response(user_store.get_by_id(user_id))


@limiter.limit("10/minute")  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with username and password; set JWT cookie and return the token.

    The token in the body serves API clients that send Authorization: Bearer;
    browsers rely on the httpOnly cookie instead.
    """
    user_store: UserStore = request.app.state.user_store
    user = authenticate_user(user_store, body.username, body.password)
    if user is None:
        logger.info("Failed login for %r", body.username)
        resp = JSONResponse(
            status_code=401,
            content=ErrorResponse(
                error=ErrorDetail(code="bad_credentials", message="Invalid username or password.")
            ).model_dump(),
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp

    user_store.update_last_login(user.id)
    settings = get_settings()
    token = create_access_token(user.id, user.username, user.role)
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            access_token=token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=settings.token_expire_seconds,
            user=_user_to_response(user),
        ).model_dump(by_alias=True),
    )
    set_auth_cookie(resp, token)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/logout")
def logout() -> JSONResponse:
    """Clear the JWT cookie and end the session."""
    resp = JSONResponse(content={"message": "Logged out."})
    clear_auth_cookie(resp)
    return resp


@router.get("/auth/me", response_model=UserResponse)
def me(current_user: User = Depends(get_current_user)) -> UserResponse:
    """Return identity information for the currently authenticated user."""
    return _user_to_response(current_user)


def _user_to_response(user: User | None) -> UserResponse:
    if user is None:
        raise HTTPException(
            status_code=500,
            detail=ErrorDetail(code="internal_error", message="User not found after write.").model_dump(),
        )
    return UserResponse(
        id=user.id,
        username=user.username,
        email=user.email,
        role=user.role,
        created_at=user.created_at or "",
    )
