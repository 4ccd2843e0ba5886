"""
api/routes/v1/auth.py -- Session endpoints: login, logout, me, change-password.

Routes (mounted under /api/admin):
  POST /login            -- password login; sets the admin-session cookie
  POST /logout           -- clears the cookie; 200 whether or not logged in
  GET  /me               -- current user and merged permissions (requires session)
  POST /change-password  -- new password + fresh session (requires session;
                            the only write allowed while must-change is set)

Security:
  POST /login is rate-limited per IP (Settings.login_rate_limit).
  Authenticator.verify_credentials() provides timing equalization; never
  inline a lookup + bcrypt check here.
  Wrong username and wrong password get the identical 401 body.
  Cache-Control: no-store on login responses.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from api import activity
from api.limiter import limiter
from api.models import ChangePasswordRequest, LoginRequest, LoginResponse, MeResponse, SuccessResponse
from auth.authenticator import Authenticator
from auth.dependencies import get_authenticator, get_current_user, get_request_context
from auth.models import User
from auth.permissions import RequestContext, get_effective_permissions
from core.config import get_settings

logger = logging.getLogger("wendessen.api")

# Auth policy:
# - POST /login:           public -- login endpoint must be unauthenticated
# - POST /logout:          public -- clearing a cookie needs no prior auth
# - GET  /me:              requires session (get_current_user)
# - POST /change-password: requires session (get_current_user), must-change allowed
router = APIRouter()

_BAD_CREDENTIALS = {"error": {"code": "bad_credentials", "message": "Invalid username or password."}}


@limiter.limit(get_settings().login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/login", response_model=LoginResponse)
def login(
    request: Request,
    body: LoginRequest,
    background_tasks: BackgroundTasks,
    authenticator: Authenticator = Depends(get_authenticator),
) -> JSONResponse:
    """Authenticate with username and password; set the session cookie.

    Sync handler on purpose: bcrypt is CPU-bound, so FastAPI runs this in the
    thread pool instead of blocking the event loop.
    """
    user = authenticator.verify_credentials(body.username, body.password)
    if user is None:
        resp = JSONResponse(status_code=401, content=_BAD_CREDENTIALS)
        resp.headers["Cache-Control"] = "no-store"
        return resp

    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(must_change_password=user.must_change_password).model_dump(),
    )
    authenticator.create_session(resp, user)
    try:
        authenticator.store.update_last_login(user.id)
    except SQLAlchemyError:
        # last_login is best effort once the cookie is set.
        logger.exception("Could not record last_login for user_id=%s", user.id)
    activity.record(background_tasks, request, user, "auth.login", resource_type="auth")
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/logout", response_model=SuccessResponse)
async def logout(
    request: Request,
    background_tasks: BackgroundTasks,
    context: RequestContext = Depends(get_request_context),
    authenticator: Authenticator = Depends(get_authenticator),
) -> JSONResponse:
    """Clear the session cookie. Logged only when there was a live session."""
    if context.is_authenticated:
        activity.record(background_tasks, request, context.user, "auth.logout", resource_type="auth")
    resp = JSONResponse(content=SuccessResponse(message="Logout successful").model_dump())
    authenticator.clear_session(resp)
    return resp


@router.get("/me", response_model=MeResponse)
async def me(
    context: RequestContext = Depends(get_request_context),
    current_user: User = Depends(get_current_user),
) -> MeResponse:
    """Return the caller's live record with role and custom permissions merged."""
    return MeResponse(
        id=current_user.id,
        username=current_user.username,
        role_name=current_user.role_name,
        role_display_name=current_user.role_display_name,
        permissions=get_effective_permissions(current_user),
        verein_id=current_user.verein_id,
        must_change_password=context.must_change_password,
    )


@router.post("/change-password", response_model=SuccessResponse)
def change_password(
    request: Request,
    body: ChangePasswordRequest,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    authenticator: Authenticator = Depends(get_authenticator),
) -> JSONResponse:
    """Change the caller's password and replace their session.

    WeakPassword (400) is raised before anything is written. On success the
    response carries a fresh cookie without the must-change flag.
    """
    resp = JSONResponse(content=SuccessResponse(message="Password changed").model_dump())
    authenticator.change_password(resp, current_user.id, body.new_password)
    activity.record(background_tasks, request, current_user, "auth.password_change", resource_type="auth")
    return resp
