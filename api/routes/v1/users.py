"""
api/routes/v1/users.py -- Admin user provisioning and permission management.

Routes (mounted under /api/admin):
  GET   /users                         -- list accounts            (users.view)
  POST  /users                         -- provision an account     (users.create)
  POST  /users/reset-password          -- issue a one-time password (users.edit)
  PATCH /users/{id}/permissions        -- role + custom overrides  (users.edit)
  GET   /users/{id}/role-permissions   -- role defaults vs extras  (users.view)

Security:
  Every route depends on require_permission(); the gate runs before the
  handler body, so a denied request reads and writes nothing.
  New and reset accounts always get must_change_password=True; the one-time
  password is returned exactly once and never logged.
  Escalation guard: a caller can only hand out grants they hold themselves
  (auth.permissions.can_grant), for both custom overrides and role defaults.
"""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from sqlalchemy.exc import IntegrityError

from api import activity
from api.models import (
    PasswordResetRequest,
    PasswordResetResponse,
    PermissionsUpdate,
    RolePermissionsResponse,
    UserCreate,
    UserCreatedResponse,
    UserListResponse,
    UserResponse,
)
from auth.catalog import get_role_default_permissions, is_valid_grant
from auth.credentials import hash_password
from auth.dependencies import require_permission
from auth.errors import Forbidden, UserNotFound
from auth.models import Role, User
from auth.permissions import can_grant, get_effective_permissions, get_extra_permissions
from auth.store import UserStore, generate_initial_password, normalize_permissions

router = APIRouter()


def _store(request: Request) -> UserStore:
    return request.app.state.user_store


def _get_role_or_400(store: UserStore, role_id: int | None) -> Role | None:
    if role_id is None:
        return None
    role = store.get_role_by_id(role_id)
    if role is None:
        raise HTTPException(
            status_code=400,
            detail={"code": "invalid_role", "message": f"Unknown role id {role_id}."},
        )
    return role


def _check_grants(actor: User, grants) -> None:
    """Raise Forbidden for the first grant the actor is not allowed to hand out."""
    for grant in sorted(grants):
        if not can_grant(actor, grant):
            raise Forbidden(grant)


def _check_outranks(actor: User, target: User) -> None:
    """Raise Forbidden unless the actor could grant everything the target holds.

    Guards operations that take something away from an account or hand its
    credentials to the actor (password reset, demotion, revoking grants).
    """
    _check_grants(actor, get_effective_permissions(target))


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


@router.get("/users", response_model=UserListResponse)
def list_users(
    request: Request,
    current_user: User = Depends(require_permission("users.view")),
) -> UserListResponse:
    return UserListResponse(users=[UserResponse.from_user(u) for u in _store(request).list_users()])


@router.get("/users/{user_id}/role-permissions", response_model=RolePermissionsResponse)
def role_permissions(
    request: Request,
    user_id: int,
    current_user: User = Depends(require_permission("users.view")),
) -> RolePermissionsResponse:
    """Role defaults for a user, plus the overrides that go beyond them (for UI highlighting)."""
    target = _store(request).find_user_by_id(user_id)
    if target is None:
        raise UserNotFound()
    return RolePermissionsResponse(
        role_name=target.role_name,
        role_display_name=target.role_display_name,
        role_permissions=sorted(get_role_default_permissions(target.role_name)),
        extra_permissions=get_extra_permissions(target),
    )


# ---------------------------------------------------------------------------
# Provisioning
# ---------------------------------------------------------------------------


@router.post("/users", response_model=UserCreatedResponse, status_code=201)
def create_user(
    request: Request,
    body: UserCreate,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(require_permission("users.create")),
) -> UserCreatedResponse:
    """Provision an account with a one-time password.

    The role's default permissions are copied into the new user's custom
    overrides as a starting template.
    """
    store = _store(request)
    role = _get_role_or_400(store, body.role_id)
    defaults = get_role_default_permissions(role.name) if role else frozenset()
    _check_grants(current_user, defaults)

    if store.find_user_by_username(body.username) is not None:
        raise HTTPException(
            status_code=409,
            detail={"code": "conflict", "message": "Username already exists."},
        )

    initial_password = generate_initial_password()
    new_user = User(
        username=body.username,
        password_hash=hash_password(initial_password),
        role_id=role.id if role else None,
        custom_permissions=sorted(defaults),
        verein_id=body.verein_id or None,
        must_change_password=True,
    )
    try:
        user_id = store.create_user(new_user)
    except IntegrityError as exc:
        # A concurrent request created the same username after our pre-check.
        raise HTTPException(
            status_code=409,
            detail={"code": "conflict", "message": "Username already exists."},
        ) from exc

    created = store.find_user_by_id(user_id)
    activity.record(
        background_tasks,
        request,
        current_user,
        "user.create",
        resource_type="user",
        resource_id=user_id,
        resource_title=body.username,
        details={"role": role.display_name if role else None, "vereinId": body.verein_id},
    )
    return UserCreatedResponse(user=UserResponse.from_user(created), initial_password=initial_password)


@router.post("/users/reset-password", response_model=PasswordResetResponse)
def reset_password(
    request: Request,
    body: PasswordResetRequest,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(require_permission("users.edit")),
) -> PasswordResetResponse:
    """Replace a user's password with a one-time password and force a change on next login.

    Existing sessions of the target stay valid until they expire; there is
    no server-side session table to revoke them from.
    """
    store = _store(request)
    target = store.find_user_by_id(body.user_id)
    if target is None:
        raise UserNotFound()
    _check_outranks(current_user, target)

    initial_password = generate_initial_password()
    store.update_password_hash(target.id, hash_password(initial_password), must_change_password=True)
    activity.record(
        background_tasks,
        request,
        current_user,
        "user.password_reset",
        resource_type="user",
        resource_id=target.id,
        resource_title=target.username,
        details={"reason": "Admin password reset"},
    )
    return PasswordResetResponse(username=target.username, initial_password=initial_password)


@router.patch("/users/{user_id}/permissions", response_model=UserResponse)
def update_permissions(
    request: Request,
    user_id: int,
    body: PermissionsUpdate,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(require_permission("users.edit")),
) -> UserResponse:
    """Set a user's role and custom permission overrides.

    Grants are normalized (trimmed, deduplicated, "*" collapses the list)
    and must be catalog keys, prefix wildcards, or "*". New grants must be
    grantable by the caller. Revoking grants or changing the role also
    requires the caller to cover everything the target currently holds.
    """
    store = _store(request)
    before = store.find_user_by_id(user_id)
    if before is None:
        raise UserNotFound()
    # Omitted fields keep their stored value; an explicit null clears it.
    fields_set = body.model_fields_set
    role = _get_role_or_400(store, body.role_id) if "role_id" in fields_set else None
    role_id = (role.id if role else None) if "role_id" in fields_set else before.role_id

    new_permissions = None
    if "custom_permissions" in fields_set:
        new_permissions = normalize_permissions(body.custom_permissions or [])
        invalid = [p for p in new_permissions if not is_valid_grant(p)]
        if invalid:
            raise HTTPException(
                status_code=400,
                detail={"code": "invalid_permission", "message": f"Unknown permission(s): {', '.join(invalid)}"},
            )
        _check_grants(current_user, set(new_permissions) - set(before.custom_permissions))
    if role is not None and role.id != before.role_id:
        _check_grants(current_user, role.default_permissions)
    revokes = new_permissions is not None and bool(set(before.custom_permissions) - set(new_permissions))
    if revokes or role_id != before.role_id:
        _check_outranks(current_user, before)

    update_verein = "verein_id" in fields_set
    updated = store.update_role_and_permissions(
        user_id,
        role_id,
        new_permissions,
        body.verein_id,
        update_verein=update_verein,
    )
    if updated is None:
        raise UserNotFound()

    details: dict = {}
    if before.role_id != updated.role_id:
        details["roleChange"] = {
            "from": before.role_display_name or before.role_name,
            "to": updated.role_display_name or updated.role_name,
        }
    if update_verein and before.verein_id != updated.verein_id:
        details["vereinChange"] = {"from": before.verein_id, "to": updated.verein_id}
    added = [p for p in updated.custom_permissions if p not in before.custom_permissions]
    removed = [p for p in before.custom_permissions if p not in updated.custom_permissions]
    if added:
        details["permissionsAdded"] = added
    if removed:
        details["permissionsRemoved"] = removed

    activity.record(
        background_tasks,
        request,
        current_user,
        "user.update",
        resource_type="user",
        resource_id=user_id,
        resource_title=before.username,
        details=details,
    )
    return UserResponse.from_user(updated)
