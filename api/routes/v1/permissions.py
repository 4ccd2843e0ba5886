"""
api/routes/v1/permissions.py -- Read-only permission catalog and role list.

Routes (mounted under /api/admin):
  GET /permissions  -- catalog grouped by category, "*" under "system" (users.view)
  GET /roles        -- seeded roles with their default sets          (users.view)

Both feed the user-management screens, hence the users.view gate.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import PermissionCatalogResponse, PermissionInfo, RoleInfo, RoleListResponse
from auth.catalog import PERMISSION_CATEGORIES, list_permissions_by_category
from auth.dependencies import require_permission
from auth.models import User

router = APIRouter()


@router.get("/permissions", response_model=PermissionCatalogResponse)
async def list_permissions(
    current_user: User = Depends(require_permission("users.view")),
) -> PermissionCatalogResponse:
    grouped = list_permissions_by_category()
    return PermissionCatalogResponse(
        categories={"system": "System", **PERMISSION_CATEGORIES},
        permissions={
            category: [PermissionInfo.from_permission(p) for p in perms] for category, perms in grouped.items()
        },
    )


@router.get("/roles", response_model=RoleListResponse)
def list_roles(
    request: Request,
    current_user: User = Depends(require_permission("users.view")),
) -> RoleListResponse:
    roles = request.app.state.user_store.list_roles()
    return RoleListResponse(roles=[RoleInfo.from_role(r) for r in roles])
