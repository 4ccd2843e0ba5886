"""
API request and response models for the admin REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
audit/models.py, which own the internal domain representation. Route handlers
map between the two. Password hashes never appear in any response model.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from audit.models import LogEntry
from auth.models import Permission, Role, User

USERNAME_PATTERN = r"^[a-zA-Z0-9_-]+$"


# ---------------------------------------------------------------------------
# Errors / health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Session endpoints
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/admin/login.

    No pattern on username: a malformed name must get the same generic
    bad_credentials answer as an unknown one, not a 422.
    """

    username: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=255)


class LoginResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    message: str = "Login successful"
    must_change_password: bool


class ChangePasswordRequest(BaseModel):
    """Request body for POST /api/admin/change-password. Strength is checked by the core, not here."""

    new_password: str = Field(min_length=1, max_length=255)


class SuccessResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    message: Optional[str] = None


class MeResponse(BaseModel):
    """The caller's identity plus their merged (role + custom) permissions."""

    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    role_name: Optional[str]
    role_display_name: Optional[str]
    permissions: list[str]
    verein_id: Optional[str]
    must_change_password: bool


# ---------------------------------------------------------------------------
# User management
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    must_change_password: bool
    role_id: Optional[int]
    role_name: Optional[str]
    role_display_name: Optional[str]
    custom_permissions: list[str]
    verein_id: Optional[str]
    created_at: str
    updated_at: str
    last_login: Optional[str]

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            username=user.username,
            must_change_password=user.must_change_password,
            role_id=user.role_id,
            role_name=user.role_name,
            role_display_name=user.role_display_name,
            custom_permissions=list(user.custom_permissions),
            verein_id=user.verein_id,
            created_at=user.created_at or "",
            updated_at=user.updated_at or "",
            last_login=user.last_login,
        )


class UserListResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    users: list[UserResponse]


class UserCreate(BaseModel):
    """Request body for POST /api/admin/users."""

    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(min_length=1, max_length=100, pattern=USERNAME_PATTERN)
    role_id: Optional[int] = None
    verein_id: Optional[str] = Field(default=None, max_length=100)


class UserCreatedResponse(BaseModel):
    """The initial password is returned exactly once, here."""

    model_config = ConfigDict(frozen=True)

    user: UserResponse
    initial_password: str


class PasswordResetRequest(BaseModel):
    user_id: int


class PasswordResetResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    username: str
    initial_password: str


class PermissionsUpdate(BaseModel):
    """Request body for PATCH /api/admin/users/{id}/permissions.

    Fields are only applied when present in the body; an explicit null
    clears the role, the verein or the custom overrides.
    """

    role_id: Optional[int] = None
    custom_permissions: Optional[list[str]] = Field(default=None, max_length=200)
    verein_id: Optional[str] = Field(default=None, max_length=100)


class RolePermissionsResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    role_name: Optional[str]
    role_display_name: Optional[str]
    role_permissions: list[str]
    extra_permissions: list[str]


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


class PermissionInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    category: str
    display_name: str
    description: str

    @classmethod
    def from_permission(cls, perm: Permission) -> "PermissionInfo":
        return cls(
            name=perm.name,
            category=perm.category,
            display_name=perm.display_name,
            description=perm.description,
        )


class PermissionCatalogResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    categories: dict[str, str]
    permissions: dict[str, list[PermissionInfo]]


class RoleInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: Optional[int]
    name: str
    display_name: str
    description: str
    default_permissions: list[str]

    @classmethod
    def from_role(cls, role: Role) -> "RoleInfo":
        return cls(
            id=role.id,
            name=role.name,
            display_name=role.display_name,
            description=role.description,
            default_permissions=sorted(role.default_permissions),
        )


class RoleListResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    roles: list[RoleInfo]


# ---------------------------------------------------------------------------
# Audit log
# ---------------------------------------------------------------------------


class LogEntryResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    user_id: Optional[int]
    username: Optional[str]
    action: str
    resource_type: Optional[str]
    resource_id: Optional[str]
    resource_title: Optional[str]
    details: Optional[dict[str, Any]]
    ip_address: Optional[str]
    user_agent: Optional[str]
    created_at: str

    @classmethod
    def from_entry(cls, entry: LogEntry) -> "LogEntryResponse":
        return cls(
            id=entry.id,
            user_id=entry.user_id,
            username=entry.username,
            action=entry.action,
            resource_type=entry.resource_type,
            resource_id=entry.resource_id,
            resource_title=entry.resource_title,
            details=entry.details,
            ip_address=entry.ip_address,
            user_agent=entry.user_agent,
            created_at=entry.created_at or "",
        )


class LogListResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    logs: list[LogEntryResponse]
    total: int
    page: int
    limit: int
