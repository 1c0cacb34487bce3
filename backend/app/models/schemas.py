"""
Pydantic schemas
Request/response validation for the API
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator

from core.security.legacy_roles import LegacyRole
from core.security.permission import PermissionKey


# ============== Auth Schemas ==============

class UserResponse(BaseModel):
    id: int
    email: str
    first_name: str
    last_name: str
    role: LegacyRole
    organization_id: Optional[int] = None
    property_id: Optional[int] = None
    department_id: Optional[int] = None
    is_active: bool
    model_config = ConfigDict(from_attributes=True)


class LoginRequest(BaseModel):
    email: str
    password: str


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


class TokenPayload(BaseModel):
    sub: int
    role: LegacyRole
    org: Optional[int] = None
    exp: datetime


# ============== Permission Check Schemas ==============

class PermissionContextIn(BaseModel):
    """Target of a permission check"""
    organization_id: Optional[int] = None
    property_id: Optional[int] = None
    department_id: Optional[int] = None
    resource_owner_id: Optional[int] = None
    resource_id: Optional[int] = None
    current_time: Optional[datetime] = None


class PermissionCheckRequest(BaseModel):
    resource: str = Field(..., min_length=1, max_length=100)
    action: str = Field(..., min_length=1, max_length=50)
    scope: str = Field(..., min_length=1, max_length=30)
    context: Optional[PermissionContextIn] = None
    conditions: Optional[Dict[str, Any]] = None


class PermissionCheckResponse(BaseModel):
    permission: str
    allowed: bool
    reason: Optional[str] = None
    source: str
    scope_filters: Optional[Dict[str, Any]] = None
    ttl: Optional[int] = None


class BulkCheckItem(BaseModel):
    """Fields are optional; a malformed item is reported as an error in the result"""
    resource: Optional[str] = None
    action: Optional[str] = None
    scope: Optional[str] = None
    context: Optional[PermissionContextIn] = None
    conditions: Optional[Dict[str, Any]] = None


class BulkCheckRequest(BaseModel):
    permissions: List[BulkCheckItem] = Field(..., min_length=1, max_length=200)
    global_context: Optional[PermissionContextIn] = None


class BulkCheckResponse(BaseModel):
    permissions: Dict[str, PermissionCheckResponse]
    cached: int
    evaluated: int
    errors: int


# ============== Permission Mutation Schemas ==============

class PermissionRef(BaseModel):
    """A catalog permission, by id or by `resource.action.scope`"""
    permission_id: Optional[int] = None
    permission: Optional[str] = None

    @field_validator("permission")
    @classmethod
    def validate_permission_string(cls, v: Optional[str]) -> Optional[str]:
        if v is not None:
            PermissionKey.parse(v)
        return v

    @model_validator(mode="after")
    def require_reference(self):
        if self.permission_id is None and not self.permission:
            raise ValueError("permission_id or permission is required")
        return self


class GrantPermissionRequest(PermissionRef):
    user_id: int
    expires_at: Optional[datetime] = None
    conditions: Optional[Dict[str, Any]] = None
    reason: Optional[str] = Field(None, max_length=500)


class RevokePermissionRequest(PermissionRef):
    user_id: int
    reason: Optional[str] = Field(None, max_length=500)


class DenyPermissionRequest(GrantPermissionRequest):
    pass


class AssignRoleRequest(BaseModel):
    user_id: int
    role_id: int
    expires_at: Optional[datetime] = None
    conditions: Optional[Dict[str, Any]] = None
    reason: Optional[str] = Field(None, max_length=500)


class UnassignRoleRequest(BaseModel):
    user_id: int
    role_id: int
    reason: Optional[str] = Field(None, max_length=500)


class UserPermissionResponse(BaseModel):
    id: int
    user_id: int
    permission_id: int
    granted: bool
    is_active: bool
    expires_at: Optional[datetime] = None
    granted_by: Optional[int] = None
    conditions: Optional[Dict[str, Any]] = None
    model_config = ConfigDict(from_attributes=True)


class UserRoleResponse(BaseModel):
    id: int
    user_id: int
    role_id: int
    is_active: bool
    expires_at: Optional[datetime] = None
    assigned_by: Optional[int] = None
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


# ============== Permission Catalog Schemas ==============

class PermissionBase(BaseModel):
    resource: str = Field(..., min_length=1, max_length=100, pattern=r"^[A-Za-z0-9_*-]+$")
    action: str = Field(..., min_length=1, max_length=50, pattern=r"^[A-Za-z0-9_*-]+$")
    scope: str = Field(..., min_length=1, max_length=30)
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    category: Optional[str] = Field(None, max_length=50)


class PermissionCreate(PermissionBase):
    pass


class PermissionUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    category: Optional[str] = Field(None, max_length=50)


class PermissionResponse(PermissionBase):
    id: int
    is_system: bool = False
    model_config = ConfigDict(from_attributes=True)


# ============== Custom Role Schemas ==============

class RoleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    organization_id: Optional[int] = None
    property_id: Optional[int] = None
    priority: int = 0
    permission_ids: List[int] = []


class RoleUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    priority: Optional[int] = None
    is_active: Optional[bool] = None


class RoleResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    organization_id: Optional[int] = None
    property_id: Optional[int] = None
    is_system_role: bool = False
    priority: int = 0
    is_active: bool = True
    permission_count: int = 0
    user_count: int = 0
    model_config = ConfigDict(from_attributes=True)


class RoleDetailResponse(RoleResponse):
    permissions: List[PermissionResponse] = []


class RolePermissionsUpdate(BaseModel):
    permission_ids: List[int]


class RoleUsersBulk(BaseModel):
    user_ids: List[int] = Field(..., min_length=1, max_length=200)
    reason: Optional[str] = Field(None, max_length=500)


class BulkFailure(BaseModel):
    user_id: Optional[int] = None
    error: str


class RoleUsersBulkResponse(BaseModel):
    successful: List[int]
    failed: List[BulkFailure]
    summary: Dict[str, int]


# ============== System Role Schemas ==============

class SystemRoleResponse(BaseModel):
    role: LegacyRole
    name: str
    description: str
    level: int
    user_type: str
    capabilities: List[str] = []
    user_count: int = 0
    assignable: bool = False


class SystemRoleAssign(BaseModel):
    user_id: int
    role: LegacyRole
    reason: Optional[str] = Field(None, max_length=500)


class BulkSystemRoleAssign(BaseModel):
    assignments: List[SystemRoleAssign] = Field(..., min_length=1, max_length=200)
    reason: Optional[str] = Field(None, max_length=500)


class BulkSystemRoleAssignResponse(BaseModel):
    successful: List[UserResponse]
    failed: List[BulkFailure]


# ============== Audit Schemas ==============

class AuditLogResponse(BaseModel):
    id: int
    actor_id: Optional[int] = None
    action: str
    entity: str
    entity_id: Optional[int] = None
    old_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)
