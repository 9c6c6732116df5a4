"""
Role, permission and decision data models for the RBAC service.
"""

import json
from typing import Dict, Any, Optional, List
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


ANONYMOUS_USER_ID = "anonymous"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CheckType(str, Enum):
    """Kinds of access check."""
    ROLE = "role"
    PERMISSION = "permission"


class RbacEventType(str, Enum):
    """Event types emitted on the change stream."""
    CONTEXT_UPDATED = "context_updated"
    ACCESS_GRANTED = "access_granted"
    ACCESS_DENIED = "access_denied"
    CACHE_CLEARED = "cache_cleared"
    CONFIG_UPDATED = "config_updated"


class RbacModel(BaseModel):
    """Base for caller-supplied records; accepts snake_case or camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore"
    )


class Role(RbacModel):
    """Named access grouping, optionally parented by another role."""
    id: str = Field(..., description="Unique role ID")
    name: str = Field(..., description="Display name")
    description: Optional[str] = Field(None, description="Role description")
    level: Optional[int] = Field(None, description="Informational authority level, 0 is highest")
    parent_role_id: Optional[str] = Field(None, description="ID of the parent role")
    active: bool = Field(True, description="Whether the role is active")
    tenant_id: Optional[str] = Field(None, description="Owning tenant")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Additional metadata")

    def visible_to(self, tenant_id: Optional[str]) -> bool:
        """Untagged roles are visible to every tenant."""
        return not tenant_id or not self.tenant_id or self.tenant_id == tenant_id


class Permission(RbacModel):
    """Grant of an action on a resource."""
    id: str = Field(..., description="Unique permission ID")
    name: str = Field(..., description="Display name")
    description: Optional[str] = Field(None, description="Permission description")
    resource: str = Field(..., description="Resource the permission applies to")
    action: str = Field(..., description="Action allowed on the resource")
    conditions: Dict[str, Any] = Field(default_factory=dict, description="Additional conditions")
    active: bool = Field(True, description="Whether the permission is active")
    tenant_id: Optional[str] = Field(None, description="Owning tenant")

    def visible_to(self, tenant_id: Optional[str]) -> bool:
        return not tenant_id or not self.tenant_id or self.tenant_id == tenant_id

    def matches(self, permission_id: str, resource: Optional[str] = None, action: Optional[str] = None) -> bool:
        """Match by id, or by (resource, action) when both are given."""
        if self.id == permission_id:
            return True
        if resource and action:
            return self.resource == resource and self.action == action
        return False


class UserContext(RbacModel):
    """The user the service currently answers for."""
    user_id: str = Field(..., description="User ID")
    roles: List[Role] = Field(default_factory=list, description="Directly assigned roles")
    permissions: List[Permission] = Field(default_factory=list, description="Directly assigned permissions")
    tenant_id: Optional[str] = Field(None, description="Current tenant")
    session_data: Dict[str, Any] = Field(default_factory=dict, description="Session metadata")
    last_updated: datetime = Field(default_factory=utcnow, description="When the context was built")

    @property
    def role_ids(self) -> List[str]:
        return [r.id for r in self.roles]

    @property
    def permission_ids(self) -> List[str]:
        return [p.id for p in self.permissions]


class CheckOptions(RbacModel):
    """Per-call options for an access check."""
    include_inherited: Optional[bool] = Field(None, description="Override hierarchy setting")
    tenant_id: Optional[str] = Field(None, description="Tenant to evaluate against")
    resource: Optional[str] = Field(None, description="Resource for permission matching")
    action: Optional[str] = Field(None, description="Action for permission matching")
    context: Dict[str, Any] = Field(default_factory=dict, description="Additional check context")

    def canonical(self) -> str:
        """Stable serialization used in cache keys."""
        values = self.model_dump(exclude_none=True)
        if not values.get("context"):
            values.pop("context", None)
        return json.dumps(values, sort_keys=True, separators=(",", ":"), default=str)


class PermissionCheckResult(RbacModel):
    """Outcome of a single check. Immutable once produced."""
    granted: bool = Field(..., description="Whether access is granted")
    reason: str = Field(..., description="Human-readable cause")
    granting_roles: Optional[List[str]] = Field(None, description="Role IDs that granted access")
    granting_permissions: Optional[List[str]] = Field(None, description="Permission IDs that granted access")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Additional check metadata")


@dataclass
class AuditLogEntry:
    """One audited check."""
    id: str
    user_id: str
    action: str
    resource: str
    result: PermissionCheckResult
    timestamp: datetime = field(default_factory=utcnow)
    context: Optional[Dict[str, Any]] = None


@dataclass
class RbacEvent:
    """Notification published on the change stream."""
    type: RbacEventType
    payload: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utcnow)
    user_id: Optional[str] = None
