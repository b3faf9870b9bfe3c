"""Pydantic schemas for request/response validation."""
from datetime import datetime
from typing import Optional, List, Union
from uuid import UUID

from pydantic import BaseModel, Field, ConfigDict

from .models import Action, MembershipKind, ResourceKind, RoleLabel


# Permission Schemas

class PermissionCheckResponse(BaseModel):
    """Result of a permission check."""

    user_id: UUID
    resource_kind: ResourceKind
    resource_id: str
    action: Action
    allowed: bool
    granted_by: Optional[str] = Field(None, description="Resolution step that granted access")

    model_config = ConfigDict(use_enum_values=True)


# Membership Schemas

class MembershipCreate(BaseModel):
    """Schema for adding a membership."""

    user_id: UUID
    target_id: Union[int, UUID] = Field(..., description="Area or unit ID (int), project or task ID (UUID)")
    role_id: Optional[int] = Field(None, description="Role reference (unit, project and task memberships only)")


class MembershipChangeResponse(BaseModel):
    """Result of adding or removing a membership."""

    kind: MembershipKind
    membership_id: UUID
    user_id: UUID
    target_id: Union[int, UUID]
    role_label: RoleLabel
    role_changed: bool

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


# User Schemas

class RolePromotionResponse(BaseModel):
    """A user's role label after promotion."""

    user_id: UUID
    role_label: RoleLabel

    model_config = ConfigDict(use_enum_values=True)


# Lifecycle Schemas

class ArchiveOutcomeResponse(BaseModel):
    """Result of an archive or unarchive operation, cascades included."""

    entity_kind: ResourceKind
    entity_id: UUID
    archived_at: Optional[datetime] = None
    archived_by_id: Optional[UUID] = None
    evidence_ids: List[UUID] = Field(default_factory=list)
    task_ids: List[UUID] = Field(default_factory=list)
    process_ids: List[UUID] = Field(default_factory=list)
    auto_archived_process_id: Optional[UUID] = None
    auto_archived_project_id: Optional[UUID] = None

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


# Error Schemas

class ErrorResponse(BaseModel):
    """Body returned for domain errors."""

    error: str
    message: str
    resource_kind: Optional[str] = None
    resource_id: Optional[str] = None
