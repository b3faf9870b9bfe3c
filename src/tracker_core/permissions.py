"""Authorization facade used by the CRUD and API layers.

Thin, named predicates over the role resolver plus the membership-management
rules. Every predicate verifies that the resource exists before deciding, so
a missing resource raises NotFoundError instead of returning False.
"""
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from . import hierarchy, membership_store, role_resolver
from .errors import PermissionDeniedError
from .models import MEMBERSHIP_TARGETS, Action, MembershipKind, ResourceKind

logger = logging.getLogger("tracker-core.permissions")

is_super_admin = role_resolver.is_super_admin
is_area_admin = membership_store.is_area_admin
is_area_member = membership_store.is_area_member
is_unit_member = membership_store.is_unit_member
is_project_member = membership_store.is_project_member
is_task_member = membership_store.is_task_member


# ============================================================================
# Resource actions
# ============================================================================

def can_perform_task_action(db: Session, user_id: UUID, task_id: UUID, action: Action) -> bool:
    return role_resolver.can_perform(db, user_id, ResourceKind.TASK, task_id, action)


def can_perform_process_action(db: Session, user_id: UUID, process_id: UUID, action: Action) -> bool:
    return role_resolver.can_perform(db, user_id, ResourceKind.PROCESS, process_id, action)


def can_perform_project_action(db: Session, user_id: UUID, project_id: UUID, action: Action) -> bool:
    return role_resolver.can_perform(db, user_id, ResourceKind.PROJECT, project_id, action)


def can_perform_area_action(db: Session, user_id: UUID, area_id: int, action: Action) -> bool:
    return role_resolver.can_perform(db, user_id, ResourceKind.AREA, area_id, action)


def can_perform_unit_action(db: Session, user_id: UUID, unit_id: int, action: Action) -> bool:
    return role_resolver.can_perform(db, user_id, ResourceKind.UNIT, unit_id, action)


def can_comment_on_task(db: Session, user_id: UUID, task_id: UUID) -> bool:
    """
    Check if a user may comment on a task.

    Only the people working on the task count: a TaskMember of the task or a
    ProjectMember of its project. Area and unit grants do not apply.

    Raises:
        NotFoundError: If the task or its process or project does not exist
    """
    project_id = hierarchy.resolve_project_id(db, ResourceKind.TASK, task_id)
    if membership_store.is_task_member(db, user_id, task_id):
        return True
    return project_id is not None and membership_store.is_project_member(db, user_id, project_id)


def can_upload_evidence(db: Session, user_id: UUID, task_id: UUID) -> bool:
    """Check if a user may attach evidence to a task (same rule as commenting)."""
    return can_comment_on_task(db, user_id, task_id)


# ============================================================================
# Membership management
# ============================================================================

def can_manage_membership(
    db: Session,
    actor_id: UUID,
    kind: MembershipKind,
    target_id,
) -> bool:
    """
    Check if an actor may add or remove memberships of a kind on a target.

    Rules:
        area_admin / area_member -> super admin, or AreaAdmin of that area
        unit_member              -> super admin, any AreaAdmin, or unit admin of that unit
        project_member           -> super admin, AreaAdmin of the project's area, or project admin
        task_member              -> assign permission on the task

    Args:
        db: Database session
        actor_id: User performing the change
        kind: Membership kind
        target_id: ID of the area, unit, project or task

    Raises:
        NotFoundError: If the target does not exist
    """
    kind = MembershipKind(kind)

    if kind == MembershipKind.TASK_MEMBER:
        return role_resolver.can_perform(db, actor_id, ResourceKind.TASK, target_id, Action.ASSIGN)

    if kind in (MembershipKind.AREA_ADMIN, MembershipKind.AREA_MEMBER):
        area_id = hierarchy.resolve_owning_area(db, ResourceKind.AREA, target_id)
        if is_super_admin(db, actor_id):
            return True
        return membership_store.is_area_admin(db, actor_id, area_id)

    if kind == MembershipKind.UNIT_MEMBER:
        unit_id = hierarchy.resolve_unit(db, ResourceKind.UNIT, target_id)
        if is_super_admin(db, actor_id):
            return True
        if membership_store.has_any_area_admin(db, actor_id):
            return True
        return membership_store.is_unit_admin(db, actor_id, unit_id)

    # Project member
    area_id = hierarchy.resolve_owning_area(db, ResourceKind.PROJECT, target_id)
    if is_super_admin(db, actor_id):
        return True
    if area_id is not None and membership_store.is_area_admin(db, actor_id, area_id):
        return True
    return membership_store.is_project_admin(db, actor_id, target_id)


# ============================================================================
# Guards
# ============================================================================

def _deny(user_id: UUID, action, kind: ResourceKind, resource_id, message: Optional[str] = None):
    action_value = action.value if isinstance(action, Action) else str(action)
    logger.warning(f"Permission denied: user {user_id} cannot {action_value} {kind.value} {resource_id}")
    raise PermissionDeniedError(user_id, action_value, kind.value, resource_id, message)


def ensure_can_perform(db: Session, user_id: UUID, kind: ResourceKind, resource_id, action: Action) -> None:
    """
    Raise PermissionDeniedError unless the user may perform the action.

    Raises:
        NotFoundError: If the resource or a required ancestor does not exist
        PermissionDeniedError: If the action is not allowed
    """
    if not role_resolver.can_perform(db, user_id, kind, resource_id, action):
        _deny(user_id, action, kind, resource_id)


def ensure_task_action(db: Session, user_id: UUID, task_id: UUID, action: Action) -> None:
    ensure_can_perform(db, user_id, ResourceKind.TASK, task_id, action)


def ensure_process_action(db: Session, user_id: UUID, process_id: UUID, action: Action) -> None:
    ensure_can_perform(db, user_id, ResourceKind.PROCESS, process_id, action)


def ensure_project_action(db: Session, user_id: UUID, project_id: UUID, action: Action) -> None:
    ensure_can_perform(db, user_id, ResourceKind.PROJECT, project_id, action)


def ensure_area_action(db: Session, user_id: UUID, area_id: int, action: Action) -> None:
    ensure_can_perform(db, user_id, ResourceKind.AREA, area_id, action)


def ensure_unit_action(db: Session, user_id: UUID, unit_id: int, action: Action) -> None:
    ensure_can_perform(db, user_id, ResourceKind.UNIT, unit_id, action)


def ensure_can_manage_membership(db: Session, actor_id: UUID, kind: MembershipKind, target_id) -> None:
    """
    Raise PermissionDeniedError unless the actor may manage this membership kind.

    Raises:
        NotFoundError: If the target does not exist
        PermissionDeniedError: If the actor is not allowed
    """
    kind = MembershipKind(kind)
    if not can_manage_membership(db, actor_id, kind, target_id):
        _deny(
            actor_id,
            "manage",
            MEMBERSHIP_TARGETS[kind],
            target_id,
            f"User {actor_id} is not allowed to manage {kind.value} memberships of {target_id}",
        )