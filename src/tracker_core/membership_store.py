"""Membership Store: read/write access to membership rows and role labels.

The role resolver and role promoter only touch memberships through these
functions. Nothing here commits; callers own the transaction.
"""
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from . import models
from .errors import NotFoundError
from .models import MembershipKind, RoleLabel

logger = logging.getLogger("tracker-core.membership_store")


# ============================================================================
# System role label
# ============================================================================

def get_system_role(db: Session, user_id: UUID) -> RoleLabel:
    """
    Get a user's system-wide role label.

    Raises:
        NotFoundError: If the user does not exist
    """
    user = db.get(models.User, user_id)
    if user is None:
        raise NotFoundError("user", user_id)
    return user.role_label


def set_system_role(db: Session, user_id: UUID, label: RoleLabel) -> models.User:
    """
    Persist a new system-wide role label for a user (flush only).

    Raises:
        NotFoundError: If the user does not exist
    """
    user = db.get(models.User, user_id)
    if user is None:
        raise NotFoundError("user", user_id)
    user.role_label = label
    db.flush()
    logger.debug(f"Set role label of user {user_id} to {label.value}")
    return user


def lock_user(db: Session, user_id: UUID, lock: bool = True) -> Optional[models.User]:
    """Load a user row, taking a row lock for the rest of the transaction."""
    query = db.query(models.User).filter(models.User.id == user_id)
    if lock:
        query = query.with_for_update().populate_existing()
    return query.first()


# ============================================================================
# Membership listings (per user)
# ============================================================================

def list_area_admin(db: Session, user_id: UUID) -> list[int]:
    """Get IDs of areas where the user holds an AreaAdmin membership."""
    rows = (
        db.query(models.AreaAdmin.area_id)
        .filter(models.AreaAdmin.user_id == user_id)
        .order_by(models.AreaAdmin.area_id)
        .all()
    )
    return [r.area_id for r in rows]


def list_area_member(db: Session, user_id: UUID) -> list[int]:
    """Get IDs of areas where the user holds an AreaMember membership."""
    rows = (
        db.query(models.AreaMember.area_id)
        .filter(models.AreaMember.user_id == user_id)
        .order_by(models.AreaMember.area_id)
        .all()
    )
    return [r.area_id for r in rows]


def list_unit_member(db: Session, user_id: UUID) -> list[int]:
    """Get IDs of units where the user holds a UnitMember membership."""
    rows = (
        db.query(models.UnitMember.unit_id)
        .filter(models.UnitMember.user_id == user_id)
        .order_by(models.UnitMember.unit_id)
        .all()
    )
    return [r.unit_id for r in rows]


# ============================================================================
# Scoped membership checks
# ============================================================================

def is_area_admin(db: Session, user_id: UUID, area_id: int) -> bool:
    """Check if user holds an AreaAdmin membership on this specific area."""
    return (
        db.query(models.AreaAdmin.id)
        .filter(
            models.AreaAdmin.user_id == user_id,
            models.AreaAdmin.area_id == area_id,
        )
        .first()
        is not None
    )


def is_area_member(db: Session, user_id: UUID, area_id: int) -> bool:
    """Check if user holds an AreaMember membership on this specific area."""
    return (
        db.query(models.AreaMember.id)
        .filter(
            models.AreaMember.user_id == user_id,
            models.AreaMember.area_id == area_id,
        )
        .first()
        is not None
    )


def has_any_area_admin(db: Session, user_id: UUID) -> bool:
    """Check if user is an AreaAdmin of at least one area."""
    return (
        db.query(models.AreaAdmin.id)
        .filter(models.AreaAdmin.user_id == user_id)
        .first()
        is not None
    )


def is_unit_member(db: Session, user_id: UUID, unit_id: int) -> bool:
    """Check if user holds a UnitMember membership on this unit."""
    return (
        db.query(models.UnitMember.id)
        .filter(
            models.UnitMember.user_id == user_id,
            models.UnitMember.unit_id == unit_id,
        )
        .first()
        is not None
    )


def is_unit_admin(db: Session, user_id: UUID, unit_id: int) -> bool:
    """Check if user is a member of this unit carrying the admin role."""
    return (
        db.query(models.UnitMember.id)
        .join(models.Role, models.Role.id == models.UnitMember.role_id)
        .filter(
            models.UnitMember.user_id == user_id,
            models.UnitMember.unit_id == unit_id,
            models.Role.name == models.ADMIN_ROLE_NAME,
        )
        .first()
        is not None
    )


def is_project_member(db: Session, user_id: UUID, project_id: UUID) -> bool:
    """Check if user holds a ProjectMember membership on this project."""
    return (
        db.query(models.ProjectMember.id)
        .filter(
            models.ProjectMember.user_id == user_id,
            models.ProjectMember.project_id == project_id,
        )
        .first()
        is not None
    )


def is_project_admin(db: Session, user_id: UUID, project_id: UUID) -> bool:
    """Check if user is a member of this project carrying the admin role."""
    return (
        db.query(models.ProjectMember.id)
        .join(models.Role, models.Role.id == models.ProjectMember.role_id)
        .filter(
            models.ProjectMember.user_id == user_id,
            models.ProjectMember.project_id == project_id,
            models.Role.name == models.ADMIN_ROLE_NAME,
        )
        .first()
        is not None
    )


def is_task_member(db: Session, user_id: UUID, task_id: UUID) -> bool:
    """Check if user holds a TaskMember membership on this task."""
    return (
        db.query(models.TaskMember.id)
        .filter(
            models.TaskMember.user_id == user_id,
            models.TaskMember.task_id == task_id,
        )
        .first()
        is not None
    )


# ============================================================================
# Membership rows
# ============================================================================

def get_membership(db: Session, kind: MembershipKind, membership_id: UUID):
    """Get a membership row by ID, or None if not found."""
    model, _ = models.MEMBERSHIP_MODELS[kind]
    return db.get(model, membership_id)


def find_membership(db: Session, kind: MembershipKind, user_id: UUID, target_id):
    """Get the membership row of a user on a target, or None."""
    model, target_column = models.MEMBERSHIP_MODELS[kind]
    return (
        db.query(model)
        .filter(
            model.user_id == user_id,
            getattr(model, target_column) == target_id,
        )
        .first()
    )


def create_membership(
    db: Session,
    kind: MembershipKind,
    user_id: UUID,
    target_id,
    role_id: Optional[int] = None,
):
    """
    Insert a membership row (flush only).

    Args:
        db: Database session
        kind: Membership kind
        user_id: Member user ID
        target_id: ID of the area, unit, project or task
        role_id: Optional role reference (unit, project and task kinds only)

    Returns:
        Created membership row
    """
    model, target_column = models.MEMBERSHIP_MODELS[kind]
    values = {"user_id": user_id, target_column: target_id}
    if role_id is not None:
        if not hasattr(model, "role_id"):
            raise ValueError(f"{kind.value} memberships do not carry a role")
        values["role_id"] = role_id

    membership = model(**values)
    db.add(membership)
    db.flush()
    logger.debug(f"Created {kind.value} membership {membership.id} for user {user_id} on {target_id}")
    return membership


def delete_membership(db: Session, kind: MembershipKind, membership_id: UUID) -> bool:
    """
    Delete a membership row (flush only).

    Returns:
        True if deleted, False if not found
    """
    membership = get_membership(db, kind, membership_id)
    if membership is None:
        return False
    db.delete(membership)
    db.flush()
    logger.debug(f"Deleted {kind.value} membership {membership_id}")
    return True
