"""Membership add/remove operations.

Every mutation follows the same sequence in a single transaction:
existence checks, permission check, write, flush, role recomputation for the
affected user, commit. Audit events are recorded after the commit.
"""
import logging
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import membership_store, models, permissions, role_promoter
from .audit import record_event
from .errors import NotFoundError, PermissionDeniedError, PreconditionFailedError
from .models import AuditEventKind, MembershipKind, RoleLabel

logger = logging.getLogger("tracker-core.memberships")


@dataclass
class MembershipChange:
    """Result of a membership mutation."""

    kind: MembershipKind
    membership_id: UUID
    user_id: UUID
    target_id: object
    role_label: RoleLabel
    role_changed: bool


def _record(db: Session, event: AuditEventKind, actor_id: Optional[UUID], change: MembershipChange) -> None:
    record_event(db, event, actor_id, change.kind.value, [change.membership_id])
    if change.role_changed:
        record_event(db, AuditEventKind.ROLE_PROMOTED, actor_id, "user", [change.user_id])


def add_membership(
    db: Session,
    kind: MembershipKind,
    user_id: UUID,
    target_id,
    actor_id: UUID,
    role_id: Optional[int] = None,
) -> MembershipChange:
    """
    Add a membership and recompute the member's role label.

    Args:
        db: Database session
        kind: Membership kind
        user_id: User receiving the membership
        target_id: ID of the area, unit, project or task
        actor_id: User performing the change
        role_id: Optional role (unit, project and task memberships only)

    Returns:
        MembershipChange describing the new row and the member's label

    Raises:
        NotFoundError: If the user, target or role does not exist
        PermissionDeniedError: If the actor may not manage this membership
        PreconditionFailedError: If the membership already exists
    """
    kind = MembershipKind(kind)
    target_kind = models.MEMBERSHIP_TARGETS[kind]

    try:
        if db.get(models.User, user_id) is None:
            raise NotFoundError("user", user_id)

        permissions.ensure_can_manage_membership(db, actor_id, kind, target_id)

        if role_id is not None and db.get(models.Role, role_id) is None:
            raise NotFoundError("role", role_id)

        if membership_store.find_membership(db, kind, user_id, target_id) is not None:
            raise PreconditionFailedError(
                target_kind.value,
                target_id,
                f"User {user_id} already has a {kind.value} membership on {target_kind.value} {target_id}",
            )

        membership = membership_store.create_membership(db, kind, user_id, target_id, role_id)
        label, changed = role_promoter.recompute_user_role(db, user_id)
        change = MembershipChange(
            kind=kind,
            membership_id=membership.id,
            user_id=user_id,
            target_id=target_id,
            role_label=label,
            role_changed=changed,
        )
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.warning(f"Concurrent duplicate {kind.value} membership for user {user_id} on {target_id}")
        raise PreconditionFailedError(
            target_kind.value,
            target_id,
            f"User {user_id} already has a {kind.value} membership on {target_kind.value} {target_id}",
        ) from e
    except Exception:
        db.rollback()
        raise

    logger.info(f"Added {kind.value} membership for user {user_id} on {target_kind.value} {target_id}")
    _record(db, AuditEventKind.MEMBERSHIP_ADDED, actor_id, change)
    return change


def remove_membership(
    db: Session,
    kind: MembershipKind,
    membership_id: UUID,
    actor_id: UUID,
) -> MembershipChange:
    """
    Remove a membership and recompute the former member's role label.

    An area admin cannot remove their own AreaAdmin membership.

    Raises:
        NotFoundError: If the membership or its target does not exist
        PermissionDeniedError: If the actor may not manage this membership
    """
    kind = MembershipKind(kind)
    target_kind = models.MEMBERSHIP_TARGETS[kind]
    _, target_column = models.MEMBERSHIP_MODELS[kind]

    try:
        membership = membership_store.get_membership(db, kind, membership_id)
        if membership is None:
            raise NotFoundError(kind.value, membership_id)
        user_id = membership.user_id
        target_id = getattr(membership, target_column)

        permissions.ensure_can_manage_membership(db, actor_id, kind, target_id)

        if kind == MembershipKind.AREA_ADMIN and user_id == actor_id:
            logger.warning(f"User {actor_id} tried to remove their own admin membership of area {target_id}")
            raise PermissionDeniedError(
                actor_id,
                "remove",
                target_kind.value,
                target_id,
                "Area admins cannot remove their own admin membership",
            )

        membership_store.delete_membership(db, kind, membership_id)
        label, changed = role_promoter.recompute_user_role(db, user_id)
        change = MembershipChange(
            kind=kind,
            membership_id=membership_id,
            user_id=user_id,
            target_id=target_id,
            role_label=label,
            role_changed=changed,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(f"Removed {kind.value} membership of user {user_id} on {target_kind.value} {target_id}")
    _record(db, AuditEventKind.MEMBERSHIP_REMOVED, actor_id, change)
    return change


# ============================================================================
# Per-kind wrappers
# ============================================================================

def add_area_admin(db: Session, user_id: UUID, area_id: int, actor_id: UUID) -> MembershipChange:
    return add_membership(db, MembershipKind.AREA_ADMIN, user_id, area_id, actor_id)


def remove_area_admin(db: Session, membership_id: UUID, actor_id: UUID) -> MembershipChange:
    return remove_membership(db, MembershipKind.AREA_ADMIN, membership_id, actor_id)


def add_area_member(db: Session, user_id: UUID, area_id: int, actor_id: UUID) -> MembershipChange:
    return add_membership(db, MembershipKind.AREA_MEMBER, user_id, area_id, actor_id)


def remove_area_member(db: Session, membership_id: UUID, actor_id: UUID) -> MembershipChange:
    return remove_membership(db, MembershipKind.AREA_MEMBER, membership_id, actor_id)


def add_unit_member(
    db: Session,
    user_id: UUID,
    unit_id: int,
    actor_id: UUID,
    role_id: Optional[int] = None,
) -> MembershipChange:
    return add_membership(db, MembershipKind.UNIT_MEMBER, user_id, unit_id, actor_id, role_id)


def remove_unit_member(db: Session, membership_id: UUID, actor_id: UUID) -> MembershipChange:
    return remove_membership(db, MembershipKind.UNIT_MEMBER, membership_id, actor_id)


def add_project_member(
    db: Session,
    user_id: UUID,
    project_id: UUID,
    actor_id: UUID,
    role_id: Optional[int] = None,
) -> MembershipChange:
    return add_membership(db, MembershipKind.PROJECT_MEMBER, user_id, project_id, actor_id, role_id)


def remove_project_member(db: Session, membership_id: UUID, actor_id: UUID) -> MembershipChange:
    return remove_membership(db, MembershipKind.PROJECT_MEMBER, membership_id, actor_id)


def add_task_member(
    db: Session,
    user_id: UUID,
    task_id: UUID,
    actor_id: UUID,
    role_id: Optional[int] = None,
) -> MembershipChange:
    return add_membership(db, MembershipKind.TASK_MEMBER, user_id, task_id, actor_id, role_id)


def remove_task_member(db: Session, membership_id: UUID, actor_id: UUID) -> MembershipChange:
    return remove_membership(db, MembershipKind.TASK_MEMBER, membership_id, actor_id)
