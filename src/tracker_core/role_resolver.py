"""Hierarchical permission resolution.

A user's effective permission on a resource is the first grant found walking
a fixed, ordered list of checks:

1. super_admin role label             -> everything
2. AreaAdmin of the resource's area   -> everything
3. direct member of the resource      -> everything (TaskMember / ProjectMember)
4. ProjectMember one level up         -> everything (for tasks and processes)
5. UnitMember of the project's unit   -> everything
6. AreaMember of the resource's area  -> read and reactivate actions only

Checks are evaluated lazily and stop at the first grant. Area checks are
always scoped to the resource's own area: being a member of *some* area
never counts.
"""
import enum
import logging
from functools import partial
from typing import Callable, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from . import entity_store, hierarchy, membership_store, models
from .models import Action, ResourceKind, RoleLabel

logger = logging.getLogger("tracker-core.role_resolver")


class GrantSource(str, enum.Enum):
    """Which check in the resolution chain granted access."""

    SUPER_ADMIN = "super_admin"
    AREA_ADMIN = "area_admin"
    DIRECT_MEMBER = "direct_member"
    PROJECT_MEMBER = "project_member"
    UNIT_MEMBER = "unit_member"
    UNIT_ADMIN = "unit_admin"
    AREA_MEMBER = "area_member"


# Actions an AreaMember may perform on resources of their area
AREA_MEMBER_ACTIONS: frozenset[Action] = frozenset({Action.VIEW, Action.REACTIVATE})

# Actions a plain (non-admin) UnitMember may perform on the unit itself
UNIT_MEMBER_ACTIONS: frozenset[Action] = frozenset({Action.VIEW})

SUPPORTED_KINDS = (
    ResourceKind.AREA,
    ResourceKind.UNIT,
    ResourceKind.PROJECT,
    ResourceKind.PROCESS,
    ResourceKind.TASK,
)


def is_super_admin(db: Session, user_id: UUID) -> bool:
    """Check if the user's role label is super_admin. Unknown users are not."""
    user = db.get(models.User, user_id)
    return user is not None and user.role_label == RoleLabel.SUPER_ADMIN


# ============================================================================
# Individual checks (each returns bool, never raises for missing links)
# ============================================================================

def _check_area_admin(db: Session, user_id: UUID, area_id: Optional[int]) -> bool:
    if area_id is None:
        return False
    return membership_store.is_area_admin(db, user_id, area_id)


def _check_area_member(db: Session, user_id: UUID, area_id: Optional[int], action: Action) -> bool:
    if action not in AREA_MEMBER_ACTIONS or area_id is None:
        return False
    return membership_store.is_area_member(db, user_id, area_id)


def _check_project_member(db: Session, user_id: UUID, project_id: Optional[UUID]) -> bool:
    if project_id is None:
        return False
    return membership_store.is_project_member(db, user_id, project_id)


def _check_unit_member(db: Session, user_id: UUID, unit_id: Optional[int]) -> bool:
    if unit_id is None:
        return False
    return membership_store.is_unit_member(db, user_id, unit_id)


def _build_chain(
    db: Session,
    user_id: UUID,
    kind: ResourceKind,
    resource_id,
    action: Action,
) -> list[tuple[GrantSource, Callable[[], bool]]]:
    """Build the ordered list of checks for a resource kind.

    The resource's chain is resolved up front, which also raises NotFoundError
    for a missing resource before any permission logic runs.
    """
    if kind == ResourceKind.UNIT:
        unit_id = hierarchy.resolve_unit(db, kind, resource_id)
        chain = [
            (GrantSource.SUPER_ADMIN, partial(is_super_admin, db, user_id)),
            (GrantSource.UNIT_ADMIN, partial(membership_store.is_unit_admin, db, user_id, unit_id)),
        ]
        if action in UNIT_MEMBER_ACTIONS:
            chain.append((GrantSource.UNIT_MEMBER, partial(_check_unit_member, db, user_id, unit_id)))
        return chain

    area_id = entity_store.get_owning_area(db, kind, resource_id)
    chain = [
        (GrantSource.SUPER_ADMIN, partial(is_super_admin, db, user_id)),
        (GrantSource.AREA_ADMIN, partial(_check_area_admin, db, user_id, area_id)),
    ]

    if kind == ResourceKind.AREA:
        chain.append((GrantSource.AREA_MEMBER, partial(_check_area_member, db, user_id, area_id, action)))
        return chain

    project = hierarchy.resolve_project(db, kind, resource_id)
    project_id = project.id if project is not None else None
    unit_id = project.unit_id if project is not None else None

    if kind == ResourceKind.TASK:
        chain.append((GrantSource.DIRECT_MEMBER, partial(membership_store.is_task_member, db, user_id, resource_id)))
        chain.append((GrantSource.PROJECT_MEMBER, partial(_check_project_member, db, user_id, project_id)))
    elif kind == ResourceKind.PROCESS:
        # Processes carry no memberships of their own
        chain.append((GrantSource.PROJECT_MEMBER, partial(_check_project_member, db, user_id, project_id)))
    elif kind == ResourceKind.PROJECT:
        chain.append((GrantSource.DIRECT_MEMBER, partial(_check_project_member, db, user_id, project_id)))

    chain.append((GrantSource.UNIT_MEMBER, partial(_check_unit_member, db, user_id, unit_id)))
    chain.append((GrantSource.AREA_MEMBER, partial(_check_area_member, db, user_id, area_id, action)))
    return chain


def resolve_grant(
    db: Session,
    user_id: UUID,
    kind: ResourceKind,
    resource_id,
    action: Action,
) -> Optional[GrantSource]:
    """
    Find which check grants a user an action on a resource.

    Args:
        db: Database session
        user_id: Acting user ID
        kind: Resource kind (area, unit, project, process or task)
        resource_id: Resource ID
        action: Requested action

    Returns:
        The GrantSource of the first check that succeeded, or None if denied

    Raises:
        NotFoundError: If the resource or a required ancestor does not exist
        ValueError: If the resource kind is not supported
    """
    if kind not in SUPPORTED_KINDS:
        raise ValueError(f"Permissions are not resolved for {kind.value} resources")
    action = Action(action)

    for source, check in _build_chain(db, user_id, kind, resource_id, action):
        if check():
            logger.debug(
                f"Granted {action.value} on {kind.value} {resource_id} to user {user_id} via {source.value}"
            )
            return source

    logger.debug(f"Denied {action.value} on {kind.value} {resource_id} to user {user_id}")
    return None


def can_perform(
    db: Session,
    user_id: UUID,
    kind: ResourceKind,
    resource_id,
    action: Action,
) -> bool:
    """
    Check whether a user may perform an action on a resource.

    Raises:
        NotFoundError: If the resource or a required ancestor does not exist
    """
    return resolve_grant(db, user_id, kind, resource_id, action) is not None
