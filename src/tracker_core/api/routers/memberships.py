"""Membership management API endpoints.

Adding or removing a membership recomputes the member's system role label
in the same transaction.
"""
import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from tracker_core import memberships, schemas
from tracker_core.database import get_db
from tracker_core.models import MEMBERSHIP_TARGETS, MembershipKind, ResourceKind

from ..dependencies import get_actor_id

logger = logging.getLogger("tracker-core.api.memberships")

router = APIRouter(tags=["memberships"])


def _change_to_response(change: memberships.MembershipChange) -> schemas.MembershipChangeResponse:
    """Convert a MembershipChange to its response schema."""
    return schemas.MembershipChangeResponse(
        kind=change.kind,
        membership_id=change.membership_id,
        user_id=change.user_id,
        target_id=change.target_id,
        role_label=change.role_label,
        role_changed=change.role_changed,
    )


def _check_target_type(kind: MembershipKind, target_id) -> None:
    expects_int = MEMBERSHIP_TARGETS[kind] in (ResourceKind.AREA, ResourceKind.UNIT)
    if expects_int != isinstance(target_id, int):
        expected = "an integer" if expects_int else "a UUID"
        raise HTTPException(
            status_code=400,
            detail=f"{kind.value} memberships require {expected} target_id",
        )


@router.post("/{kind}", response_model=schemas.MembershipChangeResponse, status_code=201)
def add_membership(
    kind: MembershipKind,
    membership_data: schemas.MembershipCreate,
    actor_id: UUID = Depends(get_actor_id),
    db: Session = Depends(get_db),
):
    """
    Add a membership.

    - **kind**: area_admin, area_member, unit_member, project_member or task_member
    - **user_id**: User receiving the membership
    - **target_id**: Area or unit ID (integer), project or task ID (UUID)
    - **role_id**: Optional role for unit, project and task memberships
    """
    _check_target_type(kind, membership_data.target_id)
    change = memberships.add_membership(
        db,
        kind,
        membership_data.user_id,
        membership_data.target_id,
        actor_id,
        membership_data.role_id,
    )
    logger.info(f"Added {kind.value} membership for user {change.user_id} on {change.target_id} by {actor_id}")
    return _change_to_response(change)


@router.delete("/{kind}/{membership_id}", response_model=schemas.MembershipChangeResponse)
def remove_membership(
    kind: MembershipKind,
    membership_id: UUID,
    actor_id: UUID = Depends(get_actor_id),
    db: Session = Depends(get_db),
):
    """
    Remove a membership.

    Area admins cannot remove their own area admin membership.
    """
    change = memberships.remove_membership(db, kind, membership_id, actor_id)
    logger.info(f"Removed {kind.value} membership {membership_id} by {actor_id}")
    return _change_to_response(change)
