"""Role promotion: derive a user's system-wide role label from memberships.

The label is never patched incrementally. Each call reads a fresh membership
snapshot and recomputes the label from scratch with derive_role(), so the
stored value cannot drift from the memberships it summarizes. super_admin is
assigned out of band and is never recomputed.
"""
import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.orm import Session

from . import membership_store
from .audit import record_event
from .config import get_settings
from .errors import NotFoundError
from .models import AuditEventKind, RoleLabel

logger = logging.getLogger("tracker-core.role_promoter")


@dataclass(frozen=True)
class MembershipSnapshot:
    """The memberships of one user that feed the role label."""

    area_admin_ids: tuple[int, ...] = ()
    area_member_ids: tuple[int, ...] = ()
    unit_member_ids: tuple[int, ...] = ()


def derive_role(snapshot: MembershipSnapshot) -> RoleLabel:
    """
    Compute the role label implied by a membership snapshot.

    Precedence, highest first: area_role (any AreaAdmin or AreaMember),
    unit_role (any UnitMember), user.
    """
    if snapshot.area_admin_ids or snapshot.area_member_ids:
        return RoleLabel.AREA_ROLE
    if snapshot.unit_member_ids:
        return RoleLabel.UNIT_ROLE
    return RoleLabel.USER


def load_snapshot(db: Session, user_id: UUID) -> MembershipSnapshot:
    """Read the user's current AreaAdmin, AreaMember and UnitMember memberships."""
    return MembershipSnapshot(
        area_admin_ids=tuple(membership_store.list_area_admin(db, user_id)),
        area_member_ids=tuple(membership_store.list_area_member(db, user_id)),
        unit_member_ids=tuple(membership_store.list_unit_member(db, user_id)),
    )


def recompute_user_role(db: Session, user_id: UUID) -> tuple[RoleLabel, bool]:
    """
    Recompute and persist a user's role label inside the caller's transaction.

    The user row is locked first so two membership mutations for the same
    user cannot interleave their snapshot reads and label writes.

    Args:
        db: Database session (pending membership writes must be flushed)
        user_id: User ID

    Returns:
        Tuple of (label, changed)

    Raises:
        NotFoundError: If the user does not exist
    """
    user = membership_store.lock_user(db, user_id, lock=get_settings().lock_parents)
    if user is None:
        raise NotFoundError("user", user_id)

    current = membership_store.get_system_role(db, user.id)
    if current == RoleLabel.SUPER_ADMIN:
        logger.debug(f"User {user_id} is super_admin; role label left unchanged")
        return current, False

    target = derive_role(load_snapshot(db, user_id))
    if target == current:
        return current, False

    membership_store.set_system_role(db, user_id, target)
    logger.info(f"Role label of user {user_id} changed: {current.value} -> {target.value}")
    return target, True


def promote_user_role(db: Session, user_id: UUID) -> RoleLabel:
    """
    Recompute a user's role label and commit the change, if any.

    Idempotent: a second call with no membership change in between performs
    no write.

    Returns:
        The user's role label after promotion

    Raises:
        NotFoundError: If the user does not exist
    """
    try:
        label, changed = recompute_user_role(db, user_id)
        # Commits the label change if any, and releases the row lock
        db.commit()
    except Exception:
        db.rollback()
        raise

    if changed:
        record_event(db, AuditEventKind.ROLE_PROMOTED, None, "user", [user_id])
    return label
