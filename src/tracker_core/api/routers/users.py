"""User role API endpoints."""
import logging
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from tracker_core import role_promoter, role_resolver, schemas
from tracker_core.database import get_db
from tracker_core.errors import PermissionDeniedError

from ..dependencies import get_actor_id

logger = logging.getLogger("tracker-core.api.users")

router = APIRouter(tags=["users"])


@router.post("/{user_id}/promote", response_model=schemas.RolePromotionResponse)
def promote_user(
    user_id: UUID,
    actor_id: UUID = Depends(get_actor_id),
    db: Session = Depends(get_db),
):
    """
    Recompute a user's role label from their current memberships.

    Idempotent. Users may refresh their own label; super admins may refresh anyone's.
    """
    if actor_id != user_id and not role_resolver.is_super_admin(db, actor_id):
        logger.warning(f"User {actor_id} tried to promote user {user_id}")
        raise PermissionDeniedError(actor_id, "promote", "user", user_id)

    label = role_promoter.promote_user_role(db, user_id)
    return schemas.RolePromotionResponse(user_id=user_id, role_label=label)
