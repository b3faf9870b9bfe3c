"""Permission check API endpoints."""
import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from tracker_core import role_resolver, schemas
from tracker_core.database import get_db
from tracker_core.models import Action, ResourceKind

logger = logging.getLogger("tracker-core.api.permissions")

router = APIRouter(tags=["permissions"])

# Areas and units use integer IDs; everything else is keyed by UUID
INTEGER_ID_KINDS = (ResourceKind.AREA, ResourceKind.UNIT)


def parse_resource_id(kind: ResourceKind, raw_id: str):
    """Convert a path ID to the type used by the resource kind's table."""
    try:
        if kind in INTEGER_ID_KINDS:
            return int(raw_id)
        return UUID(raw_id)
    except ValueError:
        logger.warning(f"Invalid {kind.value} ID in permission check: {raw_id}")
        raise HTTPException(status_code=400, detail=f"Invalid {kind.value} ID: {raw_id}")


@router.get("/{kind}/{resource_id}", response_model=schemas.PermissionCheckResponse)
def check_permission(
    kind: ResourceKind,
    resource_id: str,
    user_id: UUID = Query(..., description="User whose permission is checked"),
    action: Action = Query(..., description="Requested action"),
    db: Session = Depends(get_db),
):
    """
    Check whether a user may perform an action on a resource.

    - **kind**: area, unit, project, process or task
    - **resource_id**: Integer ID for areas and units, UUID otherwise
    - **user_id**: User UUID
    - **action**: view, create, edit, delete, assign, comment, archive or reactivate

    Returns 404 if the resource (or a required ancestor) does not exist.
    """
    if kind not in role_resolver.SUPPORTED_KINDS:
        raise HTTPException(status_code=400, detail=f"Permissions are not resolved for {kind.value} resources")

    parsed_id = parse_resource_id(kind, resource_id)
    source = role_resolver.resolve_grant(db, user_id, kind, parsed_id, action)
    logger.debug(f"Permission check {action.value} on {kind.value} {parsed_id} for user {user_id}: {source}")

    return schemas.PermissionCheckResponse(
        user_id=user_id,
        resource_kind=kind,
        resource_id=str(parsed_id),
        action=action,
        allowed=source is not None,
        granted_by=source.value if source is not None else None,
    )
