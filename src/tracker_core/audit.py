"""Best-effort audit sink for authorization-relevant mutations."""
import logging
from datetime import datetime
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import models
from .models import AuditEventKind

logger = logging.getLogger("tracker-core.audit")


def record_event(
    db: Session,
    kind: AuditEventKind,
    actor_id: Optional[UUID],
    entity_kind: str,
    entity_ids: Iterable,
) -> Optional[models.AuditEvent]:
    """
    Record an audit event after the mutation it describes has committed.

    A failing audit write never undoes the mutation: the audit row is rolled
    back and a warning is logged.

    Args:
        db: Database session (the mutation must already be committed)
        kind: Event kind
        actor_id: User who triggered the mutation (None for system)
        entity_kind: Kind of the primary entity
        entity_ids: Every affected entity ID, cascades included

    Returns:
        The stored AuditEvent, or None if the write failed
    """
    ids = [str(entity_id) for entity_id in entity_ids]
    logger.info(f"{kind.value}: {entity_kind} {', '.join(ids)} by {actor_id or 'system'}")

    try:
        event = models.AuditEvent(
            kind=kind,
            actor_id=actor_id,
            entity_kind=entity_kind,
            entity_ids=ids,
            created_at=datetime.utcnow(),
        )
        db.add(event)
        db.commit()
        return event
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning(f"Failed to record audit event {kind.value} for {entity_kind} {ids}: {e}")
        return None
