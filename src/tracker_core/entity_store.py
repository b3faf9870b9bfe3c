"""Entity Store: archive state reads/writes and ownership lookups.

The lifecycle cascader reads child counts and writes archive fields only
through these functions. Writes are flushed immediately so that a count
taken right after a write observes it. Nothing here commits.
"""
import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from . import models
from .hierarchy import resolve_owning_area
from .models import ResourceKind

logger = logging.getLogger("tracker-core.entity_store")

ARCHIVABLE_KINDS = (
    ResourceKind.PROJECT,
    ResourceKind.PROCESS,
    ResourceKind.TASK,
    ResourceKind.EVIDENCE,
)


def _archivable_model(kind: ResourceKind) -> type:
    if kind not in ARCHIVABLE_KINDS:
        raise ValueError(f"{kind.value} entities have no archive state")
    return models.RESOURCE_MODELS[kind]


def _child_model(parent_kind: ResourceKind) -> tuple[type, str]:
    if parent_kind not in models.CHILD_MODELS:
        raise ValueError(f"{parent_kind.value} entities have no archivable children")
    return models.CHILD_MODELS[parent_kind]


def get_owning_area(db: Session, kind: ResourceKind, resource_id) -> Optional[int]:
    """Resolve the owning area of a resource (see hierarchy.resolve_owning_area)."""
    return resolve_owning_area(db, kind, resource_id)


def get_entity(db: Session, kind: ResourceKind, entity_id):
    """Get an entity by kind and ID, or None if not found."""
    return db.get(models.RESOURCE_MODELS[kind], entity_id)


def lock_entity(db: Session, kind: ResourceKind, entity_id, lock: bool = True):
    """
    Load an entity, taking a row lock for the rest of the transaction.

    The lock serializes concurrent cascade checks on the same parent, so the
    second checker reads the counts after the first one's writes. A row
    already in the session is refreshed from the locked read.
    """
    model = models.RESOURCE_MODELS[kind]
    query = db.query(model).filter(model.id == entity_id)
    if lock:
        query = query.with_for_update().populate_existing()
    return query.first()


def count_children(db: Session, parent_kind: ResourceKind, parent_id: UUID) -> int:
    """Count direct archivable children of a project, process or task."""
    model, parent_column = _child_model(parent_kind)
    return (
        db.query(func.count(model.id))
        .filter(getattr(model, parent_column) == parent_id)
        .scalar()
    )


def count_archived_children(db: Session, parent_kind: ResourceKind, parent_id: UUID) -> int:
    """Count direct children of a project, process or task that are archived."""
    model, parent_column = _child_model(parent_kind)
    return (
        db.query(func.count(model.id))
        .filter(
            getattr(model, parent_column) == parent_id,
            model.archived_at.isnot(None),
        )
        .scalar()
    )


def list_children(db: Session, parent_kind: ResourceKind, parent_id: UUID) -> list:
    """List all direct children of a project, process or task."""
    model, parent_column = _child_model(parent_kind)
    return (
        db.query(model)
        .filter(getattr(model, parent_column) == parent_id)
        .order_by(model.created_at, model.id)
        .all()
    )


def list_active_children(db: Session, parent_kind: ResourceKind, parent_id: UUID) -> list:
    """List direct children of a project, process or task that are not archived."""
    model, parent_column = _child_model(parent_kind)
    return (
        db.query(model)
        .filter(
            getattr(model, parent_column) == parent_id,
            model.archived_at.is_(None),
        )
        .order_by(model.created_at, model.id)
        .all()
    )


def set_archived(
    db: Session,
    kind: ResourceKind,
    entity_id,
    archived_at: datetime,
    archived_by: Optional[UUID],
):
    """
    Mark an entity archived (flush only).

    Args:
        db: Database session
        kind: Entity kind
        entity_id: Entity ID
        archived_at: Archive timestamp (never None)
        archived_by: User who archived it; None marks a system cascade

    Returns:
        The updated entity, or None if not found
    """
    if archived_at is None:
        raise ValueError("archived_at is required when archiving")
    model = _archivable_model(kind)
    entity = db.get(model, entity_id)
    if entity is None:
        return None
    entity.archived_at = archived_at
    entity.archived_by_id = archived_by
    db.flush()
    return entity


def clear_archived(db: Session, kind: ResourceKind, entity_id):
    """
    Clear both archive fields of an entity (flush only).

    Returns:
        The updated entity, or None if not found
    """
    model = _archivable_model(kind)
    entity = db.get(model, entity_id)
    if entity is None:
        return None
    entity.archived_at = None
    entity.archived_by_id = None
    db.flush()
    return entity
