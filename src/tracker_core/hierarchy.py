"""Ownership chain resolution: Task -> Process -> Project -> Category -> Area.

Every permission check that needs the owning area, project or unit of a
resource goes through this module, so chain breakage is handled in one place:

- The resource itself missing raises NotFoundError.
- A required ancestor (the Process of a Task, the Project of a Process)
  referenced but missing raises NotFoundError naming that ancestor.
- An optional link (Project -> Category, Category -> Area, Project -> Unit)
  that is absent resolves to None, and callers fail closed.
"""
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from . import models
from .errors import NotFoundError
from .models import ResourceKind

logger = logging.getLogger("tracker-core.hierarchy")


def _get_or_raise(db: Session, kind: ResourceKind, resource_id) -> object:
    model = models.RESOURCE_MODELS[kind]
    entity = db.get(model, resource_id)
    if entity is None:
        raise NotFoundError(kind.value, resource_id)
    return entity


def resolve_project(
    db: Session,
    kind: ResourceKind,
    resource_id,
) -> Optional[models.Project]:
    """
    Resolve the project a resource belongs to.

    Args:
        db: Database session
        kind: Resource kind (project, process, task or evidence)
        resource_id: Resource ID

    Returns:
        The owning Project, or None for kinds that have no project (area, unit)

    Raises:
        NotFoundError: If the resource or a required ancestor does not exist
    """
    if kind in (ResourceKind.AREA, ResourceKind.UNIT):
        _get_or_raise(db, kind, resource_id)
        return None

    if kind == ResourceKind.EVIDENCE:
        evidence = _get_or_raise(db, kind, resource_id)
        return resolve_project(db, ResourceKind.TASK, evidence.task_id)

    if kind == ResourceKind.PROJECT:
        return _get_or_raise(db, kind, resource_id)

    if kind == ResourceKind.TASK:
        task = _get_or_raise(db, kind, resource_id)
        process = db.get(models.Process, task.process_id)
        if process is None:
            raise NotFoundError(
                ResourceKind.PROCESS.value,
                task.process_id,
                f"Process {task.process_id} of task {resource_id} not found",
            )
    else:
        process = _get_or_raise(db, ResourceKind.PROCESS, resource_id)

    project = db.get(models.Project, process.project_id)
    if project is None:
        raise NotFoundError(
            ResourceKind.PROJECT.value,
            process.project_id,
            f"Project {process.project_id} of process {process.id} not found",
        )
    return project


def resolve_owning_area(
    db: Session,
    kind: ResourceKind,
    resource_id,
) -> Optional[int]:
    """
    Resolve the area that owns a resource.

    Args:
        db: Database session
        kind: Resource kind
        resource_id: Resource ID

    Returns:
        Area ID, or None when the chain has no area (unit resources, project
        without category, category without area)

    Raises:
        NotFoundError: If the resource or a required ancestor does not exist
    """
    if kind == ResourceKind.AREA:
        area = _get_or_raise(db, kind, resource_id)
        return area.id

    project = resolve_project(db, kind, resource_id)
    if project is None:
        return None

    if project.category_id is None:
        logger.debug(f"Project {project.id} has no category; no owning area")
        return None

    category = db.get(models.Category, project.category_id)
    if category is None:
        logger.warning(f"Project {project.id} references missing category {project.category_id}")
        return None

    if category.area_id is None:
        logger.debug(f"Category {category.id} has no area; no owning area")
        return None

    return category.area_id


def resolve_unit(
    db: Session,
    kind: ResourceKind,
    resource_id,
) -> Optional[int]:
    """
    Resolve the unit a resource belongs to through its project.

    Returns:
        Unit ID, the unit itself for unit resources, or None if the project
        has no unit

    Raises:
        NotFoundError: If the resource or a required ancestor does not exist
    """
    if kind == ResourceKind.UNIT:
        unit = _get_or_raise(db, kind, resource_id)
        return unit.id

    project = resolve_project(db, kind, resource_id)
    if project is None:
        return None
    return project.unit_id


def resolve_project_id(db: Session, kind: ResourceKind, resource_id) -> Optional[UUID]:
    """Convenience wrapper returning only the owning project's ID."""
    project = resolve_project(db, kind, resource_id)
    return project.id if project is not None else None
