"""Archive / unarchive API endpoints for tasks, processes and projects.

Archive endpoints require the archive permission on the resource; unarchive
endpoints require the reactivate permission. Existence is checked before
permission, so a missing resource is always a 404.
"""
import logging
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from tracker_core import lifecycle, permissions, schemas
from tracker_core.database import get_db
from tracker_core.models import Action

from ..dependencies import get_actor_id

logger = logging.getLogger("tracker-core.api.lifecycle")

tasks_router = APIRouter(tags=["tasks"])
processes_router = APIRouter(tags=["processes"])
projects_router = APIRouter(tags=["projects"])


def _outcome_to_response(outcome: lifecycle.ArchiveOutcome) -> schemas.ArchiveOutcomeResponse:
    """Convert an ArchiveOutcome to its response schema."""
    state = "archived" if outcome.is_archived else "unarchived"
    logger.info(
        f"{outcome.entity_kind.value.capitalize()} {outcome.entity_id} {state}, "
        f"{len(outcome.affected_ids) - 1} related entities affected"
    )
    return schemas.ArchiveOutcomeResponse(
        entity_kind=outcome.entity_kind,
        entity_id=outcome.entity_id,
        archived_at=outcome.archived_at,
        archived_by_id=outcome.archived_by_id,
        evidence_ids=outcome.evidence_ids,
        task_ids=outcome.task_ids,
        process_ids=outcome.process_ids,
        auto_archived_process_id=outcome.auto_archived_process_id,
        auto_archived_project_id=outcome.auto_archived_project_id,
    )


# Tasks

@tasks_router.post("/{task_id}/archive", response_model=schemas.ArchiveOutcomeResponse)
def archive_task(task_id: UUID, actor_id: UUID = Depends(get_actor_id), db: Session = Depends(get_db)):
    """
    Archive a task and its evidence.

    The task's process (and then project) is auto-archived when this was its
    last active child.
    """
    permissions.ensure_task_action(db, actor_id, task_id, Action.ARCHIVE)
    return _outcome_to_response(lifecycle.archive_task(db, task_id, actor_id))


@tasks_router.post("/{task_id}/archive-with-evidences", response_model=schemas.ArchiveOutcomeResponse)
def archive_task_with_evidences(task_id: UUID, actor_id: UUID = Depends(get_actor_id), db: Session = Depends(get_db)):
    """Archive a task and its evidence without re-evaluating the parent process."""
    permissions.ensure_task_action(db, actor_id, task_id, Action.ARCHIVE)
    return _outcome_to_response(lifecycle.archive_task_with_evidences(db, task_id, actor_id))


@tasks_router.post("/{task_id}/unarchive", response_model=schemas.ArchiveOutcomeResponse)
def unarchive_task(task_id: UUID, actor_id: UUID = Depends(get_actor_id), db: Session = Depends(get_db)):
    """Unarchive a task only."""
    permissions.ensure_task_action(db, actor_id, task_id, Action.REACTIVATE)
    return _outcome_to_response(lifecycle.unarchive_task(db, task_id, actor_id))


@tasks_router.post("/{task_id}/unarchive-with-evidences", response_model=schemas.ArchiveOutcomeResponse)
def unarchive_task_with_evidences(task_id: UUID, actor_id: UUID = Depends(get_actor_id), db: Session = Depends(get_db)):
    """Unarchive a task and all of its evidence."""
    permissions.ensure_task_action(db, actor_id, task_id, Action.REACTIVATE)
    return _outcome_to_response(lifecycle.unarchive_task_with_evidences(db, task_id, actor_id))


# Processes

@processes_router.post("/{process_id}/archive", response_model=schemas.ArchiveOutcomeResponse)
def archive_process(process_id: UUID, actor_id: UUID = Depends(get_actor_id), db: Session = Depends(get_db)):
    """Archive a process without touching its tasks."""
    permissions.ensure_process_action(db, actor_id, process_id, Action.ARCHIVE)
    return _outcome_to_response(lifecycle.archive_process_only(db, process_id, actor_id))


@processes_router.post("/{process_id}/archive-with-tasks", response_model=schemas.ArchiveOutcomeResponse)
def archive_process_with_tasks(process_id: UUID, actor_id: UUID = Depends(get_actor_id), db: Session = Depends(get_db)):
    """Archive a process together with all of its active tasks and their evidence."""
    permissions.ensure_process_action(db, actor_id, process_id, Action.ARCHIVE)
    return _outcome_to_response(lifecycle.archive_process_with_tasks(db, process_id, actor_id))


@processes_router.post("/{process_id}/unarchive", response_model=schemas.ArchiveOutcomeResponse)
def unarchive_process(process_id: UUID, actor_id: UUID = Depends(get_actor_id), db: Session = Depends(get_db)):
    """Unarchive a process only."""
    permissions.ensure_process_action(db, actor_id, process_id, Action.REACTIVATE)
    return _outcome_to_response(lifecycle.unarchive_process(db, process_id, actor_id))


@processes_router.post("/{process_id}/unarchive-with-tasks", response_model=schemas.ArchiveOutcomeResponse)
def unarchive_process_with_tasks(process_id: UUID, actor_id: UUID = Depends(get_actor_id), db: Session = Depends(get_db)):
    """Unarchive a process and the tasks that were archived by a cascade."""
    permissions.ensure_process_action(db, actor_id, process_id, Action.REACTIVATE)
    return _outcome_to_response(lifecycle.unarchive_process_with_tasks(db, process_id, actor_id))


# Projects

@projects_router.post("/{project_id}/archive", response_model=schemas.ArchiveOutcomeResponse)
def archive_project(project_id: UUID, actor_id: UUID = Depends(get_actor_id), db: Session = Depends(get_db)):
    """Archive a project with all of its active processes, tasks and evidence."""
    permissions.ensure_project_action(db, actor_id, project_id, Action.ARCHIVE)
    return _outcome_to_response(lifecycle.archive_project(db, project_id, actor_id))


@projects_router.post("/{project_id}/unarchive", response_model=schemas.ArchiveOutcomeResponse)
def unarchive_project(project_id: UUID, actor_id: UUID = Depends(get_actor_id), db: Session = Depends(get_db)):
    """Unarchive a project only."""
    permissions.ensure_project_action(db, actor_id, project_id, Action.REACTIVATE)
    return _outcome_to_response(lifecycle.unarchive_project(db, project_id, actor_id))
