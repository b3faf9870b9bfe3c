"""Archive / unarchive lifecycle with cascading propagation.

Archive propagation rules:
  Task archive   -> all active Evidence archived (archived_by = NULL, cascade marker)
                 -> Process auto-archived when every one of its (>= 1) Tasks is archived
                 -> Project auto-archived when every one of its (>= 1) Processes is archived
  Process archive with tasks -> every active Task (and its Evidence) archived first
  Project archive            -> every active Process archived with its Tasks first

Unarchive never cascades upward and never happens automatically. Each level
is restored by an explicit call; the *_with_* variants additionally restore
the level directly below.

Every public operation runs as one transaction. Writes are flushed in order
(evidence -> task -> process check -> project check) so each parent check
counts the post-write state of its children. Parent rows are locked before
they are counted, so concurrent archives of the last two siblings serialize
on the parent instead of both missing the auto-archive. Locks are always
taken top-down (project -> process -> task).

Archiving a process that has no tasks never triggers the project check.
"""
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterator, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from . import entity_store
from .audit import record_event
from .config import get_settings
from .errors import InconsistentStateError, NotFoundError, PreconditionFailedError
from .models import AuditEventKind, ResourceKind

logger = logging.getLogger("tracker-core.lifecycle")


@dataclass
class ArchiveOutcome:
    """Result of an archive or unarchive operation.

    Describes the entity the operation was called on plus every entity the
    operation touched through a cascade.
    """

    entity_kind: ResourceKind
    entity_id: UUID
    archived_at: Optional[datetime]
    archived_by_id: Optional[UUID]
    evidence_ids: list[UUID] = field(default_factory=list)
    task_ids: list[UUID] = field(default_factory=list)
    process_ids: list[UUID] = field(default_factory=list)
    auto_archived_process_id: Optional[UUID] = None
    auto_archived_project_id: Optional[UUID] = None

    @property
    def is_archived(self) -> bool:
        return self.archived_at is not None

    @property
    def affected_ids(self) -> list[UUID]:
        """Every entity ID touched by the operation, the primary entity first."""
        ids = [self.entity_id, *self.process_ids, *self.task_ids, *self.evidence_ids]
        if self.auto_archived_process_id is not None:
            ids.append(self.auto_archived_process_id)
        if self.auto_archived_project_id is not None:
            ids.append(self.auto_archived_project_id)
        return ids


@contextmanager
def _transaction(db: Session) -> Iterator[None]:
    """Commit on success; roll back everything on any error."""
    try:
        yield
        db.commit()
    except Exception:
        db.rollback()
        raise


def _lock(db: Session, kind: ResourceKind, entity_id):
    return entity_store.lock_entity(db, kind, entity_id, lock=get_settings().lock_parents)


def _load(db: Session, kind: ResourceKind, entity_id):
    entity = _lock(db, kind, entity_id)
    if entity is None:
        raise NotFoundError(kind.value, entity_id)
    return entity


def _missing_parent(kind: ResourceKind, parent_id, child_kind: ResourceKind) -> InconsistentStateError:
    logger.error(f"Archive cascade reached missing {kind.value} {parent_id}")
    return InconsistentStateError(
        kind.value,
        parent_id,
        f"{kind.value.capitalize()} {parent_id} referenced by a {child_kind.value} does not exist",
    )


def _load_top_down(db: Session, kind: ResourceKind, entity_id):
    """
    Lock a process or task together with its ancestors, project first.

    Every operation that may archive a parent takes its locks in the order
    project -> process -> task -> evidence, so two cascades on the same
    project cannot wait on each other.

    Raises:
        NotFoundError: If the entity does not exist
        InconsistentStateError: If a task's process row is missing
    """
    entity = entity_store.get_entity(db, kind, entity_id)
    if entity is None:
        raise NotFoundError(kind.value, entity_id)

    if kind == ResourceKind.TASK:
        process = entity_store.get_entity(db, ResourceKind.PROCESS, entity.process_id)
        if process is None:
            raise _missing_parent(ResourceKind.PROCESS, entity.process_id, kind)
        # A missing project is reported by the project check if the cascade gets there
        _lock(db, ResourceKind.PROJECT, process.project_id)
        _lock(db, ResourceKind.PROCESS, process.id)
    else:
        _lock(db, ResourceKind.PROJECT, entity.project_id)

    return _load(db, kind, entity_id)


def _require_active(kind: ResourceKind, entity) -> None:
    if entity.archived_at is not None:
        logger.warning(f"Blocked archive: {kind.value} {entity.id} is already archived")
        raise PreconditionFailedError(
            kind.value,
            entity.id,
            f"{kind.value.capitalize()} {entity.id} is already archived",
        )


def _require_archived(kind: ResourceKind, entity) -> None:
    if entity.archived_at is None:
        logger.warning(f"Blocked unarchive: {kind.value} {entity.id} is not archived")
        raise PreconditionFailedError(
            kind.value,
            entity.id,
            f"{kind.value.capitalize()} {entity.id} is not archived",
        )


def _outcome(kind: ResourceKind, entity, **cascade) -> ArchiveOutcome:
    return ArchiveOutcome(
        entity_kind=kind,
        entity_id=entity.id,
        archived_at=entity.archived_at,
        archived_by_id=entity.archived_by_id,
        **cascade,
    )


def _audit(db: Session, kind: AuditEventKind, actor_id: Optional[UUID], outcome: ArchiveOutcome) -> None:
    record_event(db, kind, actor_id, outcome.entity_kind.value, outcome.affected_ids)


# ============================================================================
# Cascade steps (flush only; callers own the transaction)
# ============================================================================

def _archive_task_with_evidences(db: Session, task, actor_id: Optional[UUID], now: datetime) -> list[UUID]:
    """Archive a task's active evidence (cascade marker), then the task itself."""
    evidence_ids = []
    for evidence in entity_store.list_active_children(db, ResourceKind.TASK, task.id):
        entity_store.set_archived(db, ResourceKind.EVIDENCE, evidence.id, now, None)
        evidence_ids.append(evidence.id)

    entity_store.set_archived(db, ResourceKind.TASK, task.id, now, actor_id)
    logger.debug(f"Archived task {task.id} with {len(evidence_ids)} evidence(s)")
    return evidence_ids


def _check_project_after_process(db: Session, process, now: datetime) -> Optional[UUID]:
    """Run the project check after a process was archived, unless the process has no tasks."""
    if entity_store.count_children(db, ResourceKind.PROCESS, process.id) == 0:
        logger.debug(f"Process {process.id} has no tasks; project {process.project_id} not checked")
        return None
    return _check_and_archive_project(db, process.project_id, now)


def _archive_process_only(db: Session, process, actor_id: Optional[UUID], now: datetime) -> Optional[UUID]:
    """Archive a process, then check whether its project is now fully archived."""
    entity_store.set_archived(db, ResourceKind.PROCESS, process.id, now, actor_id)
    return _check_project_after_process(db, process, now)


def _archive_process_with_tasks(
    db: Session,
    process,
    actor_id: UUID,
    now: datetime,
) -> tuple[list[UUID], list[UUID]]:
    """Archive every active task of a process (with evidence), then the process.

    Tasks get the cascade marker; only the process records the actor. The
    per-task step does not run the process check, which would otherwise
    auto-archive the process mid-operation.
    """
    task_ids, evidence_ids = [], []
    for task in entity_store.list_active_children(db, ResourceKind.PROCESS, process.id):
        evidence_ids.extend(_archive_task_with_evidences(db, task, None, now))
        task_ids.append(task.id)

    entity_store.set_archived(db, ResourceKind.PROCESS, process.id, now, actor_id)
    return task_ids, evidence_ids


def _check_and_archive_process(
    db: Session,
    process_id: UUID,
    now: datetime,
) -> tuple[Optional[UUID], Optional[UUID]]:
    """Auto-archive a process when all of its tasks are archived.

    Returns:
        Tuple of (auto-archived process ID, auto-archived project ID), each
        None when that level was not archived by this check
    """
    process = _lock(db, ResourceKind.PROCESS, process_id)
    if process is None:
        raise _missing_parent(ResourceKind.PROCESS, process_id, ResourceKind.TASK)

    if process.archived_at is not None:
        return None, None

    total = entity_store.count_children(db, ResourceKind.PROCESS, process_id)
    if total == 0:
        return None, None

    archived = entity_store.count_archived_children(db, ResourceKind.PROCESS, process_id)
    if archived != total:
        logger.debug(f"Process {process_id}: {archived}/{total} tasks archived; not auto-archiving")
        return None, None

    logger.info(f"All {total} tasks of process {process_id} archived; auto-archiving process")
    project_id = _archive_process_only(db, process, None, now)
    return process.id, project_id


def _check_and_archive_project(db: Session, project_id: UUID, now: datetime) -> Optional[UUID]:
    """Auto-archive a project when all of its processes are archived.

    Returns:
        The project ID if it was auto-archived, None otherwise
    """
    project = _lock(db, ResourceKind.PROJECT, project_id)
    if project is None:
        raise _missing_parent(ResourceKind.PROJECT, project_id, ResourceKind.PROCESS)

    if project.archived_at is not None:
        return None

    total = entity_store.count_children(db, ResourceKind.PROJECT, project_id)
    if total == 0:
        return None

    archived = entity_store.count_archived_children(db, ResourceKind.PROJECT, project_id)
    if archived != total:
        logger.debug(f"Project {project_id}: {archived}/{total} processes archived; not auto-archiving")
        return None

    logger.info(f"All {total} processes of project {project_id} archived; auto-archiving project")
    entity_store.set_archived(db, ResourceKind.PROJECT, project_id, now, None)
    return project.id


# ============================================================================
# Task operations
# ============================================================================

def archive_task(db: Session, task_id: UUID, actor_id: Optional[UUID] = None) -> ArchiveOutcome:
    """
    Archive a task, cascading down to its evidence and up to its parents.

    Order: active evidence archived with the cascade marker, then the task
    with archived_by = actor_id, then the process check (which may run the
    project check).

    Args:
        db: Database session
        task_id: Task ID
        actor_id: User archiving the task; None for a system-triggered archive

    Returns:
        ArchiveOutcome for the task

    Raises:
        NotFoundError: If the task does not exist
        PreconditionFailedError: If the task is already archived
        InconsistentStateError: If the task's process or project row is missing
    """
    with _transaction(db):
        task = _load_top_down(db, ResourceKind.TASK, task_id)
        _require_active(ResourceKind.TASK, task)
        now = datetime.utcnow()

        evidence_ids = _archive_task_with_evidences(db, task, actor_id, now)
        process_id, project_id = _check_and_archive_process(db, task.process_id, now)
        outcome = _outcome(
            ResourceKind.TASK,
            task,
            evidence_ids=evidence_ids,
            auto_archived_process_id=process_id,
            auto_archived_project_id=project_id,
        )

    _audit(db, AuditEventKind.ARCHIVED, actor_id, outcome)
    return outcome


def archive_task_with_evidences(db: Session, task_id: UUID, actor_id: Optional[UUID] = None) -> ArchiveOutcome:
    """
    Archive a task and its active evidence without checking the parent process.

    This is the per-task step of a downward cascade. Use archive_task when the
    process and project must be re-evaluated afterwards.

    Raises:
        NotFoundError: If the task does not exist
        PreconditionFailedError: If the task is already archived
    """
    with _transaction(db):
        task = _load(db, ResourceKind.TASK, task_id)
        _require_active(ResourceKind.TASK, task)
        evidence_ids = _archive_task_with_evidences(db, task, actor_id, datetime.utcnow())
        outcome = _outcome(ResourceKind.TASK, task, evidence_ids=evidence_ids)

    _audit(db, AuditEventKind.ARCHIVED, actor_id, outcome)
    return outcome


def unarchive_task(db: Session, task_id: UUID, actor_id: Optional[UUID] = None) -> ArchiveOutcome:
    """
    Unarchive a task only. Its evidence stays archived and its process and
    project keep whatever archive state they have.

    Raises:
        NotFoundError: If the task does not exist
        PreconditionFailedError: If the task is not archived
    """
    with _transaction(db):
        task = _load(db, ResourceKind.TASK, task_id)
        _require_archived(ResourceKind.TASK, task)
        entity_store.clear_archived(db, ResourceKind.TASK, task.id)
        outcome = _outcome(ResourceKind.TASK, task)

    _audit(db, AuditEventKind.UNARCHIVED, actor_id, outcome)
    return outcome


def unarchive_task_with_evidences(db: Session, task_id: UUID, actor_id: Optional[UUID] = None) -> ArchiveOutcome:
    """
    Unarchive a task and every archived evidence row attached to it.

    Raises:
        NotFoundError: If the task does not exist
        PreconditionFailedError: If the task is not archived
    """
    with _transaction(db):
        task = _load(db, ResourceKind.TASK, task_id)
        _require_archived(ResourceKind.TASK, task)

        evidence_ids = []
        for evidence in entity_store.list_children(db, ResourceKind.TASK, task.id):
            if evidence.archived_at is not None:
                entity_store.clear_archived(db, ResourceKind.EVIDENCE, evidence.id)
                evidence_ids.append(evidence.id)
        entity_store.clear_archived(db, ResourceKind.TASK, task.id)
        outcome = _outcome(ResourceKind.TASK, task, evidence_ids=evidence_ids)

    _audit(db, AuditEventKind.UNARCHIVED, actor_id, outcome)
    return outcome


# ============================================================================
# Process operations
# ============================================================================

def check_and_archive_process(db: Session, process_id: UUID) -> ArchiveOutcome:
    """
    Auto-archive a process if all of its tasks are archived, then check its project.

    An empty process is never auto-archived, and an archived process is left
    untouched.

    Raises:
        NotFoundError: If the process does not exist
        InconsistentStateError: If the process's project row is missing
    """
    with _transaction(db):
        process = _load_top_down(db, ResourceKind.PROCESS, process_id)
        archived_process_id, project_id = _check_and_archive_process(db, process.id, datetime.utcnow())
        outcome = _outcome(
            ResourceKind.PROCESS,
            process,
            auto_archived_process_id=archived_process_id,
            auto_archived_project_id=project_id,
        )

    if archived_process_id is not None:
        _audit(db, AuditEventKind.ARCHIVED, None, outcome)
    return outcome


def archive_process_only(db: Session, process_id: UUID, actor_id: Optional[UUID] = None) -> ArchiveOutcome:
    """
    Archive a process without touching its tasks, then check its project.

    A process with no tasks is archived without the project check, so an
    empty process never auto-archives its project.

    Raises:
        NotFoundError: If the process does not exist
        PreconditionFailedError: If the process is already archived
        InconsistentStateError: If the process's project row is missing
    """
    with _transaction(db):
        process = _load_top_down(db, ResourceKind.PROCESS, process_id)
        _require_active(ResourceKind.PROCESS, process)
        project_id = _archive_process_only(db, process, actor_id, datetime.utcnow())
        outcome = _outcome(ResourceKind.PROCESS, process, auto_archived_project_id=project_id)

    _audit(db, AuditEventKind.ARCHIVED, actor_id, outcome)
    return outcome


def archive_process_with_tasks(db: Session, process_id: UUID, actor_id: UUID) -> ArchiveOutcome:
    """
    Archive every active task of a process (with evidence), then the process,
    then check its project (skipped when the process has no tasks).

    Raises:
        NotFoundError: If the process does not exist
        PreconditionFailedError: If the process is already archived
        InconsistentStateError: If the process's project row is missing
    """
    with _transaction(db):
        process = _load_top_down(db, ResourceKind.PROCESS, process_id)
        _require_active(ResourceKind.PROCESS, process)
        now = datetime.utcnow()

        task_ids, evidence_ids = _archive_process_with_tasks(db, process, actor_id, now)
        project_id = _check_project_after_process(db, process, now)
        outcome = _outcome(
            ResourceKind.PROCESS,
            process,
            task_ids=task_ids,
            evidence_ids=evidence_ids,
            auto_archived_project_id=project_id,
        )

    _audit(db, AuditEventKind.ARCHIVED, actor_id, outcome)
    return outcome


def unarchive_process(db: Session, process_id: UUID, actor_id: Optional[UUID] = None) -> ArchiveOutcome:
    """
    Unarchive a process only. Tasks and the parent project are unchanged.

    Raises:
        NotFoundError: If the process does not exist
        PreconditionFailedError: If the process is not archived
    """
    with _transaction(db):
        process = _load(db, ResourceKind.PROCESS, process_id)
        _require_archived(ResourceKind.PROCESS, process)
        entity_store.clear_archived(db, ResourceKind.PROCESS, process.id)
        outcome = _outcome(ResourceKind.PROCESS, process)

    _audit(db, AuditEventKind.UNARCHIVED, actor_id, outcome)
    return outcome


def unarchive_process_with_tasks(db: Session, process_id: UUID, actor_id: Optional[UUID] = None) -> ArchiveOutcome:
    """
    Unarchive a process and the tasks that were archived by a cascade.

    Only tasks carrying the cascade marker (archived_by NULL) are restored.
    Tasks archived by a user stay archived, and so does all evidence.

    Raises:
        NotFoundError: If the process does not exist
        PreconditionFailedError: If the process is not archived
    """
    with _transaction(db):
        process = _load(db, ResourceKind.PROCESS, process_id)
        _require_archived(ResourceKind.PROCESS, process)

        task_ids = []
        for task in entity_store.list_children(db, ResourceKind.PROCESS, process.id):
            if task.archived_at is not None and task.archived_by_id is None:
                entity_store.clear_archived(db, ResourceKind.TASK, task.id)
                task_ids.append(task.id)

        entity_store.clear_archived(db, ResourceKind.PROCESS, process.id)
        outcome = _outcome(ResourceKind.PROCESS, process, task_ids=task_ids)

    _audit(db, AuditEventKind.UNARCHIVED, actor_id, outcome)
    return outcome


# ============================================================================
# Project operations
# ============================================================================

def check_and_archive_project(db: Session, project_id: UUID) -> ArchiveOutcome:
    """
    Auto-archive a project if all of its processes are archived.

    Raises:
        NotFoundError: If the project does not exist
    """
    with _transaction(db):
        project = _load(db, ResourceKind.PROJECT, project_id)
        archived_project_id = _check_and_archive_project(db, project.id, datetime.utcnow())
        outcome = _outcome(ResourceKind.PROJECT, project, auto_archived_project_id=archived_project_id)

    if archived_project_id is not None:
        _audit(db, AuditEventKind.ARCHIVED, None, outcome)
    return outcome


def archive_project(db: Session, project_id: UUID, actor_id: UUID) -> ArchiveOutcome:
    """
    Archive a project directly: every active process is archived with its
    tasks and evidence, then the project itself.

    Raises:
        NotFoundError: If the project does not exist
        PreconditionFailedError: If the project is already archived
    """
    with _transaction(db):
        project = _load(db, ResourceKind.PROJECT, project_id)
        _require_active(ResourceKind.PROJECT, project)
        now = datetime.utcnow()

        process_ids, task_ids, evidence_ids = [], [], []
        for process in entity_store.list_active_children(db, ResourceKind.PROJECT, project.id):
            process_task_ids, process_evidence_ids = _archive_process_with_tasks(db, process, actor_id, now)
            process_ids.append(process.id)
            task_ids.extend(process_task_ids)
            evidence_ids.extend(process_evidence_ids)

        entity_store.set_archived(db, ResourceKind.PROJECT, project.id, now, actor_id)
        outcome = _outcome(
            ResourceKind.PROJECT,
            project,
            process_ids=process_ids,
            task_ids=task_ids,
            evidence_ids=evidence_ids,
        )

    _audit(db, AuditEventKind.ARCHIVED, actor_id, outcome)
    return outcome


def unarchive_project(db: Session, project_id: UUID, actor_id: Optional[UUID] = None) -> ArchiveOutcome:
    """
    Unarchive a project only. Its processes keep their archive state.

    Raises:
        NotFoundError: If the project does not exist
        PreconditionFailedError: If the project is not archived
    """
    with _transaction(db):
        project = _load(db, ResourceKind.PROJECT, project_id)
        _require_archived(ResourceKind.PROJECT, project)
        entity_store.clear_archived(db, ResourceKind.PROJECT, project.id)
        outcome = _outcome(ResourceKind.PROJECT, project)

    _audit(db, AuditEventKind.UNARCHIVED, actor_id, outcome)
    return outcome
