"""Tests for archive / unarchive cascades."""
from datetime import datetime
from uuid import uuid4

import pytest

from tracker_core import entity_store, lifecycle, models
from tracker_core.errors import InconsistentStateError, NotFoundError, PreconditionFailedError
from tracker_core.models import AuditEventKind, ResourceKind


def reload(db, obj):
    db.expire_all()
    return db.get(type(obj), obj.id)


class TestArchiveTask:
    """Test archiving a single task."""

    def test_archives_evidence_with_cascade_marker(self, db, factory):
        """N active evidences are archived with no actor; the task records the actor."""
        tree = factory.tree(tasks=2, evidences=3)
        actor = factory.user()
        task = tree.tasks[0]

        outcome = lifecycle.archive_task(db, task.id, actor.id)

        assert len(outcome.evidence_ids) == 3
        task = reload(db, task)
        assert task.archived_at is not None
        assert task.archived_by_id == actor.id
        for evidence in task.evidences:
            assert evidence.archived_at == task.archived_at
            assert evidence.archived_by_id is None

    def test_already_archived_evidence_is_left_alone(self, db, factory):
        tree = factory.tree(tasks=2)
        active = factory.evidence(tree.task)
        earlier = factory.evidence(tree.task)
        earlier.archived_at = datetime(2020, 1, 1)
        db.commit()

        outcome = lifecycle.archive_task(db, tree.task.id)

        assert outcome.evidence_ids == [active.id]
        assert reload(db, earlier).archived_at == datetime(2020, 1, 1)
        assert reload(db, active).archived_at == outcome.archived_at

    def test_system_archive_has_no_actor(self, db, factory):
        tree = factory.tree(tasks=2)

        outcome = lifecycle.archive_task(db, tree.task.id)

        assert outcome.is_archived
        assert outcome.archived_by_id is None

    def test_already_archived_task_is_rejected(self, db, factory):
        tree = factory.tree(tasks=2)
        lifecycle.archive_task(db, tree.task.id)

        with pytest.raises(PreconditionFailedError):
            lifecycle.archive_task(db, tree.task.id)

    def test_missing_task(self, db):
        with pytest.raises(NotFoundError):
            lifecycle.archive_task(db, uuid4())


class TestAutoArchive:
    """Test upward propagation when the last child is archived."""

    def test_last_task_archives_process_and_project(self, db, factory):
        tree = factory.tree(tasks=2)
        actor = factory.user()

        first = lifecycle.archive_task(db, tree.tasks[0].id, actor.id)
        assert first.auto_archived_process_id is None
        assert reload(db, tree.process).archived_at is None

        last = lifecycle.archive_task(db, tree.tasks[1].id, actor.id)
        assert last.auto_archived_process_id == tree.process.id
        assert last.auto_archived_project_id == tree.project.id

        process = reload(db, tree.process)
        project = reload(db, tree.project)
        assert process.archived_at is not None
        assert process.archived_by_id is None
        assert project.archived_at is not None
        assert project.archived_by_id is None

    def test_two_process_project(self, db, factory):
        """The project is archived only once both processes are."""
        tree = factory.tree(processes=2, tasks=2)
        p1, p2 = tree.processes
        p1_tasks, p2_tasks = tree.tasks[:2], tree.tasks[2:]

        for task in p1_tasks:
            lifecycle.archive_task(db, task.id)
        assert reload(db, p1).archived_at is not None
        assert reload(db, tree.project).archived_at is None

        for task in p2_tasks:
            lifecycle.archive_task(db, task.id)
        assert reload(db, p2).archived_at is not None
        assert reload(db, tree.project).archived_at is not None

    def test_empty_process_blocks_project_archive(self, db, factory):
        """A process with zero tasks is never auto-archived, so its project stays active."""
        tree = factory.tree(tasks=2)
        empty = factory.process(tree.project)

        for task in tree.tasks:
            lifecycle.archive_task(db, task.id)

        assert reload(db, tree.process).archived_at is not None
        assert reload(db, empty).archived_at is None
        assert reload(db, tree.project).archived_at is None

    def test_check_on_empty_process_does_nothing(self, db, factory):
        project = factory.project()
        process = factory.process(project)

        outcome = lifecycle.check_and_archive_process(db, process.id)

        assert outcome.auto_archived_process_id is None
        assert reload(db, process).archived_at is None

    def test_counts_are_live(self, db, factory):
        """A task created after the first archive keeps the process active."""
        tree = factory.tree(tasks=2)
        lifecycle.archive_task(db, tree.tasks[0].id)
        factory.task(tree.process)

        lifecycle.archive_task(db, tree.tasks[1].id)

        assert reload(db, tree.process).archived_at is None

    def test_reactivated_sibling_keeps_process_active(self, db, factory):
        """Archive T1, unarchive T1, archive T2: T1 is active again, so the process stays active."""
        tree = factory.tree(tasks=2)
        first, second = tree.tasks

        lifecycle.archive_task(db, first.id)
        lifecycle.unarchive_task(db, first.id)
        outcome = lifecycle.archive_task(db, second.id)

        assert outcome.auto_archived_process_id is None
        assert reload(db, tree.process).archived_at is None
        assert reload(db, tree.project).archived_at is None

    def test_archive_with_evidences_skips_parent_check(self, db, factory):
        tree = factory.tree(tasks=1, evidences=2)

        outcome = lifecycle.archive_task_with_evidences(db, tree.task.id, None)

        assert len(outcome.evidence_ids) == 2
        assert outcome.auto_archived_process_id is None
        assert reload(db, tree.process).archived_at is None

    def test_explicit_project_check(self, db, factory):
        tree = factory.tree(tasks=1)
        lifecycle.archive_task_with_evidences(db, tree.task.id)
        lifecycle.check_and_archive_process(db, tree.process.id)

        assert reload(db, tree.project).archived_at is not None

        outcome = lifecycle.check_and_archive_project(db, tree.project.id)
        assert outcome.auto_archived_project_id is None

    def test_dangling_process_rolls_back(self, db, factory):
        """A task whose process row is gone fails the whole operation."""
        task = factory.task(process_id=uuid4())
        evidence = factory.evidence(task)

        with pytest.raises(InconsistentStateError):
            lifecycle.archive_task(db, task.id)

        assert reload(db, task).archived_at is None
        assert reload(db, evidence).archived_at is None


class TestUnarchiveTask:
    """Test that unarchive only restores what is asked for."""

    def test_unarchive_task_leaves_parents_archived(self, db, factory):
        tree = factory.tree(tasks=1, evidences=1)
        lifecycle.archive_task(db, tree.task.id)

        lifecycle.unarchive_task(db, tree.task.id)

        task = reload(db, tree.task)
        assert task.archived_at is None
        assert task.archived_by_id is None
        assert task.evidences[0].archived_at is not None
        assert reload(db, tree.process).archived_at is not None
        assert reload(db, tree.project).archived_at is not None

    def test_unarchive_with_evidences(self, db, factory):
        tree = factory.tree(tasks=2, evidences=2)
        lifecycle.archive_task(db, tree.task.id)

        outcome = lifecycle.unarchive_task_with_evidences(db, tree.task.id)

        assert len(outcome.evidence_ids) == 2
        task = reload(db, tree.task)
        assert all(e.archived_at is None for e in task.evidences)

    def test_unarchive_active_task_is_rejected(self, db, factory):
        tree = factory.tree()

        with pytest.raises(PreconditionFailedError):
            lifecycle.unarchive_task(db, tree.task.id)


class TestProcessOperations:
    """Test process-level archive operations."""

    def test_archive_process_with_tasks(self, db, factory):
        tree = factory.tree(tasks=3, evidences=1)
        actor = factory.user()
        user_archived = tree.tasks[0]
        lifecycle.archive_task(db, user_archived.id, actor.id)

        outcome = lifecycle.archive_process_with_tasks(db, tree.process.id, actor.id)

        assert sorted(outcome.task_ids) == sorted(t.id for t in tree.tasks[1:])
        assert len(outcome.evidence_ids) == 2
        assert outcome.auto_archived_project_id == tree.project.id

        process = reload(db, tree.process)
        assert process.archived_by_id == actor.id
        assert reload(db, user_archived).archived_by_id == actor.id
        for task in tree.tasks[1:]:
            task = reload(db, task)
            assert task.archived_at == process.archived_at
            assert task.archived_by_id is None

    def test_unarchive_process_with_tasks_restores_cascaded_tasks_only(self, db, factory):
        tree = factory.tree(tasks=3)
        actor = factory.user()
        user_archived = tree.tasks[0]
        lifecycle.archive_task(db, user_archived.id, actor.id)
        lifecycle.archive_process_with_tasks(db, tree.process.id, actor.id)

        outcome = lifecycle.unarchive_process_with_tasks(db, tree.process.id, actor.id)

        assert sorted(outcome.task_ids) == sorted(t.id for t in tree.tasks[1:])
        assert reload(db, tree.process).archived_at is None
        assert reload(db, user_archived).archived_at is not None
        for task in tree.tasks[1:]:
            assert reload(db, task).archived_at is None

    def test_archive_process_only(self, db, factory):
        tree = factory.tree(processes=1, tasks=2)
        actor = factory.user()

        outcome = lifecycle.archive_process_only(db, tree.process.id, actor.id)

        assert outcome.archived_by_id == actor.id
        assert outcome.auto_archived_project_id == tree.project.id
        assert all(reload(db, t).archived_at is None for t in tree.tasks)

    def test_unarchive_process_only(self, db, factory):
        tree = factory.tree(tasks=1)
        lifecycle.archive_task(db, tree.task.id)

        lifecycle.unarchive_process(db, tree.process.id)

        assert reload(db, tree.process).archived_at is None
        assert reload(db, tree.task).archived_at is not None
        assert reload(db, tree.project).archived_at is not None

    def test_archive_empty_process_only_leaves_project_active(self, db, factory):
        """A process with zero tasks never triggers the project auto-archive."""
        project = factory.project()
        process = factory.process(project)

        outcome = lifecycle.archive_process_only(db, process.id, factory.user().id)

        assert outcome.is_archived
        assert outcome.auto_archived_project_id is None
        assert reload(db, project).archived_at is None

    def test_archive_empty_process_with_tasks_leaves_project_active(self, db, factory):
        project = factory.project()
        process = factory.process(project)

        outcome = lifecycle.archive_process_with_tasks(db, process.id, factory.user().id)

        assert outcome.task_ids == []
        assert outcome.auto_archived_project_id is None
        assert reload(db, project).archived_at is None

    def test_archive_archived_process_is_rejected(self, db, factory):
        tree = factory.tree()
        lifecycle.archive_process_only(db, tree.process.id)

        with pytest.raises(PreconditionFailedError):
            lifecycle.archive_process_with_tasks(db, tree.process.id, factory.user().id)


class TestProjectOperations:
    """Test project-level archive operations."""

    def test_archive_project_cascades_down(self, db, factory):
        tree = factory.tree(processes=2, tasks=2, evidences=1)
        actor = factory.user()

        outcome = lifecycle.archive_project(db, tree.project.id, actor.id)

        assert sorted(outcome.process_ids) == sorted(p.id for p in tree.processes)
        assert len(outcome.task_ids) == 4
        assert len(outcome.evidence_ids) == 4
        assert reload(db, tree.project).archived_by_id == actor.id
        for process in tree.processes:
            assert reload(db, process).archived_by_id == actor.id

    def test_unarchive_project_is_one_level(self, db, factory):
        tree = factory.tree(processes=2)
        actor = factory.user()
        lifecycle.archive_project(db, tree.project.id, actor.id)

        lifecycle.unarchive_project(db, tree.project.id, actor.id)

        assert reload(db, tree.project).archived_at is None
        assert all(reload(db, p).archived_at is not None for p in tree.processes)

    def test_archive_archived_project_is_rejected(self, db, factory):
        tree = factory.tree()
        actor = factory.user()
        lifecycle.archive_project(db, tree.project.id, actor.id)

        with pytest.raises(PreconditionFailedError):
            lifecycle.archive_project(db, tree.project.id, actor.id)


class TestLockOrder:
    """Test that row locks are always taken top-down."""

    @pytest.fixture
    def locked_kinds(self, monkeypatch):
        kinds = []
        original = entity_store.lock_entity

        def recording_lock_entity(db, kind, entity_id, lock=True):
            kinds.append(kind)
            return original(db, kind, entity_id, lock)

        monkeypatch.setattr(entity_store, "lock_entity", recording_lock_entity)
        return kinds

    def test_archive_task_locks_project_first(self, db, factory, locked_kinds):
        tree = factory.tree(tasks=2)

        lifecycle.archive_task(db, tree.task.id)

        assert locked_kinds[:3] == [ResourceKind.PROJECT, ResourceKind.PROCESS, ResourceKind.TASK]

    def test_process_operations_lock_project_first(self, db, factory, locked_kinds):
        tree = factory.tree(processes=3, tasks=1)
        p1, p2, p3 = tree.processes

        lifecycle.archive_process_only(db, p1.id)
        assert locked_kinds[:2] == [ResourceKind.PROJECT, ResourceKind.PROCESS]

        locked_kinds.clear()
        lifecycle.archive_process_with_tasks(db, p2.id, factory.user().id)
        assert locked_kinds[:2] == [ResourceKind.PROJECT, ResourceKind.PROCESS]

        locked_kinds.clear()
        lifecycle.check_and_archive_process(db, p3.id)
        assert locked_kinds[:2] == [ResourceKind.PROJECT, ResourceKind.PROCESS]


class TestAudit:
    """Test audit events emitted by lifecycle operations."""

    def test_archive_event_lists_every_affected_entity(self, db, factory):
        tree = factory.tree(tasks=1, evidences=2)
        actor = factory.user()

        outcome = lifecycle.archive_task(db, tree.task.id, actor.id)

        event = (
            db.query(models.AuditEvent)
            .filter(models.AuditEvent.kind == AuditEventKind.ARCHIVED)
            .one()
        )
        assert event.actor_id == actor.id
        assert event.entity_kind == ResourceKind.TASK.value
        assert event.entity_ids == [str(i) for i in outcome.affected_ids]
        assert str(tree.process.id) in event.entity_ids
        assert str(tree.project.id) in event.entity_ids

    def test_failed_operation_records_nothing(self, db, factory):
        tree = factory.tree()

        with pytest.raises(PreconditionFailedError):
            lifecycle.unarchive_task(db, tree.task.id)

        assert db.query(models.AuditEvent).count() == 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
