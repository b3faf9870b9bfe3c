"""Tests for ownership chain resolution."""
from uuid import uuid4

import pytest

from tracker_core import hierarchy
from tracker_core.errors import NotFoundError
from tracker_core.models import ResourceKind


class TestResolveOwningArea:
    """Test Task -> Process -> Project -> Category -> Area resolution."""

    def test_every_level_resolves_to_the_same_area(self, db, factory):
        """Tasks, processes and projects all resolve to the category's area."""
        tree = factory.tree()

        assert hierarchy.resolve_owning_area(db, ResourceKind.TASK, tree.task.id) == tree.area.id
        assert hierarchy.resolve_owning_area(db, ResourceKind.PROCESS, tree.process.id) == tree.area.id
        assert hierarchy.resolve_owning_area(db, ResourceKind.PROJECT, tree.project.id) == tree.area.id
        assert hierarchy.resolve_owning_area(db, ResourceKind.AREA, tree.area.id) == tree.area.id

    def test_project_without_category_has_no_area(self, db, factory):
        project = factory.project()
        process = factory.process(project)

        assert hierarchy.resolve_owning_area(db, ResourceKind.PROJECT, project.id) is None
        assert hierarchy.resolve_owning_area(db, ResourceKind.PROCESS, process.id) is None

    def test_category_without_area_has_no_area(self, db, factory):
        category = factory.category()
        project = factory.project(category)

        assert hierarchy.resolve_owning_area(db, ResourceKind.PROJECT, project.id) is None

    def test_missing_category_row_fails_closed(self, db, factory):
        """A project pointing at a deleted category resolves to no area, not an error."""
        project = factory.project(category_id=9999)

        assert hierarchy.resolve_owning_area(db, ResourceKind.PROJECT, project.id) is None

    def test_units_are_not_area_scoped(self, db, factory):
        unit = factory.unit()

        assert hierarchy.resolve_owning_area(db, ResourceKind.UNIT, unit.id) is None

    def test_missing_resource_raises(self, db, factory):
        with pytest.raises(NotFoundError) as exc_info:
            hierarchy.resolve_owning_area(db, ResourceKind.TASK, uuid4())
        assert exc_info.value.kind == "task"

        with pytest.raises(NotFoundError):
            hierarchy.resolve_owning_area(db, ResourceKind.AREA, 424242)

        with pytest.raises(NotFoundError):
            hierarchy.resolve_owning_area(db, ResourceKind.UNIT, 424242)

    def test_missing_required_ancestor_names_the_ancestor(self, db, factory):
        """A task whose process row is gone raises NotFoundError for the process."""
        missing_process_id = uuid4()
        task = factory.task(process_id=missing_process_id)

        with pytest.raises(NotFoundError) as exc_info:
            hierarchy.resolve_owning_area(db, ResourceKind.TASK, task.id)

        assert exc_info.value.kind == "process"
        assert exc_info.value.resource_id == missing_process_id

    def test_missing_project_of_process_raises(self, db, factory):
        process = factory.process(project_id=uuid4())

        with pytest.raises(NotFoundError) as exc_info:
            hierarchy.resolve_owning_area(db, ResourceKind.PROCESS, process.id)

        assert exc_info.value.kind == "project"


class TestResolveProjectAndUnit:
    """Test project and unit lookups through the chain."""

    def test_evidence_resolves_through_its_task(self, db, factory):
        tree = factory.tree(evidences=1)
        evidence = tree.task.evidences[0]

        project = hierarchy.resolve_project(db, ResourceKind.EVIDENCE, evidence.id)

        assert project.id == tree.project.id

    def test_resolve_unit(self, db, factory):
        tree = factory.tree()

        assert hierarchy.resolve_unit(db, ResourceKind.TASK, tree.task.id) == tree.unit.id
        assert hierarchy.resolve_unit(db, ResourceKind.UNIT, tree.unit.id) == tree.unit.id

    def test_project_without_unit(self, db, factory):
        project = factory.project()

        assert hierarchy.resolve_unit(db, ResourceKind.PROJECT, project.id) is None

    def test_area_has_no_project(self, db, factory):
        area = factory.area()

        assert hierarchy.resolve_project_id(db, ResourceKind.AREA, area.id) is None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
