"""Shared pytest fixtures for the tracker-core test suite.

Provides:
    - engine: in-memory SQLite engine with all tables (function-scoped)
    - db: SQLAlchemy session bound to that engine
    - factory: helpers creating users, the organization hierarchy and memberships
    - client: FastAPI TestClient whose requests use the same database
"""
import os
from uuid import uuid4

# Keep the application engine off PostgreSQL when tracker_core.database is imported
os.environ.setdefault("TRACKER_DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from tracker_core import membership_store, models
from tracker_core.models import ADMIN_ROLE_NAME, Base, MembershipKind, RoleLabel


@pytest.fixture
def engine():
    """Fresh in-memory database per test. Foreign keys are not enforced, so
    tests can create rows whose parents are missing."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


class Factory:
    """Creates committed rows for tests."""

    def __init__(self, db):
        self.db = db

    def _save(self, obj):
        self.db.add(obj)
        self.db.commit()
        self.db.refresh(obj)
        return obj

    def user(self, role_label: RoleLabel = RoleLabel.USER, email: str = None) -> models.User:
        return self._save(models.User(
            email=email or f"user-{uuid4().hex[:8]}@example.com",
            full_name="Test User",
            role_label=role_label,
        ))

    def super_admin(self) -> models.User:
        return self.user(role_label=RoleLabel.SUPER_ADMIN)

    def admin_role(self) -> models.Role:
        role = self.db.query(models.Role).filter(models.Role.name == ADMIN_ROLE_NAME).first()
        if role is None:
            role = self._save(models.Role(name=ADMIN_ROLE_NAME))
        return role

    def role(self, name: str) -> models.Role:
        return self._save(models.Role(name=name))

    def area(self, name: str = "Area") -> models.Area:
        return self._save(models.Area(name=name))

    def category(self, area: models.Area = None, area_id: int = None) -> models.Category:
        if area is not None:
            area_id = area.id
        return self._save(models.Category(name="Category", area_id=area_id))

    def unit(self, name: str = "Unit") -> models.Unit:
        return self._save(models.Unit(name=name))

    def project(self, category: models.Category = None, unit: models.Unit = None, **kwargs) -> models.Project:
        values = {
            "name": "Project",
            "category_id": category.id if category is not None else None,
            "unit_id": unit.id if unit is not None else None,
        }
        values.update(kwargs)
        return self._save(models.Project(**values))

    def process(self, project: models.Project = None, project_id=None) -> models.Process:
        if project is not None:
            project_id = project.id
        return self._save(models.Process(name="Process", project_id=project_id))

    def task(self, process: models.Process = None, process_id=None) -> models.Task:
        if process is not None:
            process_id = process.id
        return self._save(models.Task(name="Task", process_id=process_id))

    def evidence(self, task: models.Task) -> models.Evidence:
        return self._save(models.Evidence(name="Evidence", task_id=task.id))

    def membership(self, kind: MembershipKind, user: models.User, target_id, role_id: int = None):
        """Insert a membership row directly, bypassing permission checks and promotion."""
        membership = membership_store.create_membership(self.db, kind, user.id, target_id, role_id)
        self.db.commit()
        self.db.refresh(membership)
        return membership

    def tree(self, processes: int = 1, tasks: int = 1, evidences: int = 0):
        """Build area -> category -> project (with unit) -> processes -> tasks -> evidences."""
        area = self.area()
        category = self.category(area)
        unit = self.unit()
        project = self.project(category, unit)
        process_rows, task_rows = [], []
        for _ in range(processes):
            process = self.process(project)
            process_rows.append(process)
            for _ in range(tasks):
                task = self.task(process)
                task_rows.append(task)
                for _ in range(evidences):
                    self.evidence(task)
        return Tree(area, category, unit, project, process_rows, task_rows)


class Tree:
    """Handles to a hierarchy built by Factory.tree()."""

    def __init__(self, area, category, unit, project, processes, tasks):
        self.area = area
        self.category = category
        self.unit = unit
        self.project = project
        self.processes = processes
        self.tasks = tasks

    @property
    def process(self):
        return self.processes[0]

    @property
    def task(self):
        return self.tasks[0]


@pytest.fixture
def factory(db):
    return Factory(db)


@pytest.fixture
def client(session_factory):
    from fastapi.testclient import TestClient

    from tracker_core.api.main import app
    from tracker_core.database import get_db

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
