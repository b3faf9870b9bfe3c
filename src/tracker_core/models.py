"""SQLAlchemy database models."""
from datetime import datetime
from uuid import uuid4
import enum

from sqlalchemy import (
    Column,
    String,
    Integer,
    DateTime,
    ForeignKey,
    Enum,
    CheckConstraint,
    Boolean,
    UniqueConstraint,
    JSON,
    Uuid,
)
from sqlalchemy.orm import declarative_base, relationship

# Base class for all models
Base = declarative_base()


class RoleLabel(str, enum.Enum):
    """System-wide role label stored on each user.

    Ordered by ascending precedence. Every label below super_admin is derived
    from the user's current memberships; super_admin is assigned out of band.
    """

    USER = "user"
    UNIT_ROLE = "unit_role"
    AREA_ROLE = "area_role"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


ROLE_PRECEDENCE: dict[RoleLabel, int] = {
    RoleLabel.USER: 0,
    RoleLabel.UNIT_ROLE: 1,
    RoleLabel.AREA_ROLE: 2,
    RoleLabel.ADMIN: 3,
    RoleLabel.SUPER_ADMIN: 4,
}


class TaskStatus(str, enum.Enum):
    """Task workflow status."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    REVIEW = "review"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ResourceKind(str, enum.Enum):
    """Kinds of resources that permissions and archive state apply to."""

    AREA = "area"
    UNIT = "unit"
    PROJECT = "project"
    PROCESS = "process"
    TASK = "task"
    EVIDENCE = "evidence"


class MembershipKind(str, enum.Enum):
    """Membership kinds linking a user to an organizational entity."""

    AREA_ADMIN = "area_admin"
    AREA_MEMBER = "area_member"
    UNIT_MEMBER = "unit_member"
    PROJECT_MEMBER = "project_member"
    TASK_MEMBER = "task_member"


class Action(str, enum.Enum):
    """Actions checked by the role resolver."""

    VIEW = "view"
    CREATE = "create"
    EDIT = "edit"
    DELETE = "delete"
    ASSIGN = "assign"
    COMMENT = "comment"
    ARCHIVE = "archive"
    REACTIVATE = "reactivate"


class AuditEventKind(str, enum.Enum):
    """Audit event kinds emitted by authorization-relevant mutations."""

    MEMBERSHIP_ADDED = "membership_added"
    MEMBERSHIP_REMOVED = "membership_removed"
    ROLE_PROMOTED = "role_promoted"
    ARCHIVED = "archived"
    UNARCHIVED = "unarchived"


# Name of the Role row that marks unit admins and project admins
ADMIN_ROLE_NAME = "admin"


class User(Base):
    """
    User model.

    role_label is a cached, membership-derived summary of the user's
    privileges. It is rewritten only by the role promoter.
    """

    __tablename__ = "users"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    email = Column(String(255), nullable=False, unique=True, index=True)
    full_name = Column(String(255))
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    role_label = Column(
        Enum(RoleLabel, values_callable=lambda x: [e.value for e in x], name="role_label"),
        nullable=False,
        default=RoleLabel.USER,
        index=True,
    )

    # Audit fields
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<User {self.email} ({self.role_label.value if self.role_label else None})>"


class Role(Base):
    """Named role optionally carried by unit, project and task memberships."""

    __tablename__ = "roles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False, unique=True)

    def __repr__(self) -> str:
        return f"<Role {self.name}>"


class Area(Base):
    """Top-level organizational scope. Owns categories."""

    __tablename__ = "areas"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)

    # Relationships
    admins = relationship("AreaAdmin", back_populates="area", cascade="all, delete-orphan")
    members = relationship("AreaMember", back_populates="area", cascade="all, delete-orphan")
    categories = relationship("Category", back_populates="area")

    def __repr__(self) -> str:
        return f"<Area {self.id}: {self.name}>"


class Category(Base):
    """Groups projects within an area. This is the path from Project up to Area."""

    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    area_id = Column(Integer, ForeignKey("areas.id", ondelete="SET NULL"), nullable=True, index=True)

    # Relationships
    area = relationship("Area", back_populates="categories")

    def __repr__(self) -> str:
        return f"<Category {self.id}: {self.name}>"


class Unit(Base):
    """Administrative grouping of projects, orthogonal to areas."""

    __tablename__ = "units"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)

    # Relationships
    members = relationship("UnitMember", back_populates="unit", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<Unit {self.id}: {self.name}>"


class Project(Base):
    """
    Project model.

    Belongs to a category (and through it an area) and/or a unit.
    archived_at and archived_by_id follow the archive invariant: a null
    archived_by_id on an archived row marks a system cascade.
    """

    __tablename__ = "projects"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(255), nullable=False)
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True)
    unit_id = Column(Integer, ForeignKey("units.id", ondelete="SET NULL"), nullable=True, index=True)

    # Archive state
    archived_at = Column(DateTime, nullable=True, index=True)
    archived_by_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    # Audit fields
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    category = relationship("Category")
    unit = relationship("Unit")
    processes = relationship("Process", back_populates="project", cascade="all, delete-orphan")
    members = relationship("ProjectMember", back_populates="project", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint("archived_by_id IS NULL OR archived_at IS NOT NULL", name="project_archived_pair"),
    )

    def __repr__(self) -> str:
        return f"<Project {self.id}: {self.name}>"


class Process(Base):
    """Process model. Belongs to exactly one project."""

    __tablename__ = "processes"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(255), nullable=False)
    project_id = Column(Uuid(as_uuid=True), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)

    # Archive state
    archived_at = Column(DateTime, nullable=True, index=True)
    archived_by_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    # Audit fields
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    project = relationship("Project", back_populates="processes")
    tasks = relationship("Task", back_populates="process", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint("archived_by_id IS NULL OR archived_at IS NOT NULL", name="process_archived_pair"),
    )

    def __repr__(self) -> str:
        return f"<Process {self.id}: {self.name}>"


class Task(Base):
    """Task model. Belongs to exactly one process."""

    __tablename__ = "tasks"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(255), nullable=False)
    process_id = Column(Uuid(as_uuid=True), ForeignKey("processes.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(
        Enum(TaskStatus, values_callable=lambda x: [e.value for e in x], name="task_status"),
        nullable=False,
        default=TaskStatus.PENDING,
        index=True,
    )

    # Archive state
    archived_at = Column(DateTime, nullable=True, index=True)
    archived_by_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    # Audit fields
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    process = relationship("Process", back_populates="tasks")
    evidences = relationship("Evidence", back_populates="task", cascade="all, delete-orphan")
    members = relationship("TaskMember", back_populates="task", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint("archived_by_id IS NULL OR archived_at IS NOT NULL", name="task_archived_pair"),
    )

    def __repr__(self) -> str:
        return f"<Task {self.id}: {self.name} ({self.status.value if self.status else None})>"


class Evidence(Base):
    """Evidence attached to a task."""

    __tablename__ = "evidences"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(255), nullable=False)
    task_id = Column(Uuid(as_uuid=True), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)

    # Archive state
    archived_at = Column(DateTime, nullable=True, index=True)
    archived_by_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    # Audit fields
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    # Relationships
    task = relationship("Task", back_populates="evidences")

    __table_args__ = (
        CheckConstraint("archived_by_id IS NULL OR archived_at IS NOT NULL", name="evidence_archived_pair"),
    )

    def __repr__(self) -> str:
        return f"<Evidence {self.id}: {self.name}>"


# =============================================================================
# Memberships
# =============================================================================


class AreaAdmin(Base):
    """Junction table granting a user admin privileges over an area."""

    __tablename__ = "area_admins"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    area_id = Column(Integer, ForeignKey("areas.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    # Relationships
    area = relationship("Area", back_populates="admins")
    user = relationship("User")

    __table_args__ = (
        UniqueConstraint("area_id", "user_id", name="unique_area_admin"),
    )

    def __repr__(self) -> str:
        return f"<AreaAdmin area={self.area_id} user={self.user_id}>"


class AreaMember(Base):
    """Junction table linking a (non-admin) user to an area."""

    __tablename__ = "area_members"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    area_id = Column(Integer, ForeignKey("areas.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    # Relationships
    area = relationship("Area", back_populates="members")
    user = relationship("User")

    __table_args__ = (
        UniqueConstraint("area_id", "user_id", name="unique_area_member"),
    )

    def __repr__(self) -> str:
        return f"<AreaMember area={self.area_id} user={self.user_id}>"


class UnitMember(Base):
    """Junction table linking a user to a unit, optionally with a role."""

    __tablename__ = "unit_members"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    unit_id = Column(Integer, ForeignKey("units.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role_id = Column(Integer, ForeignKey("roles.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    # Relationships
    unit = relationship("Unit", back_populates="members")
    user = relationship("User")
    role = relationship("Role")

    __table_args__ = (
        UniqueConstraint("unit_id", "user_id", name="unique_unit_member"),
    )

    def __repr__(self) -> str:
        return f"<UnitMember unit={self.unit_id} user={self.user_id}>"


class ProjectMember(Base):
    """Junction table linking a user to a project, optionally with a role."""

    __tablename__ = "project_members"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    project_id = Column(Uuid(as_uuid=True), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role_id = Column(Integer, ForeignKey("roles.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    # Relationships
    project = relationship("Project", back_populates="members")
    user = relationship("User")
    role = relationship("Role")

    __table_args__ = (
        UniqueConstraint("project_id", "user_id", name="unique_project_member"),
    )

    def __repr__(self) -> str:
        return f"<ProjectMember project={self.project_id} user={self.user_id}>"


class TaskMember(Base):
    """Junction table linking a user to a task, optionally with a role."""

    __tablename__ = "task_members"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    task_id = Column(Uuid(as_uuid=True), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role_id = Column(Integer, ForeignKey("roles.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    # Relationships
    task = relationship("Task", back_populates="members")
    user = relationship("User")
    role = relationship("Role")

    __table_args__ = (
        UniqueConstraint("task_id", "user_id", name="unique_task_member"),
    )

    def __repr__(self) -> str:
        return f"<TaskMember task={self.task_id} user={self.user_id}>"


# Membership kind -> (model, name of the target foreign key column)
MEMBERSHIP_MODELS: dict[MembershipKind, tuple[type, str]] = {
    MembershipKind.AREA_ADMIN: (AreaAdmin, "area_id"),
    MembershipKind.AREA_MEMBER: (AreaMember, "area_id"),
    MembershipKind.UNIT_MEMBER: (UnitMember, "unit_id"),
    MembershipKind.PROJECT_MEMBER: (ProjectMember, "project_id"),
    MembershipKind.TASK_MEMBER: (TaskMember, "task_id"),
}

# Membership kind -> resource kind of its target
MEMBERSHIP_TARGETS: dict[MembershipKind, ResourceKind] = {
    MembershipKind.AREA_ADMIN: ResourceKind.AREA,
    MembershipKind.AREA_MEMBER: ResourceKind.AREA,
    MembershipKind.UNIT_MEMBER: ResourceKind.UNIT,
    MembershipKind.PROJECT_MEMBER: ResourceKind.PROJECT,
    MembershipKind.TASK_MEMBER: ResourceKind.TASK,
}

# Resource kind -> model
RESOURCE_MODELS: dict[ResourceKind, type] = {
    ResourceKind.AREA: Area,
    ResourceKind.UNIT: Unit,
    ResourceKind.PROJECT: Project,
    ResourceKind.PROCESS: Process,
    ResourceKind.TASK: Task,
    ResourceKind.EVIDENCE: Evidence,
}

# Parent kind -> (child model, name of the parent foreign key column on the child)
CHILD_MODELS: dict[ResourceKind, tuple[type, str]] = {
    ResourceKind.PROJECT: (Process, "project_id"),
    ResourceKind.PROCESS: (Task, "process_id"),
    ResourceKind.TASK: (Evidence, "task_id"),
}


class AuditEvent(Base):
    """Audit trail for authorization-relevant mutations.

    One row per membership change, role promotion, archive or unarchive.
    entity_ids lists every entity the mutation touched, cascades included.
    """

    __tablename__ = "audit_events"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    kind = Column(
        Enum(AuditEventKind, values_callable=lambda x: [e.value for e in x], name="audit_event_kind"),
        nullable=False,
        index=True,
    )
    actor_id = Column(Uuid(as_uuid=True), nullable=True, index=True)
    entity_kind = Column(String(50), nullable=False)
    entity_ids = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    def __repr__(self) -> str:
        return f"<AuditEvent {self.kind.value} {self.entity_kind}>"
