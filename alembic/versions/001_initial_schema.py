"""Initial schema: organization hierarchy, memberships, archive state and audit trail.

Revision ID: 001
Revises:
Create Date: 2026-10-19

This migration creates:
- users (with the membership-derived role_label)
- roles, areas, categories, units
- projects, processes, tasks, evidences (with archived_at / archived_by_id)
- area_admins, area_members, unit_members, project_members, task_members
- audit_events

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _archive_columns() -> list:
    return [
        sa.Column('archived_at', sa.DateTime, nullable=True),
        sa.Column('archived_by_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
    ]


def upgrade() -> None:
    """Create the hierarchy, membership and audit tables."""

    # 1. Users and roles
    op.create_table(
        'users',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('full_name', sa.String(255)),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default='true'),
        sa.Column('role_label', sa.Enum('user', 'unit_role', 'area_role', 'admin', 'super_admin', name='role_label'), nullable=False, server_default='user'),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index('idx_users_email', 'users', ['email'], unique=True)
    op.create_index('idx_users_is_active', 'users', ['is_active'])
    op.create_index('idx_users_role_label', 'users', ['role_label'])

    op.create_table(
        'roles',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(100), nullable=False, unique=True),
    )

    # 2. Organizational scopes
    op.create_table(
        'areas',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(255), nullable=False),
    )

    op.create_table(
        'categories',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('area_id', sa.Integer, sa.ForeignKey('areas.id', ondelete='SET NULL'), nullable=True),
    )
    op.create_index('idx_categories_area', 'categories', ['area_id'])

    op.create_table(
        'units',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(255), nullable=False),
    )

    # 3. Archivable hierarchy: projects -> processes -> tasks -> evidences
    op.create_table(
        'projects',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('category_id', sa.Integer, sa.ForeignKey('categories.id', ondelete='SET NULL'), nullable=True),
        sa.Column('unit_id', sa.Integer, sa.ForeignKey('units.id', ondelete='SET NULL'), nullable=True),
        *_archive_columns(),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.CheckConstraint('archived_by_id IS NULL OR archived_at IS NOT NULL', name='project_archived_pair'),
    )
    op.create_index('idx_projects_category', 'projects', ['category_id'])
    op.create_index('idx_projects_unit', 'projects', ['unit_id'])
    op.create_index('idx_projects_archived_at', 'projects', ['archived_at'])
    op.create_index('idx_projects_created_at', 'projects', ['created_at'])

    op.create_table(
        'processes',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('project_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False),
        *_archive_columns(),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.CheckConstraint('archived_by_id IS NULL OR archived_at IS NOT NULL', name='process_archived_pair'),
    )
    op.create_index('idx_processes_project', 'processes', ['project_id'])
    op.create_index('idx_processes_archived_at', 'processes', ['archived_at'])

    op.create_table(
        'tasks',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('process_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('processes.id', ondelete='CASCADE'), nullable=False),
        sa.Column('status', sa.Enum('pending', 'in_progress', 'review', 'completed', 'cancelled', name='task_status'), nullable=False, server_default='pending'),
        *_archive_columns(),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.CheckConstraint('archived_by_id IS NULL OR archived_at IS NOT NULL', name='task_archived_pair'),
    )
    op.create_index('idx_tasks_process', 'tasks', ['process_id'])
    op.create_index('idx_tasks_status', 'tasks', ['status'])
    op.create_index('idx_tasks_archived_at', 'tasks', ['archived_at'])

    op.create_table(
        'evidences',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('task_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('tasks.id', ondelete='CASCADE'), nullable=False),
        *_archive_columns(),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.CheckConstraint('archived_by_id IS NULL OR archived_at IS NOT NULL', name='evidence_archived_pair'),
    )
    op.create_index('idx_evidences_task', 'evidences', ['task_id'])
    op.create_index('idx_evidences_archived_at', 'evidences', ['archived_at'])

    # 4. Memberships (one row per user and target)
    op.create_table(
        'area_admins',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('area_id', sa.Integer, sa.ForeignKey('areas.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.UniqueConstraint('area_id', 'user_id', name='unique_area_admin'),
    )
    op.create_index('idx_area_admins_user', 'area_admins', ['user_id'])

    op.create_table(
        'area_members',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('area_id', sa.Integer, sa.ForeignKey('areas.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.UniqueConstraint('area_id', 'user_id', name='unique_area_member'),
    )
    op.create_index('idx_area_members_user', 'area_members', ['user_id'])

    op.create_table(
        'unit_members',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('unit_id', sa.Integer, sa.ForeignKey('units.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('role_id', sa.Integer, sa.ForeignKey('roles.id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.UniqueConstraint('unit_id', 'user_id', name='unique_unit_member'),
    )
    op.create_index('idx_unit_members_user', 'unit_members', ['user_id'])

    op.create_table(
        'project_members',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('project_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('role_id', sa.Integer, sa.ForeignKey('roles.id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.UniqueConstraint('project_id', 'user_id', name='unique_project_member'),
    )
    op.create_index('idx_project_members_user', 'project_members', ['user_id'])

    op.create_table(
        'task_members',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('task_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('tasks.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('role_id', sa.Integer, sa.ForeignKey('roles.id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.UniqueConstraint('task_id', 'user_id', name='unique_task_member'),
    )
    op.create_index('idx_task_members_user', 'task_members', ['user_id'])

    # 5. Audit trail
    op.create_table(
        'audit_events',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('kind', sa.Enum('membership_added', 'membership_removed', 'role_promoted', 'archived', 'unarchived', name='audit_event_kind'), nullable=False),
        sa.Column('actor_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('entity_kind', sa.String(50), nullable=False),
        sa.Column('entity_ids', sa.JSON, nullable=False, server_default='[]'),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index('idx_audit_events_kind', 'audit_events', ['kind'])
    op.create_index('idx_audit_events_actor', 'audit_events', ['actor_id'])
    op.create_index('idx_audit_events_created_at', 'audit_events', ['created_at'], postgresql_ops={'created_at': 'DESC'})

    # Seed the role that marks unit and project admins
    op.execute("INSERT INTO roles (name) VALUES ('admin')")


def downgrade() -> None:
    # Drop tables (children first)
    op.drop_table('audit_events')
    op.drop_table('task_members')
    op.drop_table('project_members')
    op.drop_table('unit_members')
    op.drop_table('area_members')
    op.drop_table('area_admins')
    op.drop_table('evidences')
    op.drop_table('tasks')
    op.drop_table('processes')
    op.drop_table('projects')
    op.drop_table('units')
    op.drop_table('categories')
    op.drop_table('areas')
    op.drop_table('roles')
    op.drop_table('users')

    # Drop enums
    op.execute('DROP TYPE IF EXISTS audit_event_kind')
    op.execute('DROP TYPE IF EXISTS task_status')
    op.execute('DROP TYPE IF EXISTS role_label')
