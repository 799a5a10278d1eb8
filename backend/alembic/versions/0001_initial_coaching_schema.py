"""Initial coaching schema: users, permissions, sessions, scorecards, notes, audit

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '0001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
    ]


def upgrade() -> None:
    # 1. Users (self-referencing hierarchy)
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=True),
        sa.Column('password_hash', sa.String(length=255), nullable=True),
        sa.Column('role', sa.String(length=20), nullable=False, server_default='AGENT'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('employee_id', sa.String(length=50), nullable=True),
        sa.Column('department', sa.String(length=100), nullable=True),
        sa.Column('team_leader_id', sa.Integer(), nullable=True),
        sa.Column('managed_by', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['team_leader_id'], ['users.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['managed_by'], ['users.id'], ondelete='SET NULL'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_role', 'users', ['role'])
    op.create_index('ix_users_team_leader_id', 'users', ['team_leader_id'])
    op.create_index('ix_users_managed_by', 'users', ['managed_by'])

    # 2. Permission catalogue + role grants
    op.create_table(
        'permissions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('display_name', sa.String(length=100), nullable=True),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('resource', sa.String(length=50), nullable=False),
        sa.Column('action', sa.String(length=30), nullable=False),
        sa.Column('category', sa.String(length=50), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_permissions_name', 'permissions', ['name'], unique=True)

    op.create_table(
        'role_permissions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('role', sa.String(length=20), nullable=False),
        sa.Column('permission_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['permission_id'], ['permissions.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('role', 'permission_id', name='uq_role_permission'),
    )
    op.create_index('ix_role_permissions_role', 'role_permissions', ['role'])

    # 3. Coaching sessions
    op.create_table(
        'coaching_sessions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('agent_id', sa.Integer(), nullable=False),
        sa.Column('team_leader_id', sa.Integer(), nullable=False),
        sa.Column('scheduled_date', sa.DateTime(), nullable=False),
        sa.Column('session_date', sa.DateTime(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='SCHEDULED'),
        sa.Column('previous_score', sa.Float(), nullable=True),
        sa.Column('current_score', sa.Float(), nullable=True),
        sa.Column('preparation_notes', sa.Text(), nullable=True),
        sa.Column('session_notes', sa.Text(), nullable=True),
        sa.Column('follow_up_date', sa.DateTime(), nullable=True),
        sa.Column('duration', sa.Integer(), nullable=False, server_default='60'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['agent_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['team_leader_id'], ['users.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_coaching_sessions_agent_id', 'coaching_sessions', ['agent_id'])
    op.create_index('ix_coaching_sessions_team_leader_id', 'coaching_sessions', ['team_leader_id'])
    op.create_index('ix_coaching_sessions_scheduled_date', 'coaching_sessions', ['scheduled_date'])

    # 4. Monthly scorecards
    percent_metrics = [
        'schedule_adherence', 'attendance_rate', 'punctuality_score', 'break_compliance',
        'task_completion_rate', 'productivity_index', 'quality_score', 'efficiency_rate',
    ]
    default_weights = {
        'schedule_adherence': '1.0', 'attendance_rate': '0.5', 'punctuality_score': '0.5',
        'break_compliance': '0.5', 'task_completion_rate': '1.5', 'productivity_index': '1.5',
        'quality_score': '1.5', 'efficiency_rate': '1.0',
    }
    raw_float = ['scheduled_hours', 'actual_hours', 'expected_output', 'actual_output',
                 'standard_time', 'actual_time_spent']
    raw_int = ['scheduled_days', 'days_present', 'total_shifts', 'on_time_arrivals',
               'total_breaks', 'breaks_within_limit', 'tasks_assigned', 'tasks_completed',
               'total_tasks', 'error_free_tasks']
    legacy = ['service', 'productivity', 'quality', 'assiduity',
              'performance', 'adherence', 'lateness', 'break_exceeds']

    op.create_table(
        'agent_metrics',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('agent_id', sa.Integer(), nullable=False),
        sa.Column('month', sa.Integer(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        *[sa.Column(name, sa.Float(), nullable=True) for name in percent_metrics],
        *[sa.Column(name, sa.Float(), nullable=True) for name in raw_float],
        *[sa.Column(name, sa.Integer(), nullable=True) for name in raw_int],
        *[
            sa.Column(f'{name}_weight', sa.Float(), nullable=False, server_default=default_weights[name])
            for name in percent_metrics
        ],
        *[sa.Column(name, sa.Float(), nullable=True) for name in legacy],
        sa.Column('total_score', sa.Float(), nullable=True),
        sa.Column('percentage', sa.Float(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['agent_id'], ['users.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('agent_id', 'month', 'year', name='uq_agent_metric_period'),
    )
    op.create_index('ix_agent_metrics_agent_id', 'agent_metrics', ['agent_id'])
    op.create_index('ix_agent_metrics_year', 'agent_metrics', ['year'])
    op.create_index('ix_agent_metrics_created_at', 'agent_metrics', ['created_at'])

    # 5. Quick notes
    op.create_table(
        'quick_notes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('content', sa.String(length=500), nullable=False),
        sa.Column('category', sa.String(length=20), nullable=False),
        sa.Column('agent_id', sa.Integer(), nullable=False),
        sa.Column('author_id', sa.Integer(), nullable=False),
        sa.Column('is_private', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['agent_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['author_id'], ['users.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_quick_notes_category', 'quick_notes', ['category'])
    op.create_index('ix_quick_notes_agent_id', 'quick_notes', ['agent_id'])
    op.create_index('ix_quick_notes_author_id', 'quick_notes', ['author_id'])
    op.create_index('ix_quick_notes_created_at', 'quick_notes', ['created_at'])

    # 6. Audit log
    op.create_table(
        'audit_log',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('action', sa.String(length=30), nullable=False),
        sa.Column('resource', sa.String(length=30), nullable=False),
        sa.Column('resource_id', sa.String(length=50), nullable=True),
        sa.Column('details', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_audit_log_user_id', 'audit_log', ['user_id'])
    op.create_index('ix_audit_log_action', 'audit_log', ['action'])
    op.create_index('ix_audit_log_created_at', 'audit_log', ['created_at'])


def downgrade() -> None:
    op.drop_table('audit_log')
    op.drop_table('quick_notes')
    op.drop_table('agent_metrics')
    op.drop_table('coaching_sessions')
    op.drop_table('role_permissions')
    op.drop_table('permissions')
    op.drop_table('users')
