"""Initial schema: users, events, participants, repositories, commits, scores.

Revision ID: 001
Revises:
Create Date: 2026-10-19

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


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(255), nullable=False),
        sa.Column('display_name', sa.String(255), nullable=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('github_username', sa.String(255), nullable=True),
        sa.Column('avatar_url', sa.Text(), nullable=True),
        sa.Column('discord_id', sa.String(64), nullable=True),
        sa.Column('total_events', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('username'),
    )
    op.create_index('idx_users_github_username', 'users', ['github_username'])

    op.create_table(
        'events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_by_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(50), nullable=False, server_default='waiting'),
        sa.Column('max_participants', sa.Integer(), nullable=False),
        sa.Column('current_participants', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('duration_hours', sa.Integer(), nullable=False),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('end_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('total_commits', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('min_commits', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('allowed_languages', postgresql.JSONB(), nullable=True),
        sa.Column('require_tests', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_public', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('discord_channel_id', sa.String(64), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['created_by_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('current_participants <= max_participants', name='ck_events_capacity'),
    )
    op.create_index('idx_events_status', 'events', ['status'])
    op.create_index('idx_events_status_end_time', 'events', ['status', 'end_time'])

    op.create_table(
        'repositories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('event_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('github_url', sa.String(512), nullable=False),
        sa.Column('owner', sa.String(255), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('full_name', sa.String(512), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('language', sa.String(100), nullable=True),
        sa.Column('default_branch', sa.String(255), nullable=False, server_default='main'),
        sa.Column('total_commits', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('additions', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('deletions', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('files_changed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('average_quality', sa.Float(), nullable=False, server_default='0'),
        sa.Column('last_commit_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('webhook_id', sa.String(64), nullable=True),
        sa.Column('webhook_active', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.ForeignKeyConstraint(['event_id'], ['events.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_repositories_event_github_url', 'repositories', ['event_id', 'github_url'], unique=True)
    op.create_index('idx_repositories_event_user', 'repositories', ['event_id', 'user_id'])
    op.create_index('idx_repositories_full_name', 'repositories', ['full_name'])

    op.create_table(
        'event_participants',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('event_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('repo_id', sa.Integer(), nullable=True),
        sa.Column('joined_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['event_id'], ['events.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['repo_id'], ['repositories.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_event_participants_event_user', 'event_participants', ['event_id', 'user_id'], unique=True)

    op.create_table(
        'commits',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('event_id', sa.Integer(), nullable=False),
        sa.Column('repo_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('sha', sa.String(64), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('author_name', sa.String(255), nullable=True),
        sa.Column('author_email', sa.String(255), nullable=True),
        sa.Column('author_username', sa.String(255), nullable=True),
        sa.Column('author_avatar', sa.Text(), nullable=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('url', sa.Text(), nullable=False),
        sa.Column('additions', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('deletions', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_changes', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('files_changed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('files', postgresql.JSONB(), nullable=True),
        sa.Column('ai_processed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('ai_quality_score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('ai_is_spam', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('ai_category', sa.String(20), nullable=False, server_default='other'),
        sa.Column('ai_complexity', sa.String(20), nullable=False, server_default='medium'),
        sa.Column('ai_summary', sa.Text(), nullable=True),
        sa.Column('ai_feedback', sa.Text(), nullable=True),
        sa.Column('ai_suggestions', postgresql.JSONB(), nullable=True),
        sa.Column('ai_technologies', postgresql.JSONB(), nullable=True),
        sa.Column('score_base', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('score_quality', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('score_timing', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('score_total', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_valid', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_late_submission', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_first_commit', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_large_commit', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.ForeignKeyConstraint(['event_id'], ['events.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['repo_id'], ['repositories.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_commits_sha', 'commits', ['sha'], unique=True)
    op.create_index('idx_commits_event_timestamp', 'commits', ['event_id', 'timestamp'])
    op.create_index('idx_commits_repo_timestamp', 'commits', ['repo_id', 'timestamp'])
    op.create_index('idx_commits_event_user', 'commits', ['event_id', 'user_id'])
    op.create_index('idx_commits_ai_processed', 'commits', ['ai_processed'])

    op.create_table(
        'scores',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('event_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('repo_id', sa.Integer(), nullable=False),
        sa.Column('total_commits', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('valid_commits', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('base_score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('quality_score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('timing_score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('bonus_score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('average_quality', sa.Float(), nullable=False, server_default='0'),
        sa.Column('total_additions', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_deletions', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_files_changed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('rank', sa.Integer(), nullable=True),
        sa.Column('percentile', sa.Numeric(5, 2), nullable=True),
        sa.Column('is_locked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('last_updated', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['event_id'], ['events.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['repo_id'], ['repositories.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_scores_event_user', 'scores', ['event_id', 'user_id'], unique=True)
    op.create_index('idx_scores_event_total', 'scores', ['event_id', 'total_score'])
    op.create_index('idx_scores_event_rank', 'scores', ['event_id', 'rank'])

    op.create_table(
        'achievements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('score_id', sa.Integer(), nullable=False),
        sa.Column('achievement_type', sa.String(50), nullable=False),
        sa.Column('earned_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['score_id'], ['scores.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_achievements_score_type', 'achievements', ['score_id', 'achievement_type'], unique=True)


def downgrade() -> None:
    op.drop_table('achievements')
    op.drop_table('scores')
    op.drop_table('commits')
    op.drop_table('event_participants')
    op.drop_table('repositories')
    op.drop_table('events')
    op.drop_table('users')
