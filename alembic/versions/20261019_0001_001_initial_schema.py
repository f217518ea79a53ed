"""Initial schema for users, podcasts, episodes, subscriptions, listened marks and import jobs

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create users table
    op.create_table(
        'users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('email', sa.String(256), unique=True, nullable=False),
        sa.Column('name', sa.String(256), nullable=True),
        sa.Column('notify_on_new_episodes', sa.Boolean, nullable=False, server_default='0'),
        sa.Column('created_at', sa.BigInteger, nullable=True),
    )
    op.create_index('ix_users_email', 'users', ['email'])

    # Create podcasts table
    op.create_table(
        'podcasts',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('feed_url', sa.String(2048), unique=True, nullable=False),
        sa.Column('title', sa.String(512), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('image_url', sa.String(2048), nullable=True),
        sa.Column('author', sa.String(512), nullable=True),
        sa.Column('last_fetched_at', sa.BigInteger, nullable=False),
    )
    op.create_index('ix_podcasts_feed_url', 'podcasts', ['feed_url'])

    # Create episodes table
    op.create_table(
        'episodes',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('podcast_id', sa.String(36), sa.ForeignKey('podcasts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('guid', sa.String(2048), nullable=False),
        sa.Column('title', sa.String(512), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('audio_url', sa.String(2048), nullable=False),
        sa.Column('duration_seconds', sa.Integer, nullable=True),
        sa.Column('published_at', sa.BigInteger, nullable=False),
        sa.Column('archived', sa.Boolean, nullable=False, server_default='0'),
        sa.UniqueConstraint('podcast_id', 'guid', name='uq_episode_podcast_guid'),
    )
    op.create_index('ix_episodes_podcast_id', 'episodes', ['podcast_id'])
    op.create_index('ix_episodes_published_at', 'episodes', ['published_at'])

    # Create subscriptions table
    op.create_table(
        'subscriptions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('podcast_id', sa.String(36), sa.ForeignKey('podcasts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('notifications_enabled', sa.Boolean, nullable=False, server_default='0'),
        sa.Column('subscribed_at', sa.BigInteger, nullable=False),
        sa.UniqueConstraint('user_id', 'podcast_id', name='uq_user_podcast_subscription'),
    )
    op.create_index('ix_subscriptions_user_id', 'subscriptions', ['user_id'])
    op.create_index('ix_subscriptions_podcast_id', 'subscriptions', ['podcast_id'])

    # Create listened_episodes table
    op.create_table(
        'listened_episodes',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('episode_id', sa.String(36), sa.ForeignKey('episodes.id', ondelete='CASCADE'), nullable=False),
        sa.Column('listened_at', sa.BigInteger, nullable=False),
        sa.Column('position_seconds', sa.Integer, nullable=False, server_default='0'),
        sa.UniqueConstraint('user_id', 'episode_id', name='uq_listened_user_episode'),
    )
    op.create_index('ix_listened_episodes_user_id', 'listened_episodes', ['user_id'])

    # Create import_jobs table
    op.create_table(
        'import_jobs',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('status', sa.String(16), nullable=False),
        sa.Column('total', sa.Integer, nullable=False),
        sa.Column('succeeded', sa.Integer, nullable=False),
        sa.Column('failed_titles', sa.JSON, nullable=False),
        sa.Column('started_at', sa.BigInteger, nullable=False),
        sa.Column('completed_at', sa.BigInteger, nullable=True),
    )
    op.create_index('ix_import_jobs_user_id', 'import_jobs', ['user_id'])
    op.create_index('ix_import_jobs_status', 'import_jobs', ['status'])


def downgrade() -> None:
    op.drop_index('ix_import_jobs_status', table_name='import_jobs')
    op.drop_index('ix_import_jobs_user_id', table_name='import_jobs')
    op.drop_table('import_jobs')

    op.drop_index('ix_listened_episodes_user_id', table_name='listened_episodes')
    op.drop_table('listened_episodes')

    op.drop_index('ix_subscriptions_podcast_id', table_name='subscriptions')
    op.drop_index('ix_subscriptions_user_id', table_name='subscriptions')
    op.drop_table('subscriptions')

    op.drop_index('ix_episodes_published_at', table_name='episodes')
    op.drop_index('ix_episodes_podcast_id', table_name='episodes')
    op.drop_table('episodes')

    op.drop_index('ix_podcasts_feed_url', table_name='podcasts')
    op.drop_table('podcasts')

    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
