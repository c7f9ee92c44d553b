"""initial_schema_animes_episodes_users_settings

Revision ID: 4b1f0c2d9e7a
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '4b1f0c2d9e7a'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


anime_status = sa.Enum('RELEASING', 'FINISHED', 'NOT_YET_RELEASED', name='anime_status')


def upgrade() -> None:
    """
    Create the episode engine schema.

    Tables:
    1. animes - tracked titles, keyed by AniList id
    2. episodes - one row per (anime, number, dub)
    3. users - notification targets
    4. user_animes - subscriptions
    5. settings - runtime settings
    """

    # ================================
    # animes
    # ================================
    op.create_table(
        'animes',
        sa.Column('id', sa.String(length=100), nullable=False, comment='External (AniList) anime id'),
        sa.Column('title', sa.String(length=255), nullable=True, comment='Display title in the configured TITLE_TYPE'),
        sa.Column('status', anime_status, nullable=False, comment='Upstream release status'),
        sa.Column('total_episodes', sa.Integer(), nullable=False, comment='Announced episode count (0 = unknown)'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, comment='Timestamp when record was created (UTC)'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, comment='Timestamp when record was last updated (UTC)'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_animes')),
    )
    op.create_index(op.f('ix_animes_status'), 'animes', ['status'], unique=False)

    # ================================
    # episodes
    # ================================
    op.create_table(
        'episodes',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False, comment='Auto-incrementing primary key'),
        sa.Column('anime_id', sa.String(length=100), nullable=False, comment='Anime this episode belongs to'),
        sa.Column('number', sa.Integer(), nullable=False, comment='Episode number'),
        sa.Column('dub', sa.Boolean(), nullable=False, comment='True for the dubbed variant, False for sub'),
        sa.Column('providers', sa.String(length=500), nullable=False, comment='Comma-joined provider names'),
        sa.Column('title', sa.String(length=500), nullable=True, comment='Episode title'),
        sa.Column('description', sa.Text(), nullable=True, comment='Episode synopsis'),
        sa.Column('image', sa.String(length=500), nullable=True, comment='Episode thumbnail URL'),
        sa.Column('released_at', sa.DateTime(timezone=True), nullable=False, comment='Upstream release time, or discovery time when unknown (UTC)'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, comment='Timestamp when record was created (UTC)'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, comment='Timestamp when record was last updated (UTC)'),
        sa.ForeignKeyConstraint(['anime_id'], ['animes.id'], name=op.f('fk_episodes_anime_id_animes'), ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_episodes')),
        sa.UniqueConstraint('anime_id', 'number', 'dub', name='uq_episode_anime_number_dub'),
    )
    op.create_index(op.f('ix_episodes_anime_id'), 'episodes', ['anime_id'], unique=False)
    op.create_index(op.f('ix_episodes_released_at'), 'episodes', ['released_at'], unique=False)

    # ================================
    # users
    # ================================
    op.create_table(
        'users',
        sa.Column('id', sa.String(length=36), nullable=False, comment='User UUID'),
        sa.Column('username', sa.String(length=50), nullable=False, comment='Unique username'),
        sa.Column('anilist_id', sa.String(length=50), nullable=True, comment='Linked AniList user id'),
        sa.Column('discord_webhook', sa.String(length=500), nullable=True, comment='Discord webhook URL'),
        sa.Column('ntfy_url', sa.String(length=500), nullable=True, comment='ntfy topic URL'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, comment='Timestamp when record was created (UTC)'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, comment='Timestamp when record was last updated (UTC)'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_users')),
        sa.UniqueConstraint('username', name=op.f('uq_users_username')),
    )
    op.create_index(op.f('ix_users_anilist_id'), 'users', ['anilist_id'], unique=False)

    # ================================
    # user_animes (subscriptions)
    # ================================
    op.create_table(
        'user_animes',
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('anime_id', sa.String(length=100), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name=op.f('fk_user_animes_user_id_users'), ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['anime_id'], ['animes.id'], name=op.f('fk_user_animes_anime_id_animes'), ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('user_id', 'anime_id', name=op.f('pk_user_animes')),
    )
    op.create_index(op.f('ix_user_animes_anime_id'), 'user_animes', ['anime_id'], unique=False)

    # ================================
    # settings
    # ================================
    op.create_table(
        'settings',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False, comment='Auto-incrementing primary key'),
        sa.Column('key', sa.String(length=50), nullable=False, comment='Setting key (see SettingKey)'),
        sa.Column('value', sa.Text(), nullable=False, comment='Raw string value'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, comment='Timestamp when record was created (UTC)'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, comment='Timestamp when record was last updated (UTC)'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_settings')),
        sa.UniqueConstraint('key', name=op.f('uq_settings_key')),
    )


def downgrade() -> None:
    """Drop the episode engine schema."""
    op.drop_table('settings')
    op.drop_index(op.f('ix_user_animes_anime_id'), table_name='user_animes')
    op.drop_table('user_animes')
    op.drop_index(op.f('ix_users_anilist_id'), table_name='users')
    op.drop_table('users')
    op.drop_index(op.f('ix_episodes_released_at'), table_name='episodes')
    op.drop_index(op.f('ix_episodes_anime_id'), table_name='episodes')
    op.drop_table('episodes')
    op.drop_index(op.f('ix_animes_status'), table_name='animes')
    op.drop_table('animes')
    anime_status.drop(op.get_bind(), checkfirst=True)
