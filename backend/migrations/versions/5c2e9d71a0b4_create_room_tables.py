"""create user, room and room_player tables

Revision ID: 5c2e9d71a0b4
Revises:
Create Date: 2026-10-17 10:20:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5c2e9d71a0b4'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())

    if 'user' not in existing_tables:
        op.create_table(
            'user',
            sa.Column('id', sa.String(length=64), primary_key=True),
            sa.Column('username', sa.String(length=64), nullable=False),
            sa.Column('avatar', sa.String(length=256), nullable=True),
            sa.Column('spotify_access_token', sa.Text(), nullable=True),
            sa.Column('spotify_refresh_token', sa.Text(), nullable=True),
            sa.Column('spotify_expires_at', sa.Float(), nullable=True),
            sa.Column('created_at', sa.Float(), nullable=False),
        )

    if 'room' not in existing_tables:
        op.create_table(
            'room',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('code', sa.String(length=12), nullable=False),
            sa.Column('host_id', sa.String(length=64), nullable=False),
            sa.Column('max_players', sa.Integer(), nullable=False, server_default='10'),
            sa.Column('total_rounds', sa.Integer(), nullable=False),
            sa.Column('current_round', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('round_duration', sa.Integer(), nullable=False, server_default='30'),
            sa.Column('status', sa.String(length=16), nullable=False, server_default='waiting'),
            sa.Column('song_source', sa.String(length=16), nullable=False),
            sa.Column('song_source_id', sa.String(length=128), nullable=True),
            sa.Column('track_id', sa.String(length=64), nullable=True),
            sa.Column('track_title', sa.String(length=256), nullable=True),
            sa.Column('track_artist', sa.String(length=256), nullable=True),
            sa.Column('track_album_art', sa.String(length=512), nullable=True),
            sa.Column('track_duration_ms', sa.Integer(), nullable=True),
            sa.Column('track_preview_url', sa.String(length=512), nullable=True),
            sa.Column('round_started_at', sa.Float(), nullable=True),
            sa.Column('round_deadline', sa.Float(), nullable=True),
            sa.Column('artist_guessed_by', sa.String(length=64), nullable=True),
            sa.Column('title_guessed_by', sa.String(length=64), nullable=True),
            sa.Column('created_at', sa.Float(), nullable=False),
            sa.Column('updated_at', sa.Float(), nullable=False),
        )
        op.create_index('ix_room_code', 'room', ['code'], unique=True)
        op.create_index('ix_room_host_id', 'room', ['host_id'])

    if 'room_player' not in existing_tables:
        op.create_table(
            'room_player',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('room_code', sa.String(length=12), sa.ForeignKey('room.code'), nullable=False),
            sa.Column('player_id', sa.String(length=64), nullable=False),
            sa.Column('display_name', sa.String(length=64), nullable=False),
            sa.Column('avatar', sa.String(length=256), nullable=True),
            sa.Column('score', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('source_linked', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('connected', sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column('joined_at', sa.Float(), nullable=False),
            sa.Column('last_activity_at', sa.Float(), nullable=False),
            sa.UniqueConstraint('room_code', 'player_id', name='uq_room_player_room_code_player_id'),
        )
        op.create_index('ix_room_player_room_code', 'room_player', ['room_code'])
        op.create_index('ix_room_player_player_id', 'room_player', ['player_id'])


def downgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())

    if 'room_player' in existing_tables:
        op.drop_index('ix_room_player_player_id', table_name='room_player')
        op.drop_index('ix_room_player_room_code', table_name='room_player')
        op.drop_table('room_player')
    if 'room' in existing_tables:
        op.drop_index('ix_room_host_id', table_name='room')
        op.drop_index('ix_room_code', table_name='room')
        op.drop_table('room')
    if 'user' in existing_tables:
        op.drop_table('user')
