"""initial bingo schema

Revision ID: 5b1e0c7a9d21
Revises:
Create Date: 2026-10-18 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5b1e0c7a9d21'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'user_profile',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(length=120), nullable=False),
        sa.Column('password_hash', sa.String(length=256), nullable=False),
        sa.Column('full_name', sa.String(length=120), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('role', sa.String(length=16), nullable=False),
        sa.Column('balance', sa.Numeric(12, 2), nullable=False),
        sa.Column('starting_balance', sa.Numeric(12, 2), nullable=False),
        sa.Column('points', sa.Integer(), nullable=False),
        sa.Column('wins', sa.Integer(), nullable=False),
        sa.Column('games_played', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_user_profile_email', 'user_profile', ['email'], unique=True)

    op.create_table(
        'game_mode',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=64), nullable=False, unique=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('pattern_type', sa.String(length=32), nullable=False),
        sa.Column('max_players', sa.Integer(), nullable=False),
        sa.Column('ball_interval_seconds', sa.Integer(), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('user_profile.id'), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        'room',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=64), nullable=False, unique=True),
        sa.Column('game_mode_id', sa.Integer(), sa.ForeignKey('game_mode.id'), nullable=False),
        sa.Column('min_players', sa.Integer(), nullable=False),
        sa.Column('max_players', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('default_entry_cost', sa.Numeric(12, 2), nullable=False),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('user_profile.id'), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        'game',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('room_id', sa.Integer(), sa.ForeignKey('room.id'), nullable=False),
        sa.Column('game_mode_id', sa.Integer(), sa.ForeignKey('game_mode.id'), nullable=False),
        sa.Column('pattern_type', sa.String(length=32), nullable=False),
        sa.Column('ball_interval_seconds', sa.Integer(), nullable=False),
        sa.Column('entry_cost', sa.Numeric(12, 2), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('current_ball', sa.Integer(), nullable=True),
        sa.Column('prize_pool', sa.Numeric(12, 2), nullable=False),
        sa.Column('winner_id', sa.Integer(), sa.ForeignKey('user_profile.id'), nullable=True),
        sa.Column('win_pattern', sa.String(length=32), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('finished_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_game_room_id', 'game', ['room_id'])
    op.create_index(
        'uq_game_open_room', 'game', ['room_id'], unique=True,
        postgresql_where=sa.text("status <> 'finished'"),
        sqlite_where=sa.text("status <> 'finished'"),
    )

    op.create_table(
        'game_participant',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('game_id', sa.Integer(), sa.ForeignKey('game.id'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('user_profile.id'), nullable=False),
        sa.Column('joined_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_ready', sa.Boolean(), nullable=False),
        sa.Column('paid_entry', sa.Boolean(), nullable=False),
        sa.UniqueConstraint('game_id', 'user_id', name='uq_participant_game_user'),
    )
    op.create_index('ix_game_participant_game_id', 'game_participant', ['game_id'])

    op.create_table(
        'bingo_card',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('game_id', sa.Integer(), sa.ForeignKey('game.id'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('user_profile.id'), nullable=False),
        sa.Column('numbers', sa.Text(), nullable=False),
        sa.Column('marked_numbers', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('game_id', 'user_id', name='uq_card_game_user'),
    )
    op.create_index('ix_bingo_card_game_id', 'bingo_card', ['game_id'])

    op.create_table(
        'called_number',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('game_id', sa.Integer(), sa.ForeignKey('game.id'), nullable=False),
        sa.Column('number', sa.Integer(), nullable=False),
        sa.Column('letter', sa.String(length=1), nullable=False),
        sa.Column('order', sa.Integer(), nullable=False),
        sa.Column('called_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('game_id', 'number', name='uq_called_game_number'),
        sa.UniqueConstraint('game_id', 'order', name='uq_called_game_order'),
        sa.CheckConstraint('number >= 1 AND number <= 75', name='ck_called_number_range'),
    )
    op.create_index('ix_called_number_game_id', 'called_number', ['game_id'])

    op.create_table(
        'ledger_transaction',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('user_profile.id'), nullable=False),
        sa.Column('game_id', sa.Integer(), sa.ForeignKey('game.id'), nullable=True),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('balance_after', sa.Numeric(12, 2), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('amount > 0', name='ck_transaction_amount_positive'),
    )
    op.create_index('ix_ledger_transaction_user_id', 'ledger_transaction', ['user_id'])


def downgrade():
    op.drop_index('ix_ledger_transaction_user_id', table_name='ledger_transaction')
    op.drop_table('ledger_transaction')
    op.drop_index('ix_called_number_game_id', table_name='called_number')
    op.drop_table('called_number')
    op.drop_index('ix_bingo_card_game_id', table_name='bingo_card')
    op.drop_table('bingo_card')
    op.drop_index('ix_game_participant_game_id', table_name='game_participant')
    op.drop_table('game_participant')
    op.drop_index('uq_game_open_room', table_name='game')
    op.drop_index('ix_game_room_id', table_name='game')
    op.drop_table('game')
    op.drop_table('room')
    op.drop_table('game_mode')
    op.drop_index('ix_user_profile_email', table_name='user_profile')
    op.drop_table('user_profile')
