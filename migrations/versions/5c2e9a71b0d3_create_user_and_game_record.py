"""create user and game_record

Revision ID: 5c2e9a71b0d3
Revises:
Create Date: 2026-10-18 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5c2e9a71b0d3'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'user',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=True),
        sa.Column('password_hash', sa.String(length=256), nullable=True),
        sa.Column('is_guest', sa.Boolean(), nullable=False),
        sa.Column('wins', sa.Integer(), nullable=False),
        sa.Column('losses', sa.Integer(), nullable=False),
        sa.Column('draws', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('user') as batch_op:
        batch_op.create_index(batch_op.f('ix_user_username'), ['username'], unique=True)

    op.create_table(
        'game_record',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=16), nullable=False),
        sa.Column('pgn', sa.Text(), nullable=False),
        sa.Column('white_id', sa.String(length=64), nullable=True),
        sa.Column('white_name', sa.String(length=64), nullable=True),
        sa.Column('black_id', sa.String(length=64), nullable=True),
        sa.Column('black_name', sa.String(length=64), nullable=True),
        sa.Column('winner', sa.String(length=16), nullable=False),
        sa.Column('end_reason', sa.String(length=32), nullable=False),
        sa.Column('started_at', sa.Float(), nullable=True),
        sa.Column('ended_at', sa.Float(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('game_record') as batch_op:
        batch_op.create_index(batch_op.f('ix_game_record_code'), ['code'], unique=False)
        batch_op.create_index(batch_op.f('ix_game_record_white_id'), ['white_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_game_record_black_id'), ['black_id'], unique=False)


def downgrade():
    op.drop_table('game_record')
    op.drop_table('user')
