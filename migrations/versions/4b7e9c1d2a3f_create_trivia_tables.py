"""create user, question and weekly_score tables

Revision ID: 4b7e9c1d2a3f
Revises:
Create Date: 2026-09-14 10:20:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4b7e9c1d2a3f'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'user',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=256), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('user') as batch_op:
        batch_op.create_index(batch_op.f('ix_user_username'), ['username'], unique=True)
        batch_op.create_index(batch_op.f('ix_user_email'), ['email'], unique=True)

    op.create_table(
        'question',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('week', sa.Integer(), nullable=False),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('difficulty', sa.String(length=16), nullable=False),
        sa.Column('correct_answers', sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('question') as batch_op:
        batch_op.create_index(batch_op.f('ix_question_week'), ['week'], unique=False)

    op.create_table(
        'weekly_score',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('week', sa.Integer(), nullable=False),
        sa.Column('score', sa.Integer(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['user.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'week', name='uq_weekly_score_user_week'),
    )
    with op.batch_alter_table('weekly_score') as batch_op:
        batch_op.create_index(batch_op.f('ix_weekly_score_week'), ['week'], unique=False)


def downgrade():
    with op.batch_alter_table('weekly_score') as batch_op:
        batch_op.drop_index(batch_op.f('ix_weekly_score_week'))
    op.drop_table('weekly_score')
    with op.batch_alter_table('question') as batch_op:
        batch_op.drop_index(batch_op.f('ix_question_week'))
    op.drop_table('question')
    with op.batch_alter_table('user') as batch_op:
        batch_op.drop_index(batch_op.f('ix_user_email'))
        batch_op.drop_index(batch_op.f('ix_user_username'))
    op.drop_table('user')
