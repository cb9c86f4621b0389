"""create challenge, attempt, ledger and collaborator tables

Revision ID: a1c4e7f90b12
Revises:
Create Date: 2026-10-19 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'a1c4e7f90b12'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())

    if 'profile' not in existing_tables:
        op.create_table(
            'profile',
            sa.Column('id', sa.String(length=64), primary_key=True),
            sa.Column('full_name', sa.String(length=128), nullable=True),
            sa.Column('email', sa.String(length=255), nullable=True),
        )

    if 'subject' not in existing_tables:
        op.create_table(
            'subject',
            sa.Column('id', sa.String(length=64), primary_key=True),
            sa.Column('name', sa.String(length=128), nullable=False),
        )

    if 'question' not in existing_tables:
        op.create_table(
            'question',
            sa.Column('id', sa.String(length=64), primary_key=True),
            sa.Column('subject_id', sa.String(length=64), sa.ForeignKey('subject.id'), nullable=False),
            sa.Column('question_text', sa.Text(), nullable=False),
            sa.Column('options', sa.Text(), nullable=True),
            sa.Column('correct_answer', sa.String(length=255), nullable=False),
            sa.Column('question_type', sa.String(length=32), nullable=False, server_default='multiple_choice'),
        )
        op.create_index('ix_question_subject_id', 'question', ['subject_id'])

    if 'user_progress' not in existing_tables:
        op.create_table(
            'user_progress',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('user_id', sa.String(length=64), nullable=False),
            sa.Column('mastery_points', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('weekly_mastery_points', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('weekly_points_reset_date', sa.Date(), nullable=True),
            sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
            sa.CheckConstraint('mastery_points >= 0', name='ck_user_progress_total_non_negative'),
            sa.CheckConstraint('weekly_mastery_points >= 0', name='ck_user_progress_weekly_non_negative'),
        )
        op.create_index('ix_user_progress_user_id', 'user_progress', ['user_id'], unique=True)

    if 'challenge' not in existing_tables:
        op.create_table(
            'challenge',
            sa.Column('id', sa.String(length=32), primary_key=True),
            sa.Column('challenger_user_id', sa.String(length=64), nullable=False),
            sa.Column('opponent_user_id', sa.String(length=64), nullable=False),
            sa.Column('cohort_id', sa.String(length=64), nullable=False),
            sa.Column('subject_id', sa.String(length=64), nullable=False),
            sa.Column('stake_points', sa.Integer(), nullable=False),
            sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
            sa.Column('winner_user_id', sa.String(length=64), nullable=True),
            sa.Column('is_draw', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('previous_challenge_id', sa.String(length=32), sa.ForeignKey('challenge.id'), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
            sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
            sa.CheckConstraint('stake_points > 0', name='ck_challenge_stake_positive'),
            sa.CheckConstraint('challenger_user_id <> opponent_user_id', name='ck_challenge_distinct_players'),
        )
        op.create_index('ix_challenge_challenger_user_id', 'challenge', ['challenger_user_id'])
        op.create_index('ix_challenge_opponent_user_id', 'challenge', ['opponent_user_id'])
        op.create_index('ix_challenge_status', 'challenge', ['status'])

    if 'challenge_attempt' not in existing_tables:
        op.create_table(
            'challenge_attempt',
            sa.Column('id', sa.String(length=32), primary_key=True),
            sa.Column('challenge_id', sa.String(length=32), sa.ForeignKey('challenge.id'), nullable=False),
            sa.Column('user_id', sa.String(length=64), nullable=False),
            sa.Column('score', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('questions_answered', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('seconds_used', sa.Float(), nullable=False, server_default='0'),
            sa.Column('completed_at', sa.DateTime(timezone=True), nullable=False),
            sa.UniqueConstraint('challenge_id', 'user_id', name='uq_challenge_attempt_player'),
            sa.CheckConstraint('score >= 0', name='ck_challenge_attempt_score_non_negative'),
            sa.CheckConstraint('questions_answered >= 0', name='ck_challenge_attempt_answered_non_negative'),
            sa.CheckConstraint('seconds_used >= 0', name='ck_challenge_attempt_seconds_non_negative'),
        )
        op.create_index('ix_challenge_attempt_challenge_id', 'challenge_attempt', ['challenge_id'])

    if 'point_transfer' not in existing_tables:
        op.create_table(
            'point_transfer',
            sa.Column('id', sa.String(length=32), primary_key=True),
            sa.Column('challenge_id', sa.String(length=32), sa.ForeignKey('challenge.id'), nullable=False, unique=True),
            sa.Column('winner_user_id', sa.String(length=64), nullable=False),
            sa.Column('loser_user_id', sa.String(length=64), nullable=False),
            sa.Column('points', sa.Integer(), nullable=False),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        )


def downgrade():
    op.drop_table('point_transfer')
    op.drop_index('ix_challenge_attempt_challenge_id', table_name='challenge_attempt')
    op.drop_table('challenge_attempt')
    op.drop_index('ix_challenge_status', table_name='challenge')
    op.drop_index('ix_challenge_opponent_user_id', table_name='challenge')
    op.drop_index('ix_challenge_challenger_user_id', table_name='challenge')
    op.drop_table('challenge')
    op.drop_index('ix_user_progress_user_id', table_name='user_progress')
    op.drop_table('user_progress')
    op.drop_index('ix_question_subject_id', table_name='question')
    op.drop_table('question')
    op.drop_table('subject')
    op.drop_table('profile')
