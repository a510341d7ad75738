"""initial schema

Revision ID: 5b7e2a91c4d3
Revises:
Create Date: 2026-10-19 09:12:44.201733

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '5b7e2a91c4d3'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

EMBEDDING_DIMENSIONS = 768


def upgrade() -> None:
    """Create study set, card, quiz and activity tables."""

    op.execute("CREATE EXTENSION IF NOT EXISTS vector")

    # study_sets table
    op.create_table(
        'study_sets',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('topic', sa.Text(), nullable=False),
        sa.Column('summary', sa.Text(), nullable=False),
        sa.Column('estimated_study_time_minutes', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('estimated_study_time_minutes >= 0', name='study_sets_study_time_check')
    )
    # pgvector column
    op.execute(f"ALTER TABLE study_sets ADD COLUMN embedding vector({EMBEDDING_DIMENSIONS})")
    op.create_index('idx_study_sets_topic', 'study_sets', ['topic'])
    op.create_index('idx_study_sets_created_at', 'study_sets', [sa.text('created_at DESC')])
    op.execute(
        "CREATE INDEX idx_study_sets_embedding ON study_sets "
        "USING hnsw (embedding vector_cosine_ops)"
    )

    # flashcards table
    op.create_table(
        'flashcards',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('set_id', sa.BigInteger(), nullable=False),
        sa.Column('card_key', sa.Text(), nullable=False),
        sa.Column('front', sa.Text(), nullable=False),
        sa.Column('back', sa.Text(), nullable=False),
        sa.Column('difficulty', sa.Text(), server_default='medium', nullable=False),
        sa.Column('tags', postgresql.ARRAY(sa.Text()), server_default='{}', nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['set_id'], ['study_sets.id'], ondelete='CASCADE'),
        sa.CheckConstraint("difficulty IN ('easy', 'medium', 'hard')", name='flashcards_difficulty_check')
    )
    op.create_index('idx_flashcards_set_id', 'flashcards', ['set_id'])

    # quiz_questions table
    op.create_table(
        'quiz_questions',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('set_id', sa.BigInteger(), nullable=False),
        sa.Column('question', sa.Text(), nullable=False),
        sa.Column('choices', postgresql.ARRAY(sa.Text()), nullable=False),
        sa.Column('answer_index', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['set_id'], ['study_sets.id'], ondelete='CASCADE'),
        sa.CheckConstraint('answer_index >= 0', name='quiz_questions_answer_index_check')
    )
    op.create_index('idx_quiz_questions_set_id', 'quiz_questions', ['set_id'])

    # user_activity table
    op.create_table(
        'user_activity',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Text(), nullable=False),
        sa.Column('study_set_id', sa.BigInteger(), nullable=False),
        sa.Column('accessed_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['study_set_id'], ['study_sets.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('user_id', 'study_set_id', name='user_activity_user_set_key')
    )
    op.create_index('idx_user_activity_user_accessed', 'user_activity', ['user_id', sa.text('accessed_at DESC')])


def downgrade() -> None:
    """Drop all studygen tables."""

    op.drop_table('user_activity')
    op.drop_table('quiz_questions')
    op.drop_table('flashcards')
    op.drop_table('study_sets')
