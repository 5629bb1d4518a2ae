"""create_manual_tables

Revision ID: a1c4e7f20b93
Revises:
Create Date: 2026-10-18 09:00:00.000000

Equipment catalogue, manuals with pgvector section embeddings, chat history.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from pgvector.sqlalchemy import Vector


revision: str = 'a1c4e7f20b93'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

EMBEDDING_DIMENSIONS = 1536


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.execute('CREATE EXTENSION IF NOT EXISTS vector')

    # --- equipment catalogue ---
    op.create_table(
        'oems',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('name', sa.String(200), nullable=False, unique=True),
        *_timestamps(),
    )
    op.create_table(
        'product_lines',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('oem_id', sa.Uuid(), sa.ForeignKey('oems.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        *_timestamps(),
    )
    op.create_table(
        'equipment_models',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('product_line_id', sa.Uuid(), sa.ForeignKey('product_lines.id', ondelete='CASCADE'), nullable=False),
        sa.Column('model_number', sa.String(100), nullable=False),
        sa.Column('specifications', sa.JSON(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_equipment_models_number', 'equipment_models', ['model_number'])
    op.create_table(
        'saved_units',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('model_id', sa.Uuid(), sa.ForeignKey('equipment_models.id', ondelete='CASCADE'), nullable=False),
        sa.Column('nickname', sa.String(200), nullable=False),
        sa.Column('serial_number', sa.String(100), nullable=True),
        sa.Column('location', sa.String(500), nullable=True),
        sa.Column('install_date', sa.Date(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
    )

    # --- manuals + sections ---
    manual_status = sa.Enum('PROCESSING', 'ACTIVE', 'QUARANTINED', 'FAILED', name='manualstatus')
    op.create_table(
        'manuals',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('model_id', sa.Uuid(), sa.ForeignKey('equipment_models.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('manual_type', sa.String(50), nullable=False, server_default='service'),
        sa.Column('page_count', sa.Integer(), nullable=True),
        sa.Column('status', manual_status, nullable=False, server_default='PROCESSING'),
        sa.Column('source_url', sa.String(1000), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_manuals_model_status', 'manuals', ['model_id', 'status'])

    op.create_table(
        'manual_sections',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('manual_id', sa.Uuid(), sa.ForeignKey('manuals.id', ondelete='CASCADE'), nullable=False),
        sa.Column('section_title', sa.String(500), nullable=True),
        sa.Column('section_type', sa.String(50), nullable=False, server_default='general'),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('page_reference', sa.String(50), nullable=True),
        sa.Column('embedding', Vector(EMBEDDING_DIMENSIONS), nullable=True),
        sa.Column('section_metadata', sa.JSON(), nullable=True),
    )
    op.create_index('ix_manual_sections_manual', 'manual_sections', ['manual_id'])
    op.execute(
        'CREATE INDEX ix_manual_sections_embedding ON manual_sections '
        'USING hnsw (embedding vector_cosine_ops)'
    )

    # --- chat history ---
    op.create_table(
        'chat_sessions',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('unit_id', sa.Uuid(), sa.ForeignKey('saved_units.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.String(100), nullable=False),
        sa.Column('last_message_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_chat_sessions_unit', 'chat_sessions', ['unit_id'])
    op.create_index('ix_chat_sessions_last_message', 'chat_sessions', ['last_message_at'])

    op.create_table(
        'questions',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('chat_session_id', sa.Uuid(), sa.ForeignKey('chat_sessions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('model_id', sa.Uuid(), sa.ForeignKey('equipment_models.id', ondelete='CASCADE'), nullable=False),
        sa.Column('manual_id', sa.Uuid(), sa.ForeignKey('manuals.id', ondelete='SET NULL'), nullable=True),
        sa.Column('question_text', sa.Text(), nullable=False),
        sa.Column('answer_text', sa.Text(), nullable=False, server_default=''),
        sa.Column('context', sa.JSON(), nullable=True),
        sa.Column('answer_sources', sa.JSON(), nullable=True),
        sa.Column('confidence_score', sa.Float(), nullable=False, server_default='0'),
        sa.Column('processing_time_ms', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_questions_session', 'questions', ['chat_session_id'])


def downgrade() -> None:
    op.drop_index('ix_questions_session', table_name='questions')
    op.drop_table('questions')
    op.drop_index('ix_chat_sessions_last_message', table_name='chat_sessions')
    op.drop_index('ix_chat_sessions_unit', table_name='chat_sessions')
    op.drop_table('chat_sessions')
    op.execute('DROP INDEX IF EXISTS ix_manual_sections_embedding')
    op.drop_index('ix_manual_sections_manual', table_name='manual_sections')
    op.drop_table('manual_sections')
    op.drop_index('ix_manuals_model_status', table_name='manuals')
    op.drop_table('manuals')
    sa.Enum(name='manualstatus').drop(op.get_bind(), checkfirst=True)
    op.drop_table('saved_units')
    op.drop_index('ix_equipment_models_number', table_name='equipment_models')
    op.drop_table('equipment_models')
    op.drop_table('product_lines')
    op.drop_table('oems')
