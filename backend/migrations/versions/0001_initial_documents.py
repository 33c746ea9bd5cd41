"""credentials, documents and audit log tables

Revision ID: 0001_initial_documents
Revises: 
Create Date: 2026-10-16
"""
from __future__ import annotations
from alembic import op
import sqlalchemy as sa

revision = '0001_initial_documents'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('credentials',
        sa.Column('uid', sa.String(length=64), primary_key=True),
        sa.Column('email', sa.String(length=128), nullable=False, unique=True),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'))
    )
    op.create_index('ix_credentials_email', 'credentials', ['email'])

    op.create_table('documents',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('collection', sa.String(length=64), nullable=False),
        sa.Column('doc_id', sa.String(length=64), nullable=False),
        sa.Column('data', sa.JSON(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'))
    )
    op.create_index('ix_documents_collection', 'documents', ['collection'])
    with op.batch_alter_table('documents') as batch_op:
        batch_op.create_unique_constraint('uq_collection_doc', ['collection', 'doc_id'])

    op.create_table('audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('actor_uid', sa.String(length=64), nullable=False),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('entity', sa.String(length=64)),
        sa.Column('entity_id', sa.String(length=64)),
        sa.Column('meta', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'))
    )
    op.create_index('ix_audit_logs_actor_uid', 'audit_logs', ['actor_uid'])
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])
    op.create_index('ix_audit_logs_entity_doc', 'audit_logs', ['entity', 'entity_id'])


def downgrade():
    for tbl in ['audit_logs', 'documents', 'credentials']:
        op.drop_table(tbl)
