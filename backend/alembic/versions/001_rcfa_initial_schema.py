"""RCFA: initial record lifecycle schema

Revision ID: 001_rcfa_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_rcfa_initial_schema'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create users, records, findings and audit tables."""
    if op.get_bind().dialect.supports_sequences:
        op.execute(sa.schema.CreateSequence(sa.Sequence('rcfa_record_number_seq')))
        op.execute(sa.schema.CreateSequence(sa.Sequence('rcfa_action_item_number_seq')))

    op.create_table(
        'app_users',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('display_name', sa.String(length=255), nullable=False),
        sa.Column('hashed_password', sa.String(length=255), nullable=True),
        sa.Column('role', sa.String(length=20), nullable=False),
        sa.Column('status', sa.String(length=30), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_app_users_email', 'app_users', ['email'], unique=True)
    op.create_index('ix_app_users_status', 'app_users', ['status'], unique=False)

    op.create_table(
        'rcfa_records',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('record_number', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=500), nullable=False),
        sa.Column('equipment_description', sa.Text(), nullable=False),
        sa.Column('equipment_make', sa.String(length=255), nullable=True),
        sa.Column('equipment_model', sa.String(length=255), nullable=True),
        sa.Column('equipment_serial_number', sa.String(length=255), nullable=True),
        sa.Column('equipment_age_years', sa.Float(), nullable=True),
        sa.Column('operating_context', sa.String(length=20), nullable=False),
        sa.Column('pre_failure_conditions', sa.Text(), nullable=True),
        sa.Column('failure_description', sa.Text(), nullable=False),
        sa.Column('work_history_summary', sa.Text(), nullable=True),
        sa.Column('active_pms_summary', sa.Text(), nullable=True),
        sa.Column('additional_notes', sa.Text(), nullable=True),
        sa.Column('downtime_minutes', sa.Integer(), nullable=True),
        sa.Column('production_cost_usd', sa.Float(), nullable=True),
        sa.Column('maintenance_cost_usd', sa.Float(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('owner_user_id', sa.String(length=36), nullable=False),
        sa.Column('created_by_user_id', sa.String(length=36), nullable=False),
        sa.Column('investigation_notes', sa.Text(), nullable=True),
        sa.Column('investigation_notes_updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('closed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('closed_by_user_id', sa.String(length=36), nullable=True),
        sa.Column('closing_notes', sa.Text(), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('deleted_by_user_id', sa.String(length=36), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('record_number')
    )
    op.create_index('ix_rcfa_records_status', 'rcfa_records', ['status'], unique=False)
    op.create_index('ix_rcfa_records_owner_user_id', 'rcfa_records', ['owner_user_id'], unique=False)
    op.create_index('ix_rcfa_records_deleted_at', 'rcfa_records', ['deleted_at'], unique=False)

    op.create_table(
        'rcfa_followup_questions',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('record_id', sa.String(length=36), nullable=False),
        sa.Column('question_text', sa.Text(), nullable=False),
        sa.Column('question_category', sa.String(length=30), nullable=False),
        sa.Column('generated_by', sa.String(length=10), nullable=False),
        sa.Column('generated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('answer_text', sa.Text(), nullable=True),
        sa.Column('answered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('answered_by_user_id', sa.String(length=36), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_rcfa_followup_questions_record_id', 'rcfa_followup_questions', ['record_id'], unique=False)

    op.create_table(
        'rcfa_root_cause_candidates',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('record_id', sa.String(length=36), nullable=False),
        sa.Column('cause_text', sa.Text(), nullable=False),
        sa.Column('rationale_text', sa.Text(), nullable=True),
        sa.Column('confidence_label', sa.String(length=20), nullable=False),
        sa.Column('generated_by', sa.String(length=10), nullable=False),
        sa.Column('generated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_rcfa_root_cause_candidates_record_id', 'rcfa_root_cause_candidates', ['record_id'], unique=False)

    op.create_table(
        'rcfa_action_item_candidates',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('record_id', sa.String(length=36), nullable=False),
        sa.Column('action_text', sa.Text(), nullable=False),
        sa.Column('rationale_text', sa.Text(), nullable=True),
        sa.Column('priority', sa.String(length=20), nullable=False),
        sa.Column('timeframe_text', sa.String(length=255), nullable=True),
        sa.Column('success_criteria', sa.Text(), nullable=True),
        sa.Column('generated_by', sa.String(length=10), nullable=False),
        sa.Column('generated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_rcfa_action_item_candidates_record_id', 'rcfa_action_item_candidates', ['record_id'], unique=False)

    op.create_table(
        'rcfa_root_cause_finals',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('record_id', sa.String(length=36), nullable=False),
        sa.Column('cause_text', sa.Text(), nullable=False),
        sa.Column('evidence_summary', sa.Text(), nullable=True),
        sa.Column('selected_from_candidate_id', sa.String(length=36), nullable=True),
        sa.Column('selected_by_user_id', sa.String(length=36), nullable=False),
        sa.Column('selected_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_by_user_id', sa.String(length=36), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('selected_from_candidate_id')
    )
    op.create_index('ix_rcfa_root_cause_finals_record_id', 'rcfa_root_cause_finals', ['record_id'], unique=False)

    op.create_table(
        'rcfa_action_items',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('record_id', sa.String(length=36), nullable=False),
        sa.Column('action_item_number', sa.Integer(), nullable=False),
        sa.Column('action_text', sa.Text(), nullable=True),
        sa.Column('action_description', sa.Text(), nullable=True),
        sa.Column('success_criteria', sa.Text(), nullable=True),
        sa.Column('owner_user_id', sa.String(length=36), nullable=True),
        sa.Column('priority', sa.String(length=20), nullable=True),
        sa.Column('due_date', sa.Date(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('completion_notes', sa.Text(), nullable=True),
        sa.Column('work_completed_date', sa.Date(), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_by_user_id', sa.String(length=36), nullable=True),
        sa.Column('selected_from_candidate_id', sa.String(length=36), nullable=True),
        sa.Column('created_by_user_id', sa.String(length=36), nullable=False),
        sa.Column('updated_by_user_id', sa.String(length=36), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('action_item_number'),
        sa.UniqueConstraint('selected_from_candidate_id')
    )
    op.create_index('ix_rcfa_action_items_record_id', 'rcfa_action_items', ['record_id'], unique=False)
    op.create_index('ix_rcfa_action_items_owner_user_id', 'rcfa_action_items', ['owner_user_id'], unique=False)
    op.create_index('ix_rcfa_action_items_status', 'rcfa_action_items', ['status'], unique=False)

    op.create_table(
        'rcfa_audit_events',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('record_id', sa.String(length=36), nullable=False),
        sa.Column('actor_user_id', sa.String(length=36), nullable=False),
        sa.Column('event_type', sa.String(length=50), nullable=False),
        sa.Column('event_payload', sa.JSON(), nullable=False),
        sa.Column('trace_id', sa.String(length=128), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_rcfa_audit_events_record_id', 'rcfa_audit_events', ['record_id'], unique=False)
    op.create_index('ix_rcfa_audit_events_event_type', 'rcfa_audit_events', ['event_type'], unique=False)
    op.create_index('ix_rcfa_audit_events_created_at', 'rcfa_audit_events', ['created_at'], unique=False)


def downgrade() -> None:
    """Drop all RCFA tables."""
    op.drop_table('rcfa_audit_events')
    op.drop_table('rcfa_action_items')
    op.drop_table('rcfa_root_cause_finals')
    op.drop_table('rcfa_action_item_candidates')
    op.drop_table('rcfa_root_cause_candidates')
    op.drop_table('rcfa_followup_questions')
    op.drop_table('rcfa_records')
    op.drop_table('app_users')
    if op.get_bind().dialect.supports_sequences:
        op.execute(sa.schema.DropSequence(sa.Sequence('rcfa_action_item_number_seq')))
        op.execute(sa.schema.DropSequence(sa.Sequence('rcfa_record_number_seq')))
