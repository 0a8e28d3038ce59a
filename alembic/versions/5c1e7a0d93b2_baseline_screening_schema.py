"""baseline_screening_schema

Revision ID: 5c1e7a0d93b2
Revises: 
Create Date: 2026-10-19 09:12:44.104215

Creates accounts, job openings, candidates and credit debits.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision: str = '5c1e7a0d93b2'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def table_exists(table_name: str) -> bool:
    """Check if a table exists in the database."""
    bind = op.get_bind()
    inspector = inspect(bind)
    return table_name in inspector.get_table_names()


def upgrade() -> None:
    if not table_exists('accounts'):
        op.create_table('accounts',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('email', sa.String(), nullable=False),
            sa.Column('full_name', sa.String(), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
            sa.Column('plan_tier', sa.String(), nullable=False),
            sa.Column('plan_status', sa.String(), nullable=True),
            sa.Column('monthly_used', sa.Integer(), nullable=False),
            sa.Column('billing_period_start', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
            sa.Column('billing_cycle', sa.Integer(), nullable=False),
            sa.Column('limit_warning_sent', sa.Boolean(), nullable=False),
            sa.Column('stripe_customer_id', sa.String(), nullable=True),
            sa.Column('stripe_subscription_id', sa.String(), nullable=True),
            sa.Column('stripe_price_id', sa.String(), nullable=True),
            sa.Column('current_period_end', sa.DateTime(timezone=True), nullable=True),
            sa.CheckConstraint('monthly_used >= 0', name='ck_accounts_monthly_used_non_negative'),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_accounts_id'), 'accounts', ['id'], unique=False)
        op.create_index(op.f('ix_accounts_email'), 'accounts', ['email'], unique=True)
        op.create_index(op.f('ix_accounts_stripe_customer_id'), 'accounts', ['stripe_customer_id'], unique=False)
        op.create_index(op.f('ix_accounts_stripe_subscription_id'), 'accounts', ['stripe_subscription_id'], unique=False)

    if not table_exists('job_openings'):
        op.create_table('job_openings',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('account_id', sa.Integer(), nullable=False),
            sa.Column('title', sa.String(), nullable=False),
            sa.Column('description', sa.Text(), nullable=False),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
            sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ondelete='CASCADE'),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_job_openings_id'), 'job_openings', ['id'], unique=False)
        op.create_index(op.f('ix_job_openings_account_id'), 'job_openings', ['account_id'], unique=False)

    if not table_exists('candidates'):
        op.create_table('candidates',
            sa.Column('id', sa.String(length=36), nullable=False),
            sa.Column('job_id', sa.Integer(), nullable=False),
            sa.Column('account_id', sa.Integer(), nullable=False),
            sa.Column('name', sa.String(length=100), nullable=False),
            sa.Column('email', sa.String(length=255), nullable=True),
            sa.Column('phone', sa.String(length=30), nullable=True),
            sa.Column('title', sa.String(length=150), nullable=True),
            sa.Column('cv_text', sa.Text(), nullable=True),
            sa.Column('cv_file_path', sa.String(), nullable=True),
            sa.Column('application_source', sa.String(), nullable=False),
            sa.Column('cv_rate', sa.Integer(), nullable=False),
            sa.Column('analysis_status', sa.String(length=16), nullable=False),
            sa.Column('dispatched_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('analysis_error', sa.String(), nullable=True),
            sa.Column('dispatch_attempts', sa.Integer(), nullable=False),
            sa.Column('relevance_analysis', sa.JSON(), nullable=True),
            sa.Column('insights', sa.JSON(), nullable=True),
            sa.Column('improvement_tips', sa.JSON(), nullable=True),
            sa.Column('extracted_data', sa.JSON(), nullable=True),
            sa.Column('is_unlocked', sa.Boolean(), nullable=False),
            sa.Column('is_favorite', sa.Boolean(), nullable=False),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
            sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
            sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ondelete='CASCADE'),
            sa.ForeignKeyConstraint(['job_id'], ['job_openings.id'], ondelete='CASCADE'),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_candidates_job_id'), 'candidates', ['job_id'], unique=False)
        op.create_index(op.f('ix_candidates_account_id'), 'candidates', ['account_id'], unique=False)
        op.create_index(op.f('ix_candidates_analysis_status'), 'candidates', ['analysis_status'], unique=False)
        op.create_index('idx_candidates_status_dispatched', 'candidates', ['analysis_status', 'dispatched_at'], unique=False)

    if not table_exists('credit_debits'):
        op.create_table('credit_debits',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('account_id', sa.Integer(), nullable=False),
            sa.Column('candidate_id', sa.String(length=36), nullable=True),
            sa.Column('billing_cycle', sa.Integer(), nullable=False),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
            sa.Column('refunded_at', sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ondelete='CASCADE'),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_credit_debits_id'), 'credit_debits', ['id'], unique=False)
        op.create_index(op.f('ix_credit_debits_account_id'), 'credit_debits', ['account_id'], unique=False)
        op.create_index(op.f('ix_credit_debits_candidate_id'), 'credit_debits', ['candidate_id'], unique=False)
        op.create_index('idx_credit_debits_account_cycle', 'credit_debits', ['account_id', 'billing_cycle'], unique=False)


def downgrade() -> None:
    op.drop_table('credit_debits')
    op.drop_table('candidates')
    op.drop_table('job_openings')
    op.drop_table('accounts')
