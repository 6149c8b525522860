"""Cash ledger initial schema

Revision ID: 20261019_cash_ledger
Revises:
Create Date: 2026-10-19

This migration adds:
1. registers (soft delete, number unique among live registers)
2. cash_ledger_events (append-only per-register ledger)
3. cash_ledger_outbox (events awaiting remote store acknowledgement)
4. sales and sale_tenders (read by the ledger for cash contributions)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_cash_ledger'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # 1. REGISTERS
    # ==========================================================================
    op.create_table('registers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('register_number', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('location', sa.String(length=128), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('assigned_operator_id', sa.String(length=64), nullable=True),
        sa.Column('assigned_operator_name', sa.String(length=128), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('registers', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_registers_is_active'), ['is_active'], unique=False)
        batch_op.create_index(batch_op.f('ix_registers_assigned_operator_id'), ['assigned_operator_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_registers_deleted_at'), ['deleted_at'], unique=False)
        batch_op.create_index(
            'uq_registers_live_number',
            ['register_number'],
            unique=True,
            sqlite_where=sa.text('deleted_at IS NULL'),
            postgresql_where=sa.text('deleted_at IS NULL'),
        )

    # ==========================================================================
    # 2. CASH LEDGER EVENTS
    # ==========================================================================
    op.create_table('cash_ledger_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('event_uid', sa.String(length=36), nullable=False),
        sa.Column('register_id', sa.Integer(), nullable=False),
        sa.Column('operator_id', sa.String(length=64), nullable=False),
        sa.Column('kind', sa.String(length=16), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('opening_cash_cents', sa.Integer(), nullable=True),
        sa.Column('closing_cash_cents', sa.Integer(), nullable=True),
        sa.Column('expected_cash_cents', sa.Integer(), nullable=True),
        sa.Column('discrepancy_cents', sa.Integer(), nullable=True),
        sa.Column('discrepancy_reason', sa.String(length=255), nullable=True),
        sa.Column('authorized_by', sa.String(length=255), nullable=True),
        sa.Column('origin', sa.String(length=16), nullable=False, server_default='local'),
        sa.Column('recorded_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['register_id'], ['registers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('event_uid'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('cash_ledger_events', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_cash_ledger_events_register_id'), ['register_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_cash_ledger_events_operator_id'), ['operator_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_cash_ledger_events_kind'), ['kind'], unique=False)
        batch_op.create_index(batch_op.f('ix_cash_ledger_events_occurred_at'), ['occurred_at'], unique=False)
        batch_op.create_index('ix_cash_ledger_register_occurred', ['register_id', 'occurred_at'], unique=False)

    # ==========================================================================
    # 3. OUTBOX
    # ==========================================================================
    op.create_table('cash_ledger_outbox',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('event_uid', sa.String(length=36), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('next_attempt_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('claimed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('acknowledged_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('event_uid'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('cash_ledger_outbox', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_cash_ledger_outbox_status'), ['status'], unique=False)
        batch_op.create_index('ix_cash_ledger_outbox_status_next', ['status', 'next_attempt_at'], unique=False)

    # ==========================================================================
    # 4. SALES FEED
    # ==========================================================================
    op.create_table('sales',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('register_id', sa.Integer(), nullable=True),
        sa.Column('operator_id', sa.String(length=64), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='COMPLETED'),
        sa.Column('payment_method', sa.String(length=32), nullable=False),
        sa.Column('total_cents', sa.Integer(), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['register_id'], ['registers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('sales', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_sales_register_id'), ['register_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_sales_operator_id'), ['operator_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_sales_status'), ['status'], unique=False)
        batch_op.create_index(batch_op.f('ix_sales_completed_at'), ['completed_at'], unique=False)
        batch_op.create_index('ix_sales_register_completed', ['register_id', 'completed_at'], unique=False)

    op.create_table('sale_tenders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('method', sa.String(length=32), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('sale_tenders', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_sale_tenders_sale_id'), ['sale_id'], unique=False)


def downgrade():
    with op.batch_alter_table('sale_tenders', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_sale_tenders_sale_id'))
    op.drop_table('sale_tenders')

    with op.batch_alter_table('sales', schema=None) as batch_op:
        batch_op.drop_index('ix_sales_register_completed')
        batch_op.drop_index(batch_op.f('ix_sales_completed_at'))
        batch_op.drop_index(batch_op.f('ix_sales_status'))
        batch_op.drop_index(batch_op.f('ix_sales_operator_id'))
        batch_op.drop_index(batch_op.f('ix_sales_register_id'))
    op.drop_table('sales')

    with op.batch_alter_table('cash_ledger_outbox', schema=None) as batch_op:
        batch_op.drop_index('ix_cash_ledger_outbox_status_next')
        batch_op.drop_index(batch_op.f('ix_cash_ledger_outbox_status'))
    op.drop_table('cash_ledger_outbox')

    with op.batch_alter_table('cash_ledger_events', schema=None) as batch_op:
        batch_op.drop_index('ix_cash_ledger_register_occurred')
        batch_op.drop_index(batch_op.f('ix_cash_ledger_events_occurred_at'))
        batch_op.drop_index(batch_op.f('ix_cash_ledger_events_kind'))
        batch_op.drop_index(batch_op.f('ix_cash_ledger_events_operator_id'))
        batch_op.drop_index(batch_op.f('ix_cash_ledger_events_register_id'))
    op.drop_table('cash_ledger_events')

    with op.batch_alter_table('registers', schema=None) as batch_op:
        batch_op.drop_index('uq_registers_live_number')
        batch_op.drop_index(batch_op.f('ix_registers_deleted_at'))
        batch_op.drop_index(batch_op.f('ix_registers_assigned_operator_id'))
        batch_op.drop_index(batch_op.f('ix_registers_is_active'))
    op.drop_table('registers')
