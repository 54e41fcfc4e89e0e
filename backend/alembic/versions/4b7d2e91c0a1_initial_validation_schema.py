"""initial validation schema

Revision ID: 4b7d2e91c0a1
Revises:
Create Date: 2026-10-12 09:14:27.310552

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '4b7d2e91c0a1'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id() -> sa.Column:
    return sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False)


def _created_at() -> sa.Column:
    return sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False)


def _updated_at() -> sa.Column:
    return sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False)


def upgrade() -> None:
    op.create_table(
        'users',
        _id(),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=50), server_default='USER', nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default='true', nullable=False),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        _created_at(), _updated_at(),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_users')),
    )
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)

    op.create_table(
        'vendors',
        _id(),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('contact', sa.String(length=255), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default='true', nullable=False),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        _created_at(), _updated_at(),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_vendors')),
    )
    op.create_index(op.f('ix_vendors_name'), 'vendors', ['name'])

    op.create_table(
        'items',
        _id(),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('item_code', sa.String(length=100), nullable=True),
        sa.Column('price', sa.Numeric(18, 4), server_default='0', nullable=False),
        sa.Column('vendor_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('vendors.id'), nullable=False),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        _created_at(), _updated_at(),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_items')),
    )
    op.create_index(op.f('ix_items_item_code'), 'items', ['item_code'])
    op.create_index(op.f('ix_items_vendor_id'), 'items', ['vendor_id'])

    op.create_table(
        'item_price_history',
        _id(),
        sa.Column('item_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('items.id', ondelete='CASCADE'), nullable=False),
        sa.Column('price', sa.Numeric(18, 4), nullable=False),
        sa.Column('recorded_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_item_price_history')),
    )
    op.create_index(op.f('ix_item_price_history_item_id'), 'item_price_history', ['item_id'])
    op.create_index(op.f('ix_item_price_history_recorded_at'), 'item_price_history', ['recorded_at'])

    op.create_table(
        'purchase_orders',
        _id(),
        sa.Column('po_number', sa.String(length=100), nullable=True),
        sa.Column('vendor_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('vendors.id'), nullable=False),
        sa.Column('status', sa.String(length=50), server_default='DRAFT', nullable=False),
        sa.Column('ordered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        _created_at(), _updated_at(),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_purchase_orders')),
    )
    op.create_index(op.f('ix_purchase_orders_po_number'), 'purchase_orders', ['po_number'], unique=True)
    op.create_index(op.f('ix_purchase_orders_vendor_id'), 'purchase_orders', ['vendor_id'])

    op.create_table(
        'purchase_order_items',
        _id(),
        sa.Column('purchase_order_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('purchase_orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('item_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('items.id'), nullable=False),
        sa.Column('quantity', sa.Numeric(18, 4), nullable=False),
        sa.Column('unit_price', sa.Numeric(18, 4), nullable=False),
        _created_at(), _updated_at(),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_purchase_order_items')),
    )
    op.create_index(op.f('ix_purchase_order_items_purchase_order_id'), 'purchase_order_items', ['purchase_order_id'])
    op.create_index(op.f('ix_purchase_order_items_item_id'), 'purchase_order_items', ['item_id'])

    op.create_table(
        'invoices',
        _id(),
        sa.Column('invoice_number', sa.String(length=100), nullable=True),
        sa.Column('vendor_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('vendors.id'), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('purchase_order_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('purchase_orders.id'), nullable=True),
        sa.Column('status', sa.String(length=50), server_default='PENDING', nullable=False),
        sa.Column('total_amount', sa.Numeric(18, 4), server_default='0', nullable=False),
        sa.Column('invoice_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('project', sa.String(length=255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        _created_at(), _updated_at(),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_invoices')),
    )
    op.create_index(op.f('ix_invoices_invoice_number'), 'invoices', ['invoice_number'])
    op.create_index(op.f('ix_invoices_vendor_id'), 'invoices', ['vendor_id'])
    op.create_index(op.f('ix_invoices_user_id'), 'invoices', ['user_id'])
    op.create_index(op.f('ix_invoices_purchase_order_id'), 'invoices', ['purchase_order_id'])

    op.create_table(
        'invoice_items',
        _id(),
        sa.Column('invoice_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('invoices.id', ondelete='CASCADE'), nullable=False),
        sa.Column('item_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('items.id'), nullable=False),
        sa.Column('quantity', sa.Numeric(18, 4), nullable=False),
        sa.Column('unit_price', sa.Numeric(18, 4), nullable=False),
        _created_at(), _updated_at(),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_invoice_items')),
    )
    op.create_index(op.f('ix_invoice_items_invoice_id'), 'invoice_items', ['invoice_id'])
    op.create_index(op.f('ix_invoice_items_item_id'), 'invoice_items', ['item_id'])

    op.create_table(
        'delivery_notes',
        _id(),
        sa.Column('purchase_order_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('purchase_orders.id'), nullable=True),
        sa.Column('vendor_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('vendors.id'), nullable=False),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('received_by', sa.String(length=255), nullable=True),
        sa.Column('status', sa.String(length=50), server_default='DRAFT', nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        _created_at(), _updated_at(),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_delivery_notes')),
    )
    op.create_index(op.f('ix_delivery_notes_purchase_order_id'), 'delivery_notes', ['purchase_order_id'])
    op.create_index(op.f('ix_delivery_notes_vendor_id'), 'delivery_notes', ['vendor_id'])

    op.create_table(
        'delivery_note_items',
        _id(),
        sa.Column('delivery_note_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('delivery_notes.id', ondelete='CASCADE'), nullable=False),
        sa.Column('item_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('items.id'), nullable=False),
        sa.Column('quantity_ordered', sa.Numeric(18, 4), nullable=False),
        sa.Column('quantity_delivered', sa.Numeric(18, 4), nullable=False),
        sa.Column('condition', sa.String(length=50), server_default='GOOD', nullable=False),
        _created_at(), _updated_at(),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_delivery_note_items')),
    )
    op.create_index(op.f('ix_delivery_note_items_delivery_note_id'), 'delivery_note_items', ['delivery_note_id'])
    op.create_index(op.f('ix_delivery_note_items_item_id'), 'delivery_note_items', ['item_id'])

    op.create_table(
        'invoice_delivery_notes',
        _id(),
        sa.Column('invoice_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('invoices.id', ondelete='CASCADE'), nullable=False),
        sa.Column('delivery_note_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('delivery_notes.id', ondelete='CASCADE'), nullable=False),
        sa.Column('linked_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_invoice_delivery_notes')),
        sa.UniqueConstraint('invoice_id', 'delivery_note_id', name=op.f('uq_invoice_delivery_notes_invoice_id')),
    )
    op.create_index(op.f('ix_invoice_delivery_notes_invoice_id'), 'invoice_delivery_notes', ['invoice_id'])
    op.create_index(op.f('ix_invoice_delivery_notes_delivery_note_id'), 'invoice_delivery_notes', ['delivery_note_id'])

    # ─── Validation engine ───

    op.create_table(
        'validation_rules',
        _id(),
        sa.Column('rule_type', sa.String(length=50), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('enabled', sa.Boolean(), server_default='true', nullable=False),
        sa.Column('severity', sa.String(length=20), server_default='WARNING', nullable=False),
        sa.Column('config', sa.JSON(), server_default='{}', nullable=False),
        _created_at(), _updated_at(),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_validation_rules')),
        sa.UniqueConstraint('rule_type', name=op.f('uq_validation_rules_rule_type')),
    )

    op.create_table(
        'invoice_validations',
        _id(),
        sa.Column('invoice_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('invoices.id', ondelete='CASCADE'), nullable=False),
        sa.Column('rule_type', sa.String(length=50), nullable=False),
        sa.Column('severity', sa.String(length=20), nullable=False),
        sa.Column('status', sa.String(length=20), server_default='FLAGGED', nullable=False),
        sa.Column('details', sa.JSON(), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reviewed_by', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_invoice_validations')),
    )
    op.create_index(op.f('ix_invoice_validations_invoice_id'), 'invoice_validations', ['invoice_id'])
    op.create_index(op.f('ix_invoice_validations_rule_type'), 'invoice_validations', ['rule_type'])
    op.create_index(op.f('ix_invoice_validations_severity'), 'invoice_validations', ['severity'])
    op.create_index(op.f('ix_invoice_validations_status'), 'invoice_validations', ['status'])
    op.create_index(
        'uq_invoice_validations_open_rule', 'invoice_validations', ['invoice_id', 'rule_type'],
        unique=True, postgresql_where=sa.text("status = 'FLAGGED'"),
    )

    op.create_table(
        'validation_overrides',
        _id(),
        sa.Column('validation_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('invoice_validations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('reason', sa.Text(), nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_validation_overrides')),
        sa.UniqueConstraint('validation_id', name=op.f('uq_validation_overrides_validation_id')),
    )
    op.create_index(op.f('ix_validation_overrides_user_id'), 'validation_overrides', ['user_id'])

    op.create_table(
        'audit_logs',
        _id(),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('action', sa.String(length=100), nullable=False),
        sa.Column('entity', sa.String(length=100), nullable=False),
        sa.Column('entity_id', sa.String(length=100), nullable=True),
        sa.Column('changes', sa.Text(), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_audit_logs')),
    )
    op.create_index(op.f('ix_audit_logs_user_id'), 'audit_logs', ['user_id'])
    op.create_index(op.f('ix_audit_logs_action'), 'audit_logs', ['action'])
    op.create_index(op.f('ix_audit_logs_entity'), 'audit_logs', ['entity'])
    op.create_index(op.f('ix_audit_logs_entity_id'), 'audit_logs', ['entity_id'])


def downgrade() -> None:
    for table in (
        'audit_logs', 'validation_overrides', 'invoice_validations', 'validation_rules',
        'invoice_delivery_notes', 'delivery_note_items', 'delivery_notes', 'invoice_items',
        'invoices', 'purchase_order_items', 'purchase_orders', 'item_price_history', 'items',
        'vendors', 'users',
    ):
        op.drop_table(table)
