"""Create fulfillment and returns tables

Revision ID: initial_fulfillment_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'initial_fulfillment_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

SUPPLIER_ORDER_STATUSES = "'PENDING','CONFIRMED','IN_PRODUCTION','READY_TO_SHIP','SHIPPED','DELIVERED','CANCELLED'"
RETURN_STATUSES = "'PENDING','APPROVED','REJECTED','RECEIVED','REFUNDED'"
RETURN_REASONS = (
    "'DOES_NOT_MEET_EXPECTATIONS','DAMAGED_OR_DEFECTIVE','WRONG_ITEM_SHIPPED',"
    "'CHANGED_MIND','ORDERED_WRONG_PRODUCT','OTHER'"
)
REFUND_STATUSES = "'SUCCESS','FAILED','PENDING'"


def upgrade() -> None:
    """Create suppliers, orders, order_items, supplier_orders, return_requests"""

    op.create_table('suppliers',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('email', sa.Text(), nullable=True),
        sa.Column('commission_rate', sa.Numeric(5, 2), nullable=False, server_default='15.00', comment='平台佣金比例（百分比）'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('commission_rate >= 0 AND commission_rate <= 100', name='ck_suppliers_commission_rate'),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('orders',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('order_number', sa.Text(), nullable=False, comment='订单编号'),
        sa.Column('user_id', sa.Text(), nullable=False, comment='下单用户ID'),
        sa.Column('customer_name', sa.Text(), nullable=False, comment='客户姓名'),
        sa.Column('customer_email', sa.Text(), nullable=False, comment='客户邮箱'),
        sa.Column('ship_full_name', sa.Text(), nullable=False, comment='收件人'),
        sa.Column('ship_address_line1', sa.Text(), nullable=False, comment='地址第一行'),
        sa.Column('ship_address_line2', sa.Text(), nullable=True, comment='地址第二行'),
        sa.Column('ship_city', sa.Text(), nullable=False, comment='城市'),
        sa.Column('ship_state', sa.Text(), nullable=True, comment='县/州'),
        sa.Column('ship_postal_code', sa.Text(), nullable=False, comment='邮编'),
        sa.Column('ship_country', sa.Text(), nullable=False, server_default='RO', comment='国家'),
        sa.Column('ship_phone', sa.Text(), nullable=True, comment='收件人电话'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_number')
    )

    op.create_table('order_items',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('order_id', sa.Text(), nullable=False),
        sa.Column('product_id', sa.Text(), nullable=False, comment='商品ID'),
        sa.Column('supplier_id', sa.Text(), nullable=True, comment='供应商ID'),
        sa.Column('name', sa.Text(), nullable=False, comment='商品名称'),
        sa.Column('sku', sa.Text(), nullable=True, comment='SKU'),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(18, 2), nullable=False),
        sa.Column('weight_kg', sa.Numeric(10, 3), nullable=True, comment='单件重量（千克）'),
        sa.CheckConstraint('quantity > 0', name='ck_order_items_quantity'),
        sa.CheckConstraint('unit_price >= 0', name='ck_order_items_unit_price'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_order_items_order', 'order_items', ['order_id'], unique=False)

    op.create_table('supplier_orders',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('order_id', sa.Text(), nullable=False),
        sa.Column('order_item_id', sa.Text(), nullable=False),
        sa.Column('product_id', sa.Text(), nullable=False),
        sa.Column('supplier_id', sa.Text(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(18, 2), nullable=False),
        sa.Column('total_price', sa.Numeric(18, 2), nullable=False),
        sa.Column('commission_rate', sa.Numeric(5, 2), nullable=False),
        sa.Column('commission', sa.Numeric(18, 2), nullable=False, comment='平台佣金'),
        sa.Column('supplier_revenue', sa.Numeric(18, 2), nullable=False, comment='供应商收入'),
        sa.Column('status', sa.Text(), nullable=False, server_default='PENDING'),
        sa.Column('tracking_number', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('shipped_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.CheckConstraint('quantity > 0', name='ck_supplier_orders_quantity'),
        sa.CheckConstraint('unit_price >= 0', name='ck_supplier_orders_unit_price'),
        sa.CheckConstraint('commission_rate >= 0 AND commission_rate <= 100', name='ck_supplier_orders_commission_rate'),
        sa.CheckConstraint(f'status IN ({SUPPLIER_ORDER_STATUSES})', name='ck_supplier_orders_status'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.ForeignKeyConstraint(['order_item_id'], ['order_items.id']),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_item_id', name='uq_supplier_orders_order_item')
    )
    op.create_index('ix_supplier_orders_supplier_created', 'supplier_orders', ['supplier_id', 'created_at'], unique=False)
    op.create_index('ix_supplier_orders_order', 'supplier_orders', ['order_id'], unique=False)

    op.create_table('return_requests',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('order_id', sa.Text(), nullable=False),
        sa.Column('order_item_id', sa.Text(), nullable=False),
        sa.Column('user_id', sa.Text(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('details', sa.Text(), nullable=True),
        sa.Column('status', sa.Text(), nullable=False, server_default='PENDING'),
        sa.Column('refund_status', sa.Text(), nullable=True),
        sa.Column('refund_error', sa.Text(), nullable=True),
        sa.Column('refund_requested_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('tracking_number', sa.Text(), nullable=True),
        sa.Column('carrier', sa.Text(), nullable=True),
        sa.Column('notified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notification_error', sa.Text(), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('refunded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.CheckConstraint(f'reason IN ({RETURN_REASONS})', name='ck_return_requests_reason'),
        sa.CheckConstraint(f'status IN ({RETURN_STATUSES})', name='ck_return_requests_status'),
        sa.CheckConstraint(
            f'refund_status IS NULL OR refund_status IN ({REFUND_STATUSES})',
            name='ck_return_requests_refund_status'
        ),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.ForeignKeyConstraint(['order_item_id'], ['order_items.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_return_requests_order_status', 'return_requests', ['order_id', 'status'], unique=False)
    op.create_index('ix_return_requests_tracking', 'return_requests', ['tracking_number'], unique=False)


def downgrade() -> None:
    """Drop all fulfillment tables"""
    op.drop_index('ix_return_requests_tracking', table_name='return_requests')
    op.drop_index('ix_return_requests_order_status', table_name='return_requests')
    op.drop_table('return_requests')
    op.drop_index('ix_supplier_orders_order', table_name='supplier_orders')
    op.drop_index('ix_supplier_orders_supplier_created', table_name='supplier_orders')
    op.drop_table('supplier_orders')
    op.drop_index('ix_order_items_order', table_name='order_items')
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('suppliers')
