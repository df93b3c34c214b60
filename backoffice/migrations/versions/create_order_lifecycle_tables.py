"""create users, products and orders

Revision ID: create_order_lifecycle_tables
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = 'create_order_lifecycle_tables'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.String(64), nullable=False),
        sa.Column('username', sa.String(255), nullable=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('role', sa.String(20), server_default='customer', nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_role', 'users', ['role'])

    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('price', sa.DECIMAL(10, 2), nullable=False),
        sa.Column('stock', sa.Integer(), server_default='0', nullable=False),
        sa.Column('image_url', sa.String(512), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('stock >= 0', name='ck_products_stock_non_negative'),
    )

    op.create_table(
        'orders',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('order_number', sa.String(40), nullable=False),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('items', sa.JSON(), nullable=False),
        sa.Column('shipping_address', sa.JSON(), nullable=False),
        sa.Column('payment_intent_id', sa.String(255), nullable=False),
        sa.Column('payment_method', sa.String(32), nullable=False),
        sa.Column('payment_status', sa.String(32), server_default='pending', nullable=False),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.Column('subtotal', sa.DECIMAL(10, 2), nullable=False),
        sa.Column('shipping_cost', sa.DECIMAL(10, 2), server_default='0', nullable=False),
        sa.Column('total', sa.DECIMAL(10, 2), nullable=False),
        sa.Column('order_status', sa.String(32), server_default='pending', nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('delivered_at', sa.DateTime(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_number', name='uq_orders_order_number'),
    )
    op.create_index('ix_orders_user_id', 'orders', ['user_id'])
    op.create_index('ix_orders_payment_intent_id', 'orders', ['payment_intent_id'])
    op.create_index('ix_orders_payment_status', 'orders', ['payment_status'])
    op.create_index('ix_orders_order_status', 'orders', ['order_status'])
    op.create_index('ix_orders_created_at', 'orders', ['created_at'])
    op.create_index('ix_orders_payment_status_created', 'orders', ['payment_status', 'created_at'])


def downgrade() -> None:
    op.drop_index('ix_orders_payment_status_created', 'orders')
    op.drop_index('ix_orders_created_at', 'orders')
    op.drop_index('ix_orders_order_status', 'orders')
    op.drop_index('ix_orders_payment_status', 'orders')
    op.drop_index('ix_orders_payment_intent_id', 'orders')
    op.drop_index('ix_orders_user_id', 'orders')
    op.drop_table('orders')
    op.drop_table('products')
    op.drop_index('ix_users_role', 'users')
    op.drop_table('users')
