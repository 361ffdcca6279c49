"""add_orders_payment_columns

Revision ID: 5c1e2a7d9b4f
Revises:
Create Date: 2026-03-01 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '5c1e2a7d9b4f'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False, comment='Owning user'),
        sa.Column('total_amount', sa.Numeric(precision=15, scale=2), nullable=False, comment='Order total'),
        sa.Column('payment_method', sa.String(length=20), nullable=False, comment='cod/esewa/khalti'),
        sa.Column('status', sa.String(length=40), nullable=False, server_default='pending', comment='Fulfilment status'),
        sa.Column('payment_status', sa.String(length=20), nullable=False, server_default='pending', comment='pending/completed/failed'),
        sa.Column('transaction_id', sa.String(length=64), nullable=True, comment='Gateway correlation key'),
        sa.Column('payment_verified', sa.Boolean(), nullable=False, server_default=sa.false(), comment='Verified out of band'),
        sa.Column('payment_gateway', sa.String(length=20), nullable=True),
        sa.Column('payment_reference_id', sa.String(length=100), nullable=True, comment='Gateway reference id'),
        sa.Column('payment_amount', sa.Numeric(precision=15, scale=2), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('transaction_id', name='uq_orders_transaction_id'),
    )

    op.create_index('ix_orders_id', 'orders', ['id'], unique=False)
    op.create_index('ix_orders_user_id', 'orders', ['user_id'], unique=False)
    op.create_index('ix_orders_payment_status', 'orders', ['payment_status'], unique=False)
    op.create_index('ix_orders_created_at', 'orders', ['created_at'], unique=False)
    op.create_index('ix_orders_user_method_payment', 'orders', ['user_id', 'payment_method', 'payment_status'], unique=False)
    op.create_index('ix_orders_method_payment_created', 'orders', ['payment_method', 'payment_status', 'created_at'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_orders_method_payment_created', table_name='orders')
    op.drop_index('ix_orders_user_method_payment', table_name='orders')
    op.drop_index('ix_orders_created_at', table_name='orders')
    op.drop_index('ix_orders_payment_status', table_name='orders')
    op.drop_index('ix_orders_user_id', table_name='orders')
    op.drop_index('ix_orders_id', table_name='orders')
    op.drop_table('orders')
