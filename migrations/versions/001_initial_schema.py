"""Initial database schema

Revision ID: 001
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


MONEY = sa.Numeric(precision=38, scale=18)


def upgrade() -> None:
    # Create businesses table
    op.create_table('businesses',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('business_id', sa.String(length=64), nullable=False),
        sa.Column('business_name', sa.String(length=128), nullable=False),
        sa.Column('supported_tokens', sa.JSON(), nullable=True),
        sa.Column('fee_configuration', sa.JSON(), nullable=True),
        sa.Column('webhook_url', sa.String(length=512), nullable=True),
        sa.Column('webhook_secret', sa.String(length=256), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('business_id')
    )

    # Create business_onramp_orders table
    op.create_table('business_onramp_orders',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_id', sa.String(length=64), nullable=False),
        sa.Column('business_order_reference', sa.String(length=64), nullable=False),
        sa.Column('business_id', sa.String(length=64), nullable=False),
        sa.Column('customer_email', sa.String(length=256), nullable=False),
        sa.Column('customer_name', sa.String(length=256), nullable=False),
        sa.Column('customer_wallet', sa.String(length=128), nullable=False),
        sa.Column('customer_phone', sa.String(length=32), nullable=True),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('target_token', sa.String(length=16), nullable=False),
        sa.Column('target_network', sa.String(length=16), nullable=False),
        sa.Column('token_contract_address', sa.String(length=128), nullable=False),
        sa.Column('exchange_rate', MONEY, nullable=False),
        sa.Column('estimated_token_amount', MONEY, nullable=False),
        sa.Column('fee_percentage', sa.Numeric(precision=5, scale=2), nullable=False),
        sa.Column('fee_amount', MONEY, nullable=False),
        sa.Column('net_amount', MONEY, nullable=False),
        sa.Column('actual_token_amount', MONEY, nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('settlement_initiated_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('transaction_hash', sa.String(length=128), nullable=True),
        sa.Column('liquidity_server_order_id', sa.String(length=128), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('redirect_url', sa.String(length=512), nullable=True),
        sa.Column('webhook_url', sa.String(length=512), nullable=True),
        sa.Column('webhook_status', sa.JSON(), nullable=True),
        sa.Column('payment_reference', sa.String(length=128), nullable=True),
        sa.Column('checkout_url', sa.String(length=512), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_id'),
        sa.UniqueConstraint('business_order_reference')
    )

    # Create indexes for business_onramp_orders
    op.create_index('ix_business_onramp_orders_business_id', 'business_onramp_orders', ['business_id'])
    op.create_index('ix_onramp_orders_business_created', 'business_onramp_orders', ['business_id', 'created_at'])
    op.create_index('ix_onramp_orders_business_status', 'business_onramp_orders', ['business_id', 'status'])


def downgrade() -> None:
    op.drop_table('business_onramp_orders')
    op.drop_table('businesses')
