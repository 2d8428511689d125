"""create_vip_payment_tables

Revision ID: 3f2a9c7d1e04
Revises:
Create Date: 2026-03-01 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3f2a9c7d1e04'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'vip_orders',
        sa.Column('id', sa.TEXT(), nullable=False),
        sa.Column('out_trade_no', sa.TEXT(), nullable=False),
        sa.Column('user_id', sa.TEXT(), nullable=False),
        sa.Column('product_type', sa.TEXT(), nullable=False),
        sa.Column('amount', sa.BIGINT(), nullable=False),
        sa.Column('status', sa.TEXT(), nullable=False),
        sa.Column('provider_order_id', sa.TEXT(), nullable=True),
        sa.Column('pay_method', sa.TEXT(), nullable=False),
        sa.Column('transaction_id', sa.TEXT(), nullable=True),
        sa.Column('paid_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('out_trade_no', name='uq_vip_orders_out_trade_no'),
    )
    op.create_index('idx_vip_orders_user', 'vip_orders', ['user_id'])
    op.create_index('idx_vip_orders_status', 'vip_orders', ['status'])

    op.create_table(
        'users',
        sa.Column('id', sa.TEXT(), nullable=False),
        sa.Column('username', sa.TEXT(), nullable=True),
        sa.Column('wechat_openid', sa.TEXT(), nullable=True),
        sa.Column('vip_type', sa.TEXT(), nullable=True),
        sa.Column('vip_purchase_time', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('vip_expire_time', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('vip_order_ids', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_users_wechat_openid', 'users', ['wechat_openid'])

    op.create_table(
        'user_sessions',
        sa.Column('id', sa.TEXT(), nullable=False),
        sa.Column('user_id', sa.TEXT(), nullable=False),
        sa.Column('token_hash', sa.TEXT(), nullable=False),
        sa.Column('status', sa.TEXT(), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('expires_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('token_hash', name='uq_user_sessions_token_hash'),
    )
    op.create_index('idx_user_sessions_user', 'user_sessions', ['user_id'])

    # BIGINT for autoincrement IDs (production scale)
    op.create_table(
        'billing_audit_logs',
        sa.Column('id', sa.BIGINT(), autoincrement=True, nullable=False),
        sa.Column('event_type', sa.TEXT(), nullable=False),
        sa.Column('user_id', sa.TEXT(), nullable=True),
        sa.Column('related_entity_type', sa.TEXT(), nullable=True),
        sa.Column('related_entity_id', sa.TEXT(), nullable=True),
        sa.Column('actor', sa.TEXT(), nullable=True),
        sa.Column('details', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_billing_audit_user', 'billing_audit_logs', ['user_id'])
    op.create_index('idx_billing_audit_event_type', 'billing_audit_logs', ['event_type'])
    op.create_index('idx_billing_audit_created', 'billing_audit_logs', ['created_at'])


def downgrade() -> None:
    op.drop_index('idx_billing_audit_created', table_name='billing_audit_logs')
    op.drop_index('idx_billing_audit_event_type', table_name='billing_audit_logs')
    op.drop_index('idx_billing_audit_user', table_name='billing_audit_logs')
    op.drop_table('billing_audit_logs')
    op.drop_index('idx_user_sessions_user', table_name='user_sessions')
    op.drop_table('user_sessions')
    op.drop_index('idx_users_wechat_openid', table_name='users')
    op.drop_table('users')
    op.drop_index('idx_vip_orders_status', table_name='vip_orders')
    op.drop_index('idx_vip_orders_user', table_name='vip_orders')
    op.drop_table('vip_orders')
