"""create account, server, coin_transaction and referral tables

Revision ID: 1a7c0e9d2b41
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '1a7c0e9d2b41'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())

    if 'account' not in existing_tables:
        op.create_table(
            'account',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('username', sa.String(length=50), nullable=False),
            sa.Column('email', sa.String(length=255), nullable=False),
            sa.Column('password_hash', sa.String(length=256), nullable=False),
            sa.Column('coins', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('role', sa.String(length=16), nullable=False, server_default='standard'),
            sa.Column('referral_code', sa.String(length=16), nullable=False),
            sa.Column('referred_by_id', sa.Integer(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.CheckConstraint('coins >= 0', name='ck_account_coins_non_negative'),
            sa.ForeignKeyConstraint(['referred_by_id'], ['account.id']),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index('ix_account_username', 'account', ['username'], unique=True)
        op.create_index('ix_account_email', 'account', ['email'], unique=True)
        op.create_index('ix_account_referral_code', 'account', ['referral_code'], unique=True)

    if 'server' not in existing_tables:
        op.create_table(
            'server',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('account_id', sa.Integer(), nullable=False),
            sa.Column('name', sa.String(length=100), nullable=False),
            sa.Column('coins_used', sa.Integer(), nullable=False),
            sa.Column('session_id', sa.String(length=255), nullable=True),
            sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
            sa.Column('expires_at', sa.DateTime(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.Column('updated_at', sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(['account_id'], ['account.id']),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index('ix_server_account_id', 'server', ['account_id'])
        op.create_index('ix_server_status', 'server', ['status'])
        op.create_index('ix_server_expires_at', 'server', ['expires_at'])

    if 'coin_transaction' not in existing_tables:
        op.create_table(
            'coin_transaction',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('account_id', sa.Integer(), nullable=False),
            sa.Column('amount', sa.Integer(), nullable=False),
            sa.Column('type', sa.String(length=32), nullable=False),
            sa.Column('description', sa.Text(), nullable=False),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(['account_id'], ['account.id']),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index('ix_coin_transaction_account_id', 'coin_transaction', ['account_id'])

    if 'referral' not in existing_tables:
        op.create_table(
            'referral',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('referrer_id', sa.Integer(), nullable=False),
            sa.Column('referred_id', sa.Integer(), nullable=False),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.CheckConstraint('referrer_id <> referred_id', name='ck_referral_not_self'),
            sa.ForeignKeyConstraint(['referrer_id'], ['account.id']),
            sa.ForeignKeyConstraint(['referred_id'], ['account.id']),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('referred_id'),
        )
        op.create_index('ix_referral_referrer_id', 'referral', ['referrer_id'])


def downgrade():
    op.drop_index('ix_referral_referrer_id', table_name='referral')
    op.drop_table('referral')
    op.drop_index('ix_coin_transaction_account_id', table_name='coin_transaction')
    op.drop_table('coin_transaction')
    op.drop_index('ix_server_expires_at', table_name='server')
    op.drop_index('ix_server_status', table_name='server')
    op.drop_index('ix_server_account_id', table_name='server')
    op.drop_table('server')
    op.drop_index('ix_account_referral_code', table_name='account')
    op.drop_index('ix_account_email', table_name='account')
    op.drop_index('ix_account_username', table_name='account')
    op.drop_table('account')
