"""Accounts and linked provider identities

Revision ID: 0001
Revises: 
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Accounts table
    op.create_table(
        'accounts',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('username', sa.String(30), nullable=False),
        sa.Column('password_hash', sa.String(255), nullable=True),
        sa.Column('provider', sa.String(20), nullable=False, server_default='local'),
        sa.Column('first_name', sa.String(100), nullable=True),
        sa.Column('last_name', sa.String(100), nullable=True),
        sa.Column('avatar_url', sa.String(1024), nullable=True),
        sa.Column('is_pro', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        # SHA-256 digests of the emailed tokens
        sa.Column('email_verification_token', sa.String(64), nullable=True),
        sa.Column('email_verification_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('password_reset_token', sa.String(64), nullable=True),
        sa.Column('password_reset_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('email_verification_token'),
        sa.UniqueConstraint('password_reset_token'),
    )
    op.create_index('ix_accounts_email', 'accounts', ['email'], unique=True)
    op.create_index('ix_accounts_username', 'accounts', ['username'], unique=True)

    # Provider bindings
    op.create_table(
        'account_identities',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('account_id', sa.Uuid(), sa.ForeignKey('accounts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('provider', sa.String(20), nullable=False),
        sa.Column('provider_id', sa.String(255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('provider', 'provider_id', name='uq_account_identities_provider_subject'),
        sa.UniqueConstraint('account_id', 'provider', name='uq_account_identities_account_provider'),
    )
    op.create_index('ix_account_identities_account_id', 'account_identities', ['account_id'])


def downgrade() -> None:
    op.drop_index('ix_account_identities_account_id', table_name='account_identities')
    op.drop_table('account_identities')
    op.drop_index('ix_accounts_username', table_name='accounts')
    op.drop_index('ix_accounts_email', table_name='accounts')
    op.drop_table('accounts')
