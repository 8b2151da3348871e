"""Create users, organizations, memberships and images

Revision ID: 4f1c2d9a7e10
Revises:
Create Date: 2026-10-19 09:12:31.504117

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '4f1c2d9a7e10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('supabase_auth_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('email', sa.String(), nullable=False, unique=True),
        sa.Column('full_name', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_users_supabase_auth_id', 'users', ['supabase_auth_id'], unique=True)

    op.create_table(
        'organizations',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('slug', sa.String(), nullable=True, unique=True),
        sa.Column('max_seats', sa.Integer(), nullable=False, server_default='2'),
        sa.Column('credits', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('invite_code', sa.String(), nullable=False),
        sa.Column('stripe_customer_id', sa.String(), nullable=True),
        sa.Column('stripe_subscription_id', sa.String(), nullable=True),
        sa.Column('subscription_status', sa.String(), nullable=False, server_default='none'),
        sa.Column('subscription_current_period_end', sa.DateTime(timezone=True), nullable=True),
        sa.Column('trial_ends_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint('credits >= 0', name='ck_organizations_credits_non_negative'),
    )
    op.create_index('ix_organizations_invite_code', 'organizations', ['invite_code'], unique=True)
    op.create_index('ix_organizations_stripe_customer_id', 'organizations', ['stripe_customer_id'], unique=True)
    op.create_index('ix_organizations_stripe_subscription_id', 'organizations', ['stripe_subscription_id'], unique=True)

    op.create_table(
        'organization_members',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('organization_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('role', sa.String(), nullable=False, server_default='member'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('organization_id', 'user_id', name='uq_organization_members_org_user'),
    )
    op.create_index('ix_organization_members_organization_id', 'organization_members', ['organization_id'])
    op.create_index('ix_organization_members_user_id', 'organization_members', ['user_id'])

    op.create_table(
        'images',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('organization_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('organizations.id', ondelete='SET NULL'), nullable=True),
        sa.Column('url', sa.Text(), nullable=False),
        sa.Column('source', sa.String(), nullable=False, server_default='upload'),
        sa.Column('prompt', sa.Text(), nullable=True),
        sa.Column('storage_path', sa.String(), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=False, server_default='{}'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_images_organization_id', 'images', ['organization_id'])


def downgrade() -> None:
    op.drop_index('ix_images_organization_id', table_name='images')
    op.drop_table('images')
    op.drop_index('ix_organization_members_user_id', table_name='organization_members')
    op.drop_index('ix_organization_members_organization_id', table_name='organization_members')
    op.drop_table('organization_members')
    op.drop_index('ix_organizations_stripe_subscription_id', table_name='organizations')
    op.drop_index('ix_organizations_stripe_customer_id', table_name='organizations')
    op.drop_index('ix_organizations_invite_code', table_name='organizations')
    op.drop_table('organizations')
    op.drop_index('ix_users_supabase_auth_id', table_name='users')
    op.drop_table('users')
