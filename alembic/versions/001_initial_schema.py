"""Initial schema with all tables

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


VEHICLE_STATUS = sa.Enum(
    'pending', 'in_progress', 'under_installation', 'installation_complete',
    'completed', 'delivered', 'complete_and_delivered',
    name='vehiclestatus',
)
USER_ROLE = sa.Enum('admin', 'manager', 'coordinator', 'installer', 'accountant', name='userrole')
# Second reference to the same type; created with tenant_memberships
USER_ROLE_REF = postgresql.ENUM(
    'admin', 'manager', 'coordinator', 'installer', 'accountant', name='userrole', create_type=False
)
SUBSCRIPTION_STATUS = sa.Enum('trial', 'active', 'expired', 'suspended', name='subscriptionstatus')
NOTIFICATION_EVENT = sa.Enum(
    'vehicle_inward_created', 'vehicle_status_updated', 'installation_complete',
    'invoice_number_added', 'accountant_completed', 'vehicle_delivered',
    name='notificationevent',
)


def upgrade() -> None:
    # Tenants table
    op.create_table(
        'tenants',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('workspace_slug', sa.String(100), nullable=False, unique=True),
        sa.Column('subscription_status', SUBSCRIPTION_STATUS, nullable=False, server_default='trial'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    # Users table
    op.create_table(
        'users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('full_name', sa.String(255), nullable=True),
        sa.Column('phone', sa.String(32), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_super_admin', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('last_seen_at', sa.DateTime(timezone=True), nullable=True),
    )

    # Tenant memberships: role is per tenant
    op.create_table(
        'tenant_memberships',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('tenant_id', sa.String(36), sa.ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('role', USER_ROLE, nullable=False, server_default='installer'),
        sa.Column('is_primary_admin', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_tenant_memberships_tenant_id', 'tenant_memberships', ['tenant_id'])
    op.create_index('ix_tenant_memberships_user_id', 'tenant_memberships', ['user_id'])
    op.create_index('ix_membership_tenant_user', 'tenant_memberships', ['tenant_id', 'user_id'], unique=True)

    # Locations and departments
    op.create_table(
        'locations',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('tenant_id', sa.String(36), sa.ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('address', sa.String(500), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_locations_tenant_id', 'locations', ['tenant_id'])
    op.create_index('ix_location_tenant_name', 'locations', ['tenant_id', 'name'], unique=True)

    op.create_table(
        'departments',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('tenant_id', sa.String(36), sa.ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_departments_tenant_id', 'departments', ['tenant_id'])
    op.create_index('ix_department_tenant_name', 'departments', ['tenant_id', 'name'], unique=True)

    # Vehicles table
    op.create_table(
        'vehicles',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('short_id', sa.String(8), nullable=False),
        sa.Column('tenant_id', sa.String(36), sa.ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False),
        sa.Column('customer_name', sa.String(255), nullable=False),
        sa.Column('customer_phone', sa.String(32), nullable=True),
        sa.Column('customer_email', sa.String(255), nullable=True),
        sa.Column('customer_address', sa.String(500), nullable=True),
        sa.Column('registration_number', sa.String(32), nullable=False),
        sa.Column('make', sa.String(100), nullable=True),
        sa.Column('model', sa.String(100), nullable=True),
        sa.Column('year', sa.Integer(), nullable=True),
        sa.Column('color', sa.String(50), nullable=True),
        sa.Column('vehicle_type', sa.String(50), nullable=True),
        sa.Column('location_id', sa.String(36), sa.ForeignKey('locations.id', ondelete='SET NULL'), nullable=True),
        sa.Column('manager_id', sa.String(36), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('status', VEHICLE_STATUS, nullable=False, server_default='pending'),
        sa.Column('products', sa.JSON(), nullable=True),
        sa.Column('invoice_number', sa.String(100), nullable=True),
        sa.Column('discount_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('discount_offered_by', sa.String(255), nullable=True),
        sa.Column('discount_reason', sa.Text(), nullable=True),
        sa.Column('discount_recorded_by', sa.String(36), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('discount_recorded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('remarks', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(36), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('installation_completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_vehicles_short_id', 'vehicles', ['short_id'])
    op.create_index('ix_vehicle_tenant_status', 'vehicles', ['tenant_id', 'status'])
    op.create_index('ix_vehicle_tenant_created', 'vehicles', ['tenant_id', 'created_at'])
    op.create_index('ix_vehicle_registration', 'vehicles', ['registration_number'])

    # One row per completed product; the unique key gives set semantics under concurrency
    op.create_table(
        'product_completions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('vehicle_id', sa.String(36), sa.ForeignKey('vehicles.id', ondelete='CASCADE'), nullable=False),
        sa.Column('product_index', sa.Integer(), nullable=False),
        sa.Column('completed_by', sa.String(36), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('vehicle_id', 'product_index', name='uq_completion_vehicle_index'),
    )

    # Notification configuration
    op.create_table(
        'notification_preferences',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('tenant_id', sa.String(36), sa.ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('role', USER_ROLE_REF, nullable=False),
        sa.Column('notify_on_vehicle_created', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('notify_on_status_updated', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('notify_on_installation_complete', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('notify_on_invoice_added', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('notify_on_accountant_complete', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('notify_on_vehicle_delivered', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        'ix_pref_tenant_user_role', 'notification_preferences', ['tenant_id', 'user_id', 'role'], unique=True
    )

    op.create_table(
        'message_templates',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('tenant_id', sa.String(36), sa.ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False),
        sa.Column('event_type', NOTIFICATION_EVENT, nullable=False),
        sa.Column('template', sa.Text(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_template_tenant_event', 'message_templates', ['tenant_id', 'event_type'], unique=True)

    op.create_table(
        'whatsapp_settings',
        sa.Column('tenant_id', sa.String(36), sa.ForeignKey('tenants.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('provider', sa.String(32), nullable=False, server_default='mock'),
        sa.Column('from_number', sa.String(32), nullable=True),
        sa.Column('phone_number_id', sa.String(64), nullable=True),
        sa.Column('access_token', sa.String(512), nullable=True),
        sa.Column('account_sid', sa.String(64), nullable=True),
        sa.Column('auth_token', sa.String(255), nullable=True),
        sa.Column('webhook_url', sa.String(500), nullable=True),
        sa.Column('api_key', sa.String(255), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table('whatsapp_settings')
    op.drop_index('ix_template_tenant_event', 'message_templates')
    op.drop_table('message_templates')
    op.drop_index('ix_pref_tenant_user_role', 'notification_preferences')
    op.drop_table('notification_preferences')
    op.drop_table('product_completions')
    op.drop_index('ix_vehicle_registration', 'vehicles')
    op.drop_index('ix_vehicle_tenant_created', 'vehicles')
    op.drop_index('ix_vehicle_tenant_status', 'vehicles')
    op.drop_index('ix_vehicles_short_id', 'vehicles')
    op.drop_table('vehicles')
    op.drop_table('departments')
    op.drop_table('locations')
    op.drop_table('tenant_memberships')
    op.drop_table('users')
    op.drop_table('tenants')

    bind = op.get_bind()
    for enum in (NOTIFICATION_EVENT, VEHICLE_STATUS, USER_ROLE, SUBSCRIPTION_STATUS):
        enum.drop(bind, checkfirst=True)
