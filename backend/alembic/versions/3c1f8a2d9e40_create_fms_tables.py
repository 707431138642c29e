"""create fms tables

Revision ID: 3c1f8a2d9e40
Revises:
Create Date: 2026-10-18 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3c1f8a2d9e40'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'facilities',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'users',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('first_name', sa.String(), nullable=True),
        sa.Column('last_name', sa.String(), nullable=True),
        sa.Column('phone', sa.String(), nullable=True),
        sa.Column('role', sa.String(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('deactivated_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'units',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('facility_id', sa.String(length=36), sa.ForeignKey('facilities.id'), nullable=False),
        sa.Column('unit_number', sa.String(), nullable=False),
        sa.Column('unit_type', sa.String(), nullable=True),
        sa.Column('size', sa.String(), nullable=True),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('monthly_rate', sa.Numeric(10, 2), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('retired_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_units_facility_id', 'units', ['facility_id'])

    op.create_table(
        'unit_assignments',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('unit_id', sa.String(length=36), sa.ForeignKey('units.id'), nullable=False),
        sa.Column('tenant_id', sa.String(length=36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('is_primary', sa.Boolean(), nullable=False),
        sa.Column('access_type', sa.String(), nullable=False),
        sa.Column('source', sa.String(), nullable=False),
        sa.Column('sync_log_id', sa.String(length=36), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('unit_id', 'tenant_id', name='uix_unit_assignment_unit_tenant'),
    )
    op.create_index('ix_unit_assignments_unit_id', 'unit_assignments', ['unit_id'])
    op.create_index('ix_unit_assignments_tenant_id', 'unit_assignments', ['tenant_id'])

    op.create_table(
        'fms_configurations',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('facility_id', sa.String(length=36), sa.ForeignKey('facilities.id'), nullable=False),
        sa.Column('provider_type', sa.String(), nullable=False),
        sa.Column('is_enabled', sa.Boolean(), nullable=False),
        sa.Column('config', sa.JSON(), nullable=False),
        sa.Column('last_sync_at', sa.DateTime(), nullable=True),
        sa.Column('last_sync_status', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_fms_configurations_facility_id', 'fms_configurations', ['facility_id'], unique=True)

    op.create_table(
        'fms_sync_logs',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('facility_id', sa.String(length=36), sa.ForeignKey('facilities.id'), nullable=False),
        sa.Column('fms_config_id', sa.String(length=36), sa.ForeignKey('fms_configurations.id'), nullable=False),
        sa.Column('sync_status', sa.String(), nullable=False),
        sa.Column('triggered_by', sa.String(), nullable=False),
        sa.Column('triggered_by_user_id', sa.String(length=36), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('changes_detected', sa.Integer(), nullable=False),
        sa.Column('changes_applied', sa.Integer(), nullable=False),
        sa.Column('changes_pending', sa.Integer(), nullable=False),
        sa.Column('changes_rejected', sa.Integer(), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('sync_summary', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_fms_sync_logs_facility_id', 'fms_sync_logs', ['facility_id'])
    # At most one running sync per facility
    op.create_index(
        'uix_fms_sync_logs_one_running',
        'fms_sync_logs',
        ['facility_id'],
        unique=True,
        sqlite_where=sa.text("sync_status = 'running'"),
        postgresql_where=sa.text("sync_status = 'running'"),
    )

    op.create_table(
        'fms_changes',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('sync_log_id', sa.String(length=36), sa.ForeignKey('fms_sync_logs.id'), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('change_type', sa.String(), nullable=False),
        sa.Column('entity_type', sa.String(), nullable=False),
        sa.Column('external_id', sa.String(), nullable=False),
        sa.Column('internal_id', sa.String(length=36), nullable=True),
        sa.Column('before_data', sa.JSON(), nullable=True),
        sa.Column('after_data', sa.JSON(), nullable=True),
        sa.Column('required_actions', sa.JSON(), nullable=False),
        sa.Column('impact_summary', sa.Text(), nullable=False),
        sa.Column('is_valid', sa.Boolean(), nullable=False),
        sa.Column('validation_errors', sa.JSON(), nullable=True),
        sa.Column('is_reviewed', sa.Boolean(), nullable=False),
        sa.Column('is_accepted', sa.Boolean(), nullable=True),
        sa.Column('reviewed_by', sa.String(length=36), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(), nullable=True),
        sa.Column('applied_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_fms_changes_sync_log_id', 'fms_changes', ['sync_log_id'])

    op.create_table(
        'fms_entity_mappings',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('facility_id', sa.String(length=36), sa.ForeignKey('facilities.id'), nullable=False),
        sa.Column('entity_type', sa.String(), nullable=False),
        sa.Column('provider_type', sa.String(), nullable=False),
        sa.Column('external_id', sa.String(), nullable=False),
        sa.Column('internal_id', sa.String(length=36), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint(
            'facility_id', 'entity_type', 'provider_type', 'external_id',
            name='uix_fms_mapping_external',
        ),
    )
    op.create_index('ix_fms_entity_mappings_facility_id', 'fms_entity_mappings', ['facility_id'])
    op.create_index('ix_fms_entity_mappings_internal_id', 'fms_entity_mappings', ['internal_id'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('fms_entity_mappings')
    op.drop_table('fms_changes')
    op.drop_index('uix_fms_sync_logs_one_running', table_name='fms_sync_logs')
    op.drop_table('fms_sync_logs')
    op.drop_table('fms_configurations')
    op.drop_table('unit_assignments')
    op.drop_table('units')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
    op.drop_table('facilities')
