"""Initial catalog, inventory, provisioning and audit schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None


def _json() -> sa.types.TypeEngine:
    return sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')


def upgrade() -> None:
    op.create_table(
        'teams',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_teams'),
    )
    op.create_index('ix_teams_name', 'teams', ['name'], unique=True)

    op.create_table(
        'cloud_secrets',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('provider', sa.String(length=20), nullable=False),
        sa.Column('region', sa.String(length=50), nullable=True),
        sa.Column('account_id', sa.String(length=12), nullable=True),
        sa.Column('access_type', sa.String(length=10), nullable=False, server_default='read'),
        sa.Column('encrypted_credentials', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_cloud_secrets'),
    )

    op.create_table(
        'projects',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('owner_team_id', sa.Uuid(), nullable=True),
        sa.Column('catalog_file_path', sa.String(length=500), nullable=True),
        sa.Column('catalog_metadata', _json(), nullable=True),
        sa.Column('last_synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('sync_status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('sync_error', sa.Text(), nullable=True),
        sa.Column('auto_synced', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ['owner_team_id'], ['teams.id'],
            name='fk_projects_owner_team_id_teams', ondelete='SET NULL',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_projects'),
        sa.UniqueConstraint('catalog_file_path', name='uq_projects_catalog_file_path'),
    )
    op.create_index('ix_projects_name', 'projects', ['name'])
    op.create_index('ix_projects_owner_team_id', 'projects', ['owner_team_id'])

    op.create_table(
        'services',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('project_id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('language', sa.String(length=100), nullable=True),
        sa.Column('environment', sa.String(length=100), nullable=True),
        sa.Column('repository_url', sa.String(length=500), nullable=True),
        sa.Column('owner_team_id', sa.Uuid(), nullable=True),
        sa.Column('tags', _json(), nullable=False),
        sa.Column('links', _json(), nullable=False),
        sa.Column('dependencies', _json(), nullable=False),
        sa.Column('catalog_managed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ['project_id'], ['projects.id'],
            name='fk_services_project_id_projects', ondelete='CASCADE',
        ),
        sa.ForeignKeyConstraint(
            ['owner_team_id'], ['teams.id'],
            name='fk_services_owner_team_id_teams', ondelete='SET NULL',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_services'),
        sa.UniqueConstraint('project_id', 'name', name='uq_services_project_name'),
    )
    op.create_index('ix_services_project_id', 'services', ['project_id'])

    op.create_table(
        'discovered_resources',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('project_id', sa.Uuid(), nullable=False),
        sa.Column('secret_id', sa.Uuid(), nullable=True),
        sa.Column('arn', sa.String(length=1024), nullable=False),
        sa.Column('resource_type', sa.String(length=20), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('region', sa.String(length=50), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='active'),
        sa.Column('metadata', _json(), nullable=False),
        sa.Column('discovered_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_synced_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ['project_id'], ['projects.id'],
            name='fk_discovered_resources_project_id_projects', ondelete='CASCADE',
        ),
        sa.ForeignKeyConstraint(
            ['secret_id'], ['cloud_secrets.id'],
            name='fk_discovered_resources_secret_id_cloud_secrets', ondelete='SET NULL',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_discovered_resources'),
        sa.UniqueConstraint('project_id', 'arn', name='uq_discovered_resources_project_arn'),
    )
    op.create_index('ix_discovered_resources_project_id', 'discovered_resources', ['project_id'])
    op.create_index('ix_discovered_resources_resource_type', 'discovered_resources', ['resource_type'])
    op.create_index('ix_discovered_resources_status', 'discovered_resources', ['status'])
    op.create_index(
        'ix_discovered_resources_project_secret',
        'discovered_resources',
        ['project_id', 'secret_id'],
    )

    op.create_table(
        'provisioned_resources',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('project_id', sa.Uuid(), nullable=False),
        sa.Column('secret_id', sa.Uuid(), nullable=True),
        sa.Column('resource_type', sa.String(length=20), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('region', sa.String(length=50), nullable=False),
        sa.Column('config', _json(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('arn', sa.String(length=1024), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ['project_id'], ['projects.id'],
            name='fk_provisioned_resources_project_id_projects', ondelete='CASCADE',
        ),
        sa.ForeignKeyConstraint(
            ['secret_id'], ['cloud_secrets.id'],
            name='fk_provisioned_resources_secret_id_cloud_secrets', ondelete='SET NULL',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_provisioned_resources'),
        sa.UniqueConstraint(
            'project_id', 'resource_type', 'name',
            name='uq_provisioned_resources_project_type_name',
        ),
    )
    op.create_index('ix_provisioned_resources_project_id', 'provisioned_resources', ['project_id'])
    op.create_index('ix_provisioned_resources_status', 'provisioned_resources', ['status'])

    op.create_table(
        'github_configs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('repo_owner', sa.String(length=255), nullable=False),
        sa.Column('repo_name', sa.String(length=255), nullable=False),
        sa.Column('branch', sa.String(length=255), nullable=False, server_default='main'),
        sa.Column('projects_path', sa.String(length=500), nullable=False, server_default='projects'),
        sa.Column('auth_type', sa.String(length=20), nullable=False),
        sa.Column('personal_access_token', sa.String(), nullable=True),
        sa.Column('app_id', sa.String(length=50), nullable=True),
        sa.Column('installation_id', sa.String(length=50), nullable=True),
        sa.Column('private_key', sa.Text(), nullable=True),
        sa.Column('webhook_secret', sa.String(), nullable=True),
        sa.Column('enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_github_configs'),
    )

    op.create_table(
        'catalog_sync_history',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('project_id', sa.Uuid(), nullable=True),
        sa.Column('project_name', sa.String(length=255), nullable=True),
        sa.Column('catalog_file_path', sa.String(length=500), nullable=False),
        sa.Column('sync_type', sa.String(length=20), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('validation_errors', _json(), nullable=True),
        sa.Column('duration_ms', sa.Integer(), nullable=False),
        sa.Column('synced_by_name', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ['project_id'], ['projects.id'],
            name='fk_catalog_sync_history_project_id_projects', ondelete='SET NULL',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_catalog_sync_history'),
    )
    op.create_index('ix_catalog_sync_history_project_id', 'catalog_sync_history', ['project_id'])
    op.create_index(
        'ix_catalog_sync_history_catalog_file_path', 'catalog_sync_history', ['catalog_file_path']
    )
    op.create_index('ix_catalog_sync_history_created_at', 'catalog_sync_history', ['created_at'])

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('actor_email', sa.String(), nullable=True),
        sa.Column('action', sa.String(length=50), nullable=False),
        sa.Column('resource_type', sa.String(length=50), nullable=True),
        sa.Column('resource_name', sa.String(length=500), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('details', _json(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_audit_logs'),
    )
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])
    op.create_index('ix_audit_action_time', 'audit_logs', ['action', 'created_at'])


def downgrade() -> None:
    op.drop_index('ix_audit_action_time', table_name='audit_logs')
    op.drop_index('ix_audit_logs_action', table_name='audit_logs')
    op.drop_table('audit_logs')
    op.drop_index('ix_catalog_sync_history_created_at', table_name='catalog_sync_history')
    op.drop_index('ix_catalog_sync_history_catalog_file_path', table_name='catalog_sync_history')
    op.drop_index('ix_catalog_sync_history_project_id', table_name='catalog_sync_history')
    op.drop_table('catalog_sync_history')
    op.drop_table('github_configs')
    op.drop_index('ix_provisioned_resources_status', table_name='provisioned_resources')
    op.drop_index('ix_provisioned_resources_project_id', table_name='provisioned_resources')
    op.drop_table('provisioned_resources')
    op.drop_index('ix_discovered_resources_project_secret', table_name='discovered_resources')
    op.drop_index('ix_discovered_resources_status', table_name='discovered_resources')
    op.drop_index('ix_discovered_resources_resource_type', table_name='discovered_resources')
    op.drop_index('ix_discovered_resources_project_id', table_name='discovered_resources')
    op.drop_table('discovered_resources')
    op.drop_index('ix_services_project_id', table_name='services')
    op.drop_table('services')
    op.drop_index('ix_projects_owner_team_id', table_name='projects')
    op.drop_index('ix_projects_name', table_name='projects')
    op.drop_table('projects')
    op.drop_table('cloud_secrets')
    op.drop_index('ix_teams_name', table_name='teams')
    op.drop_table('teams')
