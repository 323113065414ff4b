"""Create slack_installations table

Revision ID: 20261018a
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261018a'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'slack_installations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('app_id', sa.String(length=32), nullable=True),
        sa.Column('enterprise_id', sa.String(length=32), nullable=True),
        sa.Column('enterprise_name', sa.String(length=255), nullable=True),
        sa.Column('team_id', sa.String(length=32), nullable=True),
        sa.Column('team_name', sa.String(length=255), nullable=True),
        sa.Column('is_enterprise_install', sa.Boolean(), nullable=False),
        sa.Column('auth_version', sa.String(length=8), nullable=False),
        sa.Column('token_type', sa.String(length=32), nullable=True),
        sa.Column('metadata', sa.String(length=1024), nullable=True),
        sa.Column('bot_token', sa.String(length=255), nullable=True),
        sa.Column('bot_id', sa.String(length=32), nullable=True),
        sa.Column('bot_user_id', sa.String(length=32), nullable=True),
        sa.Column('bot_scopes', sa.String(length=1024), nullable=True),
        sa.Column('bot_refresh_token', sa.String(length=255), nullable=True),
        sa.Column('bot_token_expires_at', sa.Integer(), nullable=True),
        sa.Column('user_id', sa.String(length=32), nullable=False),
        sa.Column('user_token', sa.String(length=255), nullable=True),
        sa.Column('user_scopes', sa.String(length=1024), nullable=True),
        sa.Column('user_refresh_token', sa.String(length=255), nullable=True),
        sa.Column('user_token_expires_at', sa.Integer(), nullable=True),
        sa.Column('incoming_webhook_url', sa.String(length=1024), nullable=True),
        sa.Column('incoming_webhook_channel', sa.String(length=255), nullable=True),
        sa.Column('incoming_webhook_channel_id', sa.String(length=32), nullable=True),
        sa.Column('incoming_webhook_configuration_url', sa.String(length=1024), nullable=True),
        sa.Column('installed_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_slack_installations_id'), 'slack_installations', ['id'], unique=False)
    op.create_index(
        'ix_slack_installations_lookup',
        'slack_installations',
        ['enterprise_id', 'team_id', 'user_id', 'installed_at'],
        unique=False,
    )


def downgrade():
    op.drop_index('ix_slack_installations_lookup', table_name='slack_installations')
    op.drop_index(op.f('ix_slack_installations_id'), table_name='slack_installations')
    op.drop_table('slack_installations')
