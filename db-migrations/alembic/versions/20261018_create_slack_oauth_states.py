"""Create slack_oauth_states table

Revision ID: 20261018b
Revises: 20261018a
Create Date: 2026-10-18 09:05:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261018b'
down_revision = '20261018a'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'slack_oauth_states',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('state', sa.String(length=255), nullable=False),
        sa.Column('install_options', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('consumed', sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_index(op.f('ix_slack_oauth_states_id'), 'slack_oauth_states', ['id'], unique=False)
    op.create_index(op.f('ix_slack_oauth_states_state'), 'slack_oauth_states', ['state'], unique=True)
    op.create_index(op.f('ix_slack_oauth_states_expires_at'), 'slack_oauth_states', ['expires_at'], unique=False)


def downgrade():
    op.drop_index(op.f('ix_slack_oauth_states_expires_at'), table_name='slack_oauth_states')
    op.drop_index(op.f('ix_slack_oauth_states_state'), table_name='slack_oauth_states')
    op.drop_index(op.f('ix_slack_oauth_states_id'), table_name='slack_oauth_states')

    op.drop_table('slack_oauth_states')
