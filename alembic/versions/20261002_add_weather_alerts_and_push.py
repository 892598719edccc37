"""Add weather_alerts, device_tokens and notification_logs tables

Revision ID: 20261002_weather_alerts
Revises: 20261001_users
Create Date: 2026-10-02

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '20261002_weather_alerts'
down_revision: Union[str, Sequence[str], None] = '20261001_users'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'weather_alerts',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('alert_id', sa.String(), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('severity', sa.Enum('CRITICAL', 'HIGH', 'MODERATE', 'LOW', name='alertseverity'), nullable=False),
        sa.Column('alert_type', sa.String(), nullable=False),
        sa.Column('source', sa.String(), nullable=False, server_default='NOAA'),
        sa.Column('location_city', sa.String(), nullable=True),
        sa.Column('location_state', sa.String(), nullable=True),
        sa.Column('start_time', sa.DateTime(), nullable=True),
        sa.Column('end_time', sa.DateTime(), nullable=True),
        sa.Column('alert_metadata', sa.JSON(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    # Unique alert_id backs ON CONFLICT in the alert store upsert
    op.create_index('ix_weather_alerts_alert_id', 'weather_alerts', ['alert_id'], unique=True)
    op.create_index('ix_weather_alerts_location_city', 'weather_alerts', ['location_city'], unique=False)
    op.create_index('ix_weather_alerts_location_state', 'weather_alerts', ['location_state'], unique=False)
    op.create_index('ix_weather_alerts_end_time', 'weather_alerts', ['end_time'], unique=False)
    op.create_index('ix_weather_alerts_is_active', 'weather_alerts', ['is_active'], unique=False)
    op.create_index('ix_weather_alerts_created_at', 'weather_alerts', ['created_at'], unique=False)

    op.create_table(
        'device_tokens',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('token', sa.String(), nullable=False),
        sa.Column('platform', sa.Enum('ios', 'android', 'web', 'unknown', name='deviceplatform'), nullable=False),
        sa.Column('device_info', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('last_used', sa.DateTime(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_device_tokens_user_id', 'device_tokens', ['user_id'], unique=False)
    op.create_index('ix_device_tokens_token', 'device_tokens', ['token'], unique=True)
    op.create_index('ix_device_tokens_is_active', 'device_tokens', ['is_active'], unique=False)

    op.create_table(
        'notification_logs',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('data', sa.JSON(), nullable=True),
        sa.Column('success', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('sent_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_notification_logs_user_id', 'notification_logs', ['user_id'], unique=False)
    op.create_index('ix_notification_logs_sent_at', 'notification_logs', ['sent_at'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_notification_logs_sent_at', table_name='notification_logs')
    op.drop_index('ix_notification_logs_user_id', table_name='notification_logs')
    op.drop_table('notification_logs')
    op.drop_index('ix_device_tokens_is_active', table_name='device_tokens')
    op.drop_index('ix_device_tokens_token', table_name='device_tokens')
    op.drop_index('ix_device_tokens_user_id', table_name='device_tokens')
    op.drop_table('device_tokens')
    op.drop_index('ix_weather_alerts_created_at', table_name='weather_alerts')
    op.drop_index('ix_weather_alerts_is_active', table_name='weather_alerts')
    op.drop_index('ix_weather_alerts_end_time', table_name='weather_alerts')
    op.drop_index('ix_weather_alerts_location_state', table_name='weather_alerts')
    op.drop_index('ix_weather_alerts_location_city', table_name='weather_alerts')
    op.drop_index('ix_weather_alerts_alert_id', table_name='weather_alerts')
    op.drop_table('weather_alerts')
    # Drop the enum types
    op.execute('DROP TYPE IF EXISTS deviceplatform')
    op.execute('DROP TYPE IF EXISTS alertseverity')
