from sqlalchemy import Column, Integer, String, DateTime, Boolean, Index
from sqlalchemy.sql import func
from database import Base


class SlackInstallation(Base):
    """One row per completed install; the newest row for a key is the live one"""
    __tablename__ = "slack_installations"

    id = Column(Integer, primary_key=True, index=True)
    app_id = Column(String(32), nullable=True)
    enterprise_id = Column(String(32), nullable=True)
    enterprise_name = Column(String(255), nullable=True)
    team_id = Column(String(32), nullable=True)
    team_name = Column(String(255), nullable=True)
    is_enterprise_install = Column(Boolean, default=False, nullable=False)
    auth_version = Column(String(8), default="v2", nullable=False)
    token_type = Column(String(32), nullable=True)
    metadata_value = Column("metadata", String(1024), nullable=True)

    bot_token = Column(String(255), nullable=True)
    bot_id = Column(String(32), nullable=True)
    bot_user_id = Column(String(32), nullable=True)
    bot_scopes = Column(String(1024), nullable=True)  # comma separated
    bot_refresh_token = Column(String(255), nullable=True)
    bot_token_expires_at = Column(Integer, nullable=True)

    user_id = Column(String(32), nullable=False)
    user_token = Column(String(255), nullable=True)
    user_scopes = Column(String(1024), nullable=True)
    user_refresh_token = Column(String(255), nullable=True)
    user_token_expires_at = Column(Integer, nullable=True)

    incoming_webhook_url = Column(String(1024), nullable=True)
    incoming_webhook_channel = Column(String(255), nullable=True)
    incoming_webhook_channel_id = Column(String(32), nullable=True)
    incoming_webhook_configuration_url = Column(String(1024), nullable=True)

    installed_at = Column(DateTime, default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_slack_installations_lookup", "enterprise_id", "team_id", "user_id", "installed_at"),
    )
