from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text
from sqlalchemy.sql import func
from database import Base
import secrets
from datetime import datetime, timedelta


class SlackOAuthState(Base):
    __tablename__ = "slack_oauth_states"

    id = Column(Integer, primary_key=True, index=True)
    state = Column(String(255), unique=True, index=True, nullable=False)
    install_options = Column(Text, nullable=False)  # InstallURLOptions as JSON
    created_at = Column(DateTime, default=func.now(), nullable=False)
    expires_at = Column(DateTime, index=True, nullable=False)
    consumed = Column(Boolean, default=False, nullable=False)

    def __init__(self, install_options: str, issued_at: datetime, expiration_seconds: int = 600):
        self.state = secrets.token_urlsafe(32)
        self.install_options = install_options
        self.created_at = issued_at
        self.expires_at = issued_at + timedelta(seconds=expiration_seconds)
        self.consumed = False

    def is_valid(self, now: datetime) -> bool:
        """Not consumed and not past its expiry"""
        return not self.consumed and now < self.expires_at

    def consume(self):
        self.consumed = True
