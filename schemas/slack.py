from pydantic import BaseModel, Field, model_validator
from typing import Optional, List
from datetime import datetime, timezone


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InstallURLOptions(BaseModel):
    """What the installing user is asked to grant, and where Slack should send them back"""
    scopes: List[str] = Field(default_factory=list)
    user_scopes: Optional[List[str]] = None
    team_id: Optional[str] = None
    redirect_uri: Optional[str] = None
    metadata: Optional[str] = None


class SlackTeam(BaseModel):
    id: str
    name: Optional[str] = None


class SlackEnterprise(BaseModel):
    id: str
    name: Optional[str] = None


class BotCredential(BaseModel):
    token: str
    scopes: List[str] = Field(default_factory=list)
    id: Optional[str] = None
    user_id: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_at: Optional[int] = None


class UserCredential(BaseModel):
    id: str
    token: Optional[str] = None
    scopes: Optional[List[str]] = None
    refresh_token: Optional[str] = None
    expires_at: Optional[int] = None


class IncomingWebhook(BaseModel):
    url: Optional[str] = None
    channel: Optional[str] = None
    channel_id: Optional[str] = None
    configuration_url: Optional[str] = None


class Installation(BaseModel):
    """Credentials granted by one completed OAuth exchange.

    Org-wide installs are keyed by the enterprise and have no team; every other
    install is keyed by its team, with the enterprise set when the team belongs
    to an Enterprise Grid org.
    """
    team: Optional[SlackTeam] = None
    enterprise: Optional[SlackEnterprise] = None
    bot: Optional[BotCredential] = None
    user: UserCredential
    incoming_webhook: Optional[IncomingWebhook] = None
    app_id: Optional[str] = None
    token_type: Optional[str] = None
    is_enterprise_install: bool = False
    auth_version: str = "v2"
    metadata: Optional[str] = None
    installed_at: datetime = Field(default_factory=_utcnow)

    @model_validator(mode="after")
    def check_primary_key(self):
        if self.is_enterprise_install and self.enterprise is None:
            raise ValueError("An org-wide installation must carry an enterprise")
        if not self.is_enterprise_install and self.team is None:
            raise ValueError("A workspace installation must carry a team")
        return self

    @property
    def team_id(self) -> Optional[str]:
        return self.team.id if self.team else None

    @property
    def enterprise_id(self) -> Optional[str]:
        return self.enterprise.id if self.enterprise else None


class InstallationQuery(BaseModel):
    """Lookup key for a stored installation"""
    team_id: Optional[str] = None
    enterprise_id: Optional[str] = None
    user_id: Optional[str] = None
    is_enterprise_install: bool = False


class AuthorizeResult(BaseModel):
    """Credentials a request handler needs to call Slack on behalf of an installation"""
    bot_token: Optional[str] = None
    bot_id: Optional[str] = None
    bot_user_id: Optional[str] = None
    user_token: Optional[str] = None
    team_id: Optional[str] = None
    enterprise_id: Optional[str] = None
