"""OAuth protocol variants.

Slack has two OAuth flows: the legacy one (``oauth.access``, a single token
type per grant with the bot token nested under ``bot``) and the current one
(``oauth.v2.access``, separate bot and user tokens plus optional token
rotation). Each variant owns its authorize endpoint, the query params it
accepts, the code exchange call and the mapping of the response onto an
Installation, so the install provider never branches on the version itself.
"""

import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, List, Optional

from slack_sdk.web.async_client import AsyncWebClient

from schemas.slack import (
    BotCredential,
    IncomingWebhook,
    Installation,
    InstallURLOptions,
    SlackEnterprise,
    SlackTeam,
    UserCredential,
)
from utils.logger_factory import new_logger


class AuthVersion(str, Enum):
    V1 = "v1"
    V2 = "v2"


def _split_scopes(scope: Optional[str]) -> List[str]:
    if not scope:
        return []
    return [s for s in scope.split(",") if s]


def _expires_at(expires_in: Optional[int], now: float) -> Optional[int]:
    if expires_in is None:
        return None
    return int(now) + int(expires_in)


def _incoming_webhook(response) -> Optional[IncomingWebhook]:
    webhook = response.get("incoming_webhook")
    if not webhook:
        return None
    return IncomingWebhook(
        url=webhook.get("url"),
        channel=webhook.get("channel"),
        channel_id=webhook.get("channel_id"),
        configuration_url=webhook.get("configuration_url"),
    )


class OAuthVariant(ABC):
    version: AuthVersion
    default_authorization_url: str

    def authorize_params(self, client_id: str, options: InstallURLOptions, state: Optional[str]) -> Dict[str, str]:
        params = {"scope": ",".join(options.scopes)}
        if state:
            params["state"] = state
        params["client_id"] = client_id
        if options.redirect_uri:
            params["redirect_uri"] = options.redirect_uri
        if options.team_id:
            params["team"] = options.team_id
        return params

    @abstractmethod
    async def exchange_code(self, client: AsyncWebClient, client_id: str, client_secret: str,
                            code: str, redirect_uri: Optional[str],
                            install_options: InstallURLOptions) -> Installation:
        pass

    async def refresh_token(self, client: AsyncWebClient, client_id: str, client_secret: str, refresh_token: str):
        raise NotImplementedError(f"Token rotation is not available with OAuth {self.version.value}")

    async def _lookup_bot_id(self, client: AsyncWebClient, bot_token: str) -> Optional[str]:
        auth_test = await client.auth_test(token=bot_token)
        return auth_test.get("bot_id")


class OAuthV1Exchange(OAuthVariant):
    version = AuthVersion.V1
    default_authorization_url = "https://slack.com/oauth/authorize"

    async def exchange_code(self, client, client_id, client_secret, code, redirect_uri, install_options):
        log = new_logger("oauth_v1_exchange")
        response = await client.oauth_access(
            client_id=client_id,
            client_secret=client_secret,
            code=code,
            redirect_uri=redirect_uri,
        )
        log.info(f"oauth.access succeeded for team {response.get('team_id')}")

        bot = None
        bot_payload = response.get("bot")
        if bot_payload and bot_payload.get("bot_access_token"):
            bot = BotCredential(
                token=bot_payload["bot_access_token"],
                scopes=["bot"],
                id=await self._lookup_bot_id(client, bot_payload["bot_access_token"]),
                user_id=bot_payload.get("bot_user_id"),
            )

        enterprise_id = response.get("enterprise_id")
        return Installation(
            team=SlackTeam(id=response.get("team_id"), name=response.get("team_name")),
            enterprise=SlackEnterprise(id=enterprise_id) if enterprise_id else None,
            bot=bot,
            user=UserCredential(
                id=response.get("user_id"),
                token=response.get("access_token"),
                scopes=_split_scopes(response.get("scope")),
            ),
            incoming_webhook=_incoming_webhook(response),
            app_id=response.get("app_id"),
            token_type="bot" if bot else response.get("token_type"),
            is_enterprise_install=False,
            auth_version=self.version.value,
            metadata=install_options.metadata,
        )


class OAuthV2Exchange(OAuthVariant):
    version = AuthVersion.V2
    default_authorization_url = "https://slack.com/oauth/v2/authorize"

    def authorize_params(self, client_id, options, state):
        params = super().authorize_params(client_id, options, state)
        if options.user_scopes:
            params["user_scope"] = ",".join(options.user_scopes)
        return params

    async def exchange_code(self, client, client_id, client_secret, code, redirect_uri, install_options):
        log = new_logger("oauth_v2_exchange")
        response = await client.oauth_v2_access(
            client_id=client_id,
            client_secret=client_secret,
            code=code,
            redirect_uri=redirect_uri,
        )
        now = time.time()

        team = response.get("team") or None
        enterprise = response.get("enterprise") or None
        is_enterprise_install = bool(response.get("is_enterprise_install")) or (enterprise is not None and team is None)
        log.info(
            f"oauth.v2.access succeeded for team {team.get('id') if team else None} "
            f"enterprise {enterprise.get('id') if enterprise else None} org_wide={is_enterprise_install}"
        )

        bot = None
        if response.get("token_type") == "bot" and response.get("access_token"):
            bot = BotCredential(
                token=response["access_token"],
                scopes=_split_scopes(response.get("scope")),
                id=await self._lookup_bot_id(client, response["access_token"]),
                user_id=response.get("bot_user_id"),
                refresh_token=response.get("refresh_token"),
                expires_at=_expires_at(response.get("expires_in"), now),
            )

        authed_user = response.get("authed_user") or {}
        return Installation(
            team=SlackTeam(id=team["id"], name=team.get("name")) if team else None,
            enterprise=SlackEnterprise(id=enterprise["id"], name=enterprise.get("name")) if enterprise else None,
            bot=bot,
            user=UserCredential(
                id=authed_user.get("id"),
                token=authed_user.get("access_token"),
                scopes=_split_scopes(authed_user.get("scope")) or None,
                refresh_token=authed_user.get("refresh_token"),
                expires_at=_expires_at(authed_user.get("expires_in"), now),
            ),
            incoming_webhook=_incoming_webhook(response),
            app_id=response.get("app_id"),
            token_type=response.get("token_type"),
            is_enterprise_install=is_enterprise_install,
            auth_version=self.version.value,
            metadata=install_options.metadata,
        )

    async def refresh_token(self, client, client_id, client_secret, refresh_token) -> Dict[str, Any]:
        """Trade a refresh token for a fresh access token.

        Refresh responses carry no ``authed_user``; ``token_type`` says whether
        the rotated token is the bot's or the installing user's.
        """
        response = await client.oauth_v2_access(
            client_id=client_id,
            client_secret=client_secret,
            grant_type="refresh_token",
            refresh_token=refresh_token,
        )
        return {
            "token_type": response.get("token_type"),
            "access_token": response.get("access_token"),
            "refresh_token": response.get("refresh_token"),
            "expires_at": _expires_at(response.get("expires_in"), time.time()),
        }


def variant_for(auth_version) -> OAuthVariant:
    version = AuthVersion(auth_version)
    if version == AuthVersion.V1:
        return OAuthV1Exchange()
    return OAuthV2Exchange()
