"""Coordinates the "Add to Slack" install flow.

``handle_install_path`` sends the installing user to Slack's authorize page
with a signed state param (mirrored in a browser cookie), and
``handle_callback`` walks the redirect back through the forgery checks, the
code exchange and persistence, reporting the outcome through the hooks in
``CallbackOptions``. ``authorize`` turns a stored installation into the tokens
a request handler needs.
"""

import inspect
import json
import os
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple
from urllib.parse import urlencode

from slack_sdk.web.async_client import AsyncWebClient
from starlette.requests import Request
from starlette.responses import Response

from schemas.slack import AuthorizeResult, Installation, InstallationQuery, InstallURLOptions
from services.errors import (
    AuthorizationError,
    CookieNotFoundError,
    GenerateInstallUrlError,
    InstallerError,
    InstallerInitializationError,
    MissingCodeError,
    MissingStateError,
    StateVerificationError,
)
from services.installation_store import InstallationStore, MemoryInstallationStore
from services.state_store import ClearStateStore, StateStore, DEFAULT_STATE_EXPIRATION_SECONDS
from services.token_exchange import AuthVersion, variant_for
from templates.oauth_pages import render_install_page
from utils.http_response import redirect_response, write_response
from utils.logger_factory import new_logger

STATE_COOKIE_NAME = "slack-app-oauth-state"


@dataclass
class InstallPathOptions:
    # Runs before the redirect is written; a falsy result stops the handler
    before_redirection: Optional[Callable[[Request, Response], Any]] = None


@dataclass
class CallbackOptions:
    """Hooks run by handle_callback, always in this order.

    before_installation -> (code exchange) -> after_installation -> (store)
    -> success -> success_async, or failure -> failure_async on error.
    ``before_installation`` and ``after_installation`` stop the flow when they
    return a falsy value. Any hook may return an awaitable, which is awaited.
    An exception raised before success, including one from the two install
    hooks, reaches the failure hooks as an InstallerError.
    """
    before_installation: Optional[Callable[[InstallURLOptions, Request, Response], Any]] = None
    after_installation: Optional[Callable[[Installation, InstallURLOptions, Request, Response], Any]] = None
    success: Optional[Callable[[Installation, InstallURLOptions, Request, Response], Any]] = None
    success_async: Optional[Callable[[Installation, InstallURLOptions, Request, Response], Awaitable[Any]]] = None
    failure: Optional[Callable[[InstallerError, InstallURLOptions, Request, Response], Any]] = None
    failure_async: Optional[Callable[[InstallerError, InstallURLOptions, Request, Response], Awaitable[Any]]] = None


async def _maybe_await(value):
    if inspect.isawaitable(value):
        return await value
    return value


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str):
    items = [s.strip() for s in os.getenv(name, "").split(",") if s.strip()]
    return items or None


class InstallProvider:
    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        state_secret: Optional[str] = None,
        state_store: Optional[StateStore] = None,
        installation_store: Optional[InstallationStore] = None,
        auth_version: str = AuthVersion.V2.value,
        authorization_url: Optional[str] = None,
        install_url_options: Optional[InstallURLOptions] = None,
        direct_install: bool = False,
        state_verification: bool = True,
        legacy_state_verification: bool = False,
        state_cookie_name: str = STATE_COOKIE_NAME,
        state_expiration_seconds: int = DEFAULT_STATE_EXPIRATION_SECONDS,
        client_options: Optional[Dict[str, Any]] = None,
        client: Optional[AsyncWebClient] = None,
    ):
        log = new_logger("install_provider_init")
        if not client_id or not client_secret:
            raise InstallerInitializationError("You must provide a valid client_id and client_secret")

        if state_verification and state_store is None:
            if not state_secret:
                raise InstallerInitializationError("To use the built-in state store you must provide a state_secret")
            state_store = ClearStateStore(state_secret, expiration_seconds=state_expiration_seconds)

        try:
            self._variant = variant_for(auth_version)
        except ValueError as e:
            raise InstallerInitializationError(f"Unsupported auth_version: {auth_version}") from e

        self.client_id = client_id
        self.client_secret = client_secret
        self.state_store = state_store
        self.installation_store = installation_store or MemoryInstallationStore()
        self.authorization_url = authorization_url or self._variant.default_authorization_url
        self.install_url_options = install_url_options
        self.direct_install = direct_install
        self.state_verification = state_verification
        self.legacy_state_verification = legacy_state_verification
        self.state_cookie_name = state_cookie_name
        self.client_options = dict(client_options or {})
        self.client = client or AsyncWebClient(**self.client_options)

        log.info(
            f"InstallProvider ready: auth_version={self.auth_version} state_verification={state_verification} "
            f"legacy_state_verification={legacy_state_verification} direct_install={direct_install}"
        )

    @property
    def auth_version(self) -> str:
        return self._variant.version.value

    @property
    def state_expiration_seconds(self) -> int:
        if self.state_store is None:
            return DEFAULT_STATE_EXPIRATION_SECONDS
        return getattr(self.state_store, "expiration_seconds", DEFAULT_STATE_EXPIRATION_SECONDS)

    @classmethod
    def from_env(cls, state_store: Optional[StateStore] = None,
                 installation_store: Optional[InstallationStore] = None,
                 client: Optional[AsyncWebClient] = None) -> "InstallProvider":
        """Build a provider from SLACK_* environment variables"""
        scopes = _env_list("SLACK_SCOPES")
        install_url_options = None
        if scopes:
            install_url_options = InstallURLOptions(
                scopes=scopes,
                user_scopes=_env_list("SLACK_USER_SCOPES"),
                redirect_uri=os.getenv("SLACK_REDIRECT_URI") or None,
            )
        return cls(
            client_id=os.getenv("SLACK_CLIENT_ID"),
            client_secret=os.getenv("SLACK_CLIENT_SECRET"),
            state_secret=os.getenv("SLACK_STATE_SECRET"),
            state_store=state_store,
            installation_store=installation_store,
            auth_version=os.getenv("SLACK_AUTH_VERSION", AuthVersion.V2.value).lower(),
            authorization_url=os.getenv("SLACK_AUTHORIZATION_URL") or None,
            install_url_options=install_url_options,
            direct_install=_env_flag("SLACK_DIRECT_INSTALL", False),
            state_verification=_env_flag("SLACK_STATE_VERIFICATION", True),
            legacy_state_verification=_env_flag("SLACK_LEGACY_STATE_VERIFICATION", False),
            client=client,
        )

    async def generate_install_url(self, options: InstallURLOptions, state_verification: bool = True) -> str:
        install_url, _ = await self._build_install_url(options, state_verification)
        return install_url

    async def _build_install_url(self, options: InstallURLOptions, state_verification: bool) -> Tuple[str, Optional[str]]:
        log = new_logger("generate_install_url")
        if options is None or not options.scopes:
            raise GenerateInstallUrlError("You must provide a scope parameter when calling generate_install_url")

        state = None
        if state_verification:
            if self.state_store is None:
                raise GenerateInstallUrlError("State verification was requested but no state store is configured")
            try:
                state = await self.state_store.generate_state_param(options, _now())
            except Exception as e:
                log.error(f"Failed to generate state param: {str(e)}")
                raise GenerateInstallUrlError("Failed to generate the state param") from e

        params = self._variant.authorize_params(self.client_id, options, state)
        if options.metadata:
            params["metadata"] = options.metadata
        install_url = f"{self.authorization_url}?{urlencode(params)}"
        log.info(f"Generated install URL for scopes={options.scopes} team={options.team_id} with_state={state is not None}")
        return install_url, state

    async def handle_install_path(self, request: Request, response: Response,
                                  options: Optional[InstallPathOptions] = None) -> Response:
        log = new_logger("handle_install_path")
        options = options or InstallPathOptions()
        if self.install_url_options is None:
            raise GenerateInstallUrlError("You must provide install_url_options to use handle_install_path")

        install_url, state = await self._build_install_url(self.install_url_options, self.state_verification)

        if options.before_redirection is not None:
            proceed = await _maybe_await(options.before_redirection(request, response))
            if not proceed:
                log.info("before_redirection stopped the install path")
                return response

        if state is not None:
            response.set_cookie(
                self.state_cookie_name,
                state,
                max_age=self.state_expiration_seconds,
                path="/",
                secure=True,
                httponly=True,
                samesite="lax",
            )

        if self.direct_install:
            return redirect_response(response, install_url)
        return write_response(response, 200, render_install_page(install_url))

    async def handle_callback(self, request: Request, response: Response,
                              options: Optional[CallbackOptions] = None) -> Response:
        log = new_logger("handle_callback")
        options = options or CallbackOptions()
        install_options = self.install_url_options or InstallURLOptions()

        try:
            params = request.query_params
            if "error" in params:
                raise AuthorizationError(f"Slack returned an error during authorization: {params.get('error')}")

            code = params.get("code")
            if not code:
                raise MissingCodeError("Redirect url is missing the required code query parameter")

            if self.state_verification:
                state = params.get("state")
                if not state:
                    raise MissingStateError(
                        "Redirect url is missing the state query parameter. "
                        "If this is intentional, disable state_verification."
                    )
                self._check_state_cookie(request, state)
                install_options = await self._verify_state(state)
                response.delete_cookie(self.state_cookie_name, path="/", secure=True, httponly=True, samesite="lax")

            if options.before_installation is not None:
                proceed = await _maybe_await(options.before_installation(install_options, request, response))
                if not proceed:
                    log.info("before_installation stopped the callback")
                    return response

            installation = await self._exchange_code(code, install_options)

            if options.after_installation is not None:
                proceed = await _maybe_await(options.after_installation(installation, install_options, request, response))
                if not proceed:
                    log.info("after_installation stopped the callback before storing the installation")
                    return response

            try:
                await self.installation_store.store_installation(installation)
            except Exception as e:
                log.error(f"Failed to store installation: {str(e)}")
                raise AuthorizationError("Failed to store the installation") from e

        except InstallerError as error:
            await self._run_failure_hooks(options, error, install_options, request, response)
            return response
        except Exception as e:
            log.error(f"Install callback raised an unexpected error: {str(e)}")
            error = InstallerError(str(e))
            error.__cause__ = e
            await self._run_failure_hooks(options, error, install_options, request, response)
            return response

        log.info(f"Completed installation team={installation.team_id} enterprise={installation.enterprise_id}")
        if options.success is not None:
            await _maybe_await(options.success(installation, install_options, request, response))
        if options.success_async is not None:
            await _maybe_await(options.success_async(installation, install_options, request, response))
        return response

    async def _run_failure_hooks(self, options: CallbackOptions, error: InstallerError,
                                 install_options: InstallURLOptions, request: Request, response: Response) -> None:
        log = new_logger("handle_callback_failure")
        log.warning(f"Install callback failed ({error.code.value}): {str(error)}")
        if options.failure is not None:
            await _maybe_await(options.failure(error, install_options, request, response))
        if options.failure_async is not None:
            await _maybe_await(options.failure_async(error, install_options, request, response))

    def _check_state_cookie(self, request: Request, state: str) -> None:
        log = new_logger("check_state_cookie")
        cookie_state = request.cookies.get(self.state_cookie_name)
        if not cookie_state:
            if self.legacy_state_verification:
                log.warning("State cookie not found; continuing because legacy_state_verification is enabled")
                return
            raise CookieNotFoundError("The state cookie was not found in the browser; the installation may have been forged")
        if cookie_state != state:
            if self.legacy_state_verification:
                log.warning("State cookie does not match the state param; continuing because legacy_state_verification is enabled")
                return
            raise StateVerificationError("The state param does not match the state cookie in the browser")

    async def _verify_state(self, state: str) -> InstallURLOptions:
        try:
            return await self.state_store.verify_state_param(_now(), state)
        except StateVerificationError:
            raise
        except Exception as e:
            raise StateVerificationError("The state param could not be verified") from e

    async def _exchange_code(self, code: str, install_options: InstallURLOptions) -> Installation:
        log = new_logger("exchange_code")
        try:
            return await self._variant.exchange_code(
                self.client,
                self.client_id,
                self.client_secret,
                code,
                install_options.redirect_uri,
                install_options,
            )
        except Exception as e:
            log.error(f"OAuth {self.auth_version} code exchange failed: {str(e)}")
            raise AuthorizationError("Failed to exchange the authorization code for tokens") from e

    async def authorize(self, query: InstallationQuery) -> AuthorizeResult:
        log = new_logger("authorize")
        source = json.dumps(query.model_dump(exclude_defaults=True))
        message = f"Failed fetching data from the Installation Store (source: {source})"
        try:
            installation = await self.installation_store.fetch_installation(query)
        except Exception as e:
            log.error(f"Installation store raised during lookup {source}: {str(e)}")
            raise AuthorizationError(message) from e
        if installation is None:
            log.warning(f"No installation found for {source}")
            raise AuthorizationError(message)

        bot = installation.bot
        return AuthorizeResult(
            bot_token=bot.token if bot else None,
            bot_id=bot.id if bot else None,
            bot_user_id=bot.user_id if bot else None,
            user_token=installation.user.token,
            team_id=installation.team_id,
            enterprise_id=installation.enterprise_id,
        )

    async def rotate_tokens(self, installation: Installation, minimum_ttl_seconds: int = 7200,
                            now: Optional[float] = None) -> Optional[Installation]:
        """Refresh bot and user tokens that expire within ``minimum_ttl_seconds``.

        Returns the rotated installation after storing it, or None when no
        token needed refreshing. Only OAuth v2 grants carry refresh tokens.
        """
        log = new_logger("rotate_tokens")
        if self._variant.version != AuthVersion.V2:
            return None

        deadline = (now if now is not None else time.time()) + minimum_ttl_seconds
        updates = {}

        bot = installation.bot
        if bot and bot.refresh_token and bot.expires_at is not None and bot.expires_at <= deadline:
            refreshed = await self._refresh(bot.refresh_token, expected_token_type="bot")
            updates["bot"] = bot.model_copy(update={
                "token": refreshed["access_token"],
                "refresh_token": refreshed["refresh_token"] or bot.refresh_token,
                "expires_at": refreshed["expires_at"],
            })

        user = installation.user
        if user.refresh_token and user.expires_at is not None and user.expires_at <= deadline:
            refreshed = await self._refresh(user.refresh_token, expected_token_type="user")
            updates["user"] = user.model_copy(update={
                "token": refreshed["access_token"],
                "refresh_token": refreshed["refresh_token"] or user.refresh_token,
                "expires_at": refreshed["expires_at"],
            })

        if not updates:
            return None

        updates["installed_at"] = _now()
        rotated = installation.model_copy(update=updates)
        try:
            await self.installation_store.store_installation(rotated)
        except Exception as e:
            log.error(f"Failed to store rotated installation: {str(e)}")
            raise AuthorizationError("Failed to store the rotated installation") from e
        log.info(f"Rotated {', '.join(k for k in updates if k != 'installed_at')} token(s) for team={installation.team_id}")
        return rotated

    async def _refresh(self, refresh_token: str, expected_token_type: str) -> Dict[str, Any]:
        try:
            refreshed = await self._variant.refresh_token(self.client, self.client_id, self.client_secret, refresh_token)
        except Exception as e:
            raise AuthorizationError(f"Failed to refresh the {expected_token_type} token") from e
        if refreshed.get("token_type") not in (None, expected_token_type) or not refreshed.get("access_token"):
            raise AuthorizationError(f"Unexpected token refresh response for the {expected_token_type} token")
        return refreshed
