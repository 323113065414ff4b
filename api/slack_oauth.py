from functools import lru_cache
import os

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response

from database import SessionLocal
from services.database_state_store import DatabaseStateStore
from services.errors import GenerateInstallUrlError, InstallerError
from services.install_provider import CallbackOptions, InstallProvider
from services.installation_store import MemoryInstallationStore
from services.sqlalchemy_installation_store import SQLAlchemyInstallationStore
from templates.oauth_pages import render_failure_page, render_success_page
from utils.http_response import write_response
from utils.logger_factory import new_logger

router = APIRouter()


@lru_cache(maxsize=1)
def get_install_provider() -> InstallProvider:
    """Provider configured from the environment, built once per process"""
    log = new_logger("get_install_provider")

    state_store = None
    if os.getenv("SLACK_STATE_STORE", "cookie").lower() == "database":
        state_store = DatabaseStateStore(SessionLocal)

    if os.getenv("SLACK_INSTALLATION_STORE", "database").lower() == "memory":
        installation_store = MemoryInstallationStore()
    else:
        installation_store = SQLAlchemyInstallationStore(SessionLocal)

    log.info(
        f"Building InstallProvider with state_store={type(state_store).__name__ if state_store else 'ClearStateStore'} "
        f"installation_store={type(installation_store).__name__}"
    )
    return InstallProvider.from_env(state_store=state_store, installation_store=installation_store)


async def _render_success(installation, install_options, request, response):
    write_response(response, 200, render_success_page(
        installation.app_id,
        installation.team_id,
        installation.enterprise_id,
        installation.is_enterprise_install,
    ))


async def _render_failure(error: InstallerError, install_options, request, response):
    write_response(response, 400, render_failure_page(error.code.value))


default_callback_options = CallbackOptions(success=_render_success, failure=_render_failure)


@router.get("/install")
async def slack_install(request: Request, provider: InstallProvider = Depends(get_install_provider)):
    """
    Start the Slack install flow.
    Redirects straight to Slack when direct install is on, otherwise renders an Add to Slack page.
    """
    log = new_logger("slack_install")
    response = Response()
    try:
        return await provider.handle_install_path(request, response)
    except GenerateInstallUrlError as e:
        log.error(f"Failed to generate install URL: {str(e)}")
        return write_response(response, 500, render_failure_page("install_url_unavailable"))


@router.get("/oauth_redirect")
async def slack_oauth_redirect(request: Request, provider: InstallProvider = Depends(get_install_provider)):
    """
    Handle the redirect back from Slack after the user approves (or cancels) the install.
    """
    return await provider.handle_callback(request, Response(), default_callback_options)
