import logging
from typing import Optional

from fastapi.concurrency import run_in_threadpool
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type, before_sleep_log

from models.slack_installation import SlackInstallation
from schemas.slack import (
    Installation,
    InstallationQuery,
    SlackTeam,
    SlackEnterprise,
    BotCredential,
    UserCredential,
    IncomingWebhook,
)
from services.installation_store import InstallationStore
from utils.logger_factory import new_logger

installation_retry_logger = new_logger("slack_installation_retry")


def _join_scopes(scopes) -> Optional[str]:
    return ",".join(scopes) if scopes is not None else None


def _split_scopes(value: Optional[str]):
    if value is None:
        return None
    return [s for s in value.split(",") if s]


def installation_to_row(installation: Installation) -> SlackInstallation:
    bot = installation.bot
    user = installation.user
    webhook = installation.incoming_webhook
    return SlackInstallation(
        app_id=installation.app_id,
        enterprise_id=installation.enterprise_id,
        enterprise_name=installation.enterprise.name if installation.enterprise else None,
        team_id=installation.team_id,
        team_name=installation.team.name if installation.team else None,
        is_enterprise_install=installation.is_enterprise_install,
        auth_version=installation.auth_version,
        token_type=installation.token_type,
        metadata_value=installation.metadata,
        bot_token=bot.token if bot else None,
        bot_id=bot.id if bot else None,
        bot_user_id=bot.user_id if bot else None,
        bot_scopes=_join_scopes(bot.scopes) if bot else None,
        bot_refresh_token=bot.refresh_token if bot else None,
        bot_token_expires_at=bot.expires_at if bot else None,
        user_id=user.id,
        user_token=user.token,
        user_scopes=_join_scopes(user.scopes),
        user_refresh_token=user.refresh_token,
        user_token_expires_at=user.expires_at,
        incoming_webhook_url=webhook.url if webhook else None,
        incoming_webhook_channel=webhook.channel if webhook else None,
        incoming_webhook_channel_id=webhook.channel_id if webhook else None,
        incoming_webhook_configuration_url=webhook.configuration_url if webhook else None,
        installed_at=installation.installed_at.replace(tzinfo=None),
    )


def row_to_installation(row: SlackInstallation) -> Installation:
    bot = None
    if row.bot_token:
        bot = BotCredential(
            token=row.bot_token,
            scopes=_split_scopes(row.bot_scopes) or [],
            id=row.bot_id,
            user_id=row.bot_user_id,
            refresh_token=row.bot_refresh_token,
            expires_at=row.bot_token_expires_at,
        )
    webhook = None
    if row.incoming_webhook_url:
        webhook = IncomingWebhook(
            url=row.incoming_webhook_url,
            channel=row.incoming_webhook_channel,
            channel_id=row.incoming_webhook_channel_id,
            configuration_url=row.incoming_webhook_configuration_url,
        )
    return Installation(
        team=SlackTeam(id=row.team_id, name=row.team_name) if row.team_id else None,
        enterprise=SlackEnterprise(id=row.enterprise_id, name=row.enterprise_name) if row.enterprise_id else None,
        bot=bot,
        user=UserCredential(
            id=row.user_id,
            token=row.user_token,
            scopes=_split_scopes(row.user_scopes),
            refresh_token=row.user_refresh_token,
            expires_at=row.user_token_expires_at,
        ),
        incoming_webhook=webhook,
        app_id=row.app_id,
        token_type=row.token_type,
        is_enterprise_install=row.is_enterprise_install,
        auth_version=row.auth_version,
        metadata=row.metadata_value,
        installed_at=row.installed_at,
    )


class SQLAlchemyInstallationStore(InstallationStore):
    """Installation store over the slack_installations table.

    Rows are append-only: every completed install adds a row and lookups return
    the newest match, which keeps a history of grants per workspace.
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    async def store_installation(self, installation: Installation) -> None:
        await run_in_threadpool(self._save_installation, installation)

    async def fetch_installation(self, query: InstallationQuery) -> Optional[Installation]:
        return await run_in_threadpool(self._find_installation, query)

    async def delete_installation(self, query: InstallationQuery) -> None:
        await run_in_threadpool(self._delete_installations, query)

    def _filtered(self, db: Session, query: InstallationQuery):
        rows = db.query(SlackInstallation)
        if query.is_enterprise_install:
            rows = rows.filter(
                SlackInstallation.enterprise_id == query.enterprise_id,
                SlackInstallation.is_enterprise_install.is_(True),
            )
        else:
            rows = rows.filter(
                SlackInstallation.team_id == query.team_id,
                SlackInstallation.is_enterprise_install.is_(False),
            )
        if query.user_id:
            rows = rows.filter(SlackInstallation.user_id == query.user_id)
        return rows

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(OperationalError),
        before_sleep=before_sleep_log(installation_retry_logger, logging.WARNING)
    )
    def _save_installation(self, installation: Installation) -> None:
        log = new_logger("save_installation")
        db: Session = self.session_factory()
        try:
            db.add(installation_to_row(installation))
            db.commit()
            log.info(
                f"Saved Slack installation team={installation.team_id} enterprise={installation.enterprise_id} "
                f"org_wide={installation.is_enterprise_install}"
            )
        except Exception as e:
            log.error(f"Failed to save Slack installation: {str(e)}")
            db.rollback()
            raise
        finally:
            db.close()

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(OperationalError),
        before_sleep=before_sleep_log(installation_retry_logger, logging.WARNING)
    )
    def _find_installation(self, query: InstallationQuery) -> Optional[Installation]:
        db: Session = self.session_factory()
        try:
            row = self._filtered(db, query).order_by(
                SlackInstallation.installed_at.desc(), SlackInstallation.id.desc()
            ).first()
            return row_to_installation(row) if row else None
        finally:
            db.close()

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(OperationalError),
        before_sleep=before_sleep_log(installation_retry_logger, logging.WARNING)
    )
    def _delete_installations(self, query: InstallationQuery) -> None:
        log = new_logger("delete_installations")
        db: Session = self.session_factory()
        try:
            deleted = self._filtered(db, query).delete(synchronize_session=False)
            db.commit()
            log.info(f"Deleted {deleted} Slack installation rows for team={query.team_id} enterprise={query.enterprise_id}")
        except Exception as e:
            log.error(f"Failed to delete Slack installation: {str(e)}")
            db.rollback()
            raise
        finally:
            db.close()
