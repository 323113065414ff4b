import logging
from datetime import datetime, timezone

from fastapi.concurrency import run_in_threadpool
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type, before_sleep_log

from models.slack_oauth_state import SlackOAuthState
from schemas.slack import InstallURLOptions
from services.errors import StateVerificationError
from services.state_store import StateStore, DEFAULT_STATE_EXPIRATION_SECONDS
from utils.logger_factory import new_logger

state_retry_logger = new_logger("slack_oauth_state_retry")


def _naive_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes, so everything is compared as naive UTC
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class DatabaseStateStore(StateStore):
    """State store backed by the slack_oauth_states table.

    Each state param is a random value with a row behind it. A row can only be
    consumed once, so a replayed callback fails even inside the expiry window.
    """

    def __init__(self, session_factory: sessionmaker, expiration_seconds: int = DEFAULT_STATE_EXPIRATION_SECONDS):
        self.session_factory = session_factory
        self.expiration_seconds = expiration_seconds

    async def generate_state_param(self, install_options: InstallURLOptions, now: datetime) -> str:
        return await run_in_threadpool(self._issue_state, install_options, _naive_utc(now))

    async def verify_state_param(self, now: datetime, state: str) -> InstallURLOptions:
        options_json = await run_in_threadpool(self._consume_state, state, _naive_utc(now))
        if options_json is None:
            raise StateVerificationError("The state param is unknown, expired or already used")
        return InstallURLOptions.model_validate_json(options_json)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(OperationalError),
        before_sleep=before_sleep_log(state_retry_logger, logging.WARNING)
    )
    def _issue_state(self, install_options: InstallURLOptions, now: datetime) -> str:
        log = new_logger("issue_state")
        db: Session = self.session_factory()
        try:
            state_record = SlackOAuthState(
                install_options=install_options.model_dump_json(exclude_none=True),
                issued_at=now,
                expiration_seconds=self.expiration_seconds,
            )
            db.add(state_record)
            db.commit()
            log.info(f"Issued OAuth state expiring at {state_record.expires_at.isoformat()}")
            return state_record.state
        except Exception as e:
            log.error(f"Failed to issue OAuth state: {str(e)}")
            db.rollback()
            raise
        finally:
            db.close()

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(OperationalError),
        before_sleep=before_sleep_log(state_retry_logger, logging.WARNING)
    )
    def _consume_state(self, state: str, now: datetime):
        log = new_logger("consume_state")
        db: Session = self.session_factory()
        try:
            state_record = db.query(SlackOAuthState).filter_by(state=state).first()

            if not state_record:
                log.warning("OAuth state not found")
                return None

            if not state_record.is_valid(now):
                log.warning("OAuth state invalid (expired or consumed)")
                return None

            state_record.consume()
            db.commit()
            log.info("Consumed OAuth state")
            return state_record.install_options
        except Exception as e:
            log.error(f"Failed to consume OAuth state: {str(e)}")
            db.rollback()
            raise
        finally:
            db.close()

    def cleanup_expired_states(self, now: datetime = None) -> int:
        """Remove expired state rows, returning how many were deleted"""
        log = new_logger("cleanup_expired_states")
        current_time = _naive_utc(now or datetime.now(timezone.utc))
        db: Session = self.session_factory()
        try:
            expired_count = db.query(SlackOAuthState).filter(
                SlackOAuthState.expires_at < current_time
            ).delete()
            db.commit()
            if expired_count > 0:
                log.info(f"Cleaned up {expired_count} expired OAuth states")
            return expired_count
        except Exception as e:
            log.error(f"Failed to cleanup expired states: {str(e)}")
            db.rollback()
            raise
        finally:
            db.close()
