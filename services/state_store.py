"""State param issuing and verification for the OAuth install flow.

The state param ties the OAuth redirect back to the install request that
started it. The default store keeps nothing server side: the install options,
the issue time and a random nonce are signed into a compact JWT with the
state secret and recovered from the token itself at callback time.
"""

import secrets
from abc import ABC, abstractmethod
from datetime import datetime

from jose import JWTError, jwt

from schemas.slack import InstallURLOptions
from services.errors import StateVerificationError
from utils.logger_factory import new_logger

DEFAULT_STATE_EXPIRATION_SECONDS = 600
STATE_ALGORITHM = "HS256"


class StateStore(ABC):
    """Issues state params and turns them back into the install options they were issued for."""

    expiration_seconds: int = DEFAULT_STATE_EXPIRATION_SECONDS

    @abstractmethod
    async def generate_state_param(self, install_options: InstallURLOptions, now: datetime) -> str:
        pass

    @abstractmethod
    async def verify_state_param(self, now: datetime, state: str) -> InstallURLOptions:
        """Return the options bound to ``state`` or raise StateVerificationError."""
        pass


class ClearStateStore(StateStore):
    """Stateless store that signs the install options into the state param itself"""

    def __init__(self, state_secret: str, expiration_seconds: int = DEFAULT_STATE_EXPIRATION_SECONDS):
        if not state_secret:
            raise ValueError("state_secret must be a non-empty string")
        self.state_secret = state_secret
        self.expiration_seconds = expiration_seconds

    async def generate_state_param(self, install_options: InstallURLOptions, now: datetime) -> str:
        log = new_logger("generate_state_param")
        payload = {
            "installOptions": install_options.model_dump(exclude_none=True),
            "issuedAt": int(now.timestamp()),
            "nonce": secrets.token_urlsafe(16),
        }
        state = jwt.encode(payload, self.state_secret, algorithm=STATE_ALGORITHM)
        log.info(f"Issued state param for scopes={install_options.scopes}")
        return state

    async def verify_state_param(self, now: datetime, state: str) -> InstallURLOptions:
        log = new_logger("verify_state_param")
        try:
            payload = jwt.decode(state, self.state_secret, algorithms=[STATE_ALGORITHM])
        except JWTError as e:
            log.warning(f"State param failed signature verification: {str(e)}")
            raise StateVerificationError("The state param could not be verified") from e

        issued_at = payload.get("issuedAt")
        if not isinstance(issued_at, int):
            raise StateVerificationError("The state param is missing its issue time")

        age = now.timestamp() - issued_at
        if age > self.expiration_seconds:
            log.warning(f"State param expired {int(age - self.expiration_seconds)}s ago")
            raise StateVerificationError("The state param is already expired")

        return InstallURLOptions(**payload.get("installOptions", {}))
