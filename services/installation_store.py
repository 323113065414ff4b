from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple

from schemas.slack import Installation, InstallationQuery
from utils.logger_factory import new_logger


class InstallationStore(ABC):
    """Durable mapping from (enterprise, team, optional user) to an Installation"""

    @abstractmethod
    async def store_installation(self, installation: Installation) -> None:
        pass

    @abstractmethod
    async def fetch_installation(self, query: InstallationQuery) -> Optional[Installation]:
        """Return the latest matching installation, or None when there is none."""
        pass

    @abstractmethod
    async def delete_installation(self, query: InstallationQuery) -> None:
        pass


def installation_key(enterprise_id: Optional[str], team_id: Optional[str], is_enterprise_install: bool) -> Tuple[str, Optional[str]]:
    # Org-wide installs are shared by every team in the enterprise; team ids are globally unique
    if is_enterprise_install:
        return ("enterprise", enterprise_id)
    return ("team", team_id)


class MemoryInstallationStore(InstallationStore):
    """Process-local store, for tests and single-process development servers"""

    def __init__(self):
        self._latest: Dict[Tuple[str, Optional[str]], Installation] = {}
        self._by_user: Dict[Tuple[str, Optional[str], str], Installation] = {}

    async def store_installation(self, installation: Installation) -> None:
        log = new_logger("memory_store_installation")
        key = installation_key(installation.enterprise_id, installation.team_id, installation.is_enterprise_install)
        self._latest[key] = installation
        self._by_user[key + (installation.user.id,)] = installation
        log.info(f"Stored {key[0]} installation {key[1]} for user={installation.user.id}")

    async def fetch_installation(self, query: InstallationQuery) -> Optional[Installation]:
        key = installation_key(query.enterprise_id, query.team_id, query.is_enterprise_install)
        if query.user_id:
            return self._by_user.get(key + (query.user_id,))
        return self._latest.get(key)

    async def delete_installation(self, query: InstallationQuery) -> None:
        log = new_logger("memory_delete_installation")
        key = installation_key(query.enterprise_id, query.team_id, query.is_enterprise_install)
        if query.user_id:
            self._by_user.pop(key + (query.user_id,), None)
            latest = self._latest.get(key)
            if latest is not None and latest.user.id == query.user_id:
                del self._latest[key]
        else:
            self._latest.pop(key, None)
            for user_key in [k for k in self._by_user if k[:2] == key]:
                del self._by_user[user_key]
        log.info(f"Deleted {key[0]} installation {key[1]} for user={query.user_id}")
