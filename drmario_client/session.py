import logging
from dataclasses import dataclass
from typing import Optional

from pydantic import ValidationError

from .config import Settings, settings as default_settings
from .schemas import Identity
from .storage import KeyValueStorage, MemoryStorage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Session:
    token: Optional[str] = None
    identity: Optional[Identity] = None

    @property
    def authenticated(self) -> bool:
        return self.token is not None


class SessionStore:
    """
    Current credential and identity for one API client.

    get() hands out an immutable snapshot, so a request that already read
    the token is unaffected by a later set() or clear().
    """

    def __init__(self, storage: Optional[KeyValueStorage] = None, settings: Optional[Settings] = None):
        self.settings = settings or default_settings
        self.storage = storage if storage is not None else MemoryStorage()
        self._session = self._restore()

    def _restore(self) -> Session:
        token = self.storage.get(self.settings.TOKEN_KEY)
        raw_user = self.storage.get(self.settings.USER_KEY)
        identity = None
        if raw_user:
            try:
                identity = Identity.model_validate_json(raw_user)
            except ValidationError as e:
                logger.warning("Dropping unreadable persisted identity: %s", e)
                self.storage.remove(self.settings.USER_KEY)
        return Session(token=token or None, identity=identity)

    def get(self) -> Session:
        return self._session

    def set(self, token: str, identity: Optional[Identity] = None) -> None:
        self._session = Session(token=token, identity=identity)
        self.storage.set(self.settings.TOKEN_KEY, token)
        if identity is not None:
            self.storage.set(self.settings.USER_KEY, identity.model_dump_json())
        else:
            self.storage.remove(self.settings.USER_KEY)

    def clear(self) -> None:
        self._session = Session()
        self.storage.remove(self.settings.TOKEN_KEY)
        self.storage.remove(self.settings.USER_KEY)
