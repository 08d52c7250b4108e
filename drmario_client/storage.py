import os
from typing import Optional, Protocol

from .config import settings


class KeyValueStorage(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class FileStorage:
    """
    Durable storage: one file per key under a directory.
    Survives process restarts, which is all the session needs.
    Values hold credentials, so files are owner-only (0600, dir 0700).
    """

    def __init__(self, directory: Optional[str] = None):
        self.directory = directory or settings.SESSION_DIR

    def _path(self, key: str) -> str:
        os.makedirs(self.directory, mode=0o700, exist_ok=True)
        return os.path.join(self.directory, key)

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not os.path.exists(path):
            return None
        with open(path, "r", encoding="utf-8") as f:
            return f.read()

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        tmp = f"{path}.tmp"
        fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(value)
        os.replace(tmp, path)

    def remove(self, key: str) -> None:
        path = self._path(key)
        if os.path.exists(path):
            os.remove(path)


class MemoryStorage:
    def __init__(self, initial: Optional[dict] = None):
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)
