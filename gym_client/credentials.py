from __future__ import annotations

import json
import logging
import threading
from typing import Any, Callable, Generic, TypeVar

from msal_extensions import (
    CrossPlatLock,
    FilePersistence,
    FilePersistenceWithDataProtection,
)
from msal_extensions.persistence import BasePersistence, PersistenceNotFound

from gym_client.errors import CredentialStoreError
from gym_client.models import CredentialPair, User

logger = logging.getLogger(__name__)

T = TypeVar("T")


def build_persistence(path: str) -> BasePersistence:
    try:
        return FilePersistenceWithDataProtection(path)
    except Exception:
        return FilePersistence(path)


class _PersistedSlot(Generic[T]):
    """One JSON value held in a single persistence file.

    Writes go through a process-local lock and the msal-extensions cross-process
    file lock, and the in-memory copy is swapped only after the write succeeded,
    so ``current()`` never exposes a half-written value.
    """

    def __init__(
        self,
        persistence: BasePersistence,
        encode: Callable[[T], dict[str, Any]],
        decode: Callable[[dict[str, Any]], T],
    ):
        self._persistence = persistence
        self._encode = encode
        self._decode = decode
        self._lock = threading.Lock()
        self._lock_path = f"{persistence.get_location()}.lockfile"
        self._current: T | None = None

    @property
    def location(self) -> str:
        return self._persistence.get_location()

    def current(self) -> T | None:
        return self._current

    def load(self) -> T | None:
        with self._lock:
            try:
                with CrossPlatLock(self._lock_path):
                    raw = self._persistence.load()
            except PersistenceNotFound:
                raw = ""
            except Exception:
                logger.warning("Could not read %s; treating it as empty", self.location, exc_info=True)
                raw = ""

            value = self._parse(raw)
            self._current = value
            return value

    def save(self, value: T) -> None:
        with self._lock:
            self._write(value)

    def save_if(self, predicate: Callable[[T | None], bool], value: T) -> bool:
        """Save ``value`` only while ``predicate`` holds for the current value."""
        with self._lock:
            if not predicate(self._current):
                return False
            self._write(value)
            return True

    def clear(self) -> None:
        with self._lock:
            self._erase()

    def clear_if(self, predicate: Callable[[T | None], bool]) -> bool:
        with self._lock:
            if not predicate(self._current):
                return False
            self._erase()
            return True

    def _write(self, value: T) -> None:
        content = json.dumps(self._encode(value))
        try:
            with CrossPlatLock(self._lock_path):
                self._persistence.save(content)
        except Exception as exc:
            raise CredentialStoreError(f"Could not write {self.location}: {exc}") from exc
        self._current = value

    def _erase(self) -> None:
        self._current = None
        try:
            with CrossPlatLock(self._lock_path):
                self._persistence.save("")
        except Exception as exc:
            raise CredentialStoreError(f"Could not clear {self.location}: {exc}") from exc

    def _parse(self, raw: str | None) -> T | None:
        if not raw or not raw.strip():
            return None
        try:
            data = json.loads(raw)
            if not isinstance(data, dict):
                raise ValueError("expected a JSON object")
            return self._decode(data)
        except Exception:
            logger.warning("Discarding malformed content in %s", self.location, exc_info=True)
            return None


class CredentialStore(_PersistedSlot[CredentialPair]):
    def __init__(self, persistence: BasePersistence):
        super().__init__(persistence, CredentialPair.to_dict, CredentialPair.from_payload)

    @classmethod
    def at_path(cls, path: str) -> "CredentialStore":
        return cls(build_persistence(path))

    def access_token(self) -> str | None:
        pair = self.current()
        return pair.access_token if pair else None


class UserCache(_PersistedSlot[User]):
    def __init__(self, persistence: BasePersistence):
        super().__init__(persistence, User.to_dict, User.from_payload)

    @classmethod
    def at_path(cls, path: str) -> "UserCache":
        return cls(build_persistence(path))
