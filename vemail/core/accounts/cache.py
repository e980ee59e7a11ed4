"""Local account cache.

Holds the ordered account list under a single namespaced key of a small
key-value store. Only metadata is ever written: ``Account`` has no credential
field, and the serialised records are rebuilt from the model on every write.

Usage Examples
--------------

    >>> cache = AccountCache(JsonFileStore(Path("~/.vemail/accounts.json")))
    >>> cache.write(accounts)
    >>> cache.read()
    [Account(...), ...]
"""

import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from pydantic import ValidationError

from vemail.core.models.account import Account
from vemail.utils.errors import CacheCorruptedError, StorageError, error_context
from vemail.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_NAMESPACE_KEY = "vemail_accounts"


## Key-Value Backends


class KeyValueStore(ABC):
    """String-to-string persistent store, one value per namespaced key."""

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None if the key is absent.

        Raises:
            CacheCorruptedError: If the underlying storage cannot be decoded.
        """
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Replace the value for ``key``; readers never observe a partial value."""
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass


class MemoryStore(KeyValueStore):
    """Process-local store, for tests and throwaway sessions."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    @property
    def name(self) -> str:
        return "memory"

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStore(KeyValueStore):
    """A JSON object on disk mapping keys to string values.

    Writes go to a temporary file in the same directory and are swapped in
    with ``os.replace``, so a crash mid-write leaves the previous file intact.
    """

    def __init__(self, path: Path):
        self.path = Path(path).expanduser()

    @property
    def name(self) -> str:
        return f"file:{self.path}"

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise CacheCorruptedError(
                f"Cache file is not valid JSON: {e}", details={"path": str(self.path)}
            ) from e
        except OSError as e:
            raise StorageError(
                f"Failed to read cache file: {e}", details={"path": str(self.path)}
            ) from e

        if not isinstance(data, dict):
            raise CacheCorruptedError(
                "Cache file does not hold a JSON object", details={"path": str(self.path)}
            )

        return data

    def _dump(self, data: Dict[str, str]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2, ensure_ascii=False)
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise

        except OSError as e:
            raise StorageError(
                f"Failed to write cache file: {e}", details={"path": str(self.path)}
            ) from e

    def _load_for_update(self) -> Dict[str, str]:
        try:
            return self._load()
        except CacheCorruptedError:
            logger.warning(f"Overwriting corrupted cache file {self.path}")
            return {}

    def get(self, key: str) -> Optional[str]:
        value = self._load().get(key)
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str) -> None:
        data = self._load_for_update()
        data[key] = value
        self._dump(data)

    def delete(self, key: str) -> None:
        data = self._load_for_update()
        if data.pop(key, None) is not None:
            self._dump(data)


## Account Cache


class AccountCache:
    """Ordered account list persisted under one namespaced key."""

    def __init__(self, store: KeyValueStore, key: str = DEFAULT_NAMESPACE_KEY):
        self.store = store
        self.key = key

    def read(self) -> List[Account]:
        """Return the cached accounts in order.

        Absent or corrupt data reads as an empty list; corruption is logged,
        never raised.
        """
        with error_context("Reading account cache", reraise=False) as ctx:
            raw = self.store.get(self.key)
            if raw is None:
                return []
            return self._decode(raw)

        logger.warning(
            "Account cache unreadable, treating as empty",
            extra={"backend": self.store.name, "cache_error": ctx.error},
        )
        return []

    def write(self, accounts: Sequence[Account]) -> None:
        """Persist the full list, replacing whatever was there.

        Raises:
            StorageError: If the backend cannot persist the list.
        """
        payload = json.dumps([account.to_record() for account in accounts])
        self.store.set(self.key, payload)
        logger.debug(f"Account cache written ({len(accounts)} accounts)")

    def clear(self) -> None:
        self.store.delete(self.key)

    def _decode(self, raw: str) -> List[Account]:
        try:
            records = json.loads(raw)
        except json.JSONDecodeError as e:
            raise CacheCorruptedError(f"Account list is not valid JSON: {e}") from e

        if not isinstance(records, list):
            raise CacheCorruptedError("Account list payload is not a JSON array")

        try:
            return [Account.model_validate(record) for record in records]
        except ValidationError as e:
            raise CacheCorruptedError(
                f"Account record failed validation: {e.error_count()} error(s)"
            ) from e
