"""
Durable key-value stores

A persistent, origin-scoped string -> string store. The cache store and the
session service sit on top of it; nothing else talks to storage directly.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from farmdata.core.database import get_session_factory
from farmdata.core.exceptions import StorageError, StorageQuotaExceeded
from farmdata.models.kv_entry import KeyValueEntry

logger = logging.getLogger(__name__)


class KeyValueStore:
    """Interface shared by the durable store implementations"""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove(self, key: str) -> None:
        raise NotImplementedError

    def keys(self, prefix: str = "") -> List[str]:
        raise NotImplementedError


class MemoryKeyValueStore(KeyValueStore):
    """In-process store, optionally capped at ``max_bytes`` of stored text"""

    def __init__(self, max_bytes: Optional[int] = None):
        self._data: Dict[str, str] = {}
        self.max_bytes = max_bytes

    def _size_with(self, key: str, value: str) -> int:
        size = len(key) + len(value)
        for existing_key, existing_value in self._data.items():
            if existing_key == key:
                continue
            size += len(existing_key) + len(existing_value)
        return size

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if self.max_bytes is not None and self._size_with(key, value) > self.max_bytes:
            raise StorageQuotaExceeded(f"Writing '{key}' would exceed {self.max_bytes} bytes")
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self, prefix: str = "") -> List[str]:
        return [key for key in self._data if key.startswith(prefix)]

    def __len__(self) -> int:
        return len(self._data)


class SqlKeyValueStore(KeyValueStore):
    """SQLAlchemy-backed store; one namespace per origin"""

    def __init__(self, database_url: str, namespace: str = "farmreact"):
        self.database_url = database_url
        self.namespace = namespace
        self._session_factory = get_session_factory(database_url)

    def get(self, key: str) -> Optional[str]:
        try:
            with self._session_factory() as session:
                entry = session.get(KeyValueEntry, (self.namespace, key))
                return entry.value if entry else None
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read '{key}': {e}") from e

    def set(self, key: str, value: str) -> None:
        try:
            with self._session_factory() as session:
                entry = session.get(KeyValueEntry, (self.namespace, key))
                if entry is None:
                    session.add(KeyValueEntry(namespace=self.namespace, key=key, value=value))
                else:
                    entry.value = value
                    entry.updated_at = datetime.now(timezone.utc)
                session.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to write '{key}': {e}") from e

    def remove(self, key: str) -> None:
        try:
            with self._session_factory() as session:
                session.execute(
                    delete(KeyValueEntry).where(
                        KeyValueEntry.namespace == self.namespace,
                        KeyValueEntry.key == key,
                    )
                )
                session.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to remove '{key}': {e}") from e

    def keys(self, prefix: str = "") -> List[str]:
        stmt = select(KeyValueEntry.key).where(KeyValueEntry.namespace == self.namespace)
        try:
            with self._session_factory() as session:
                all_keys = session.execute(stmt).scalars().all()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list keys: {e}") from e
        # LIKE would treat '_' in keys as a wildcard
        return [key for key in all_keys if key.startswith(prefix)]
