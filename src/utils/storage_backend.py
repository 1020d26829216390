"""
Storage Backend Module

Synchronous key/value storage primitives underneath the cache store.
Both backends raise StorageError on failure; callers decide whether to
swallow it.
"""

import os
from pathlib import Path
from typing import Optional, Protocol

import structlog

logger = structlog.get_logger(__name__)


class StorageError(OSError):
    """Raised when the underlying storage primitive fails (quota, I/O, disabled)."""

    pass


class CorruptValueError(StorageError):
    """Raised when a stored value exists but cannot be decoded as text."""

    pass


class KeyValueStorage(Protocol):
    """Minimal string key/value store interface."""

    def get_item(self, key: str) -> Optional[str]: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...

    def keys(self) -> list[str]: ...


class InMemoryStorage:
    """Dict-backed storage with an optional byte quota.

    Data lives for the lifetime of the instance only.
    """

    def __init__(self, quota_bytes: Optional[int] = None):
        """
        Initialize InMemoryStorage.

        Args:
            quota_bytes: Maximum total size of stored values in UTF-8 bytes
                (None = unlimited)
        """
        self._items: dict[str, str] = {}
        self.quota_bytes = quota_bytes

    def _used_bytes(self, excluding: Optional[str] = None) -> int:
        return sum(
            len(value.encode("utf-8"))
            for key, value in self._items.items()
            if key != excluding
        )

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        if self.quota_bytes is not None:
            needed = self._used_bytes(excluding=key) + len(value.encode("utf-8"))
            if needed > self.quota_bytes:
                raise StorageError(
                    f"Storage quota exceeded writing {key}: "
                    f"{needed} > {self.quota_bytes} bytes"
                )
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._items.keys())


class FileStorage:
    """One ``<key>.json`` file per key under a directory.

    Records survive process restarts.
    """

    def __init__(self, directory: str | Path = "data/storage"):
        """
        Initialize FileStorage.

        Args:
            directory: Directory for storage files (created if missing)

        Raises:
            StorageError: If the directory cannot be created
        """
        self.directory = Path(directory)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(
                f"Cannot create storage directory {self.directory}: {e}"
            ) from e
        logger.debug("file_storage_initialized", directory=str(self.directory))

    def _path(self, key: str) -> Path:
        if not key or os.sep in key or key.startswith("."):
            raise StorageError(f"Invalid storage key: {key!r}")
        return self.directory / f"{key}.json"

    def get_item(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise CorruptValueError(f"Undecodable content in {path}: {e}") from e
        except OSError as e:
            raise StorageError(f"Failed to read {path}: {e}") from e

    def set_item(self, key: str, value: str) -> None:
        path = self._path(key)
        tmp_path = path.with_suffix(".json.tmp")
        try:
            tmp_path.write_text(value, encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as e:
            raise StorageError(f"Failed to write {path}: {e}") from e

    def remove_item(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to remove {path}: {e}") from e

    def keys(self) -> list[str]:
        return sorted(p.stem for p in self.directory.glob("*.json"))
