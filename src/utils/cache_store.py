"""
Cache Store Module

Namespaced, owner-scoped, time-limited persistence over a synchronous
key/value storage backend. Used by the generation coordinator for autosave
and session restore.

The storage key of a namespace does not include the owner id: only one
owner's record exists per namespace per backend, and a second owner's
successful put displaces the first owner's record.

Example Usage:
    from src.utils.cache_store import CacheStore, Namespace
    from src.utils.storage_backend import FileStorage

    store = CacheStore(FileStorage("data/storage"))

    store.put(Namespace.CONTENT, owner_id="user-1", payload={"recommendations": [...]})
    payload = store.get(Namespace.CONTENT, owner_id="user-1")  # None if absent

    # Logout / session teardown
    store.clear_all()
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Optional

import structlog
from pydantic import ValidationError

from src.models.cache_record import CacheRecord
from src.models.config import CacheConfig
from src.utils.storage_backend import CorruptValueError, KeyValueStorage, StorageError

logger = structlog.get_logger(__name__)

Clock = Callable[[], datetime]


class Namespace(str, Enum):
    """Fixed storage keys managed by the cache store."""

    ANALYSIS = "user_career_analysis"
    CONTENT = "ai_generated_content"
    FORM_DATA = "user_form_data"
    PREFERENCES = "user_preferences"


def utc_now() -> datetime:
    """Default clock."""
    return datetime.now(timezone.utc)


class CacheStore:
    """Owner-validated cache with lazy expiry (no background sweep)."""

    def __init__(
        self,
        storage: KeyValueStorage,
        cache_config: Optional[CacheConfig] = None,
        clock: Clock = utc_now,
    ):
        """
        Initialize CacheStore.

        Args:
            storage: Underlying key/value storage primitive
            cache_config: Namespace lifetimes (defaults: 7 days analysis, 3 days content)
            clock: Returns the current timezone-aware time
        """
        self.storage = storage
        self.clock = clock
        config = cache_config or CacheConfig()
        self.ttls: dict[Namespace, Optional[timedelta]] = {
            Namespace.ANALYSIS: timedelta(days=config.analysis_ttl_days),
            Namespace.CONTENT: timedelta(days=config.content_ttl_days),
            Namespace.FORM_DATA: None,
            Namespace.PREFERENCES: None,
        }

    def ttl(self, namespace: Namespace) -> Optional[timedelta]:
        """Lifetime of records in ``namespace`` (None = never expires)."""
        return self.ttls[Namespace(namespace)]

    def put(self, namespace: Namespace, owner_id: str, payload: Any) -> bool:
        """
        Wrap and persist a payload for an owner.

        Args:
            namespace: Target namespace
            owner_id: Owner of the record
            payload: JSON-serializable payload

        Returns:
            True on success, False if the storage primitive failed (never raises
            for storage or serialization failures)
        """
        namespace = Namespace(namespace)
        now = self.clock()
        ttl = self.ttl(namespace)
        try:
            record = CacheRecord(
                owner_id=owner_id,
                created_at=now,
                expires_at=now + ttl if ttl is not None else None,
                payload=payload,
            )
            serialized = record.model_dump_json(by_alias=True)
            self.storage.set_item(namespace.value, serialized)
        except (StorageError, ValueError, TypeError) as e:
            logger.warning(
                "cache_put_failed",
                namespace=namespace.value,
                owner_id=owner_id,
                error=str(e),
            )
            return False

        logger.debug(
            "cache_put",
            namespace=namespace.value,
            owner_id=owner_id,
            size=len(serialized),
        )
        return True

    def _read_record(self, namespace: Namespace) -> Optional[CacheRecord]:
        raw = self.storage.get_item(namespace.value)
        if raw is None:
            return None
        return CacheRecord.model_validate_json(raw)

    def get(self, namespace: Namespace, owner_id: str) -> Optional[Any]:
        """
        Read a payload if it belongs to ``owner_id`` and has not expired.

        A record owned by someone else, an expired record, or an unreadable
        record is purged and reported as absent.

        Args:
            namespace: Namespace to read
            owner_id: Current caller

        Returns:
            The stored payload, or None when absent
        """
        namespace = Namespace(namespace)

        try:
            record = self._read_record(namespace)
        except (CorruptValueError, ValidationError) as e:
            logger.warning(
                "cache_record_corrupt",
                namespace=namespace.value,
                error=str(e),
            )
            self.clear(namespace)
            return None
        except StorageError as e:
            logger.warning(
                "cache_get_failed", namespace=namespace.value, error=str(e)
            )
            return None

        if record is None:
            return None

        if record.owner_id != owner_id:
            logger.info(
                "cache_record_owner_mismatch",
                namespace=namespace.value,
            )
            self.clear(namespace)
            return None

        if record.is_expired(self.clock()):
            logger.info(
                "cache_record_expired",
                namespace=namespace.value,
                expires_at=record.expires_at.isoformat() if record.expires_at else None,
            )
            self.clear(namespace)
            return None

        return record.payload

    def clear(self, namespace: Namespace) -> None:
        """Remove the record stored under ``namespace``."""
        namespace = Namespace(namespace)
        try:
            self.storage.remove_item(namespace.value)
        except StorageError as e:
            logger.warning(
                "cache_clear_failed", namespace=namespace.value, error=str(e)
            )

    def clear_all(self) -> None:
        """Remove every namespace this store manages (logout / teardown)."""
        for namespace in Namespace:
            self.clear(namespace)
        logger.info("cache_cleared_all", namespaces=[ns.value for ns in Namespace])

    def storage_info(self) -> dict[str, dict[str, Any]]:
        """
        Describe what is currently stored, without ownership checks.

        Returns:
            Per-namespace dict with 'exists', 'size' (UTF-8 bytes) and
            'last_modified' (record createdAt as ISO string, or None)
        """
        info: dict[str, dict[str, Any]] = {}
        for namespace in Namespace:
            try:
                raw = self.storage.get_item(namespace.value)
            except StorageError:
                raw = None

            last_modified = None
            if raw is not None:
                try:
                    last_modified = CacheRecord.model_validate_json(
                        raw
                    ).created_at.isoformat()
                except ValidationError:
                    last_modified = None

            info[namespace.value] = {
                "exists": raw is not None,
                "size": len(raw.encode("utf-8")) if raw is not None else 0,
                "last_modified": last_modified,
            }
        return info

    def has_user_data(self, owner_id: str) -> dict[str, bool]:
        """
        Summarize which valid records exist for an owner.

        Reads go through ``get``, so stale or foreign records are purged.

        Returns:
            Dict with 'has_analysis', 'has_form_data', 'has_ai_content' and
            'can_skip_intake' (analysis and form data both present)
        """
        has_analysis = self.get(Namespace.ANALYSIS, owner_id) is not None
        has_form_data = self.get(Namespace.FORM_DATA, owner_id) is not None
        has_ai_content = self.get(Namespace.CONTENT, owner_id) is not None

        return {
            "has_analysis": has_analysis,
            "has_form_data": has_form_data,
            "has_ai_content": has_ai_content,
            "can_skip_intake": has_analysis and has_form_data,
        }
