"""
Cache Record Model

Envelope persisted by the cache store. Serialized with camelCase keys:
{"ownerId", "createdAt", "expiresAt", "payload"}.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CacheRecord(BaseModel):
    """Owner-scoped, optionally time-limited cache entry."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    owner_id: str = Field(..., min_length=1)
    created_at: datetime
    expires_at: Optional[datetime] = Field(
        None, description="None for namespaces without a lifetime"
    )
    payload: Any = None

    def is_expired(self, now: datetime) -> bool:
        """Expired once ``now`` reaches ``expires_at``."""
        return self.expires_at is not None and now >= self.expires_at
