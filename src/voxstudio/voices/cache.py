"""Bounded voice metadata cache."""

import json
import logging
from collections import OrderedDict
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

from voxstudio.core.config import settings

logger = logging.getLogger(__name__)


def entry_size(key: str, value: Any) -> int:
    """Accounted size of an entry: key plus its JSON encoding."""
    return len(key) + len(json.dumps(value, default=str))


class BoundedCache:
    """Key-value cache with fixed capacity and byte quota.

    When either limit would be exceeded, the least recently added entries
    are evicted first. Replacing a key counts as adding it again.
    """

    def __init__(self, capacity: int, quota_bytes: int):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        if quota_bytes < 1:
            raise ValueError("quota_bytes must be at least 1")
        self.capacity = capacity
        self.quota_bytes = quota_bytes
        self._entries: "OrderedDict[str, Any]" = OrderedDict()
        self._sizes: Dict[str, int] = {}
        self._used = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def keys(self) -> List[str]:
        """Keys in insertion order, oldest first."""
        return list(self._entries)

    def values(self) -> List[Any]:
        return list(self._entries.values())

    def get(self, key: str, default: Any = None) -> Any:
        return self._entries.get(key, default)

    def set(self, key: str, value: Any) -> List[str]:
        """Store a value, evicting the oldest entries as needed.

        Returns:
            Keys evicted to make room

        Raises:
            ValueError: If the entry alone exceeds the quota
        """
        size = entry_size(key, value)
        if size > self.quota_bytes:
            raise ValueError(f"Entry of {size} bytes exceeds cache quota of {self.quota_bytes} bytes")

        self.evict(key)

        evicted = []
        while self._entries and (
            len(self._entries) >= self.capacity or self._used + size > self.quota_bytes
        ):
            oldest = next(iter(self._entries))
            self.evict(oldest)
            evicted.append(oldest)

        self._entries[key] = value
        self._sizes[key] = size
        self._used += size

        if evicted:
            logger.info("Cache entries evicted", extra={"evicted": evicted, "used_bytes": self._used})
        return evicted

    def evict(self, key: str) -> bool:
        """Remove an entry. Returns False if it was not present."""
        if key not in self._entries:
            return False
        del self._entries[key]
        self._used -= self._sizes.pop(key)
        return True

    def clear(self) -> None:
        self._entries.clear()
        self._sizes.clear()
        self._used = 0

    def usage(self) -> Dict[str, float]:
        """Bytes used, bytes available and percentage of the quota in use."""
        return {
            "used": self._used,
            "available": self.quota_bytes,
            "percentage": (self._used / self.quota_bytes) * 100,
        }


@dataclass
class Voice:
    """Voice metadata shown in the review stages."""

    title: str
    type: str = "custom"  # "base" or "custom"
    description: str = ""
    tags: List[str] = field(default_factory=list)
    audio_url: Optional[str] = None
    project_id: Optional[str] = None
    stage_id: Optional[str] = None
    is_ai_voice: bool = False
    id: str = field(default_factory=lambda: uuid4().hex)
    upload_date: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


class VoiceCatalog:
    """Voice metadata kept in a bounded cache."""

    def __init__(self, cache: BoundedCache):
        self.cache = cache

    def add_voice(self, voice: Voice) -> Voice:
        self.cache.set(voice.id, asdict(voice))
        return voice

    def delete_voice(self, voice_id: str) -> bool:
        return self.cache.evict(voice_id)

    def get_voice(self, voice_id: str) -> Optional[Voice]:
        data = self.cache.get(voice_id)
        return Voice(**data) if data else None

    def all_voices(self) -> List[Voice]:
        return [Voice(**data) for data in self.cache.values()]

    def voices_for_project(self, project_id: str) -> List[Voice]:
        return [v for v in self.all_voices() if v.project_id == project_id and not v.is_ai_voice]

    def ai_voices_for_stage(self, project_id: str, stage_id: str) -> List[Voice]:
        return [
            v for v in self.all_voices()
            if v.project_id == project_id and v.is_ai_voice and v.stage_id == stage_id
        ]

    def base_voices(self) -> List[Voice]:
        return [v for v in self.all_voices() if v.type == "base"]


# Singleton instance
voice_catalog = VoiceCatalog(BoundedCache(settings.VOICE_CACHE_CAPACITY, settings.VOICE_CACHE_QUOTA_BYTES))
