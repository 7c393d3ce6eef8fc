"""
Time-boxed cache of the live clinic list.

The cache sits in front of the acquisition pipeline. A fresh entry is
returned as-is; a stale or missing entry triggers a live fetch. When the
live fetch fails, any entry (fresh or stale) is served instead of the
error. Only with no entry at all does the failure reach the caller.
"""
from __future__ import annotations

import json
import logging
import os
import time
from typing import Awaitable, Callable, Dict, List, Optional, Protocol

from models import CacheEntry, Clinic, ResolvedClinicSet, Source, SourceStatus
from normalizer import normalize_records

logger = logging.getLogger(__name__)

CACHE_KEY = "vetdir.clinics"
DEFAULT_TTL_MS = 24 * 60 * 60 * 1000


def now_ms() -> int:
    return int(time.time() * 1000)


class KeyValueStorage(Protocol):
    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...


class MemoryStorage:
    """Process-local storage, mainly for tests and single-run scripts."""

    def __init__(self):
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value


class JsonFileStorage:
    """All keys in one JSON object on disk, rewritten on every set."""

    def __init__(self, path: str):
        self.path = path

    def _load(self) -> Dict[str, str]:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return data if isinstance(data, dict) else {}

    def get(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f)
        os.replace(tmp_path, self.path)


class CacheManager:
    def __init__(self, storage: KeyValueStorage, ttl_ms: int = DEFAULT_TTL_MS, key: str = CACHE_KEY):
        self.storage = storage
        self.ttl_ms = ttl_ms
        self.key = key

    def read(self) -> Optional[CacheEntry]:
        """Return the stored entry, or None. Storage or decode errors count as absent."""
        try:
            raw = self.storage.get(self.key)
            if raw is None:
                return None
            data = json.loads(raw)
            payload = normalize_records(data["payload"], "cache")
            return CacheEntry(payload=payload, fetchedAtEpochMs=int(data["fetchedAtEpochMs"]))
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning("Ignoring unreadable clinic cache: %s", e)
            return None

    def is_fresh(self, entry: CacheEntry, at_ms: int) -> bool:
        return entry.age_ms(at_ms) < self.ttl_ms

    def write(self, clinics: List[Clinic], at_ms: int) -> bool:
        """Persist clinics. Returns False (after logging) if storage refuses."""
        value = json.dumps({
            "payload": [c.to_dict() for c in clinics],
            "fetchedAtEpochMs": at_ms,
        })
        try:
            self.storage.set(self.key, value)
        except (OSError, TypeError, ValueError) as e:
            logger.error("Failed to persist clinic cache: %s", e)
            return False
        return True

    async def resolve(
        self,
        fetch_live: Callable[[], Awaitable[List[Clinic]]],
        clock: Callable[[], int] = now_ms,
    ) -> ResolvedClinicSet:
        """
        Run the cache state machine around a live fetch.

        Raises:
            Whatever fetch_live raised, when no cache entry exists
        """
        entry = self.read()
        current = clock()
        if entry is not None and self.is_fresh(entry, current):
            logger.info("Using cached clinic list (%d clinics)", len(entry.payload))
            return ResolvedClinicSet(
                clinics=entry.payload,
                source=Source.CACHE,
                primary_status=SourceStatus.SKIPPED,
            )

        try:
            clinics = await fetch_live()
        except Exception as e:
            if entry is None:
                raise
            age_hours = entry.age_ms(current) / 3_600_000
            logger.warning(
                "Live clinic fetch failed (%s); serving cached list from %.1f hours ago",
                e, age_hours,
            )
            return ResolvedClinicSet(
                clinics=entry.payload,
                source=Source.CACHE,
                primary_status=SourceStatus.ERROR,
            )

        self.write(clinics, clock())
        return ResolvedClinicSet(clinics=clinics, source=Source.PRIMARY, primary_status=SourceStatus.OK)
