from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Callable

from raidprog.domain.models.progress import CacheEntry, Cleared, EncounterResult
from raidprog.infrastructure.host_config import CachedClear, HostConfiguration


class EncounterStore(ABC):
    @abstractmethod
    def get(self, key: str) -> CacheEntry | None:
        raise NotImplementedError

    @abstractmethod
    def put(self, key: str, entry: CacheEntry) -> None:
        raise NotImplementedError

    @abstractmethod
    def remove(self, key: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def keys(self) -> list[str]:
        raise NotImplementedError

    def flush(self) -> None:
        return None


class InMemoryEncounterStore(EncounterStore):
    def __init__(self) -> None:
        self._entries: dict[str, CacheEntry] = {}

    def get(self, key: str) -> CacheEntry | None:
        return self._entries.get(key)

    def put(self, key: str, entry: CacheEntry) -> None:
        self._entries[key] = entry

    def remove(self, key: str) -> None:
        self._entries.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._entries.keys())


class ConfigClearStore(EncounterStore):
    """Cleared results kept in the host configuration document."""

    def __init__(self, config: HostConfiguration) -> None:
        self.config = config

    def get(self, key: str) -> CacheEntry | None:
        row = self.config.cleared_encounters.get(key)
        if row is None:
            return None
        return CacheEntry(
            result=Cleared(timestamp=row.clear_timestamp, completion_week=row.completion_week),
            produced_at=row.cached_at,
        )

    def put(self, key: str, entry: CacheEntry) -> None:
        if not isinstance(entry.result, Cleared):
            raise ValueError("Only cleared results are stored durably")
        self.config.cleared_encounters[key] = CachedClear(
            clear_timestamp=entry.result.timestamp,
            completion_week=entry.result.completion_week,
            cached_at=entry.produced_at,
        )

    def remove(self, key: str) -> None:
        self.config.cleared_encounters.pop(key, None)

    def keys(self) -> list[str]:
        return list(self.config.cleared_encounters.keys())

    def flush(self) -> None:
        self.config.save()


def _matches_filter(key: str, lodestone_id: int | None, encounter_slug: str | None) -> bool:
    if lodestone_id is not None and not key.startswith(f"{int(lodestone_id)}_"):
        return False
    if encounter_slug is not None and f"_{encounter_slug}_" not in key:
        return False
    return True


class TieredEncounterCache:
    """Clears never expire and are mirrored durably; other results live for ``expiry``."""

    def __init__(
        self,
        durable: EncounterStore,
        memory: EncounterStore | None = None,
        *,
        expiry: timedelta = timedelta(minutes=20),
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.durable = durable
        self.memory = memory or InMemoryEncounterStore()
        self.expiry = expiry
        self._clock = clock
        self._logger = logging.getLogger(__name__)

    def is_fresh(self, entry: CacheEntry) -> bool:
        return entry.is_cleared or self._clock() - entry.produced_at < self.expiry

    def get(self, key: str) -> CacheEntry | None:
        durable_entry = self.durable.get(key)
        if durable_entry is not None:
            self._logger.debug("Using persistent cached clear for %s", key)
            return durable_entry

        entry = self.memory.get(key)
        if entry is None:
            return None
        if self.is_fresh(entry):
            return entry
        self._logger.debug("Cache expired for %s, fetching fresh data", key)
        return None

    def get_stale(self, key: str) -> CacheEntry | None:
        return self.memory.get(key)

    def put(self, key: str, result: EncounterResult) -> CacheEntry:
        entry = CacheEntry(result=result, produced_at=self._clock())
        self.memory.put(key, entry)
        if entry.is_cleared:
            self.durable.put(key, entry)
            try:
                self.durable.flush()
            except OSError:
                self._logger.exception("Could not persist cleared result for %s", key)
            else:
                self._logger.info("Permanently cached clear for %s", key)
        return entry

    def evict_expired(self) -> int:
        expired: list[str] = []
        for key in self.memory.keys():
            entry = self.memory.get(key)
            if entry is not None and not self.is_fresh(entry):
                expired.append(key)
        for key in expired:
            self.memory.remove(key)
        if expired:
            self._logger.debug("Cleaned up %s expired cache entries", len(expired))
        return len(expired)

    def clear_durable(self, lodestone_id: int | None = None, encounter_slug: str | None = None) -> int:
        keys = [key for key in self.durable.keys() if _matches_filter(key, lodestone_id, encounter_slug)]
        for key in keys:
            self.durable.remove(key)
            entry = self.memory.get(key)
            if entry is not None and entry.is_cleared:
                self.memory.remove(key)
        try:
            self.durable.flush()
        except OSError:
            self._logger.exception("Could not persist cache clearing")
        else:
            self._logger.info("Cleared %s persistent cache entries", len(keys))
        return len(keys)
