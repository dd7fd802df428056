from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable


CONFIG_VERSION = 1
MAX_HISTORY_ENTRIES = 50

_logger = logging.getLogger(__name__)


@dataclass
class CachedClear:
    clear_timestamp: datetime | None
    completion_week: str | None
    cached_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "clear_timestamp": self.clear_timestamp.isoformat() if self.clear_timestamp else None,
            "completion_week": self.completion_week,
            "cached_at": self.cached_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "CachedClear":
        raw_clear = payload.get("clear_timestamp")
        week = payload.get("completion_week")
        return cls(
            clear_timestamp=datetime.fromisoformat(raw_clear) if raw_clear else None,
            completion_week=str(week) if week is not None else None,
            cached_at=datetime.fromisoformat(str(payload["cached_at"])),
        )


@dataclass
class HistoryEntry:
    first_name: str
    last_name: str
    world: str
    last_seen: datetime

    def matches(self, first_name: str, last_name: str, world: str) -> bool:
        return (
            self.first_name.lower() == first_name.lower()
            and self.last_name.lower() == last_name.lower()
            and self.world.lower() == world.lower()
        )


@dataclass
class HostConfiguration:
    """JSON document the durable clear cache and lookup history live in."""

    path: Path | None = None
    cleared_encounters: dict[str, CachedClear] = field(default_factory=dict)
    history: list[HistoryEntry] = field(default_factory=list)

    @classmethod
    def load(cls, path: str | Path) -> "HostConfiguration":
        config_path = Path(path)
        config = cls(path=config_path)
        if not config_path.exists():
            return config
        try:
            payload = json.loads(config_path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            _logger.exception("Unreadable configuration at %s, starting empty", config_path)
            return config
        if not isinstance(payload, dict):
            return config

        for key, row in (payload.get("cleared_encounters") or {}).items():
            try:
                config.cleared_encounters[str(key)] = CachedClear.from_dict(row)
            except (KeyError, TypeError, ValueError):
                _logger.warning("Skipping malformed cached clear %s", key)

        for row in payload.get("history") or []:
            try:
                config.history.append(
                    HistoryEntry(
                        first_name=str(row["first_name"]),
                        last_name=str(row["last_name"]),
                        world=str(row["world"]),
                        last_seen=datetime.fromisoformat(str(row["last_seen"])),
                    )
                )
            except (KeyError, TypeError, ValueError):
                _logger.warning("Skipping malformed history entry")
        return config

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": CONFIG_VERSION,
            "cleared_encounters": {key: row.to_dict() for key, row in self.cleared_encounters.items()},
            "history": [
                {
                    "first_name": entry.first_name,
                    "last_name": entry.last_name,
                    "world": entry.world,
                    "last_seen": entry.last_seen.isoformat(),
                }
                for entry in self.history
            ],
        }

    def save(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(".tmp")
        tmp_path.write_text(json.dumps(self.to_dict(), ensure_ascii=False, indent=2), encoding="utf-8")
        os.replace(tmp_path, self.path)

    def record_lookup(
        self,
        first_name: str,
        last_name: str,
        world: str,
        *,
        clock: Callable[[], datetime] = datetime.now,
    ) -> HistoryEntry:
        self.history = [entry for entry in self.history if not entry.matches(first_name, last_name, world)]
        entry = HistoryEntry(first_name=first_name, last_name=last_name, world=world, last_seen=clock())
        self.history.insert(0, entry)
        del self.history[MAX_HISTORY_ENTRIES:]
        return entry
