from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Union


MAX_LOCKOUTS = 5

_PERCENT_RE = re.compile(r"^(.*?)\s*(-?\d+(?:\.\d+)?)\s*%$")


@dataclass(frozen=True)
class CharacterIdentity:
    lodestone_id: int
    slug: str

    def __post_init__(self) -> None:
        if int(self.lodestone_id) <= 0:
            raise ValueError("Lodestone id must be positive")
        if not str(self.slug).strip():
            raise ValueError("Character slug is required")


@dataclass(frozen=True)
class Percent:
    value: float | None
    label: str

    @classmethod
    def from_raw(cls, raw: object) -> "Percent":
        """Normalize 12.5, "12.5", "12.5%" and phase-prefixed "P5 12.5%" alike."""
        if isinstance(raw, bool):
            raise ValueError(f"Unsupported percent value: {raw!r}")
        text = str(raw if raw is not None else "").strip()
        if not text:
            raise ValueError("Percent value is empty")
        try:
            value = round(float(text), 2)
        except ValueError:
            pass
        else:
            return cls(value=value, label=f"{value:g}%")

        match = _PERCENT_RE.match(text)
        if match is None:
            return cls(value=None, label=text)
        value = round(float(match.group(2)), 2)
        prefix = match.group(1).strip()
        label = f"{prefix} {value:g}%" if prefix else f"{value:g}%"
        return cls(value=value, label=label)

    def __str__(self) -> str:
        return self.label


@dataclass(frozen=True)
class Lockout:
    percent: Percent
    date: date | None = None
    job_id: int = 0


@dataclass(frozen=True)
class Cleared:
    timestamp: datetime | None = None
    completion_week: str | None = None

    @property
    def has_info(self) -> bool:
        return self.timestamp is not None


@dataclass(frozen=True)
class InProgress:
    lockouts: tuple[Lockout, ...]

    def __post_init__(self) -> None:
        if not self.lockouts:
            raise ValueError("In-progress result needs at least one lockout")
        if len(self.lockouts) > MAX_LOCKOUTS:
            raise ValueError(f"In-progress result holds at most {MAX_LOCKOUTS} lockouts")

    @property
    def best(self) -> Lockout:
        return self.lockouts[0]


@dataclass(frozen=True)
class NotStarted:
    pass


EncounterResult = Union[Cleared, InProgress, NotStarted]


@dataclass(frozen=True)
class CacheEntry:
    result: EncounterResult
    produced_at: datetime

    @property
    def is_cleared(self) -> bool:
        return isinstance(self.result, Cleared)


def encounter_cache_key(lodestone_id: int, encounter_slug: str, category: str) -> str:
    return f"{int(lodestone_id)}_{encounter_slug}_{category}"
