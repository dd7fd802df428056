"""Typed view of the partial-page payloads.

Every nested section the site may omit decodes to ``None`` (or an empty tuple)
instead of raising; only values of the wrong type raise ``PayloadParseError``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from raidprog.domain.errors import PayloadParseError


@dataclass(frozen=True)
class ActivityRow:
    kills_count: int
    best_percent: object | None
    end_time: object | None
    activity_end_time: object | None
    job_id: int


@dataclass(frozen=True)
class ActivityListing:
    rows: tuple[ActivityRow, ...]


@dataclass(frozen=True)
class UltimateClearRow:
    encounter_id: int
    completed_at: object | None
    completion_week: str | None
    has_achievement: bool
    has_activity: bool


@dataclass(frozen=True)
class UltimateProgressRow:
    encounter_id: int
    percent: object | None


@dataclass(frozen=True)
class HeaderEncounters:
    clears: tuple[UltimateClearRow, ...]
    progression: tuple[UltimateProgressRow, ...]


def _section(node: Any, *path: str) -> Any:
    for name in path:
        if node is None:
            return None
        if not isinstance(node, Mapping):
            raise PayloadParseError(f"Expected an object at '{name}', got {type(node).__name__}")
        node = node.get(name)
    return node


def _as_int(value: Any, *, field: str, default: int = 0) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        raise PayloadParseError(f"Field '{field}' is a boolean")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise PayloadParseError(f"Field '{field}' is not an integer: {value!r}") from exc


def _as_list(value: Any, *, field: str) -> list[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise PayloadParseError(f"Field '{field}' is not a list")
    return value


def _as_percent(value: Any) -> object | None:
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _decode_activity_row(raw: Any) -> ActivityRow | None:
    if not isinstance(raw, Mapping):
        return None
    activity = raw.get("activity")
    if not isinstance(activity, Mapping):
        return None
    job = activity.get("displayCharacterJobOrSpec")
    job_id = _as_int(job.get("id"), field="displayCharacterJobOrSpec.id") if isinstance(job, Mapping) else 0
    return ActivityRow(
        kills_count=_as_int(activity.get("killsCount"), field="killsCount"),
        best_percent=_as_percent(activity.get("bestPercent")),
        end_time=raw.get("endTime"),
        activity_end_time=activity.get("endTime"),
        job_id=max(0, job_id),
    )


def decode_activity_listing(payload: Any) -> ActivityListing | None:
    """None when the character page carries no activity listing at all."""
    outer = _section(payload, "props", "characterPageContent", "activities", "activities")
    if outer is None:
        return None
    data = _section(outer, "activities", "paginator", "data")
    if data is None:
        return None
    rows = (_decode_activity_row(raw) for raw in _as_list(data, field="paginator.data"))
    return ActivityListing(rows=tuple(row for row in rows if row is not None))


def _decode_clear_row(raw: Any) -> UltimateClearRow | None:
    if not isinstance(raw, Mapping) or raw.get("id") is None:
        return None
    achievement = raw.get("achievement")
    has_achievement = isinstance(achievement, Mapping)
    week = achievement.get("completionWeek") if has_achievement else None
    return UltimateClearRow(
        encounter_id=_as_int(raw.get("id"), field="ultimate.id"),
        completed_at=achievement.get("completedAt") if has_achievement else None,
        completion_week=str(week) if week is not None else None,
        has_achievement=has_achievement,
        has_activity=raw.get("activity") is not None,
    )


def _group_entries(group: Any) -> Iterable[Any]:
    if isinstance(group, Mapping):
        return group.values()
    if isinstance(group, list):
        return group
    return ()


def _decode_progress_row(raw: Any) -> UltimateProgressRow | None:
    encounter_id = _section(raw, "encounter", "id") if isinstance(raw, Mapping) else None
    if encounter_id is None:
        return None
    return UltimateProgressRow(
        encounter_id=_as_int(encounter_id, field="encounter.id"),
        percent=_as_percent(raw.get("percent")),
    )


def decode_header_encounters(payload: Any) -> HeaderEncounters | None:
    header = _section(payload, "props", "headerEncounters")
    if header is None:
        return None

    clears = (
        _decode_clear_row(raw)
        for raw in _as_list(_section(header, "latestExpansion", "ultimate"), field="latestExpansion.ultimate")
    )

    targets = header.get("allUltimateProgressionTargets")
    groups = targets.values() if isinstance(targets, Mapping) else _as_list(targets, field="allUltimateProgressionTargets")
    progression = (_decode_progress_row(raw) for group in groups for raw in _group_entries(group))

    return HeaderEncounters(
        clears=tuple(row for row in clears if row is not None),
        progression=tuple(row for row in progression if row is not None),
    )
