from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from raidprog.domain.models.progress import (
    MAX_LOCKOUTS,
    Cleared,
    EncounterResult,
    InProgress,
    Lockout,
    NotStarted,
    Percent,
)
from raidprog.infrastructure.payload_schema import decode_activity_listing, decode_header_encounters


TIMESTAMP_FORMATS: tuple[str, ...] = ("%Y-%m-%d %H:%M:%S", "%Y-%m-%d %H:%M:%S.%f")

_logger = logging.getLogger(__name__)


def parse_timestamp(value: object) -> datetime | None:
    if value is None:
        return None
    text = str(value).strip()
    for fmt in TIMESTAMP_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def parse_activity_payload(payload: Any, encounter_key: str) -> EncounterResult:
    """Savage, extreme and activity-page ultimate results.

    Rows arrive in the server's order. The first row with a kill wins outright;
    otherwise rows carrying a best percentage become lockouts.
    """
    listing = decode_activity_listing(payload)
    if listing is None:
        _logger.debug("Activities disabled or not found for %s", encounter_key)
        return NotStarted()

    lockouts: list[Lockout] = []
    for row in listing.rows:
        if row.kills_count > 0:
            end_time = row.end_time if row.end_time is not None else row.activity_end_time
            _logger.info("Found clear for %s", encounter_key)
            return Cleared(timestamp=parse_timestamp(end_time))

        if row.best_percent is None or len(lockouts) >= MAX_LOCKOUTS:
            continue
        played_at = parse_timestamp(row.activity_end_time)
        lockout = Lockout(
            percent=Percent.from_raw(row.best_percent),
            date=played_at.date() if played_at is not None else None,
            job_id=row.job_id,
        )
        if not lockouts or lockouts[-1] != lockout:
            lockouts.append(lockout)

    if lockouts:
        _logger.info("Found prog for %s: %s", encounter_key, lockouts[0].percent)
        return InProgress(lockouts=tuple(lockouts))

    _logger.debug("No data found for %s", encounter_key)
    return NotStarted()


def parse_header_payload(payload: Any, ultimate_id: int) -> EncounterResult:
    header = decode_header_encounters(payload)
    if header is None:
        _logger.warning("No headerEncounters in character data, might be disabled")
        return NotStarted()

    for clear in header.clears:
        if clear.encounter_id != ultimate_id:
            continue
        if clear.has_achievement:
            _logger.info("Found clear for ultimate %s", ultimate_id)
            return Cleared(timestamp=parse_timestamp(clear.completed_at), completion_week=clear.completion_week)
        if clear.has_activity:
            _logger.info("Found clear (no achievement) for ultimate %s", ultimate_id)
            return Cleared()

    for target in header.progression:
        if target.encounter_id == ultimate_id and target.percent is not None:
            _logger.info("Found prog for ultimate %s: %s", ultimate_id, target.percent)
            return InProgress(lockouts=(Lockout(percent=Percent.from_raw(target.percent)),))

    _logger.debug("No data found for ultimate %s", ultimate_id)
    return NotStarted()
