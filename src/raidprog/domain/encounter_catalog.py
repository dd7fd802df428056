from __future__ import annotations

from dataclasses import dataclass


ULTIMATES = "ultimates"
RAIDS = "raids"


@dataclass(frozen=True)
class EncounterDescriptor:
    fflogs_id: int
    tomestone_id: int | None
    slug: str
    category: str
    expansion: str
    zone: str
    short_name: str = ""

    @property
    def is_ultimate(self) -> bool:
        return self.category == ULTIMATES

    @property
    def is_savage(self) -> bool:
        return self.category == RAIDS


def _ultimate(fflogs_id: int, tomestone_id: int, slug: str, expansion: str, short_name: str) -> EncounterDescriptor:
    return EncounterDescriptor(fflogs_id, tomestone_id, slug, ULTIMATES, expansion, ULTIMATES, short_name)


def _savage(fflogs_id: int, slug: str, expansion: str, zone: str, short_name: str) -> EncounterDescriptor:
    return EncounterDescriptor(fflogs_id, None, slug, RAIDS, expansion, zone, short_name)


# Only the current savage tier is mapped.
_ENCOUNTERS: tuple[EncounterDescriptor, ...] = (
    _ultimate(1079, 5651, "futures-rewritten-ultimate", "dawntrail", "FRU"),
    _ultimate(1077, 4652, "the-omega-protocol-ultimate", "endwalker", "TOP"),
    _ultimate(1068, 4652, "the-omega-protocol-ultimate", "endwalker", "TOP"),
    _ultimate(1076, 4651, "dragonsongs-reprise-ultimate", "endwalker", "DSR"),
    _ultimate(1065, 4651, "dragonsongs-reprise-ultimate", "endwalker", "DSR"),
    _ultimate(1075, 3651, "the-epic-of-alexander-ultimate", "shadowbringers", "TEA"),
    _ultimate(1062, 3651, "the-epic-of-alexander-ultimate", "shadowbringers", "TEA"),
    _ultimate(1050, 3651, "the-epic-of-alexander-ultimate", "shadowbringers", "TEA"),
    _ultimate(1074, 2652, "the-weapons-refrain-ultimate", "stormblood", "UWU"),
    _ultimate(1061, 2652, "the-weapons-refrain-ultimate", "stormblood", "UWU"),
    _ultimate(1048, 2652, "the-weapons-refrain-ultimate", "stormblood", "UWU"),
    _ultimate(1042, 2652, "the-weapons-refrain-ultimate", "stormblood", "UWU"),
    _ultimate(1073, 2651, "the-unending-coil-of-bahamut-ultimate", "stormblood", "UCOB"),
    _ultimate(1060, 2651, "the-unending-coil-of-bahamut-ultimate", "stormblood", "UCOB"),
    _ultimate(1047, 2651, "the-unending-coil-of-bahamut-ultimate", "stormblood", "UCOB"),
    _ultimate(1039, 2651, "the-unending-coil-of-bahamut-ultimate", "stormblood", "UCOB"),
    _savage(101, "vamp-fatale", "dawntrail", "aac-heavyweight-savage", "M9S"),
    _savage(102, "red-hot-deep-blue", "dawntrail", "aac-heavyweight-savage", "M10S"),
    _savage(103, "the-tyrant", "dawntrail", "aac-heavyweight-savage", "M11S"),
    _savage(104, "lindwurm", "dawntrail", "aac-heavyweight-savage", "M12S P1"),
    _savage(105, "lindwurm-ii", "dawntrail", "aac-heavyweight-savage", "M12S P2"),
)

ENCOUNTERS_BY_FFLOGS_ID: dict[int, EncounterDescriptor] = {
    descriptor.fflogs_id: descriptor for descriptor in _ENCOUNTERS
}


def find_encounter(fflogs_id: int) -> EncounterDescriptor | None:
    return ENCOUNTERS_BY_FFLOGS_ID.get(int(fflogs_id))


def find_by_short_name(name: str) -> EncounterDescriptor | None:
    """First catalog entry whose short name or slug matches, ignoring case."""
    wanted = str(name or "").strip().lower()
    if not wanted:
        return None
    for descriptor in _ENCOUNTERS:
        if descriptor.short_name.lower() == wanted or descriptor.slug == wanted:
            return descriptor
    return None


def has_support(fflogs_id: int) -> bool:
    return int(fflogs_id) in ENCOUNTERS_BY_FFLOGS_ID


def is_ultimate(fflogs_id: int) -> bool:
    descriptor = find_encounter(fflogs_id)
    return descriptor is not None and descriptor.is_ultimate


def is_savage(fflogs_id: int) -> bool:
    descriptor = find_encounter(fflogs_id)
    return descriptor is not None and descriptor.is_savage


def list_encounters() -> tuple[EncounterDescriptor, ...]:
    return _ENCOUNTERS
