from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable

import httpx

from raidprog.application.services.progress_parser import parse_activity_payload, parse_header_payload
from raidprog.domain.encounter_catalog import RAIDS, ULTIMATES, EncounterDescriptor, find_encounter
from raidprog.domain.errors import LookupFailure
from raidprog.domain.models.progress import CharacterIdentity, EncounterResult, encounter_cache_key
from raidprog.infrastructure.encounter_cache import EncounterStore, InMemoryEncounterStore, TieredEncounterCache
from raidprog.infrastructure.identity_resolver import CharacterIdentityResolver
from raidprog.infrastructure.partial_fetcher import PartialDataFetcher
from raidprog.infrastructure.protocol_version import ProtocolVersionTracker


ULTIMATE_SOURCES = ("activity", "header")


class ProgressResolutionClient:
    """Looks up a character's raid progress on tomestone.gg.

    Network problems, protocol drift and malformed payloads never raise out of
    ``fetch_encounter_result``; they come back as ``None`` ("no data").
    """

    BASE_URL = "https://tomestone.gg"

    def __init__(
        self,
        base_url: str = BASE_URL,
        timeout: float = 12.0,
        retries: int = 3,
        backoff_seconds: float = 1.0,
        expiry: timedelta = timedelta(minutes=20),
        durable_store: EncounterStore | None = None,
        ultimate_source: str = "activity",
        allow_stale_fallback: bool = False,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], datetime] = datetime.now,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if ultimate_source not in ULTIMATE_SOURCES:
            allowed = ", ".join(ULTIMATE_SOURCES)
            raise ValueError(f"Unsupported ultimate source '{ultimate_source}'. Allowed values: {allowed}")
        self.client = http_client or httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            follow_redirects=False,
        )
        self.ultimate_source = ultimate_source
        self.allow_stale_fallback = allow_stale_fallback
        self.version_tracker = ProtocolVersionTracker(self.client)
        self.identities = CharacterIdentityResolver(self.client, expiry=expiry, clock=clock)
        self.fetcher = PartialDataFetcher(
            self.client,
            self.version_tracker,
            retries=retries,
            backoff_seconds=backoff_seconds,
            sleep=sleep,
        )
        self.cache = TieredEncounterCache(
            durable_store if durable_store is not None else InMemoryEncounterStore(),
            expiry=expiry,
            clock=clock,
        )
        self._logger = logging.getLogger(__name__)

    async def resolve_character(self, first_name: str, last_name: str, world: str) -> CharacterIdentity | LookupFailure:
        try:
            return await self.identities.resolve(first_name, last_name, world)
        except Exception:
            self._logger.exception("Error fetching lodestone id for %s %s@%s", first_name, last_name, world)
            return LookupFailure.NETWORK_ERROR

    async def fetch_encounter_result_by_fflogs_id(self, lodestone_id: int, fflogs_id: int) -> EncounterResult | None:
        descriptor = find_encounter(fflogs_id)
        if descriptor is None:
            self._logger.debug("Encounter %s has no mapping", fflogs_id)
            return None
        return await self.fetch_encounter_result(lodestone_id, descriptor)

    async def fetch_encounter_result(self, lodestone_id: int, encounter: EncounterDescriptor) -> EncounterResult | None:
        key = encounter_cache_key(lodestone_id, encounter.slug, encounter.category)
        cached = self.cache.get(key)
        if cached is not None:
            return cached.result

        slug = self.identities.slug_for(lodestone_id)
        if slug is None:
            # TODO: decide with the host whether a stale in-progress entry should ever be shown here.
            stale = self.cache.get_stale(key)
            if stale is not None and self.allow_stale_fallback:
                self._logger.warning("No slug for %s, serving stale result for %s", lodestone_id, encounter.slug)
                return stale.result
            self._logger.warning("No character slug cached for lodestone id %s, cannot fetch fresh data", lodestone_id)
            return None

        try:
            result = await self._fetch(lodestone_id, slug, encounter)
        except Exception:
            self._logger.exception("Error fetching progress data for %s", encounter.slug)
            return None

        if result is not None:
            self.cache.put(key, result)
        return result

    async def _fetch(self, lodestone_id: int, slug: str, encounter: EncounterDescriptor) -> EncounterResult | None:
        if encounter.category == ULTIMATES and encounter.tomestone_id is not None:
            if self.ultimate_source == "header":
                return await self._fetch_ultimate_header(lodestone_id, slug, encounter.tomestone_id)
            return await self._fetch_activity(lodestone_id, slug, encounter, zone=ULTIMATES)

        if encounter.category == RAIDS:
            return await self._fetch_activity(lodestone_id, slug, encounter, zone=encounter.zone)

        self._logger.debug("Category %s is not supported", encounter.category)
        return None

    async def _fetch_activity(
        self,
        lodestone_id: int,
        slug: str,
        encounter: EncounterDescriptor,
        *,
        zone: str,
    ) -> EncounterResult | None:
        payload = await self.fetcher.fetch_partial(
            f"/character/{lodestone_id}/{slug}/activity",
            "characterPageContent",
            params={
                "category": encounter.category,
                "encounter": encounter.slug,
                "expansion": encounter.expansion,
                "league": "all",
                "sortType": "firstKillTime",
                "zone": zone,
            },
        )
        if payload is None:
            return None
        return parse_activity_payload(payload, encounter.slug)

    async def _fetch_ultimate_header(self, lodestone_id: int, slug: str, ultimate_id: int) -> EncounterResult | None:
        payload = await self.fetcher.fetch_partial(f"/character/{lodestone_id}/{slug}", "headerEncounters")
        if payload is None:
            return None
        return parse_header_payload(payload, ultimate_id)

    def evict_expired(self) -> int:
        return self.cache.evict_expired()

    def clear_persistent_cache(self, lodestone_id: int | None = None, encounter_slug: str | None = None) -> int:
        return self.cache.clear_durable(lodestone_id=lodestone_id, encounter_slug=encounter_slug)

    async def aclose(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> "ProgressResolutionClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
