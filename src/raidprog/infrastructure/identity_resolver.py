from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta
from typing import Callable
from urllib.parse import quote

import httpx

from raidprog.domain.errors import LookupFailure
from raidprog.domain.models.progress import CharacterIdentity


_CHARACTER_PATH_RE = re.compile(r"/character/(\d+)/([^/?#]+)")


def parse_character_location(location: str | None) -> CharacterIdentity | None:
    match = _CHARACTER_PATH_RE.search(str(location or ""))
    if match is None:
        return None
    try:
        return CharacterIdentity(lodestone_id=int(match.group(1)), slug=match.group(2))
    except ValueError:
        return None


def name_lookup_path(first_name: str, last_name: str, world: str) -> str:
    full_name = f"{first_name} {last_name}"
    return f"/character-name/{quote(world, safe='')}/{quote(full_name, safe='')}"


class CharacterIdentityResolver:
    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        expiry: timedelta = timedelta(minutes=20),
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.client = client
        self._expiry = expiry
        self._clock = clock
        self._identities: dict[tuple[str, str, str], tuple[CharacterIdentity, datetime]] = {}
        self._slugs: dict[int, str] = {}
        self._logger = logging.getLogger(__name__)

    @staticmethod
    def _cache_key(first_name: str, last_name: str, world: str) -> tuple[str, str, str]:
        return (first_name.strip().lower(), last_name.strip().lower(), world.strip().lower())

    def slug_for(self, lodestone_id: int) -> str | None:
        return self._slugs.get(int(lodestone_id))

    def remember(self, identity: CharacterIdentity) -> None:
        self._slugs[identity.lodestone_id] = identity.slug

    def cached(self, first_name: str, last_name: str, world: str) -> CharacterIdentity | None:
        row = self._identities.get(self._cache_key(first_name, last_name, world))
        if row is None:
            return None
        identity, resolved_at = row
        if self._clock() - resolved_at >= self._expiry:
            return None
        return identity

    async def resolve(self, first_name: str, last_name: str, world: str) -> CharacterIdentity | LookupFailure:
        first_name, last_name, world = first_name.strip(), last_name.strip(), world.strip()
        cached = self.cached(first_name, last_name, world)
        if cached is not None:
            self._logger.debug("Using cached identity for %s %s@%s", first_name, last_name, world)
            self.remember(cached)
            return cached

        path = name_lookup_path(first_name, last_name, world)
        self._logger.debug("Resolving character identity via %s", path)
        try:
            response = await self.client.get(path, follow_redirects=False)
        except httpx.HTTPError:
            self._logger.exception("Error resolving identity for %s %s@%s", first_name, last_name, world)
            return LookupFailure.NETWORK_ERROR

        if response.status_code == 404:
            self._logger.warning("Character not found: %s %s@%s", first_name, last_name, world)
            return LookupFailure.NOT_FOUND

        if not 300 <= response.status_code < 400:
            self._logger.error("Unexpected status %s resolving identity", response.status_code)
            return LookupFailure.UNEXPECTED_STATUS

        location = response.headers.get("location")
        identity = parse_character_location(location)
        if identity is None:
            self._logger.error("Could not parse character location: %r", location)
            return LookupFailure.MALFORMED_REDIRECT

        self._identities[self._cache_key(first_name, last_name, world)] = (identity, self._clock())
        self.remember(identity)
        self._logger.info("Resolved %s %s@%s to %s", first_name, last_name, world, identity.lodestone_id)
        return identity
