import sys
import tempfile
from datetime import datetime, timedelta
from pathlib import Path
import unittest
from unittest import mock

import httpx

sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from raidprog.application.services.resolution_client import ProgressResolutionClient
from raidprog.domain.encounter_catalog import EncounterDescriptor, find_encounter
from raidprog.domain.errors import LookupFailure
from raidprog.domain.models.progress import CharacterIdentity, Cleared, InProgress, NotStarted
from raidprog.infrastructure.encounter_cache import ConfigClearStore
from raidprog.infrastructure.host_config import HostConfiguration


FRONT_PAGE = '<div data-page="{&quot;version&quot;:&quot;v1&quot;}"></div>'
LODESTONE_ID = 12345678
SAVAGE = find_encounter(101)
ULTIMATE = find_encounter(1079)


def _activity_payload(rows):
    return {"props": {"characterPageContent": {"activities": {"activities": {"activities": {"paginator": {"data": rows}}}}}}}


def _prog_row(percent, played="2025-06-01 21:00:00", job=19):
    return {"activity": {"killsCount": 0, "bestPercent": percent, "endTime": played, "displayCharacterJobOrSpec": {"id": job}}}


def _kill_row(end_time="2025-06-02 22:00:00"):
    return {"endTime": end_time, "activity": {"killsCount": 1}}


class _Clock:
    def __init__(self) -> None:
        self.now = datetime(2025, 6, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now


class _FakeSite:
    def __init__(self) -> None:
        self.activity_payloads = [_activity_payload([_prog_row("35%")])]
        self.header_payload = {"props": {"headerEncounters": {"latestExpansion": {"ultimate": []}}}}
        self.partial_status = 200
        self.requests: list[httpx.Request] = []

    def partial_calls(self) -> list[httpx.Request]:
        return [request for request in self.requests if "x-inertia" in request.headers]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/":
            return httpx.Response(200, text=FRONT_PAGE)
        if path.startswith("/character-name/"):
            return httpx.Response(302, headers={"location": f"https://tomestone.gg/character/{LODESTONE_ID}/alpha-beta"})
        if self.partial_status != 200:
            return httpx.Response(self.partial_status)
        if path.endswith("/activity"):
            payload = self.activity_payloads.pop(0) if len(self.activity_payloads) > 1 else self.activity_payloads[0]
            return httpx.Response(200, json=payload)
        return httpx.Response(200, json=self.header_payload)


class ProgressResolutionClientTests(unittest.IsolatedAsyncioTestCase):
    def _client(self, site: _FakeSite, **kwargs) -> ProgressResolutionClient:
        http_client = httpx.AsyncClient(base_url="https://tomestone.test", transport=httpx.MockTransport(site))
        kwargs.setdefault("clock", _Clock())
        client = ProgressResolutionClient(http_client=http_client, backoff_seconds=0, **kwargs)
        self.addAsyncCleanup(client.aclose)
        return client

    async def test_resolve_character(self) -> None:
        client = self._client(_FakeSite())
        identity = await client.resolve_character("Alpha", "Beta", "Twintania")
        self.assertEqual(CharacterIdentity(lodestone_id=LODESTONE_ID, slug="alpha-beta"), identity)

    async def test_savage_request_shape_and_progress_result(self) -> None:
        site = _FakeSite()
        client = self._client(site)
        await client.resolve_character("Alpha", "Beta", "Twintania")

        result = await client.fetch_encounter_result(LODESTONE_ID, SAVAGE)

        self.assertIsInstance(result, InProgress)
        self.assertEqual(35.0, result.best.percent.value)
        request = site.partial_calls()[0]
        self.assertEqual(f"/character/{LODESTONE_ID}/alpha-beta/activity", request.url.path)
        self.assertEqual(
            {
                "category": "raids",
                "encounter": "vamp-fatale",
                "expansion": "dawntrail",
                "league": "all",
                "sortType": "firstKillTime",
                "zone": "aac-heavyweight-savage",
            },
            dict(request.url.params),
        )
        self.assertEqual("characterPageContent", request.headers["x-inertia-partial-data"])

    async def test_ultimate_uses_activity_page_by_default(self) -> None:
        site = _FakeSite()
        site.activity_payloads = [_activity_payload([_kill_row()])]
        client = self._client(site)
        await client.resolve_character("Alpha", "Beta", "Twintania")

        result = await client.fetch_encounter_result(LODESTONE_ID, ULTIMATE)

        self.assertEqual(Cleared(timestamp=datetime(2025, 6, 2, 22, 0)), result)
        params = site.partial_calls()[0].url.params
        self.assertEqual("ultimates", params["zone"])
        self.assertEqual("futures-rewritten-ultimate", params["encounter"])

    async def test_ultimate_header_source(self) -> None:
        site = _FakeSite()
        site.header_payload = {
            "props": {
                "headerEncounters": {
                    "latestExpansion": {"ultimate": [{"id": 5651, "achievement": {"completedAt": "2025-01-02 03:04:05", "completionWeek": 4}}]},
                }
            }
        }
        client = self._client(site, ultimate_source="header")
        await client.resolve_character("Alpha", "Beta", "Twintania")

        result = await client.fetch_encounter_result(LODESTONE_ID, ULTIMATE)

        self.assertEqual(Cleared(timestamp=datetime(2025, 1, 2, 3, 4, 5), completion_week="4"), result)
        request = site.partial_calls()[0]
        self.assertEqual(f"/character/{LODESTONE_ID}/alpha-beta", request.url.path)
        self.assertEqual("headerEncounters", request.headers["x-inertia-partial-data"])

    async def test_progress_is_cached_until_expiry(self) -> None:
        site = _FakeSite()
        site.activity_payloads = [_activity_payload([_prog_row("35%")]), _activity_payload([_prog_row("20%")])]
        clock = _Clock()
        client = self._client(site, clock=clock)
        await client.resolve_character("Alpha", "Beta", "Twintania")

        first = await client.fetch_encounter_result(LODESTONE_ID, SAVAGE)
        clock.now += timedelta(minutes=19)
        cached = await client.fetch_encounter_result(LODESTONE_ID, SAVAGE)
        self.assertEqual(first, cached)
        self.assertEqual(1, len(site.partial_calls()))

        clock.now += timedelta(minutes=1)
        await client.resolve_character("Alpha", "Beta", "Twintania")
        refreshed = await client.fetch_encounter_result(LODESTONE_ID, SAVAGE)
        self.assertEqual(20.0, refreshed.best.percent.value)
        self.assertEqual(2, len(site.partial_calls()))

    async def test_clear_is_persisted_and_served_after_restart_without_network(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "config.json"
            site = _FakeSite()
            site.activity_payloads = [_activity_payload([_kill_row()])]
            client = self._client(site, durable_store=ConfigClearStore(HostConfiguration.load(path)))
            await client.resolve_character("Alpha", "Beta", "Twintania")
            await client.fetch_encounter_result(LODESTONE_ID, SAVAGE)

            restarted_site = _FakeSite()
            clock = _Clock()
            clock.now += timedelta(days=365)
            restarted = self._client(
                restarted_site,
                clock=clock,
                durable_store=ConfigClearStore(HostConfiguration.load(path)),
            )
            result = await restarted.fetch_encounter_result(LODESTONE_ID, SAVAGE)

            self.assertEqual(Cleared(timestamp=datetime(2025, 6, 2, 22, 0)), result)
            self.assertEqual([], restarted_site.requests)

    async def test_unknown_slug_is_a_hard_miss_by_default(self) -> None:
        site = _FakeSite()
        clock = _Clock()
        client = self._client(site, clock=clock)
        await client.resolve_character("Alpha", "Beta", "Twintania")
        await client.fetch_encounter_result(LODESTONE_ID, SAVAGE)
        clock.now += timedelta(minutes=30)

        self.assertIsNone(await client.fetch_encounter_result(999, SAVAGE))
        client.identities._slugs.clear()
        self.assertIsNone(await client.fetch_encounter_result(LODESTONE_ID, SAVAGE))
        self.assertEqual(1, len(site.partial_calls()))

    async def test_unknown_slug_can_serve_stale_progress(self) -> None:
        site = _FakeSite()
        clock = _Clock()
        client = self._client(site, clock=clock, allow_stale_fallback=True)
        await client.resolve_character("Alpha", "Beta", "Twintania")
        first = await client.fetch_encounter_result(LODESTONE_ID, SAVAGE)
        clock.now += timedelta(minutes=30)
        client.identities._slugs.clear()

        self.assertEqual(first, await client.fetch_encounter_result(LODESTONE_ID, SAVAGE))

    async def test_exhausted_retries_and_not_found_yield_none_and_are_not_cached(self) -> None:
        site = _FakeSite()
        site.partial_status = 404
        client = self._client(site)
        await client.resolve_character("Alpha", "Beta", "Twintania")

        self.assertIsNone(await client.fetch_encounter_result(LODESTONE_ID, SAVAGE))
        self.assertIsNone(client.cache.get_stale(f"{LODESTONE_ID}_vamp-fatale_raids"))

    async def test_malformed_payload_degrades_to_none(self) -> None:
        site = _FakeSite()
        site.activity_payloads = [_activity_payload("not a list")]
        client = self._client(site)
        await client.resolve_character("Alpha", "Beta", "Twintania")

        self.assertIsNone(await client.fetch_encounter_result(LODESTONE_ID, SAVAGE))

    async def test_disabled_activities_are_not_started(self) -> None:
        site = _FakeSite()
        site.activity_payloads = [{"props": {"characterPageContent": {"activities": None}}}]
        client = self._client(site)
        await client.resolve_character("Alpha", "Beta", "Twintania")

        self.assertEqual(NotStarted(), await client.fetch_encounter_result(LODESTONE_ID, SAVAGE))

    async def test_unsupported_category_and_unmapped_encounter(self) -> None:
        site = _FakeSite()
        client = self._client(site)
        await client.resolve_character("Alpha", "Beta", "Twintania")
        trial = EncounterDescriptor(1, None, "some-trial", "trials", "dawntrail", "extremes")

        self.assertIsNone(await client.fetch_encounter_result(LODESTONE_ID, trial))
        self.assertIsNone(await client.fetch_encounter_result_by_fflogs_id(LODESTONE_ID, 9999))
        self.assertIsInstance(await client.fetch_encounter_result_by_fflogs_id(LODESTONE_ID, 101), InProgress)

    async def test_not_found_character(self) -> None:
        def handler(_: httpx.Request) -> httpx.Response:
            return httpx.Response(404)

        http_client = httpx.AsyncClient(base_url="https://tomestone.test", transport=httpx.MockTransport(handler))
        client = ProgressResolutionClient(http_client=http_client)
        self.addAsyncCleanup(client.aclose)

        self.assertIs(LookupFailure.NOT_FOUND, await client.resolve_character("Nobody", "Here", "Twintania"))

    async def test_clear_persistent_cache_and_evict(self) -> None:
        site = _FakeSite()
        site.activity_payloads = [_activity_payload([_kill_row()]), _activity_payload([_prog_row("50%")])]
        clock = _Clock()
        client = self._client(site, clock=clock)
        await client.resolve_character("Alpha", "Beta", "Twintania")
        await client.fetch_encounter_result(LODESTONE_ID, SAVAGE)

        self.assertEqual(1, client.clear_persistent_cache(lodestone_id=LODESTONE_ID))
        result = await client.fetch_encounter_result(LODESTONE_ID, SAVAGE)
        self.assertIsInstance(result, InProgress)

        clock.now += timedelta(minutes=20)
        self.assertEqual(1, client.evict_expired())

    async def test_unwritable_config_does_not_break_clear_handling(self) -> None:
        site = _FakeSite()
        site.activity_payloads = [_activity_payload([_kill_row()])]
        client = self._client(site, durable_store=ConfigClearStore(HostConfiguration()))
        await client.resolve_character("Alpha", "Beta", "Twintania")

        with mock.patch.object(HostConfiguration, "save", side_effect=PermissionError("read-only")):
            self.assertIsInstance(await client.fetch_encounter_result(LODESTONE_ID, SAVAGE), Cleared)
            self.assertEqual(1, client.clear_persistent_cache())


if __name__ == "__main__":
    unittest.main()
