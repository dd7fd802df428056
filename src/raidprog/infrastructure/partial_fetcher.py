import asyncio
import logging
from typing import Any, Awaitable, Callable

import httpx

from raidprog.infrastructure.protocol_version import ProtocolVersionTracker


PARTIAL_COMPONENT = "Characters/Character"

_STATUS_VERSION_CONFLICT = 409
_STATUS_RATE_LIMITED = 403
_STATUS_NOT_FOUND = 404


def partial_request_headers(version: str, partial_data: str) -> dict[str, str]:
    return {
        "accept": "text/html, application/xhtml+xml",
        "accept-language": "en-US,en;q=0.9",
        "x-inertia": "true",
        "x-inertia-version": version,
        "x-inertia-partial-component": PARTIAL_COMPONENT,
        "x-inertia-partial-data": partial_data,
    }


class PartialDataFetcher:
    """Requests one named partial of a character page, the way the site's own frontend navigates."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        version_tracker: ProtocolVersionTracker,
        *,
        retries: int = 3,
        backoff_seconds: float = 1.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.client = client
        self.version_tracker = version_tracker
        self._attempts = max(1, int(retries))
        self._backoff_seconds = max(0.0, float(backoff_seconds))
        self._sleep = sleep
        self._logger = logging.getLogger(__name__)

    def backoff_delay(self, attempt_index: int) -> float:
        return self._backoff_seconds * (2 ** attempt_index)

    async def fetch_partial(
        self,
        path: str,
        partial_data: str,
        *,
        params: dict[str, str] | None = None,
    ) -> dict[str, Any] | None:
        for attempt_index in range(self._attempts):
            version = self.version_tracker.current_version()
            if version is None:
                version = await self.version_tracker.ensure_version()
                if version is None:
                    continue

            try:
                response = await self.client.get(
                    path,
                    params=params,
                    headers=partial_request_headers(version, partial_data),
                )
            except httpx.HTTPError:
                self._logger.exception("Error requesting partial %s from %s", partial_data, path)
                continue

            status = response.status_code
            if status == _STATUS_VERSION_CONFLICT:
                self._logger.info("Protocol version conflict, refreshing")
                self.version_tracker.invalidate()
                continue

            if status == _STATUS_RATE_LIMITED:
                delay = self.backoff_delay(attempt_index)
                self._logger.warning(
                    "Got 403, waiting %ss before retry %s/%s",
                    delay,
                    attempt_index + 1,
                    self._attempts,
                    extra={"path": path},
                )
                await self._sleep(delay)
                continue

            if status == _STATUS_NOT_FOUND:
                self._logger.warning("Not found: %s", path)
                return None

            if status != 200:
                self._logger.warning("Request to %s failed with %s", path, status, extra={"attempt": attempt_index + 1})
                continue

            try:
                payload = response.json()
            except ValueError:
                self._logger.exception("Undecodable payload from %s", path)
                continue

            if not isinstance(payload, dict):
                self._logger.warning("Payload from %s is not an object", path)
                return None

            self._logger.debug("Fetched partial %s from %s", partial_data, path)
            return payload

        self._logger.warning("Giving up on %s after %s attempts", path, self._attempts)
        return None
