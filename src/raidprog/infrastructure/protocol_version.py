import asyncio
import logging

import httpx


VERSION_START_MARKER = "&quot;version&quot;:&quot;"
VERSION_END_MARKER = "&quot;"


def extract_protocol_version(html: str) -> str | None:
    start = html.find(VERSION_START_MARKER)
    if start == -1:
        return None
    start += len(VERSION_START_MARKER)
    end = html.find(VERSION_END_MARKER, start)
    if end == -1:
        return None
    return html[start:end]


class ProtocolVersionTracker:
    """Inertia asset version the site expects on every partial request."""

    def __init__(self, client: httpx.AsyncClient, *, front_page_path: str = "/") -> None:
        self.client = client
        self._front_page_path = front_page_path
        self._version: str | None = None
        self._refresh_lock = asyncio.Lock()
        self._logger = logging.getLogger(__name__)

    def current_version(self) -> str | None:
        return self._version

    def invalidate(self) -> None:
        self._version = None

    async def ensure_version(self) -> str | None:
        async with self._refresh_lock:
            if self._version is None:
                await self._refresh_locked()
            return self._version

    async def refresh(self) -> bool:
        async with self._refresh_lock:
            return await self._refresh_locked()

    async def _refresh_locked(self) -> bool:
        self._logger.debug("Fetching protocol version from %s", self._front_page_path)
        try:
            response = await self.client.get(self._front_page_path)
        except httpx.HTTPError:
            self._logger.exception("Error fetching protocol version")
            return False

        version = extract_protocol_version(response.text)
        if not version:
            self._logger.error(
                "Could not locate protocol version in front page",
                extra={"status_code": response.status_code},
            )
            return False

        self._version = version
        self._logger.info("Fetched protocol version: %s", version)
        return True
