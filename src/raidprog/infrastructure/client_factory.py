import os
from dataclasses import dataclass
from datetime import timedelta

from raidprog.application.services.resolution_client import ProgressResolutionClient
from raidprog.infrastructure.encounter_cache import ConfigClearStore
from raidprog.infrastructure.host_config import HostConfiguration


DEFAULT_CONFIG_PATH = ".raidprog/config.json"


def _is_truthy(value: str | None, *, default: str = "0") -> bool:
    normalized = str(value if value is not None else default).strip().lower()
    return normalized in {"1", "true", "yes"}


@dataclass(frozen=True)
class ClientSettings:
    base_url: str = ProgressResolutionClient.BASE_URL
    timeout: float = 12.0
    retries: int = 3
    backoff_seconds: float = 1.0
    cache_expiry_minutes: float = 20.0
    config_path: str = DEFAULT_CONFIG_PATH
    ultimate_source: str = "activity"
    allow_stale_fallback: bool = False

    @classmethod
    def from_env(cls) -> "ClientSettings":
        return cls(
            base_url=os.getenv("RAIDPROG_BASE_URL", ProgressResolutionClient.BASE_URL).strip(),
            timeout=float(os.getenv("RAIDPROG_TIMEOUT_S", "12")),
            retries=max(1, int(os.getenv("RAIDPROG_RETRIES", "3"))),
            backoff_seconds=max(0.0, float(os.getenv("RAIDPROG_BACKOFF_S", "1"))),
            cache_expiry_minutes=float(os.getenv("RAIDPROG_CACHE_EXPIRY_MINUTES", "20")),
            config_path=os.getenv("RAIDPROG_CONFIG_PATH", DEFAULT_CONFIG_PATH).strip(),
            ultimate_source=os.getenv("RAIDPROG_ULTIMATE_SOURCE", "activity").strip().lower(),
            allow_stale_fallback=_is_truthy(os.getenv("RAIDPROG_STALE_FALLBACK"), default="0"),
        )


def load_host_configuration(settings: ClientSettings) -> HostConfiguration:
    if not settings.config_path:
        return HostConfiguration()
    return HostConfiguration.load(settings.config_path)


def create_resolution_client(
    settings: ClientSettings | None = None,
    config: HostConfiguration | None = None,
) -> ProgressResolutionClient:
    resolved = settings or ClientSettings.from_env()
    host_config = config if config is not None else load_host_configuration(resolved)
    return ProgressResolutionClient(
        base_url=resolved.base_url,
        timeout=resolved.timeout,
        retries=resolved.retries,
        backoff_seconds=resolved.backoff_seconds,
        expiry=timedelta(minutes=resolved.cache_expiry_minutes),
        durable_store=ConfigClearStore(host_config),
        ultimate_source=resolved.ultimate_source,
        allow_stale_fallback=resolved.allow_stale_fallback,
    )
