"""
Runtime settings, read from ``ADDON_SYNC_*`` environment variables.

CLI options take precedence; they are wired with click's ``envvar`` so both
sources resolve to the same values.
"""

import os
from dataclasses import dataclass
from pathlib import Path

from addon_sync.clients.stremio import StremioClient

ENV_PREFIX = "ADDON_SYNC_"


def _env(name: str, default: str) -> str:
    return os.environ.get(f"{ENV_PREFIX}{name}", default)


@dataclass
class Settings:
    data_dir: Path = Path("./data")
    api_url: str = StremioClient.API_BASE_URL
    proxy_url: str = ""
    timeout: float = 30.0
    manifest_timeout: float = 5.0
    master_password: str | None = None

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            data_dir=Path(_env("DATA_DIR", "./data")),
            api_url=_env("API_URL", StremioClient.API_BASE_URL),
            proxy_url=_env("PROXY_URL", ""),
            timeout=float(_env("TIMEOUT", "30")),
            manifest_timeout=float(_env("MANIFEST_TIMEOUT", "5")),
            master_password=os.environ.get(f"{ENV_PREFIX}MASTER_PASSWORD"),
        )

    def create_client(self) -> StremioClient:
        return StremioClient(
            api_url=self.api_url,
            proxy_url=self.proxy_url,
            timeout=self.timeout,
            manifest_timeout=self.manifest_timeout,
        )
