"""
Stremio API client — the remote addon-collection service over HTTP.

Collection calls are JSON POSTs to ``<api_url>/api/<method>``. Manifest
fetches go to the addon's own server, optionally through a proxy, with a
five-minute cache-buster and a bounded linear-backoff retry.
"""

import asyncio
import logging
import time
from urllib.parse import quote

import httpx

from addon_sync.core.interfaces import LoginResult
from addon_sync.core.resilience import LinearBackoff
from addon_sync.errors import ManifestNotFoundError, NetworkError, ParseError, UnauthorizedError
from addon_sync.models.addon import AddonDescriptor

logger = logging.getLogger(__name__)

CACHE_BUSTER_SECONDS = 300


def manifest_url_for(transport_url: str) -> str:
    """Resolve a transport URL to its ``manifest.json`` URL."""
    if transport_url.endswith("/manifest.json") or "/manifest.json?" in transport_url:
        return transport_url
    if transport_url.endswith("/"):
        return f"{transport_url}manifest.json"
    return f"{transport_url}/manifest.json"


class StremioClient:
    """``AddonApi`` implementation backed by ``httpx.AsyncClient``."""

    API_BASE_URL = "https://api.strem.io"

    def __init__(
        self,
        api_url: str = API_BASE_URL,
        proxy_url: str = "",
        timeout: float = 30.0,
        manifest_timeout: float = 5.0,
        backoff: LinearBackoff | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.proxy_url = proxy_url
        self.manifest_timeout = manifest_timeout
        self.backoff = backoff or LinearBackoff(base_delay=1.0, max_retries=2)
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            follow_redirects=True,
            headers={"Content-Type": "application/json"},
        )

    async def __aenter__(self) -> "StremioClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    # ──────────────────────────────────────────────
    # RPC Layer
    # ──────────────────────────────────────────────

    async def _call(self, method: str, payload: dict) -> dict:
        """POST an API method and return its ``result`` object."""
        url = f"{self.api_url}/api/{method}"
        try:
            resp = await self.client.post(url, json=payload)
        except httpx.TransportError as e:
            raise NetworkError(f"Network error calling {method}: {e}") from e

        if resp.status_code == 401:
            raise UnauthorizedError("Invalid or expired auth key")
        if resp.status_code >= 400:
            raise NetworkError(f"{method} failed with HTTP {resp.status_code}")

        try:
            data = resp.json()
        except ValueError as e:
            raise NetworkError(f"{method} returned invalid JSON") from e

        if not isinstance(data, dict):
            raise NetworkError(f"{method} returned unexpected payload")

        error = data.get("error")
        if error:
            message = error.get("message") if isinstance(error, dict) else str(error)
            message = message or f"{method} failed"
            if "session" in message.lower() or "auth" in message.lower():
                raise UnauthorizedError(message)
            raise NetworkError(message)

        return data.get("result") or {}

    async def login(self, email: str, password: str) -> LoginResult:
        try:
            result = await self._call("login", {"type": "Auth", "email": email, "password": password})
        except UnauthorizedError as e:
            raise UnauthorizedError("Invalid email or password") from e
        if not result.get("authKey"):
            raise UnauthorizedError("Invalid login response - no auth key")
        user = result.get("user") or {}
        return LoginResult(auth_key=result["authKey"], user_id=user.get("_id", ""), email=user.get("email", email))

    async def get_addon_collection(self, auth_key: str) -> list[AddonDescriptor]:
        result = await self._call(
            "addonCollectionGet", {"type": "AddonCollectionGet", "authKey": auth_key, "update": True}
        )
        return [AddonDescriptor.from_dict(a) for a in result.get("addons") or []]

    async def set_addon_collection(self, auth_key: str, addons: list[AddonDescriptor]) -> None:
        result = await self._call(
            "addonCollectionSet",
            {"type": "AddonCollectionSet", "authKey": auth_key, "addons": [a.to_dict() for a in addons]},
        )
        if result.get("success") is False:
            raise NetworkError("Failed to update addon collection")

    # ──────────────────────────────────────────────
    # Addon servers
    # ──────────────────────────────────────────────

    def _fetch_url(self, manifest_url: str) -> str:
        bucket = int(time.time() // CACHE_BUSTER_SECONDS)
        separator = "&" if "?" in manifest_url else "?"
        busted = f"{manifest_url}{separator}cb={bucket}"
        if not self.proxy_url:
            return busted
        return f"{self.proxy_url}{quote(busted, safe='')}"

    async def _fetch_manifest_once(self, transport_url: str, manifest_url: str) -> AddonDescriptor:
        try:
            resp = await self.client.get(self._fetch_url(manifest_url), timeout=self.manifest_timeout)
        except httpx.TransportError as e:
            raise NetworkError(f"Failed to fetch addon manifest: {e}") from e

        if resp.status_code == 404:
            raise ManifestNotFoundError("Addon manifest not found at this URL")
        if resp.status_code >= 400:
            raise NetworkError(f"Manifest fetch failed with HTTP {resp.status_code}")

        try:
            data = resp.json()
        except ValueError as e:
            raise ParseError("Invalid addon manifest - could not parse JSON") from e

        if not isinstance(data, dict) or not all(data.get(k) for k in ("id", "name", "version")):
            raise ParseError("Invalid addon manifest - missing required fields")

        return AddonDescriptor.from_dict({"transportUrl": transport_url, "manifest": data})

    async def fetch_addon_manifest(self, url: str) -> AddonDescriptor:
        """Fetch the live manifest for a transport URL, retrying transient failures."""
        manifest_url = manifest_url_for(url)
        attempt = 0
        while True:
            if attempt:
                delay = self.backoff.calculate_delay(attempt)
                logger.info(f"[Manifest Fetch] Retrying ({attempt}/{self.backoff.max_retries}) for: {manifest_url}")
                await asyncio.sleep(delay)
            else:
                logger.debug(f"[Manifest Fetch] Fetching: {manifest_url}")

            try:
                return await self._fetch_manifest_once(url, manifest_url)
            except ManifestNotFoundError:
                raise
            except NetworkError as e:
                logger.warning(f"[Manifest Fetch] Attempt {attempt + 1} failed for {manifest_url}: {e}")
                if not self.backoff.should_retry(attempt):
                    raise
                attempt += 1

    async def check_reachable(self, url: str) -> bool:
        """True when the addon's manifest endpoint answers below HTTP 400. Never raises."""
        try:
            resp = await self.client.get(manifest_url_for(url), timeout=self.manifest_timeout)
            return resp.status_code < 400
        except Exception as e:
            logger.debug(f"[Health] {url} unreachable: {e}")
            return False
