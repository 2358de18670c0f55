"""
Update and health poller.

Addons are checked one at a time. For a single addon the manifest fetch and
the reachability probe run concurrently, since they are independent round
trips. An addon whose manifest cannot be fetched is left out of the result;
callers treat a missing addon as "unknown".
"""

import asyncio
import logging
import time

from addon_sync.core.interfaces import AddonApi
from addon_sync.models.addon import AddonDescriptor
from addon_sync.models.library import AddonHealth, SavedAddon
from addon_sync.models.results import UpdateInfo

logger = logging.getLogger(__name__)


def is_checkable(addon: AddonDescriptor) -> bool:
    """Protected and official addons are not versioned by the user."""
    return not addon.is_protected and not addon.is_official


class UpdatePoller:
    def __init__(self, api: AddonApi):
        self.api = api

    async def _probe(self, url: str) -> tuple[AddonDescriptor, bool]:
        # Both round trips finish before the next addon starts, even on failure.
        latest, is_online = await asyncio.gather(
            self.api.fetch_addon_manifest(url),
            self.api.check_reachable(url),
            return_exceptions=True,
        )
        if isinstance(latest, BaseException):
            raise latest
        if isinstance(is_online, BaseException):
            is_online = False
        return latest, is_online

    async def check_updates(self, addons: list[AddonDescriptor]) -> list[UpdateInfo]:
        """Compare installed manifests with the latest ones at their transport URLs."""
        checkable = [a for a in addons if is_checkable(a)]
        logger.info(f"[Update Check] Checking {len(checkable)} addons sequentially...")

        results: list[UpdateInfo] = []
        for addon in checkable:
            try:
                latest, is_online = await self._probe(addon.transport_url)
            except Exception as e:
                logger.warning(f"[Update Check] Failed to check {addon.manifest.name}: {e}")
                logger.debug(f"  URL was: {addon.transport_url}")
                continue

            info = UpdateInfo(
                addon_id=addon.manifest.id,
                name=addon.manifest.name,
                transport_url=addon.transport_url,
                installed_version=addon.manifest.version,
                latest_version=latest.manifest.version,
                has_update=latest.manifest.version != addon.manifest.version,
                is_online=is_online,
            )
            logger.debug(
                f"[Update Check] {info.name}: installed={info.installed_version}, "
                f"latest={info.latest_version}, hasUpdate={info.has_update}, isOnline={info.is_online}"
            )
            results.append(info)

        logger.info(f"[Update Check] Complete: {len(results)} checked")
        return results

    async def check_saved_addon_updates(self, saved_addons: list[SavedAddon]) -> list[UpdateInfo]:
        """Same as ``check_updates`` for library templates; ``addon_id`` is the saved addon id."""
        logger.info(f"[Update Check] Checking {len(saved_addons)} saved addons sequentially...")

        results: list[UpdateInfo] = []
        for saved_addon in saved_addons:
            try:
                latest, is_online = await self._probe(saved_addon.install_url)
            except Exception as e:
                logger.warning(f"[Update Check] Failed to check {saved_addon.name}: {e}")
                logger.debug(f"  URL was: {saved_addon.install_url}")
                continue

            results.append(
                UpdateInfo(
                    addon_id=saved_addon.id,
                    name=saved_addon.name,
                    transport_url=saved_addon.install_url,
                    installed_version=saved_addon.manifest.version,
                    latest_version=latest.manifest.version,
                    has_update=latest.manifest.version != saved_addon.manifest.version,
                    is_online=is_online,
                )
            )

        logger.info(f"[Update Check] Complete: {len(results)} checked")
        return results

    async def check_library_health(self, saved_addons: list[SavedAddon]) -> dict[str, AddonHealth]:
        """Probe reachability of every template; returns health by saved addon id."""
        health: dict[str, AddonHealth] = {}
        for saved_addon in saved_addons:
            is_online = await self.api.check_reachable(saved_addon.install_url)
            health[saved_addon.id] = AddonHealth(
                is_online=is_online,
                last_checked=int(time.time() * 1000),
            )
        online = sum(1 for h in health.values() if h.is_online)
        logger.info(f"[Health] {online}/{len(health)} saved addons online")
        return health
