"""
Reinstall workflow — remove an addon and install it again from its URL.

Forces the remote service to pick up the addon's live manifest. Every step is
its own round trip and the sequence is not atomic: if re-adding fails after the
removal was written, the account is left without the addon and
``ReinstallInterruptedError`` is raised.
"""

import logging

from addon_sync.core.interfaces import AddonApi
from addon_sync.errors import ReinstallInterruptedError
from addon_sync.models.addon import find_addon_index
from addon_sync.models.results import ReinstallResult

logger = logging.getLogger(__name__)


async def reinstall_addon(api: AddonApi, auth_key: str, addon_id: str) -> ReinstallResult:
    """
    Reinstall ``addon_id`` in the account behind ``auth_key``.

    Absent and protected addons are a no-op (``updated_addon`` is None). The
    addon returns to its original position in the collection.
    """
    # 1. Locate
    current = await api.get_addon_collection(auth_key)
    index = find_addon_index(current, addon_id)
    if index < 0:
        logger.info(f"[Reinstall] {addon_id} not installed, nothing to do")
        return ReinstallResult(addons=current)
    existing = current[index]
    if existing.is_protected:
        logger.info(f"[Reinstall] {addon_id} is protected, skipping")
        return ReinstallResult(addons=current)

    previous_version = existing.manifest.version
    transport_url = existing.transport_url

    # 2. Remove
    await api.set_addon_collection(auth_key, [a for a in current if a.manifest.id != addon_id])

    # 3. Re-add from the original transport URL
    try:
        fresh = await api.fetch_addon_manifest(transport_url)
        after_install = await api.get_addon_collection(auth_key)
        existing_index = find_addon_index(after_install, fresh.manifest.id)
        if existing_index >= 0:
            after_install[existing_index] = fresh
        else:
            after_install.append(fresh)
        await api.set_addon_collection(auth_key, after_install)
    except Exception as e:
        logger.error(f"[Reinstall] {addon_id} removed but re-adding from {transport_url} failed: {e}")
        raise ReinstallInterruptedError(
            f"Addon {addon_id} was removed but could not be reinstalled: {e}",
            addon_id=addon_id,
            transport_url=transport_url,
        ) from e

    # 4. Restore the original position
    new_index = find_addon_index(after_install, addon_id)
    if new_index >= 0 and index < len(after_install) - 1 and new_index != index:
        reinstalled = after_install[new_index]
        reordered = [a for a in after_install if a.manifest.id != addon_id]
        reordered.insert(index, reinstalled)
        await api.set_addon_collection(auth_key, reordered)

    # 5. Ground truth
    final = await api.get_addon_collection(auth_key)
    final_index = find_addon_index(final, addon_id)
    final_addon = final[final_index] if final_index >= 0 else None

    logger.info(
        f"[Reinstall] {addon_id}: {previous_version} -> "
        f"{final_addon.manifest.version if final_addon else 'missing'}"
    )
    return ReinstallResult(
        addons=final,
        updated_addon=final_addon,
        previous_version=previous_version,
        new_version=final_addon.manifest.version if final_addon else None,
    )
