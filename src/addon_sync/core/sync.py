"""
Account state synchronizer.

Rebuilds an account's provenance ledger from its live collection. Prior
entries are carried forward by addon id; new addons are auto-linked to the
library by exact install URL match; addons gone from the account are dropped.
"""

from datetime import datetime

from addon_sync.core.library import AddonLibrary
from addon_sync.models.addon import AddonDescriptor
from addon_sync.models.library import (
    INSTALLED_VIA_MANUAL,
    INSTALLED_VIA_SAVED,
    AccountAddonState,
    InstalledAddon,
    utcnow,
)


def sync_account_state(
    account_id: str,
    live_addons: list[AddonDescriptor],
    previous: AccountAddonState | None,
    library: AddonLibrary,
    now: datetime | None = None,
) -> AccountAddonState:
    """Return the new ledger for ``account_id``. Idempotent for a fixed ``now``."""
    stamp = now or utcnow()
    installed: list[InstalledAddon] = []

    for addon in live_addons:
        existing = previous.find(addon.manifest.id) if previous is not None else None

        if existing is not None:
            installed.append(
                InstalledAddon(
                    saved_addon_id=existing.saved_addon_id,
                    addon_id=existing.addon_id,
                    install_url=addon.transport_url,
                    installed_at=existing.installed_at,
                    installed_via=existing.installed_via,
                    applied_tags=list(existing.applied_tags) if existing.applied_tags is not None else None,
                )
            )
            continue

        match = library.find_by_url(addon.transport_url)
        installed.append(
            InstalledAddon(
                saved_addon_id=match.id if match else None,
                addon_id=addon.manifest.id,
                install_url=addon.transport_url,
                installed_at=stamp,
                installed_via=INSTALLED_VIA_SAVED if match else INSTALLED_VIA_MANUAL,
                applied_tags=list(match.tags) if match else None,
            )
        )

    return AccountAddonState(account_id=account_id, installed_addons=installed, last_sync=stamp)
