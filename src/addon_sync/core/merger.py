"""
Merge and removal engines.

Pure functions over addon collections. They never touch the network and never
mutate their inputs. Protected addons are reported as data, not raised.
"""

import copy
import logging

from addon_sync.models.addon import AddonDescriptor, find_addon_index
from addon_sync.models.library import SavedAddon
from addon_sync.models.results import AddonRef, MergeResult

logger = logging.getLogger(__name__)

STRATEGY_REPLACE_MATCHING = "replace-matching"
STRATEGY_ADD_ONLY = "add-only"
MERGE_STRATEGIES = (STRATEGY_REPLACE_MATCHING, STRATEGY_ADD_ONLY)


def descriptor_from_saved_addon(saved_addon: SavedAddon) -> AddonDescriptor:
    """Build the descriptor a template installs: its URL and manifest, no flags."""
    return AddonDescriptor(
        transport_url=saved_addon.install_url,
        manifest=copy.deepcopy(saved_addon.manifest),
    )


def merge_addons(
    current: list[AddonDescriptor],
    saved_addons: list[SavedAddon],
    strategy: str = STRATEGY_REPLACE_MATCHING,
) -> tuple[list[AddonDescriptor], MergeResult]:
    """
    Apply library templates to a collection.

    Templates are visited in order and matched by ``manifest.id``:

    - match is protected: left untouched, reported under ``protected``
    - match and ``replace-matching``: replaced at the same index (``updated``)
    - match and ``add-only``: left untouched (``skipped``)
    - no match: appended to the tail (``added``)

    Returns the new collection and the outcome log.
    """
    if strategy not in MERGE_STRATEGIES:
        raise ValueError(f"Unknown merge strategy: {strategy!r}. Use {' or '.join(MERGE_STRATEGIES)}.")
    if not isinstance(current, list) or not isinstance(saved_addons, list):
        raise TypeError("merge_addons expects lists of addons and saved addons")

    addons = list(current)
    result = MergeResult()

    for saved_addon in saved_addons:
        addon_id = saved_addon.manifest.id
        ref = AddonRef(addon_id=addon_id, name=saved_addon.manifest.name)
        index = find_addon_index(addons, addon_id)

        if index < 0:
            addons.append(descriptor_from_saved_addon(saved_addon))
            result.added.append(ref)
        elif addons[index].is_protected:
            logger.debug(f"[Merge] {addon_id} is protected, leaving it in place")
            result.protected.append(ref)
        elif strategy == STRATEGY_REPLACE_MATCHING:
            addons[index] = descriptor_from_saved_addon(saved_addon)
            result.updated.append(ref)
        else:
            result.skipped.append(ref)

    return addons, result


def remove_addons(
    current: list[AddonDescriptor], addon_ids: list[str]
) -> tuple[list[AddonDescriptor], list[str]]:
    """
    Drop ``addon_ids`` from a collection, keeping protected addons.

    Returns the new collection and the ids that were requested but protected,
    in collection order. Ids not present in the collection are ignored.
    """
    if not isinstance(current, list):
        raise TypeError("remove_addons expects a list of addons")

    requested = set(addon_ids)
    protected_ids: list[str] = []
    addons: list[AddonDescriptor] = []

    for addon in current:
        if addon.addon_id not in requested:
            addons.append(addon)
        elif addon.is_protected:
            addons.append(addon)
            if addon.addon_id not in protected_ids:
                protected_ids.append(addon.addon_id)

    return addons, protected_ids
