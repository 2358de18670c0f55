"""
Addon Manager — library, provenance and multi-account reconciliation.

Holds the saved-addon library and the per-account provenance ledgers, and
drives the merge/removal engines against remote accounts with:
- strictly sequential account processing (task queue, concurrency 1)
- per-account failure isolation with an aggregate ``BulkResult``
- provenance re-sync after every successful remote write
- ``lastUsed`` stamping for templates that were applied

State is only mutated after the corresponding remote write succeeded, and is
persisted through the storage collaborator right after each mutation.
"""

import functools
import logging
from collections.abc import Callable

from addon_sync.core.interfaces import (
    ACCOUNT_STATES_KEY,
    LIBRARY_KEY,
    AddonApi,
    CredentialCipher,
    StateStorage,
)
from addon_sync.core.library import AddonLibrary, normalize_tag
from addon_sync.core.merger import STRATEGY_REPLACE_MATCHING, merge_addons, remove_addons
from addon_sync.core.reinstall import reinstall_addon
from addon_sync.core.sync import sync_account_state as build_account_state
from addon_sync.core.tasks import CancellationToken, TaskOutcome, TaskQueue, WorkUnit
from addon_sync.core.updates import UpdatePoller
from addon_sync.errors import NotFoundError
from addon_sync.exporters import documents
from addon_sync.models.account import AccountRef
from addon_sync.models.addon import AddonDescriptor, AddonManifest
from addon_sync.models.library import SOURCE_CLONED, SOURCE_MANUAL, AccountAddonState, SavedAddon, utcnow
from addon_sync.models.results import AddonRef, BulkResult, MergeResult, ReinstallResult, UpdateInfo

logger = logging.getLogger(__name__)


class AddonManager:
    """
    Service object over the library and account-state maps.

    Collaborators are injected: the remote API, the credential cipher used to
    decrypt stored auth keys, and the key-value storage.
    """

    def __init__(
        self,
        api: AddonApi,
        cipher: CredentialCipher,
        storage: StateStorage,
        concurrency: int = 1,
        on_account_done: Callable[[TaskOutcome], None] | None = None,
    ):
        self.api = api
        self.cipher = cipher
        self.storage = storage
        self.concurrency = concurrency
        self.on_account_done = on_account_done
        self.poller = UpdatePoller(api)

        self.library = AddonLibrary()
        self.account_states: dict[str, AccountAddonState] = {}

    # ──────────────────────────────────────────────
    # Persistence
    # ──────────────────────────────────────────────

    async def initialize(self) -> None:
        """Load the library and account states from storage."""
        self.library = AddonLibrary.from_dict(await self.storage.load(LIBRARY_KEY))
        raw_states = await self.storage.load(ACCOUNT_STATES_KEY) or {}
        self.account_states = {
            account_id: AccountAddonState.from_dict(state) for account_id, state in raw_states.items()
        }
        logger.info(
            f"Loaded {len(self.library)} saved addons and {len(self.account_states)} account states"
        )

    async def _save_library(self) -> None:
        await self.storage.save(LIBRARY_KEY, self.library.to_dict())

    async def _save_account_states(self) -> None:
        await self.storage.save(
            ACCOUNT_STATES_KEY,
            {account_id: state.to_dict() for account_id, state in self.account_states.items()},
        )

    # ──────────────────────────────────────────────
    # Saved Addon Management
    # ──────────────────────────────────────────────

    async def create_saved_addon(
        self,
        name: str,
        install_url: str,
        tags: list[str] | None = None,
        manifest: AddonManifest | None = None,
    ) -> SavedAddon:
        """Save a template. Without a manifest it is fetched from ``install_url``."""
        if manifest is None:
            manifest = (await self.api.fetch_addon_manifest(install_url)).manifest
        saved_addon = self.library.create(
            name=name or manifest.name,
            install_url=install_url,
            manifest=manifest,
            tags=tags,
            source_type=SOURCE_MANUAL,
        )
        await self._save_library()
        return saved_addon

    async def save_addon_from_account(
        self,
        account_id: str,
        addon: AddonDescriptor,
        name: str | None = None,
        tags: list[str] | None = None,
    ) -> SavedAddon:
        """Clone an addon installed in an account into the library."""
        saved_addon = self.library.create(
            name=name or addon.manifest.name,
            install_url=addon.transport_url,
            manifest=addon.manifest,
            tags=tags,
            source_type=SOURCE_CLONED,
            source_account_id=account_id,
        )
        await self._save_library()
        return saved_addon

    async def update_saved_addon(
        self,
        saved_addon_id: str,
        name: str | None = None,
        tags: list[str] | None = None,
        install_url: str | None = None,
    ) -> SavedAddon:
        """Edit a template. A changed install URL refetches its manifest first."""
        current = self.library.require(saved_addon_id)
        manifest = None
        if install_url is not None and install_url != current.install_url:
            manifest = (await self.api.fetch_addon_manifest(install_url)).manifest
        else:
            install_url = None

        saved_addon = self.library.update(
            saved_addon_id, name=name, tags=tags, install_url=install_url, manifest=manifest
        )
        await self._save_library()
        return saved_addon

    async def delete_saved_addon(self, saved_addon_id: str) -> None:
        """Delete a template. Accounts where it was applied are left as they are."""
        self.library.delete(saved_addon_id)
        await self._save_library()

    def get_saved_addon(self, saved_addon_id: str) -> SavedAddon | None:
        return self.library.get(saved_addon_id)

    # ──────────────────────────────────────────────
    # Tag Management
    # ──────────────────────────────────────────────

    def get_saved_addons_by_tag(self, tag: str) -> list[SavedAddon]:
        return self.library.by_tag(tag)

    def get_all_tags(self) -> list[str]:
        return self.library.all_tags()

    async def rename_tag(self, old_tag: str, new_tag: str) -> int:
        changed = self.library.rename_tag(old_tag, new_tag)
        if changed:
            await self._save_library()
        return changed

    def _require_tag(self, tag: str) -> list[SavedAddon]:
        saved_addons = self.library.by_tag(tag)
        if not saved_addons:
            raise NotFoundError(f"No saved addons found with tag: {normalize_tag(tag) or tag}")
        return saved_addons

    # ──────────────────────────────────────────────
    # Per-account units of work
    # ──────────────────────────────────────────────

    async def _apply_to_account(
        self, saved_addons: list[SavedAddon], strategy: str, account: AccountRef
    ) -> MergeResult:
        auth_key = await self.cipher.decrypt(account.auth_key)
        current = await self.api.get_addon_collection(auth_key)
        updated, result = merge_addons(current, saved_addons, strategy)
        await self.api.set_addon_collection(auth_key, updated)
        logger.debug(
            f"[Bulk] {account.id}: +{len(result.added)} ~{len(result.updated)} "
            f"={len(result.skipped)} !{len(result.protected)}"
        )
        await self.sync_account_state(account)
        return result

    async def _remove_from_account(self, addon_ids: list[str], account: AccountRef) -> MergeResult:
        auth_key = await self.cipher.decrypt(account.auth_key)
        current = await self.api.get_addon_collection(auth_key)
        updated, protected_ids = remove_addons(current, addon_ids)
        await self.api.set_addon_collection(auth_key, updated)

        names = {a.manifest.id: a.manifest.name for a in current}
        await self.sync_account_state(account)
        return MergeResult(protected=[AddonRef(addon_id=i, name=names.get(i, i)) for i in protected_ids])

    async def _run_per_account(
        self,
        accounts: list[AccountRef],
        work: Callable,
        token: CancellationToken | None,
        with_details: bool = True,
    ) -> BulkResult:
        queue = TaskQueue(concurrency=self.concurrency, token=token, on_done=self.on_account_done)
        units = [WorkUnit(key=account.id, run=functools.partial(work, account)) for account in accounts]
        outcomes = await queue.run(units)

        result = BulkResult()
        for outcome in outcomes:
            if outcome.ok:
                result.record_success(outcome.key, outcome.value if with_details else None)
            else:
                result.record_failure(outcome.key, outcome.error or "Unknown error")
        return result

    # ──────────────────────────────────────────────
    # Application (single account, failures propagate)
    # ──────────────────────────────────────────────

    async def apply_saved_addon_to_account(
        self, saved_addon_id: str, account: AccountRef, strategy: str = STRATEGY_REPLACE_MATCHING
    ) -> MergeResult:
        saved_addon = self.library.require(saved_addon_id)
        result = await self._apply_to_account([saved_addon], strategy, account)
        self.library.touch_last_used([saved_addon.id])
        await self._save_library()
        return result

    async def apply_tag_to_account(
        self, tag: str, account: AccountRef, strategy: str = STRATEGY_REPLACE_MATCHING
    ) -> MergeResult:
        saved_addons = self._require_tag(tag)
        result = await self._apply_to_account(saved_addons, strategy, account)
        self.library.touch_last_used([s.id for s in saved_addons])
        await self._save_library()
        return result

    # ──────────────────────────────────────────────
    # Bulk Operations (failures isolated per account)
    # ──────────────────────────────────────────────

    async def bulk_apply_saved_addons(
        self,
        saved_addon_ids: list[str],
        accounts: list[AccountRef],
        strategy: str = STRATEGY_REPLACE_MATCHING,
        token: CancellationToken | None = None,
    ) -> BulkResult:
        """Apply templates to every account, one account at a time."""
        saved_addons = [s for s in (self.library.get(i) for i in saved_addon_ids) if s is not None]
        if not saved_addons:
            raise NotFoundError("No valid saved addons found")

        logger.info(f"[Bulk] Applying {len(saved_addons)} saved addons to {len(accounts)} accounts ({strategy})")
        result = await self._run_per_account(
            accounts, functools.partial(self._apply_to_account, saved_addons, strategy), token
        )

        if result.success:
            self.library.touch_last_used([s.id for s in saved_addons])
            await self._save_library()

        logger.info(f"[Bulk] Apply complete: {result.success} succeeded, {result.failed} failed")
        return result

    async def apply_saved_addon_to_accounts(
        self,
        saved_addon_id: str,
        accounts: list[AccountRef],
        strategy: str = STRATEGY_REPLACE_MATCHING,
        token: CancellationToken | None = None,
    ) -> BulkResult:
        self.library.require(saved_addon_id)
        return await self.bulk_apply_saved_addons([saved_addon_id], accounts, strategy, token)

    async def bulk_apply_tag(
        self,
        tag: str,
        accounts: list[AccountRef],
        strategy: str = STRATEGY_REPLACE_MATCHING,
        token: CancellationToken | None = None,
    ) -> BulkResult:
        saved_addons = self._require_tag(tag)
        return await self.bulk_apply_saved_addons([s.id for s in saved_addons], accounts, strategy, token)

    apply_tag_to_accounts = bulk_apply_tag

    async def bulk_remove_addons(
        self,
        addon_ids: list[str],
        accounts: list[AccountRef],
        token: CancellationToken | None = None,
    ) -> BulkResult:
        """Remove addon ids from every account; protected addons are reported, not failed."""
        logger.info(f"[Bulk] Removing {len(addon_ids)} addons from {len(accounts)} accounts")
        result = await self._run_per_account(
            accounts, functools.partial(self._remove_from_account, list(addon_ids)), token
        )
        logger.info(f"[Bulk] Remove complete: {result.success} succeeded, {result.failed} failed")
        return result

    async def bulk_remove_by_tag(
        self, tag: str, accounts: list[AccountRef], token: CancellationToken | None = None
    ) -> BulkResult:
        saved_addons = self._require_tag(tag)
        addon_ids = list(dict.fromkeys(s.manifest.id for s in saved_addons))
        return await self.bulk_remove_addons(addon_ids, accounts, token)

    # ──────────────────────────────────────────────
    # Sync
    # ──────────────────────────────────────────────

    async def sync_account_state(self, account: AccountRef) -> AccountAddonState:
        """Rebuild one account's provenance ledger from its live collection."""
        auth_key = await self.cipher.decrypt(account.auth_key)
        live = await self.api.get_addon_collection(auth_key)
        state = build_account_state(
            account.id, live, self.account_states.get(account.id), self.library, now=utcnow()
        )
        self.account_states[account.id] = state
        await self._save_account_states()
        logger.debug(f"[Sync] {account.id}: {len(state.installed_addons)} addons tracked")
        return state

    async def sync_all_account_states(
        self, accounts: list[AccountRef], token: CancellationToken | None = None
    ) -> BulkResult:
        result = await self._run_per_account(
            accounts, self.sync_account_state, token, with_details=False
        )
        for error in result.errors:
            logger.error(f"[Sync] Failed to sync account {error.account_id}: {error.error}")
        return result

    async def forget_account(self, account_id: str) -> None:
        if self.account_states.pop(account_id, None) is not None:
            await self._save_account_states()

    # ──────────────────────────────────────────────
    # Updates, Health, Reinstall
    # ──────────────────────────────────────────────

    async def check_account_updates(self, account: AccountRef) -> list[UpdateInfo]:
        auth_key = await self.cipher.decrypt(account.auth_key)
        addons = await self.api.get_addon_collection(auth_key)
        return await self.poller.check_updates(addons)

    async def check_saved_addon_updates(self, saved_addon_ids: list[str] | None = None) -> list[UpdateInfo]:
        if saved_addon_ids is None:
            saved_addons = self.library.values()
        else:
            saved_addons = [self.library.require(i) for i in saved_addon_ids]
        return await self.poller.check_saved_addon_updates(saved_addons)

    async def check_all_health(self) -> None:
        """Probe every template and record its health in the library."""
        health = await self.poller.check_library_health(self.library.values())
        for saved_addon_id, status in health.items():
            self.library.set_health(saved_addon_id, status)
        await self._save_library()

    async def reinstall_addon(self, account: AccountRef, addon_id: str) -> ReinstallResult:
        auth_key = await self.cipher.decrypt(account.auth_key)
        result = await reinstall_addon(self.api, auth_key, addon_id)
        if result.updated_addon is not None:
            await self.sync_account_state(account)
        return result

    # ──────────────────────────────────────────────
    # Import/Export
    # ──────────────────────────────────────────────

    def export_library(self) -> str:
        return documents.dumps(documents.export_library(self.library))

    async def import_library(self, raw: str | dict, merge: bool) -> int:
        """Import a library document. Returns how many saved addons were imported."""
        saved_addons = documents.parse_library(raw)
        self.library = documents.import_saved_addons(self.library, saved_addons, merge)
        await self._save_library()
        return len(saved_addons)

    async def merge_saved_addons(self, saved_addons: list[SavedAddon]) -> int:
        """Add already-parsed saved addons (e.g. from an account export) under new ids."""
        if not saved_addons:
            return 0
        self.library = documents.import_saved_addons(self.library, saved_addons, merge=True)
        await self._save_library()
        return len(saved_addons)
