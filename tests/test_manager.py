"""Tests for AddonManager: library operations, bulk reconciliation, provenance."""

import json

import pytest
import pytest_asyncio

from addon_sync.core.interfaces import ACCOUNT_STATES_KEY, LIBRARY_KEY
from addon_sync.core.manager import AddonManager
from addon_sync.core.merger import STRATEGY_ADD_ONLY
from addon_sync.core.tasks import CancellationToken
from addon_sync.errors import LockedError, NetworkError, NotFoundError, ValidationError
from addon_sync.models.library import INSTALLED_VIA_SAVED

from conftest import account_ref, ids, make_addon, make_manifest

TORRENTIO_URL = "https://torrentio.example.org/manifest.json"


@pytest.fixture
def accounts(api):
    api.collections["acc-1"] = [make_addon("a"), make_addon("org.torrentio", version="0.0.1")]
    api.collections["acc-2"] = [make_addon("a", protected=True)]
    api.collections["acc-3"] = []
    return [account_ref("acc-1"), account_ref("acc-2"), account_ref("acc-3")]


@pytest_asyncio.fixture
async def torrentio(manager):
    return await manager.create_saved_addon(
        "Torrentio", TORRENTIO_URL, ["debrid"], manifest=make_manifest("org.torrentio", "0.0.14")
    )


# ═══════════════════════════════════════════
# Library Operations
# ═══════════════════════════════════════════


class TestLibraryOperations:
    @pytest.mark.asyncio
    async def test_create_fetches_manifest(self, manager, api, storage):
        api.publish(make_addon("org.torrentio", url=TORRENTIO_URL, version="0.0.14"))
        saved = await manager.create_saved_addon("", TORRENTIO_URL, ["Debrid"])

        assert saved.name == "Torrentio"
        assert saved.manifest.version == "0.0.14"
        assert saved.tags == ["debrid"]
        assert saved.id in json.loads(storage.data[LIBRARY_KEY])

    @pytest.mark.asyncio
    async def test_update_url_refetches(self, manager, api):
        saved = await manager.create_saved_addon("T", TORRENTIO_URL, manifest=make_manifest("org.torrentio"))
        new_url = "https://torrentio.example.org/lite/manifest.json"
        api.publish(make_addon("org.torrentio", url=new_url, version="2.0.0"))

        updated = await manager.update_saved_addon(saved.id, install_url=new_url)

        assert updated.install_url == new_url
        assert updated.manifest.version == "2.0.0"

    @pytest.mark.asyncio
    async def test_update_same_url_skips_fetch(self, manager, api):
        saved = await manager.create_saved_addon("T", TORRENTIO_URL, manifest=make_manifest("org.torrentio"))
        await manager.update_saved_addon(saved.id, name="Renamed", install_url=TORRENTIO_URL)
        assert [c for c in api.calls if c[0] == "fetch"] == []

    @pytest.mark.asyncio
    async def test_save_addon_from_account(self, manager):
        saved = await manager.save_addon_from_account("acc-1", make_addon("org.other"), tags=["misc"])
        assert saved.source_type == "cloned-from-account"
        assert saved.source_account_id == "acc-1"

    @pytest.mark.asyncio
    async def test_delete_missing(self, manager):
        with pytest.raises(NotFoundError):
            await manager.delete_saved_addon("nope")

    @pytest.mark.asyncio
    async def test_initialize_restores(self, api, cipher, storage, torrentio):
        fresh = AddonManager(api=api, cipher=cipher, storage=storage)
        await fresh.initialize()
        assert fresh.get_saved_addon(torrentio.id).name == "Torrentio"


# ═══════════════════════════════════════════
# Bulk Apply
# ═══════════════════════════════════════════


class TestBulkApply:
    @pytest.mark.asyncio
    async def test_applies_to_every_account(self, manager, api, accounts, torrentio):
        result = await manager.bulk_apply_saved_addons([torrentio.id], accounts)

        assert result.success == 3
        assert result.failed == 0
        assert ids(api.collections["acc-1"]) == ["a", "org.torrentio"]
        assert api.collections["acc-1"][1].manifest.version == "0.0.14"
        assert ids(api.collections["acc-3"]) == ["org.torrentio"]
        assert [len(d.result.updated) for d in result.details] == [1, 0, 0]
        assert [len(d.result.added) for d in result.details] == [0, 1, 1]

    @pytest.mark.asyncio
    async def test_accounts_processed_in_order(self, manager, api, accounts, torrentio):
        await manager.bulk_apply_saved_addons([torrentio.id], accounts)
        touched = [key for call, key in api.calls if call in ("get", "set")]
        first_seen = list(dict.fromkeys(touched))
        assert first_seen == ["acc-1", "acc-2", "acc-3"]
        assert touched.index("acc-2") > max(i for i, k in enumerate(touched) if k == "acc-1")

    @pytest.mark.asyncio
    async def test_failure_isolated(self, manager, api, accounts, torrentio):
        api.failing_keys["acc-2"] = NetworkError("connection reset")

        result = await manager.bulk_apply_saved_addons([torrentio.id], accounts)

        assert result.success == 2
        assert result.failed == 1
        assert result.errors[0].account_id == "acc-2"
        assert result.errors[0].error == "connection reset"
        assert ids(api.collections["acc-3"]) == ["org.torrentio"]
        assert torrentio.last_used is not None

    @pytest.mark.asyncio
    async def test_all_failed_leaves_last_used(self, manager, api, accounts, torrentio, cipher):
        cipher.locked = True
        result = await manager.bulk_apply_saved_addons([torrentio.id], accounts)
        assert result.failed == 3
        assert result.errors[0].error == "App is locked"
        assert torrentio.last_used is None

    @pytest.mark.asyncio
    async def test_unknown_ids_dropped(self, manager, accounts, torrentio):
        result = await manager.bulk_apply_saved_addons(["nope", torrentio.id], accounts[:1])
        assert result.success == 1

    @pytest.mark.asyncio
    async def test_no_valid_ids(self, manager, accounts):
        with pytest.raises(NotFoundError, match="No valid saved addons found"):
            await manager.bulk_apply_saved_addons(["nope"], accounts)

    @pytest.mark.asyncio
    async def test_tag(self, manager, api, accounts, torrentio):
        result = await manager.bulk_apply_tag("DEBRID", accounts, STRATEGY_ADD_ONLY)
        assert result.success == 3
        assert api.collections["acc-1"][1].manifest.version == "0.0.1"
        assert [len(d.result.skipped) for d in result.details] == [1, 0, 0]

    @pytest.mark.asyncio
    async def test_unknown_tag(self, manager, accounts, torrentio):
        with pytest.raises(NotFoundError, match="No saved addons found with tag: anime"):
            await manager.bulk_apply_tag("Anime", accounts)

    @pytest.mark.asyncio
    async def test_cancellation(self, manager, api, accounts, torrentio):
        token = CancellationToken()
        token.cancel()
        result = await manager.bulk_apply_saved_addons([torrentio.id], accounts, token=token)
        assert result.success == 0
        assert result.failed == 3
        assert {e.error for e in result.errors} == {"cancelled"}
        assert api.writes() == []

    @pytest.mark.asyncio
    async def test_progress_callback(self, api, cipher, storage, accounts):
        seen = []
        manager = AddonManager(api=api, cipher=cipher, storage=storage, on_account_done=lambda o: seen.append(o.key))
        saved = await manager.create_saved_addon("T", TORRENTIO_URL, manifest=make_manifest("org.torrentio"))
        await manager.bulk_apply_saved_addons([saved.id], accounts)
        assert seen == ["acc-1", "acc-2", "acc-3"]

    @pytest.mark.asyncio
    async def test_single_account_failure_propagates(self, manager, api, accounts, torrentio):
        api.failing_keys["acc-1"] = NetworkError("down")
        with pytest.raises(NetworkError):
            await manager.apply_saved_addon_to_account(torrentio.id, accounts[0])

    @pytest.mark.asyncio
    async def test_single_account_tag(self, manager, api, accounts, torrentio):
        result = await manager.apply_tag_to_account("debrid", accounts[2])
        assert [r.addon_id for r in result.added] == ["org.torrentio"]
        assert torrentio.last_used is not None


# ═══════════════════════════════════════════
# Provenance
# ═══════════════════════════════════════════


class TestProvenance:
    @pytest.mark.asyncio
    async def test_apply_links_provenance(self, manager, storage, accounts, torrentio):
        await manager.apply_saved_addon_to_account(torrentio.id, accounts[2])

        entry = manager.account_states["acc-3"].find("org.torrentio")
        assert entry.saved_addon_id == torrentio.id
        assert entry.installed_via == INSTALLED_VIA_SAVED
        assert entry.applied_tags == ["debrid"]
        assert "acc-3" in json.loads(storage.data[ACCOUNT_STATES_KEY])

    @pytest.mark.asyncio
    async def test_failed_account_keeps_old_state(self, manager, api, accounts, torrentio):
        await manager.sync_account_state(accounts[1])
        before = manager.account_states["acc-2"]
        api.failing_keys["acc-2"] = NetworkError("down")

        await manager.bulk_apply_saved_addons([torrentio.id], accounts)

        assert manager.account_states["acc-2"] is before

    @pytest.mark.asyncio
    async def test_sync_all(self, manager, api, accounts):
        api.failing_keys["acc-1"] = NetworkError("down")
        result = await manager.sync_all_account_states(accounts)
        assert result.success == 2
        assert result.failed == 1
        assert result.details == []
        assert set(manager.account_states) == {"acc-2", "acc-3"}

    @pytest.mark.asyncio
    async def test_forget_account(self, manager, accounts):
        await manager.sync_account_state(accounts[0])
        await manager.forget_account("acc-1")
        assert "acc-1" not in manager.account_states


# ═══════════════════════════════════════════
# Bulk Remove
# ═══════════════════════════════════════════


class TestBulkRemove:
    @pytest.mark.asyncio
    async def test_protected_reported_not_failed(self, manager, api, accounts):
        result = await manager.bulk_remove_addons(["a"], accounts)

        assert result.success == 3
        assert ids(api.collections["acc-1"]) == ["org.torrentio"]
        assert ids(api.collections["acc-2"]) == ["a"]
        protected = result.details[1].result.protected
        assert [(p.addon_id, p.name) for p in protected] == [("a", "A")]

    @pytest.mark.asyncio
    async def test_remove_by_tag(self, manager, api, accounts, torrentio):
        result = await manager.bulk_remove_by_tag("debrid", accounts)
        assert result.success == 3
        assert ids(api.collections["acc-1"]) == ["a"]

    @pytest.mark.asyncio
    async def test_remove_by_unknown_tag(self, manager, accounts):
        with pytest.raises(NotFoundError):
            await manager.bulk_remove_by_tag("nothing", accounts)


# ═══════════════════════════════════════════
# Updates, Health, Reinstall, Import/Export
# ═══════════════════════════════════════════


class TestMaintenance:
    @pytest.mark.asyncio
    async def test_check_all_health(self, manager, api, torrentio):
        api.unreachable.add(TORRENTIO_URL)
        await manager.check_all_health()
        assert manager.get_saved_addon(torrentio.id).health.is_online is False

    @pytest.mark.asyncio
    async def test_check_account_updates(self, manager, api, accounts):
        api.publish(make_addon("org.torrentio", version="0.0.2"))
        updates = await manager.check_account_updates(accounts[0])
        by_id = {u.addon_id: u for u in updates}
        assert by_id["org.torrentio"].has_update is True
        assert "a" not in by_id

    @pytest.mark.asyncio
    async def test_reinstall_syncs_state(self, manager, api, accounts):
        api.publish(make_addon("a", version="2.0.0"))
        result = await manager.reinstall_addon(accounts[0], "a")
        assert result.new_version == "2.0.0"
        assert ids(api.collections["acc-1"]) == ["a", "org.torrentio"]
        assert manager.account_states["acc-1"].find("a") is not None

    @pytest.mark.asyncio
    async def test_locked_cipher(self, manager, cipher, accounts):
        cipher.locked = True
        with pytest.raises(LockedError):
            await manager.sync_account_state(accounts[0])

    @pytest.mark.asyncio
    async def test_export_import_merge(self, manager, torrentio):
        exported = manager.export_library()
        count = await manager.import_library(exported, merge=True)

        assert count == 1
        assert len(manager.library) == 2
        assert len({s.id for s in manager.library}) == 2

    @pytest.mark.asyncio
    async def test_import_replace_keeps_ids(self, manager, torrentio):
        exported = manager.export_library()
        await manager.create_saved_addon("Other", "https://o.example.org/manifest.json", manifest=make_manifest("o"))

        await manager.import_library(exported, merge=False)

        assert [s.id for s in manager.library] == [torrentio.id]

    @pytest.mark.asyncio
    async def test_invalid_import_leaves_library(self, manager, torrentio):
        with pytest.raises(ValidationError):
            await manager.import_library('{"version": "1.0"}', merge=False)
        assert [s.id for s in manager.library] == [torrentio.id]
