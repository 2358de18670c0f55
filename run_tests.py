#!/usr/bin/env python3
"""Standalone smoke runner that writes results to a file."""
import sys
import os

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "src"))

results = []

def log(msg):
    results.append(msg)

def run_all():
    # --- Test 1: model imports ---
    try:
        from addon_sync.models.addon import AddonDescriptor, AddonManifest, AddonFlags
        from addon_sync.models.library import SavedAddon, AccountAddonState
        log("PASS: model imports")
    except Exception as e:
        log(f"FAIL: model imports: {e}")
        return

    def addon(addon_id, protected=False):
        return AddonDescriptor(
            transport_url=f"https://{addon_id}.example.org/manifest.json",
            manifest=AddonManifest(id=addon_id, name=addon_id.upper(), version="1.0.0"),
            flags=AddonFlags(protected=True) if protected else None,
        )

    # --- Test 2: merge engine ---
    try:
        from addon_sync.core.library import AddonLibrary
        from addon_sync.core.merger import merge_addons
        lib = AddonLibrary()
        b = lib.create("B", "https://b.v2.example.org/manifest.json", AddonManifest(id="b", name="B", version="2.0.0"))
        d = lib.create("D", "https://d.example.org/manifest.json", AddonManifest(id="d", name="D", version="1.0.0"))
        merged, result = merge_addons([addon("a"), addon("b"), addon("c")], [b, d], "replace-matching")
        assert [x.manifest.id for x in merged] == ["a", "b", "c", "d"]
        assert merged[1].manifest.version == "2.0.0"
        assert [r.addon_id for r in result.updated] == ["b"]
        assert [r.addon_id for r in result.added] == ["d"]
        log("PASS: merge engine")
    except Exception as e:
        log(f"FAIL: merge engine: {e}")

    # --- Test 3: protected addons ---
    try:
        from addon_sync.core.merger import merge_addons, remove_addons
        merged, result = merge_addons([addon("b", protected=True)], [b], "replace-matching")
        assert merged[0].manifest.version == "1.0.0"
        assert [r.addon_id for r in result.protected] == ["b"]
        remaining, protected = remove_addons([addon("a"), addon("b", protected=True)], ["a", "b"])
        assert [x.manifest.id for x in remaining] == ["b"]
        assert protected == ["b"]
        log("PASS: protected addons")
    except Exception as e:
        log(f"FAIL: protected addons: {e}")

    # --- Test 4: provenance sync ---
    try:
        from addon_sync.core.sync import sync_account_state
        live = [addon("x"), AddonDescriptor(transport_url=d.install_url, manifest=d.manifest)]
        state = sync_account_state("acc-1", live, None, lib)
        assert state.find("x").installed_via == "manual"
        assert state.find("d").saved_addon_id == d.id
        log("PASS: provenance sync")
    except Exception as e:
        log(f"FAIL: provenance sync: {e}")

    # --- Test 5: library document ---
    try:
        from addon_sync.exporters import export_library, parse_library, dumps
        parsed = parse_library(dumps(export_library(lib)))
        assert [s.id for s in parsed] == [b.id, d.id]
        log("PASS: library document")
    except Exception as e:
        log(f"FAIL: library document: {e}")

    # --- Test 6: task queue isolation ---
    try:
        import asyncio
        from addon_sync.core.tasks import TaskQueue, WorkUnit

        async def ok():
            return 1

        async def boom():
            raise RuntimeError("boom")

        outcomes = asyncio.run(TaskQueue().run([WorkUnit("a", ok), WorkUnit("b", boom), WorkUnit("c", ok)]))
        assert [o.ok for o in outcomes] == [True, False, True]
        assert outcomes[1].error == "boom"
        log("PASS: task queue")
    except Exception as e:
        log(f"FAIL: task queue: {e}")

    # --- Test 7: JSON file storage ---
    try:
        import asyncio
        import tempfile
        from pathlib import Path
        from addon_sync.storage.json_store import JSONFileStorage

        async def test_storage():
            with tempfile.TemporaryDirectory() as tmpdir:
                storage = JSONFileStorage(Path(tmpdir))
                await storage.save("addon-sync:library", lib.to_dict())
                data = await storage.load("addon-sync:library")
                assert set(data) == {b.id, d.id}
                return True

        asyncio.run(test_storage())
        log("PASS: JSON file storage")
    except Exception as e:
        log(f"FAIL: JSON file storage: {e}")

    # --- Test 8: credential cipher ---
    try:
        import asyncio
        from addon_sync.security.cipher import FernetCipher, generate_salt
        cipher = FernetCipher(salt=generate_salt(), iterations=1000)
        cipher.setup("correct horse")
        token = asyncio.run(cipher.encrypt("auth-key"))
        assert asyncio.run(cipher.decrypt(token)) == "auth-key"
        log("PASS: credential cipher")
    except Exception as e:
        log(f"FAIL: credential cipher: {e}")

    # --- Test 9: Lazy __init__ import ---
    try:
        import addon_sync
        assert addon_sync.__version__ == "1.0.0"
        assert addon_sync.AddonManager.__name__ == "AddonManager"
        log("PASS: addon_sync.__version__")
    except Exception as e:
        log(f"FAIL: addon_sync.__version__: {e}")


if __name__ == "__main__":
    run_all()
    output = "\n".join(results)

    outpath = os.path.join(os.path.dirname(__file__), "test_results.txt")
    with open(outpath, "w") as f:
        f.write(output + "\n")
        total = len(results)
        passed = sum(1 for r in results if r.startswith("PASS"))
        failed = total - passed
        f.write(f"\n=== {passed}/{total} passed, {failed} failed ===\n")

    # Also print to stdout
    print(output)
    print(f"\n=== {passed}/{total} passed, {failed} failed ===")

    sys.exit(0 if failed == 0 else 1)
