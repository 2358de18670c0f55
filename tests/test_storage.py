"""Tests for JSON file storage."""

import pytest

from addon_sync.core.interfaces import LIBRARY_KEY
from addon_sync.storage.json_store import JSONFileStorage


class TestJSONFileStorage:
    def test_creates_data_dir(self, tmp_path):
        JSONFileStorage(tmp_path / "nested" / "data")
        assert (tmp_path / "nested" / "data").is_dir()

    def test_key_to_path(self, tmp_path):
        storage = JSONFileStorage(tmp_path)
        assert storage.path_for(LIBRARY_KEY).name == "addon-sync_library.json"

    @pytest.mark.asyncio
    async def test_missing_key(self, tmp_path):
        assert await JSONFileStorage(tmp_path).load("addon-sync:nothing") is None

    @pytest.mark.asyncio
    async def test_save_and_load(self, tmp_path):
        storage = JSONFileStorage(tmp_path)
        await storage.save(LIBRARY_KEY, {"s1": {"name": "Torrentio", "tags": ["debrid"]}})

        assert await storage.load(LIBRARY_KEY) == {"s1": {"name": "Torrentio", "tags": ["debrid"]}}
        assert list(tmp_path.glob("*.tmp")) == []

    @pytest.mark.asyncio
    async def test_overwrite(self, tmp_path):
        storage = JSONFileStorage(tmp_path)
        await storage.save("k", [1])
        await storage.save("k", [2])
        assert await storage.load("k") == [2]

    @pytest.mark.asyncio
    async def test_empty_file(self, tmp_path):
        storage = JSONFileStorage(tmp_path)
        storage.path_for("k").write_text("")
        assert await storage.load("k") is None
