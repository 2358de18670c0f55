"""
JSON file storage — one file per storage key under a data directory.

Keys such as ``addon-sync:library`` map to ``addon-sync_library.json``.
Writes go to a temporary file that is then moved over the target.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any

import aiofiles

logger = logging.getLogger(__name__)


class JSONFileStorage:
    """``StateStorage`` implementation writing JSON files with aiofiles."""

    def __init__(self, data_dir: Path):
        self.data_dir = data_dir
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, key: str) -> Path:
        safe = "".join(c if c.isalnum() or c in "-." else "_" for c in key)
        return self.data_dir / f"{safe}.json"

    async def load(self, key: str) -> Any | None:
        path = self.path_for(key)
        if not path.exists():
            return None
        async with aiofiles.open(path) as f:
            content = await f.read()
        if not content.strip():
            return None
        return json.loads(content)

    async def save(self, key: str, value: Any) -> None:
        path = self.path_for(key)
        tmp_path = path.with_suffix(".json.tmp")
        async with aiofiles.open(tmp_path, "w") as f:
            await f.write(json.dumps(value, indent=2))
        os.replace(tmp_path, path)
        logger.debug(f"[Storage] Saved {key} to {path}")
