"""
Wiring for CLI commands: storage, HTTP client, cipher, manager and registry.
"""

import base64
import logging

from addon_sync.config import Settings
from addon_sync.core.accounts import AccountRegistry
from addon_sync.core.interfaces import STORAGE_NAMESPACE
from addon_sync.core.manager import AddonManager
from addon_sync.errors import LockedError
from addon_sync.security.cipher import FernetCipher, generate_salt
from addon_sync.storage.json_store import JSONFileStorage

logger = logging.getLogger(__name__)

AUTH_KEY = f"{STORAGE_NAMESPACE}:auth"


class Session:
    """Async context manager yielding a ready ``(manager, registry)`` pair."""

    def __init__(self, settings: Settings, password: str | None, on_account_done=None):
        self.settings = settings
        self.password = password
        self.on_account_done = on_account_done
        self.storage = JSONFileStorage(settings.data_dir)
        self.client = settings.create_client()
        self.manager: AddonManager | None = None
        self.registry: AccountRegistry | None = None

    async def _open_cipher(self) -> FernetCipher:
        record = await self.storage.load(AUTH_KEY)
        if record is None:
            cipher = FernetCipher(salt=generate_salt())
            if self.password is None:
                return cipher
            verifier = cipher.setup(self.password)
            await self.storage.save(
                AUTH_KEY,
                {"salt": base64.b64encode(cipher.salt).decode("ascii"), "verifier": verifier},
            )
            logger.info("Master password set up")
            return cipher

        cipher = FernetCipher(salt=base64.b64decode(record["salt"]), verifier=record.get("verifier"))
        if self.password is not None and not cipher.unlock(self.password):
            raise LockedError("Incorrect master password")
        return cipher

    async def __aenter__(self) -> "Session":
        try:
            cipher = await self._open_cipher()
        except Exception:
            await self.client.aclose()
            raise
        self.manager = AddonManager(
            api=self.client, cipher=cipher, storage=self.storage, on_account_done=self.on_account_done
        )
        self.registry = AccountRegistry(api=self.client, cipher=cipher, storage=self.storage)
        await self.manager.initialize()
        await self.registry.initialize()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.client.aclose()
