"""Shared fixtures: in-memory collaborators and addon builders."""

import copy
import json

import pytest

from addon_sync.core.accounts import AccountRegistry
from addon_sync.core.interfaces import LoginResult
from addon_sync.core.library import AddonLibrary
from addon_sync.core.manager import AddonManager
from addon_sync.errors import LockedError, ManifestNotFoundError, UnauthorizedError
from addon_sync.models.account import AccountRef
from addon_sync.models.addon import AddonDescriptor, AddonFlags, AddonManifest


def make_manifest(addon_id: str, version: str = "1.0.0", name: str | None = None) -> AddonManifest:
    return AddonManifest(id=addon_id, name=name or addon_id.split(".")[-1].title(), version=version)


def make_addon(
    addon_id: str,
    url: str | None = None,
    version: str = "1.0.0",
    protected: bool = False,
    official: bool = False,
) -> AddonDescriptor:
    flags = AddonFlags(official=official, protected=protected) if (protected or official) else None
    return AddonDescriptor(
        transport_url=url or f"https://{addon_id}.example.org/manifest.json",
        manifest=make_manifest(addon_id, version),
        flags=flags,
    )


def ids(collection: list[AddonDescriptor]) -> list[str]:
    return [a.manifest.id for a in collection]


class FakeApi:
    """In-memory remote service. Collections are keyed by plaintext auth key."""

    def __init__(self):
        self.collections: dict[str, list[AddonDescriptor]] = {}
        self.manifests: dict[str, AddonDescriptor | Exception] = {}
        self.unreachable: set[str] = set()
        self.failing_keys: dict[str, Exception] = {}
        self.logins: dict[tuple[str, str], str] = {}
        self.calls: list[tuple[str, str]] = []

    def _check(self, auth_key: str) -> None:
        if auth_key in self.failing_keys:
            raise self.failing_keys[auth_key]
        if auth_key not in self.collections:
            raise UnauthorizedError("Invalid or expired auth key")

    async def login(self, email: str, password: str) -> LoginResult:
        self.calls.append(("login", email))
        auth_key = self.logins.get((email, password))
        if auth_key is None:
            raise UnauthorizedError("Invalid email or password")
        return LoginResult(auth_key=auth_key, user_id="user-1", email=email)

    async def get_addon_collection(self, auth_key: str) -> list[AddonDescriptor]:
        self.calls.append(("get", auth_key))
        self._check(auth_key)
        return copy.deepcopy(self.collections[auth_key])

    async def set_addon_collection(self, auth_key: str, addons: list[AddonDescriptor]) -> None:
        self.calls.append(("set", auth_key))
        self._check(auth_key)
        self.collections[auth_key] = copy.deepcopy(addons)

    async def fetch_addon_manifest(self, url: str) -> AddonDescriptor:
        self.calls.append(("fetch", url))
        entry = self.manifests.get(url)
        if entry is None:
            raise ManifestNotFoundError("Addon manifest not found at this URL")
        if isinstance(entry, Exception):
            raise entry
        return copy.deepcopy(entry)

    async def check_reachable(self, url: str) -> bool:
        return url not in self.unreachable

    def publish(self, addon: AddonDescriptor) -> AddonDescriptor:
        """Make ``addon`` fetchable at its transport URL."""
        self.manifests[addon.transport_url] = addon
        return addon

    def writes(self) -> list[str]:
        return [key for call, key in self.calls if call == "set"]


class FakeCipher:
    """Reversible stand-in cipher that can be locked."""

    def __init__(self):
        self.locked = False

    async def encrypt(self, plaintext: str) -> str:
        if self.locked:
            raise LockedError("App is locked")
        return f"enc:{plaintext}"

    async def decrypt(self, ciphertext: str) -> str:
        if self.locked:
            raise LockedError("App is locked")
        return ciphertext.removeprefix("enc:")


class MemoryStorage:
    """Key-value storage that keeps JSON-serialized copies, like the file store."""

    def __init__(self):
        self.data: dict[str, str] = {}

    async def load(self, key: str):
        raw = self.data.get(key)
        return json.loads(raw) if raw is not None else None

    async def save(self, key: str, value) -> None:
        self.data[key] = json.dumps(value)


def account_ref(account_id: str, auth_key: str | None = None) -> AccountRef:
    return AccountRef(id=account_id, auth_key=f"enc:{auth_key or account_id}")


@pytest.fixture
def api():
    return FakeApi()


@pytest.fixture
def cipher():
    return FakeCipher()


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def manager(api, cipher, storage):
    return AddonManager(api=api, cipher=cipher, storage=storage)


@pytest.fixture
def registry(api, cipher, storage):
    return AccountRegistry(api=api, cipher=cipher, storage=storage)


@pytest.fixture
def library():
    lib = AddonLibrary()
    lib.create("Torrentio", "https://torrentio.example.org/manifest.json", make_manifest("org.torrentio", "0.0.14"), ["debrid", "Streams"])
    lib.create("Cinemeta", "https://cinemeta.example.org/manifest.json", make_manifest("com.cinemeta", "3.0.0"), ["catalogs"])
    return lib
