"""
Collaborator protocols — the remote API, the credential cipher and storage.

The engine depends only on these. Concrete implementations live in
``addon_sync.clients``, ``addon_sync.security`` and ``addon_sync.storage``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from addon_sync.models.addon import AddonDescriptor

STORAGE_NAMESPACE = "addon-sync"
LIBRARY_KEY = f"{STORAGE_NAMESPACE}:library"
ACCOUNT_STATES_KEY = f"{STORAGE_NAMESPACE}:account-states"
ACCOUNTS_KEY = f"{STORAGE_NAMESPACE}:accounts"


@dataclass
class LoginResult:
    auth_key: str
    user_id: str
    email: str


@runtime_checkable
class AddonApi(Protocol):
    """
    Remote addon-collection service.

    Collection calls raise ``UnauthorizedError`` for a bad credential and
    ``NetworkError`` otherwise. ``fetch_addon_manifest`` raises
    ``ManifestNotFoundError`` without retrying, or ``NetworkError`` /
    ``ParseError`` after its bounded retries. ``check_reachable`` never raises.
    """

    async def login(self, email: str, password: str) -> LoginResult:
        ...

    async def get_addon_collection(self, auth_key: str) -> list[AddonDescriptor]:
        ...

    async def set_addon_collection(self, auth_key: str, addons: list[AddonDescriptor]) -> None:
        ...

    async def fetch_addon_manifest(self, url: str) -> AddonDescriptor:
        ...

    async def check_reachable(self, url: str) -> bool:
        ...


@runtime_checkable
class CredentialCipher(Protocol):
    """Encrypts stored credentials with the session key; ``LockedError`` without one."""

    async def encrypt(self, plaintext: str) -> str:
        ...

    async def decrypt(self, ciphertext: str) -> str:
        ...


@runtime_checkable
class StateStorage(Protocol):
    """Opaque key-value persistence for JSON-compatible values."""

    async def load(self, key: str) -> Any | None:
        ...

    async def save(self, key: str, value: Any) -> None:
        ...
