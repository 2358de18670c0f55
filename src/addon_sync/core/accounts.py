"""
Account registry — remote accounts, their encrypted credentials and status.

Single-account operations propagate failures to the caller; ``sync_all``
isolates them per account. A failed sync marks the account ``error``.
"""

import logging
import uuid

from addon_sync.core.interfaces import ACCOUNTS_KEY, AddonApi, CredentialCipher, StateStorage
from addon_sync.core.library import AddonLibrary
from addon_sync.core.tasks import CancellationToken, TaskQueue, WorkUnit
from addon_sync.errors import NotFoundError, ValidationError
from addon_sync.exporters import documents
from addon_sync.models.account import STATUS_ACTIVE, STATUS_ERROR, Account, AccountRef
from addon_sync.models.addon import AddonDescriptor, find_addon_index
from addon_sync.models.library import SavedAddon, utcnow
from addon_sync.models.results import BulkResult

logger = logging.getLogger(__name__)


class AccountRegistry:
    def __init__(self, api: AddonApi, cipher: CredentialCipher, storage: StateStorage):
        self.api = api
        self.cipher = cipher
        self.storage = storage
        self.accounts: list[Account] = []

    async def initialize(self) -> None:
        raw = await self.storage.load(ACCOUNTS_KEY) or []
        self.accounts = [Account.from_dict(a) for a in raw]
        logger.info(f"Loaded {len(self.accounts)} accounts")

    async def _save(self) -> None:
        await self.storage.save(ACCOUNTS_KEY, [a.to_dict() for a in self.accounts])

    # ──────────────────────────────────────────────
    # Lookup
    # ──────────────────────────────────────────────

    def get(self, account_id: str) -> Account | None:
        return next((a for a in self.accounts if a.id == account_id), None)

    def require(self, account_id: str) -> Account:
        account = self.get(account_id)
        if account is None:
            raise NotFoundError(f"Account not found: {account_id}")
        return account

    def refs(self, account_ids: list[str] | None = None) -> list[AccountRef]:
        """Bulk-operation handles for the given ids (all accounts when None)."""
        if account_ids is None:
            return [a.ref() for a in self.accounts]
        return [self.require(i).ref() for i in account_ids]

    # ──────────────────────────────────────────────
    # Add / update / remove
    # ──────────────────────────────────────────────

    async def add_by_auth_key(self, auth_key: str, name: str) -> Account:
        """Register an account. The key is validated by fetching its collection."""
        addons = await self.api.get_addon_collection(auth_key)
        account = Account(
            id=str(uuid.uuid4()),
            name=name,
            auth_key=await self.cipher.encrypt(auth_key),
            addons=addons,
            last_sync=utcnow(),
            status=STATUS_ACTIVE,
        )
        self.accounts.append(account)
        await self._save()
        return account

    async def add_by_credentials(self, email: str, password: str, name: str | None = None) -> Account:
        login = await self.api.login(email, password)
        addons = await self.api.get_addon_collection(login.auth_key)
        account = Account(
            id=str(uuid.uuid4()),
            name=name or email,
            email=email,
            auth_key=await self.cipher.encrypt(login.auth_key),
            password=await self.cipher.encrypt(password),
            addons=addons,
            last_sync=utcnow(),
            status=STATUS_ACTIVE,
        )
        self.accounts.append(account)
        await self._save()
        return account

    async def update(
        self,
        account_id: str,
        name: str | None = None,
        auth_key: str | None = None,
        email: str | None = None,
        password: str | None = None,
    ) -> Account:
        """Rename an account and optionally replace its credentials (re-validated)."""
        account = self.require(account_id)
        if name is not None:
            account.name = name

        new_key = None
        if auth_key:
            new_key = auth_key
        elif email and password:
            new_key = (await self.api.login(email, password)).auth_key
            account.email = email
            account.password = await self.cipher.encrypt(password)

        if new_key is not None:
            account.addons = await self.api.get_addon_collection(new_key)
            account.auth_key = await self.cipher.encrypt(new_key)
            account.status = STATUS_ACTIVE
            account.last_sync = utcnow()

        await self._save()
        return account

    async def remove(self, account_id: str) -> Account:
        account = self.require(account_id)
        self.accounts = [a for a in self.accounts if a.id != account_id]
        await self._save()
        return account

    # ──────────────────────────────────────────────
    # Sync
    # ──────────────────────────────────────────────

    async def sync(self, account_id: str) -> Account:
        """Refresh the cached collection. On failure the account is marked ``error``."""
        account = self.require(account_id)
        try:
            auth_key = await self.cipher.decrypt(account.auth_key)
            account.addons = await self.api.get_addon_collection(auth_key)
        except Exception as e:
            account.status = STATUS_ERROR
            await self._save()
            logger.warning(f"[Sync] Unable to sync {account.name!r}: {e}")
            raise
        account.status = STATUS_ACTIVE
        account.last_sync = utcnow()
        await self._save()
        return account

    async def sync_all(self, token: CancellationToken | None = None) -> BulkResult:
        queue = TaskQueue(token=token)
        outcomes = await queue.run(
            [WorkUnit(key=a.id, run=lambda a=a: self.sync(a.id)) for a in self.accounts]
        )
        result = BulkResult()
        for outcome in outcomes:
            if outcome.ok:
                result.record_success(outcome.key)
            else:
                result.record_failure(outcome.key, outcome.error or "Unknown error")
        return result

    # ──────────────────────────────────────────────
    # Single-account addon edits
    # ──────────────────────────────────────────────

    async def _write(self, account: Account, auth_key: str, addons: list[AddonDescriptor]) -> list[AddonDescriptor]:
        await self.api.set_addon_collection(auth_key, addons)
        account.addons = addons
        account.last_sync = utcnow()
        await self._save()
        return addons

    async def install_addon(self, account_id: str, url: str) -> list[AddonDescriptor]:
        """Install by URL; an addon with the same id is replaced in place."""
        account = self.require(account_id)
        auth_key = await self.cipher.decrypt(account.auth_key)
        new_addon = await self.api.fetch_addon_manifest(url)
        addons = await self.api.get_addon_collection(auth_key)

        index = find_addon_index(addons, new_addon.manifest.id)
        if index >= 0:
            addons[index] = new_addon
        else:
            addons.append(new_addon)
        return await self._write(account, auth_key, addons)

    async def remove_addon(self, account_id: str, addon_id: str) -> list[AddonDescriptor]:
        account = self.require(account_id)
        auth_key = await self.cipher.decrypt(account.auth_key)
        addons = await self.api.get_addon_collection(auth_key)
        return await self._write(account, auth_key, [a for a in addons if a.manifest.id != addon_id])

    async def reorder_addons(self, account_id: str, addon_ids: list[str]) -> list[AddonDescriptor]:
        """Write the collection back in ``addon_ids`` order (must list every addon once)."""
        account = self.require(account_id)
        auth_key = await self.cipher.decrypt(account.auth_key)
        addons = await self.api.get_addon_collection(auth_key)

        by_id = {a.manifest.id: a for a in addons}
        if sorted(addon_ids) != sorted(by_id) or len(set(addon_ids)) != len(addon_ids):
            raise ValidationError("New order must list every installed addon exactly once")
        return await self._write(account, auth_key, [by_id[i] for i in addon_ids])

    # ──────────────────────────────────────────────
    # Import/Export
    # ──────────────────────────────────────────────

    async def export_accounts(self, include_credentials: bool, library: AddonLibrary | None = None) -> str:
        portable = []
        for account in self.accounts:
            entry = documents.PortableAccount(name=account.name, email=account.email, addons=account.addons)
            if include_credentials:
                entry.auth_key = await self.cipher.decrypt(account.auth_key) if account.auth_key else None
                entry.password = await self.cipher.decrypt(account.password) if account.password else None
            portable.append(entry)
        return documents.dumps(documents.export_accounts(portable, library))

    async def import_accounts(self, raw: str | dict) -> tuple[list[Account], list[SavedAddon]]:
        """
        Append the document's accounts with fresh ids.

        Returns the new accounts and the document's saved addons; merging the
        latter into a library is left to the caller.
        """
        portable, saved_addons = documents.parse_accounts(raw)

        new_accounts = []
        for entry in portable:
            new_accounts.append(
                Account(
                    id=str(uuid.uuid4()),
                    name=entry.name,
                    email=entry.email,
                    auth_key=await self.cipher.encrypt(entry.auth_key) if entry.auth_key else "",
                    password=await self.cipher.encrypt(entry.password) if entry.password else None,
                    addons=entry.addons,
                    last_sync=utcnow(),
                    status=STATUS_ACTIVE,
                )
            )

        self.accounts.extend(new_accounts)
        await self._save()
        logger.info(f"Imported {len(new_accounts)} accounts")
        return new_accounts, saved_addons
