"""
Versioned JSON documents for backing up and moving data between installs.

Two documents exist: the library export (saved addons only) and the account
export (accounts with optional plaintext credentials, plus the library).
Parsing validates the whole document before anything is returned, so a
malformed import never mutates state.
"""

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime

import pydantic

from addon_sync.core.library import AddonLibrary
from addon_sync.errors import ValidationError
from addon_sync.exporters.schemas import AccountDocument, LibraryDocument, SavedAddonSchema
from addon_sync.models.addon import AddonDescriptor
from addon_sync.models.library import SavedAddon, to_iso, utcnow

logger = logging.getLogger(__name__)

LIBRARY_EXPORT_VERSION = "1.0"
ACCOUNT_EXPORT_VERSION = "1.0.0"


@dataclass
class PortableAccount:
    """An account as it appears in an export: credentials in plaintext, if at all."""

    name: str
    addons: list[AddonDescriptor] = field(default_factory=list)
    email: str | None = None
    auth_key: str | None = None
    password: str | None = None

    def to_dict(self) -> dict:
        data = {"name": self.name, "addons": [a.to_dict() for a in self.addons]}
        for key, value in (("email", self.email), ("authKey", self.auth_key), ("password", self.password)):
            if value is not None:
                data[key] = value
        return data


def _load(raw: str | dict) -> dict:
    if isinstance(raw, dict):
        return raw
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValidationError(f"Invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ValidationError("Invalid export format: expected a JSON object")
    return data


def _validate(model: type[pydantic.BaseModel], data: dict):
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as e:
        messages = []
        for err in e.errors():
            loc = ".".join(str(part) for part in err["loc"])
            messages.append(f"{loc}: {err['msg']}" if loc else err["msg"])
        raise ValidationError("; ".join(messages)) from e


def _saved_addon_from_schema(entry: SavedAddonSchema) -> SavedAddon:
    return SavedAddon.from_dict(entry.model_dump(exclude_none=True))


# ──────────────────────────────────────────────
# Library document
# ──────────────────────────────────────────────


def export_library(library: AddonLibrary, now: datetime | None = None) -> dict:
    return {
        "version": LIBRARY_EXPORT_VERSION,
        "exportedAt": to_iso(now or utcnow()),
        "savedAddons": [s.to_dict() for s in library],
    }


def parse_library(raw: str | dict) -> list[SavedAddon]:
    document = _validate(LibraryDocument, _load(raw))
    return [_saved_addon_from_schema(entry) for entry in document.entries]


def import_saved_addons(library: AddonLibrary, saved_addons: list[SavedAddon], merge: bool) -> AddonLibrary:
    """
    Build the library resulting from an import.

    ``merge`` keeps the existing entries and gives imported ones fresh ids;
    otherwise the existing library is discarded and imported ids are kept.
    """
    result = library.copy() if merge else AddonLibrary()
    for saved_addon in saved_addons:
        if merge:
            saved_addon.id = str(uuid.uuid4())
        result.add(saved_addon)
    logger.info(f"Imported {len(saved_addons)} saved addons ({'merge' if merge else 'replace'})")
    return result


# ──────────────────────────────────────────────
# Account document
# ──────────────────────────────────────────────


def export_accounts(
    accounts: list[PortableAccount], library: AddonLibrary | None = None, now: datetime | None = None
) -> dict:
    data = {
        "version": ACCOUNT_EXPORT_VERSION,
        "exportedAt": to_iso(now or utcnow()),
        "accounts": [a.to_dict() for a in accounts],
    }
    if library is not None and len(library) > 0:
        data["savedAddons"] = [s.to_dict() for s in library]
    return data


def parse_accounts(raw: str | dict) -> tuple[list[PortableAccount], list[SavedAddon]]:
    document = _validate(AccountDocument, _load(raw))
    accounts = [
        PortableAccount(
            name=entry.name,
            email=entry.email,
            auth_key=entry.authKey,
            password=entry.password,
            addons=[AddonDescriptor.from_dict(a.model_dump(exclude_none=True)) for a in entry.addons],
        )
        for entry in document.accounts
    ]
    saved_addons = [_saved_addon_from_schema(e) for e in document.savedAddons or []]
    return accounts, saved_addons


def dumps(document: dict) -> str:
    return json.dumps(document, indent=2)
