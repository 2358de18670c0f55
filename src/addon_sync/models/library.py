"""
Library and provenance models.

``SavedAddon`` is a reusable template kept in the local library.
``AccountAddonState`` is the per-account ledger linking installed addons back
to the library entries they came from. Provenance is advisory: deleting a
saved addon never touches accounts where it was applied.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone

from addon_sync.models.addon import AddonManifest

SOURCE_MANUAL = "manual"
SOURCE_CLONED = "cloned-from-account"

INSTALLED_VIA_SAVED = "saved-addon"
INSTALLED_VIA_MANUAL = "manual"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def from_iso(value: str | datetime | None) -> datetime | None:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if value is None:
        return None
    parsed = value if isinstance(value, datetime) else datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class AddonHealth:
    is_online: bool
    last_checked: int  # epoch milliseconds

    def to_dict(self) -> dict:
        return {"isOnline": self.is_online, "lastChecked": self.last_checked}

    @classmethod
    def from_dict(cls, data: dict | None) -> "AddonHealth | None":
        if data is None:
            return None
        return cls(is_online=bool(data["isOnline"]), last_checked=int(data["lastChecked"]))


@dataclass
class SavedAddon:
    """A library template: an install URL plus the manifest captured for it."""

    id: str
    name: str
    install_url: str
    manifest: AddonManifest
    tags: list[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    last_used: datetime | None = None
    source_type: str = SOURCE_MANUAL
    source_account_id: str | None = None
    health: AddonHealth | None = None

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "installUrl": self.install_url,
            "manifest": self.manifest.to_dict(),
            "tags": list(self.tags),
            "createdAt": to_iso(self.created_at),
            "updatedAt": to_iso(self.updated_at),
            "sourceType": self.source_type,
        }
        if self.last_used is not None:
            data["lastUsed"] = to_iso(self.last_used)
        if self.source_account_id is not None:
            data["sourceAccountId"] = self.source_account_id
        if self.health is not None:
            data["health"] = self.health.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "SavedAddon":
        return cls(
            id=data["id"],
            name=data["name"],
            install_url=data["installUrl"],
            manifest=AddonManifest.from_dict(data["manifest"]),
            tags=list(data.get("tags", [])),
            created_at=from_iso(data.get("createdAt")) or utcnow(),
            updated_at=from_iso(data.get("updatedAt")) or utcnow(),
            last_used=from_iso(data.get("lastUsed")),
            source_type=data.get("sourceType", SOURCE_MANUAL),
            source_account_id=data.get("sourceAccountId"),
            health=AddonHealth.from_dict(data.get("health")),
        )


@dataclass
class InstalledAddon:
    """Provenance of one addon installed in one account."""

    saved_addon_id: str | None
    addon_id: str
    install_url: str
    installed_at: datetime
    installed_via: str = INSTALLED_VIA_MANUAL
    applied_tags: list[str] | None = None

    def to_dict(self) -> dict:
        data = {
            "savedAddonId": self.saved_addon_id,
            "addonId": self.addon_id,
            "installUrl": self.install_url,
            "installedAt": to_iso(self.installed_at),
            "installedVia": self.installed_via,
        }
        if self.applied_tags is not None:
            data["appliedTags"] = list(self.applied_tags)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "InstalledAddon":
        applied = data.get("appliedTags")
        return cls(
            saved_addon_id=data.get("savedAddonId"),
            addon_id=data["addonId"],
            install_url=data["installUrl"],
            installed_at=from_iso(data["installedAt"]),
            installed_via=data.get("installedVia", INSTALLED_VIA_MANUAL),
            applied_tags=list(applied) if applied is not None else None,
        )


@dataclass
class AccountAddonState:
    """Per-account ledger, rebuilt from the live collection on every sync."""

    account_id: str
    installed_addons: list[InstalledAddon]
    last_sync: datetime

    def find(self, addon_id: str) -> InstalledAddon | None:
        return next((a for a in self.installed_addons if a.addon_id == addon_id), None)

    def to_dict(self) -> dict:
        return {
            "accountId": self.account_id,
            "installedAddons": [a.to_dict() for a in self.installed_addons],
            "lastSync": to_iso(self.last_sync),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AccountAddonState":
        return cls(
            account_id=data["accountId"],
            installed_addons=[InstalledAddon.from_dict(a) for a in data.get("installedAddons", [])],
            last_sync=from_iso(data["lastSync"]),
        )
