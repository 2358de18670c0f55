"""
Operation reports: merge outcomes, bulk aggregates, update checks, reinstalls.
"""

from dataclasses import dataclass, field

from addon_sync.models.addon import AddonDescriptor


@dataclass
class AddonRef:
    addon_id: str
    name: str

    def to_dict(self) -> dict:
        return {"addonId": self.addon_id, "name": self.name}


@dataclass
class MergeResult:
    """Per-addon outcome log of one merge (or removal) against one collection."""

    added: list[AddonRef] = field(default_factory=list)
    updated: list[AddonRef] = field(default_factory=list)
    skipped: list[AddonRef] = field(default_factory=list)
    protected: list[AddonRef] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "added": [r.to_dict() for r in self.added],
            "updated": [r.to_dict() for r in self.updated],
            "skipped": [r.to_dict() for r in self.skipped],
            "protected": [r.to_dict() for r in self.protected],
        }


@dataclass
class AccountError:
    account_id: str
    error: str

    def to_dict(self) -> dict:
        return {"accountId": self.account_id, "error": self.error}


@dataclass
class AccountDetail:
    account_id: str
    result: MergeResult

    def to_dict(self) -> dict:
        return {"accountId": self.account_id, "result": self.result.to_dict()}


@dataclass
class BulkResult:
    """
    Aggregate of a multi-account operation.

    ``success + failed`` always equals the number of accounts submitted.
    """

    success: int = 0
    failed: int = 0
    errors: list[AccountError] = field(default_factory=list)
    details: list[AccountDetail] = field(default_factory=list)

    def record_success(self, account_id: str, result: MergeResult | None = None) -> None:
        self.success += 1
        if result is not None:
            self.details.append(AccountDetail(account_id=account_id, result=result))

    def record_failure(self, account_id: str, error: str) -> None:
        self.failed += 1
        self.errors.append(AccountError(account_id=account_id, error=error))

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "failed": self.failed,
            "errors": [e.to_dict() for e in self.errors],
            "details": [d.to_dict() for d in self.details],
        }


@dataclass
class UpdateInfo:
    addon_id: str
    name: str
    transport_url: str
    installed_version: str
    latest_version: str
    has_update: bool
    is_online: bool

    def to_dict(self) -> dict:
        return {
            "addonId": self.addon_id,
            "name": self.name,
            "transportUrl": self.transport_url,
            "installedVersion": self.installed_version,
            "latestVersion": self.latest_version,
            "hasUpdate": self.has_update,
            "isOnline": self.is_online,
        }


@dataclass
class ReinstallResult:
    addons: list[AddonDescriptor]
    updated_addon: AddonDescriptor | None = None
    previous_version: str | None = None
    new_version: str | None = None
