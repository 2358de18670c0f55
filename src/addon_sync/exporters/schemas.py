"""Validation schemas for import documents."""

from __future__ import annotations

import re
from typing import Literal
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from addon_sync.models.library import from_iso

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class ManifestSchema(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    name: str
    version: str
    description: str
    logo: str | None = None
    background: str | None = None
    types: list[str] | None = None
    catalogs: list | None = None
    resources: list | None = None
    idPrefixes: list[str] | None = None
    behaviorHints: dict | None = None


class FlagsSchema(BaseModel):
    official: bool | None = None
    protected: bool | None = None


class DescriptorSchema(BaseModel):
    transportUrl: str
    transportName: str | None = None
    manifest: ManifestSchema
    flags: FlagsSchema | None = None

    @field_validator("transportUrl")
    @classmethod
    def _check_url(cls, value: str) -> str:
        parsed = urlparse(value)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError(f"not a URL: {value!r}")
        return value


class HealthSchema(BaseModel):
    isOnline: bool
    lastChecked: float


class SavedAddonSchema(BaseModel):
    id: str
    name: str
    installUrl: str
    manifest: ManifestSchema
    tags: list[str]
    createdAt: str
    updatedAt: str
    lastUsed: str | None = None
    sourceType: Literal["manual", "cloned-from-account"]
    sourceAccountId: str | None = None
    health: HealthSchema | None = None

    @field_validator("createdAt", "updatedAt", "lastUsed")
    @classmethod
    def _check_timestamp(cls, value: str | None) -> str | None:
        if value is not None:
            from_iso(value)
        return value


class LibraryDocument(BaseModel):
    """Library export. Older exports carry ``templates`` instead of ``savedAddons``."""

    version: str | None = None
    exportedAt: str | None = None
    savedAddons: list[SavedAddonSchema] | None = None
    templates: list[SavedAddonSchema] | None = None

    @model_validator(mode="after")
    def _require_entries(self) -> LibraryDocument:
        if self.savedAddons is None and self.templates is None:
            raise ValueError("Invalid export format: no savedAddons")
        return self

    @property
    def entries(self) -> list[SavedAddonSchema]:
        return self.savedAddons if self.savedAddons is not None else (self.templates or [])


class AccountEntrySchema(BaseModel):
    name: str
    email: str | None = None
    authKey: str | None = None
    password: str | None = None
    addons: list[DescriptorSchema]

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: str | None) -> str | None:
        if value is not None and not _EMAIL_RE.match(value):
            raise ValueError(f"invalid email address: {value!r}")
        return value


class AccountDocument(BaseModel):
    # Legacy debrid configuration keys are accepted and ignored.
    model_config = ConfigDict(extra="ignore")

    version: str
    exportedAt: str
    accounts: list[AccountEntrySchema]
    savedAddons: list[SavedAddonSchema] | None = None
