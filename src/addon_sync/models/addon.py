"""
Addon model — manifests and descriptors as the remote service stores them.

An addon collection is an ordered list of ``AddonDescriptor`` objects.
Order matters: it is the display and priority order in the remote account.
Identity inside a collection is ``manifest.id``.
"""

from dataclasses import dataclass, field
from typing import Any

# Keys of a manifest that are modelled explicitly; everything else is kept in
# ``AddonManifest.extra`` so writing a collection back never drops data.
_MANIFEST_KEYS = (
    "id",
    "name",
    "version",
    "description",
    "logo",
    "background",
    "types",
    "catalogs",
    "resources",
    "idPrefixes",
    "behaviorHints",
)


@dataclass
class AddonManifest:
    """Manifest published by an addon at ``<transportUrl>/manifest.json``."""

    id: str
    name: str
    version: str
    description: str = ""
    logo: str | None = None
    background: str | None = None
    types: list[str] | None = None
    catalogs: list | None = None
    resources: list | None = None
    id_prefixes: list[str] | None = None
    behavior_hints: dict | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Serialize to the camelCase wire format, omitting absent fields."""
        data: dict[str, Any] = dict(self.extra)
        data.update(
            {
                "id": self.id,
                "name": self.name,
                "version": self.version,
                "description": self.description,
            }
        )
        optional = {
            "logo": self.logo,
            "background": self.background,
            "types": self.types,
            "catalogs": self.catalogs,
            "resources": self.resources,
            "idPrefixes": self.id_prefixes,
            "behaviorHints": self.behavior_hints,
        }
        for key, value in optional.items():
            if value is not None:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "AddonManifest":
        """Deserialize from the wire format. ``null`` optionals become absent."""
        return cls(
            id=data["id"],
            name=data["name"],
            version=data["version"],
            description=data.get("description") or "",
            logo=data.get("logo"),
            background=data.get("background"),
            types=data.get("types"),
            catalogs=data.get("catalogs"),
            resources=data.get("resources"),
            id_prefixes=data.get("idPrefixes"),
            behavior_hints=data.get("behaviorHints"),
            extra={k: v for k, v in data.items() if k not in _MANIFEST_KEYS},
        )


@dataclass
class AddonFlags:
    official: bool = False
    protected: bool = False

    def to_dict(self) -> dict:
        return {"official": self.official, "protected": self.protected}

    @classmethod
    def from_dict(cls, data: dict | None) -> "AddonFlags | None":
        if data is None:
            return None
        return cls(
            official=bool(data.get("official", False)),
            protected=bool(data.get("protected", False)),
        )


@dataclass
class AddonDescriptor:
    """An addon as installed in a remote account collection."""

    transport_url: str
    manifest: AddonManifest
    transport_name: str | None = None
    flags: AddonFlags | None = None

    @property
    def addon_id(self) -> str:
        return self.manifest.id

    @property
    def is_protected(self) -> bool:
        return bool(self.flags and self.flags.protected)

    @property
    def is_official(self) -> bool:
        return bool(self.flags and self.flags.official)

    def to_dict(self) -> dict:
        data: dict[str, Any] = {
            "transportUrl": self.transport_url,
            "manifest": self.manifest.to_dict(),
        }
        if self.transport_name is not None:
            data["transportName"] = self.transport_name
        if self.flags is not None:
            data["flags"] = self.flags.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "AddonDescriptor":
        return cls(
            transport_url=data["transportUrl"],
            manifest=AddonManifest.from_dict(data["manifest"]),
            transport_name=data.get("transportName"),
            flags=AddonFlags.from_dict(data.get("flags")),
        )


def find_addon_index(collection: list[AddonDescriptor], addon_id: str) -> int:
    """Return the index of ``addon_id`` in ``collection`` or -1."""
    for index, addon in enumerate(collection):
        if addon.addon_id == addon_id:
            return index
    return -1
