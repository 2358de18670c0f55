"""
Library store — CRUD over saved addon templates, tag index, URL lookup.

The library is an insertion-ordered mapping of saved addon id to
``SavedAddon``. It only holds state; persisting it is the caller's job.
"""

import logging
import re
import uuid
from datetime import datetime

from addon_sync.errors import NotFoundError, ValidationError
from addon_sync.models.addon import AddonManifest
from addon_sync.models.library import SOURCE_MANUAL, AddonHealth, SavedAddon, utcnow

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_tag(tag: str) -> str:
    """Trim, lower-case and join inner whitespace with ``-``."""
    return _WHITESPACE_RE.sub("-", tag.strip().lower())


def normalize_tags(tags: list[str]) -> list[str]:
    """Normalize, drop empties and deduplicate keeping first occurrence."""
    seen: list[str] = []
    for tag in tags:
        normalized = normalize_tag(tag)
        if normalized and normalized not in seen:
            seen.append(normalized)
    return seen


class AddonLibrary:
    """Saved addon templates keyed by id."""

    def __init__(self, saved_addons: dict[str, SavedAddon] | None = None):
        self._items: dict[str, SavedAddon] = dict(saved_addons or {})

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, saved_addon_id: object) -> bool:
        return saved_addon_id in self._items

    def __iter__(self):
        return iter(self._items.values())

    def values(self) -> list[SavedAddon]:
        return list(self._items.values())

    def copy(self) -> "AddonLibrary":
        return AddonLibrary(self._items)

    # ──────────────────────────────────────────────
    # CRUD
    # ──────────────────────────────────────────────

    def get(self, saved_addon_id: str) -> SavedAddon | None:
        return self._items.get(saved_addon_id)

    def require(self, saved_addon_id: str) -> SavedAddon:
        saved_addon = self._items.get(saved_addon_id)
        if saved_addon is None:
            raise NotFoundError(f"Saved addon not found: {saved_addon_id}")
        return saved_addon

    def create(
        self,
        name: str,
        install_url: str,
        manifest: AddonManifest,
        tags: list[str] | None = None,
        source_type: str = SOURCE_MANUAL,
        source_account_id: str | None = None,
    ) -> SavedAddon:
        now = utcnow()
        saved_addon = SavedAddon(
            id=str(uuid.uuid4()),
            name=name.strip(),
            install_url=install_url,
            manifest=manifest,
            tags=normalize_tags(tags or []),
            created_at=now,
            updated_at=now,
            source_type=source_type,
            source_account_id=source_account_id,
        )
        self._items[saved_addon.id] = saved_addon
        logger.debug(f"[Library] Created {saved_addon.id} ({saved_addon.name})")
        return saved_addon

    def add(self, saved_addon: SavedAddon) -> None:
        self._items[saved_addon.id] = saved_addon

    def update(
        self,
        saved_addon_id: str,
        name: str | None = None,
        tags: list[str] | None = None,
        install_url: str | None = None,
        manifest: AddonManifest | None = None,
    ) -> SavedAddon:
        saved_addon = self.require(saved_addon_id)
        if name is not None:
            saved_addon.name = name.strip()
        if tags is not None:
            saved_addon.tags = normalize_tags(tags)
        if install_url is not None:
            saved_addon.install_url = install_url
        if manifest is not None:
            saved_addon.manifest = manifest
        saved_addon.updated_at = utcnow()
        return saved_addon

    def delete(self, saved_addon_id: str) -> SavedAddon:
        saved_addon = self.require(saved_addon_id)
        del self._items[saved_addon_id]
        return saved_addon

    # ──────────────────────────────────────────────
    # Tags
    # ──────────────────────────────────────────────

    def by_tag(self, tag: str) -> list[SavedAddon]:
        wanted = normalize_tag(tag)
        return [s for s in self._items.values() if any(normalize_tag(t) == wanted for t in s.tags)]

    def all_tags(self) -> list[str]:
        tags: set[str] = set()
        for saved_addon in self._items.values():
            tags.update(saved_addon.tags)
        return sorted(tags)

    def rename_tag(self, old_tag: str, new_tag: str) -> int:
        """Rename a tag on every template holding it. Returns how many changed."""
        old = normalize_tag(old_tag)
        new = normalize_tag(new_tag)
        if not new:
            raise ValidationError("Invalid new tag name")

        changed = 0
        for saved_addon in self._items.values():
            if not any(normalize_tag(t) == old for t in saved_addon.tags):
                continue
            renamed = [new if normalize_tag(t) == old else t for t in saved_addon.tags]
            saved_addon.tags = normalize_tags(renamed)
            saved_addon.updated_at = utcnow()
            changed += 1

        if changed:
            logger.info(f"[Library] Renamed tag {old!r} to {new!r} on {changed} saved addons")
        return changed

    # ──────────────────────────────────────────────
    # Provenance and bookkeeping
    # ──────────────────────────────────────────────

    def find_by_url(self, install_url: str) -> SavedAddon | None:
        """First template whose install URL equals ``install_url`` exactly."""
        return next((s for s in self._items.values() if s.install_url == install_url), None)

    def touch_last_used(self, saved_addon_ids: list[str], now: datetime | None = None) -> None:
        stamp = now or utcnow()
        for saved_addon_id in dict.fromkeys(saved_addon_ids):
            saved_addon = self._items.get(saved_addon_id)
            if saved_addon is not None:
                saved_addon.last_used = stamp

    def set_health(self, saved_addon_id: str, health: AddonHealth) -> None:
        saved_addon = self._items.get(saved_addon_id)
        if saved_addon is not None:
            saved_addon.health = health

    # ──────────────────────────────────────────────
    # Serialization
    # ──────────────────────────────────────────────

    def to_dict(self) -> dict:
        return {saved_id: s.to_dict() for saved_id, s in self._items.items()}

    @classmethod
    def from_dict(cls, data: dict | None) -> "AddonLibrary":
        items = {}
        for saved_id, raw in (data or {}).items():
            items[saved_id] = SavedAddon.from_dict(raw)
        return cls(items)
