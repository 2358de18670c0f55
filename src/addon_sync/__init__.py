"""
Addon Sync - addon collection reconciliation across multiple accounts.

Keeps a library of saved addon templates and applies, removes and re-syncs
them against the addon collections of remote accounts.
"""

__version__ = "1.0.0"


def __getattr__(name: str):
    """Lazy import for heavy dependencies."""
    if name == "AddonManager":
        from addon_sync.core.manager import AddonManager

        return AddonManager
    if name == "AccountRegistry":
        from addon_sync.core.accounts import AccountRegistry

        return AccountRegistry
    if name == "SavedAddon":
        from addon_sync.models.library import SavedAddon

        return SavedAddon
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = ["AddonManager", "AccountRegistry", "SavedAddon", "__version__"]
