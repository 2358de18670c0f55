"""
Error taxonomy shared by the engine, the collaborators and the CLI.

Protected-addon outcomes are never raised; they are reported as data in
``MergeResult.protected`` and in the removal engine's protected id list.
"""


class AddonSyncError(Exception):
    """Base exception for addon-sync."""


class NotFoundError(AddonSyncError):
    """A saved addon, account or tag could not be resolved locally."""


class LockedError(AddonSyncError):
    """No session key is available to decrypt stored credentials."""


class UnauthorizedError(AddonSyncError):
    """The remote service rejected the credential (invalid or expired)."""


class NetworkError(AddonSyncError):
    """Transient transport failure talking to the remote service or an addon."""


class ManifestNotFoundError(NotFoundError):
    """The addon manifest URL answered 404. Never retried."""


class ParseError(NetworkError):
    """The manifest body was not valid JSON or lacked required fields."""


class ValidationError(AddonSyncError):
    """Malformed import/export data. Raised before any state is mutated."""


class ReinstallInterruptedError(AddonSyncError):
    """
    A reinstall failed after the addon was already removed.

    The remote account no longer holds the addon; ``transport_url`` is the
    URL that has to be installed again to recover.
    """

    def __init__(self, message: str, addon_id: str, transport_url: str):
        self.addon_id = addon_id
        self.transport_url = transport_url
        super().__init__(message)
