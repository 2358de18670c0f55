"""Import/export documents for the library and the account list."""

from addon_sync.exporters.documents import (
    ACCOUNT_EXPORT_VERSION,
    LIBRARY_EXPORT_VERSION,
    PortableAccount,
    dumps,
    export_accounts,
    export_library,
    import_saved_addons,
    parse_accounts,
    parse_library,
)

__all__ = [
    "ACCOUNT_EXPORT_VERSION",
    "LIBRARY_EXPORT_VERSION",
    "PortableAccount",
    "dumps",
    "export_accounts",
    "export_library",
    "import_saved_addons",
    "parse_accounts",
    "parse_library",
]
