"""
Example: Apply every saved addon with a tag to all registered accounts.

Usage:
    export ADDON_SYNC_MASTER_PASSWORD=your_master_password
    python examples/bulk_apply_tag.py debrid
"""

import asyncio
import os
import sys

from addon_sync.cli.session import Session
from addon_sync.config import Settings


async def main(tag: str):
    settings = Settings.from_env()

    async with Session(settings, os.environ.get("ADDON_SYNC_MASTER_PASSWORD")) as session:
        # Refresh provenance first so auto-linking sees the current collections
        await session.manager.sync_all_account_states(session.registry.refs())

        result = await session.manager.bulk_apply_tag(tag, session.registry.refs(), strategy="add-only")

    for detail in result.details:
        added = ", ".join(r.name for r in detail.result.added) or "nothing"
        print(f"{detail.account_id}: added {added}")
    for error in result.errors:
        print(f"{error.account_id}: FAILED ({error.error})")

    print(f"\n✅ {result.success} accounts updated, {result.failed} failed")


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else "debrid"))
