"""
Addon Sync CLI — manage addon collections across accounts.

Usage:
    addon-sync accounts add --name main --auth-key KEY
    addon-sync library add https://example.org/manifest.json --tag debrid
    addon-sync apply --tag debrid --strategy add-only
    addon-sync remove --addon-id org.example.addon --account ACCOUNT_ID
    addon-sync sync
    addon-sync updates ACCOUNT_ID
"""

import asyncio
import logging
from pathlib import Path

import click
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from addon_sync.config import Settings
from addon_sync.core.merger import MERGE_STRATEGIES, STRATEGY_REPLACE_MATCHING
from addon_sync.errors import AddonSyncError

console = Console()


def _run(ctx: click.Context, coro_factory, progress: bool = False):
    """Open a session, run ``coro_factory(session)`` and map errors to exit codes."""
    from addon_sync.cli.session import Session

    settings: Settings = ctx.obj["settings"]

    async def runner():
        if not progress:
            async with Session(settings, ctx.obj["password"]) as session:
                return await coro_factory(session)

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=console,
            transient=True,
        ) as bar:
            task_id = bar.add_task("[green]Processing accounts...[/green]", total=None)
            ctx.obj["set_total"] = lambda total: bar.update(task_id, total=total)
            async with Session(
                settings, ctx.obj["password"], on_account_done=lambda _outcome: bar.advance(task_id)
            ) as session:
                return await coro_factory(session)

    try:
        return asyncio.run(runner())
    except AddonSyncError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        ctx.exit(1)


def _print_bulk(result) -> None:
    table = Table(title="Accounts")
    table.add_column("Account")
    table.add_column("Added", justify="right")
    table.add_column("Updated", justify="right")
    table.add_column("Skipped", justify="right")
    table.add_column("Protected")
    for detail in result.details:
        r = detail.result
        table.add_row(
            detail.account_id,
            str(len(r.added)),
            str(len(r.updated)),
            str(len(r.skipped)),
            ", ".join(p.name for p in r.protected),
        )
    if result.details:
        console.print(table)
    for error in result.errors:
        console.print(f"[red]  {error.account_id}: {error.error}[/red]")
    console.print(f"\n[bold]Succeeded:[/bold] {result.success} | [bold]Failed:[/bold] {result.failed}")


@click.group()
@click.version_option(package_name="addon-sync")
@click.option(
    "--data-dir",
    "-d",
    type=click.Path(),
    envvar="ADDON_SYNC_DATA_DIR",
    default="./data",
    help="Directory holding the library, accounts and provenance files.",
)
@click.option("--api-url", envvar="ADDON_SYNC_API_URL", default=None, help="Remote API base URL.")
@click.option("--proxy-url", envvar="ADDON_SYNC_PROXY_URL", default=None, help="Proxy prefix for manifest fetches.")
@click.option(
    "--password",
    envvar="ADDON_SYNC_MASTER_PASSWORD",
    default=None,
    help="Master password used to encrypt stored credentials.",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging.")
@click.pass_context
def cli(ctx, data_dir, api_url, proxy_url, password, verbose):
    """Addon Sync — reconcile addon collections across accounts."""
    log_level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    settings = Settings.from_env()
    settings.data_dir = Path(data_dir)
    if api_url:
        settings.api_url = api_url
    if proxy_url is not None:
        settings.proxy_url = proxy_url
    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings
    ctx.obj["password"] = password


# ──────────────────────────────────────────────
# Accounts
# ──────────────────────────────────────────────


@cli.group()
def accounts():
    """Manage remote accounts."""


@accounts.command("list")
@click.pass_context
def accounts_list(ctx):
    """List registered accounts."""

    async def work(session):
        table = Table(title="Accounts")
        for column in ("ID", "Name", "Addons", "Status", "Last sync"):
            table.add_column(column)
        for account in session.registry.accounts:
            status = "[green]active[/green]" if account.status == "active" else "[red]error[/red]"
            table.add_row(account.id, account.name, str(len(account.addons)), status, account.last_sync.isoformat())
        console.print(table)

    _run(ctx, work)


@accounts.command("add")
@click.option("--name", "-n", required=True, help="Display name.")
@click.option("--auth-key", default=None, help="Existing auth key.")
@click.option("--email", default=None, help="Login email (with --login-password).")
@click.option("--login-password", default=None, help="Login password.")
@click.pass_context
def accounts_add(ctx, name, auth_key, email, login_password):
    """Register an account by auth key or by email and password."""
    if not auth_key and not (email and login_password):
        raise click.UsageError("Provide --auth-key or --email with --login-password.")

    async def work(session):
        if auth_key:
            account = await session.registry.add_by_auth_key(auth_key, name)
        else:
            account = await session.registry.add_by_credentials(email, login_password, name)
        await session.manager.sync_account_state(account.ref())
        console.print(f"[green]Added[/green] {account.name} ({account.id}) with {len(account.addons)} addons")

    _run(ctx, work)


@accounts.command("remove")
@click.argument("account_id")
@click.pass_context
def accounts_remove(ctx, account_id):
    """Forget an account and its provenance ledger."""

    async def work(session):
        account = await session.registry.remove(account_id)
        await session.manager.forget_account(account_id)
        console.print(f"Removed {account.name}")

    _run(ctx, work)


@accounts.command("export")
@click.option("--output", "-o", type=click.Path(), required=True)
@click.option("--include-credentials", is_flag=True, help="Write auth keys and passwords in plaintext.")
@click.pass_context
def accounts_export(ctx, output, include_credentials):
    """Export accounts and the library to a JSON document."""

    async def work(session):
        text = await session.registry.export_accounts(include_credentials, session.manager.library)
        Path(output).write_text(text)
        console.print(f"Exported {len(session.registry.accounts)} accounts to {output}")

    _run(ctx, work)


@accounts.command("import")
@click.argument("path", type=click.Path(exists=True))
@click.pass_context
def accounts_import(ctx, path):
    """Import accounts (and any saved addons) from a JSON document."""

    async def work(session):
        new_accounts, saved_addons = await session.registry.import_accounts(Path(path).read_text())
        imported = await session.manager.merge_saved_addons(saved_addons)
        console.print(f"Imported {len(new_accounts)} accounts and {imported} saved addons")

    _run(ctx, work)


# ──────────────────────────────────────────────
# Library
# ──────────────────────────────────────────────


@cli.group()
def library():
    """Manage saved addon templates."""


@library.command("list")
@click.option("--tag", "-t", default=None, help="Only templates with this tag.")
@click.pass_context
def library_list(ctx, tag):
    """List saved addons."""

    async def work(session):
        items = session.manager.get_saved_addons_by_tag(tag) if tag else session.manager.library.values()
        table = Table(title="Saved addons")
        for column in ("ID", "Name", "Version", "Tags", "Online"):
            table.add_column(column)
        for s in items:
            online = "-" if s.health is None else ("yes" if s.health.is_online else "[red]no[/red]")
            table.add_row(s.id, s.name, s.manifest.version, ", ".join(s.tags), online)
        console.print(table)

    _run(ctx, work)


@library.command("tags")
@click.pass_context
def library_tags(ctx):
    """List every tag in the library."""

    async def work(session):
        for tag in session.manager.get_all_tags():
            console.print(f"{tag} ({len(session.manager.get_saved_addons_by_tag(tag))})")

    _run(ctx, work)


@library.command("add")
@click.argument("url")
@click.option("--name", "-n", default="", help="Display name (defaults to the manifest name).")
@click.option("--tag", "-t", "tags", multiple=True, help="Tag, repeatable.")
@click.pass_context
def library_add(ctx, url, name, tags):
    """Save an addon to the library by its install URL."""

    async def work(session):
        saved = await session.manager.create_saved_addon(name, url, list(tags))
        console.print(f"[green]Saved[/green] {saved.name} {saved.manifest.version} ({saved.id})")

    _run(ctx, work)


@library.command("edit")
@click.argument("saved_addon_id")
@click.option("--name", "-n", default=None)
@click.option("--tag", "-t", "tags", multiple=True, help="Replace tags, repeatable.")
@click.option("--url", default=None, help="New install URL (refetches the manifest).")
@click.pass_context
def library_edit(ctx, saved_addon_id, name, tags, url):
    """Edit a saved addon."""

    async def work(session):
        saved = await session.manager.update_saved_addon(
            saved_addon_id, name=name, tags=list(tags) if tags else None, install_url=url
        )
        console.print(f"Updated {saved.name}")

    _run(ctx, work)


@library.command("delete")
@click.argument("saved_addon_id")
@click.pass_context
def library_delete(ctx, saved_addon_id):
    """Delete a saved addon. Accounts are not touched."""

    async def work(session):
        await session.manager.delete_saved_addon(saved_addon_id)
        console.print(f"Deleted {saved_addon_id}")

    _run(ctx, work)


@library.command("rename-tag")
@click.argument("old_tag")
@click.argument("new_tag")
@click.pass_context
def library_rename_tag(ctx, old_tag, new_tag):
    """Rename a tag on every saved addon holding it."""

    async def work(session):
        changed = await session.manager.rename_tag(old_tag, new_tag)
        console.print(f"Renamed on {changed} saved addons")

    _run(ctx, work)


@library.command("export")
@click.option("--output", "-o", type=click.Path(), required=True)
@click.pass_context
def library_export(ctx, output):
    """Export the library to a JSON document."""

    async def work(session):
        Path(output).write_text(session.manager.export_library())
        console.print(f"Exported {len(session.manager.library)} saved addons to {output}")

    _run(ctx, work)


@library.command("import")
@click.argument("path", type=click.Path(exists=True))
@click.option("--replace", is_flag=True, help="Discard the existing library instead of merging.")
@click.pass_context
def library_import(ctx, path, replace):
    """Import a library document."""

    async def work(session):
        count = await session.manager.import_library(Path(path).read_text(), merge=not replace)
        console.print(f"Imported {count} saved addons")

    _run(ctx, work)


@library.command("health")
@click.pass_context
def library_health(ctx):
    """Probe every saved addon and record whether it is online."""

    async def work(session):
        with console.status("[bold cyan]Checking addon health...[/bold cyan]"):
            await session.manager.check_all_health()
        offline = [s.name for s in session.manager.library if s.health and not s.health.is_online]
        console.print(f"{len(session.manager.library) - len(offline)} online, {len(offline)} offline")
        for name in offline:
            console.print(f"[red]  offline: {name}[/red]")

    _run(ctx, work)


@library.command("updates")
@click.pass_context
def library_updates(ctx):
    """Check saved addons for newer manifest versions."""

    async def work(session):
        _print_updates(await session.manager.check_saved_addon_updates())

    _run(ctx, work)


# ──────────────────────────────────────────────
# Reconciliation
# ──────────────────────────────────────────────


def _account_refs(session, account_ids):
    return session.registry.refs(list(account_ids) if account_ids else None)


@cli.command()
@click.option("--addon", "-a", "saved_addon_ids", multiple=True, help="Saved addon id, repeatable.")
@click.option("--tag", "-t", default=None, help="Apply every saved addon with this tag.")
@click.option("--account", "account_ids", multiple=True, help="Account id, repeatable (default: all).")
@click.option(
    "--strategy",
    "-s",
    type=click.Choice(list(MERGE_STRATEGIES)),
    default=STRATEGY_REPLACE_MATCHING,
    help="How to treat addons already installed.",
)
@click.pass_context
def apply(ctx, saved_addon_ids, tag, account_ids, strategy):
    """Apply saved addons to accounts, one account at a time."""
    if bool(saved_addon_ids) == bool(tag):
        raise click.UsageError("Provide either --addon or --tag.")

    async def work(session):
        refs = _account_refs(session, account_ids)
        ctx.obj["set_total"](len(refs))
        if tag:
            result = await session.manager.bulk_apply_tag(tag, refs, strategy)
        else:
            result = await session.manager.bulk_apply_saved_addons(list(saved_addon_ids), refs, strategy)
        _print_bulk(result)

    _run(ctx, work, progress=True)


@cli.command()
@click.option("--addon-id", "-a", "addon_ids", multiple=True, help="Manifest id, repeatable.")
@click.option("--tag", "-t", default=None, help="Remove the addons of every saved addon with this tag.")
@click.option("--account", "account_ids", multiple=True, help="Account id, repeatable (default: all).")
@click.pass_context
def remove(ctx, addon_ids, tag, account_ids):
    """Remove addons from accounts. Protected addons are kept and reported."""
    if bool(addon_ids) == bool(tag):
        raise click.UsageError("Provide either --addon-id or --tag.")

    async def work(session):
        refs = _account_refs(session, account_ids)
        ctx.obj["set_total"](len(refs))
        if tag:
            result = await session.manager.bulk_remove_by_tag(tag, refs)
        else:
            result = await session.manager.bulk_remove_addons(list(addon_ids), refs)
        _print_bulk(result)

    _run(ctx, work, progress=True)


@cli.command()
@click.argument("account_ids", nargs=-1)
@click.pass_context
def sync(ctx, account_ids):
    """Refresh accounts and rebuild their provenance ledgers."""

    async def work(session):
        if account_ids:
            for account_id in account_ids:
                account = await session.registry.sync(account_id)
                await session.manager.sync_account_state(account.ref())
            console.print(f"Synced {len(account_ids)} accounts")
            return

        result = await session.registry.sync_all()
        healthy = [a.ref() for a in session.registry.accounts if a.status == "active"]
        await session.manager.sync_all_account_states(healthy)
        for error in result.errors:
            console.print(f"[red]  {error.account_id}: {error.error}[/red]")
        console.print(f"Synced {result.success} accounts, {result.failed} failed")

    _run(ctx, work)


def _print_updates(updates) -> None:
    table = Table(title="Updates")
    for column in ("Addon", "Installed", "Latest", "Update", "Online"):
        table.add_column(column)
    for info in updates:
        table.add_row(
            info.name,
            info.installed_version,
            info.latest_version,
            "[yellow]yes[/yellow]" if info.has_update else "no",
            "yes" if info.is_online else "[red]no[/red]",
        )
    console.print(table)


@cli.command()
@click.argument("account_id")
@click.pass_context
def updates(ctx, account_id):
    """Check an account's addons for newer manifest versions."""

    async def work(session):
        account = session.registry.require(account_id)
        with console.status("[bold cyan]Checking for updates...[/bold cyan]"):
            result = await session.manager.check_account_updates(account.ref())
        _print_updates(result)

    _run(ctx, work)


@cli.command()
@click.argument("account_id")
@click.argument("addon_id")
@click.pass_context
def reinstall(ctx, account_id, addon_id):
    """Remove and re-add an addon so the service refetches its manifest."""

    async def work(session):
        account = session.registry.require(account_id)
        console.print("[yellow]The addon is briefly absent from the account while it is reinstalled.[/yellow]")
        result = await session.manager.reinstall_addon(account.ref(), addon_id)
        if result.updated_addon is None:
            console.print(f"Nothing to do: {addon_id} is not installed or is protected")
            return
        await session.registry.sync(account_id)
        console.print(f"{addon_id}: {result.previous_version} -> {result.new_version}")

    _run(ctx, work)


if __name__ == "__main__":
    cli()
