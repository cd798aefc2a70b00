"""CLI interface for likes-downloader.

Commands:
    setup   - Add a Twitter or Bluesky account to the config
    fetch   - Download the media of liked posts
    status  - Show configured accounts and what is already downloaded
"""

import asyncio
import sys
from pathlib import Path

import click

from .config import (
    CONFIG_FILE,
    AppConfig,
    BlueskyAccount,
    TwitterAccount,
    config_exists,
    load_config,
    save_config,
)
from .logging_config import setup_logging


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option("--config", type=click.Path(), default=None, help="Config file path")
@click.option("--log-file", type=click.Path(), default=None, help="Also log to this file")
@click.pass_context
def main(ctx, verbose, config, log_file):
    """Liked Media Downloader — Save the media of posts you liked."""
    setup_logging(debug=verbose, log_file=Path(log_file) if log_file else None)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = Path(config) if config else CONFIG_FILE


def _load_or_exit(config_path: Path) -> AppConfig:
    if not config_exists(config_path):
        click.echo(
            "Error: No config found. Run 'likes-downloader setup' first.",
            err=True,
        )
        sys.exit(1)
    try:
        return load_config(config_path)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@main.command()
@click.option(
    "--platform",
    type=click.Choice(["twitter", "bluesky"]),
    prompt="Platform",
    help="Platform of the account to add",
)
@click.option("--path", type=click.Path(), default=None, help="Output directory")
@click.pass_context
def setup(ctx, platform, path):
    """Add an account to the configuration."""
    config_path = ctx.obj["config_path"]
    config = load_config(config_path) if config_exists(config_path) else AppConfig()

    if platform == "twitter":
        click.echo("You need your Twitter/X session cookies.")
        click.echo("To get them:")
        click.echo("  1. Open x.com in your browser and log in")
        click.echo("  2. Open DevTools (F12) -> Application -> Cookies -> https://x.com")
        click.echo("  3. Copy the values of 'auth_token' and 'ct0'")
        click.echo()
        user_name = click.prompt("user_name (without @)")
        auth_token = click.prompt("auth_token", hide_input=True)
        ct0 = click.prompt("ct0", hide_input=True)
        account = TwitterAccount(user_name=user_name, auth_token=auth_token, ct0=ct0)
    else:
        click.echo("Create an app password under Settings -> Privacy and security.")
        click.echo()
        identifier = click.prompt("identifier (handle or email)")
        password = click.prompt("app password", hide_input=True)
        account = BlueskyAccount(identifier=identifier, password=password)

    if path:
        account.path = Path(path)

    config.accounts = [
        a
        for a in config.accounts
        if (a.platform, a.name) != (account.platform, account.name)
    ]
    config.accounts.append(account)

    save_config(config, config_path)
    click.echo(f"\nAccount {account.platform}/{account.name} saved to {config_path}")
    click.echo("Run 'likes-downloader fetch' to download its liked media.")


@main.command()
@click.option(
    "--account",
    "account_name",
    default=None,
    help="Only fetch the account with this user name / identifier",
)
@click.option(
    "--dump-raw",
    type=click.Path(),
    default=None,
    help="Save unexpected API responses to this directory for debugging",
)
@click.pass_context
def fetch(ctx, account_name, dump_raw):
    """Download the media of liked posts for every configured account."""
    config = _load_or_exit(ctx.obj["config_path"])

    accounts = config.accounts
    if account_name:
        accounts = [a for a in accounts if a.name == account_name]
    if not accounts:
        click.echo("Error: No matching account configured.", err=True)
        sys.exit(1)

    # Lazy imports so --help stays fast
    from .adapters.factory import create_adapter
    from .pipeline import ProgressCounter, run_accounts

    progress = ProgressCounter()

    async def run():
        adapters = [create_adapter(account, config) for account in accounts]
        return await run_accounts(
            adapters,
            progress=progress,
            dump_dir=Path(dump_raw) if dump_raw else None,
        )

    click.echo(f"Fetching liked media of {len(accounts)} account(s)...")
    reports = asyncio.run(run())

    failed = 0
    for account, report in zip(accounts, reports):
        if report is None:
            failed += 1
            click.echo(f"{account.platform}/{account.name}: failed, see log above.")
            continue
        line = (
            f"{account.platform}/{account.name}: {report.downloaded} downloaded, "
            f"{report.skipped} already present, {report.failed} failed"
        )
        if report.total is not None:
            line += f" ({report.total} likes in total)"
        click.echo(line)
    click.echo(
        f"Finished {progress.completed_items} of {progress.discovered_items} items "
        f"({progress.completed_posts} posts)."
    )

    if failed:
        sys.exit(1)


@main.command()
@click.pass_context
def status(ctx):
    """Show configured accounts and downloaded file counts."""
    config_path = ctx.obj["config_path"]
    has_config = config_exists(config_path)

    click.echo("Liked Media Downloader — Status")
    click.echo("=" * 40)
    click.echo(f"Config: {'Found' if has_config else 'Not configured'} ({config_path})")

    if not has_config:
        click.echo("\nRun 'likes-downloader setup' to get started.")
        return

    config = _load_or_exit(config_path)

    from .dedup import DedupIndex

    if config.proxy:
        click.echo(f"Proxy: {config.proxy}")
    if not config.accounts:
        click.echo("No accounts configured.")
    for account in config.accounts:
        click.echo(f"\n{account.platform}/{account.name}")
        click.echo(f"  Output directory: {account.path}")
        if account.path.is_dir():
            index = DedupIndex.scan(account.path)
            click.echo(f"  Downloaded files: {index.count}")
        else:
            click.echo("  Output directory: Not yet created")
