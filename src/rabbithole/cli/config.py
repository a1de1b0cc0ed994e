"""CLI: rabbithole config set|show"""

from typing import Optional

import click
from rich.console import Console

from rabbithole.transcript import ACCOUNT_KEY_MASK

console = Console()


def _load_config() -> dict:
    from rabbithole.cli.main import _load_config
    return _load_config()


def _save_config(cfg: dict) -> None:
    from rabbithole.cli.main import _save_config
    _save_config(cfg)


@click.group()
def config():
    """Saved connection settings."""


@config.command("set")
@click.option("--url", default=None)
@click.option("--imei", default=None)
@click.option("--account-key", default=None)
def config_set(url: Optional[str], imei: Optional[str], account_key: Optional[str]):
    """Save url and credentials to ~/.rabbithole/config.json."""
    cfg = _load_config()
    updates = {"url": url, "imei": imei, "account_key": account_key}
    cfg.update({k: v for k, v in updates.items() if v is not None})
    _save_config(cfg)
    console.print("[green]Saved.[/green]")


@config.command("show")
def config_show():
    """Show saved settings (account key masked)."""
    cfg = _load_config()
    if not cfg:
        console.print("[yellow]Nothing configured. Run `rabbithole config set`.[/yellow]")
        return
    console.print(f"url:         {cfg.get('url', '')}")
    console.print(f"imei:        {cfg.get('imei', '')}")
    console.print(f"account key: {ACCOUNT_KEY_MASK if cfg.get('account_key') else ''}")
