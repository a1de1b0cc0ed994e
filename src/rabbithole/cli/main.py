"""
Rabbithole CLI — `rabbithole` command.

Commands:
  rabbithole config set|show     Saved connection settings
  rabbithole connect             Interactive session
  rabbithole send <message>      One-shot message
  rabbithole register <code>     Relay a scanned registration code
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Optional

try:
    import click
    from rich.console import Console
    from rich.logging import RichHandler
except ImportError:
    raise SystemExit("CLI requires extras: pip install rabbithole-client[cli]")

from rabbithole.client import AsyncRabbitholeClient
from rabbithole.dispatcher import AudioSink, RegisterCallback

console = Console()
CONFIG_FILE = Path.home() / ".rabbithole" / "config.json"


def _load_config() -> dict:
    try:
        return json.loads(CONFIG_FILE.read_text())
    except (FileNotFoundError, json.JSONDecodeError):
        return {}


def _save_config(cfg: dict) -> None:
    CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
    CONFIG_FILE.write_text(json.dumps(cfg, indent=2))


def _resolve(ctx_obj: dict[str, Any]) -> dict[str, Optional[str]]:
    """Command line / environment values win over the saved config."""
    cfg = _load_config()
    return {
        key: ctx_obj.get(key) if ctx_obj.get(key) is not None else cfg.get(key)
        for key in ("url", "imei", "account_key")
    }


def _get_client(
    ctx_obj: dict[str, Any],
    *,
    with_credentials: bool = True,
    audio_sink: Optional[AudioSink] = None,
    on_register: Optional[RegisterCallback] = None,
) -> AsyncRabbitholeClient:
    settings = _resolve(ctx_obj)
    if not settings["url"]:
        console.print("[red]No url configured. Run `rabbithole config set --url ...` first.[/red]")
        raise SystemExit(1)
    return AsyncRabbitholeClient(
        url=settings["url"],
        imei=settings["imei"],
        account_key=settings["account_key"] if with_credentials else None,
        audio_sink=audio_sink,
        on_register=on_register,
    )


def _run(coro):
    return asyncio.run(coro)


@click.group()
@click.version_option("0.1.0")
@click.option("--url", envvar="RABBITHOLE_URL", default=None, help="WebSocket url")
@click.option("--imei", envvar="RABBITHOLE_IMEI", default=None, help="Device identifier")
@click.option("--account-key", envvar="RABBITHOLE_ACCOUNT_KEY", default=None, help="Account key")
@click.option("-v", "--verbose", is_flag=True, help="Log protocol events")
@click.pass_context
def main(ctx, url, imei, account_key, verbose):
    """Rabbithole CLI — talk to the device companion service."""
    ctx.ensure_object(dict)
    ctx.obj.update({"url": url, "imei": imei, "account_key": account_key})
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(message)s", handlers=[RichHandler(console=console)])


# Register subcommands from separate modules
from rabbithole.cli.config import config
from rabbithole.cli.session import connect_cmd, register_cmd, send_cmd

main.add_command(config)
main.add_command(connect_cmd)
main.add_command(send_cmd)
main.add_command(register_cmd)


if __name__ == "__main__":
    main()
