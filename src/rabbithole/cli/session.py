"""CLI: rabbithole connect, rabbithole send, rabbithole register"""

import asyncio
import base64
import binascii
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape

from rabbithole.audio import mime_type_for
from rabbithole.client import AsyncRabbitholeClient
from rabbithole.errors import AuthError
from rabbithole.models.transcript import Origin, PayloadKind, TranscriptEntry

console = Console()

HELP = (
    "[dim]Commands: /ptt on|off \\[image], /audio <file.wav>, /raw <text>, "
    "/register <code>, /stop-meeting, /logs, /quit[/dim]"
)


def _get_client(obj, **kwargs) -> AsyncRabbitholeClient:
    from rabbithole.cli.main import _get_client
    return _get_client(obj, **kwargs)


def _load_config() -> dict:
    from rabbithole.cli.main import _load_config
    return _load_config()


def _save_config(cfg: dict) -> None:
    from rabbithole.cli.main import _save_config
    _save_config(cfg)


def _run(coro):
    from rabbithole.cli.main import _run
    return _run(coro)


def _print_entry(entry: TranscriptEntry) -> None:
    if entry.origin == Origin.SYSTEM:
        console.print(f"[dim]\\[{escape(entry.content)}][/dim]", highlight=False)
    elif entry.origin == Origin.USER:
        if entry.kind == PayloadKind.IMAGE:
            console.print(f"[cyan]You sent an image:[/cyan] {escape(entry.content[:60])}", highlight=False)
        elif entry.kind == PayloadKind.AUDIO:
            console.print(f"[cyan]You (ptt):[/cyan] {escape(entry.content)}", highlight=False)
    elif entry.kind == PayloadKind.IMAGE:
        for line in entry.content.splitlines():
            console.print(f"[green]Rabbit image:[/green] {escape(line)}", highlight=False)
    else:
        console.print(f"[green]Rabbit:[/green] {escape(entry.content)}", highlight=False)


def _print_audio(audio_b64: str) -> None:
    try:
        size = len(base64.b64decode(audio_b64, validate=False))
    except (binascii.Error, ValueError):
        size = len(audio_b64)
    console.print(f"[magenta]\\[audio received: {size} bytes][/magenta]")


async def _handle_line(client: AsyncRabbitholeClient, line: str) -> bool:
    """Run one REPL line. Returns False to quit."""
    line = line.strip()
    if not line:
        return True
    if not line.startswith("/"):
        if not client.send_message(line):
            console.print("[yellow]Not authenticated, message not sent.[/yellow]")
        return True

    command, _, rest = line.partition(" ")
    rest = rest.strip()
    if command in ("/quit", "/exit"):
        return False
    if command == "/ptt":
        state, _, image = rest.partition(" ")
        if state not in ("on", "off"):
            console.print("[yellow]Usage: /ptt on|off \\[image][/yellow]")
        elif not client.send_ptt(state == "on", image.strip() or None):
            console.print("[yellow]Not authenticated, PTT not sent.[/yellow]")
    elif command == "/audio":
        path = Path(rest)
        if not path.is_file():
            console.print(f"[red]No such file: {rest}[/red]")
        elif not await client.send_audio(path.read_bytes(), mime_type_for(path)):
            console.print("[yellow]Audio not sent (not authenticated or not a wav file).[/yellow]")
    elif command == "/raw":
        if not client.send_raw(rest):
            console.print("[yellow]Not connected.[/yellow]")
    elif command == "/register":
        if not client.register(rest):
            console.print("[yellow]Registration is only possible before authentication.[/yellow]")
    elif command == "/stop-meeting":
        if not client.stop_meeting():
            console.print("[yellow]Not authenticated.[/yellow]")
    elif command == "/logs":
        for entry in client.logs:
            console.print(entry, style="dim", highlight=False, markup=False)
    else:
        console.print(HELP)
    return True


@click.command("connect")
@click.pass_obj
def connect_cmd(obj):
    """Interactive session with the device companion service."""

    async def _connect():
        client = _get_client(obj, audio_sink=_print_audio)
        client.on_transcript(_print_entry)
        await client.connect()
        console.print(HELP)
        try:
            while True:
                line = await asyncio.to_thread(click.prompt, "You", prompt_suffix=": ", default="", show_default=False)
                if not await _handle_line(client, line):
                    break
        except (KeyboardInterrupt, EOFError, click.Abort):
            pass
        finally:
            await client.disconnect()

    _run(_connect())


@click.command("send")
@click.argument("message")
@click.option("--timeout", default=15.0, show_default=True, help="Seconds to wait for authentication")
@click.option("--wait", default=5.0, show_default=True, help="Seconds to print replies before leaving")
@click.pass_obj
def send_cmd(obj, message: str, timeout: float, wait: float):
    """Send a one-shot message."""

    async def _send():
        client = _get_client(obj, audio_sink=_print_audio)
        await client.connect()
        try:
            await client.wait_authenticated(timeout)
        except AuthError as e:
            console.print(f"[red]{e}[/red]")
            await client.disconnect()
            raise SystemExit(1)

        client.on_transcript(_print_entry)
        client.send_message(message)
        await asyncio.sleep(wait)
        await client.disconnect()

    _run(_send())


@click.command("register")
@click.argument("code")
@click.option("--timeout", default=30.0, show_default=True, help="Seconds to wait for the server reply")
@click.pass_obj
def register_cmd(obj, code: str, timeout: float):
    """Relay a scanned registration code and save the returned credentials."""

    async def _register():
        result: asyncio.Future = asyncio.get_running_loop().create_future()

        def on_register(imei: str, account_key: str, _raw: str) -> None:
            if not result.done():
                result.set_result((imei, account_key))

        client = _get_client(obj, with_credentials=False, on_register=on_register)
        await client.connect()
        try:
            if not client.register(code):
                console.print("[red]Could not send registration (not connected).[/red]")
                raise SystemExit(1)
            with console.status("Waiting for registration..."):
                imei, account_key = await asyncio.wait_for(result, timeout=timeout)
        except asyncio.TimeoutError:
            console.print("[red]Timed out waiting for registration.[/red]")
            raise SystemExit(1)
        finally:
            await client.disconnect()

        cfg = _load_config()
        _save_config({**cfg, "url": client.url, "imei": imei, "account_key": account_key})
        console.print(f"[green]Registered device {imei}.[/green]")
        console.print("[dim]Credentials saved to ~/.rabbithole/config.json[/dim]")

    _run(_register())
