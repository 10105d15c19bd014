"""CLI for blossom-client."""

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from . import actions
from .config import ClientConfig, load_auth_event, load_client_config
from .errors import BlossomError
from .models import Blob, BlobDescriptor, SignedEvent
from .multi_server import multi_server_upload
from .options import ActionOptions, ProgressSink
from .utils import humanize_size

app = typer.Typer(help="""\
Store content-addressed blobs on one or more blob servers. Upload to
many servers at once, mirror between servers, list, download and delete.""")

console = Console()


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Log every request")):
    """Configure logging for the command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


class ConsoleProgress(ProgressSink):
    """Prints multi-server progress."""

    def on_start(self, server, sha256, blob):
        console.print(f"[dim]→ {server}[/dim]")

    def on_upload(self, server, sha256, blob):
        console.print(f"[green]✓[/green] {server}")

    def on_error(self, server, sha256, blob, error):
        console.print(f"[red]✗[/red] {server}: {error}")


def _load_config(config_path: Optional[Path]) -> ClientConfig:
    try:
        return load_client_config(config_path)
    except BlossomError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(1)


def _resolve_servers(servers: Optional[List[str]], config: ClientConfig) -> List[str]:
    resolved = servers or config.servers
    if not resolved:
        console.print("[red]✗[/red] No servers given")
        console.print("[dim]Hint: pass --server or list servers in blossom.yaml[/dim]")
        raise typer.Exit(1)
    return resolved


def _load_auth(auth_file: Optional[Path]) -> Optional[SignedEvent]:
    if auth_file is None:
        return None
    try:
        return load_auth_event(auth_file)
    except BlossomError as e:
        console.print(f"[red]✗[/red] {e}")
        console.print("[dim]Hint: --auth expects a signed event as JSON[/dim]")
        raise typer.Exit(1)


def _action_options(auth: Optional[Path], config: ClientConfig) -> ActionOptions:
    auth_file = auth or (Path(config.auth_file) if config.auth_file else None)
    return ActionOptions(auth=_load_auth(auth_file), timeout=config.timeout)


def _run(coro):
    """Run a coroutine, turning client errors into a clean exit."""
    try:
        return asyncio.run(coro)
    except BlossomError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(1)


def _format_uploaded(ts: int) -> str:
    if not ts:
        return "-"
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def _descriptor_table(title: str, rows: List[tuple]) -> Table:
    table = Table(title=title)
    table.add_column("Server", style="cyan")
    table.add_column("SHA-256")
    table.add_column("Size", justify="right")
    table.add_column("Type")
    table.add_column("URL", overflow="fold")
    for server, blob in rows:
        table.add_row(server, blob.sha256[:12] + "...", humanize_size(blob.size), blob.type or "-", blob.url)
    return table


@app.command()
def upload(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="File to upload"),
    server: Optional[List[str]] = typer.Option(None, "--server", "-s", help="Server URL (repeatable, in priority order)"),
    media: Optional[bool] = typer.Option(None, "--media/--no-media", help="Use /media processing on the first server"),
    media_any: bool = typer.Option(False, "--media-any", help="Try /media on every server until one accepts"),
    fallback: Optional[bool] = typer.Option(None, "--fallback/--no-fallback", help="Upload raw blob if no /media server"),
    mime_type: Optional[str] = typer.Option(None, "--type", help="MIME type (guessed from the file name by default)"),
    auth: Optional[Path] = typer.Option(None, "--auth", help="Pre-signed auth event JSON"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file"),
):
    """Upload a file to one or more servers."""
    config = _load_config(config_path)
    servers = _resolve_servers(server, config)

    overrides = {"progress": ConsoleProgress()}
    # --auth replaces the config auth_file, which is then never read
    overrides["auth"] = _load_auth(auth or (Path(config.auth_file) if config.auth_file else None))
    if media is not None:
        overrides["is_media"] = media
    if media_any:
        overrides["is_media"] = True
        overrides["media_policy"] = "any"
    if fallback is not None:
        overrides["media_fallback"] = fallback
    options = config.to_options(**overrides)

    payload = Blob(file, type=mime_type) if mime_type else file
    results = _run(multi_server_upload(servers, payload, options))

    if not results:
        console.print("[red]✗[/red] Blob was not stored on any server")
        raise typer.Exit(1)
    console.print(_descriptor_table(f"Stored on {len(results)}/{len(servers)} servers", list(results.items())))


@app.command()
def mirror(
    url: str = typer.Argument(..., help="URL of the blob on its current server"),
    sha256: str = typer.Option(..., "--sha256", help="Hash of the blob"),
    size: int = typer.Option(..., "--size", help="Size of the blob in bytes"),
    server: Optional[List[str]] = typer.Option(None, "--server", "-s", help="Target server (repeatable)"),
    auth: Optional[Path] = typer.Option(None, "--auth", help="Pre-signed auth event JSON"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file"),
):
    """Ask servers to copy a blob from another server."""
    config = _load_config(config_path)
    servers = _resolve_servers(server, config)
    options = _action_options(auth, config)
    source = BlobDescriptor(sha256=sha256, size=size, url=url)

    async def _mirror_all():
        rows = []
        for target in servers:
            try:
                rows.append((target, await actions.mirror_blob(target, source, options)))
            except BlossomError as e:
                console.print(f"[red]✗[/red] {target}: {e}")
        return rows

    rows = _run(_mirror_all())
    if rows:
        console.print(_descriptor_table("Mirrored", rows))
    if len(rows) < len(servers):
        raise typer.Exit(1)


@app.command()
def download(
    sha256: str = typer.Argument(..., help="Hash of the blob"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Destination (default: ./<sha256>)"),
    server: Optional[List[str]] = typer.Option(None, "--server", "-s", help="Server to try (repeatable, in order)"),
    auth: Optional[Path] = typer.Option(None, "--auth", help="Pre-signed auth event JSON"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file"),
):
    """Download a blob, trying servers in order."""
    config = _load_config(config_path)
    servers = _resolve_servers(server, config)
    options = _action_options(auth, config)
    dest = output or Path(sha256)

    async def _first_available():
        last_error = None
        for source in servers:
            try:
                return source, await actions.download_to(source, sha256, dest, options)
            except BlossomError as e:
                console.print(f"[yellow]⚠[/yellow] {source}: {e}")
                last_error = e
        raise last_error

    source, path = _run(_first_available())
    console.print(f"[green]✓[/green] Downloaded from {source} to {path} ({humanize_size(path.stat().st_size)})")


@app.command("list")
def list_command(
    pubkey: str = typer.Argument(..., help="Hex pubkey of the uploader"),
    since: Optional[int] = typer.Option(None, help="Only blobs uploaded after this unix time"),
    until: Optional[int] = typer.Option(None, help="Only blobs uploaded before this unix time"),
    server: Optional[List[str]] = typer.Option(None, "--server", "-s", help="Server URL"),
    auth: Optional[Path] = typer.Option(None, "--auth", help="Pre-signed auth event JSON"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file"),
):
    """List blobs a pubkey uploaded to a server."""
    config = _load_config(config_path)
    target = _resolve_servers(server, config)[0]
    blobs = _run(actions.list_blobs(target, pubkey, since, until, _action_options(auth, config)))

    if not blobs:
        console.print(f"[dim]No blobs on {target}[/dim]")
        return

    table = Table(title=f"Blobs on {target}")
    table.add_column("SHA-256", style="cyan")
    table.add_column("Size", justify="right")
    table.add_column("Type")
    table.add_column("Uploaded")
    for blob in blobs:
        table.add_row(blob.sha256, humanize_size(blob.size), blob.type or "-", _format_uploaded(blob.uploaded))
    console.print(table)


@app.command()
def delete(
    sha256: str = typer.Argument(..., help="Hash of the blob"),
    server: Optional[List[str]] = typer.Option(None, "--server", "-s", help="Server URL (repeatable)"),
    auth: Optional[Path] = typer.Option(None, "--auth", help="Pre-signed delete auth event JSON"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file"),
):
    """Delete a blob from servers."""
    config = _load_config(config_path)
    servers = _resolve_servers(server, config)
    options = _action_options(auth, config)

    async def _delete_all():
        failed = 0
        for target in servers:
            try:
                await actions.delete_blob(target, sha256, options)
                console.print(f"[green]✓[/green] Deleted from {target}")
            except BlossomError as e:
                console.print(f"[red]✗[/red] {target}: {e}")
                failed += 1
        return failed

    if _run(_delete_all()):
        raise typer.Exit(1)


@app.command()
def check(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="File that would be uploaded"),
    server: Optional[List[str]] = typer.Option(None, "--server", "-s", help="Server URL (repeatable)"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file"),
):
    """Ask servers whether they would accept an upload."""
    config = _load_config(config_path)
    servers = _resolve_servers(server, config)

    async def _check_all():
        rejected = 0
        for target in servers:
            try:
                await actions.check_upload(target, file, ActionOptions(timeout=config.timeout))
                console.print(f"[green]✓[/green] {target} accepts uploads")
            except BlossomError as e:
                console.print(f"[red]✗[/red] {target}: {e}")
                rejected += 1
        return rejected

    if _run(_check_all()):
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
