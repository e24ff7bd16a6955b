"""Status command for the site visit CLI."""

import json
import os

import typer

from sitevisit.cli_commands.sync import pid_file
from sitevisit.config import get_settings
from sitevisit.sync.queue import LocalCaptureQueue


def _get_running_pid() -> int | None:
    """Get the PID of a running `sync run`, if any."""
    path = pid_file()
    if not path.exists():
        return None

    try:
        pid = int(path.read_text().strip())
        # Check if process exists
        os.kill(pid, 0)
        return pid
    except (ValueError, OSError):
        return None


def _get_queue_status() -> dict:
    """Read pending count and durability from the local queue."""
    settings = get_settings()
    with LocalCaptureQueue(settings.queue_path) as queue:
        return {"pending": queue.count(), "durable": queue.is_durable}


def status_command(
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """Show sync status.

    Displays the number of captures waiting on this device and whether
    a background sync is running.
    """
    pid = _get_running_pid()
    queue_status = _get_queue_status()

    status_data = {
        "sync_running": pid is not None,
        "pid": pid,
        "pending": queue_status["pending"],
        "durable": queue_status["durable"],
    }

    if output_json:
        typer.echo(json.dumps(status_data))
        return

    typer.echo("")
    typer.echo("Site Visit Sync Status")
    typer.echo("----------------------")
    if pid is not None:
        typer.echo(f"Sync: running (PID: {pid})")
    else:
        typer.echo("Sync: not running")
    typer.echo(f"Queue: {queue_status['pending']} pending captures")
    if not queue_status["durable"]:
        typer.echo("Warning: local storage unavailable, queued captures are not durable")
    typer.echo("")

    if pid is None and queue_status["pending"]:
        typer.echo("Send them with: sitevisit sync now")
