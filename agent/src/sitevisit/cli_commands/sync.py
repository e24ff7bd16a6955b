"""Sync CLI commands - drain the capture queue once or keep syncing."""

import asyncio
import json
import os
import signal
from pathlib import Path

import typer

from sitevisit.config import get_settings
from sitevisit.engine import SyncOrchestrator
from sitevisit.logging import setup_logging
from sitevisit.sync import DrainReport

sync_app = typer.Typer(
    name="sync",
    help="Send queued captures to the server.",
    no_args_is_help=True,
)


def pid_file() -> Path:
    """Location of the PID file of a running `sync run`."""
    return get_settings().data_path / "sync.pid"


def _output(data: dict, as_json: bool, human_message: str) -> None:
    """Output data as JSON or human-readable format."""
    if as_json:
        typer.echo(json.dumps(data))
    else:
        typer.echo(human_message)


async def _sync_once() -> dict:
    orchestrator = SyncOrchestrator(get_settings())
    try:
        report = await orchestrator.check_once()
        if not orchestrator.online:
            return {"status": "offline", **orchestrator.get_status()}
        report = report or DrainReport()
        return {
            "status": "synced" if report.completed else "interrupted",
            "submitted": report.submitted,
            "failed_id": report.failed_id,
            **orchestrator.get_status(),
        }
    finally:
        await orchestrator.stop()


@sync_app.command("now")
def now(
    output_json: bool = typer.Option(False, "--json", "-j", help="Output in JSON format"),
) -> None:
    """Submit all pending captures now, stopping at the first failure."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_file, settings.device_id)

    result = asyncio.run(_sync_once())

    if result["status"] == "offline":
        message = f"Server unreachable, {result['pending']} captures remain queued."
    elif result["status"] == "synced":
        message = f"Sent {result['submitted']} captures, queue is empty."
    else:
        message = (
            f"Sent {result['submitted']} captures, stopped at {result['failed_id']}: "
            f"{result['last_error']} ({result['pending']} pending)"
        )
    _output(result, output_json, message)
    if result["status"] != "synced":
        raise typer.Exit(1)


@sync_app.command("run")
def run() -> None:
    """Keep syncing in the foreground until interrupted.

    Checks the server periodically and drains the queue on every reconnect.
    """
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_file, settings.device_id)

    path = pid_file()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(str(os.getpid()))

    async def _run() -> None:
        orchestrator = SyncOrchestrator(settings)
        loop = asyncio.get_running_loop()
        stop = asyncio.Event()
        for signum in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(signum, stop.set)

        await orchestrator.start()
        typer.echo("Sync running. Press Ctrl+C to stop.")
        await stop.wait()
        await orchestrator.stop()

    try:
        asyncio.run(_run())
    finally:
        path.unlink(missing_ok=True)
