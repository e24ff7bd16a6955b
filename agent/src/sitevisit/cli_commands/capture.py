"""Capture CLI commands - queue captures for later submission."""

import json
from pathlib import Path

import typer

from sitevisit.config import get_settings
from sitevisit.sync.queue import InvalidCaptureError, LocalCaptureQueue, Location

capture_app = typer.Typer(
    name="capture",
    help="Queue photos, voice notes and reactions for a visit stop.",
    no_args_is_help=True,
)


def _output(data: dict, as_json: bool, human_message: str) -> None:
    """Output data as JSON or human-readable format."""
    if as_json:
        typer.echo(json.dumps(data))
    else:
        typer.echo(human_message)


@capture_app.command("add")
def add(
    visit_stop_id: str = typer.Option(..., "--stop", "-s", help="Visit stop id"),
    capture_type: str = typer.Option(
        ..., "--type", "-t", help="photo, voice_note, reaction or note"
    ),
    file: Path | None = typer.Option(
        None,
        "--file",
        "-f",
        exists=True,
        dir_okay=False,
        resolve_path=True,
        help="Captured photo or audio file",
    ),
    caption: str | None = typer.Option(None, "--caption", help="Caption text"),
    transcript: str | None = typer.Option(None, "--transcript", help="Voice note transcript"),
    sentiment: str | None = typer.Option(None, "--sentiment", help="Reaction sentiment"),
    lat: float | None = typer.Option(None, "--lat", help="Latitude"),
    lng: float | None = typer.Option(None, "--lng", help="Longitude"),
    captured_by: str = typer.Option("sales", "--by", help="sales or client"),
    output_json: bool = typer.Option(False, "--json", "-j", help="Output in JSON format"),
) -> None:
    """Add a capture to the local queue.

    The capture is stored on this device first and sent on the next sync,
    so this works without a network connection.
    """
    if (lat is None) != (lng is None):
        message = "--lat and --lng must be given together"
        _output({"status": "error", "message": message}, output_json, f"Error: {message}")
        raise typer.Exit(1)

    settings = get_settings()
    location = Location(lat=lat, lng=lng) if lat is not None else None

    with LocalCaptureQueue(settings.queue_path) as queue:
        try:
            record = queue.enqueue(
                visit_stop_id,
                capture_type,
                local_blob_ref=file,
                caption=caption,
                transcript=transcript,
                sentiment=sentiment,
                location=location,
                captured_by=captured_by,
            )
        except InvalidCaptureError as e:
            _output({"status": "error", "message": str(e)}, output_json, f"Error: {e}")
            raise typer.Exit(1)

        pending = queue.count()
        durable = queue.is_durable

    _output(
        {"status": "queued", "id": record.id, "pending": pending, "durable": durable},
        output_json,
        f"Queued {record.capture_type.value} capture {record.id} ({pending} pending)",
    )
    if not durable and not output_json:
        typer.echo("Warning: local storage unavailable, this capture will be lost on exit.")
