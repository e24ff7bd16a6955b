"""CLI command modules for the site visit agent."""

from sitevisit.cli_commands.capture import capture_app
from sitevisit.cli_commands.status import status_command
from sitevisit.cli_commands.sync import sync_app

__all__ = ["capture_app", "status_command", "sync_app"]
