"""Deferred wake registration for background sync.

Some runtimes can run a task later without an open foreground session (an OS
background task scheduler, a service worker, a systemd timer). Registration
only expresses interest; nothing guarantees the task ever fires, so the
coordinator also drains on every foreground reconnect.
"""

from collections.abc import Callable
from typing import Protocol

SYNC_TAG = "sync-captures"


class WakeRegistrar(Protocol):
    """Registers interest in a background sync run."""

    def register(self, tag: str) -> None:
        """Ask the runtime to wake us for ``tag`` at some later point."""
        ...


class NullWakeRegistrar:
    """Registrar for runtimes without deferred execution."""

    def register(self, tag: str) -> None:
        return None


class CallbackWakeRegistrar:
    """Registrar that forwards to a host-provided callable.

    Example:
        registrar = CallbackWakeRegistrar(scheduler.request_background_run)
    """

    def __init__(self, callback: Callable[[str], None]) -> None:
        self._callback = callback
        self.registered: set[str] = set()

    def register(self, tag: str) -> None:
        self._callback(tag)
        self.registered.add(tag)
