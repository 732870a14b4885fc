"""
Host surface: how the supervisor talks to the user.

Editors provide their own implementation (dialogs, notifications, file
pickers). ConsoleHost is the terminal implementation used by the CLI.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from abc import ABC, abstractmethod


logger = logging.getLogger(__name__)

MESSAGE_PREFIX = "ForgeLSP: "


class HostSurface(ABC):
    """User-facing collaborator consulted by the supervisor and commands."""

    @abstractmethod
    async def confirm(self, message: str, accept: str, decline: str) -> bool:
        """Ask a yes/no question. Returns True only if ``accept`` was chosen."""

    @abstractmethod
    def show_info(self, message: str) -> None:
        """Display an informational message."""

    @abstractmethod
    def show_error(self, message: str) -> None:
        """Display an error message."""

    async def select_file(self, prompt: str) -> str | None:
        """Let the user pick a file. Hosts without a picker return None."""
        return None


def notify_failure(host: HostSurface, message: str) -> None:
    """One log line and one user-visible notification for a failure."""
    logger.error(message)
    host.show_error(f"{MESSAGE_PREFIX}{message}")


class ConsoleHost(HostSurface):
    """
    Terminal host.

    Prompts on stdin; when stdin is not interactive every question is
    declined unless ``assume_yes`` is set.
    """

    def __init__(self, assume_yes: bool = False, stream=None):
        self.assume_yes = assume_yes
        self.stream = stream or sys.stderr

    async def confirm(self, message: str, accept: str, decline: str) -> bool:
        if self.assume_yes:
            print(f"{message} [{accept}]", file=self.stream)
            return True

        if not sys.stdin.isatty():
            # Non-interactive
            logger.info(f"{message} -> {decline} (non-interactive)")
            return False

        print(f"{message} [{accept}/{decline}] ", end="", file=self.stream, flush=True)
        response = await asyncio.to_thread(sys.stdin.readline)
        return response.strip().lower() in (accept.lower(), accept[:1].lower(), "y", "yes")

    def show_info(self, message: str) -> None:
        print(message, file=self.stream)

    def show_error(self, message: str) -> None:
        print(f"✗ {message}", file=self.stream)

    async def select_file(self, prompt: str) -> str | None:
        if not sys.stdin.isatty():
            return None
        print(f"{prompt}: ", end="", file=self.stream, flush=True)
        response = (await asyncio.to_thread(sys.stdin.readline)).strip()
        return response or None
