"""
Process transport for the language server.

Spawns the server binary with piped stdin/stdout. The message stream itself is
opaque here; the supervisor only cares when the process starts and when it
goes away. Server stderr is forwarded to the log.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional, Sequence

from .errors import PermissionDeniedError


logger = logging.getLogger(__name__)

DEFAULT_STOP_TIMEOUT = 5.0


class ProcessTransport:
    """
    Manages one server subprocess speaking over stdio.

    Attributes:
        command: Executable path
        args: Extra arguments passed to the server
        cwd: Working directory for the server (workspace root)
        process: The running subprocess, once started
    """

    def __init__(self, command: str | Path, args: Sequence[str] = (), cwd: Optional[str] = None):
        self.command = str(command)
        self.args = tuple(args)
        self.cwd = cwd
        self.process: Optional[asyncio.subprocess.Process] = None
        self._stderr_task: Optional[asyncio.Task] = None

    @property
    def pid(self) -> Optional[int]:
        return self.process.pid if self.process else None

    @property
    def is_running(self) -> bool:
        return self.process is not None and self.process.returncode is None

    @property
    def stdin(self) -> Optional[asyncio.StreamWriter]:
        return self.process.stdin if self.process else None

    @property
    def stdout(self) -> Optional[asyncio.StreamReader]:
        return self.process.stdout if self.process else None

    async def start(self) -> None:
        """
        Spawn the server process.

        Raises:
            PermissionDeniedError: If the executable cannot be launched
        """
        if self.is_running:
            logger.warning("Server process already running.")
            return

        logger.info(f"Starting Forge Language Server: {self.command}")
        try:
            self.process = await asyncio.create_subprocess_exec(
                self.command,
                *self.args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.cwd,
            )
        except OSError as e:
            raise PermissionDeniedError(
                f"Cannot start {self.command}: {e}",
                remediation="Check that the binary exists and is executable",
            ) from e

        self._stderr_task = asyncio.create_task(self._drain_stderr())
        logger.info(f"Forge Language Server started (pid {self.process.pid}).")

    async def _drain_stderr(self) -> None:
        if not self.process or not self.process.stderr:
            return
        while True:
            line = await self.process.stderr.readline()
            if not line:
                break
            logger.debug(f"[server] {line.decode('utf-8', 'replace').rstrip()}")

    async def wait_closed(self) -> int:
        """Wait until the process exits and return its exit code."""
        if self.process is None:
            return 0
        code = await self.process.wait()
        if self._stderr_task:
            await self._stderr_task
        return code

    async def stop(self, timeout: float = DEFAULT_STOP_TIMEOUT) -> None:
        """Terminate the process, killing it if it does not exit in time."""
        if not self.is_running:
            return

        assert self.process is not None
        if self.process.stdin and not self.process.stdin.is_closing():
            self.process.stdin.close()

        try:
            self.process.terminate()
        except ProcessLookupError:
            return

        try:
            await asyncio.wait_for(self.process.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Server did not exit within {timeout}s; killing it")
            try:
                self.process.kill()
            except ProcessLookupError:
                return
            await self.process.wait()
