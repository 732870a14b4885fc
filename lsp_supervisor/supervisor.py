"""
Language server supervision.

ProcessSupervisor owns the single slot in which the server process lives and
moves it through NOT_RUNNING → STARTING → RUNNING → STOPPING. Every request
(start, stop, restart, update) is checked against the current state, so a
second request arriving while another one is suspended on the network, on
disk, or on a user prompt is rejected instead of interleaved.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Sequence

from .config import Settings
from .errors import SupervisorError
from .host import HostSurface, notify_failure
from .installer import InstallResult, ensure_executable, install_binary
from .overrides import ResolvedBinary, StateStore, resolve_binary_path
from .platform_resolver import resolve_binary_identifier
from .transport import ProcessTransport
from .update_decider import should_update


logger = logging.getLogger(__name__)

TransportFactory = Callable[[Path, Sequence[str]], ProcessTransport]


class SupervisorState(Enum):
    NOT_RUNNING = "not_running"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


class ProcessSupervisor:
    """
    Single-instance supervisor for the language server process.

    Attributes:
        settings: Supervisor configuration
        host: User-facing collaborator for prompts and notifications
        store: Persisted state holding the custom binary override
    """

    def __init__(
        self,
        settings: Settings,
        host: HostSurface,
        store: StateStore,
        transport_factory: Optional[TransportFactory] = None,
        identifier_resolver: Optional[Callable[[], Optional[str]]] = None,
        cwd: Optional[str] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings
        self.host = host
        self.store = store
        self.cwd = cwd
        self._transport_factory = transport_factory or self._spawn_process
        self._identifier_resolver = identifier_resolver or resolve_binary_identifier
        self._clock = clock

        self._state = SupervisorState.NOT_RUNNING
        self._transport: Optional[ProcessTransport] = None
        self._binary: Optional[ResolvedBinary] = None
        self._monitor_task: Optional[asyncio.Task] = None
        self._user_stopped = False
        self._shut_down = False
        self._updating = False
        self._identifier: Optional[str] = None
        self._identifier_resolved = False
        self._restart_times: deque[float] = deque()

    def _spawn_process(self, path: Path, args: Sequence[str]) -> ProcessTransport:
        return ProcessTransport(path, args, cwd=self.cwd)

    @property
    def state(self) -> SupervisorState:
        return self._state

    @property
    def transport(self) -> Optional[ProcessTransport]:
        return self._transport

    @property
    def binary_path(self) -> Optional[Path]:
        """Binary the running process was spawned from."""
        return self._binary.path if self._binary else None

    @property
    def is_running(self) -> bool:
        return self._state is SupervisorState.RUNNING

    @property
    def is_updating(self) -> bool:
        return self._updating

    def _set_state(self, state: SupervisorState) -> None:
        if state is not self._state:
            logger.debug(f"Supervisor state: {self._state.value} -> {state.value}")
            self._state = state

    def binary_identifier(self) -> Optional[str]:
        """
        Platform binary identifier, resolved once per run.

        An unsupported platform is reported to the user the first time only.
        """
        if not self._identifier_resolved:
            self._identifier = self._identifier_resolver()
            self._identifier_resolved = True
            if self._identifier is None:
                notify_failure(self.host, "Unsupported platform or architecture.")
        return self._identifier

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def start(self) -> bool:
        """
        Start the server if nothing is running.

        Returns:
            True if the server is now running as a result of this call.
            False if the request was rejected (already running, busy, or
            unsupported platform) or the start was declined or failed.
        """
        if self._shut_down:
            logger.debug("Start ignored: supervisor is shut down")
            return False
        if self._updating or self._state is not SupervisorState.NOT_RUNNING:
            logger.debug(f"Start ignored: supervisor is {self._state.value}")
            return False

        identifier = self.binary_identifier()
        if identifier is None:
            return False

        return await self._launch(identifier)

    async def stop(self) -> bool:
        """
        Stop the server at the user's request. It will not be restarted.

        Returns:
            True if a running server was stopped
        """
        if self._state is not SupervisorState.RUNNING:
            logger.debug(f"Stop ignored: supervisor is {self._state.value}")
            return False

        self._user_stopped = True
        await self._stop_transport()
        return True

    async def restart(self) -> bool:
        """Stop the server if it is running, then start it again."""
        if self._updating or self._state in (SupervisorState.STARTING, SupervisorState.STOPPING):
            logger.debug(f"Restart ignored: supervisor is {self._state.value}")
            return False

        if self._state is SupervisorState.RUNNING:
            await self.stop()
        return await self.start()

    async def update(self, restart: bool = True) -> Optional[InstallResult]:
        """
        Reinstall the managed binary from the latest release.

        A running server is stopped first so the binary can be replaced, then
        started again with whatever binary is on disk afterwards, old or new.
        Custom binaries are never overwritten.

        Args:
            restart: Start the server afterwards. When False, a server that
                was running before the update is still started again.

        Returns:
            InstallResult of the download, or None if the request was
            rejected or skipped
        """
        if self._shut_down:
            logger.debug("Update ignored: supervisor is shut down")
            return None
        if self._updating or self._state in (SupervisorState.STARTING, SupervisorState.STOPPING):
            logger.warning("Update rejected: another supervision request is in progress")
            return None

        identifier = self.binary_identifier()
        if identifier is None:
            return None

        self._updating = True
        result: Optional[InstallResult] = None
        try:
            binary = resolve_binary_path(identifier, self.settings, self.store)

            was_running = self._state is SupervisorState.RUNNING
            restart = restart or was_running
            if was_running:
                logger.info("Stopping LSP for update...")
                self._user_stopped = True
                await self._stop_transport()
                logger.info("LSP stopped.")

            if binary.is_override:
                self.host.show_info("ForgeLSP: Using custom binary; update skipped.")
            else:
                logger.info("Manual LSP update triggered...")
                result = await install_binary(identifier, binary.path, self.settings)
                if result.success and restart:
                    self.host.show_info("ForgeLSP binary updated successfully. Restarting LSP...")
                elif result.success:
                    self.host.show_info("ForgeLSP binary updated successfully.")
                else:
                    notify_failure(self.host, f"Failed to update binary. {result.error_message}")
        finally:
            self._updating = False

        if not restart:
            return result
        if binary.exists:
            await self._launch(identifier, check_updates=False)
        else:
            logger.warning(f"No binary at {binary.path}; not starting the server")
        return result

    async def shutdown(self) -> None:
        """
        Stop the server for good (extension deactivation).

        A start that is still in progress finishes without spawning, and
        later start or update requests are ignored.
        """
        self._shut_down = True
        self._user_stopped = True
        if self._state is SupervisorState.RUNNING:
            await self._stop_transport()

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def _launch(self, identifier: str, check_updates: bool = True) -> bool:
        self._set_state(SupervisorState.STARTING)
        launched = False
        try:
            launched = await self._provision_and_spawn(identifier, check_updates)
        except SupervisorError as e:
            message = e.message
            if e.remediation:
                message += f" ({e.remediation})"
            notify_failure(self.host, message)
        finally:
            if not launched:
                self._transport = None
                self._binary = None
                self._set_state(SupervisorState.NOT_RUNNING)
        return launched

    async def _provision_and_spawn(self, identifier: str, check_updates: bool) -> bool:
        binary = resolve_binary_path(identifier, self.settings, self.store)

        if not binary.exists:
            accepted = await self.host.confirm(
                f"ForgeLSP binary not found. Download {identifier}?", "Download", "Cancel"
            )
            if not accepted:
                logger.info("Binary download declined; server not started")
                return False

            result = await install_binary(identifier, binary.path, self.settings)
            if not result.success:
                notify_failure(self.host, f"Failed to download binary. {result.error_message}")
                return False
            self.host.show_info("ForgeLSP binary downloaded successfully.")

        elif check_updates and not binary.is_override:
            if await should_update(binary.path, identifier, self.settings):
                accepted = await self.host.confirm(
                    "A new version of ForgeLSP is available. Update now?", "Update", "Skip"
                )
                if accepted:
                    logger.info("Updating ForgeLSP binary...")
                    result = await install_binary(identifier, binary.path, self.settings)
                    if result.success:
                        self.host.show_info("ForgeLSP binary updated successfully.")
                    else:
                        # Keep going with the binary that is still on disk
                        notify_failure(self.host, f"Failed to update binary. {result.error_message}")

        await asyncio.to_thread(ensure_executable, binary.path)

        if self._shut_down:
            logger.info("Supervisor shut down during start; server not spawned")
            return False

        transport = self._transport_factory(binary.path, self.settings.server_args)
        await transport.start()

        if self._shut_down:
            logger.info("Supervisor shut down during start; stopping server")
            await transport.stop()
            return False

        self._transport = transport
        self._binary = binary
        self._user_stopped = False
        self._set_state(SupervisorState.RUNNING)
        self._monitor_task = asyncio.create_task(self._monitor(transport, identifier))
        return True

    async def _stop_transport(self) -> None:
        transport = self._transport
        monitor = self._monitor_task
        self._set_state(SupervisorState.STOPPING)
        try:
            if transport is not None:
                await transport.stop()
            if monitor is not None and monitor is not asyncio.current_task():
                await monitor
        finally:
            self._transport = None
            self._binary = None
            self._monitor_task = None
            self._set_state(SupervisorState.NOT_RUNNING)

    async def _monitor(self, transport: ProcessTransport, identifier: str) -> None:
        """Turn transport closure into the auto-restart transition."""
        code = await transport.wait_closed()

        if transport is not self._transport:
            return
        if self._user_stopped or self._state is not SupervisorState.RUNNING:
            return

        logger.warning(f"LSP Connection Closed (exit code {code}).")
        self._set_state(SupervisorState.STOPPING)
        self._transport = None
        self._monitor_task = None

        if not self._allow_restart():
            notify_failure(
                self.host,
                f"The language server stopped {self.settings.max_restarts} times in the last "
                f"{self.settings.restart_window_seconds} seconds and will not be restarted.",
            )
            self._binary = None
            self._set_state(SupervisorState.NOT_RUNNING)
            return

        logger.info("Restarting Forge Language Server...")
        await self._launch(identifier)

    def _allow_restart(self) -> bool:
        now = self._clock()
        window = self.settings.restart_window_seconds
        while self._restart_times and now - self._restart_times[0] > window:
            self._restart_times.popleft()
        if len(self._restart_times) >= self.settings.max_restarts:
            return False
        self._restart_times.append(now)
        return True
