"""
Commands exposed to the host and the triggers that start supervision.

Each command only talks to the core through ProcessSupervisor and reports
problems through the host surface.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any, Awaitable, Callable

from .host import HostSurface, notify_failure
from .installer import InstallResult
from .overrides import StateStore, clear_custom_binary_path, set_custom_binary_path
from .supervisor import ProcessSupervisor


logger = logging.getLogger(__name__)

DEFAULT_WORKSPACE_CONFIG: dict[str, Any] = {
    "multiple_function_colors": True,
    "urls": [
        "github:tryforge/forgescript#dev",
        "github:tryforge/forgedb",
    ],
}


def workspace_config_path(workspace_root: str | Path, supervisor: ProcessSupervisor) -> Path:
    return Path(workspace_root) / supervisor.settings.workspace_config_name


async def create_default_config(
    workspace_root: str | Path | None,
    supervisor: ProcessSupervisor,
    host: HostSurface,
) -> Path | None:
    """
    Write the default workspace config and start the server.

    Does nothing (besides telling the user) when the file already exists.

    Returns:
        Path of the created file, or None if nothing was written
    """
    if workspace_root is None:
        host.show_error("ForgeLSP: No workspace open.")
        return None

    config_path = workspace_config_path(workspace_root, supervisor)
    if config_path.exists():
        host.show_info(f"ForgeLSP: {config_path.name} already exists.")
        return None

    try:
        with open(config_path, "w", encoding="utf-8") as f:
            json.dump(DEFAULT_WORKSPACE_CONFIG, f, indent=2)
    except OSError as e:
        notify_failure(host, f"Could not create {config_path}: {e}")
        return None

    host.show_info(f"ForgeLSP: {config_path.name} created.")
    logger.info(f"Created workspace config {config_path}")

    if not supervisor.is_running:
        await supervisor.start()
    return config_path


async def select_custom_binary(
    supervisor: ProcessSupervisor,
    host: HostSurface,
    store: StateStore,
    path: str | None = None,
) -> str | None:
    """
    Use a user-chosen executable instead of the managed binary.

    Args:
        path: Executable to use; the host is asked for one when omitted

    Returns:
        Stored absolute path, or None if nothing was selected
    """
    if path is None:
        path = await host.select_file("Select LSP Binary")
    if not path:
        host.show_info("ForgeLSP: No binary selected.")
        return None

    if not os.path.isfile(path):
        notify_failure(host, f"Custom binary {path} does not exist.")
        return None

    try:
        stored = set_custom_binary_path(store, path)
    except OSError as e:
        notify_failure(host, f"Could not save custom binary path: {e}")
        return None

    host.show_info(f"ForgeLSP: Custom binary set to {stored}")
    if supervisor.is_running:
        await supervisor.restart()
    return stored


async def reset_to_default_binary(
    supervisor: ProcessSupervisor,
    host: HostSurface,
    store: StateStore,
) -> None:
    """Forget the custom binary and go back to the managed one."""
    try:
        clear_custom_binary_path(store)
    except OSError as e:
        notify_failure(host, f"Could not reset binary path: {e}")
        return

    host.show_info("ForgeLSP: Reset to default binary path.")
    if supervisor.is_running:
        await supervisor.restart()


async def manual_update(
    supervisor: ProcessSupervisor,
    host: HostSurface,
    restart: bool = True,
) -> InstallResult | None:
    """Reinstall the managed binary; ``restart=False`` leaves a stopped server stopped."""
    if supervisor.is_updating:
        host.show_info("ForgeLSP: An update is already in progress.")
        return None
    return await supervisor.update(restart=restart)


async def activate(workspace_root: str | Path | None, supervisor: ProcessSupervisor) -> bool:
    """
    Workspace-open trigger.

    The server is started only when the workspace has a config file;
    otherwise it waits for create_default_config or the file to appear.
    """
    if workspace_root is None:
        logger.info("No workspace open, skipping auto-start.")
        return False

    config_path = workspace_config_path(workspace_root, supervisor)
    if not config_path.exists():
        logger.info(f"{config_path.name} not found. Waiting for command or file creation.")
        return False

    return await supervisor.start()


async def on_config_changed(supervisor: ProcessSupervisor) -> bool:
    """Config-file trigger: restart a running server so it rereads the config."""
    if not supervisor.is_running:
        return False
    logger.info("Workspace config changed; restarting server")
    return await supervisor.restart()


class ConfigWatcher:
    """
    Polls the workspace config file and reports changes.

    Fires ``callback`` with True when the file appears and False when it
    changes afterwards.
    """

    def __init__(
        self,
        path: str | Path,
        callback: Callable[[bool], Awaitable[Any]],
        interval: float = 1.0,
    ):
        self.path = Path(path)
        self.callback = callback
        self.interval = interval
        self._last = self._signature()
        self._task: asyncio.Task | None = None

    def _signature(self) -> tuple[int, int] | None:
        try:
            st = self.path.stat()
        except OSError:
            return None
        return (st.st_mtime_ns, st.st_size)

    async def poll(self) -> None:
        """Check the file once and run the callback on a change."""
        current = self._signature()
        if current == self._last:
            return
        created = self._last is None
        self._last = current
        if current is not None:
            await self.callback(created)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            await self.poll()

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
