"""
Tests for host commands and start triggers (lsp_supervisor/commands.py).
"""

import asyncio
import json
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from lsp_supervisor.commands import (
    DEFAULT_WORKSPACE_CONFIG,
    ConfigWatcher,
    activate,
    create_default_config,
    manual_update,
    on_config_changed,
    reset_to_default_binary,
    select_custom_binary,
)
from lsp_supervisor.overrides import get_custom_binary_path, set_custom_binary_path
from lsp_supervisor.supervisor import ProcessSupervisor

from conftest import IDENTIFIER, ScriptedHost


@pytest.fixture
def workspace(tmp_path):
    root = tmp_path / "workspace"
    root.mkdir()
    return root


@pytest.fixture
def managed_binary(settings):
    path = Path(settings.storage_dir) / IDENTIFIER
    path.parent.mkdir(parents=True)
    path.write_bytes(b"managed")
    return path


@pytest.fixture
def supervisor(settings, host, store, transports):
    return ProcessSupervisor(
        settings, host, store, transport_factory=transports, identifier_resolver=lambda: IDENTIFIER
    )


class TestCreateDefaultConfig:
    """Tests for create_default_config."""

    @pytest.mark.asyncio
    async def test_creates_file_and_starts(self, workspace, supervisor, host, managed_binary):
        path = await create_default_config(workspace, supervisor, host)

        assert path == workspace / "forgeconfig.json"
        assert json.loads(path.read_text()) == DEFAULT_WORKSPACE_CONFIG
        assert "ForgeLSP: forgeconfig.json created." in host.infos
        assert supervisor.is_running
        await supervisor.shutdown()

    @pytest.mark.asyncio
    async def test_default_content(self, workspace, supervisor, host, managed_binary):
        path = await create_default_config(workspace, supervisor, host)
        data = json.loads(path.read_text())
        assert data["multiple_function_colors"] is True
        assert data["urls"] == ["github:tryforge/forgescript#dev", "github:tryforge/forgedb"]
        await supervisor.shutdown()

    @pytest.mark.asyncio
    async def test_existing_file_untouched(self, workspace, supervisor, host, transports):
        existing = workspace / "forgeconfig.json"
        existing.write_text('{"urls": []}')

        assert await create_default_config(workspace, supervisor, host) is None

        assert existing.read_text() == '{"urls": []}'
        assert "ForgeLSP: forgeconfig.json already exists." in host.infos
        assert transports.created == []

    @pytest.mark.asyncio
    async def test_no_workspace(self, supervisor, host):
        assert await create_default_config(None, supervisor, host) is None
        assert host.errors == ["ForgeLSP: No workspace open."]


class TestCustomBinaryCommands:
    """Tests for select_custom_binary and reset_to_default_binary."""

    @pytest.mark.asyncio
    async def test_select_from_host(self, settings, store, transports, tmp_path):
        custom = tmp_path / "custom-lsp"
        custom.write_bytes(b"custom")
        host = ScriptedHost(selected_file=str(custom))
        supervisor = ProcessSupervisor(
            settings, host, store, transport_factory=transports, identifier_resolver=lambda: IDENTIFIER
        )

        stored = await select_custom_binary(supervisor, host, store)

        assert stored == str(custom)
        assert get_custom_binary_path(store) == str(custom)
        # Not running, so nothing is started
        assert transports.created == []

    @pytest.mark.asyncio
    async def test_select_cancelled(self, supervisor, host, store):
        assert await select_custom_binary(supervisor, host, store) is None
        assert get_custom_binary_path(store) is None
        assert "ForgeLSP: No binary selected." in host.infos

    @pytest.mark.asyncio
    async def test_select_missing_file(self, supervisor, host, store, tmp_path):
        assert await select_custom_binary(supervisor, host, store, str(tmp_path / "nope")) is None
        assert get_custom_binary_path(store) is None
        assert len(host.errors) == 1

    @pytest.mark.asyncio
    async def test_select_restarts_running_server(self, supervisor, host, store, transports, managed_binary, tmp_path):
        custom = tmp_path / "custom-lsp"
        custom.write_bytes(b"custom")
        await supervisor.start()

        await select_custom_binary(supervisor, host, store, str(custom))

        assert len(transports.created) == 2
        assert transports.last.path == custom
        await supervisor.shutdown()

    @pytest.mark.asyncio
    async def test_reset_restarts_with_managed(self, supervisor, host, store, transports, managed_binary, tmp_path):
        custom = tmp_path / "custom-lsp"
        custom.write_bytes(b"custom")
        set_custom_binary_path(store, custom)
        await supervisor.start()

        await reset_to_default_binary(supervisor, host, store)

        assert get_custom_binary_path(store) is None
        assert "ForgeLSP: Reset to default binary path." in host.infos
        assert transports.last.path == managed_binary
        await supervisor.shutdown()


class TestManualUpdate:
    @pytest.mark.asyncio
    async def test_delegates_to_supervisor(self, host):
        supervisor = AsyncMock()
        supervisor.is_updating = False
        supervisor.update.return_value = "result"
        assert await manual_update(supervisor, host) == "result"
        supervisor.update.assert_awaited_once_with(restart=True)

    @pytest.mark.asyncio
    async def test_without_restart(self, host):
        supervisor = AsyncMock()
        supervisor.is_updating = False
        await manual_update(supervisor, host, restart=False)
        supervisor.update.assert_awaited_once_with(restart=False)

    @pytest.mark.asyncio
    async def test_already_updating(self, host):
        supervisor = AsyncMock()
        supervisor.is_updating = True
        assert await manual_update(supervisor, host) is None
        supervisor.update.assert_not_awaited()
        assert "ForgeLSP: An update is already in progress." in host.infos


class TestTriggers:
    """Tests for activation and config change triggers."""

    @pytest.mark.asyncio
    async def test_activate_without_config(self, workspace, supervisor, transports):
        assert await activate(workspace, supervisor) is False
        assert transports.created == []

    @pytest.mark.asyncio
    async def test_activate_without_workspace(self, supervisor):
        assert await activate(None, supervisor) is False

    @pytest.mark.asyncio
    async def test_activate_with_config(self, workspace, supervisor, managed_binary):
        (workspace / "forgeconfig.json").write_text("{}")
        assert await activate(workspace, supervisor) is True
        await supervisor.shutdown()

    @pytest.mark.asyncio
    async def test_config_change_restarts(self, supervisor, transports, managed_binary):
        await supervisor.start()
        assert await on_config_changed(supervisor) is True
        assert len(transports.created) == 2
        await supervisor.shutdown()

    @pytest.mark.asyncio
    async def test_config_change_when_stopped(self, supervisor, transports):
        assert await on_config_changed(supervisor) is False
        assert transports.created == []


class TestConfigWatcher:
    """Tests for ConfigWatcher."""

    @pytest.mark.asyncio
    async def test_reports_creation_then_change(self, workspace):
        path = workspace / "forgeconfig.json"
        callback = AsyncMock()
        watcher = ConfigWatcher(path, callback)

        await watcher.poll()
        callback.assert_not_awaited()

        path.write_text("{}")
        await watcher.poll()
        callback.assert_awaited_once_with(True)

        path.write_text('{"urls": []}')
        await watcher.poll()
        callback.assert_awaited_with(False)
        assert callback.await_count == 2

    @pytest.mark.asyncio
    async def test_deletion_is_silent(self, workspace):
        path = workspace / "forgeconfig.json"
        path.write_text("{}")
        callback = AsyncMock()
        watcher = ConfigWatcher(path, callback)

        path.unlink()
        await watcher.poll()

        callback.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_start_and_stop(self, workspace):
        path = workspace / "forgeconfig.json"
        callback = AsyncMock()
        watcher = ConfigWatcher(path, callback, interval=0.01)

        watcher.start()
        path.write_text("{}")
        for _ in range(100):
            if callback.await_count:
                break
            await asyncio.sleep(0.01)
        await watcher.stop()

        callback.assert_awaited_once_with(True)
