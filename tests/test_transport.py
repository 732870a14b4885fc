"""
Tests for the stdio process transport and console host
(lsp_supervisor/transport.py, lsp_supervisor/host.py).
"""

import io
import sys
from unittest.mock import patch

import pytest

from lsp_supervisor.errors import PermissionDeniedError
from lsp_supervisor.host import ConsoleHost, notify_failure
from lsp_supervisor.transport import ProcessTransport

from conftest import ScriptedHost


ECHO_SERVER = "import sys; sys.stdout.write(sys.stdin.readline()); sys.stdout.flush()"
IDLE_SERVER = "import time; time.sleep(60)"


class TestProcessTransport:
    """Tests for ProcessTransport with a real subprocess."""

    @pytest.mark.asyncio
    async def test_stdio_round_trip(self):
        transport = ProcessTransport(sys.executable, ["-c", ECHO_SERVER])
        await transport.start()
        assert transport.is_running
        assert transport.pid is not None

        transport.stdin.write(b"Content-Length: 2\r\n")
        await transport.stdin.drain()
        line = await transport.stdout.readline()

        assert line == b"Content-Length: 2\r\n"
        assert await transport.wait_closed() == 0
        assert not transport.is_running

    @pytest.mark.asyncio
    async def test_exit_code_reported(self):
        transport = ProcessTransport(sys.executable, ["-c", "import sys; sys.exit(3)"])
        await transport.start()
        assert await transport.wait_closed() == 3

    @pytest.mark.asyncio
    async def test_stop_terminates(self):
        transport = ProcessTransport(sys.executable, ["-c", IDLE_SERVER])
        await transport.start()

        await transport.stop(timeout=5.0)

        assert not transport.is_running
        await transport.wait_closed()

    @pytest.mark.asyncio
    async def test_stop_before_start_is_noop(self):
        transport = ProcessTransport(sys.executable)
        await transport.stop()
        assert await transport.wait_closed() == 0

    @pytest.mark.asyncio
    async def test_missing_executable(self, tmp_path):
        transport = ProcessTransport(tmp_path / "no-such-server")
        with pytest.raises(PermissionDeniedError) as exc_info:
            await transport.start()
        assert "no-such-server" in exc_info.value.message
        assert transport.process is None


class TestConsoleHost:
    """Tests for ConsoleHost."""

    @pytest.mark.asyncio
    async def test_assume_yes(self):
        stream = io.StringIO()
        host = ConsoleHost(assume_yes=True, stream=stream)
        assert await host.confirm("Download?", "Download", "Cancel") is True
        assert "Download?" in stream.getvalue()

    @pytest.mark.asyncio
    async def test_non_interactive_declines(self):
        host = ConsoleHost(stream=io.StringIO())
        with patch("lsp_supervisor.host.sys.stdin") as stdin:
            stdin.isatty.return_value = False
            assert await host.confirm("Download?", "Download", "Cancel") is False
            assert await host.select_file("Select LSP Binary") is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("answer,expected", [
        ("Download\n", True),
        ("d\n", True),
        ("yes\n", True),
        ("Cancel\n", False),
        ("\n", False),
    ])
    async def test_interactive_answers(self, answer, expected):
        host = ConsoleHost(stream=io.StringIO())
        with patch("lsp_supervisor.host.sys.stdin") as stdin:
            stdin.isatty.return_value = True
            stdin.readline.return_value = answer
            assert await host.confirm("Download?", "Download", "Cancel") is expected

    def test_messages(self):
        stream = io.StringIO()
        host = ConsoleHost(stream=stream)
        host.show_info("ForgeLSP binary downloaded successfully.")
        host.show_error("ForgeLSP: boom")
        assert stream.getvalue().splitlines() == [
            "ForgeLSP binary downloaded successfully.",
            "✗ ForgeLSP: boom",
        ]


class TestNotifyFailure:
    def test_prefixes_message(self):
        host = ScriptedHost()
        with patch("lsp_supervisor.host.logger") as mock_logger:
            notify_failure(host, "Unsupported platform or architecture.")
        assert host.errors == ["ForgeLSP: Unsupported platform or architecture."]
        mock_logger.error.assert_called_once_with("Unsupported platform or architecture.")
