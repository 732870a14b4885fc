"""
Shared fixtures: settings rooted in tmp_path, a scripted host, fake
transports and fake release/download endpoints. No test touches the network.
"""

import asyncio
import io
from pathlib import Path
from unittest.mock import patch

import pytest

from lsp_supervisor.config import Settings
from lsp_supervisor.host import HostSurface
from lsp_supervisor.overrides import StateStore
from lsp_supervisor.release_info import ReleaseAsset, ReleaseIndex


IDENTIFIER = "forgevsc-linux-x86_64"


class ScriptedHost(HostSurface):
    """Host that answers prompts from a list and records every message."""

    def __init__(self, answers=None, selected_file=None):
        self.answers = list(answers or [])
        self.selected_file = selected_file
        self.prompts = []
        self.infos = []
        self.errors = []

    async def confirm(self, message, accept, decline):
        self.prompts.append(message)
        return self.answers.pop(0) if self.answers else False

    def show_info(self, message):
        self.infos.append(message)

    def show_error(self, message):
        self.errors.append(message)

    async def select_file(self, prompt):
        return self.selected_file


class FakeTransport:
    """Stands in for ProcessTransport; closes when stopped or crashed."""

    def __init__(self, path, args=()):
        self.path = Path(path)
        self.args = tuple(args)
        self.started = False
        self.stopped = False
        self.exit_code = 0
        self.fail_start = None
        self._closed = asyncio.Event()

    @property
    def pid(self):
        return id(self)

    @property
    def is_running(self):
        return self.started and not self._closed.is_set()

    async def start(self):
        if self.fail_start is not None:
            raise self.fail_start
        self.started = True

    async def stop(self, timeout=5.0):
        self.stopped = True
        self._closed.set()

    async def wait_closed(self):
        await self._closed.wait()
        return self.exit_code

    def crash(self, code=1):
        self.exit_code = code
        self._closed.set()


class FakeTransportFactory:
    """Records every transport the supervisor creates."""

    def __init__(self):
        self.created = []
        self.fail_with = None

    def __call__(self, path, args):
        transport = FakeTransport(path, args)
        if self.fail_with is not None:
            transport.fail_start = self.fail_with
        self.created.append(transport)
        return transport

    @property
    def last(self):
        return self.created[-1]


class FakeResponse:
    """Streaming response serving ``payload``; optionally fails after ``fail_after`` bytes."""

    def __init__(self, payload, fail_after=None):
        self._body = io.BytesIO(payload)
        self._fail_after = fail_after
        self.read_sizes = []

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def read(self, size=-1):
        self.read_sizes.append(size)
        if self._fail_after is not None and self._body.tell() >= self._fail_after:
            raise ConnectionResetError("connection reset by peer")
        if self._fail_after is not None:
            size = min(size, self._fail_after - self._body.tell())
        return self._body.read(size)


def make_index(tag="master", updated_at="2024-01-01T00:00:00Z", name=IDENTIFIER):
    return ReleaseIndex(
        tag_name=tag,
        assets=(
            ReleaseAsset(
                name=name,
                updated_at=updated_at,
                browser_download_url=f"https://github.com/zack-911/forgelsp/releases/download/{tag}/{name}",
            ),
        ),
    )


@pytest.fixture
def settings(tmp_path):
    return Settings(
        storage_dir=str(tmp_path / "storage"),
        state_file=str(tmp_path / "state" / "state.json"),
        download_retries=1,
        chunk_size=1024,
    )


@pytest.fixture
def store(settings):
    return StateStore(settings.state_path)


@pytest.fixture
def host():
    return ScriptedHost()


@pytest.fixture
def transports():
    return FakeTransportFactory()


@pytest.fixture
def release_index():
    """Patch the release index query; set ``.return_value`` or ``.side_effect``."""
    with patch("lsp_supervisor.release_info.fetch_release_index") as mock_fetch:
        mock_fetch.return_value = make_index()
        yield mock_fetch


@pytest.fixture
def artifact():
    """Patch the artifact download; the payload is served by FakeResponse."""
    with patch("lsp_supervisor.installer.open_artifact_stream") as mock_open:
        mock_open.side_effect = lambda url, timeout: FakeResponse(b"\x7fELF new server binary")
        yield mock_open


async def wait_for(predicate, timeout=2.0):
    """Let background tasks run until ``predicate()`` holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)
