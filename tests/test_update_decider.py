"""
Tests for update detection (lsp_supervisor/update_decider.py).
"""

from pathlib import Path

import pytest

from lsp_supervisor.errors import NetworkUnavailableError
from lsp_supervisor.metadata import InstalledMetadata, get_metadata_path, write_metadata
from lsp_supervisor.release_info import ReleaseInfo
from lsp_supervisor.update_decider import (
    UpdateStatus,
    check_for_update,
    is_newer,
    should_update,
)

from conftest import IDENTIFIER, make_index


def install_fake_binary(settings, updated_at=None):
    path = Path(settings.storage_dir) / IDENTIFIER
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"binary")
    if updated_at is not None:
        write_metadata(path, InstalledMetadata(updated_at=updated_at, tag_name="master"))
    return path


class TestIsNewer:
    """Tests for timestamp ordering."""

    @pytest.mark.parametrize("local,remote,expected", [
        ("2024-01-01T00:00:00Z", "2024-01-02T00:00:00Z", True),
        ("2024-01-02T00:00:00Z", "2024-01-01T00:00:00Z", False),
        ("2024-01-01T00:00:00Z", "2024-01-01T00:00:00Z", False),
        # Same instant in a different offset is not newer
        ("2024-01-01T00:00:00Z", "2024-01-01T02:00:00+02:00", False),
        ("2024-01-01T00:00:00Z", "2024-01-01T00:00:01Z", True),
    ])
    def test_ordering(self, local, remote, expected):
        assert is_newer(
            InstalledMetadata(updated_at=local, tag_name="master"),
            ReleaseInfo(tag_name="master", updated_at=remote),
        ) is expected

    @pytest.mark.parametrize("local,remote", [
        ("garbage", "2024-01-02T00:00:00Z"),
        ("2024-01-01T00:00:00Z", ""),
    ])
    def test_unparseable_is_not_newer(self, local, remote):
        assert is_newer(
            InstalledMetadata(updated_at=local, tag_name="master"),
            ReleaseInfo(tag_name="master", updated_at=remote),
        ) is False


class TestUpdateStatus:
    def test_describe_untracked(self):
        assert "no tracked metadata" in UpdateStatus(update_available=False).describe()

    def test_describe_available(self):
        status = UpdateStatus(
            update_available=True,
            local=InstalledMetadata(updated_at="2024-01-01T00:00:00Z", tag_name="master"),
            remote=ReleaseInfo(tag_name="master", updated_at="2024-02-01T00:00:00Z"),
        )
        assert status.describe().startswith("Update available")
        assert "2024-02-01T00:00:00Z" in status.describe()


class TestShouldUpdate:
    """Tests for should_update."""

    @pytest.mark.asyncio
    async def test_no_metadata_skips_query(self, settings, release_index):
        """Test an untracked binary never queries the release index."""
        path = install_fake_binary(settings)
        assert await should_update(path, IDENTIFIER, settings) is False
        release_index.assert_not_called()

    @pytest.mark.asyncio
    async def test_newer_remote(self, settings, release_index):
        path = install_fake_binary(settings, updated_at="2024-01-01T00:00:00Z")
        release_index.return_value = make_index(updated_at="2024-01-02T00:00:00Z")
        assert await should_update(path, IDENTIFIER, settings) is True

    @pytest.mark.asyncio
    async def test_equal_timestamps(self, settings, release_index):
        path = install_fake_binary(settings, updated_at="2024-01-01T00:00:00Z")
        release_index.return_value = make_index(updated_at="2024-01-01T00:00:00Z")
        assert await should_update(path, IDENTIFIER, settings) is False

    @pytest.mark.asyncio
    async def test_remote_unavailable(self, settings, release_index):
        path = install_fake_binary(settings, updated_at="2024-01-01T00:00:00Z")
        release_index.side_effect = NetworkUnavailableError("offline")
        assert await should_update(path, IDENTIFIER, settings) is False

    @pytest.mark.asyncio
    async def test_asset_missing_from_release(self, settings, release_index):
        path = install_fake_binary(settings, updated_at="2024-01-01T00:00:00Z")
        release_index.return_value = make_index(name="forgevsc-macos-aarch64", updated_at="2025-01-01T00:00:00Z")
        assert await should_update(path, IDENTIFIER, settings) is False

    @pytest.mark.asyncio
    async def test_corrupt_metadata_is_untracked(self, settings, release_index):
        path = install_fake_binary(settings)
        get_metadata_path(path).write_text("{broken")
        assert await should_update(path, IDENTIFIER, settings) is False
        release_index.assert_not_called()

    @pytest.mark.asyncio
    async def test_never_writes_metadata(self, settings, release_index):
        """Test the check only reads."""
        path = install_fake_binary(settings, updated_at="2024-01-01T00:00:00Z")
        before = get_metadata_path(path).read_bytes()
        release_index.return_value = make_index(updated_at="2024-06-01T00:00:00Z")

        status = await check_for_update(path, IDENTIFIER, settings)

        assert status.update_available is True
        assert status.remote.updated_at == "2024-06-01T00:00:00Z"
        assert get_metadata_path(path).read_bytes() == before
