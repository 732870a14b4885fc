"""
Update detection.

Compares the publication timestamp recorded in the local metadata sidecar with
the one currently advertised by the release index. Reads only: never writes
metadata and never downloads.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from . import release_info
from .config import Settings
from .metadata import InstalledMetadata, read_metadata
from .release_info import ReleaseInfo


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UpdateStatus:
    """
    Local versus remote view of one binary.

    Attributes:
        update_available: Whether the remote asset is strictly newer
        local: Metadata of the installed binary (None if untracked)
        remote: Latest release information (None if unknown)
    """
    update_available: bool
    local: InstalledMetadata | None = None
    remote: ReleaseInfo | None = None

    def describe(self) -> str:
        """Human-readable one-line summary."""
        if self.local is None:
            return "Installed binary has no tracked metadata; update check skipped"
        if self.remote is None:
            return f"Installed {self.local.tag_name} ({self.local.updated_at}); latest release unknown"
        if self.update_available:
            return (
                f"Update available: {self.local.updated_at} → {self.remote.updated_at} "
                f"({self.remote.tag_name})"
            )
        return f"Up to date: {self.local.tag_name} ({self.local.updated_at})"


def is_newer(local: InstalledMetadata, remote: ReleaseInfo) -> bool:
    """
    Strict timestamp ordering between installed and published binaries.

    Equal timestamps are not an update. An unparseable timestamp on either
    side means no update.
    """
    local_date = local.published_at
    remote_date = remote.published_at
    if local_date is None or remote_date is None:
        logger.debug(
            f"Cannot compare timestamps (local={local.updated_at!r}, remote={remote.updated_at!r})"
        )
        return False
    return remote_date > local_date


async def check_for_update(
    binary_path: str | Path,
    binary_identifier: str,
    settings: Settings,
) -> UpdateStatus:
    """
    Gather local and remote release information for a binary.

    The release index is only queried when local metadata exists.
    """
    local = read_metadata(binary_path)
    if local is None:
        return UpdateStatus(update_available=False)

    remote = await release_info.fetch_latest(binary_identifier, settings)
    if remote is None:
        return UpdateStatus(update_available=False, local=local)

    return UpdateStatus(update_available=is_newer(local, remote), local=local, remote=remote)


async def should_update(binary_path: str | Path, binary_identifier: str, settings: Settings) -> bool:
    """
    Decide whether the binary at ``binary_path`` is outdated.

    Returns False when no metadata is tracked (fresh or externally managed
    binary), when the release index cannot be reached, or when the remote
    asset is not strictly newer.

    Args:
        binary_path: Installed binary
        binary_identifier: Release asset name for this platform
        settings: Repository and tag to query

    Returns:
        True if a newer binary is published
    """
    status = await check_for_update(binary_path, binary_identifier, settings)
    if status.update_available:
        logger.info(status.describe())
    return status.update_available
