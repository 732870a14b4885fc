"""
Binary installation.

Streams the platform binary from the rolling release into a temporary file
next to its destination, marks it executable, moves it into place, and then
records the release it came from in the metadata sidecar.
"""

from __future__ import annotations

import asyncio
import http.client
import logging
import os
import random
import stat
import time
import urllib.error
import urllib.request
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable

from . import release_info
from .common import is_windows
from .config import Settings
from .errors import (
    DownloadError,
    NetworkUnavailableError,
    PermissionDeniedError,
    SupervisorError,
)
from .metadata import InstalledMetadata, write_metadata
from .release_info import ReleaseInfo


logger = logging.getLogger(__name__)

PARTIAL_SUFFIX = ".download"
EXECUTABLE_BITS = stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH


@dataclass(frozen=True)
class InstallResult:
    """
    Outcome of installing the server binary.

    Attributes:
        binary_identifier: Release asset that was requested
        binary_path: Destination path of the binary
        success: Whether a new binary is now in place
        release: Release recorded in the metadata (None if the lookup failed)
        metadata_written: Whether the sidecar now describes the new binary
        bytes_written: Size of the downloaded artifact
        attempts: Download attempts made (1-indexed)
        duration_seconds: Total installation time
        failure: Failure kind (see errors module) if the install failed
        error_message: Human-readable error message if failed
    """
    binary_identifier: str
    binary_path: str
    success: bool
    release: ReleaseInfo | None = None
    metadata_written: bool = False
    bytes_written: int = 0
    attempts: int = 1
    duration_seconds: float = 0.0
    failure: str | None = None
    error_message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "binary_identifier": self.binary_identifier,
            "binary_path": self.binary_path,
            "success": self.success,
            "release": self.release.to_dict() if self.release else None,
            "metadata_written": self.metadata_written,
            "bytes_written": self.bytes_written,
            "attempts": self.attempts,
            "duration_seconds": self.duration_seconds,
            "failure": self.failure,
            "error_message": self.error_message,
        }


def calculate_backoff_delay(attempt: int, base_delay: float = 1.0, max_delay: float = 30.0) -> float:
    """
    Calculate exponential backoff delay with jitter.

    Args:
        attempt: Retry attempt number (0-indexed)
        base_delay: Initial delay in seconds
        max_delay: Maximum delay in seconds

    Returns:
        Delay in seconds with jitter applied
    """
    delay = base_delay * (2 ** attempt)
    delay = min(delay, max_delay)

    # Add jitter (+/-20%)
    jitter = delay * 0.2 * (random.random() * 2 - 1)
    return max(0.1, delay + jitter)


def open_artifact_stream(url: str, timeout: int):
    """
    Open a streaming HTTP response for the artifact.

    Returns:
        Response object usable as a context manager with ``read(size)``

    Raises:
        NetworkUnavailableError: If the request fails before a body is available
    """
    req = urllib.request.Request(url, headers={"User-Agent": release_info.USER_AGENT})
    try:
        return urllib.request.urlopen(req, timeout=timeout)
    except urllib.error.HTTPError as e:
        raise NetworkUnavailableError(
            f"GET {url} returned HTTP {e.code}", retryable=e.code >= 500
        ) from e
    except (urllib.error.URLError, OSError, http.client.HTTPException) as e:
        raise NetworkUnavailableError(f"Failed to download {url}: {e}") from e


def ensure_executable(path: str | Path) -> None:
    """
    Add the executable bits to a file (no-op on Windows).

    Raises:
        PermissionDeniedError: If the mode cannot be changed
    """
    if is_windows():
        return
    try:
        mode = os.stat(path).st_mode
        if mode & EXECUTABLE_BITS != EXECUTABLE_BITS:
            os.chmod(path, mode | EXECUTABLE_BITS)
    except OSError as e:
        raise PermissionDeniedError(
            f"Cannot make {path} executable: {e}",
            remediation="Check ownership and permissions of the binary",
        ) from e


def _discard(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Could not remove partial download {path}: {e}")


def download_artifact(
    url: str,
    dest_path: Path,
    timeout: int,
    chunk_size: int,
    opener: Callable[[str, int], Any] | None = None,
) -> int:
    """
    Stream an artifact to ``dest_path`` (blocking).

    Bytes go to ``<dest_path>.download`` chunk by chunk; the file replaces
    ``dest_path`` only after the whole body was written and made executable.
    On any failure the partial file is removed and ``dest_path`` is untouched.

    Args:
        url: Artifact URL
        dest_path: Final location of the binary
        timeout: Network timeout in seconds
        chunk_size: Bytes per read
        opener: Replacement for open_artifact_stream (tests)

    Returns:
        Number of bytes written

    Raises:
        NetworkUnavailableError: If the request could not be made
        DownloadError: If reading or writing failed mid-transfer
        PermissionDeniedError: If the new file cannot be made executable
    """
    opener = opener or open_artifact_stream
    partial_path = dest_path.with_name(dest_path.name + PARTIAL_SUFFIX)
    total = 0

    try:
        with opener(url, timeout) as response:
            with open(partial_path, "wb") as f:
                while True:
                    try:
                        chunk = response.read(chunk_size)
                    except (OSError, http.client.HTTPException) as e:
                        raise DownloadError(
                            f"Download of {url} interrupted after {total} bytes: {e}",
                            retryable=True,
                        ) from e
                    if not chunk:
                        break
                    f.write(chunk)
                    f.flush()
                    total += len(chunk)
    except SupervisorError:
        _discard(partial_path)
        raise
    except OSError as e:
        _discard(partial_path)
        raise DownloadError(f"Failed to write {partial_path}: {e}") from e

    if total == 0:
        _discard(partial_path)
        raise DownloadError(f"Download of {url} returned an empty body", retryable=True)

    try:
        ensure_executable(partial_path)
        os.replace(partial_path, dest_path)
    except PermissionDeniedError:
        _discard(partial_path)
        raise
    except OSError as e:
        _discard(partial_path)
        raise DownloadError(
            f"Failed to replace {dest_path}: {e}",
            remediation="Stop any process using the binary and retry",
        ) from e

    return total


async def install_binary(
    binary_identifier: str,
    dest_path: str | Path,
    settings: Settings,
    opener: Callable[[str, int], Any] | None = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> InstallResult:
    """
    Download the latest binary for this platform and record its metadata.

    A failed download leaves any existing binary and its metadata unchanged.
    When the follow-up release lookup fails or the sidecar cannot be written,
    the install still succeeds with ``metadata_written=False``.

    Args:
        binary_identifier: Release asset to install
        dest_path: Where the binary should live
        settings: Repository, tag, timeout and retry settings
        opener: Replacement for open_artifact_stream (tests)
        sleep: Awaitable used between retries

    Returns:
        InstallResult with installation outcome
    """
    dest = Path(dest_path)
    url = release_info.download_url(binary_identifier, settings)
    start_time = time.time()

    def failed(error: SupervisorError, attempts: int) -> InstallResult:
        message = error.message
        if error.remediation:
            message += f" ({error.remediation})"
        logger.error(f"Install of {binary_identifier} failed: {message}")
        return InstallResult(
            binary_identifier=binary_identifier,
            binary_path=str(dest),
            success=False,
            attempts=attempts,
            duration_seconds=time.time() - start_time,
            failure=error.kind,
            error_message=message,
        )

    try:
        dest.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        return failed(PermissionDeniedError(f"Cannot create {dest.parent}: {e}"), attempts=0)

    logger.info(f"Downloading binary from {url}")
    attempt = 0
    while True:
        attempt += 1
        try:
            size = await asyncio.to_thread(
                download_artifact, url, dest, settings.timeout_seconds, settings.chunk_size, opener
            )
            break
        except SupervisorError as e:
            if not e.retryable or attempt >= settings.download_retries:
                return failed(e, attempts=attempt)
            delay = calculate_backoff_delay(attempt - 1)
            logger.warning(
                f"Download attempt {attempt}/{settings.download_retries} failed: {e.message}. "
                f"Retrying after {delay:.1f}s..."
            )
            await sleep(delay)

    logger.info(f"Download complete: {dest} ({size} bytes)")

    # Record which release the binary came from for later update checks
    release = await release_info.fetch_latest(binary_identifier, settings)
    metadata_written = False
    if release is None:
        logger.warning("Release information unavailable; metadata left unchanged")
    else:
        metadata_written = write_metadata(
            dest, InstalledMetadata(updated_at=release.updated_at, tag_name=release.tag_name)
        )

    return InstallResult(
        binary_identifier=binary_identifier,
        binary_path=str(dest),
        success=True,
        release=release,
        metadata_written=metadata_written,
        bytes_written=size,
        attempts=attempt,
        duration_seconds=time.time() - start_time,
    )
