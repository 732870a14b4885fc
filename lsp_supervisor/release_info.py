"""
Release index queries.

The server binaries are published as assets of a single rolling release tag.
This module asks the release index for that tag and picks the asset whose
name matches the platform's binary identifier.
"""

from __future__ import annotations

import asyncio
import datetime
import http.client
import json
import logging
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any, Callable

from .common import parse_timestamp
from .config import Settings
from .errors import NetworkUnavailableError


logger = logging.getLogger(__name__)

USER_AGENT = "forgelsp-supervisor/1.0"
GITHUB_API = "https://api.github.com"
GITHUB_WEB = "https://github.com"


@dataclass(frozen=True)
class ReleaseAsset:
    """Single downloadable file attached to a release."""
    name: str
    updated_at: str
    browser_download_url: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ReleaseAsset":
        """Create from a release index asset entry."""
        return cls(
            name=str(data.get("name", "")),
            updated_at=str(data.get("updated_at", "")),
            browser_download_url=str(data.get("browser_download_url", "")),
        )


@dataclass(frozen=True)
class ReleaseIndex:
    """Release tag with its asset list."""
    tag_name: str
    assets: tuple[ReleaseAsset, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ReleaseIndex":
        """
        Create from the release index JSON body.

        Raises:
            ValueError: If the body is not a release document
        """
        if not isinstance(data, dict) or not isinstance(data.get("tag_name"), str):
            raise ValueError("release document has no tag_name")

        assets_raw = data.get("assets") or []
        if not isinstance(assets_raw, list):
            raise ValueError("release document assets is not a list")

        return cls(
            tag_name=data["tag_name"],
            assets=tuple(ReleaseAsset.from_dict(a) for a in assets_raw if isinstance(a, dict)),
        )

    def find_asset(self, name: str) -> ReleaseAsset | None:
        """Return the asset with exactly this name, if any."""
        for asset in self.assets:
            if asset.name == name:
                return asset
        return None


@dataclass(frozen=True)
class ReleaseInfo:
    """
    Latest published version of one binary.

    Attributes:
        tag_name: Release tag
        updated_at: Publication timestamp of the matching asset
    """
    tag_name: str
    updated_at: str

    @property
    def published_at(self) -> datetime.datetime | None:
        """Parsed ``updated_at``, or None if it is not a valid timestamp."""
        return parse_timestamp(self.updated_at)

    def to_dict(self) -> dict[str, str]:
        """Convert to dictionary for JSON serialization."""
        return {"updated_at": self.updated_at, "tag_name": self.tag_name}


def release_index_url(settings: Settings) -> str:
    """API URL describing the rolling release."""
    return f"{GITHUB_API}/repos/{settings.repository}/releases/tags/{settings.release_tag}"


def download_url(binary_identifier: str, settings: Settings) -> str:
    """Direct download URL of the binary asset on the rolling release."""
    return f"{GITHUB_WEB}/{settings.repository}/releases/download/{settings.release_tag}/{binary_identifier}"


def http_get(url: str, timeout: int = 15, headers: dict[str, str] | None = None) -> bytes:
    """Perform HTTP GET request.

    Args:
        url: URL to fetch
        timeout: Timeout in seconds
        headers: Optional HTTP headers

    Returns:
        Response body as bytes

    Raises:
        NetworkUnavailableError: If the request fails or the status is not 2xx
    """
    default_headers = {"User-Agent": USER_AGENT}
    if headers:
        default_headers.update(headers)

    req = urllib.request.Request(url, headers=default_headers)
    try:
        with urllib.request.urlopen(req, timeout=timeout) as response:
            status = getattr(response, "status", 200)
            if not 200 <= status < 300:
                raise NetworkUnavailableError(f"GET {url} returned HTTP {status}", retryable=False)
            return response.read()
    except urllib.error.HTTPError as e:
        raise NetworkUnavailableError(
            f"GET {url} returned HTTP {e.code}", retryable=e.code >= 500
        ) from e
    except (urllib.error.URLError, OSError, http.client.HTTPException) as e:
        raise NetworkUnavailableError(f"Failed to fetch {url}: {e}") from e


def fetch_release_index(settings: Settings) -> ReleaseIndex:
    """Fetch and parse the rolling release document (blocking).

    Raises:
        NetworkUnavailableError: If the index cannot be fetched or parsed
    """
    url = release_index_url(settings)
    logger.debug(f"Querying release index: {url}")
    body = http_get(
        url,
        timeout=settings.timeout_seconds,
        headers={"Accept": "application/vnd.github+json"},
    )
    try:
        return ReleaseIndex.from_dict(json.loads(body))
    except (ValueError, UnicodeDecodeError) as e:
        raise NetworkUnavailableError(f"Malformed release index from {url}: {e}", retryable=False) from e


async def fetch_latest(
    binary_identifier: str,
    settings: Settings,
    fetch_index: Callable[[Settings], ReleaseIndex] | None = None,
) -> ReleaseInfo | None:
    """
    Latest release information for one binary.

    Never raises: network failures, bad responses and a missing asset are
    logged and reported as None, which callers read as "no update known".

    Args:
        binary_identifier: Asset name to look for
        settings: Repository and tag to query
        fetch_index: Blocking index fetcher (replaceable in tests)

    Returns:
        ReleaseInfo for the matching asset, or None
    """
    fetch_index = fetch_index or fetch_release_index
    try:
        index = await asyncio.to_thread(fetch_index, settings)
    except NetworkUnavailableError as e:
        logger.warning(f"Failed to check for updates: {e.message}")
        return None

    asset = index.find_asset(binary_identifier)
    if asset is None:
        logger.warning(f"Release {index.tag_name} has no asset named {binary_identifier}")
        return None

    return ReleaseInfo(tag_name=index.tag_name, updated_at=asset.updated_at)
