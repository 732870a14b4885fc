"""
Installed binary metadata.

A small JSON sidecar (``<binary>.meta.json``) records which release the binary
on disk came from. Absence means the binary was never installed with tracked
metadata; it is distinct from a binary that is present but untracked.
"""

from __future__ import annotations

import datetime
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .common import parse_timestamp, write_json_atomic
from .errors import MetadataCorruptError


logger = logging.getLogger(__name__)

METADATA_SUFFIX = ".meta.json"


@dataclass(frozen=True)
class InstalledMetadata:
    """
    Release information for the binary currently on disk.

    Attributes:
        updated_at: Publication timestamp of the installed asset
        tag_name: Release tag the asset was taken from
    """
    updated_at: str
    tag_name: str

    @property
    def published_at(self) -> datetime.datetime | None:
        """Parsed ``updated_at``, or None if it is not a valid timestamp."""
        return parse_timestamp(self.updated_at)

    def to_dict(self) -> dict[str, str]:
        """Convert to dictionary for JSON serialization."""
        return {
            "updated_at": self.updated_at,
            "tag_name": self.tag_name,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "InstalledMetadata":
        """
        Create from a parsed sidecar document.

        Raises:
            MetadataCorruptError: If the document does not have both string keys
        """
        if not isinstance(data, dict):
            raise MetadataCorruptError("metadata is not a JSON object")

        updated_at = data.get("updated_at")
        tag_name = data.get("tag_name")
        if not isinstance(updated_at, str) or not isinstance(tag_name, str):
            raise MetadataCorruptError("metadata must contain string 'updated_at' and 'tag_name'")

        return cls(updated_at=updated_at, tag_name=tag_name)


def get_metadata_path(binary_path: str | Path) -> Path:
    """Sidecar path for a binary: ``<binary_path>.meta.json``."""
    return Path(f"{binary_path}{METADATA_SUFFIX}")


def read_metadata(binary_path: str | Path) -> InstalledMetadata | None:
    """
    Read the sidecar metadata for a binary.

    Args:
        binary_path: Path to the binary

    Returns:
        InstalledMetadata, or None if the sidecar is missing or malformed
    """
    metadata_path = get_metadata_path(binary_path)
    if not metadata_path.exists():
        return None

    try:
        with open(metadata_path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return InstalledMetadata.from_dict(data)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError, MetadataCorruptError) as e:
        logger.warning(f"Ignoring unreadable metadata {metadata_path}: {e}")
        return None


def write_metadata(binary_path: str | Path, metadata: InstalledMetadata) -> bool:
    """
    Persist metadata next to the binary.

    The write goes through a temporary file so later reads see either the old
    or the new document. A failed write is logged and does not undo the
    install that preceded it.

    Args:
        binary_path: Path to the binary
        metadata: Metadata to store

    Returns:
        True if the sidecar was written
    """
    metadata_path = get_metadata_path(binary_path)
    try:
        write_json_atomic(metadata_path, metadata.to_dict())
    except OSError as e:
        logger.error(f"Failed to write metadata {metadata_path}: {e}")
        return False

    logger.debug(f"Metadata saved: {metadata_path} ({metadata.tag_name} @ {metadata.updated_at})")
    return True
