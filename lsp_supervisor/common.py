"""
Common utilities shared across lsp_supervisor modules.
"""

from __future__ import annotations

import datetime
import json
import os
import sys
from pathlib import Path
from typing import Any


def is_windows() -> bool:
    """Return True when running on a Windows host."""
    return sys.platform.startswith("win")


def is_debug_enabled() -> bool:
    """Check the FORGELSP_DEBUG environment switch."""
    return os.environ.get("FORGELSP_DEBUG", "0") == "1"


def parse_timestamp(value: str | None) -> datetime.datetime | None:
    """
    Parse an ISO-8601 timestamp as published by the release index.

    Naive timestamps are assumed to be UTC so that comparisons between
    local metadata and remote assets are always between aware datetimes.

    Args:
        value: Timestamp string (e.g. ``2024-01-02T00:00:00Z``)

    Returns:
        Aware datetime, or None if the value is empty or malformed
    """
    if not value or not isinstance(value, str):
        return None

    try:
        parsed = datetime.datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=datetime.timezone.utc)
    return parsed


def write_json_atomic(path: Path, data: Any) -> None:
    """
    Write JSON so that readers never observe a half-written file.

    Args:
        path: Destination file
        data: JSON-serializable payload

    Raises:
        OSError: If the temporary file cannot be written or moved into place
    """
    temp_path = path.with_name(path.name + ".tmp")
    try:
        with open(temp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.replace(temp_path, path)
    except OSError:
        try:
            temp_path.unlink()
        except OSError:
            pass
        raise
