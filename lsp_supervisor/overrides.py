"""
Persisted state and binary path resolution.

The only persisted value today is the user's custom binary override. When it
is set and the file exists it always wins over the managed binary in the
storage directory.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .common import write_json_atomic
from .config import Settings


logger = logging.getLogger(__name__)

CUSTOM_BINARY_KEY = "customBinaryPath"


class StateStore:
    """
    Small JSON key/value store for process-wide persisted state.

    Values are re-read on every access so that changes made by another
    process (or by a second CLI invocation) are picked up immediately.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable state file {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, key: str, default: Any = None) -> Any:
        """Return a persisted value."""
        return self._load().get(key, default)

    def update(self, key: str, value: Any) -> None:
        """
        Persist a value; ``None`` removes the key.

        Raises:
            OSError: If the state file cannot be written
        """
        data = self._load()
        if value is None:
            data.pop(key, None)
        else:
            data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        write_json_atomic(self.path, data)


def get_custom_binary_path(store: StateStore) -> str | None:
    """Currently configured override, whether or not the file exists."""
    value = store.get(CUSTOM_BINARY_KEY)
    return value if isinstance(value, str) and value else None


def set_custom_binary_path(store: StateStore, path: str | Path) -> str:
    """
    Persist a custom binary override.

    Returns:
        The absolute path that was stored
    """
    absolute = os.path.abspath(os.path.expanduser(str(path)))
    store.update(CUSTOM_BINARY_KEY, absolute)
    logger.info(f"Custom binary set to {absolute}")
    return absolute


def clear_custom_binary_path(store: StateStore) -> None:
    """Reset to the managed binary."""
    store.update(CUSTOM_BINARY_KEY, None)
    logger.info("Custom binary override cleared")


@dataclass(frozen=True)
class ResolvedBinary:
    """
    Binary chosen for a supervision request.

    Attributes:
        path: Absolute path of the executable
        is_override: True when the path came from the custom override
    """
    path: Path
    is_override: bool = False

    @property
    def exists(self) -> bool:
        return self.path.is_file()


def default_binary_path(binary_identifier: str, settings: Settings) -> Path:
    """Managed binary location inside the storage directory."""
    return Path(settings.storage_dir) / binary_identifier


def resolve_binary_path(binary_identifier: str, settings: Settings, store: StateStore) -> ResolvedBinary:
    """
    Pick the binary for this request.

    Must be called for every supervision request so override changes take
    effect on the next start. Nothing is created on disk here; the installer
    creates the storage directory when it downloads.
    """
    custom = get_custom_binary_path(store)
    if custom and os.path.isfile(custom):
        logger.info(f"Using custom LSP binary at {custom}")
        return ResolvedBinary(path=Path(custom), is_override=True)
    if custom:
        logger.warning(f"Custom binary {custom} does not exist; using managed binary")

    return ResolvedBinary(path=default_binary_path(binary_identifier, settings))
