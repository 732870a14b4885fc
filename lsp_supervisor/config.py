"""
Configuration file parsing and management.

Supports YAML configuration files (JSON accepted for ``.json`` paths).
Merges configurations from multiple sources (custom → project → user → system → defaults).
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .common import is_windows


logger = logging.getLogger(__name__)


# Configuration file locations (in priority order)
CONFIG_LOCATIONS = [
    ".forgelsp.yml",                                   # Project root (highest priority)
    ".forgelsp.yaml",                                  # Alternative extension
    os.path.expanduser("~/.config/forgelsp/config.yml"),  # User global
    os.path.expanduser("~/.config/forgelsp/config.yaml"),
    "/etc/forgelsp/config.yml",                        # System global
    "/etc/forgelsp/config.yaml",
]

DEFAULT_REPOSITORY = "zack-911/forgelsp"
DEFAULT_RELEASE_TAG = "master"
DEFAULT_WORKSPACE_CONFIG = "forgeconfig.json"
DEFAULT_CHUNK_SIZE = 64 * 1024


def default_storage_dir() -> str:
    """
    Directory that holds downloaded binaries and persisted state.

    ``FORGELSP_STORAGE_DIR`` wins over the platform default.
    """
    env_dir = os.environ.get("FORGELSP_STORAGE_DIR")
    if env_dir:
        return os.path.abspath(os.path.expanduser(env_dir))
    if is_windows():
        base = os.environ.get("LOCALAPPDATA") or os.path.expanduser("~\\AppData\\Local")
        return os.path.join(base, "forgelsp")
    base = os.environ.get("XDG_DATA_HOME") or os.path.expanduser("~/.local/share")
    return os.path.join(base, "forgelsp")


@dataclass(frozen=True)
class Settings:
    """
    Complete configuration for the supervisor.

    Attributes:
        version: Config schema version
        repository: ``owner/name`` of the repository publishing the server binaries
        release_tag: Rolling release tag acting as the "latest" pointer
        storage_dir: Directory holding the default binary and its metadata
        state_file: Persisted process-wide state (custom binary override)
        timeout_seconds: Timeout for network operations
        download_retries: Attempts for transient download failures
        chunk_size: Bytes per streamed download chunk
        workspace_config_name: File whose presence activates the server
        server_args: Extra command line arguments for the server process
        max_restarts: Automatic restarts allowed within restart_window_seconds
        restart_window_seconds: Sliding window for the restart limit
        source: Path to the configuration file that was loaded
    """
    version: int = 1
    repository: str = DEFAULT_REPOSITORY
    release_tag: str = DEFAULT_RELEASE_TAG
    storage_dir: str = field(default_factory=default_storage_dir)
    state_file: str = ""
    timeout_seconds: int = 15
    download_retries: int = 3
    chunk_size: int = DEFAULT_CHUNK_SIZE
    workspace_config_name: str = DEFAULT_WORKSPACE_CONFIG
    server_args: tuple[str, ...] = ()
    max_restarts: int = 5
    restart_window_seconds: int = 180
    source: str = ""

    def __post_init__(self):
        """Validate settings after initialization."""
        if self.version != 1:
            raise ValueError(f"Unsupported config version: {self.version}. Expected version 1")

        owner, _, name = self.repository.partition("/")
        if not owner or not name or "/" in name:
            raise ValueError(
                f"Invalid repository: {self.repository!r}. Must be of the form 'owner/name'"
            )

        if not self.release_tag:
            raise ValueError("release_tag must not be empty")

        if self.timeout_seconds < 1 or self.timeout_seconds > 120:
            raise ValueError(
                f"Invalid timeout_seconds: {self.timeout_seconds}. "
                "Must be between 1 and 120"
            )

        if self.download_retries < 1 or self.download_retries > 10:
            raise ValueError(
                f"Invalid download_retries: {self.download_retries}. "
                "Must be between 1 and 10"
            )

        if self.chunk_size < 1024:
            raise ValueError(f"Invalid chunk_size: {self.chunk_size}. Must be at least 1024")

        if self.max_restarts < 0:
            raise ValueError(f"Invalid max_restarts: {self.max_restarts}. Must not be negative")

        if self.restart_window_seconds < 1:
            raise ValueError(
                f"Invalid restart_window_seconds: {self.restart_window_seconds}. "
                "Must be positive"
            )

    @property
    def state_path(self) -> Path:
        """Location of the persisted state file."""
        if self.state_file:
            return Path(os.path.expanduser(self.state_file))
        return Path(self.storage_dir) / "state.json"

    @staticmethod
    def from_dict(data: dict[str, Any], source: str = "") -> Settings:
        """Create Settings from a (possibly partial) configuration dictionary."""
        release = data.get("release", {}) or {}
        storage = data.get("storage", {}) or {}
        network = data.get("network", {}) or {}
        server = data.get("server", {}) or {}
        workspace = data.get("workspace", {}) or {}

        storage_dir = storage.get("dir")
        storage_dir = (
            os.path.abspath(os.path.expanduser(storage_dir)) if storage_dir else default_storage_dir()
        )

        return Settings(
            version=data.get("version", 1),
            repository=release.get("repository", DEFAULT_REPOSITORY),
            release_tag=str(release.get("tag", DEFAULT_RELEASE_TAG)),
            storage_dir=storage_dir,
            state_file=storage.get("state_file", "") or "",
            timeout_seconds=network.get("timeout_seconds", 15),
            download_retries=network.get("download_retries", 3),
            chunk_size=network.get("chunk_size", DEFAULT_CHUNK_SIZE),
            workspace_config_name=workspace.get("config_name", DEFAULT_WORKSPACE_CONFIG),
            server_args=tuple(str(arg) for arg in server.get("args", []) or []),
            max_restarts=server.get("max_restarts", 5),
            restart_window_seconds=server.get("restart_window_seconds", 180),
            source=source,
        )


def _merge_dicts(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge_dicts(merged[key], value)
        else:
            merged[key] = value
    return merged


def _load_yaml(file_path: str) -> dict[str, Any] | None:
    """
    Load YAML configuration file.

    Args:
        file_path: Path to YAML file

    Returns:
        Parsed configuration dictionary, or None if file invalid
    """
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
            return data if isinstance(data, dict) else {}
    except (OSError, yaml.YAMLError):
        return None


def _load_json(file_path: str) -> dict[str, Any] | None:
    """
    Load JSON configuration file.

    Args:
        file_path: Path to JSON file

    Returns:
        Parsed configuration dictionary, or None if file invalid
    """
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            data = json.load(f)
            return data if isinstance(data, dict) else {}
    except (OSError, json.JSONDecodeError):
        return None


def load_config_data(file_path: str) -> dict[str, Any] | None:
    """
    Load the raw configuration mapping from a single file.

    Args:
        file_path: Path to configuration file

    Returns:
        Configuration dictionary, or None if the file is missing or invalid
    """
    if not os.path.exists(file_path):
        return None

    logger.debug(f"Loading config from: {file_path}")

    if file_path.endswith(".json"):
        data = _load_json(file_path)
    else:
        data = _load_yaml(file_path)

    if data is None:
        logger.warning(f"Invalid config file: {file_path}")
    return data


def load_config_file(file_path: str) -> Settings | None:
    """
    Load settings from a single file.

    Args:
        file_path: Path to configuration file

    Returns:
        Settings object, or None if file cannot be loaded or fails validation
    """
    data = load_config_data(file_path)
    if data is None:
        return None

    try:
        settings = Settings.from_dict(data, source=file_path)
    except (ValueError, TypeError) as e:
        logger.warning(f"Config validation failed for {file_path}: {e}")
        return None

    logger.debug(f"Loaded config successfully: {file_path}")
    return settings


def load_config(custom_path: str | None = None) -> Settings:
    """
    Load and merge configuration from all sources.

    Configuration precedence (highest to lowest):
    1. Custom path (argument, or ``FORGELSP_CONFIG``)
    2. Project .forgelsp.yml
    3. User ~/.config/forgelsp/config.yml
    4. System /etc/forgelsp/config.yml
    5. Defaults

    Args:
        custom_path: Optional path to custom configuration file

    Returns:
        Merged Settings (never None, returns defaults if no config found)

    Raises:
        ValueError: If custom_path is given but cannot be loaded, or the merged
            configuration is invalid
    """
    custom_path = custom_path or os.environ.get("FORGELSP_CONFIG")
    layers: list[tuple[str, dict[str, Any]]] = []

    if custom_path:
        data = load_config_data(custom_path)
        if data is None:
            raise ValueError(f"Could not load config from specified path: {custom_path}")
        layers.append((custom_path, data))

    for location in CONFIG_LOCATIONS:
        data = load_config_data(location)
        if data is not None:
            layers.append((location, data))
            logger.debug(f"Found config at: {location}")

    if not layers:
        logger.debug("No config files found, using defaults")
        return Settings()

    # Lowest priority first so higher layers overwrite
    merged: dict[str, Any] = {}
    for _, data in reversed(layers):
        merged = _merge_dicts(merged, data)

    logger.debug(f"Merged {len(layers)} config files")
    return Settings.from_dict(merged, source=layers[0][0])
