"""
ForgeLSP supervisor - language server provisioning and process supervision.

Core Modules:
- Provisioning: platform resolution, release lookup, streamed install, metadata
- Updates: timestamp-based update detection against the rolling release
- Supervision: single-instance process state machine with auto-restart
- Commands: host-facing commands and activation triggers
"""

__version__ = "1.0.0"

VERSION = __version__

# Provisioning
from .platform_resolver import (
    PlatformKey,
    SUPPORTED_MATRIX,
    detect_platform,
    resolve_binary_identifier,
    require_binary_identifier,
)
from .metadata import InstalledMetadata, get_metadata_path, read_metadata, write_metadata
from .release_info import ReleaseAsset, ReleaseIndex, ReleaseInfo, fetch_latest
from .installer import InstallResult, ensure_executable, install_binary
from .update_decider import UpdateStatus, check_for_update, should_update
from .overrides import (
    ResolvedBinary,
    StateStore,
    clear_custom_binary_path,
    get_custom_binary_path,
    resolve_binary_path,
    set_custom_binary_path,
)

# Foundation
from .config import Settings, load_config, load_config_file
from .errors import (
    SupervisorError,
    UnsupportedPlatformError,
    NetworkUnavailableError,
    DownloadError,
    MetadataCorruptError,
    PermissionDeniedError,
)

# Supervision
from .host import HostSurface, ConsoleHost
from .transport import ProcessTransport
from .supervisor import ProcessSupervisor, SupervisorState
from .commands import (
    ConfigWatcher,
    activate,
    create_default_config,
    manual_update,
    on_config_changed,
    reset_to_default_binary,
    select_custom_binary,
)

# Logging configuration
from .logging_config import setup_logging, get_logger

__all__ = [
    # Version
    "__version__",
    "VERSION",
    # Provisioning
    "PlatformKey",
    "SUPPORTED_MATRIX",
    "detect_platform",
    "resolve_binary_identifier",
    "require_binary_identifier",
    "InstalledMetadata",
    "get_metadata_path",
    "read_metadata",
    "write_metadata",
    "ReleaseAsset",
    "ReleaseIndex",
    "ReleaseInfo",
    "fetch_latest",
    "InstallResult",
    "ensure_executable",
    "install_binary",
    "UpdateStatus",
    "check_for_update",
    "should_update",
    "ResolvedBinary",
    "StateStore",
    "clear_custom_binary_path",
    "get_custom_binary_path",
    "resolve_binary_path",
    "set_custom_binary_path",
    # Foundation
    "Settings",
    "load_config",
    "load_config_file",
    "SupervisorError",
    "UnsupportedPlatformError",
    "NetworkUnavailableError",
    "DownloadError",
    "MetadataCorruptError",
    "PermissionDeniedError",
    # Supervision
    "HostSurface",
    "ConsoleHost",
    "ProcessTransport",
    "ProcessSupervisor",
    "SupervisorState",
    "ConfigWatcher",
    "activate",
    "create_default_config",
    "manual_update",
    "on_config_changed",
    "reset_to_default_binary",
    "select_custom_binary",
    # Logging
    "setup_logging",
    "get_logger",
]
