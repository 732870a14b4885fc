"""
Platform detection for the language server binary.

Maps the host OS and CPU architecture to the name of the release asset that
runs there. Combinations outside the support matrix resolve to None and must
be treated as fatal for the run.
"""

from __future__ import annotations

import platform
from dataclasses import dataclass

from .errors import UnsupportedPlatformError


BINARY_PREFIX = "forgevsc"

# Architecture normalization map
_ARCH_MAP = {
    "x86_64": "x86_64",
    "amd64": "x86_64",
    "x64": "x86_64",
    "arm64": "aarch64",
    "aarch64": "aarch64",
}

_OS_MAP = {
    "linux": "linux",
    "darwin": "macos",
    "macos": "macos",
    "windows": "windows",
    "win32": "windows",
}

SUPPORTED_MATRIX: dict[tuple[str, str], str] = {
    ("linux", "x86_64"): f"{BINARY_PREFIX}-linux-x86_64",
    ("linux", "aarch64"): f"{BINARY_PREFIX}-linux-aarch64",
    ("macos", "x86_64"): f"{BINARY_PREFIX}-macos-x86_64",
    ("macos", "aarch64"): f"{BINARY_PREFIX}-macos-aarch64",
    ("windows", "x86_64"): f"{BINARY_PREFIX}-windows-x86_64.exe",
}


def normalize_os(system: str) -> str | None:
    """Normalize ``platform.system()`` output (linux, macos, windows)."""
    return _OS_MAP.get(system.strip().lower())


def normalize_arch(machine: str) -> str | None:
    """Normalize ``platform.machine()`` output (x86_64, aarch64)."""
    return _ARCH_MAP.get(machine.strip().lower())


@dataclass(frozen=True)
class PlatformKey:
    """
    Host platform as seen by the resolver.

    Attributes:
        os: Normalized OS family, or the raw value when unknown
        arch: Normalized CPU architecture, or the raw value when unknown
    """
    os: str
    arch: str

    @property
    def binary_identifier(self) -> str | None:
        """Release asset name for this platform, or None if unsupported."""
        return SUPPORTED_MATRIX.get((self.os, self.arch))

    def __str__(self) -> str:
        return f"{self.os}/{self.arch}"


def detect_platform(system: str | None = None, machine: str | None = None) -> PlatformKey:
    """
    Build the PlatformKey for the current (or given) host.

    Args:
        system: OS name override (defaults to ``platform.system()``)
        machine: Architecture override (defaults to ``platform.machine()``)
    """
    raw_system = platform.system() if system is None else system
    raw_machine = platform.machine() if machine is None else machine
    return PlatformKey(
        os=normalize_os(raw_system) or raw_system.lower(),
        arch=normalize_arch(raw_machine) or raw_machine.lower(),
    )


def resolve_binary_identifier(system: str | None = None, machine: str | None = None) -> str | None:
    """
    Determine the binary filename for the host platform.

    Supports linux and macOS on x86_64/aarch64, and windows on x86_64 only.

    Args:
        system: OS name override (defaults to ``platform.system()``)
        machine: Architecture override (defaults to ``platform.machine()``)

    Returns:
        Platform-specific binary identifier, or None if unsupported
    """
    return detect_platform(system, machine).binary_identifier


def require_binary_identifier(system: str | None = None, machine: str | None = None) -> str:
    """
    Like resolve_binary_identifier, but raise for unsupported platforms.

    Raises:
        UnsupportedPlatformError: If the platform is not in the support matrix
    """
    key = detect_platform(system, machine)
    identifier = key.binary_identifier
    if identifier is None:
        supported = ", ".join(f"{os_}/{arch}" for os_, arch in sorted(SUPPORTED_MATRIX))
        raise UnsupportedPlatformError(
            f"Unsupported platform or architecture: {key}",
            remediation=f"Supported platforms: {supported}. Use a custom binary instead.",
        )
    return identifier
