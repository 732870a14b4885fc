"""
ForgeLSP supervisor command line.

Usage:
    forgelsp run [WORKSPACE]        # Start the server for a workspace and supervise it
    forgelsp init [WORKSPACE]       # Create the default workspace config
    forgelsp install                # Download the server binary
    forgelsp update                 # Reinstall the latest server binary
    forgelsp check                  # Report whether an update is available
    forgelsp use-binary PATH        # Use a custom server binary
    forgelsp reset-binary           # Go back to the managed binary
    forgelsp status                 # Show platform, paths and versions
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys

from . import __version__
from .commands import (
    ConfigWatcher,
    activate,
    create_default_config,
    manual_update,
    on_config_changed,
    reset_to_default_binary,
    select_custom_binary,
    workspace_config_path,
)
from .common import is_debug_enabled
from .config import Settings, load_config
from .host import ConsoleHost, notify_failure
from .installer import install_binary
from .logging_config import setup_logging
from .metadata import read_metadata
from .overrides import StateStore, get_custom_binary_path, resolve_binary_path
from .platform_resolver import detect_platform
from .supervisor import ProcessSupervisor
from .update_decider import check_for_update


def build_supervisor(
    settings: Settings,
    host: ConsoleHost,
    workspace: str | None = None,
) -> tuple[ProcessSupervisor, StateStore]:
    store = StateStore(settings.state_path)
    return ProcessSupervisor(settings, host, store, cwd=workspace), store


async def cmd_run(args: argparse.Namespace, settings: Settings, host: ConsoleHost) -> int:
    """Activate for a workspace and keep the server supervised until interrupted."""
    workspace = os.path.abspath(args.workspace)
    supervisor, _ = build_supervisor(settings, host, workspace)

    async def config_event(created: bool) -> None:
        if created:
            await activate(workspace, supervisor)
        else:
            await on_config_changed(supervisor)

    watcher = ConfigWatcher(workspace_config_path(workspace, supervisor), config_event)
    await activate(workspace, supervisor)
    watcher.start()
    try:
        while True:
            await asyncio.sleep(3600)
    finally:
        await watcher.stop()
        await supervisor.shutdown()


async def cmd_init(args: argparse.Namespace, settings: Settings, host: ConsoleHost) -> int:
    """Create the default workspace config, then start the server if possible."""
    workspace = os.path.abspath(args.workspace)
    supervisor, _ = build_supervisor(settings, host, workspace)
    try:
        created = await create_default_config(workspace, supervisor, host)
    finally:
        await supervisor.shutdown()
    return 0 if created is not None else 1


async def cmd_install(args: argparse.Namespace, settings: Settings, host: ConsoleHost) -> int:
    """Download the managed binary without starting it."""
    supervisor, store = build_supervisor(settings, host)
    identifier = supervisor.binary_identifier()
    if identifier is None:
        return 2

    binary = resolve_binary_path(identifier, settings, store)
    if binary.is_override:
        host.show_info(f"ForgeLSP: Using custom binary {binary.path}; install skipped.")
        return 0

    result = await install_binary(identifier, binary.path, settings)
    if not result.success:
        notify_failure(host, f"Failed to download binary. {result.error_message}")
        return 1

    host.show_info(f"ForgeLSP binary installed at {result.binary_path}")
    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    return 0


async def cmd_update(args: argparse.Namespace, settings: Settings, host: ConsoleHost) -> int:
    """Reinstall the latest binary."""
    supervisor, _ = build_supervisor(settings, host)
    if supervisor.binary_identifier() is None:
        return 2
    try:
        result = await manual_update(supervisor, host, restart=False)
    finally:
        await supervisor.shutdown()

    if args.json and result is not None:
        print(json.dumps(result.to_dict(), indent=2))
    return 0 if result is None or result.success else 1


async def cmd_check(args: argparse.Namespace, settings: Settings, host: ConsoleHost) -> int:
    """Report whether a newer binary is published. Exit code 10 means an update is available."""
    supervisor, store = build_supervisor(settings, host)
    identifier = supervisor.binary_identifier()
    if identifier is None:
        return 2

    binary = resolve_binary_path(identifier, settings, store)
    if not binary.exists:
        host.show_info(f"ForgeLSP binary not installed ({binary.path})")
        return 1

    status = await check_for_update(binary.path, identifier, settings)
    host.show_info(status.describe())
    return 10 if status.update_available else 0


async def cmd_use_binary(args: argparse.Namespace, settings: Settings, host: ConsoleHost) -> int:
    supervisor, store = build_supervisor(settings, host)
    stored = await select_custom_binary(supervisor, host, store, args.path)
    return 0 if stored else 1


async def cmd_reset_binary(args: argparse.Namespace, settings: Settings, host: ConsoleHost) -> int:
    supervisor, store = build_supervisor(settings, host)
    await reset_to_default_binary(supervisor, host, store)
    return 0


async def cmd_status(args: argparse.Namespace, settings: Settings, host: ConsoleHost) -> int:
    """Show how the binary would be resolved right now."""
    store = StateStore(settings.state_path)
    key = detect_platform()
    identifier = key.binary_identifier

    status = {
        "version": __version__,
        "platform": str(key),
        "binary_identifier": identifier,
        "storage_dir": settings.storage_dir,
        "custom_binary_path": get_custom_binary_path(store),
        "config_source": settings.source or None,
    }
    if identifier is not None:
        binary = resolve_binary_path(identifier, settings, store)
        metadata = read_metadata(binary.path)
        status.update({
            "binary_path": str(binary.path),
            "binary_exists": binary.exists,
            "is_override": binary.is_override,
            "metadata": metadata.to_dict() if metadata else None,
        })

    if args.json:
        print(json.dumps(status, indent=2))
    else:
        for key_name, value in status.items():
            print(f"{key_name:20} {value}")
    return 0 if identifier is not None else 2


COMMANDS = {
    "run": cmd_run,
    "init": cmd_init,
    "install": cmd_install,
    "update": cmd_update,
    "check": cmd_check,
    "use-binary": cmd_use_binary,
    "reset-binary": cmd_reset_binary,
    "status": cmd_status,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="forgelsp",
        description="ForgeLSP - language server provisioning and supervision",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", help="Path to a configuration file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")
    parser.add_argument("--quiet", "-q", action="store_true", help="Only log warnings and errors")
    parser.add_argument("--log-file", help="Also write the full log to this file")
    parser.add_argument("--yes", "-y", action="store_true", help="Answer yes to every prompt")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Start and supervise the server for a workspace")
    run.add_argument("workspace", nargs="?", default=".", help="Workspace root (default: .)")

    init = sub.add_parser("init", help="Create the default workspace config")
    init.add_argument("workspace", nargs="?", default=".", help="Workspace root (default: .)")

    install = sub.add_parser("install", help="Download the server binary")
    install.add_argument("--json", action="store_true", help="Print the install result as JSON")

    update = sub.add_parser("update", help="Reinstall the latest server binary")
    update.add_argument("--json", action="store_true", help="Print the install result as JSON")

    sub.add_parser("check", help="Check whether an update is available")

    use_binary = sub.add_parser("use-binary", help="Use a custom server binary")
    use_binary.add_argument("path", nargs="?", help="Executable to use (prompted when omitted)")

    sub.add_parser("reset-binary", help="Go back to the managed binary")

    status = sub.add_parser("status", help="Show platform, paths and versions")
    status.add_argument("--json", action="store_true", help="Print status as JSON")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(
        verbose=args.verbose or is_debug_enabled(),
        quiet=args.quiet,
        log_file=args.log_file,
    )

    try:
        settings = load_config(args.config)
    except (ValueError, TypeError) as e:
        print(f"✗ ForgeLSP: {e}", file=sys.stderr)
        return 2

    host = ConsoleHost(assume_yes=args.yes)
    handler = COMMANDS[args.command]
    try:
        return asyncio.run(handler(args, settings, host))
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
