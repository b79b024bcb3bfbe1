"""Command-line entry point for the Xbox soundtrack FTP client.

Wires settings, stored credentials and logging to an FTPSession and
runs a single remote operation.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config.credentials import CredentialManager
from .config.paths import get_log_file_path
from .config.settings import AppSettings, SettingsManager
from .ftp.connection import FTPSessionConfig
from .ftp.session import FTPSession, OperationResult
from .utils.logging import setup_logging, get_logger
from .utils.validators import (
    validate_host,
    validate_port,
    validate_remote_name,
    validate_timeout,
)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="soundtrack-ftp",
        description="Manage soundtrack files on an Xbox over FTP",
    )
    parser.add_argument("--host", help="FTP host (default: last used host)")
    parser.add_argument("--port", type=int, help="FTP port (default: last used port)")
    parser.add_argument("--user", help="FTP user name (default: last used user)")
    parser.add_argument("--password", help="FTP password (default: keyring, then empty)")
    parser.add_argument(
        "--save-password",
        action="store_true",
        help="Store the password in the system keyring after a successful login",
    )
    parser.add_argument(
        "--forget-password",
        action="store_true",
        help="Remove the stored keyring password for this host and user first",
    )
    parser.add_argument("--timeout", type=int, help="Control connection timeout in seconds")
    parser.add_argument(
        "--transfer-timeout", type=int, help="Data connection timeout in seconds"
    )
    parser.add_argument("--active", action="store_true", help="Use active (PORT) data connections")
    parser.add_argument("--mlsd", action="store_true", help="List with MLSD instead of LIST")
    parser.add_argument("--cwd", help="Change to this remote directory first")
    parser.add_argument("--config", type=Path, help="Settings file to use")
    parser.add_argument(
        "--log-file", type=Path, help="Log file (default: ftp.log in the app data directory)"
    )
    parser.add_argument("--show-log", action="store_true", help="Print the operation log")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    ls_parser = subparsers.add_parser("ls", help="List a remote directory")
    ls_parser.add_argument("path", nargs="?", help="Directory (default: working directory)")
    only = ls_parser.add_mutually_exclusive_group()
    only.add_argument("--files", action="store_true", help="Only list files")
    only.add_argument("--dirs", action="store_true", help="Only list directories")

    get_parser = subparsers.add_parser("get", help="Download a remote file")
    get_parser.add_argument("remote", help="Remote file name")
    get_parser.add_argument("local", nargs="?", type=Path, help="Local destination")

    put_parser = subparsers.add_parser("put", help="Upload a local file")
    put_parser.add_argument("local", type=Path, help="Local file")
    put_parser.add_argument("remote", nargs="?", help="Remote name (default: local file name)")

    for name, help_text in (
        ("mkdir", "Create a remote directory"),
        ("rmdir", "Delete a remote directory"),
        ("rm", "Delete a remote file"),
    ):
        command_parser = subparsers.add_parser(name, help=help_text)
        command_parser.add_argument("name", help="Remote name")

    return parser


def _resolve_config(args: argparse.Namespace, settings: AppSettings) -> FTPSessionConfig:
    return FTPSessionConfig(
        host=args.host or settings.last_host,
        port=args.port or settings.last_port,
        username=args.user or settings.last_username,
        passive_mode=settings.passive_mode and not args.active,
        timeout=args.timeout or settings.timeout,
        transfer_timeout=args.transfer_timeout or settings.transfer_timeout,
        listing_format="mlsd" if args.mlsd else settings.listing_format,
    )


def _run_command(session: FTPSession, args: argparse.Namespace) -> OperationResult:
    if args.command == "ls":
        if args.files:
            result = session.get_files(args.path)
            for entry in result.value or []:
                print(f"{entry.attributes:<10} {entry.size:>10} {entry.date_modified} "
                      f"{entry.time_modified} {entry.name}")
        elif args.dirs:
            result = session.get_directories(args.path)
            for entry in result.value or []:
                print(f"{entry.attributes:<10} {entry.name}/")
        else:
            result = session.list(args.path)
            for entry in result.value or []:
                suffix = "/" if entry.is_directory else ""
                print(f"{entry.permissions:<10} {entry.size:>10} {entry.name}{suffix}")
        return result

    if args.command == "get":
        result = session.download(args.remote)
        if result:
            local = args.local or Path(args.remote.rsplit("/", 1)[-1])
            local.write_bytes(result.value)
            print(f"{len(result.value)} bytes written to {local}")
        return result

    if args.command == "put":
        remote = args.remote or args.local.name
        return session.upload_file(args.local, remote)

    if args.command == "mkdir":
        return session.make_directory(args.name)
    if args.command == "rmdir":
        return session.delete_directory(args.name)
    return session.delete_file(args.name)


def main(argv: Optional[List[str]] = None) -> int:
    """Run the command line client."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        log_file=args.log_file or get_log_file_path(),
    )
    logger = get_logger("soundtrack_ftp.cli")

    settings_manager = SettingsManager(args.config)
    settings = settings_manager.load()

    for value, maximum in ((args.timeout, 300), (args.transfer_timeout, 3600)):
        if value is not None:
            is_valid, error = validate_timeout(value, maximum)
            if not is_valid:
                print(f"Error: {error}", file=sys.stderr)
                return EXIT_USAGE

    try:
        config = _resolve_config(args, settings)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_USAGE

    for is_valid, error in (validate_host(config.host), validate_port(config.port)):
        if not is_valid:
            print(f"Error: {error}", file=sys.stderr)
            return EXIT_USAGE
    for name in (getattr(args, "name", None), getattr(args, "remote", None)):
        if name is not None:
            is_valid, error = validate_remote_name(name)
            if not is_valid:
                print(f"Error: {error}", file=sys.stderr)
                return EXIT_USAGE

    credentials = CredentialManager()
    if args.forget_password:
        if not credentials.delete_password(config.host, config.username):
            logger.warning("No stored password to remove")
    password = args.password
    if password is None and not args.forget_password:
        password = credentials.get_password(config.host, config.username)
    password = password or ""

    with FTPSession(config, password=password) as session:
        result = session.connect()
        if result:
            settings_manager.update(
                last_host=config.host,
                last_port=config.port,
                last_username=config.username,
            )
            if args.save_password and password:
                if not credentials.save_password(config.host, config.username, password):
                    logger.warning("Could not store password in keyring")

            if args.cwd:
                result = session.change_working_directory(args.cwd)
            if result:
                result = _run_command(session, args)

        if not result:
            print(f"Error: {result.error_message}", file=sys.stderr)

        if args.show_log:
            for entry in session.log_entries:
                print(f"{entry.timestamp:%H:%M:%S} {entry.message}")

    return EXIT_OK if result else EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
