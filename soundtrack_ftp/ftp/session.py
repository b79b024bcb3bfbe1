"""FTP session facade for the Xbox soundtrack FTP client.

FTPSession owns one control channel and exposes every remote operation
the editor needs. Each call is serialized, logged to the session's
OperationLog exactly once, and returns an OperationResult instead of
raising.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Generic, List, Optional, TypeVar, Union

from soundtrack_ftp.config.settings import AppSettings
from soundtrack_ftp.ftp.connection import (
    ConnectionState,
    ControlChannel,
    FTPSessionConfig,
    Reply,
    SocketFactory,
)
from soundtrack_ftp.ftp.directory import PARENT_DIRECTORY, DirectoryState
from soundtrack_ftp.ftp.exceptions import (
    FTPCommandError,
    FTPError,
    FTPNotConnectedError,
    FTPProtocolError,
    FTPTransferError,
)
from soundtrack_ftp.ftp.listing import DirectoryEntry, FileEntry, ListingParser, RemoteEntry
from soundtrack_ftp.ftp.oplog import LogEntry, OperationLog
from soundtrack_ftp.ftp.transfer import DataTransfer

logger = logging.getLogger("soundtrack_ftp.session")

T = TypeVar("T")


@dataclass
class OperationResult(Generic[T]):
    """Outcome of a session operation."""
    success: bool
    value: Optional[T] = None
    error: Optional[FTPError] = None

    def __bool__(self) -> bool:
        return self.success

    @property
    def error_kind(self) -> Optional[str]:
        """Exception class name of the failure, e.g. "FTPNotFoundError"."""
        if self.error is None:
            return None
        return type(self.error).__name__

    @property
    def error_message(self) -> Optional[str]:
        if self.error is None:
            return None
        return str(self.error)


class FTPSession:
    """Synchronous FTP session with an operation log.

    Usage:
        config = FTPSessionConfig(host="192.168.1.20")
        with FTPSession(config, password="xbox") as session:
            if session.connect():
                result = session.download("ST.DB")
    """

    def __init__(
        self,
        config: FTPSessionConfig,
        password: str = "",
        socket_factory: Optional[SocketFactory] = None,
    ):
        """
        Initialize a disconnected session.

        Args:
            config: Session configuration
            password: FTP password
            socket_factory: Optional socket factory, used by tests
        """
        self._config = config
        self._password = password
        self._lock = threading.RLock()
        self._log = OperationLog()
        self._control = ControlChannel(timeout=config.timeout, socket_factory=socket_factory)
        self._directory = DirectoryState(self._control)
        self._transfer = DataTransfer(
            self._control,
            passive=config.passive_mode,
            timeout=config.transfer_timeout,
        )
        self._parser = ListingParser(config.listing_format)
        self._connected_at: Optional[datetime] = None

        self._log.record(f"FTP client created for {config.host}")

    @classmethod
    def from_settings(
        cls,
        settings: AppSettings,
        password: str = "",
        socket_factory: Optional[SocketFactory] = None,
    ) -> "FTPSession":
        """Create a session from persisted application settings."""
        config = FTPSessionConfig(
            host=settings.last_host,
            port=settings.last_port,
            username=settings.last_username,
            passive_mode=settings.passive_mode,
            timeout=settings.timeout,
            transfer_timeout=settings.transfer_timeout,
            listing_format=settings.listing_format,
        )
        return cls(config, password=password, socket_factory=socket_factory)

    @property
    def config(self) -> FTPSessionConfig:
        return self._config

    @property
    def state(self) -> ConnectionState:
        """Current connection state."""
        return self._control.state

    @property
    def is_connected(self) -> bool:
        """True when logged in and ready for commands."""
        return self._control.is_authenticated

    @property
    def connected_at(self) -> Optional[datetime]:
        """Timestamp when the current connection was established."""
        return self._connected_at

    @property
    def current_working_directory(self) -> str:
        """Last server-confirmed working directory."""
        return self._directory.current

    @property
    def operation_log(self) -> OperationLog:
        return self._log

    @property
    def log_entries(self) -> List[LogEntry]:
        """Copy of the operation log, oldest first."""
        return self._log.entries

    def _perform(
        self,
        operation: str,
        action: Callable[[], T],
        on_success: Callable[[T], str],
        failure: str,
        requires_connection: bool = True,
    ) -> OperationResult[T]:
        """Run one operation under the session lock and log its outcome once."""
        with self._lock:
            if requires_connection and not self._control.is_authenticated:
                error = FTPNotConnectedError(operation)
                self._log.record(f"{failure}: {error}", logging.WARNING)
                return OperationResult(success=False, error=error)

            try:
                value = action()
            except FTPError as e:
                error = e
                level = logging.WARNING
            except Exception as e:
                logger.exception(f"Unexpected error during {operation}")
                error = FTPError(f"Unexpected error during {operation}", e)
                level = logging.ERROR
            else:
                self._log.record(on_success(value))
                return OperationResult(success=True, value=value)

            self._log.record(f"{failure}: {error}", level)
            return OperationResult(success=False, error=error)

    def connect(self) -> OperationResult[str]:
        """
        Connect and log in.

        Returns:
            Result holding the server's working directory after login
        """
        host, port = self._config.host, self._config.port
        username = self._config.username

        def action() -> str:
            if self._control.is_authenticated:
                return self._directory.current
            try:
                self._control.open(host, port)
                self._control.login(username, self._password)
            except FTPError:
                self._control.close()
                raise

            try:
                self._directory.refresh()
            except (FTPCommandError, FTPProtocolError) as e:
                if not self._control.is_authenticated:
                    raise
                logger.debug(f"PWD not available after login, assuming '/': {e}")
                self._directory.reset()

            self._connected_at = datetime.now()
            return self._directory.current

        return self._perform(
            "Connect",
            action,
            lambda cwd: f"Connected to FTP server {host}:{port} as {username} (cwd {cwd})",
            f"Connection to {host}:{port} failed",
            requires_connection=False,
        )

    def login(self) -> OperationResult[str]:
        """
        Report whether the session is logged in.

        Login itself happens in connect(); this never touches the network.
        """
        if self._control.is_authenticated:
            return OperationResult(success=True, value=self._directory.current)
        return OperationResult(success=False, error=FTPNotConnectedError("Login"))

    def disconnect(self) -> OperationResult[None]:
        """Close the connection. Safe to call when already disconnected."""
        def action() -> bool:
            closed = self._control.close()
            self._directory.reset()
            self._connected_at = None
            return closed

        result = self._perform(
            "Disconnect",
            action,
            lambda closed: (
                f"Disconnected from FTP server {self._config.host}"
                if closed else "Disconnect requested while not connected"
            ),
            "Disconnect failed",
            requires_connection=False,
        )
        return OperationResult(success=result.success, error=result.error)

    def close(self) -> None:
        """
        Disconnect and release the session's sockets.

        If another thread is in the middle of an operation, its sockets are
        shut down first so that operation fails at once instead of waiting
        for its timeout.
        """
        if self._lock.acquire(blocking=False):
            self._lock.release()
        else:
            logger.debug("Aborting pending operation")
            self._control.abort()
            self._transfer.abort()
        self.disconnect()

    def make_directory(self, name: str) -> OperationResult[Reply]:
        return self._perform(
            "Create directory",
            lambda: self._directory.make_directory(name),
            lambda _: f"Created directory: {name}",
            f"Failed to create directory '{name}'",
        )

    def delete_directory(self, name: str) -> OperationResult[Reply]:
        """
        Remove a remote directory.

        ".." is the listing's parent pseudo-entry; deleting it succeeds
        without contacting the server, connected or not.
        """
        if name == PARENT_DIRECTORY:
            with self._lock:
                self._log.record("Skipped deleting parent directory entry '..'")
            return OperationResult(success=True)

        return self._perform(
            "Delete directory",
            lambda: self._directory.delete_directory(name),
            lambda _: f"Deleted directory: {name}",
            f"Failed to delete directory '{name}'",
        )

    def delete_file(self, name: str) -> OperationResult[Reply]:
        return self._perform(
            "Delete file",
            lambda: self._directory.delete_file(name),
            lambda _: f"Deleted file: {name}",
            f"Failed to delete file '{name}'",
        )

    def change_working_directory(self, path: str) -> OperationResult[str]:
        """
        Change directory.

        Returns:
            Result holding the server-reported directory on success
        """
        return self._perform(
            "Change directory",
            lambda: self._directory.change_working_directory(path),
            lambda cwd: f"Changed directory to: {cwd}",
            f"Failed to change directory to '{path}'",
        )

    def download(self, remote_name: str) -> OperationResult[bytes]:
        """
        Download a remote file into memory.

        Returns:
            Result holding the complete file contents; never partial data
        """
        return self._perform(
            "Download",
            lambda: self._transfer.download(remote_name),
            lambda data: f"Downloaded {len(data)} bytes from {remote_name}",
            f"Failed to download '{remote_name}'",
        )

    def upload_file(self, local_path: Union[str, Path], remote_name: str) -> OperationResult[int]:
        """
        Upload a local file.

        Returns:
            Result holding the number of bytes sent
        """
        local_path = Path(local_path)

        def action() -> int:
            try:
                source = open(local_path, "rb")
            except OSError as e:
                raise FTPTransferError(str(local_path), "read", e)
            with source:
                return self._transfer.upload(source, remote_name)

        return self._perform(
            "Upload",
            action,
            lambda sent: f"Uploaded {sent} bytes from {local_path} to {remote_name}",
            f"Failed to upload '{local_path}' to '{remote_name}'",
        )

    def upload_data(self, data: bytes, remote_name: str) -> OperationResult[int]:
        """
        Upload an in-memory buffer.

        Returns:
            Result holding the number of bytes sent
        """
        return self._perform(
            "Upload",
            lambda: self._transfer.upload(data, remote_name),
            lambda sent: f"Uploaded {sent} bytes to {remote_name}",
            f"Failed to upload data to '{remote_name}'",
        )

    def _list_entries(self, path: Optional[str]) -> List[RemoteEntry]:
        command = self._parser.command
        if path:
            command = f"{command} {path}"
        text = self._transfer.retrieve_text(command, path or self._directory.current)
        return self._parser.parse(text)

    def list(self, path: Optional[str] = None) -> OperationResult[List[RemoteEntry]]:
        """
        Full parsed listing of ``path`` (default: working directory).

        Returns:
            Result holding every entry, directories and files alike
        """
        target = path or self._directory.current
        return self._perform(
            "List",
            lambda: self._list_entries(path),
            lambda entries: f"Listed {len(entries)} entries in: {target}",
            f"Failed to get listing of '{target}'",
        )

    def get_files(self, path: Optional[str] = None) -> OperationResult[List[FileEntry]]:
        target = path or self._directory.current
        return self._perform(
            "List files",
            lambda: [
                FileEntry.from_remote(entry)
                for entry in self._list_entries(path)
                if entry.is_file
            ],
            lambda files: f"Listed {len(files)} files in: {target}",
            f"Failed to list files in '{target}'",
        )

    def get_directories(self, path: Optional[str] = None) -> OperationResult[List[DirectoryEntry]]:
        target = path or self._directory.current
        return self._perform(
            "List directories",
            lambda: [
                DirectoryEntry.from_remote(entry)
                for entry in self._list_entries(path)
                if entry.is_directory
            ],
            lambda directories: f"Listed {len(directories)} directories in: {target}",
            f"Failed to list directories in '{target}'",
        )

    def __enter__(self) -> "FTPSession":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()
