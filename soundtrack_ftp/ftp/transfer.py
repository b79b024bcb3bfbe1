"""Data connections for the Xbox soundtrack FTP client.

Opens a transient data connection per transfer (passive PASV or active
PORT), moves the bytes, and confirms the completion reply on the
control channel before returning.
"""

import logging
import re
import socket
from typing import BinaryIO, Callable, List, Optional, Tuple, TypeVar, Union

from soundtrack_ftp.ftp.connection import ControlChannel, describe_command
from soundtrack_ftp.ftp.exceptions import (
    FTPCommandError,
    FTPConnectionError,
    FTPError,
    FTPNotFoundError,
    FTPProtocolError,
    FTPTimeoutError,
    FTPTransferError,
)

logger = logging.getLogger("soundtrack_ftp.transfer")

T = TypeVar("T")

UploadSource = Union[bytes, bytearray, BinaryIO]

# h1,h2,h3,h4,p1,p2 inside a 227 reply
PASV_PATTERN = re.compile(r"(\d{1,3}),(\d{1,3}),(\d{1,3}),(\d{1,3}),(\d{1,3}),(\d{1,3})")


def parse_pasv_reply(text: str) -> Tuple[str, int]:
    """
    Extract the data address from a PASV reply.

    Args:
        text: Reply text, e.g. "Entering Passive Mode (192,168,0,5,195,80)."

    Returns:
        Tuple of (host, port)

    Raises:
        FTPProtocolError: If no valid address is present
    """
    match = PASV_PATTERN.search(text.replace(" ", ""))
    if not match:
        raise FTPProtocolError(f"Cannot parse PASV reply: {text!r}")

    numbers = [int(n) for n in match.groups()]
    if any(n > 255 for n in numbers):
        raise FTPProtocolError(f"Invalid address in PASV reply: {text!r}")

    host = ".".join(str(n) for n in numbers[:4])
    port = (numbers[4] << 8) + numbers[5]
    return host, port


def format_port_argument(host: str, port: int) -> str:
    """Build the h1,h2,h3,h4,p1,p2 argument of a PORT command."""
    parts = host.split(".") + [str(port >> 8), str(port & 0xFF)]
    return ",".join(parts)


class DataTransfer:
    """Runs data-connection commands (RETR, STOR, LIST, MLSD) on a control channel."""

    # Block size for data connection reads and writes (8KB)
    BLOCK_SIZE = 8192

    def __init__(self, control: ControlChannel, passive: bool = True, timeout: float = 120):
        """
        Initialize the transfer helper.

        Args:
            control: Authenticated control channel
            passive: Use PASV (True) or PORT (False)
            timeout: Seconds to wait on data connection activity
        """
        self._control = control
        self._passive = passive
        self._timeout = timeout
        self._conn: Optional[socket.socket] = None
        self._listener: Optional[socket.socket] = None

    @property
    def passive(self) -> bool:
        return self._passive

    @property
    def timeout(self) -> float:
        return self._timeout

    def download(self, remote_name: str) -> bytes:
        """
        Retrieve a remote file into memory.

        Args:
            remote_name: Remote file name or path

        Returns:
            Complete file contents

        Raises:
            FTPNotFoundError: If the server reports the file missing
            FTPTransferError: If the data connection fails mid-transfer
            FTPTimeoutError: If the transfer stalls
        """
        return self._run(f"RETR {remote_name}", remote_name, "download", self._receive)

    def upload(self, source: UploadSource, remote_name: str) -> int:
        """
        Store bytes or a binary file object as a remote file.

        Args:
            source: Data to send
            remote_name: Remote file name or path

        Returns:
            Number of bytes sent
        """
        def send(conn: socket.socket) -> int:
            return self._send(conn, source)

        return self._run(f"STOR {remote_name}", remote_name, "upload", send, not_found_on_550=False)

    def retrieve_text(self, command: str, path: str) -> str:
        """
        Run a listing command and return the data connection text.

        Args:
            command: Full command, e.g. "LIST /music"
            path: Path being listed, for error messages
        """
        data = self._run(command, path, "list", self._receive)
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError:
            return data.decode("latin-1")

    def _run(
        self,
        command: str,
        path: str,
        direction: str,
        handler: Callable[[socket.socket], T],
        not_found_on_550: bool = True,
    ) -> T:
        try:
            if self._passive:
                self._conn = self._open_passive()
            else:
                self._listener = self._open_active()

            try:
                self._control.send_command(command, expected=(1,))
            except FTPCommandError as e:
                if not_found_on_550 and e.code == 550:
                    raise FTPNotFoundError(path, e)
                raise

            if self._listener is not None:
                self._conn = self._accept(self._listener, command, path, direction)

            conn = self._conn
            try:
                result = handler(conn)
            except socket.timeout:
                self._abandon(command)
                raise FTPTimeoutError(f"{direction.capitalize()} of '{path}'", self._timeout)
            except OSError as e:
                self._abandon(command)
                raise FTPTransferError(path, direction, e)
            finally:
                self._conn = None
                conn.close()

            reply = self._control.read_reply(timeout=self._timeout)
            if reply.kind != 2:
                raise FTPTransferError(
                    path, direction,
                    FTPCommandError(describe_command(command), reply.code, reply.text)
                )
            return result
        finally:
            conn, listener = self._conn, self._listener
            self._conn = None
            self._listener = None
            if conn is not None:
                conn.close()
            if listener is not None:
                listener.close()

    def abort(self) -> None:
        """
        Shut down the data connection of a transfer running on another thread.

        The transfer then fails with FTPTransferError instead of waiting
        for its timeout.
        """
        for sock in (self._conn, self._listener):
            if sock is None:
                continue
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError as e:
                logger.debug(f"Data socket shutdown failed: {e}")

    def _open_passive(self) -> socket.socket:
        reply = self._control.send_command("PASV")
        _, port = parse_pasv_reply(reply.text)

        # The advertised host is often a private address behind NAT; the
        # control connection's peer is always reachable.
        host = self._control.peer_address
        logger.debug(f"Opening passive data connection to {host}:{port}")

        try:
            return self._control.socket_factory((host, port), self._timeout)
        except socket.timeout:
            raise FTPTimeoutError("Data connection", self._timeout)
        except OSError as e:
            raise FTPConnectionError(host, port, e)

    def _open_active(self) -> socket.socket:
        host = self._control.local_address
        listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            listener.bind((host, 0))
            listener.listen(1)
            listener.settimeout(self._timeout)
            port = listener.getsockname()[1]
            logger.debug(f"Listening for active data connection on {host}:{port}")
            self._control.send_command(f"PORT {format_port_argument(host, port)}")
        except Exception:
            listener.close()
            raise
        return listener

    def _accept(
        self, listener: socket.socket, command: str, path: str, direction: str
    ) -> socket.socket:
        try:
            conn, _ = listener.accept()
        except socket.timeout:
            self._abandon(command)
            raise FTPTimeoutError("Data connection", self._timeout)
        except OSError as e:
            self._abandon(command)
            raise FTPTransferError(path, direction, e)
        conn.settimeout(self._timeout)
        return conn

    def _abandon(self, command: str) -> None:
        """Consume the completion reply of a failed transfer, if the server sends one."""
        try:
            reply = self._control.read_reply(timeout=self._timeout)
            logger.debug(f"Completion after failed {describe_command(command)}: {reply}")
        except FTPError as e:
            logger.debug(f"No completion reply after failed {describe_command(command)}: {e}")

    def _receive(self, conn: socket.socket) -> bytes:
        chunks: List[bytes] = []
        while True:
            block = conn.recv(self.BLOCK_SIZE)
            if not block:
                break
            chunks.append(block)
        return b"".join(chunks)

    def _send(self, conn: socket.socket, source: UploadSource) -> int:
        bytes_sent = 0
        if isinstance(source, (bytes, bytearray)):
            view = memoryview(source)
            for offset in range(0, len(view), self.BLOCK_SIZE):
                block = view[offset:offset + self.BLOCK_SIZE]
                conn.sendall(block)
                bytes_sent += len(block)
            return bytes_sent

        while True:
            block = source.read(self.BLOCK_SIZE)
            if not block:
                break
            conn.sendall(block)
            bytes_sent += len(block)
        return bytes_sent
