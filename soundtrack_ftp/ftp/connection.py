"""FTP control connection for the Xbox soundtrack FTP client.

Provides ConnectionState enum, FTPSessionConfig dataclass, the Reply
record and the ControlChannel class which speaks the RFC 959
command/reply protocol over a TCP socket.
"""

import logging
import socket
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import BinaryIO, Callable, Iterator, List, Optional, Tuple

from soundtrack_ftp.ftp.exceptions import (
    FTPAuthenticationError,
    FTPCommandError,
    FTPConnectionError,
    FTPNotConnectedError,
    FTPProtocolError,
    FTPTimeoutError,
)

logger = logging.getLogger("soundtrack_ftp.control")

CRLF = "\r\n"
ENCODING = "utf-8"
DEFAULT_PORT = 21

# Longest reply line accepted from the server
MAX_LINE = 8192

LISTING_FORMATS = ("unix", "mlsd")

# (address, timeout) -> connected socket
SocketFactory = Callable[[Tuple[str, int], float], socket.socket]


class ConnectionState(Enum):
    """FTP control connection state."""
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    AUTHENTICATED = "authenticated"


@dataclass
class FTPSessionConfig:
    """FTP session configuration."""
    host: str
    port: int = DEFAULT_PORT
    username: str = "xbox"
    passive_mode: bool = True
    timeout: int = 30
    transfer_timeout: int = 120
    listing_format: str = "unix"

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not self.host:
            raise ValueError("Host is required")
        if not 1 <= self.port <= 65535:
            raise ValueError(f"Port must be between 1 and 65535, got {self.port}")
        if not 5 <= self.timeout <= 300:
            raise ValueError(f"Timeout must be between 5 and 300, got {self.timeout}")
        if not 5 <= self.transfer_timeout <= 3600:
            raise ValueError(
                f"Transfer timeout must be between 5 and 3600, got {self.transfer_timeout}"
            )
        if self.listing_format not in LISTING_FORMATS:
            raise ValueError(
                f"Listing format must be one of {', '.join(LISTING_FORMATS)}, "
                f"got {self.listing_format!r}"
            )


@dataclass
class Reply:
    """A complete (possibly multi-line) server reply."""
    code: int
    text: str
    lines: List[str] = field(default_factory=list)

    @property
    def kind(self) -> int:
        """First digit of the reply code (1-5)."""
        return self.code // 100

    def __str__(self) -> str:
        return f"{self.code} {self.text}"


def describe_command(command: str) -> str:
    """Command text safe for logs and error messages."""
    if command[:5].upper() == "PASS ":
        return "PASS ****"
    return command


class ControlChannel:
    """The command/reply connection to an FTP server.

    Only one command is ever in flight: every ``send_command`` writes one
    line and consumes the full reply before returning. Callers that share
    a channel between threads must serialize access themselves.
    """

    def __init__(
        self,
        timeout: float = 30,
        socket_factory: Optional[SocketFactory] = None,
    ):
        """
        Initialize an unconnected channel.

        Args:
            timeout: Seconds to wait on any control-connection read or write
            socket_factory: Callable creating connected sockets, defaults
                to socket.create_connection
        """
        self._timeout = timeout
        self._socket_factory = socket_factory or socket.create_connection
        self._sock: Optional[socket.socket] = None
        self._file: Optional[BinaryIO] = None
        self._state = ConnectionState.DISCONNECTED
        self._host: Optional[str] = None
        self._port: Optional[int] = None
        self._welcome: Optional[Reply] = None

    @property
    def state(self) -> ConnectionState:
        """Current connection state."""
        return self._state

    @property
    def is_connected(self) -> bool:
        """True once the TCP connection and greeting succeeded."""
        return self._state != ConnectionState.DISCONNECTED

    @property
    def is_authenticated(self) -> bool:
        """True after a successful login."""
        return self._state == ConnectionState.AUTHENTICATED

    @property
    def timeout(self) -> float:
        return self._timeout

    @property
    def socket_factory(self) -> SocketFactory:
        return self._socket_factory

    @property
    def host(self) -> Optional[str]:
        return self._host

    @property
    def port(self) -> Optional[int]:
        return self._port

    @property
    def welcome(self) -> Optional[Reply]:
        """Greeting the server sent on connect."""
        return self._welcome

    @property
    def local_address(self) -> str:
        """Local IP address of the control connection."""
        return self._require_socket("Local address").getsockname()[0]

    @property
    def peer_address(self) -> str:
        """Server IP address of the control connection."""
        return self._require_socket("Peer address").getpeername()[0]

    def _require_socket(self, operation: str) -> socket.socket:
        if self._sock is None:
            raise FTPNotConnectedError(operation)
        return self._sock

    def open(self, host: str, port: int = DEFAULT_PORT) -> Reply:
        """
        Connect to the server and read its greeting.

        Args:
            host: Server host name or address
            port: Server control port

        Returns:
            The 2xx greeting reply

        Raises:
            FTPConnectionError: If the TCP connection or greeting fails
            FTPTimeoutError: If the server does not answer in time
        """
        if self._sock is not None:
            self.close()

        self._host = host
        self._port = port

        try:
            self._sock = self._socket_factory((host, port), self._timeout)
        except socket.timeout:
            raise FTPTimeoutError("Connection", self._timeout)
        except OSError as e:
            raise FTPConnectionError(host, port, e)

        self._file = self._sock.makefile("rb")
        self._state = ConnectionState.CONNECTED

        try:
            reply = self.read_reply()
            if reply.kind != 2:
                raise FTPConnectionError(
                    host, port, FTPCommandError("connect", reply.code, reply.text)
                )
        except Exception:
            self.close(send_quit=False)
            raise

        self._welcome = reply
        logger.debug(f"Connected to {host}:{port}: {reply}")
        return reply

    def login(self, username: str, password: str) -> Reply:
        """
        Authenticate with USER/PASS and switch to binary mode.

        Args:
            username: FTP user name
            password: FTP password

        Returns:
            The final 2xx login reply

        Raises:
            FTPNotConnectedError: If open() has not succeeded
            FTPAuthenticationError: If the server rejects the credentials
        """
        if self._state == ConnectionState.DISCONNECTED:
            raise FTPNotConnectedError("Login")

        try:
            reply = self._command(f"USER {username}", expected=(2, 3))
            if reply.kind == 3:
                reply = self._command(f"PASS {password}", expected=(2, 3))
            if reply.kind != 2:
                # 332: server wants an ACCT, which we never have
                raise FTPAuthenticationError(
                    username, FTPCommandError("PASS", reply.code, reply.text)
                )
        except FTPCommandError as e:
            raise FTPAuthenticationError(username, e)

        self._command("TYPE I")
        self._state = ConnectionState.AUTHENTICATED
        return reply

    def send_command(self, command: str, expected: Tuple[int, ...] = (2,)) -> Reply:
        """
        Send one command and read its reply.

        Args:
            command: Command line without the CRLF terminator
            expected: Accepted first digits of the reply code

        Returns:
            The server reply

        Raises:
            FTPNotConnectedError: If the session is not authenticated
            FTPCommandError: If the reply code is not in ``expected``
        """
        if self._state != ConnectionState.AUTHENTICATED:
            raise FTPNotConnectedError(command.split(" ", 1)[0].upper())
        return self._command(command, expected)

    def _command(self, command: str, expected: Tuple[int, ...] = (2,)) -> Reply:
        self.put_line(command)
        reply = self.read_reply()
        self.check_reply(reply, command, expected)
        return reply

    def check_reply(self, reply: Reply, command: str, expected: Tuple[int, ...] = (2,)) -> None:
        """Raise FTPCommandError if ``reply`` is not an expected kind."""
        if reply.kind not in expected:
            raise FTPCommandError(describe_command(command), reply.code, reply.text)

    def put_line(self, line: str) -> None:
        """Write a single command line."""
        if "\r" in line or "\n" in line:
            raise FTPProtocolError("Command must not contain line breaks")
        sock = self._require_socket(line.split(" ", 1)[0].upper())

        logger.debug(f"> {describe_command(line)}")
        with self._guard(describe_command(line)):
            sock.sendall((line + CRLF).encode(ENCODING))

    def read_reply(self, timeout: Optional[float] = None) -> Reply:
        """
        Read one complete reply.

        Args:
            timeout: Override the channel timeout for this read only

        Raises:
            FTPProtocolError: If the reply is malformed
            FTPConnectionError: If the server closed the connection
            FTPTimeoutError: If no reply arrives in time
        """
        sock = self._require_socket("Read reply")
        if timeout is not None:
            sock.settimeout(timeout)
        try:
            with self._guard("Read reply", timeout):
                first = self._get_line()
                code = first[:3]
                if len(code) != 3 or not code.isdigit():
                    raise FTPProtocolError(f"Malformed reply: {first!r}")

                lines = [first]
                if first[3:4] == "-":
                    while True:
                        line = self._get_line()
                        lines.append(line)
                        if line[:3] == code and line[3:4] != "-":
                            break
        finally:
            if timeout is not None and self._sock is not None:
                self._sock.settimeout(self._timeout)

        text = "\n".join(
            line[4:] if line[:3] == code and line[3:4] in (" ", "-", "") else line
            for line in lines
        )
        reply = Reply(code=int(code), text=text.strip(), lines=lines)
        logger.debug(f"< {reply}")
        return reply

    def _get_line(self) -> str:
        line = self._file.readline(MAX_LINE + 1)
        if len(line) > MAX_LINE:
            raise FTPProtocolError(f"Reply line longer than {MAX_LINE} bytes")
        if not line:
            raise FTPConnectionError(
                self._host, self._port, EOFError("Connection closed by server")
            )
        return line.decode(ENCODING, "replace").rstrip("\r\n")

    @contextmanager
    def _guard(self, operation: str, timeout: Optional[float] = None) -> Iterator[None]:
        """Map socket failures to FTP errors; a broken channel is closed."""
        try:
            yield
        except socket.timeout:
            self.close(send_quit=False)
            raise FTPTimeoutError(operation, timeout or self._timeout)
        except (FTPConnectionError, FTPProtocolError):
            self.close(send_quit=False)
            raise
        except OSError as e:
            self.close(send_quit=False)
            raise FTPConnectionError(self._host, self._port, e)

    def abort(self) -> None:
        """
        Shut down the socket without closing it.

        Safe to call from another thread: a read or write blocked there
        returns or fails at once, and that thread's error handling closes
        the channel.
        """
        sock = self._sock
        if sock is None:
            return
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError as e:
            logger.debug(f"Control socket shutdown failed: {e}")

    def close(self, send_quit: bool = True) -> bool:
        """
        Close the connection. Safe to call any number of times.

        Args:
            send_quit: Say QUIT to the server first (best effort)

        Returns:
            True if a socket was actually closed
        """
        sock, reader = self._sock, self._file
        self._sock = None
        self._file = None
        was_connected = self._state != ConnectionState.DISCONNECTED
        self._state = ConnectionState.DISCONNECTED

        if sock is None:
            return False

        if send_quit and was_connected:
            try:
                sock.sendall(("QUIT" + CRLF).encode(ENCODING))
                reader.readline(MAX_LINE)
            except OSError as e:
                logger.debug(f"QUIT failed, closing anyway: {e}")

        try:
            if reader is not None:
                reader.close()
        finally:
            sock.close()
        return True
