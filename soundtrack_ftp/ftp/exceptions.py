"""FTP-specific exceptions for the Xbox soundtrack FTP client.

Custom exception hierarchy for FTP operations to provide
clear error handling and user-friendly messages.
"""


class FTPError(Exception):
    """Base exception for all FTP-related errors."""

    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    def __str__(self) -> str:
        if self.original_error:
            return f"{self.message}: {self.original_error}"
        return self.message


class FTPConnectionError(FTPError):
    """Failed to establish or keep the FTP control connection."""

    def __init__(self, host: str, port: int, original_error: Exception = None):
        self.host = host
        self.port = port
        message = f"Failed to connect to {host}:{port}"
        super().__init__(message, original_error)


class FTPAuthenticationError(FTPError):
    """FTP authentication (login) failed."""

    def __init__(self, username: str, original_error: Exception = None):
        self.username = username
        message = f"Authentication failed for user '{username}'"
        super().__init__(message, original_error)


class FTPNotConnectedError(FTPError):
    """Operation attempted without an authenticated FTP session."""

    def __init__(self, operation: str = "Operation"):
        self.operation = operation
        message = f"{operation} requires an active FTP connection"
        super().__init__(message)


class FTPTimeoutError(FTPError):
    """FTP operation timed out."""

    def __init__(self, operation: str = "Operation", timeout: float = 30):
        self.operation = operation
        self.timeout = timeout
        message = f"{operation} timed out after {timeout} seconds"
        super().__init__(message)


class FTPProtocolError(FTPError):
    """Server sent something that is not a valid FTP reply."""


class FTPCommandError(FTPError):
    """Server answered a command with an unexpected reply code."""

    def __init__(self, command: str, code: int, text: str):
        self.command = command
        self.code = code
        self.text = text
        message = f"'{command}' failed with reply {code}: {text}"
        super().__init__(message)


class FTPDirectoryError(FTPCommandError):
    """Directory create/remove/change was refused by the server."""


class FTPNotFoundError(FTPError):
    """Remote file or directory does not exist."""

    def __init__(self, path: str, original_error: Exception = None):
        self.path = path
        message = f"Remote path not found: '{path}'"
        super().__init__(message, original_error)


class FTPTransferError(FTPError):
    """Data connection failed while transferring a file or listing."""

    def __init__(self, path: str, direction: str, original_error: Exception = None):
        self.path = path
        self.direction = direction
        message = f"Failed to {direction} '{path}'"
        super().__init__(message, original_error)
