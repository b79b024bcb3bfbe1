"""Remote working directory tracking for the Xbox soundtrack FTP client.

DirectoryState issues the navigation and create/delete commands and
keeps the current working directory in step with the server.
"""

import logging
import re
from typing import Optional

from soundtrack_ftp.ftp.connection import ControlChannel, Reply
from soundtrack_ftp.ftp.exceptions import (
    FTPCommandError,
    FTPDirectoryError,
    FTPNotFoundError,
    FTPProtocolError,
)

logger = logging.getLogger("soundtrack_ftp.directory")

PARENT_DIRECTORY = ".."
ROOT_DIRECTORY = "/"

UNQUOTED_PATH_PATTERN = re.compile(r'(?:^|\s)(/\S*)')


def parse_pwd_reply(text: str) -> Optional[str]:
    """
    Extract the directory from a 257 reply.

    The path is normally quoted, with embedded quotes doubled (RFC 959
    appendix II). Some servers send it unquoted, e.g.
    '257 /music is current directory'; the first absolute path is used then.

    Args:
        text: Reply text, e.g. '"/music" is current directory.'

    Returns:
        The directory path, or None if the reply names no path
    """
    if not text.startswith('"'):
        match = UNQUOTED_PATH_PATTERN.search(text)
        return match.group(1) if match else None

    chars = []
    i = 1
    while i < len(text):
        char = text[i]
        if char == '"':
            if text[i + 1:i + 2] == '"':
                chars.append('"')
                i += 2
                continue
            return "".join(chars)
        chars.append(char)
        i += 1
    return None


class DirectoryState:
    """Current working directory plus MKD/RMD/CWD/DELE."""

    def __init__(self, control: ControlChannel):
        """
        Initialize directory state at the root.

        Args:
            control: Control channel to issue commands on
        """
        self._control = control
        self._cwd = ROOT_DIRECTORY

    @property
    def current(self) -> str:
        """Last server-confirmed working directory."""
        return self._cwd

    def reset(self) -> None:
        """Forget the server directory (used on disconnect)."""
        self._cwd = ROOT_DIRECTORY

    def refresh(self) -> str:
        """
        Ask the server for the working directory.

        Returns:
            The current directory as reported by the server

        Raises:
            FTPProtocolError: If the reply names no absolute path
        """
        reply = self._control.send_command("PWD")
        path = parse_pwd_reply(reply.text)
        if not path or not path.startswith("/"):
            raise FTPProtocolError(f"No absolute path in PWD reply: {reply}")
        logger.debug(f"Working directory is {path}")
        self._cwd = path
        return self._cwd

    def make_directory(self, name: str) -> Reply:
        """
        Create a remote directory.

        Raises:
            FTPDirectoryError: If the server refuses (exists, permission, bad path)
        """
        return self._directory_command(f"MKD {name}")

    def delete_directory(self, name: str) -> Optional[Reply]:
        """
        Remove a remote directory.

        Deleting ".." always succeeds and sends nothing.

        Returns:
            The server reply, or None when nothing was sent
        """
        if name == PARENT_DIRECTORY:
            return None
        return self._directory_command(f"RMD {name}")

    def change_working_directory(self, path: str) -> str:
        """
        Change directory and refresh from PWD.

        The tracked directory only changes once the server confirms it.

        Returns:
            The new working directory

        Raises:
            FTPNotFoundError: If the directory does not exist
            FTPDirectoryError: If the server refuses for another reason
            FTPProtocolError: If the PWD reply that follows names no path
        """
        try:
            self._control.send_command(f"CWD {path}")
        except FTPCommandError as e:
            if e.code == 550:
                raise FTPNotFoundError(path, e)
            raise FTPDirectoryError(e.command, e.code, e.text)
        return self.refresh()

    def delete_file(self, name: str) -> Reply:
        """
        Delete a remote file.

        Raises:
            FTPNotFoundError: If the file does not exist
        """
        try:
            return self._control.send_command(f"DELE {name}")
        except FTPCommandError as e:
            if e.code == 550:
                raise FTPNotFoundError(name, e)
            raise

    def _directory_command(self, command: str) -> Reply:
        try:
            return self._control.send_command(command)
        except FTPCommandError as e:
            raise FTPDirectoryError(e.command, e.code, e.text)
