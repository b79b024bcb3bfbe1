"""Operation log for the Xbox soundtrack FTP client.

Append-only, in-memory diagnostic trail of every operation a session
attempted. Entries are mirrored to the standard logging system.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterator, List


@dataclass(frozen=True)
class LogEntry:
    """A single timestamped operation log message."""
    message: str
    timestamp: datetime


class OperationLog:
    """Chronological record of session operations. Never evicts."""

    def __init__(self, logger_name: str = "soundtrack_ftp.session"):
        self._entries: List[LogEntry] = []
        self._logger = logging.getLogger(logger_name)

    @property
    def entries(self) -> List[LogEntry]:
        """Copy of all entries, oldest first."""
        return self._entries.copy()

    def record(self, message: str, level: int = logging.INFO) -> LogEntry:
        """
        Append a message.

        Args:
            message: Human-readable description of what happened
            level: Level used when mirroring to the logger

        Returns:
            The appended entry
        """
        entry = LogEntry(message=message, timestamp=datetime.now())
        self._entries.append(entry)
        self._logger.log(level, message)
        return entry

    def messages(self) -> List[str]:
        """Entry messages only, oldest first."""
        return [entry.message for entry in self._entries]

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[LogEntry]:
        return iter(self.entries)
