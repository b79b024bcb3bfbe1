"""Directory listing parser for the Xbox soundtrack FTP client.

Parses LIST output in Unix ``ls -l`` form (the canonical format) and
MLSD machine-readable output into RemoteEntry records. Lines that match
neither format are skipped.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Iterable, List, Optional

logger = logging.getLogger("soundtrack_ftp.listing")

MONTHS = {
    name: index
    for index, name in enumerate(
        ["jan", "feb", "mar", "apr", "may", "jun",
         "jul", "aug", "sep", "oct", "nov", "dec"],
        start=1,
    )
}

# perms links [owner [group]] size month day time-or-year name
UNIX_LINE_PATTERN = re.compile(
    r"^(?P<perms>[bcdlps-][-rwxsStTlL]{9})[+@.]?\s+"
    r"(?P<links>\d+)\s+"
    r"(?:(?P<owner>\S+)\s+)?"
    r"(?:(?P<group>\S+)\s+)?"
    r"(?P<size>\d+)\s+"
    r"(?P<month>[A-Za-z]{3})\s+"
    r"(?P<day>\d{1,2})\s+"
    r"(?P<when>\d{1,2}:\d{2}|\d{4})\s"
    r"(?P<name>.+)$"
)


class EntryType(Enum):
    """Kind of remote directory entry."""
    FILE = "file"
    DIRECTORY = "directory"
    LINK = "link"
    OTHER = "other"


@dataclass
class RemoteEntry:
    """One parsed line of a directory listing."""
    name: str
    entry_type: EntryType
    size: int = 0
    permissions: str = ""
    modified: Optional[datetime] = None
    raw: str = ""

    @property
    def is_file(self) -> bool:
        return self.entry_type == EntryType.FILE

    @property
    def is_directory(self) -> bool:
        return self.entry_type == EntryType.DIRECTORY


@dataclass
class FileEntry:
    """File shown in a directory listing."""
    name: str
    attributes: str
    size: int
    date_modified: str
    time_modified: str
    modified: Optional[datetime] = None

    @classmethod
    def from_remote(cls, entry: RemoteEntry) -> "FileEntry":
        """Project a parsed listing entry onto a file record."""
        if entry.modified is not None:
            date_modified = entry.modified.strftime("%Y-%m-%d")
            time_modified = entry.modified.strftime("%H:%M")
        else:
            date_modified = time_modified = ""
        return cls(
            name=entry.name,
            attributes=entry.permissions,
            size=entry.size,
            date_modified=date_modified,
            time_modified=time_modified,
            modified=entry.modified,
        )


@dataclass
class DirectoryEntry:
    """Directory shown in a directory listing."""
    name: str
    attributes: str

    @classmethod
    def from_remote(cls, entry: RemoteEntry) -> "DirectoryEntry":
        """Project a parsed listing entry onto a directory record."""
        return cls(name=entry.name, attributes=entry.permissions)


class ListingParser:
    """Parses raw listing text in one configured format."""

    def __init__(self, listing_format: str = "unix", now: Optional[datetime] = None):
        """
        Initialize the parser.

        Args:
            listing_format: "unix" for LIST output, "mlsd" for MLSD output
            now: Reference time for inferring years in recent Unix dates
        """
        if listing_format not in ("unix", "mlsd"):
            raise ValueError(f"Unknown listing format: {listing_format!r}")
        self._format = listing_format
        self._now = now

    @property
    def listing_format(self) -> str:
        return self._format

    @property
    def command(self) -> str:
        """FTP command producing this parser's input."""
        return "MLSD" if self._format == "mlsd" else "LIST"

    def parse(self, text: str) -> List[RemoteEntry]:
        """Parse a complete listing, skipping unparseable lines."""
        return self.parse_lines(text.splitlines())

    def parse_lines(self, lines: Iterable[str]) -> List[RemoteEntry]:
        parse_line = self.parse_mlsd_line if self._format == "mlsd" else self.parse_unix_line
        entries = []
        for line in lines:
            line = line.rstrip("\r\n")
            if not line.strip():
                continue
            entry = parse_line(line)
            if entry is None:
                logger.debug(f"Skipping listing line: {line!r}")
                continue
            if entry.name in (".", ".."):
                continue
            entries.append(entry)
        return entries

    def parse_unix_line(self, line: str) -> Optional[RemoteEntry]:
        """
        Parse one ``ls -l`` style line.

        Returns:
            RemoteEntry, or None for "total" lines and unrecognized input
        """
        match = UNIX_LINE_PATTERN.match(line)
        if not match:
            return None

        perms = match.group("perms")
        name = match.group("name")
        type_char = perms[0]
        if type_char == "d":
            entry_type = EntryType.DIRECTORY
        elif type_char == "-":
            entry_type = EntryType.FILE
        elif type_char == "l":
            entry_type = EntryType.LINK
            name = name.split(" -> ", 1)[0]
        else:
            entry_type = EntryType.OTHER

        return RemoteEntry(
            name=name,
            entry_type=entry_type,
            size=int(match.group("size")),
            permissions=perms,
            modified=self._unix_timestamp(
                match.group("month"), match.group("day"), match.group("when")
            ),
            raw=line,
        )

    def _unix_timestamp(self, month: str, day: str, when: str) -> Optional[datetime]:
        month_number = MONTHS.get(month.lower())
        if month_number is None:
            return None

        try:
            if ":" in when:
                # Recent file: no year, ls shows the last six months
                now = self._now or datetime.now()
                hour, minute = (int(part) for part in when.split(":"))
                stamp = datetime(now.year, month_number, int(day), hour, minute)
                if stamp > now + timedelta(days=1):
                    stamp = stamp.replace(year=now.year - 1)
                return stamp
            return datetime(int(when), month_number, int(day))
        except ValueError:
            return None

    def parse_mlsd_line(self, line: str) -> Optional[RemoteEntry]:
        """
        Parse one MLSD line of the form ``fact=value;fact=value; name``.

        Returns:
            RemoteEntry, or None for cdir/pdir entries and malformed input
        """
        facts_part, sep, name = line.partition(" ")
        if not sep or not name or "=" not in facts_part:
            return None

        facts = {}
        for fact in facts_part.rstrip(";").split(";"):
            key, eq, value = fact.partition("=")
            if not eq:
                return None
            facts[key.lower()] = value

        kind = facts.get("type", "").lower()
        if kind in ("cdir", "pdir"):
            return None
        if kind == "file":
            entry_type = EntryType.FILE
        elif kind == "dir":
            entry_type = EntryType.DIRECTORY
        elif kind.startswith("os.unix=slink") or kind == "os.unix=symlink":
            entry_type = EntryType.LINK
        else:
            entry_type = EntryType.OTHER

        try:
            size = int(facts.get("size", facts.get("sizd", "0")))
        except ValueError:
            size = 0

        return RemoteEntry(
            name=name,
            entry_type=entry_type,
            size=max(size, 0),
            permissions=facts.get("unix.mode", facts.get("perm", "")),
            modified=self._mlsd_timestamp(facts.get("modify")),
            raw=line,
        )

    @staticmethod
    def _mlsd_timestamp(value: Optional[str]) -> Optional[datetime]:
        if not value:
            return None
        try:
            stamp = datetime.strptime(value[:14], "%Y%m%d%H%M%S")
        except ValueError:
            return None
        return stamp.replace(tzinfo=timezone.utc)
