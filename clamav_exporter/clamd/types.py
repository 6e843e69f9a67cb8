"""Types for clamd communication.

Numeric fields that may be missing from a daemon reply are ``None``
rather than zero, so that "unknown" can be told apart from a real zero.

"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class ClamdException(Exception):
    """Raised when error occurred communicating with the clamd daemon.
    """


class ClamdNoResponseError(ClamdException):
    """Raised when clamd closed the connection without replying.
    """
    def __init__(self):
        super().__init__("no response from clamd")


class ClamdUnexpectedResponseError(ClamdException):
    """Raised when clamd replied with something other than expected.
    """
    def __init__(self, actual: str):
        super().__init__(f"unexpected response: {actual}")
        self.actual = actual


class ClamdChunkSizeError(ClamdException):
    """Raised when a stream chunk is bigger than clamd accepts from us.
    """
    def __init__(self, size: int, limit: int):
        super().__init__(f"chunk of {size} bytes exceeds limit of "
                         f"{limit} bytes")
        self.size = size
        self.limit = limit


class ClamdPartialWriteError(ClamdException):
    """Raised when fewer bytes were written to clamd than intended.
    """
    def __init__(self, written: int, expected: int):
        super().__init__(f"partial write to clamd: {written} of "
                         f"{expected} bytes")


class ClamdScanStatus(Enum):
    """Status of a clamd result line.
    """
    OK = "OK"
    FOUND = "FOUND"
    ERROR = "ERROR"
    # this is not a status returned by clamd, but reflects our
    # inability to parse the clamd response line
    PARSE_ERROR = "PARSE_ERROR"


@dataclass
class ClamdResult():
    """One line of a clamd response.

    The raw line is always kept, whatever the parse outcome.  For
    PARSE_ERROR results the description holds the reason.
    """
    raw: str
    status: ClamdScanStatus
    path: str = ""
    description: str = ""
    hash: str = ""
    size: int = 0

    def __str__(self):
        return self.raw


@dataclass
class ClamdRawStats():
    """STATS reply folded by line prefix, before any parsing.
    """
    pools: str = ""
    state: str = ""
    threads: str = ""
    queue: str = ""
    memstats: str = ""


@dataclass
class ThreadStats():
    live: int | None = None
    idle: int | None = None
    max: int | None = None


@dataclass
class MemoryStats():
    """Memory figures from MEMSTATS, all in bytes except the pool count.
    """
    heap: int | None = None
    mmap: int | None = None
    used: int | None = None
    free: int | None = None
    releasable: int | None = None
    pools: int | None = None
    pools_used: int | None = None
    pools_total: int | None = None


@dataclass
class ClamdStats():
    """Parsed subset of the clamd STATS reply.
    """
    queue_length: int | None = None
    threads: ThreadStats = field(default_factory=ThreadStats)
    memory: MemoryStats = field(default_factory=MemoryStats)
    state: str = ""


@dataclass
class VersionInfo():
    """Parsed clamd VERSION reply.

    The daemon reports the database time in its own local time without
    a zone.  Unless told otherwise, we read it in the local zone of this
    process.
    """
    clamav_version: str
    db_version: int
    db_time: datetime
