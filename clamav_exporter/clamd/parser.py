"""Parsers for clamd replies.

None of the parsers raise on malformed content: result lines become
PARSE_ERROR results, version strings become None and stats sections are
left unknown.

"""
import re
from datetime import datetime, tzinfo

from .types import ClamdResult, \
    ClamdScanStatus, \
    ClamdRawStats, \
    ClamdStats, \
    MemoryStats, \
    ThreadStats, \
    VersionInfo

# e.g. "Mon Jan 20 12:41:43 2020"
DB_TIME_FORMAT = "%a %b %d %H:%M:%S %Y"

SIZE_UNITS = {
    "": 1,
    "B": 1,
    "K": 1024,
    "M": 1024 ** 2,
    "G": 1024 ** 3,
    "T": 1024 ** 4,
}

# prefixes of the STATS reply lines we keep, mapped to ClamdRawStats fields
STATS_PREFIXES = {
    "POOLS": "pools",
    "STATE": "state",
    "THREADS": "threads",
    "QUEUE": "queue",
    "MEMSTATS": "memstats",
}


class ClamdResponseParser:
    """Turns raw clamd text into structured values.
    """
    def __init__(self):
        # <path>: [<description>[(<hash>:<size>)] ]<status>
        self.result_pattern = re.compile(
            r"^([^:]+): (?:([^:]+?)(?:\(([^:]+):([^)]*)\))? )?(\S+)$")
        self.version_pattern = re.compile(r"^ClamAV (.*?)/(.*?)/(.*?)$")
        self.queue_pattern = re.compile(r"^(\d+)\s+item.*$")
        self.threads_pattern = re.compile(
            r"^live\s+(\d+)\s+idle\s+(\d+)\s+max\s+(\d+)"
            r"\s+idle-timeout\s+(\d+)$")
        size = r"(\d+(?:\.\d+)?[BKMGT]?)"
        self.memstats_pattern = re.compile(
            r"^heap\s+{0}\s+mmap\s+{0}\s+used\s+{0}\s+free\s+{0}"
            r"\s+releasable\s+{0}\s+pools\s+(\d+)"
            r"\s+pools_used\s+{0}\s+pools_total\s+{0}$".format(size))

    def parse_line(self, line: str) -> ClamdResult:
        """Parse one response line.

        :param line: Response line, without terminator
        :return: Structured result, PARSE_ERROR if the line is malformed
        """
        m = self.result_pattern.match(line)
        if not m:
            return ClamdResult(
                raw=line,
                status=ClamdScanStatus.PARSE_ERROR,
                description="Unable to parse clamd response",
            )

        path, desc, vhash, vsize, status = m.groups()
        if status not in (ClamdScanStatus.OK.value,
                          ClamdScanStatus.FOUND.value,
                          ClamdScanStatus.ERROR.value):
            return ClamdResult(
                raw=line,
                status=ClamdScanStatus.PARSE_ERROR,
                path=path,
                description="invalid status field: " + status,
            )

        # a malformed size is not worth failing the whole line for
        try:
            size = int(vsize) if vsize else 0
        except ValueError:
            size = 0

        return ClamdResult(
            raw=line,
            status=ClamdScanStatus(status),
            path=path,
            description=desc or "",
            hash=vhash or "",
            size=max(size, 0),
        )

    def parse_version(self,
                      raw: str,
                      tz: tzinfo | None = None) -> VersionInfo | None:
        """Parse a VERSION reply like
        "ClamAV 0.102.1/25701/Mon Jan 20 12:41:43 2020".

        :param raw: Raw version line
        :param tz: Zone the database time is in; local zone if omitted
        :return: Version info, None if the line is malformed
        """
        m = self.version_pattern.match(raw)
        if not m:
            return None
        clamav_version, db_version, db_time = m.groups()
        try:
            db_version = int(db_version)
            parsed = datetime.strptime(db_time.strip(), DB_TIME_FORMAT)
        except ValueError:
            return None

        if tz is None:
            # naive datetimes are taken as local time
            parsed = parsed.astimezone()
        else:
            parsed = parsed.replace(tzinfo=tz)

        return VersionInfo(
            clamav_version=clamav_version,
            db_version=db_version,
            db_time=parsed,
        )

    def fold_stats(self, lines: list[str]) -> ClamdRawStats:
        """Group STATS reply lines by their prefix.

        Lines with other prefixes (queue details, END) are ignored.
        """
        raw = ClamdRawStats()
        for line in lines:
            prefix, sep, rest = line.partition(":")
            if not sep or prefix not in STATS_PREFIXES:
                continue
            setattr(raw, STATS_PREFIXES[prefix], rest.strip())
        return raw

    def parse_stats(self, raw: ClamdRawStats) -> ClamdStats:
        """Parse the folded STATS reply.

        Each section either matches completely or stays unknown.
        """
        stats = ClamdStats(state=raw.state)

        m = self.queue_pattern.match(raw.queue)
        if m:
            stats.queue_length = int(m.group(1))

        m = self.threads_pattern.match(raw.threads)
        if m:
            # idle-timeout is not exposed
            live, idle, max_, _ = m.groups()
            stats.threads = ThreadStats(
                live=int(live),
                idle=int(idle),
                max=int(max_),
            )

        m = self.memstats_pattern.match(raw.memstats)
        if m:
            heap, mmap, used, free, releasable, pools, pools_used, \
                pools_total = m.groups()
            stats.memory = MemoryStats(
                heap=parse_size(heap),
                mmap=parse_size(mmap),
                used=parse_size(used),
                free=parse_size(free),
                releasable=parse_size(releasable),
                pools=int(pools),
                pools_used=parse_size(pools_used),
                pools_total=parse_size(pools_total),
            )

        return stats


def parse_size(token: str) -> int:
    """Convert a size like "12.5M" into bytes.
    """
    unit = token[-1] if token[-1] in SIZE_UNITS else ""
    number = token[:-1] if unit else token
    return round(float(number) * SIZE_UNITS[unit])
