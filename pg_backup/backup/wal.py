"""WAL segment name arithmetic.

A WAL segment file name is 24 hex characters: the timeline, the high 32 bits
(log id) and the low 32 bits (segment number), 8 characters each. A base
backup needs every segment from its start segment up to and including its
stop segment.
"""

import re
from typing import List, NamedTuple

from ..exceptions import MalformedWalId

WAL_ID_LENGTH = 24

# Last segment number within one log id. Historical variants of this tool used
# 0xFFFFFFFF here; 0xFF matches the 16MB segment layout the archiver writes.
# Ranges that cross a log id boundary produce different names under the two
# values.
WAL_SEGMENT_MAX = 0x000000FF

_WAL_ID_RE = re.compile(r"^[0-9A-Fa-f]{24}$")


class WalId(NamedTuple):
    timeline: str
    high: int
    low: int

    @property
    def position(self):
        return (self.high, self.low)


def parse_wal_id(value: str) -> WalId:
    """Split a 24 character WAL segment name into its three groups.

    Raises:
        MalformedWalId: value is not exactly 24 hex characters
    """
    if not isinstance(value, str) or not _WAL_ID_RE.match(value):
        raise MalformedWalId(str(value))
    return WalId(
        timeline=value[:8].upper(),
        high=int(value[8:16], 16),
        low=int(value[16:24], 16),
    )


def format_wal_id(timeline: str, high: int, low: int) -> str:
    return f"{timeline}{high:08X}{low:08X}"


def wal_range(start: str, end: str, segment_max: int = WAL_SEGMENT_MAX) -> List[str]:
    """List every WAL segment name from ``start`` through ``end``.

    The timeline of ``start`` is kept for every generated name. The first
    name is always emitted, so ``wal_range(x, x) == [x.upper()]``.

    Args:
        start: First segment of the backup
        end: Segment the backup stopped in
        segment_max: Highest low counter before rolling over into the next log id

    Returns:
        Ordered list of segment names without any file suffix
    """
    first = parse_wal_id(start)
    last = parse_wal_id(end)

    high, low = first.high, first.low
    names = []
    while True:
        names.append(format_wal_id(first.timeline, high, low))
        if (high, low) >= last.position:
            break
        low += 1
        if low > segment_max:
            low = 0
            high += 1
    return names
