"""Timestamp identifiers (TIDs) used as record keys.

A TID packs a 54-bit microsecond timestamp and a 10-bit clock sequence into a
64-bit value, ``(timestamp_us << 10) | clock_id``, and renders it as 13
characters of a sortable base-32 alphabet, most significant symbol first. The
text form therefore sorts the same way as the ``(timestamp_us, clock_id)``
pair.

``TidGenerator`` hands out TIDs that are unique within the process: calls that
land on the same microsecond bump the clock sequence instead of repeating it.
"""

from dataclasses import dataclass
import threading
import time
from typing import Callable, Optional

from social.graze.atclient.errors import InvalidId

BASE32_SORTABLE = "234567abcdefghijklmnopqrstuvwxyz"

TID_LENGTH = 13
CLOCK_ID_BITS = 10
CLOCK_ID_MASK = (1 << CLOCK_ID_BITS) - 1
TIMESTAMP_BITS = 54
LOW_TIMESTAMP_MASK = 0xFFFFFFFF

_DECODE_TABLE = {c: i for i, c in enumerate(BASE32_SORTABLE)}


@dataclass(frozen=True, order=True)
class Tid:
    timestamp_us: int
    clock_id: int

    def __post_init__(self) -> None:
        if self.timestamp_us < 0 or self.timestamp_us >= 1 << TIMESTAMP_BITS:
            raise InvalidId(f"timestamp out of range: {self.timestamp_us}")
        if self.clock_id < 0 or self.clock_id > CLOCK_ID_MASK:
            raise InvalidId(f"clock id out of range: {self.clock_id}")

    @staticmethod
    def from_parts(timestamp_us: int, clock_id: int) -> "Tid":
        """Like ``Tid(...)``, but wraps ``clock_id`` to its 10 bits."""
        return Tid(timestamp_us=timestamp_us, clock_id=clock_id & CLOCK_ID_MASK)

    @staticmethod
    def now() -> "Tid":
        return default_generator().next_tid()

    @staticmethod
    def parse(value: str) -> "Tid":
        if len(value) != TID_LENGTH:
            raise InvalidId(f"TID must be {TID_LENGTH} characters, got {len(value)}")

        decoded = 0
        for c in value:
            index = _DECODE_TABLE.get(c)
            if index is None:
                raise InvalidId(f"invalid character {c!r}")
            decoded = (decoded << 5) | index

        if decoded >> 64:
            raise InvalidId(f"TID out of range: {value}")

        return Tid(timestamp_us=decoded >> CLOCK_ID_BITS, clock_id=decoded & CLOCK_ID_MASK)

    def encode(self) -> str:
        value = (self.timestamp_us << CLOCK_ID_BITS) | self.clock_id

        chars = []
        for _ in range(TID_LENGTH):
            chars.append(BASE32_SORTABLE[value & 0x1F])
            value >>= 5

        return "".join(reversed(chars))

    def __str__(self) -> str:
        return self.encode()


def _now_us() -> int:
    return time.time_ns() // 1000


class TidGenerator:
    """Produces process-unique TIDs.

    The last seen low-order timestamp and the clock sequence are updated under
    a lock, so concurrent callers (threads or tasks) never get the same
    ``(timestamp, clock_id)`` pair. The sequence is 10 bits wide and wraps
    after 1024 TIDs within one microsecond.
    """

    def __init__(self, clock: Optional[Callable[[], int]] = None) -> None:
        self._clock = clock or _now_us
        self._lock = threading.Lock()
        self._last_timestamp_low: Optional[int] = None
        self._clock_id = 0

    def next_tid(self) -> Tid:
        with self._lock:
            timestamp_us = self._clock()
            timestamp_low = timestamp_us & LOW_TIMESTAMP_MASK

            if timestamp_low == self._last_timestamp_low:
                self._clock_id = (self._clock_id + 1) & CLOCK_ID_MASK
            else:
                self._clock_id = 0
                self._last_timestamp_low = timestamp_low

            return Tid.from_parts(timestamp_us, self._clock_id)

    def next_rkey(self) -> str:
        return str(self.next_tid())


_default_generator = TidGenerator()


def default_generator() -> TidGenerator:
    return _default_generator


def next_tid() -> Tid:
    return _default_generator.next_tid()
