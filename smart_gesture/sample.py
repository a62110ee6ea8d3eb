# smart_gesture/sample.py
"""
Motion samples and the bounded recency cache that holds them.
"""
from collections import OrderedDict
from typing import Iterable, List, Optional, Sequence, Tuple

import logging
import threading
import time

from .constants import CACHE_SIZE
from .constants import ENTRY_WIDTH
from .exceptions import ParameterError

logger = logging.getLogger(__name__)

_ID_EPOCH = time.monotonic()
_id_lock = threading.Lock()
_last_id = -1


def new_sample_id() -> int:
    """
    Returns a new sample id.

    Ids are milliseconds elapsed since the module was imported. Two captures
    in the same millisecond still get strictly increasing ids.
    """
    global _last_id
    with _id_lock:
        candidate = int((time.monotonic() - _ID_EPOCH) * 1000)
        if candidate <= _last_id:
            candidate = _last_id + 1
        _last_id = candidate
        return candidate


class Sample:
    """
    An immutable sequence of fixed-width sensor entries.

    Each entry holds ``ENTRY_WIDTH`` floats: the time offset in milliseconds,
    the x/y/z angular rotation and zero padding.
    """

    __slots__ = ("_entries",)

    def __init__(self, entries: Iterable[Sequence[float]]):
        rows = []
        for entry in entries:
            values = [float(v) for v in entry]
            if len(values) > ENTRY_WIDTH:
                raise ParameterError(
                    f"Sensor entry has {len(values)} fields, at most {ENTRY_WIDTH} allowed."
                )
            values.extend([0.0] * (ENTRY_WIDTH - len(values)))
            rows.append(tuple(values))
        self._entries: Tuple[Tuple[float, ...], ...] = tuple(rows)

    @classmethod
    def from_flat(cls, data: Sequence[float], entry_width: int = ENTRY_WIDTH) -> "Sample":
        """Builds a sample from a flat float buffer of ``entry_width``-sized entries."""
        if entry_width <= 0 or len(data) % entry_width != 0:
            raise ParameterError(
                f"Flat sample length {len(data)} is not a multiple of entry width {entry_width}."
            )
        return cls(
            data[i:i + entry_width] for i in range(0, len(data), entry_width)
        )

    @classmethod
    def from_readings(cls, readings: Iterable[Tuple[float, float, float, float]]) -> "Sample":
        """Builds a sample from ``(time_ms, x, y, z)`` capture readings."""
        return cls((t, x, y, z) for t, x, y, z in readings)

    @property
    def entries(self) -> Tuple[Tuple[float, ...], ...]:
        return self._entries

    def to_flat(self) -> List[float]:
        return [v for entry in self._entries for v in entry]

    def rotations(self) -> List[Tuple[float, float, float]]:
        return [(e[1], e[2], e[3]) for e in self._entries]

    def __len__(self):
        return len(self._entries)

    def __bool__(self):
        return bool(self._entries)

    def __eq__(self, other):
        if not isinstance(other, Sample):
            return NotImplemented
        return self._entries == other._entries

    def __hash__(self):
        return hash(self._entries)

    def __repr__(self):
        return f"Sample(entries={len(self._entries)})"


class SampleCache:
    """
    Bounded FIFO mapping of sample id to Sample.

    Inserting at capacity evicts the oldest entry. Reads never reorder
    entries. The capture thread writes while the arbitration path reads, so
    every access goes through a lock.
    """

    def __init__(self, capacity: int = CACHE_SIZE):
        if capacity <= 0:
            raise ParameterError(f"Cache capacity must be positive, got {capacity}.")
        self.capacity = capacity
        self._entries: "OrderedDict[int, Sample]" = OrderedDict()
        self._lock = threading.Lock()

    def put(self, sample_id: int, sample: Sample) -> None:
        with self._lock:
            if sample_id in self._entries:
                # Re-inserting an id keeps its original position.
                self._entries[sample_id] = sample
                return
            while len(self._entries) >= self.capacity:
                evicted_id, _ = self._entries.popitem(last=False)
                logger.debug(f"Sample {evicted_id} evicted from cache.")
            self._entries[sample_id] = sample

    def get(self, sample_id: int) -> Optional[Sample]:
        with self._lock:
            return self._entries.get(sample_id)

    def last(self) -> Optional[Tuple[int, Sample]]:
        with self._lock:
            if not self._entries:
                return None
            sample_id = next(reversed(self._entries))
            return sample_id, self._entries[sample_id]

    def ids(self) -> List[int]:
        with self._lock:
            return list(self._entries.keys())

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self):
        with self._lock:
            return len(self._entries)

    def __contains__(self, sample_id):
        with self._lock:
            return sample_id in self._entries
