# Overview: Process-local 64-bit ID generation for primary keys.

"""
Snowflake-style ID generator.

Layout (most significant bit first):

    [0 : 1][milliseconds since 2020-01-01 : 41][machine : 8][sequence : 15]

The sign bit stays zero so every ID fits a signed BIGINT column. IDs from
one process are strictly increasing. IDs from different processes are
unique only when each process runs with a distinct MACHINE_ID.
"""

from __future__ import annotations

import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Callable

EPOCH_MS = 1_577_836_800_000  # 2020-01-01T00:00:00Z

TIMESTAMP_BITS = 41
MACHINE_BITS = 8
SEQUENCE_BITS = 15

MAX_MACHINE_ID = (1 << MACHINE_BITS) - 1
MAX_SEQUENCE = (1 << SEQUENCE_BITS) - 1
MAX_TIMESTAMP = (1 << TIMESTAMP_BITS) - 1


class IDGeneratorError(RuntimeError):
    """Generator is not initialized or its clock range is exhausted."""


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class IDGenerator:
    def __init__(self, machine_id: int, clock: Callable[[], int] | None = None):
        if not 0 <= machine_id <= MAX_MACHINE_ID:
            raise ValueError(f"machine id must be between 0 and {MAX_MACHINE_ID}")
        self.machine_id = machine_id
        self._clock = clock or _now_ms
        self._lock = threading.Lock()
        self._last_ms = -1
        self._sequence = 0

    def next_id(self) -> int:
        with self._lock:
            now = self._clock()
            # A clock that stepped backwards keeps issuing from the last
            # millisecond seen so IDs stay monotonic.
            if now < self._last_ms:
                now = self._last_ms

            if now == self._last_ms:
                self._sequence = (self._sequence + 1) & MAX_SEQUENCE
                if self._sequence == 0:
                    # Sequence exhausted: block until the next millisecond
                    while now <= self._last_ms:
                        now = self._clock()
            else:
                self._sequence = 0

            self._last_ms = now
            elapsed = now - EPOCH_MS
            if elapsed < 0 or elapsed > MAX_TIMESTAMP:
                raise IDGeneratorError("clock outside of the representable range")

            return (
                (elapsed << (MACHINE_BITS + SEQUENCE_BITS))
                | (self.machine_id << SEQUENCE_BITS)
                | self._sequence
            )


_generator: IDGenerator | None = None
_init_lock = threading.Lock()


def init_id_generator(machine_id: int) -> IDGenerator:
    """
    Install the process-wide generator.

    Re-initializing with the same machine id keeps the existing instance so
    that several app factories in one process share a sequence.
    """
    global _generator
    with _init_lock:
        if _generator is None or _generator.machine_id != machine_id:
            _generator = IDGenerator(machine_id)
        return _generator


def generate_id() -> int:
    """Return the next ID. Raises IDGeneratorError when uninitialized."""
    generator = _generator
    if generator is None:
        raise IDGeneratorError("ID generator used before init_id_generator()")
    return generator.next_id()


def decode_id(value: int) -> tuple[datetime, int, int]:
    """Split an ID into (creation time, machine id, sequence)."""
    sequence = value & MAX_SEQUENCE
    machine_id = (value >> SEQUENCE_BITS) & MAX_MACHINE_ID
    elapsed = value >> (MACHINE_BITS + SEQUENCE_BITS)
    created = datetime(2020, 1, 1, tzinfo=timezone.utc) + timedelta(milliseconds=elapsed)
    return created, machine_id, sequence
