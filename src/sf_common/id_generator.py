"""Identifiers: snowflake-style row ids and per-payment callback nonces.

Row ids (orders, items, blocks, incomplete orders) are time-ordered decimal
strings, so items of one order list in insertion order.
"""

import secrets
import threading
import time


class SnowflakeIdGenerator:
    """Layout (63 bits): 41 ms timestamp | 10 worker | 12 sequence."""

    _EPOCH_MS = 1_767_225_600_000  # 2026-01-01T00:00:00Z
    _WORKER_BITS = 10
    _SEQUENCE_BITS = 12
    _MAX_SEQUENCE = (1 << _SEQUENCE_BITS) - 1

    def __init__(self, worker_id: int = 0) -> None:
        if not (0 <= worker_id < (1 << self._WORKER_BITS)):
            raise ValueError(f"worker_id must be 0-{(1 << self._WORKER_BITS) - 1}")
        self._worker_id = worker_id
        self._sequence = 0
        self._last_ms = -1
        self._lock = threading.Lock()

    def next_id(self) -> str:
        with self._lock:
            now_ms = self._now_ms()
            if now_ms < self._last_ms:
                # Clock stepped backwards; keep ids monotonic.
                now_ms = self._last_ms
            if now_ms == self._last_ms:
                self._sequence = (self._sequence + 1) & self._MAX_SEQUENCE
                if self._sequence == 0:
                    now_ms = self._wait_past(now_ms)
            else:
                self._sequence = 0
            self._last_ms = now_ms
            value = (
                ((now_ms - self._EPOCH_MS) << (self._WORKER_BITS + self._SEQUENCE_BITS))
                | (self._worker_id << self._SEQUENCE_BITS)
                | self._sequence
            )
            return str(value)

    @staticmethod
    def _now_ms() -> int:
        return int(time.time() * 1000)

    def _wait_past(self, last_ms: int) -> int:
        now_ms = self._now_ms()
        while now_ms <= last_ms:
            now_ms = self._now_ms()
        return now_ms


_default_generator = SnowflakeIdGenerator()


def generate_id() -> str:
    return _default_generator.next_id()


def new_nonce() -> str:
    """Unguessable token bound to one payment initiation."""
    return secrets.token_urlsafe(18)
