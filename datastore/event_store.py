from __future__ import annotations

from threading import Lock
from typing import List, Optional, Tuple

from models.records import Reading


class EventStore:
    """Append-only, in-memory log of accepted readings.

    The log is never trimmed and lives for the lifetime of the process.
    """

    def __init__(self) -> None:
        self._readings: List[Reading] = []
        self._lock = Lock()

    def record(self, reading: Reading) -> None:
        with self._lock:
            self._readings.append(reading)

    def latest(self) -> Optional[Reading]:
        with self._lock:
            return self._readings[-1] if self._readings else None

    def count(self) -> int:
        with self._lock:
            return len(self._readings)

    def snapshot(self) -> Tuple[int, Optional[Reading]]:
        """Return ``(count, latest)`` observed under a single lock."""

        with self._lock:
            latest = self._readings[-1] if self._readings else None
            return len(self._readings), latest
