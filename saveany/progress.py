"""Deciding when to report download progress, and writers that report it."""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any

# (size threshold in bytes, report every this many percent)
_PROGRESS_LEVELS: tuple[tuple[int, int], ...] = (
    (10 << 20, 100),
    (50 << 20, 20),
    (200 << 20, 10),
    (500 << 20, 5),
)

_COUNT_STEP = 10


def should_update_progress(total: int, downloaded: int, last_update_percent: int) -> bool:
    """Return whether a byte-based progress report is due.

    Small files are reported rarely and large ones more often: the step in
    percent depends on the total size.
    """
    if total <= 0 or downloaded <= 0:
        return False
    percent = downloaded * 100 // total
    if percent <= last_update_percent:
        return False
    step = _PROGRESS_LEVELS[-1][1]
    for size, step_percent in _PROGRESS_LEVELS:
        if total < size:
            step = step_percent
            break
    return percent >= last_update_percent + step


def should_update_count_progress(downloaded: int, total: int) -> bool:
    """Return whether a count-based progress report is due.

    Reports every tenth item and at the end; below ten items only at the end.
    """
    if total <= 0 or downloaded <= 0:
        return False
    if downloaded < _COUNT_STEP:
        return downloaded == total
    return downloaded % _COUNT_STEP == 0 or downloaded == total


class ProgressWriter:
    """Wraps a binary file-like object and reports the bytes written through it.

    on_progress is called after each write with the running count of bytes
    written and the expected total.
    """

    def __init__(
        self,
        target: Any,
        total: int,
        on_progress: Callable[[int, int], None],
    ) -> None:
        self.target = target
        self.total = total
        self.on_progress = on_progress
        self._downloaded = 0
        self._lock = threading.Lock()

    @property
    def downloaded(self) -> int:
        """Bytes written so far."""
        with self._lock:
            return self._downloaded

    def _count(self, written: int) -> int:
        with self._lock:
            self._downloaded += written
            return self._downloaded

    def write(self, data: bytes) -> int:
        """Write data at the target's current position."""
        written = self.target.write(data)
        if written is None:
            written = len(data)
        self.on_progress(self._count(written), self.total)
        return written

    def write_at(self, data: bytes, offset: int) -> int:
        """Write data at offset in the target."""
        with self._lock:
            self.target.seek(offset)
            written = self.target.write(data)
        if written is None:
            written = len(data)
        self.on_progress(self._count(written), self.total)
        return written