"""
Timing — per-build record of how long each phase and command took.

``TimingRecorder.span(label)`` is a context manager; spans nest, and the
nesting depth is kept so the final table can indent children under their
parent. Timers are append-only and emitted once the build completes.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any


@dataclass
class CommandTimer:
    """One timed span of a build."""

    label: str
    start: datetime
    end: datetime | None = None
    depth: int = 0
    elapsed_s: float = 0.0

    @property
    def finished(self) -> bool:
        return self.end is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "label": self.label,
            "start": self.start.isoformat(),
            "end": self.end.isoformat() if self.end else None,
            "elapsed_s": round(self.elapsed_s, 3),
            "depth": self.depth,
        }


class TimingRecorder:
    """Collects ``CommandTimer`` spans for a single ``yb`` invocation."""

    def __init__(self) -> None:
        self._timers: list[CommandTimer] = []
        self._lock = threading.Lock()
        self._depth = 0

    @property
    def timers(self) -> list[CommandTimer]:
        with self._lock:
            return list(self._timers)

    @contextmanager
    def span(self, label: str) -> Iterator[CommandTimer]:
        with self._lock:
            timer = CommandTimer(label=label, start=datetime.now(UTC), depth=self._depth)
            self._timers.append(timer)
            self._depth += 1
        started = time.monotonic()
        try:
            yield timer
        finally:
            with self._lock:
                timer.elapsed_s = time.monotonic() - started
                timer.end = datetime.now(UTC)
                self._depth -= 1

    def format_table(self) -> str:
        """Render the timers as a fixed-width table, oldest first."""
        timers = self.timers
        if not timers:
            return ""
        lines = [f"{'Start':<10} {'End':<10} {'Elapsed':>9}  Name"]
        for t in timers:
            end = t.end.strftime("%H:%M:%S") if t.end else "-"
            lines.append(
                f"{t.start.strftime('%H:%M:%S'):<10} {end:<10} "
                f"{format_elapsed(t.elapsed_s):>9}  {'  ' * t.depth}{t.label}"
            )
        return "\n".join(lines)

    def to_dict(self) -> list[dict[str, Any]]:
        return [t.to_dict() for t in self.timers]


def format_elapsed(seconds: float) -> str:
    """Short human duration: ``850ms``, ``12.3s``, ``4m05s``."""
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}m{secs:02d}s"
