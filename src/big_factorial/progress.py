# src/big_factorial/progress.py
from __future__ import annotations

import sys
import time

from big_factorial.utility import get_terminal_width


class Progress:
    """Single-line progress bar on stderr, fed from the coordinator's on_progress callback."""

    def __init__(self, total: int = 1, *, enabled: bool = True, stream=None):
        self.total = max(1, int(total))
        self.enabled = enabled
        self.stream = stream if stream is not None else sys.stderr
        self.start = time.perf_counter()
        self.last_draw = 0.0
        self.spin = "|/-\\"
        self.i = 0

    def update(self, done: int, total: int | None = None, label: str = ""):
        THROTTLE = 0.05
        if not self.enabled:
            return
        if total is not None:
            self.total = max(1, int(total))
        now = time.perf_counter()
        # always draw the final state, throttle the rest to avoid flicker
        if done < self.total and now - self.last_draw < THROTTLE:
            return
        self.last_draw = now
        self.i = (self.i + 1) % len(self.spin)
        frac = min(max(done / self.total, 0.0), 1.0)
        pct = int(frac * 100)
        bar_len = 24
        fill = int(frac * bar_len)
        bar = "#" * fill + "-" * (bar_len - fill)
        label = label or f"{done}/{self.total} workers"
        self.stream.write(f"\r[{self.spin[self.i]}] [{bar}] {pct:3d}%  {label[:50]}")
        self.stream.flush()

    def __call__(self, done: int, total: int) -> None:
        self.update(done, total)

    def done(self):
        if not self.enabled:
            return
        self.stream.write("\r" + " " * (get_terminal_width() - 1) + "\r")
        self.stream.flush()
