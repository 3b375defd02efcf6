"""Per-stage tick timing.

Each tick runs region detection, keypoint synthesis and classification in
order, and the pipeline records the whole tick as ``total``. Timings live in
a rolling window per stage; ``summary()`` feeds the status endpoint and the
benchmark command.
"""

from __future__ import annotations

import time
from collections import deque
from contextlib import contextmanager
from typing import Iterator, Optional

import numpy as np

TICK_STAGES = ("region_detection", "keypoint_synthesis", "classification", "total")


class PipelineProfiler:
    """Rolling wall-clock timings for named pipeline stages, in ms.

    Usage:
        profiler = PipelineProfiler()
        with profiler.stage("region_detection"):
            regions = detector.detect(frame)
        profiler.summary()["region_detection"]["p95_ms"]
    """

    def __init__(self, window_size: int = 120):
        self._window_size = window_size
        self._windows: dict[str, deque] = {}
        self._calls: dict[str, int] = {}
        self.enabled = True

    @contextmanager
    def stage(self, name: str) -> Iterator[None]:
        """Time the enclosed block, including blocks that raise."""
        if not self.enabled:
            yield
            return
        t0 = time.perf_counter()
        try:
            yield
        finally:
            self.record(name, (time.perf_counter() - t0) * 1000.0)

    def record(self, name: str, elapsed_ms: float):
        if not self.enabled:
            return
        window = self._windows.get(name)
        if window is None:
            window = self._windows[name] = deque(maxlen=self._window_size)
        window.append(elapsed_ms)
        self._calls[name] = self._calls.get(name, 0) + 1

    def stage_summary(self, name: str) -> Optional[dict]:
        """avg/min/max/p95 over the current window plus the lifetime call count."""
        window = self._windows.get(name)
        if not window:
            return None
        ms = np.fromiter(window, dtype=np.float64, count=len(window))
        return {
            "avg_ms": round(float(ms.mean()), 3),
            "min_ms": round(float(ms.min()), 3),
            "max_ms": round(float(ms.max()), 3),
            "p95_ms": round(float(np.percentile(ms, 95)), 3),
            "calls": self._calls[name],
        }

    def summary(self) -> dict[str, dict]:
        """Summaries keyed by stage, tick stages first."""
        names = [s for s in TICK_STAGES if s in self._windows]
        names += [s for s in self._windows if s not in TICK_STAGES]
        result = {}
        for name in names:
            stats = self.stage_summary(name)
            if stats is not None:
                result[name] = stats
        return result

    def reset(self):
        self._windows.clear()
        self._calls.clear()
