"""Prometheus-compatible metrics for the pose pipeline.

Rendered directly in the text exposition format, no client library.

Tracked metrics:
- posecue_ticks_total (counter)
- posecue_ticks_skipped_total (counter, ticks with no frame)
- posecue_malformed_frames_total (counter)
- posecue_tick_latency_seconds (histogram)
- posecue_person_detection_rate (gauge, EMA of ticks with any keypoint)
- posecue_posture_ticks_total (counter, by posture)
- posecue_signal_ticks_total (counter, by active signal)
- posecue_active_connections (gauge)
"""

from __future__ import annotations

import threading
import time
from collections import Counter

from posecue.classifier import GestureState, HandPosition


class _Histogram:
    """Cumulative histogram with fixed buckets."""

    def __init__(self, buckets: list[float]):
        self.buckets = sorted(buckets)
        self.bucket_counts = [0] * len(self.buckets)
        self.count = 0
        self.sum = 0.0
        self._lock = threading.Lock()

    def observe(self, value: float):
        with self._lock:
            self.count += 1
            self.sum += value
            for i, b in enumerate(self.buckets):
                if value <= b:
                    self.bucket_counts[i] += 1
                    break

    def render(self, name: str, help_text: str) -> str:
        lines = [
            f"# HELP {name} {help_text}",
            f"# TYPE {name} histogram",
        ]
        with self._lock:
            cumulative = 0
            for i, b in enumerate(self.buckets):
                cumulative += self.bucket_counts[i]
                lines.append(f'{name}_bucket{{le="{b}"}} {cumulative}')
            lines.append(f'{name}_bucket{{le="+Inf"}} {self.count}')
            lines.append(f"{name}_sum {self.sum:.6f}")
            lines.append(f"{name}_count {self.count}")
        return "\n".join(lines)


class MetricsCollector:
    """Collects pipeline counters and renders them for a /metrics endpoint."""

    def __init__(self):
        self._posture_counts: Counter = Counter()
        self._signal_counts: Counter = Counter()
        self._ticks_total = 0
        self._ticks_skipped = 0
        self._malformed_total = 0
        self._active_connections = 0
        self._person_detection_rate = 0.0
        self._lock = threading.Lock()

        # 1ms to 100ms; a 30 FPS budget is 33ms
        self._latency = _Histogram(
            [0.001, 0.002, 0.005, 0.010, 0.020, 0.033, 0.050, 0.100]
        )

        self._start_time = time.time()

    def record_tick(self, latency_seconds: float, keypoint_count: int, state: GestureState):
        with self._lock:
            self._ticks_total += 1
            self._posture_counts[state.posture.value] += 1
            if state.is_waving:
                self._signal_counts["waving"] += 1
            if state.is_speaking:
                self._signal_counts["speaking"] += 1
            if state.eyes_closed:
                self._signal_counts["eyes_closed"] += 1
            if state.hand_position == HandPosition.UP:
                self._signal_counts["hand_up"] += 1

            seen = 1.0 if keypoint_count > 0 else 0.0
            self._person_detection_rate = 0.95 * self._person_detection_rate + 0.05 * seen
        self._latency.observe(latency_seconds)

    def record_skipped(self):
        with self._lock:
            self._ticks_skipped += 1

    def record_malformed(self):
        with self._lock:
            self._malformed_total += 1

    def set_connections(self, count: int):
        self._active_connections = count

    def render(self) -> str:
        """Render all metrics in Prometheus text exposition format."""
        lines: list[str] = []

        uptime = time.time() - self._start_time
        lines.append("# HELP posecue_uptime_seconds Time since collector start")
        lines.append("# TYPE posecue_uptime_seconds gauge")
        lines.append(f"posecue_uptime_seconds {uptime:.1f}")
        lines.append("")

        with self._lock:
            for name, help_text, value in (
                ("posecue_ticks_total", "Ticks processed", self._ticks_total),
                ("posecue_ticks_skipped_total", "Ticks with no frame available", self._ticks_skipped),
                ("posecue_malformed_frames_total", "Frames rejected as malformed", self._malformed_total),
            ):
                lines.append(f"# HELP {name} {help_text}")
                lines.append(f"# TYPE {name} counter")
                lines.append(f"{name} {value}")
                lines.append("")

            lines.append("# HELP posecue_posture_ticks_total Ticks by classified posture")
            lines.append("# TYPE posecue_posture_ticks_total counter")
            for posture, count in sorted(self._posture_counts.items()):
                lines.append(f'posecue_posture_ticks_total{{posture="{posture}"}} {count}')
            lines.append("")

            lines.append("# HELP posecue_signal_ticks_total Ticks on which a signal was active")
            lines.append("# TYPE posecue_signal_ticks_total counter")
            for signal, count in sorted(self._signal_counts.items()):
                lines.append(f'posecue_signal_ticks_total{{signal="{signal}"}} {count}')
            lines.append("")

            rate = self._person_detection_rate

        lines.append(self._latency.render(
            "posecue_tick_latency_seconds",
            "Tick processing latency in seconds",
        ))
        lines.append("")

        lines.append("# HELP posecue_person_detection_rate Moving average of ticks with keypoints")
        lines.append("# TYPE posecue_person_detection_rate gauge")
        lines.append(f"posecue_person_detection_rate {rate:.4f}")
        lines.append("")

        lines.append("# HELP posecue_active_connections Current WebSocket connections")
        lines.append("# TYPE posecue_active_connections gauge")
        lines.append(f"posecue_active_connections {self._active_connections}")
        lines.append("")

        return "\n".join(lines) + "\n"

    @property
    def ticks_total(self) -> int:
        return self._ticks_total

    @property
    def posture_counts(self) -> dict[str, int]:
        with self._lock:
            return dict(self._posture_counts)

    @property
    def signal_counts(self) -> dict[str, int]:
        with self._lock:
            return dict(self._signal_counts)
