"""Tick-driven pipeline: frame -> regions -> keypoints -> history -> state.

The driver owns the only mutable cross-tick state (the four history windows
and the last GestureState). Subscribers receive immutable values: the frozen
GestureState and the tuple of frozen Keypoints produced on each tick.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Optional

from posecue.classifier import GestureClassifier, GestureState
from posecue.config import PipelineConfig
from posecue.errors import MalformedFrameError, PipelineHaltedError
from posecue.frames import RawFrame
from posecue.history import GestureHistory
from posecue.keypoints import Keypoint, PoseFrame, synthesize_keypoints
from posecue.metrics import MetricsCollector
from posecue.profiler import PipelineProfiler
from posecue.regions import RegionDetector
from posecue.sources import FrameSource

logger = logging.getLogger("posecue.pipeline")

StateCallback = Callable[[GestureState], None]
KeypointsCallback = Callable[[tuple[Keypoint, ...]], None]
TickCallback = Callable[["TickResult"], None]


@dataclass(frozen=True)
class TickResult:
    """Everything one tick produced."""
    state: GestureState
    keypoints: tuple[Keypoint, ...]
    timestamp: float
    tick: int
    latency_ms: float


@dataclass
class PipelineStats:
    """Runtime counters and timing."""
    fps: float
    avg_latency_ms: float
    total_ticks: int
    skipped_ticks: int
    malformed_frames: int
    consecutive_malformed: int
    active: bool
    windows: dict = field(default_factory=dict)
    profiler_summary: dict = field(default_factory=dict)


class PosePipeline:
    """End-to-end driver, one pass per tick.

    Features:
    - Gating via start()/stop(); inactive pipelines ignore frames
    - Missing frames skip the tick without touching history
    - Malformed frames are rejected and reported, optionally with a budget
    - Emissions are ordered with non-decreasing timestamps
    - Per-stage profiling and optional Prometheus metrics

    Usage:
        pipeline = PosePipeline()
        pipeline.on_state(lambda state: print(state.posture))
        pipeline.start()
        pipeline.process_frame(RawFrame(640, 480, rgba_bytes))
    """

    def __init__(
        self,
        detector: Optional[RegionDetector] = None,
        classifier: Optional[GestureClassifier] = None,
        config: Optional[PipelineConfig] = None,
        metrics: Optional[MetricsCollector] = None,
        enable_profiling: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or PipelineConfig()
        det = self.config.detector
        self.detector = detector or RegionDetector(
            stride=det.stride,
            noise_floor=det.noise_floor,
            skin=det.skin,
            template=det.template,
        )
        self.classifier = classifier or GestureClassifier(self.config.thresholds)
        self.metrics = metrics
        self._clock = clock

        self._history = GestureHistory.create(self.config.windows)
        self._state = GestureState()
        self._keypoints: tuple[Keypoint, ...] = ()
        self._active = False
        self._last_timestamp = 0.0

        self._state_callbacks: list[StateCallback] = []
        self._keypoint_callbacks: list[KeypointsCallback] = []
        self._tick_callbacks: list[TickCallback] = []

        self._frame_times: deque = deque(maxlen=60)
        self._total_ticks = 0
        self._skipped_ticks = 0
        self._malformed_frames = 0
        self._consecutive_malformed = 0

        self.profiler = PipelineProfiler()
        self.profiler.enabled = enable_profiling

    # --- subscription ---

    def on_state(self, callback: StateCallback):
        """Register a callback receiving each tick's GestureState."""
        self._state_callbacks.append(callback)

    def on_keypoints(self, callback: KeypointsCallback):
        """Register a callback receiving each tick's keypoints (for overlays)."""
        self._keypoint_callbacks.append(callback)

    def on_tick(self, callback: TickCallback):
        """Register a callback receiving the full TickResult."""
        self._tick_callbacks.append(callback)

    # --- lifecycle ---

    def start(self):
        """Activate with fresh history and a neutral state."""
        if self._active:
            return
        self._history.clear()
        self._state = GestureState()
        self._keypoints = ()
        self._consecutive_malformed = 0
        self._active = True
        logger.info("Pose pipeline started")

    def stop(self):
        """Deactivate; no tick starts after this returns.

        History and the last state are discarded.
        """
        if not self._active:
            return
        self._active = False
        self._history.clear()
        self._state = GestureState()
        self._keypoints = ()
        logger.info("Pose pipeline stopped after %d ticks", self._total_ticks)

    @property
    def active(self) -> bool:
        return self._active

    @property
    def state(self) -> GestureState:
        return self._state

    @property
    def keypoints(self) -> tuple[Keypoint, ...]:
        return self._keypoints

    @property
    def history(self) -> GestureHistory:
        """A copy of the current history windows."""
        return self._history.copy()

    @property
    def consecutive_malformed(self) -> int:
        return self._consecutive_malformed

    # --- ticks ---

    def process_frame(
        self, frame: Optional[RawFrame], timestamp: Optional[float] = None
    ) -> Optional[TickResult]:
        """Run one tick on a raw frame.

        Args:
            frame: The captured frame, or None when nothing was delivered.
            timestamp: Monotonic milliseconds; defaults to the pipeline clock.

        Returns:
            The tick result, or None if inactive or no frame was available.

        Raises:
            MalformedFrameError: the buffer does not match its dimensions.
                History is untouched and the next tick proceeds normally.
            PipelineHaltedError: malformed frames exceeded the configured
                budget; the pipeline has stopped itself.
        """
        if not self._active:
            return None

        if frame is None:
            self._skipped_ticks += 1
            if self.metrics:
                self.metrics.record_skipped()
            logger.debug("No frame available, skipping tick")
            return None

        t_start = time.perf_counter()

        with self.profiler.stage("region_detection"):
            try:
                regions = self.detector.detect(frame)
            except MalformedFrameError as e:
                self._reject(frame, e)
                raise

        self._consecutive_malformed = 0

        with self.profiler.stage("keypoint_synthesis"):
            keypoints = synthesize_keypoints(regions, self.detector.template)

        pose = PoseFrame(keypoints=keypoints, timestamp=self._next_timestamp(timestamp))
        return self._tick(pose, t_start)

    def process_pose(self, pose: PoseFrame) -> Optional[TickResult]:
        """Run the classification half of a tick on existing keypoints.

        Used to replay recorded sessions. The pose timestamp is clamped so
        emissions stay ordered.
        """
        if not self._active:
            return None

        t_start = time.perf_counter()
        ts = self._next_timestamp(pose.timestamp)
        if ts != pose.timestamp:
            pose = dataclasses.replace(pose, timestamp=ts)
        return self._tick(pose, t_start)

    def _tick(self, pose: PoseFrame, t_start: float) -> TickResult:
        with self.profiler.stage("classification"):
            state = self.classifier.classify(pose, self._history)

        self._state = state
        self._keypoints = pose.keypoints
        self._total_ticks += 1

        elapsed = time.perf_counter() - t_start
        self._frame_times.append(elapsed)
        self.profiler.record("total", elapsed * 1000.0)
        if self.metrics:
            self.metrics.record_tick(elapsed, len(pose.keypoints), state)

        result = TickResult(
            state=state,
            keypoints=pose.keypoints,
            timestamp=pose.timestamp,
            tick=self._total_ticks,
            latency_ms=elapsed * 1000.0,
        )

        for cb in self._state_callbacks:
            cb(state)
        for cb in self._keypoint_callbacks:
            cb(pose.keypoints)
        for cb in self._tick_callbacks:
            cb(result)

        return result

    def _next_timestamp(self, timestamp: Optional[float]) -> float:
        if timestamp is None:
            timestamp = self._clock() * 1000.0
        timestamp = max(float(timestamp), self._last_timestamp)
        self._last_timestamp = timestamp
        return timestamp

    def _reject(self, frame: RawFrame, error: MalformedFrameError):
        self._malformed_frames += 1
        self._consecutive_malformed += 1
        if self.metrics:
            self.metrics.record_malformed()

        budget = self.config.malformed_budget
        if budget is not None and self._consecutive_malformed > budget:
            consecutive = self._consecutive_malformed
            logger.error(
                "Halting after %d consecutive malformed frames (budget %d)",
                consecutive, budget,
            )
            self.stop()
            raise PipelineHaltedError(
                frame.width, frame.height, frame.byte_length, consecutive
            ) from error

        logger.warning("Rejected malformed frame: %s", error)

    # --- async driver ---

    async def run(self, source: FrameSource, max_ticks: Optional[int] = None) -> int:
        """Pull frames from a source until stopped, exhausted or max_ticks.

        Awaits the source between ticks; the tick itself never awaits.
        Malformed frames are logged and skipped. The source is closed on exit.

        Returns:
            Number of ticks that emitted a state.
        """
        self.start()
        emitted = 0
        try:
            while self._active and not source.exhausted:
                frame = await source.read()
                if not self._active:
                    break
                if frame is None and source.exhausted:
                    break

                try:
                    result = self.process_frame(frame)
                except PipelineHaltedError:
                    raise
                except MalformedFrameError:
                    result = None

                if result is not None:
                    emitted += 1
                    if max_ticks is not None and emitted >= max_ticks:
                        break

                await asyncio.sleep(0)
        finally:
            source.close()
        return emitted

    # --- stats ---

    @property
    def stats(self) -> PipelineStats:
        if self._frame_times:
            avg_latency = sum(self._frame_times) / len(self._frame_times)
            fps = 1.0 / avg_latency if avg_latency > 0 else 0.0
        else:
            avg_latency = 0.0
            fps = 0.0

        return PipelineStats(
            fps=fps,
            avg_latency_ms=avg_latency * 1000,
            total_ticks=self._total_ticks,
            skipped_ticks=self._skipped_ticks,
            malformed_frames=self._malformed_frames,
            consecutive_malformed=self._consecutive_malformed,
            active=self._active,
            windows=self._history.lengths(),
            profiler_summary=self.profiler.summary(),
        )

    def reset(self):
        """Clear history, counters and timings without changing activity."""
        self._history.clear()
        self._state = GestureState()
        self._keypoints = ()
        self._frame_times.clear()
        self._total_ticks = 0
        self._skipped_ticks = 0
        self._malformed_frames = 0
        self._consecutive_malformed = 0
        self.profiler.reset()
