"""Keypoint session recording and replay.

Record live sessions for:
- Reproducible tests without a camera
- Replaying through the classifier after changing thresholds
- Demo recordings that play back deterministically
"""

from __future__ import annotations

import json
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Iterator, Optional

import numpy as np

from posecue.classifier import GestureState
from posecue.keypoints import Keypoint, KeypointName, PoseFrame

_NAMES = list(KeypointName)


@dataclass
class RecordedFrame:
    """A single tick in a recording."""
    timestamp: float  # pose timestamp, ms
    keypoints: list[dict]  # [{name, x, y, score}, ...]
    state: Optional[dict] = None  # GestureState.to_dict() as emitted live

    def to_pose(self) -> PoseFrame:
        return PoseFrame(
            keypoints=tuple(Keypoint.from_dict(k) for k in self.keypoints),
            timestamp=self.timestamp,
        )

    def to_state(self) -> Optional[GestureState]:
        return GestureState.from_dict(self.state) if self.state is not None else None


class PoseRecorder:
    """Records per-tick keypoints and states.

    Usage:
        recorder = PoseRecorder()
        recorder.start()
        pipeline.on_tick(
            lambda r: recorder.add_frame(r.keypoints, r.timestamp, r.state)
        )
        recorder.save("session.json")
    """

    def __init__(self):
        self._frames: list[RecordedFrame] = []
        self._recording = False

    def start(self):
        self._frames = []
        self._recording = True

    def stop(self) -> int:
        """Stop recording. Returns number of frames captured."""
        self._recording = False
        return len(self._frames)

    @property
    def is_recording(self) -> bool:
        return self._recording

    @property
    def frame_count(self) -> int:
        return len(self._frames)

    @property
    def duration(self) -> float:
        """Seconds between the first and last recorded tick."""
        if len(self._frames) < 2:
            return 0.0
        return (self._frames[-1].timestamp - self._frames[0].timestamp) / 1000.0

    def add_frame(
        self,
        keypoints: tuple[Keypoint, ...],
        timestamp: float,
        state: Optional[GestureState] = None,
    ):
        if not self._recording:
            return
        self._frames.append(RecordedFrame(
            timestamp=float(timestamp),
            keypoints=[kp.to_dict() for kp in keypoints],
            state=state.to_dict() if state is not None else None,
        ))

    def save(self, path: str | Path):
        """Save recording to a JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "version": 1,
            "frame_count": len(self._frames),
            "duration": self.duration,
            "frames": [asdict(f) for f in self._frames],
        }

        with open(path, "w") as f:
            json.dump(data, f)

    def save_compact(self, path: str | Path) -> Path:
        """Save as a compressed npz with one (N, 13, 3) keypoint array."""
        path = Path(path).with_suffix(".npz")
        path.parent.mkdir(parents=True, exist_ok=True)

        n = len(self._frames)
        timestamps = np.array([f.timestamp for f in self._frames], dtype=np.float64)
        points = np.zeros((n, len(_NAMES), 3), dtype=np.float64)
        present = np.zeros((n, len(_NAMES)), dtype=bool)
        for i, frame in enumerate(self._frames):
            for kp in frame.keypoints:
                j = _NAMES.index(KeypointName(kp["name"]))
                points[i, j] = (kp["x"], kp["y"], kp["score"])
                present[i, j] = True

        np.savez_compressed(
            path,
            timestamps=timestamps,
            points=points,
            present=present,
            state_data=np.array([json.dumps([f.state for f in self._frames])]),
        )
        return path


class PosePlayer:
    """Replays a recorded session.

    Usage:
        player = PosePlayer.load("session.json")
        pipeline.start()
        for frame in player.play():
            pipeline.process_pose(frame.to_pose())
    """

    def __init__(self, frames: list[RecordedFrame]):
        self._frames = frames

    @classmethod
    def load(cls, path: str | Path) -> PosePlayer:
        path = Path(path)

        if path.suffix == ".npz":
            return cls._load_compact(path)

        with open(path) as f:
            data = json.load(f)

        frames = [
            RecordedFrame(
                timestamp=f["timestamp"],
                keypoints=f["keypoints"],
                state=f.get("state"),
            )
            for f in data["frames"]
        ]
        return cls(frames)

    @classmethod
    def _load_compact(cls, path: Path) -> PosePlayer:
        data = np.load(path, allow_pickle=False)
        timestamps = data["timestamps"]
        points = data["points"]
        present = data["present"]
        states = json.loads(str(data["state_data"][0]))

        frames = []
        for i in range(len(timestamps)):
            keypoints = [
                {
                    "name": name.value,
                    "x": float(points[i, j, 0]),
                    "y": float(points[i, j, 1]),
                    "score": float(points[i, j, 2]),
                }
                for j, name in enumerate(_NAMES)
                if present[i, j]
            ]
            frames.append(RecordedFrame(
                timestamp=float(timestamps[i]),
                keypoints=keypoints,
                state=states[i] if i < len(states) else None,
            ))
        return cls(frames)

    @property
    def frame_count(self) -> int:
        return len(self._frames)

    @property
    def duration(self) -> float:
        if len(self._frames) < 2:
            return 0.0
        return (self._frames[-1].timestamp - self._frames[0].timestamp) / 1000.0

    def play(self) -> Iterator[RecordedFrame]:
        """Iterate through all frames without timing."""
        yield from self._frames

    def play_realtime(self, speed: float = 1.0) -> Iterator[RecordedFrame]:
        """Replay at the recorded pace (scaled by ``speed``)."""
        if not self._frames:
            return

        start = time.monotonic()
        origin = self._frames[0].timestamp

        for frame in self._frames:
            target = (frame.timestamp - origin) / 1000.0 / speed
            elapsed = time.monotonic() - start
            if target > elapsed:
                time.sleep(target - elapsed)
            yield frame

    def get_frame(self, index: int) -> Optional[RecordedFrame]:
        if 0 <= index < len(self._frames):
            return self._frames[index]
        return None
