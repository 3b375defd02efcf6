"""Temporal gesture and posture classification over keypoint history.

Four independent signals are derived each tick from the same PoseFrame:

1. Hand position and waving (active wrist vs. its shoulder, x reversals)
2. Speaking (variance of a nose-to-ear-line offset)
3. Eyes closed (mean of a normalized eye height difference)
4. Posture and movement (body-center variance plus torso/leg proportions)

Every signal degrades to a fixed default when its landmarks are missing or
below threshold, and clears its own window in that case. Nothing here
raises on low confidence.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from posecue.history import BodySample, GestureHistory, HandSample
from posecue.keypoints import Keypoint, KeypointName, PoseFrame


class HandPosition(str, Enum):
    UP = "up"
    DOWN = "down"
    NEUTRAL = "neutral"


class Posture(str, Enum):
    SITTING = "sitting"
    STANDING = "standing"
    MOVING = "moving"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Thresholds:
    """Named constants used by the classifier.

    ``sitting_hip_y`` is an absolute pixel row tuned for ~480px tall frames
    and does not scale with resolution.
    """
    landmark: float = 0.3
    knee_visible: float = 0.2
    waving_min_samples: int = 15
    waving_jitter_px: float = 5.0
    waving_min_direction_changes: int = 3
    speaking_variance: float = 0.0001
    eyes_closed_mean: float = 0.02
    movement_min_samples: int = 10
    movement_variance: float = 50.0
    standing_leg_ratio: float = 0.8
    standing_height_ratio: float = 1.5
    sitting_hip_y: float = 300.0


@dataclass(frozen=True)
class GestureState:
    """Complete per-tick classification output."""
    is_waving: bool = False
    is_speaking: bool = False
    hand_position: HandPosition = HandPosition.NEUTRAL
    mouth_movement: float = 0.0
    eyes_closed: bool = False
    posture: Posture = Posture.UNKNOWN
    movement_level: float = 0.0

    def to_dict(self) -> dict:
        return {
            "is_waving": self.is_waving,
            "is_speaking": self.is_speaking,
            "hand_position": self.hand_position.value,
            "mouth_movement": self.mouth_movement,
            "eyes_closed": self.eyes_closed,
            "posture": self.posture.value,
            "movement_level": self.movement_level,
        }

    @classmethod
    def from_dict(cls, data: dict) -> GestureState:
        return cls(
            is_waving=bool(data.get("is_waving", False)),
            is_speaking=bool(data.get("is_speaking", False)),
            hand_position=HandPosition(data.get("hand_position", "neutral")),
            mouth_movement=float(data.get("mouth_movement", 0.0)),
            eyes_closed=bool(data.get("eyes_closed", False)),
            posture=Posture(data.get("posture", "unknown")),
            movement_level=float(data.get("movement_level", 0.0)),
        )


def detect_waving(
    xs: Iterable[float],
    min_samples: int = 15,
    jitter_px: float = 5.0,
    min_direction_changes: int = 3,
) -> bool:
    """Detect side-to-side waving from a sequence of wrist x positions.

    Deltas no larger than ``jitter_px`` are skipped entirely: they neither
    count as a reversal nor reset the remembered direction.
    """
    xs = list(xs)
    if len(xs) < min_samples:
        return False

    changes = 0
    last_direction = 0
    for prev, cur in zip(xs, xs[1:]):
        dx = cur - prev
        if abs(dx) <= jitter_px:
            continue
        direction = 1 if dx > 0 else -1
        if last_direction != 0 and direction != last_direction:
            changes += 1
        last_direction = direction

    return changes >= min_direction_changes


class GestureClassifier:
    """Derives a GestureState from a PoseFrame and the running history.

    The classifier holds no state of its own; the caller owns the
    GestureHistory and passes it in every tick.

    Usage:
        classifier = GestureClassifier()
        history = GestureHistory.create()
        state = classifier.classify(pose, history)
    """

    def __init__(self, thresholds: Optional[Thresholds] = None):
        self.thresholds = thresholds or Thresholds()

    def classify(self, pose: PoseFrame, history: GestureHistory) -> GestureState:
        hand_position, is_waving = self.classify_hand(pose, history)
        is_speaking, mouth_movement = self.classify_speaking(pose, history)
        eyes_closed = self.classify_eyes(pose, history)
        posture, movement_level = self.classify_posture(pose, history)

        return GestureState(
            is_waving=is_waving,
            is_speaking=is_speaking,
            hand_position=hand_position,
            mouth_movement=mouth_movement,
            eyes_closed=eyes_closed,
            posture=posture,
            movement_level=movement_level,
        )

    def _confident(self, *keypoints: Optional[Keypoint]) -> bool:
        return all(kp is not None and kp.score > self.thresholds.landmark for kp in keypoints)

    # --- hand ---

    def classify_hand(
        self, pose: PoseFrame, history: GestureHistory
    ) -> tuple[HandPosition, bool]:
        # Equal scores go to the left wrist
        if pose.score(KeypointName.LEFT_WRIST) >= pose.score(KeypointName.RIGHT_WRIST):
            wrist = pose.get(KeypointName.LEFT_WRIST)
            shoulder = pose.get(KeypointName.LEFT_SHOULDER)
        else:
            wrist = pose.get(KeypointName.RIGHT_WRIST)
            shoulder = pose.get(KeypointName.RIGHT_SHOULDER)

        if not self._confident(wrist, shoulder):
            history.hand.clear()
            return HandPosition.NEUTRAL, False

        if wrist.y >= shoulder.y:
            history.hand.clear()
            return HandPosition.DOWN, False

        history.hand.push(HandSample(wrist.x, wrist.y, pose.timestamp))
        t = self.thresholds
        waving = detect_waving(
            (s.x for s in history.hand),
            min_samples=t.waving_min_samples,
            jitter_px=t.waving_jitter_px,
            min_direction_changes=t.waving_min_direction_changes,
        )
        return HandPosition.UP, waving

    # --- mouth ---

    def classify_speaking(
        self, pose: PoseFrame, history: GestureHistory
    ) -> tuple[bool, float]:
        nose = pose.get(KeypointName.NOSE)
        left_ear = pose.get(KeypointName.LEFT_EAR)
        right_ear = pose.get(KeypointName.RIGHT_EAR)

        if not self._confident(nose, left_ear, right_ear):
            history.mouth.clear()
            return False, 0.0

        # Offset of the nose from the ear line; a proxy, not mouth geometry
        openness = abs(nose.y - (left_ear.y + right_ear.y) / 2)
        history.mouth.push(openness)
        movement = history.mouth.variance()
        return movement > self.thresholds.speaking_variance, movement

    # --- eyes ---

    def classify_eyes(self, pose: PoseFrame, history: GestureHistory) -> bool:
        nose = pose.get(KeypointName.NOSE)
        left_eye = pose.get(KeypointName.LEFT_EYE)
        right_eye = pose.get(KeypointName.RIGHT_EYE)

        if not self._confident(left_eye, right_eye, nose):
            history.eye.clear()
            return False

        distance = abs(left_eye.y - right_eye.y) / max(nose.y, 1.0)
        history.eye.push(distance)
        return history.eye.mean() < self.thresholds.eyes_closed_mean

    # --- posture ---

    def classify_posture(
        self, pose: PoseFrame, history: GestureHistory
    ) -> tuple[Posture, float]:
        ls = pose.get(KeypointName.LEFT_SHOULDER)
        rs = pose.get(KeypointName.RIGHT_SHOULDER)
        lh = pose.get(KeypointName.LEFT_HIP)
        rh = pose.get(KeypointName.RIGHT_HIP)

        if not self._confident(ls, rs, lh, rh):
            history.body.clear()
            return Posture.UNKNOWN, 0.0

        t = self.thresholds
        shoulder_y = (ls.y + rs.y) / 2
        hip_y = (lh.y + rh.y) / 2
        torso = abs(hip_y - shoulder_y)

        history.body.push(BodySample((shoulder_y + hip_y) / 2, pose.timestamp))
        if len(history.body) < t.movement_min_samples:
            return Posture.UNKNOWN, 0.0

        movement = history.body.variance(key=lambda s: s.center_y)
        if movement > t.movement_variance:
            return Posture.MOVING, movement

        lk = pose.get(KeypointName.LEFT_KNEE)
        rk = pose.get(KeypointName.RIGHT_KNEE)
        knees_visible = (
            lk is not None and rk is not None
            and (lk.score > t.knee_visible or rk.score > t.knee_visible)
        )

        if knees_visible:
            knee_y = (lk.y + rk.y) / 2
            leg = abs(knee_y - hip_y)
            total = abs(knee_y - shoulder_y)
            if leg > torso * t.standing_leg_ratio and total > torso * t.standing_height_ratio:
                return Posture.STANDING, movement
            return Posture.SITTING, movement

        # Lower body out of frame: a low hip line suggests a seated shot
        if hip_y > t.sitting_hip_y:
            return Posture.SITTING, movement
        return Posture.UNKNOWN, movement
