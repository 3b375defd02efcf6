"""Named keypoints and their synthesis from detected regions."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from posecue.regions import Region, RegionSet, RegionTemplate


class KeypointName(str, Enum):
    NOSE = "nose"
    LEFT_EAR = "left_ear"
    RIGHT_EAR = "right_ear"
    LEFT_EYE = "left_eye"
    RIGHT_EYE = "right_eye"
    LEFT_SHOULDER = "left_shoulder"
    RIGHT_SHOULDER = "right_shoulder"
    LEFT_WRIST = "left_wrist"
    RIGHT_WRIST = "right_wrist"
    LEFT_HIP = "left_hip"
    RIGHT_HIP = "right_hip"
    LEFT_KNEE = "left_knee"
    RIGHT_KNEE = "right_knee"


# Fixed scores for keypoints derived from the head and upper regions
NOSE_SCORE = 0.8
EAR_SCORE = 0.7
EYE_SCORE = 0.75
SHOULDER_SCORE = 0.8


@dataclass(frozen=True)
class Keypoint:
    """A named 2D image position (pixels, y grows downward) with a score."""
    name: KeypointName
    x: float
    y: float
    score: float

    def to_dict(self) -> dict:
        return {"name": self.name.value, "x": self.x, "y": self.y, "score": self.score}

    @classmethod
    def from_dict(cls, data: dict) -> Keypoint:
        return cls(
            name=KeypointName(data["name"]),
            x=float(data["x"]),
            y=float(data["y"]),
            score=float(data["score"]),
        )


@dataclass(frozen=True)
class PoseFrame:
    """Keypoints estimated for one tick plus a monotonic timestamp in ms.

    Names are unique within a frame; there is no identity across frames.
    """
    keypoints: tuple[Keypoint, ...] = ()
    timestamp: float = 0.0
    _index: dict = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self):
        index = {}
        for kp in self.keypoints:
            if kp.name in index:
                raise ValueError(f"duplicate keypoint {kp.name.value!r} in frame")
            index[kp.name] = kp
        object.__setattr__(self, "keypoints", tuple(self.keypoints))
        object.__setattr__(self, "_index", index)

    def get(self, name: Union[KeypointName, str]) -> Optional[Keypoint]:
        return self._index.get(KeypointName(name))

    def score(self, name: Union[KeypointName, str]) -> float:
        """Score of a keypoint, 0.0 when it is absent."""
        kp = self.get(name)
        return kp.score if kp is not None else 0.0

    def __len__(self) -> int:
        return len(self.keypoints)

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "keypoints": [kp.to_dict() for kp in self.keypoints],
        }

    @classmethod
    def from_dict(cls, data: dict) -> PoseFrame:
        return cls(
            keypoints=tuple(Keypoint.from_dict(k) for k in data.get("keypoints", [])),
            timestamp=float(data.get("timestamp", 0.0)),
        )


def _pair(
    region: Region,
    left: KeypointName,
    right: KeypointName,
    half_width: float,
    score: float,
    dy: float = 0.0,
) -> list[Keypoint]:
    return [
        Keypoint(left, region.x - half_width, region.y + dy, score),
        Keypoint(right, region.x + half_width, region.y + dy, score),
    ]


def synthesize_keypoints(
    regions: RegionSet, template: Optional[RegionTemplate] = None
) -> tuple[Keypoint, ...]:
    """Map detected regions onto the named keypoint set.

    Ordering is head, shoulders, wrists, hips, knees. Absent regions
    contribute nothing.
    """
    tpl = template or RegionTemplate()
    keypoints: list[Keypoint] = []

    head = regions.top_region
    if head is not None:
        keypoints.append(Keypoint(KeypointName.NOSE, head.x, head.y, NOSE_SCORE))
        keypoints.extend(_pair(
            head, KeypointName.LEFT_EAR, KeypointName.RIGHT_EAR,
            tpl.ear_half_width, EAR_SCORE,
        ))
        keypoints.extend(_pair(
            head, KeypointName.LEFT_EYE, KeypointName.RIGHT_EYE,
            tpl.eye_half_width, EYE_SCORE, dy=-tpl.eye_raise,
        ))

    if regions.upper_region is not None:
        keypoints.extend(_pair(
            regions.upper_region, KeypointName.LEFT_SHOULDER, KeypointName.RIGHT_SHOULDER,
            tpl.shoulder_half_width, SHOULDER_SCORE,
        ))

    for region, name in (
        (regions.left_hand, KeypointName.LEFT_WRIST),
        (regions.right_hand, KeypointName.RIGHT_WRIST),
    ):
        if region is not None:
            keypoints.append(Keypoint(name, region.x, region.y, region.confidence))

    if regions.lower_region is not None:
        r = regions.lower_region
        keypoints.extend(_pair(
            r, KeypointName.LEFT_HIP, KeypointName.RIGHT_HIP, tpl.hip_half_width, r.confidence,
        ))

    if regions.knee_region is not None:
        r = regions.knee_region
        keypoints.extend(_pair(
            r, KeypointName.LEFT_KNEE, KeypointName.RIGHT_KNEE, tpl.knee_half_width, r.confidence,
        ))

    return tuple(keypoints)
