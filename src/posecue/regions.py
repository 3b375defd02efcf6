"""Coarse body-region detection from skin-tone samples.

No model is involved: the detector samples the frame on a sparse grid,
classifies each sample as skin-like with fixed RGB rules, and turns the
distribution of skin samples into a handful of anchor regions (head,
shoulders, hands, hips, knees) placed with a fixed anthropometric template.

It is deliberately crude and stateless: every frame is judged on its own
and nothing is carried between frames.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Iterator, Optional

import numpy as np

from posecue.frames import RawFrame


@dataclass(frozen=True)
class SkinThresholds:
    """RGB rule for a skin-like pixel.

    A pixel qualifies when r > min_red, g > min_green, b > min_blue,
    r is the dominant channel and |r - g| > min_red_green_gap.
    Empirical values; tune for the lighting at hand.
    """
    min_red: int = 95
    min_green: int = 40
    min_blue: int = 20
    min_red_green_gap: int = 15


@dataclass(frozen=True)
class RegionTemplate:
    """Fixed pixel offsets used to place regions and keypoints.

    Vertical offsets are measured down from the topmost skin sample; half
    widths are measured left/right from a region's x anchor.
    """
    upper_offset_y: float = 80.0
    hip_offset_y: float = 200.0
    knee_offset_y: float = 320.0
    shoulder_half_width: float = 60.0
    hip_half_width: float = 40.0
    knee_half_width: float = 30.0
    ear_half_width: float = 30.0
    eye_half_width: float = 15.0
    eye_raise: float = 5.0
    hand_confidence: float = 0.7
    hip_confidence: float = 0.6
    knee_confidence: float = 0.5


@dataclass(frozen=True)
class Region:
    """A point estimate of a body area with a confidence in [0, 1]."""
    x: float
    y: float
    confidence: float = 1.0


@dataclass(frozen=True)
class RegionSet:
    """Regions found in one frame. Any of them may be absent (None)."""
    top_region: Optional[Region] = None
    upper_region: Optional[Region] = None
    left_hand: Optional[Region] = None
    right_hand: Optional[Region] = None
    lower_region: Optional[Region] = None
    knee_region: Optional[Region] = None

    @property
    def is_empty(self) -> bool:
        return all(r is None for _, r in self.items())

    def items(self) -> Iterator[tuple[str, Optional[Region]]]:
        for f in fields(self):
            yield f.name, getattr(self, f.name)


class RegionDetector:
    """Finds coarse body regions in an RGBA frame.

    Usage:
        detector = RegionDetector()
        regions = detector.detect(frame)
        if regions.is_empty:
            ...  # nobody in view
    """

    # Fractions of frame height/width that partition the skin samples
    HAND_MAX_Y = 0.6
    LEFT_MAX_X = 0.4
    RIGHT_MIN_X = 0.6
    HIP_MIN_Y = 0.5
    HIP_MAX_Y = 0.75
    KNEE_MIN_Y = 0.7

    def __init__(
        self,
        stride: int = 8,
        noise_floor: int = 50,
        skin: Optional[SkinThresholds] = None,
        template: Optional[RegionTemplate] = None,
    ):
        if stride < 1:
            raise ValueError(f"stride must be >= 1, got {stride}")
        self.stride = stride
        self.noise_floor = noise_floor
        self.skin = skin or SkinThresholds()
        self.template = template or RegionTemplate()

    def skin_mask(self, rgba: np.ndarray) -> np.ndarray:
        """Classify the strided sample grid of an (H, W, 4) image.

        Returns:
            Boolean array of shape (ceil(H/stride), ceil(W/stride)).
        """
        grid = rgba[::self.stride, ::self.stride, :3].astype(np.int16)
        r, g, b = grid[..., 0], grid[..., 1], grid[..., 2]
        t = self.skin
        return (
            (r > t.min_red)
            & (g > t.min_green)
            & (b > t.min_blue)
            & (r > g)
            & (r > b)
            & (np.abs(r - g) > t.min_red_green_gap)
        )

    def detect(self, frame: RawFrame) -> RegionSet:
        """Detect regions in a frame. Raises MalformedFrameError on a bad buffer."""
        return self.detect_array(frame.as_array())

    def detect_array(self, rgba: np.ndarray) -> RegionSet:
        height, width = rgba.shape[:2]
        mask = self.skin_mask(rgba)

        # nonzero walks the grid row-major, so index 0 is the topmost,
        # leftmost sample and per-pool index 0 is that pool's topmost
        rows, cols = np.nonzero(mask)
        if rows.size == 0:
            return RegionSet()

        ys = rows * self.stride
        xs = cols * self.stride
        top_x, top_y = float(xs[0]), float(ys[0])
        tpl = self.template

        in_hand_band = ys < height * self.HAND_MAX_Y
        left_hand = self._first(xs, ys, in_hand_band & (xs < width * self.LEFT_MAX_X))
        right_hand = self._first(xs, ys, in_hand_band & (xs > width * self.RIGHT_MIN_X))

        hip_band = (ys >= height * self.HIP_MIN_Y) & (ys < height * self.HIP_MAX_Y)
        knee_band = ys >= height * self.KNEE_MIN_Y
        center_x = width / 2

        has_body = rows.size > self.noise_floor

        return RegionSet(
            top_region=Region(top_x, top_y) if has_body else None,
            upper_region=Region(center_x, top_y + tpl.upper_offset_y) if has_body else None,
            left_hand=self._hand(left_hand),
            right_hand=self._hand(right_hand),
            lower_region=(
                Region(center_x, top_y + tpl.hip_offset_y, tpl.hip_confidence)
                if hip_band.any() else None
            ),
            knee_region=(
                Region(center_x, top_y + tpl.knee_offset_y, tpl.knee_confidence)
                if knee_band.any() else None
            ),
        )

    def _hand(self, point: Optional[tuple[float, float]]) -> Optional[Region]:
        if point is None:
            return None
        return Region(point[0], point[1], self.template.hand_confidence)

    @staticmethod
    def _first(
        xs: np.ndarray, ys: np.ndarray, selector: np.ndarray
    ) -> Optional[tuple[float, float]]:
        idx = np.flatnonzero(selector)
        if idx.size == 0:
            return None
        return float(xs[idx[0]]), float(ys[idx[0]])
