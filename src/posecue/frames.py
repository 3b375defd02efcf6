"""Raw RGBA frame container and conversion from numpy images."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

import numpy as np

from posecue.errors import MalformedFrameError

BYTES_PER_PIXEL = 4

PixelBuffer = Union[bytes, bytearray, memoryview, np.ndarray]


@dataclass(frozen=True)
class RawFrame:
    """One captured frame: dimensions plus a row-major RGBA byte buffer.

    The buffer length must equal ``width * height * 4``. Call ``validate()``
    (or ``as_array()``, which validates) before reading pixels.
    """
    width: int
    height: int
    pixels: PixelBuffer

    @property
    def byte_length(self) -> int:
        if isinstance(self.pixels, np.ndarray):
            return int(self.pixels.nbytes)
        return len(self.pixels)

    def validate(self):
        """Raise MalformedFrameError if the buffer disagrees with the dimensions."""
        length = self.byte_length
        if self.width <= 0 or self.height <= 0:
            raise MalformedFrameError(
                self.width, self.height, length,
                f"frame dimensions must be positive, got {self.width}x{self.height}",
            )
        if isinstance(self.pixels, np.ndarray) and self.pixels.dtype != np.uint8:
            raise MalformedFrameError(
                self.width, self.height, length,
                f"pixel array must be uint8, got {self.pixels.dtype}",
            )
        if length != self.width * self.height * BYTES_PER_PIXEL:
            raise MalformedFrameError(self.width, self.height, length)

    def as_array(self) -> np.ndarray:
        """Return the pixels as a read-only (H, W, 4) uint8 array."""
        self.validate()
        if isinstance(self.pixels, np.ndarray):
            flat = np.ascontiguousarray(self.pixels).reshape(-1)
        else:
            flat = np.frombuffer(self.pixels, dtype=np.uint8)
        return flat.reshape(self.height, self.width, BYTES_PER_PIXEL)

    @classmethod
    def from_array(cls, image: np.ndarray, bgr: bool = False) -> RawFrame:
        """Build a frame from an (H, W, 3) or (H, W, 4) uint8 image.

        Args:
            image: RGB/RGBA image, or BGR/BGRA when ``bgr`` is set (OpenCV).
            bgr: Swap the first and third channels.
        """
        if image.ndim != 3 or image.shape[2] not in (3, 4):
            raise MalformedFrameError(
                image.shape[1] if image.ndim > 1 else 0,
                image.shape[0] if image.ndim > 0 else 0,
                int(image.nbytes),
                f"expected (H, W, 3|4) image, got shape {image.shape}",
            )

        height, width = image.shape[:2]
        rgba = np.empty((height, width, BYTES_PER_PIXEL), dtype=np.uint8)
        channels = image[..., :3]
        if bgr:
            channels = channels[..., ::-1]
        rgba[..., :3] = channels
        rgba[..., 3] = image[..., 3] if image.shape[2] == 4 else 255
        return cls(width=width, height=height, pixels=rgba.tobytes())
