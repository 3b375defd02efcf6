"""Exception types raised by the pose pipeline."""

from __future__ import annotations


class PoseCueError(Exception):
    """Base class for all posecue errors."""


class MalformedFrameError(PoseCueError):
    """A frame's pixel buffer does not match its declared dimensions."""

    def __init__(self, width: int, height: int, length: int, message: str = ""):
        self.width = width
        self.height = height
        self.length = length
        super().__init__(
            message
            or f"frame {width}x{height} expects {max(width, 0) * max(height, 0) * 4} "
               f"bytes, got {length}"
        )


class PipelineHaltedError(MalformedFrameError):
    """Too many consecutive malformed frames; the pipeline stopped itself."""

    def __init__(self, width: int, height: int, length: int, consecutive: int):
        self.consecutive = consecutive
        super().__init__(
            width, height, length,
            f"pipeline halted after {consecutive} consecutive malformed frames",
        )


class ConfigError(PoseCueError):
    """Invalid or unknown configuration value."""
