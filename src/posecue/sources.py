"""Frame sources feeding the pipeline's async driver."""

from __future__ import annotations

import asyncio
import logging
import threading
from abc import ABC, abstractmethod
from typing import Iterable, Iterator, Optional

from posecue.frames import RawFrame

try:
    import cv2
except ImportError:
    cv2 = None

logger = logging.getLogger("posecue.sources")


class FrameSource(ABC):
    """Delivers one frame per tick.

    ``read()`` returns None when no frame is available for this tick. Once
    the source can produce nothing more, ``exhausted`` becomes True.
    """

    exhausted: bool = False

    @abstractmethod
    async def read(self) -> Optional[RawFrame]: ...

    def close(self) -> None:
        self.exhausted = True


class IterableSource(FrameSource):
    """Feeds frames from any iterable; None items are ticks without a frame."""

    def __init__(self, frames: Iterable[Optional[RawFrame]]):
        self._frames: Iterator[Optional[RawFrame]] = iter(frames)
        self.exhausted = False
        self.reads = 0

    async def read(self) -> Optional[RawFrame]:
        if self.exhausted:
            return None
        try:
            frame = next(self._frames)
        except StopIteration:
            self.exhausted = True
            return None
        self.reads += 1
        return frame


class CameraSource(FrameSource):
    """Reads BGR frames from an OpenCV capture device and converts to RGBA.

    The blocking ``VideoCapture.read`` runs in a worker thread so the event
    loop is free between ticks.
    """

    def __init__(self, index: int = 0, width: Optional[int] = None, height: Optional[int] = None):
        if cv2 is None:
            raise ImportError(
                "opencv-python is required for camera capture. "
                "Install with: pip install opencv-python"
            )
        self.index = index
        self.exhausted = False
        self._lock = threading.Lock()
        self._capture = cv2.VideoCapture(index)
        if not self._capture.isOpened():
            self._capture.release()
            self.exhausted = True
            raise RuntimeError(f"Could not open camera {index}")
        if width:
            self._capture.set(cv2.CAP_PROP_FRAME_WIDTH, width)
        if height:
            self._capture.set(cv2.CAP_PROP_FRAME_HEIGHT, height)
        logger.info("Opened camera %d", index)

    async def read(self) -> Optional[RawFrame]:
        if self.exhausted:
            return None
        ok, frame = await asyncio.to_thread(self._read)
        if not ok or frame is None:
            return None
        return RawFrame.from_array(frame, bgr=True)

    def _read(self):
        # a cancelled read keeps running in its thread; close() waits for it
        with self._lock:
            if self.exhausted:
                return False, None
            return self._capture.read()

    def close(self) -> None:
        with self._lock:
            if not self.exhausted:
                self._capture.release()
                logger.info("Released camera %d", self.index)
            self.exhausted = True
