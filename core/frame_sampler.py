# core/frame_sampler.py

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterator, List, Optional

import cv2
import numpy as np

from core.errors import FrameDecodeError, OpenError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SampledFrame:
    """One frame picked by the sampler"""
    index: int
    timestamp: float
    image: np.ndarray


class VideoHandle(ABC):
    """An open video stream"""

    @abstractmethod
    def frame_rate(self) -> float:
        """Frames per second, 0 when unknown"""

    @abstractmethod
    def frame_count(self) -> int:
        """Total number of frames, 0 when unknown"""

    @abstractmethod
    def read_frame(self) -> Optional[np.ndarray]:
        """
        Decode the next frame

        Returns None at end of stream. Raises FrameDecodeError when the
        frame exists but cannot be decoded; the stream stays usable.
        """

    @abstractmethod
    def skip_frame(self) -> bool:
        """Advance past the next frame without decoding it"""

    @abstractmethod
    def close(self):
        """Release the underlying resources"""


class VideoSource(ABC):
    """Opens video handles from a path or content reference"""

    @abstractmethod
    def open(self, path: str) -> VideoHandle:
        """Open a video, raising OpenError if it is unreadable"""


class OpenCVVideoHandle(VideoHandle):
    """VideoHandle backed by cv2.VideoCapture"""

    def __init__(self, capture: cv2.VideoCapture):
        self._cap = capture
        self._position = 0

    def frame_rate(self) -> float:
        fps = self._cap.get(cv2.CAP_PROP_FPS)
        return float(fps) if fps and fps > 0 else 0.0

    def frame_count(self) -> int:
        count = self._cap.get(cv2.CAP_PROP_FRAME_COUNT)
        return int(count) if count and count > 0 else 0

    def read_frame(self) -> Optional[np.ndarray]:
        index = self._position
        ret, frame = self._cap.read()
        self._position += 1

        if not ret:
            total = self.frame_count()
            # OpenCV reports both EOF and decode failures as ret=False
            if total and index < total:
                raise FrameDecodeError(index)
            return None

        if frame is None or frame.size == 0:
            raise FrameDecodeError(index, "empty frame")

        return frame

    def skip_frame(self) -> bool:
        index = self._position
        self._position += 1
        if self._cap.grab():
            return True

        # Same EOF rule as read_frame: a failed grab inside the known length is a bad frame
        total = self.frame_count()
        if total and index < total:
            logger.debug("Failed to grab frame %d, skipping", index)
            return True
        return False

    def close(self):
        self._cap.release()


class OpenCVVideoSource(VideoSource):
    """Video source decoding files with OpenCV"""

    def open(self, path: str) -> VideoHandle:
        cap = cv2.VideoCapture(str(path))

        if not cap.isOpened():
            cap.release()
            raise OpenError(str(path))

        return OpenCVVideoHandle(cap)


class InMemoryVideoHandle(VideoHandle):
    """VideoHandle over a list of frames; None entries are undecodable"""

    def __init__(self, frames: List[Optional[np.ndarray]], fps: float = 1.0):
        self._frames = frames
        self._fps = fps
        self._position = 0
        self.closed = False

    def frame_rate(self) -> float:
        return self._fps

    def frame_count(self) -> int:
        return len(self._frames)

    def read_frame(self) -> Optional[np.ndarray]:
        if self._position >= len(self._frames):
            return None
        index = self._position
        self._position += 1

        frame = self._frames[index]
        if frame is None:
            raise FrameDecodeError(index)
        return frame

    def skip_frame(self) -> bool:
        if self._position >= len(self._frames):
            return False
        self._position += 1
        return True

    def close(self):
        self.closed = True


class InMemoryVideoSource(VideoSource):
    """Serves registered frame lists by path, for tests and embedding"""

    def __init__(self):
        self.videos = {}
        self.open_count = 0

    def add(self, path: str, frames: List[Optional[np.ndarray]], fps: float = 1.0):
        self.videos[path] = (list(frames), fps)

    def open(self, path: str) -> VideoHandle:
        if path not in self.videos:
            raise OpenError(path, "no such video")
        self.open_count += 1
        frames, fps = self.videos[path]
        return InMemoryVideoHandle(frames, fps)


class FrameSampler:
    """
    Picks one frame per sampling interval of playback time

    The step between sampled frames is derived from the source frame rate,
    so with the default interval of one second roughly one frame per second
    of video is emitted.
    """

    def __init__(self, source: VideoSource = None, interval_seconds: float = 1.0):
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")
        self.source = source or OpenCVVideoSource()
        self.interval_seconds = interval_seconds

    def frame_step(self, fps: float) -> int:
        """Number of source frames between two samples"""
        if fps <= 0:
            return 1
        return max(1, int(round(fps * self.interval_seconds)))

    def sample(self, path: str, max_frames: int = None) -> Iterator[SampledFrame]:
        """
        Sample frames from a video in temporal order

        The video is opened immediately, so an unreadable source raises
        OpenError here rather than on first iteration. The returned iterator
        is lazy and closes the handle when exhausted or closed. Call again
        to restart from the beginning.
        """
        handle = self.source.open(path)
        return self._iter_frames(handle, path, max_frames)

    def _iter_frames(self, handle: VideoHandle, path: str,
                     max_frames: Optional[int]) -> Iterator[SampledFrame]:
        try:
            fps = handle.frame_rate()
            total = handle.frame_count()
            step = self.frame_step(fps)

            logger.debug("Sampling %s: fps=%.2f frames=%d step=%d", path, fps, total, step)

            index = 0
            emitted = 0
            skipped = 0

            while not total or index < total:
                if max_frames is not None and emitted >= max_frames:
                    break

                if index % step != 0:
                    if not handle.skip_frame():
                        break
                    index += 1
                    continue

                try:
                    frame = handle.read_frame()
                except FrameDecodeError as e:
                    logger.debug("Skipping frame in %s: %s", path, e)
                    skipped += 1
                    index += 1
                    continue

                if frame is None:
                    break

                timestamp = index / fps if fps > 0 else float(index)
                yield SampledFrame(index=index, timestamp=timestamp, image=frame)
                emitted += 1
                index += 1

            if skipped:
                logger.info("Skipped %d undecodable frames in %s", skipped, path)
        finally:
            handle.close()
