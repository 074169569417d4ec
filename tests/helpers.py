# tests/helpers.py

import numpy as np
import cv2


def make_frames(seed: int, count: int, size: int = 64) -> list:
    """Blocky random BGR frames; frames from different seeds hash far apart"""
    rng = np.random.default_rng(seed)
    frames = []
    for _ in range(count):
        blocks = rng.integers(0, 200, (8, 8, 3), dtype=np.uint8)
        frames.append(cv2.resize(blocks, (size, size), interpolation=cv2.INTER_NEAREST))
    return frames


def write_video(path, frames, fps: float = 10.0) -> str:
    """Write frames to an MJPG AVI file"""
    height, width = frames[0].shape[:2]
    writer = cv2.VideoWriter(str(path), cv2.VideoWriter_fourcc(*'MJPG'), fps, (width, height))
    for frame in frames:
        writer.write(frame)
    writer.release()
    return str(path)


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds
