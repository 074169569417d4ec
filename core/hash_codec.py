# core/hash_codec.py

import logging
import re

import cv2
import imagehash
import numpy as np
from PIL import Image

from core.errors import DecodeError, HashError

logger = logging.getLogger(__name__)

# algorithm name -> (imagehash function, scheme tag)
HASH_ALGORITHMS = {
    'phash': (imagehash.phash, 'p'),
    'dhash': (imagehash.dhash, 'd'),
    'ahash': (imagehash.average_hash, 'a'),
    'whash': (imagehash.whash, 'w'),
}

_HASH_PATTERN = re.compile(r'^(?:[A-Za-z]+:)?([0-9A-Fa-f]+)$')


def strip_scheme(frame_hash: str) -> str:
    """Remove a leading "<tag>:" scheme prefix, if any"""
    _, sep, rest = frame_hash.partition(':')
    return rest if sep else frame_hash


def hamming_distance(code_a: int, code_b: int) -> int:
    """Number of differing bits between two hash codes"""
    return bin(code_a ^ code_b).count('1')


class HashCodec:
    """
    Perceptual hashing of video frames

    Frames are OpenCV images (BGR, BGRA or grayscale numpy arrays). Hashes
    are rendered as "<tag>:<hex>", e.g. "p:d1c4a3b2e0f09182" for a 64-bit
    pHash, so the hash family travels with the value.
    """

    def __init__(self, algorithm: str = 'phash', hash_size: int = 8,
                 max_dimension: int = 1000):
        if algorithm not in HASH_ALGORITHMS:
            raise ValueError(f"Unknown hash algorithm: {algorithm}")

        self.algorithm = algorithm
        self.hash_size = hash_size
        self.max_dimension = max_dimension
        self._hash_func, self.scheme = HASH_ALGORITHMS[algorithm]

    @property
    def bit_width(self) -> int:
        return self.hash_size * self.hash_size

    def hash(self, frame: np.ndarray) -> str:
        """Compute the frame hash, raising HashError for empty or corrupt frames"""
        img = self._to_pil(frame)

        try:
            image_hash = self._hash_func(img, hash_size=self.hash_size)
        except Exception as e:
            raise HashError(f"failed to hash frame: {e}") from e

        return f"{self.scheme}:{image_hash}"

    def decode(self, frame_hash: str) -> int:
        """Parse a frame hash (with or without scheme prefix) into an integer code"""
        if not isinstance(frame_hash, str):
            raise DecodeError(frame_hash, "frame hash is not a string")

        match = _HASH_PATTERN.match(frame_hash.strip())
        if not match:
            raise DecodeError(frame_hash)

        return int(match.group(1), 16)

    def distance(self, hash_a: str, hash_b: str) -> int:
        """Bitwise Hamming distance between two frame hashes"""
        return hamming_distance(self.decode(hash_a), self.decode(hash_b))

    def _to_pil(self, frame: np.ndarray) -> Image.Image:
        """Convert an OpenCV frame to an RGB or grayscale PIL image"""
        if frame is None or not isinstance(frame, np.ndarray) or frame.size == 0:
            raise HashError("empty frame, unable to generate hash")

        try:
            if frame.dtype != np.uint8:
                frame = cv2.convertScaleAbs(frame)

            if frame.ndim == 2:
                img = Image.fromarray(frame)
            elif frame.ndim == 3 and frame.shape[2] == 3:
                img = Image.fromarray(cv2.cvtColor(frame, cv2.COLOR_BGR2RGB))
            elif frame.ndim == 3 and frame.shape[2] == 4:
                img = Image.fromarray(cv2.cvtColor(frame, cv2.COLOR_BGRA2RGB))
            else:
                raise HashError(f"unsupported frame shape {frame.shape}")
        except cv2.error as e:
            raise HashError(f"corrupt frame: {e}") from e

        # Resize large frames to speed up hashing
        if self.max_dimension and max(img.size) > self.max_dimension:
            img.thumbnail((self.max_dimension, self.max_dimension),
                          Image.Resampling.LANCZOS)

        return img
