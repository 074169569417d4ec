# core/errors.py

"""
Exception hierarchy for fingerprinting and duplicate detection.

Per-frame errors (FrameDecodeError, HashError) and per-pair errors
(DecodeError) are recovered locally by the caller. OpenError, GenerationError
and StoreError abort the operation and reach the caller unchanged.
"""


class FingerprintError(Exception):
    """Base class for all fingerprinting errors"""


class OpenError(FingerprintError):
    """Video source could not be opened"""

    def __init__(self, path: str, reason: str = "cannot open video"):
        self.path = path
        self.reason = reason
        super().__init__(f"{reason}: {path}")


class FrameDecodeError(FingerprintError):
    """A single frame could not be decoded"""

    def __init__(self, index: int, reason: str = "undecodable frame"):
        self.index = index
        super().__init__(f"{reason} at frame {index}")


class HashError(FingerprintError):
    """A frame could not be turned into a perceptual hash"""


class DecodeError(FingerprintError):
    """A frame hash string is malformed"""

    def __init__(self, frame_hash, reason: str = "malformed frame hash"):
        self.frame_hash = frame_hash
        super().__init__(f"{reason}: {frame_hash!r}")


class StoreError(FingerprintError):
    """Fingerprint cache is unreachable or returned a malformed payload"""

    def __init__(self, message: str, key: str = None):
        self.key = key
        self.message = message
        if key is not None:
            message = f"{message} (key={key})"
        super().__init__(message)


class GenerationError(FingerprintError):
    """Fingerprint could not be generated for a video"""

    def __init__(self, identity: str, cause: Exception):
        self.identity = identity
        self.cause = cause
        super().__init__(f"failed to generate fingerprint for {identity}: {cause}")
