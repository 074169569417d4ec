# core/similarity.py

import logging
from abc import ABC, abstractmethod
from typing import Sequence

from core.errors import DecodeError
from core.hash_codec import HashCodec, hamming_distance

logger = logging.getLogger(__name__)

# Max bits that may differ for two frames to count as a match
DEFAULT_FRAME_THRESHOLD = 10

# Fraction of characters that may differ in the string comparator
DEFAULT_STRING_TOLERANCE = 0.30


class SimilarityComparator(ABC):
    """
    Scores two ordered frame-hash sequences

    Frames are paired by position. The score is the number of matching pairs
    divided by the length of the first (reference) sequence, so a shorter
    second sequence lowers the score.
    """

    name = 'base'

    def compare(self, seq_a: Sequence[str], seq_b: Sequence[str]) -> float:
        """Fraction of seq_a's frames matched by the frame at the same position in seq_b"""
        if not seq_a or not seq_b:
            return 0.0

        matches = 0
        for i in range(min(len(seq_a), len(seq_b))):
            if self.frames_match(seq_a[i], seq_b[i]):
                matches += 1

        return matches / len(seq_a)

    @abstractmethod
    def frames_match(self, hash_a: str, hash_b: str) -> bool:
        """Whether two frame hashes are close enough to count as a match"""


class PositionalHammingComparator(SimilarityComparator):
    """
    Default comparator: decoded bitwise Hamming distance

    The per-pair threshold is a fixed number of bits and does not scale
    with hash width. Pairs that fail to decode are non-matches but still
    count toward the denominator.
    """

    name = 'positional'

    def __init__(self, frame_threshold: int = DEFAULT_FRAME_THRESHOLD,
                 codec: HashCodec = None):
        self.frame_threshold = frame_threshold
        self.codec = codec or HashCodec()

    def frames_match(self, hash_a: str, hash_b: str) -> bool:
        try:
            code_a = self.codec.decode(hash_a)
            code_b = self.codec.decode(hash_b)
        except DecodeError as e:
            logger.warning("Treating pair as non-match: %s", e)
            return False

        return hamming_distance(code_a, code_b) <= self.frame_threshold


def string_hamming_distance(s1: str, s2: str) -> int:
    """Count of differing characters, or -1 when lengths differ"""
    if len(s1) != len(s2):
        return -1
    return sum(1 for c1, c2 in zip(s1, s2) if c1 != c2)


def string_similarity(s1: str, s2: str) -> float:
    """1 - (character distance / length); 0 for unequal or empty strings"""
    distance = string_hamming_distance(s1, s2)
    if distance < 0 or not s1:
        return 0.0
    return 1.0 - distance / len(s1)


class StringHammingComparator(SimilarityComparator):
    """
    Alternative comparator: character-wise distance on raw hash strings

    A pair matches when at most `tolerance` of the characters differ, so the
    allowance grows with hash length. Not equivalent to the positional
    comparator: one differing hex digit may hide up to four differing bits.
    """

    name = 'string'

    def __init__(self, tolerance: float = DEFAULT_STRING_TOLERANCE):
        if not 0.0 <= tolerance <= 1.0:
            raise ValueError(f"tolerance must be within [0, 1], got {tolerance}")
        self.tolerance = tolerance

    def max_distance(self, length: int) -> int:
        return int(length * self.tolerance)

    def frames_match(self, hash_a: str, hash_b: str) -> bool:
        if not hash_a:
            return False
        distance = string_hamming_distance(hash_a, hash_b)
        if distance < 0:
            return False
        return distance <= self.max_distance(len(hash_a))


COMPARATORS = {
    PositionalHammingComparator.name: PositionalHammingComparator,
    StringHammingComparator.name: StringHammingComparator,
}


def get_comparator(name: str = 'positional', **kwargs) -> SimilarityComparator:
    """Build a comparator by strategy name"""
    if name not in COMPARATORS:
        raise ValueError(f"Unknown similarity strategy: {name}")
    return COMPARATORS[name](**kwargs)
