# tests/test_similarity.py

import pytest

from core.similarity import (PositionalHammingComparator, StringHammingComparator,
                             get_comparator, string_hamming_distance, string_similarity)

ZERO = "p:0000000000000000"
ONES = "p:ffffffffffffffff"


def h(value: int) -> str:
    return f"p:{value:016x}"


@pytest.fixture
def comparator():
    return PositionalHammingComparator()


def test_identical_sequences(comparator):
    hashes = [h(i * 0x1111) for i in range(8)]
    assert comparator.compare(hashes, list(hashes)) == 1.0


def test_all_pairs_over_threshold(comparator):
    assert comparator.compare([ZERO] * 6, [ONES] * 6) == 0.0


def test_reference_length_is_denominator(comparator):
    """10 reference hashes, 5 candidates all matching -> 5/10"""
    reference = [h(i) for i in range(10)]
    candidate = reference[:5]

    assert comparator.compare(reference, candidate) == 0.5


def test_longer_candidate_is_truncated(comparator):
    reference = [h(i) for i in range(5)]
    candidate = reference + [ONES] * 5

    assert comparator.compare(reference, candidate) == 1.0


def test_empty_sequences(comparator):
    assert comparator.compare([], [ZERO]) == 0.0
    assert comparator.compare([ZERO], []) == 0.0
    assert comparator.compare([], []) == 0.0


def test_frame_threshold_is_inclusive(comparator):
    ten_bits = h(0b1111111111)
    eleven_bits = h(0b11111111111)

    assert comparator.compare([ZERO], [ten_bits]) == 1.0
    assert comparator.compare([ZERO], [eleven_bits]) == 0.0


def test_threshold_does_not_scale_with_width():
    """A 256-bit hash still only tolerates 10 differing bits"""
    comparator = PositionalHammingComparator()
    wide_zero = "p:" + "0" * 64
    wide_diff = "p:" + "0" * 61 + "fff"

    assert comparator.compare([wide_zero], [wide_diff]) == 0.0


def test_prefix_does_not_matter(comparator):
    assert comparator.compare([h(42)], ["000000000000002a"]) == 1.0


def test_malformed_pair_counts_as_miss(comparator):
    reference = [ZERO, "p:not-hex", ZERO, ZERO]
    candidate = [ZERO, ZERO, "", ZERO]

    assert comparator.compare(reference, candidate) == 0.5


def test_custom_frame_threshold():
    comparator = PositionalHammingComparator(frame_threshold=0)
    assert comparator.compare([ZERO, ZERO], [ZERO, h(1)]) == 0.5


def test_string_distance():
    assert string_hamming_distance("abcd", "abcd") == 0
    assert string_hamming_distance("abcd", "abce") == 1
    assert string_hamming_distance("abc", "abcd") == -1


def test_string_similarity():
    assert string_similarity("abcd", "abcd") == 1.0
    assert string_similarity("abcd", "abef") == 0.5
    assert string_similarity("abc", "abcd") == 0.0
    assert string_similarity("", "") == 0.0


def test_string_comparator_tolerance():
    """30% of a 16-character hash allows 4 differing characters"""
    comparator = StringHammingComparator()
    base = "0123456789abcdef"
    four_off = "fedc456789abcdef"
    five_off = "fedcb56789abcdef"

    assert comparator.max_distance(len(base)) == 4
    assert comparator.compare([base], [four_off]) == 1.0
    assert comparator.compare([base], [five_off]) == 0.0


def test_string_comparator_unequal_lengths():
    comparator = StringHammingComparator()
    assert comparator.compare(["p:abcd"], ["abcd"]) == 0.0


def test_string_comparator_uses_reference_denominator():
    comparator = StringHammingComparator(tolerance=0.0)
    assert comparator.compare(["aa", "bb", "cc", "dd"], ["aa", "bb"]) == 0.5


def test_strategies_are_not_equivalent():
    """One differing hex digit is one character but up to four bits"""
    a, b = h(0), h(0xF0F)
    assert PositionalHammingComparator(frame_threshold=4).compare([a], [b]) == 0.0
    assert StringHammingComparator().compare([a], [b]) == 1.0


def test_get_comparator():
    assert isinstance(get_comparator(), PositionalHammingComparator)
    assert isinstance(get_comparator('string', tolerance=0.5), StringHammingComparator)
    assert get_comparator('positional', frame_threshold=3).frame_threshold == 3

    with pytest.raises(ValueError):
        get_comparator('cosine')

    with pytest.raises(ValueError):
        StringHammingComparator(tolerance=1.5)


def test_string_comparator_empty_hashes_never_match():
    comparator = StringHammingComparator()
    assert comparator.compare(["", ""], ["", ""]) == 0.0
