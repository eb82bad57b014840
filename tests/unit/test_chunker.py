"""Unit tests for the text chunker."""

import pytest

from shared.helper.TextChunker import TextChunker

ALPHABET = "abcdefghijklmnopqrstuvwxyz"


def test_empty_and_whitespace_input_yield_no_segments() -> None:
    """Empty or whitespace-only text should produce zero segments."""
    chunker = TextChunker(max_size=10)
    assert chunker.split("") == []
    assert chunker.split("   \n\t ") == []


def test_short_text_is_a_single_segment() -> None:
    """Text no longer than max_size is returned unchanged as one segment."""
    chunker = TextChunker(max_size=10, overlap=0.5)
    assert chunker.split("alpha") == ["alpha"]
    assert chunker.split("0123456789") == ["0123456789"]


def test_splits_at_last_whitespace_before_limit() -> None:
    """A long text should be cut at word boundaries when possible."""
    chunker = TextChunker(max_size=10)
    assert chunker.split("aaaa bbbb cccc dddd") == ["aaaa bbbb", "cccc dddd"]


def test_hard_cut_without_whitespace() -> None:
    """A window without whitespace is cut exactly at max_size."""
    chunker = TextChunker(max_size=10)
    assert chunker.split(ALPHABET) == ["abcdefghij", "klmnopqrst", "uvwxyz"]


def test_overlap_repeats_tail_of_previous_segment() -> None:
    """With overlap, each segment starts with the last characters of its predecessor."""
    chunker = TextChunker(max_size=10, overlap=0.2)
    segments = chunker.split(ALPHABET)
    assert segments == ["abcdefghij", "ijklmnopqr", "qrstuvwxyz"]
    for previous, current in zip(segments, segments[1:]):
        assert previous[-2:] == current[:2]


def test_segments_respect_max_size_and_cover_all_words() -> None:
    """No segment exceeds max_size and every word survives chunking."""
    text = " ".join(f"word{i}" for i in range(200))
    chunker = TextChunker(max_size=64, overlap=0.1)
    segments = chunker.split(text)
    assert len(segments) > 1
    assert all(0 < len(segment) <= 64 for segment in segments)
    joined = " ".join(segments)
    assert all(f"word{i}" in joined for i in range(200))


def test_chunking_is_deterministic() -> None:
    """Identical text and parameters give identical ordered segments."""
    text = "The quick brown fox jumps over the lazy dog. " * 40
    assert TextChunker(100, 0.15).split(text) == TextChunker(100, 0.15).split(text)


@pytest.mark.parametrize("max_size, overlap", [(0, 0.0), (-5, 0.0), (10, 1.0), (10, -0.1)])
def test_invalid_parameters_raise(max_size: int, overlap: float) -> None:
    """Non-positive sizes and overlaps outside [0, 1) are rejected."""
    with pytest.raises(ValueError):
        TextChunker(max_size=max_size, overlap=overlap)
