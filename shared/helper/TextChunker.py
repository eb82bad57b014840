"""Deterministic text chunker.

Splits extracted text into ordered, bounded-size, overlapping segments. The
output depends only on the input text and the two parameters, so chunk IDs
derived from the segment index are reproducible across runs.
"""


class TextChunker:
    """Size/overlap based text splitter.

    Args:
        max_size (int): Maximum characters per segment.
        overlap (float): Fraction of max_size copied from the tail of a segment
            into the head of the next one (0 <= overlap < 1).

    Raises:
        ValueError: If max_size is not positive or overlap is out of range.
    """

    def __init__(self, max_size: int, overlap: float = 0.0) -> None:
        if max_size <= 0:
            raise ValueError(f"max_size must be positive, got {max_size}")
        if not 0.0 <= overlap < 1.0:
            raise ValueError(f"overlap must be in [0, 1), got {overlap}")
        self.max_size = max_size
        self.overlap = overlap
        self.overlap_chars = int(max_size * overlap)

    def split(self, text: str) -> list[str]:
        """Split text into ordered non-empty segments.

        Cuts at the last whitespace at or before the size limit, or hard-cuts
        at the limit when the window has no whitespace.

        Args:
            text (str): The full extracted text.

        Returns:
            list[str]: Ordered segments; empty for empty or whitespace-only input.
        """
        if not text or not text.strip():
            return []
        if len(text) <= self.max_size:
            return [text]

        segments: list[str] = []
        length = len(text)
        start = self._skip_whitespace(text, 0)
        while start < length:
            end = start + self.max_size
            if end >= length:
                tail = text[start:]
                if tail.strip():
                    segments.append(tail)
                break

            cut = self._find_boundary(text, start, end)
            segment = text[start:cut]
            if segment.strip():
                segments.append(segment)

            # nothing but whitespace left after this cut
            if not text[cut:].strip():
                break

            if self.overlap_chars:
                next_start = cut - self.overlap_chars
                if next_start <= start:
                    next_start = cut
            else:
                next_start = self._skip_whitespace(text, cut)
            start = next_start
        return segments

    @staticmethod
    def _find_boundary(text: str, start: int, end: int) -> int:
        # text[end] is the first character beyond the window; a whitespace
        # there means the full window can be used
        for i in range(end, start, -1):
            if text[i].isspace():
                return i
        return end

    @staticmethod
    def _skip_whitespace(text: str, pos: int) -> int:
        while pos < len(text) and text[pos].isspace():
            pos += 1
        return pos
