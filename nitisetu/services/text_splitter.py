"""
Overlapping, bounded-size text chunking.

Text is walked in windows of ``max_chunk_chars - overlap_chars`` fresh
characters. Each window end is pulled back to the last natural break
(paragraph, line, sentence, clause, word) in the back half of the window, and
each chunk is the window prefixed by the ``overlap_chars`` characters that
precede it. Chunks are exact slices of the input, so

    chunks[0] + "".join(c[overlap_chars:] for c in chunks[1:]) == text

whenever ``overlap_chars`` is at most half of ``max_chunk_chars``. Larger
overlaps still give bounded, gap-free chunks; use ``split_with_offsets`` to
place them.
"""
import logging
from typing import List, Sequence, Tuple

logger = logging.getLogger(__name__)

DEFAULT_SEPARATORS: Tuple[str, ...] = ("\n\n", "\n", ". ", "? ", "! ", "; ", ", ", " ")


class ChunkSplitter:
    """Splits document text into overlapping passages of at most ``max_chunk_chars``"""

    def __init__(
        self,
        max_chunk_chars: int = 1000,
        overlap_chars: int = 200,
        separators: Sequence[str] = DEFAULT_SEPARATORS
    ):
        if max_chunk_chars <= 0:
            raise ValueError("max_chunk_chars must be positive")
        if overlap_chars < 0 or overlap_chars >= max_chunk_chars:
            raise ValueError("overlap_chars must be >= 0 and smaller than max_chunk_chars")

        self.max_chunk_chars = max_chunk_chars
        self.overlap_chars = overlap_chars
        self.separators = tuple(separators)

    @classmethod
    def from_settings(cls, settings) -> "ChunkSplitter":
        return cls(
            max_chunk_chars=settings.chunk_max_chars,
            overlap_chars=settings.chunk_overlap_chars
        )

    def split(self, text: str) -> List[str]:
        """
        Split text into ordered passages

        Args:
            text: Full document text

        Returns:
            Passages in document order; blank text gives an empty list
        """
        return [passage for _, passage in self.split_with_offsets(text)]

    def split_with_offsets(self, text: str) -> List[Tuple[int, str]]:
        """Same as ``split`` but each passage comes with its start offset in ``text``"""
        if not text or not text.strip():
            return []

        length = len(text)
        if length <= self.max_chunk_chars:
            return [(0, text)]

        step = self.max_chunk_chars - self.overlap_chars
        chunks = []
        fresh_start = 0

        while fresh_start < length:
            fresh_end = min(fresh_start + step, length)
            if fresh_end < length:
                fresh_end = self._find_break(text, fresh_start, fresh_end)

            chunk_start = max(0, fresh_start - self.overlap_chars)
            chunks.append((chunk_start, text[chunk_start:fresh_end]))
            fresh_start = fresh_end

        logger.debug(f"Split {length} characters into {len(chunks)} chunks")
        return chunks

    def _find_break(self, text: str, start: int, end: int) -> int:
        """Position just after the best separator in the back half of ``text[start:end]``"""
        floor = max(start + (end - start) // 2, self.overlap_chars)
        if floor >= end:
            return end

        for separator in self.separators:
            index = text.rfind(separator, floor, end)
            if index != -1:
                return index + len(separator)

        return end
