"""Paragraph-preserving text chunker."""

import re
from typing import List

_SECTION_SPLIT_RE = re.compile(r"\n[ \t]*\n")
_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+")


class TextChunker:
    """
    Split normalized page text into bounded chunks.

    Blank lines separate sections. A section that fits in ``max_chars`` is
    kept whole; a longer one is split on sentence boundaries and sentences
    are accumulated until the next one would overflow. A single sentence
    longer than ``max_chars`` is kept intact. Chunks shorter than
    ``min_chars`` are dropped as noise.
    """

    def __init__(self, max_chars: int = 1500, min_chars: int = 50):
        if max_chars <= 0:
            raise ValueError("max_chars must be positive")
        self.max_chars = max_chars
        self.min_chars = max(0, min_chars)

    def split(self, text: str) -> List[str]:
        chunks: List[str] = []
        for raw_section in _SECTION_SPLIT_RE.split(text or ""):
            section = raw_section.strip()
            if not section:
                continue
            if len(section) <= self.max_chars:
                chunks.append(section)
            else:
                chunks.extend(self._split_section(section))
        return [chunk for chunk in chunks if len(chunk) >= self.min_chars]

    def _split_section(self, section: str) -> List[str]:
        pieces: List[str] = []
        current = ""
        for raw_sentence in _SENTENCE_SPLIT_RE.split(section):
            sentence = raw_sentence.strip()
            if not sentence:
                continue
            candidate = f"{current} {sentence}" if current else sentence
            if current and len(candidate) > self.max_chars:
                pieces.append(current)
                current = sentence
            else:
                current = candidate
        if current:
            pieces.append(current)
        return pieces
