"""
Sentence-aware, page-tagged chunking of extracted document text.

Two strategies:
- marker mode: the text carries "--- page N ---" markers; every chunk takes
  the page of the marker that precedes it.
- estimate mode: no markers; the page of a chunk is estimated from its
  starting character offset and the known page count.

Chunks never split a sentence. When a chunk is closed because it is full,
the next chunk starts with the trailing words of the closed one.
"""
import math
import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

MAX_CHUNK_SIZE = 1000
OVERLAP_TARGET = 200
CHARS_PER_WORD = 5
MIN_CHARS_PER_PAGE = 1000

PAGE_MARKER_RE = re.compile(r"---\s*page\s*(\d+)\s*---", re.IGNORECASE)
_SENTENCE_BREAK_RE = re.compile(r"(?<=[.!?])\s+")
_WORD_RE = re.compile(r"\S+")
_BARE_NUMBER_RE = re.compile(r"^\d+$")

# (text, absolute start, absolute end)
Span = Tuple[str, int, int]


@dataclass(frozen=True)
class TextChunk:
    content: str
    page_number: int
    chunk_index: int
    char_start: int
    char_end: int


def split_sentences(text: str, offset: int = 0) -> List[Span]:
    """
    Split text after '.', '!' or '?' followed by whitespace.

    Returns each sentence with its start/end offsets, shifted by `offset`
    so they index the full document text.
    """
    spans: List[Span] = []
    pos = 0
    for brk in _SENTENCE_BREAK_RE.finditer(text):
        if brk.start() > pos:
            spans.append((text[pos:brk.start()], offset + pos, offset + brk.start()))
        pos = brk.end()
    if pos < len(text):
        spans.append((text[pos:], offset + pos, offset + len(text)))
    return spans


class _RunningChunk:
    """The chunk currently being filled."""

    def __init__(self):
        self.parts: List[str] = []
        self.words: List[Span] = []
        self.start = 0
        self.end = 0

    @property
    def text(self) -> str:
        return " ".join(self.parts)

    def __len__(self) -> int:
        return len(self.text)

    def add(self, sentence: Span):
        text, start, end = sentence
        if not self.parts:
            self.start = start
        self.parts.append(text)
        self.end = end
        self.words.extend(
            (m.group(), start + m.start(), start + m.end()) for m in _WORD_RE.finditer(text)
        )

    def seed_overlap(self, words: List[Span]):
        """Start a fresh chunk with the given trailing words of the previous one."""
        self.parts = [" ".join(w for w, _, _ in words)] if words else []
        self.words = list(words)
        if words:
            self.start = words[0][1]
            self.end = words[-1][2]


class Chunker:
    """
    Splits raw extracted text into ordered, overlapping, page-tagged chunks.
    Pure: performs no I/O.
    """

    def __init__(self, max_chunk_size: int = MAX_CHUNK_SIZE, overlap: int = OVERLAP_TARGET):
        self.max_chunk_size = max_chunk_size
        self.overlap = overlap
        self.overlap_words = math.ceil(overlap / CHARS_PER_WORD)

    def chunk(self, text: str, known_page_count: Optional[int] = None) -> List[TextChunk]:
        if not text or not text.strip():
            return []

        if PAGE_MARKER_RE.search(text):
            return self._chunk_by_markers(text)
        return self._chunk_by_estimate(text, known_page_count)

    # ---------- marker mode ----------

    def _chunk_by_markers(self, text: str) -> List[TextChunk]:
        chunks: List[TextChunk] = []
        current_page = 1
        pos = 0

        for marker in PAGE_MARKER_RE.finditer(text):
            current_page = self._emit_segment(text, pos, marker.start(), current_page, chunks)
            current_page = int(marker.group(1))
            pos = marker.end()
        self._emit_segment(text, pos, len(text), current_page, chunks)

        return chunks

    def _emit_segment(self, text: str, start: int, end: int, page: int, chunks: List[TextChunk]) -> int:
        """Chunk text[start:end] onto `page`; returns the page in effect afterwards."""
        raw = text[start:end]
        segment = raw.strip()
        if not segment:
            return page
        if _BARE_NUMBER_RE.match(segment):
            # A bare page number left over from the extractor, not content
            return int(segment)

        offset = start + (len(raw) - len(raw.lstrip()))
        for content, char_start, char_end in self._accumulate(split_sentences(segment, offset)):
            chunks.append(TextChunk(
                content=content,
                page_number=page,
                chunk_index=len(chunks),
                char_start=char_start,
                char_end=char_end,
            ))
        return page

    # ---------- estimate mode ----------

    def _chunk_by_estimate(self, text: str, known_page_count: Optional[int]) -> List[TextChunk]:
        page_count = known_page_count if known_page_count and known_page_count > 0 else 1
        avg_chars_per_page = max(MIN_CHARS_PER_PAGE, len(text) // page_count)

        stripped = text.strip()
        offset = len(text) - len(text.lstrip())

        chunks: List[TextChunk] = []
        for content, char_start, char_end in self._accumulate(split_sentences(stripped, offset)):
            chunks.append(TextChunk(
                content=content,
                page_number=min(page_count, char_start // avg_chars_per_page + 1),
                chunk_index=len(chunks),
                char_start=char_start,
                char_end=char_end,
            ))
        return chunks

    # ---------- shared greedy accumulation ----------

    def _accumulate(self, sentences: List[Span]):
        """
        Greedily pack sentences into chunks of at most max_chunk_size characters.
        Yields (content, char_start, char_end).
        """
        running = _RunningChunk()

        for sentence in sentences:
            size = len(running)
            if size > 0 and size + 1 + len(sentence[0]) > self.max_chunk_size:
                yield running.text.strip(), running.start, running.end
                tail = running.words[-self.overlap_words:] if self.overlap_words else []
                running.seed_overlap(tail)
            running.add(sentence)

        if running.text.strip():
            yield running.text.strip(), running.start, running.end


_default_chunker = Chunker()


def chunk_text(text: str, known_page_count: Optional[int] = None) -> List[TextChunk]:
    """Chunk with the default size (1000) and overlap (200)."""
    return _default_chunker.chunk(text, known_page_count)
