"""Boundary-aware text chunking with overlap seeds.

Splits a document into :class:`~src.models.document.Chunk` objects sized for
embedding models.  The default ``semantic`` strategy has three goals:

1. **Structure-preserving** -- segments come from the
   :class:`~src.services.ingestion.segmenter.StructuralSegmenter`; a header
   closes the running chunk so each section starts a fresh one, and a header
   is never split unless the size bounds leave no alternative.

2. **Size-bounded** -- every chunk except the last is between
   ``min_chunk_size`` and ``max_chunk_size`` characters.  A segment that is
   too large on its own is split at sentence boundaries, then at word
   boundaries, and only as a last resort at a fixed character offset.

3. **Overlapping** -- each chunk after the first starts with an overlap seed:
   the last ``overlap_size`` characters of the previous chunk.  The seed is
   trimmed when needed so a chunk never exceeds ``max_chunk_size``.

Chunk bodies (the text after the seed) are exact, contiguous slices of the
source text, so concatenating every chunk's body reconstructs the document
character for character.

``line-based`` packs whole lines without header handling, and
``sliding-window`` walks a window across the text snapping to the nearest
sentence or paragraph break.
"""

from __future__ import annotations

import re
from collections import deque
from dataclasses import dataclass

import structlog

from src.models.config import ChunkingConfig
from src.models.document import Chunk, ChunkingStrategy, Document, Segment
from src.services.ingestion.chunk_analyzer import (
    SENTENCE_PATTERN,
    analyze_content,
    detect_chunk_type,
    derive_topics,
    estimate_page_range,
    parse_section_heading,
    summarize,
)
from src.services.ingestion.segmenter import StructuralSegmenter

logger = structlog.get_logger(logger_name=__name__)

_WORD_PATTERN = re.compile(r"\S+\s*")
_LINE_PATTERN = re.compile(r"[^\n]*\n|[^\n]+$")
_BREAK_PATTERNS = (re.compile(r"[.!?]\s+"), re.compile(r"\n\s*\n"))

# Split granularity of a pending piece.
_SEGMENT, _SENTENCE, _WORD, _CHAR = range(4)


@dataclass(frozen=True)
class _Piece:
    start: int
    end: int
    is_header: bool = False
    depth: int = _SEGMENT

    @property
    def size(self) -> int:
        return self.end - self.start


@dataclass(frozen=True)
class _Span:
    """A flushed chunk before analysis: body offsets plus its overlap seed."""

    start: int
    end: int
    seed: str


class _ChunkBuilder:
    """Mutable accumulation state for one packing pass."""

    def __init__(self, text: str, overlap_size: int) -> None:
        self._text = text
        self._overlap = overlap_size
        self.spans: list[_Span] = []
        self.seed = ""
        self._start: int | None = None
        self._end = 0

    @property
    def empty(self) -> bool:
        return self._start is None

    @property
    def length(self) -> int:
        if self._start is None:
            return len(self.seed)
        return len(self.seed) + self._end - self._start

    def open(self, piece: _Piece) -> None:
        self._start, self._end = piece.start, piece.end

    def extend(self, piece: _Piece) -> None:
        self._end = piece.end

    def trim_seed(self, limit: int) -> None:
        self.seed = self.seed[len(self.seed) - limit :] if limit > 0 else ""

    def flush(self) -> None:
        if self._start is None:
            return
        self.spans.append(_Span(self._start, self._end, self.seed))
        chunk_text = self.seed + self._text[self._start : self._end]
        self.seed = chunk_text[-self._overlap :] if self._overlap > 0 else ""
        self._start = None


class BoundaryAwareChunker:
    """Splits documents into overlapping, size-bounded, structure-aware chunks.

    Parameters
    ----------
    config:
        Size bounds, overlap and strategy.  Defaults to ``ChunkingConfig()``.
    segmenter:
        Structural segmenter used to find paragraphs and headers.
    """

    def __init__(
        self,
        config: ChunkingConfig | None = None,
        segmenter: StructuralSegmenter | None = None,
    ) -> None:
        self._config = config or ChunkingConfig()
        self._segmenter = segmenter or StructuralSegmenter()

    @property
    def config(self) -> ChunkingConfig:
        return self._config

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def chunk(
        self,
        text: str,
        document_id: str = "document",
        total_pages: int | None = None,
    ) -> list[Chunk]:
        """Split *text* into ordered :class:`Chunk` objects.

        Parameters
        ----------
        text:
            The full document text.
        document_id:
            Prefix for chunk IDs (``<document_id>-chunk-<n>``).
        total_pages:
            Page count used to interpolate each chunk's page range.

        Returns
        -------
        list[Chunk]
            Chunks in document order.  Blank input returns an empty list.

        Raises
        ------
        TypeError
            If *text* is not a string.
        """
        if not isinstance(text, str):
            raise TypeError(f"chunk() expects str, got {type(text).__name__}")
        if not text.strip():
            return []

        segments = self._segmenter.segment(text)
        strategy = self._config.strategy
        if strategy is ChunkingStrategy.SLIDING_WINDOW:
            spans = self._slide(text)
        elif strategy is ChunkingStrategy.LINE_BASED:
            spans = self._pack(text, self._line_tiles(text), respect_headers=False)
        else:
            spans = self._pack(text, self._segment_tiles(text, segments), respect_headers=True)

        chunks = self._build_chunks(text, spans, segments, document_id, total_pages)

        logger.debug(
            "chunking_complete",
            document_id=document_id,
            strategy=strategy.value,
            num_chunks=len(chunks),
            avg_chars=sum(len(c.text) for c in chunks) // len(chunks) if chunks else 0,
        )
        return chunks

    def chunk_document(self, document: Document) -> list[Chunk]:
        """Chunk a :class:`Document`, using its ID and page count."""
        return self.chunk(
            document.text,
            document_id=document.document_id,
            total_pages=document.total_pages,
        )

    # ------------------------------------------------------------------
    # Tiling: contiguous pieces covering the whole text
    # ------------------------------------------------------------------

    @staticmethod
    def _segment_tiles(text: str, segments: list[Segment]) -> list[_Piece]:
        """One tile per segment; the whitespace after a segment belongs to it."""
        tiles: list[_Piece] = []
        for i, segment in enumerate(segments):
            start = 0 if i == 0 else segment.start
            end = segments[i + 1].start if i + 1 < len(segments) else len(text)
            tiles.append(_Piece(start, end, is_header=segment.is_header))
        return tiles

    @staticmethod
    def _line_tiles(text: str) -> list[_Piece]:
        return [_Piece(m.start(), m.end()) for m in _LINE_PATTERN.finditer(text)]

    # ------------------------------------------------------------------
    # Packing
    # ------------------------------------------------------------------

    def _pack(self, text: str, tiles: list[_Piece], respect_headers: bool) -> list[_Span]:
        """Greedily pack *tiles* into chunk spans within the size bounds."""
        max_size = self._config.max_chunk_size
        min_size = self._config.min_chunk_size
        builder = _ChunkBuilder(text, self._config.overlap_size)
        pending: deque[_Piece] = deque(tiles)

        while pending:
            piece = pending.popleft()

            if respect_headers and piece.is_header and not builder.empty:
                if builder.length >= min_size:
                    builder.flush()

            if builder.empty:
                if len(builder.seed) + piece.size <= max_size:
                    builder.open(piece)
                elif piece.size <= max_size:
                    builder.trim_seed(max_size - piece.size)
                    builder.open(piece)
                else:
                    room = max_size - len(builder.seed)
                    pending.extendleft(reversed(self._split(text, piece, room)))
                continue

            if builder.length + piece.size <= max_size:
                builder.extend(piece)
            elif builder.length >= min_size:
                builder.flush()
                pending.appendleft(_Piece(piece.start, piece.end, False, piece.depth))
            else:
                # Undersized chunk: top it up with a finer split of the piece.
                room = max_size - builder.length
                pending.extendleft(reversed(self._split(text, piece, room)))

        builder.flush()
        return builder.spans

    @staticmethod
    def _split(text: str, piece: _Piece, room: int) -> list[_Piece]:
        """Split *piece* one level finer: sentences, then words, then characters.

        A level that yields a single piece falls through to the next one.
        The character level cuts the first *room* characters off.
        """
        depth = piece.depth
        while depth < _CHAR:
            depth += 1
            pattern = SENTENCE_PATTERN if depth == _SENTENCE else _WORD_PATTERN
            cuts = _cut_points(text, piece.start, piece.end, pattern)
            if len(cuts) > 2:
                return [_Piece(a, b, depth=depth) for a, b in zip(cuts, cuts[1:])]

        cut = piece.start + max(1, min(room, piece.size - 1))
        return [_Piece(piece.start, cut, depth=_CHAR), _Piece(cut, piece.end, depth=_CHAR)]

    # ------------------------------------------------------------------
    # Sliding window
    # ------------------------------------------------------------------

    def _slide(self, text: str) -> list[_Span]:
        """Walk a window across *text*, ending each chunk at a natural break."""
        max_size = self._config.max_chunk_size
        min_size = self._config.min_chunk_size
        overlap = self._config.overlap_size

        breaks = sorted({m.end() for p in _BREAK_PATTERNS for m in p.finditer(text)})
        spans: list[_Span] = []
        cursor = 0
        previous = ""
        while cursor < len(text):
            seed = previous[-overlap:] if overlap > 0 and previous else ""
            room = max_size - len(seed)
            if len(text) - cursor <= room:
                end = len(text)
            else:
                lowest = cursor + max(1, min_size - len(seed))
                candidates = [b for b in breaks if lowest <= b <= cursor + room]
                end = candidates[-1] if candidates else cursor + room
            spans.append(_Span(cursor, end, seed))
            previous = seed + text[cursor:end]
            cursor = end
        return spans

    # ------------------------------------------------------------------
    # Chunk construction
    # ------------------------------------------------------------------

    def _build_chunks(
        self,
        text: str,
        spans: list[_Span],
        segments: list[Segment],
        document_id: str,
        total_pages: int | None,
    ) -> list[Chunk]:
        headers = _section_headers(text, segments)
        chunks: list[Chunk] = []
        for i, span in enumerate(spans):
            body = text[span.start : span.end]
            content = span.seed + body
            analysis = analyze_content(content)
            body_start = span.start + len(body) - len(body.lstrip())
            section_number, section_title, opening_level = _section_at(headers, body_start)
            page_start, page_end = estimate_page_range(
                span.start, span.end, len(text), total_pages
            )
            chunks.append(
                Chunk(
                    chunk_id=f"{document_id}-chunk-{i}",
                    document_id=document_id,
                    index=i,
                    start_char=span.start,
                    end_char=span.end,
                    text=content,
                    overlap_with_previous=len(span.seed),
                    overlap_with_next=len(spans[i + 1].seed) if i + 1 < len(spans) else 0,
                    chunk_type=detect_chunk_type(body, span.start, len(text)),
                    section_number=section_number,
                    section_title=section_title,
                    page_start=page_start,
                    page_end=page_end,
                    sentence_count=analysis.sentence_count,
                    word_count=analysis.word_count,
                    has_code_block=analysis.has_code_block,
                    has_list=analysis.has_list,
                    has_table=analysis.has_table,
                    is_header=opening_level > 0,
                    header_level=opening_level,
                    summary=summarize(body),
                    topics=derive_topics(body),
                )
            )
        return chunks


def chunk_text(
    text: str,
    max_size: int,
    min_size: int,
    overlap_size: int,
    strategy: ChunkingStrategy = ChunkingStrategy.SEMANTIC,
    document_id: str = "document",
    total_pages: int | None = None,
) -> list[Chunk]:
    """Functional shortcut: build a chunker for one call and run it."""
    config = ChunkingConfig(
        max_chunk_size=max_size,
        min_chunk_size=min_size,
        overlap_size=overlap_size,
        strategy=strategy,
    )
    return BoundaryAwareChunker(config).chunk(text, document_id, total_pages)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _cut_points(text: str, start: int, end: int, pattern: re.Pattern[str]) -> list[int]:
    """Return sorted offsets that tile ``[start, end)`` after each *pattern* match.

    Each cut is moved past trailing whitespace so the next piece starts on
    a non-blank character.
    """
    cuts = {start, end}
    region = text[start:end]
    for match in pattern.finditer(region):
        cut = match.end()
        while cut < len(region) and region[cut].isspace():
            cut += 1
        cuts.add(start + cut)
    return sorted(cuts)


@dataclass(frozen=True)
class _Header:
    start: int
    level: int
    number: str | None
    title: str | None


def _section_headers(text: str, segments: list[Segment]) -> list[_Header]:
    """Header positions with their section identity.

    Unnumbered headers (ALL-CAPS, colon lines) inherit the number of the
    nearest numbered header before them.
    """
    headers: list[_Header] = []
    current_number: str | None = None
    for segment in segments:
        if not segment.is_header:
            continue
        number, title = parse_section_heading(text[segment.start : segment.end])
        if number is not None:
            current_number = number
        headers.append(_Header(segment.start, segment.header_level, current_number, title))
    return headers


def _section_at(headers: list[_Header], offset: int) -> tuple[str | None, str | None, int]:
    """Return ``(number, title, opening_level)`` for a chunk body at *offset*.

    ``opening_level`` is non-zero only when a header starts exactly at
    *offset*.
    """
    active: _Header | None = None
    for header in headers:
        if header.start > offset:
            break
        active = header
    if active is None:
        return None, None, 0
    level = active.level if active.start == offset else 0
    return active.number, active.title, level
