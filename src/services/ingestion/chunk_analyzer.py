"""Content heuristics applied to every chunk at flush time.

Pure functions, no state:

- :func:`detect_chunk_type` -- header / toc / references / code / list /
  paragraph, checked in that order.
- :func:`analyze_content` -- sentence and word counts plus regex checks for
  code blocks, lists and tables.
- :func:`estimate_page_range` -- linear interpolation of character offsets
  against the document's page count.  This is an accepted approximation:
  pages with uneven text density will be estimated imprecisely.
- :func:`parse_section_heading` -- pulls a section number and title out of
  a header line such as ``"4.2 Results"`` or ``"Chapter 3: Methods"``.
- :func:`summarize` and :func:`derive_topics` -- deterministic stand-ins
  for a generated summary and topic list.
"""

from __future__ import annotations

import math
import re
from collections import Counter
from dataclasses import dataclass

from src.models.document import ChunkType
from src.services.retrieval.keywords import STOP_WORDS

SENTENCE_PATTERN = re.compile(r"[^.!?]+[.!?]+")

_HEADER_MAX_LEN = 200
_HEADER_PATTERNS = (
    re.compile(r"^(Chapter|Section|Part)\s+\d+", re.IGNORECASE),
    re.compile(r"^\d+\.?\s+[A-Z]"),
)
_HAS_UPPER = re.compile(r"[A-Z]")
_TOC_LINE = re.compile(r"^\d+\..*\.{3,}\s*\d+\s*$", re.MULTILINE)
_REFERENCE_ENTRY = re.compile(r"^\[\d+\]|\d+\.\s+\w+.*\(\d{4}\)")
_FENCED_CODE = re.compile(r"```[\s\S]*```")
_INDENTED_CODE = re.compile(r"^[ \t]{4,}\S", re.MULTILINE)
_BULLET_LIST = re.compile(r"^[ \t]*[-*•]\s+", re.MULTILINE)
_NUMBERED_LIST = re.compile(r"^[ \t]*\d+\.\s+", re.MULTILINE)
_PIPE_TABLE = re.compile(r"\|.*\|.*\|")
_TAB_TABLE = re.compile(r"\t.*\t.*\t")
_SECTION_HEADING = re.compile(
    r"^(?:(?:chapter|section|part|article)\s+)?(\d+(?:\.\d+)*)\.?\s*[:\-–]?\s*(.*)$",
    re.IGNORECASE,
)

# Chunks starting after this fraction of the document may be references.
_REFERENCES_TAIL_FRACTION = 0.8

SUMMARY_MAX_LENGTH = 200
MAX_TOPICS = 5
_TOPIC_WORD = re.compile(r"[a-z][a-z\-]{3,}")
_TOPIC_STOP_WORDS = STOP_WORDS | frozenset(
    {
        "this", "that", "these", "those", "with", "from", "into", "than", "then",
        "they", "their", "there", "will", "would", "should", "must", "have", "been",
        "were", "when", "where", "which", "while", "what", "also", "each", "such",
        "only", "other", "more", "most", "some", "after", "before", "within",
    }
)


@dataclass(frozen=True)
class ContentAnalysis:
    """Derived counts and structural flags for one chunk's text."""

    sentence_count: int
    word_count: int
    has_code_block: bool
    has_list: bool
    has_table: bool


def analyze_content(text: str) -> ContentAnalysis:
    """Count sentences and words and check for code, lists and tables."""
    return ContentAnalysis(
        sentence_count=len(SENTENCE_PATTERN.findall(text)),
        word_count=len(text.split()),
        has_code_block=bool(_FENCED_CODE.search(text) or _INDENTED_CODE.search(text)),
        has_list=bool(_BULLET_LIST.search(text) or _NUMBERED_LIST.search(text)),
        has_table=bool(_PIPE_TABLE.search(text) or _TAB_TABLE.search(text)),
    )


def detect_chunk_type(text: str, start_char: int, document_length: int) -> ChunkType:
    """Classify a chunk by its content and position.

    Parameters
    ----------
    text:
        The chunk's own text (without overlap seed).
    start_char:
        Offset of the chunk in the document; used for the references rule.
    document_length:
        Total document length in characters.
    """
    trimmed = text.strip()

    if len(trimmed) < _HEADER_MAX_LEN:
        if any(p.match(trimmed) for p in _HEADER_PATTERNS):
            return ChunkType.HEADER
        if trimmed == trimmed.upper() and _HAS_UPPER.search(trimmed):
            return ChunkType.HEADER

    if _TOC_LINE.search(text):
        return ChunkType.TOC

    in_tail = document_length > 0 and start_char > document_length * _REFERENCES_TAIL_FRACTION
    if in_tail and _REFERENCE_ENTRY.search(trimmed):
        return ChunkType.REFERENCES

    if _FENCED_CODE.search(text) or _INDENTED_CODE.search(text):
        return ChunkType.CODE

    if _BULLET_LIST.search(text) or _NUMBERED_LIST.search(text):
        return ChunkType.LIST

    return ChunkType.PARAGRAPH


def estimate_page_range(
    start_char: int,
    end_char: int,
    document_length: int,
    total_pages: int | None,
) -> tuple[int | None, int | None]:
    """Interpolate a 1-based ``(page_start, page_end)`` from character offsets.

    Returns ``(None, None)`` when the page count is unknown.
    """
    if not total_pages or document_length <= 0:
        return None, None
    page_start = math.floor(start_char / document_length * total_pages) + 1
    page_end = math.ceil(end_char / document_length * total_pages)
    page_start = min(page_start, total_pages)
    page_end = min(max(page_end, page_start), total_pages)
    return page_start, page_end


def parse_section_heading(line: str) -> tuple[str | None, str | None]:
    """Return ``(section_number, section_title)`` for a header line.

    Headers without a number (ALL-CAPS, colon headers) yield
    ``(None, title)``.
    """
    trimmed = " ".join(line.split())
    if not trimmed:
        return None, None
    match = _SECTION_HEADING.match(trimmed)
    if match:
        title = match.group(2).strip() or None
        return match.group(1), title
    return None, trimmed.rstrip(":").strip() or None


def summarize(text: str, max_length: int = SUMMARY_MAX_LENGTH) -> str | None:
    """Join the first two non-empty lines of *text*, capped at *max_length*."""
    lines = [" ".join(line.split()) for line in text.splitlines()]
    lines = [line for line in lines if line]
    if not lines:
        return None
    return " ".join(lines[:2])[:max_length]


def derive_topics(text: str, limit: int = MAX_TOPICS) -> list[str]:
    """Return up to *limit* of the most frequent content words in *text*.

    Ties keep first-occurrence order.
    """
    words = [
        w.strip("-")
        for w in _TOPIC_WORD.findall(text.lower())
        if w.strip("-") not in _TOPIC_STOP_WORDS
    ]
    counts = Counter(w for w in words if len(w) >= 4)
    return [word for word, _ in counts.most_common(limit)]
