"""Structural segmentation of raw document text.

Splits text into paragraph-level :class:`~src.models.document.Segment`
objects and tags each one as a header (with a level of 1-3) or body text.
Every segment keeps its character offsets into the source so the chunker
can slice the original text instead of re-joining normalised fragments.

Paragraph boundaries, in order of strength:

1. Blank lines.
2. Inside a blank-line block, a line indented by four or more spaces.
3. Inside a block, a line starting with a capital letter right after a
   line that ends with a period.

Header rules are checked in priority order and the first match wins:

===  =====================================================  =====
Rule Pattern                                                Level
===  =====================================================  =====
(a)  ``Chapter 3`` / ``Section 2`` / ``Part 1``               1
(b)  numbered heading ``4.2 Results``                        dots + 1 (max 3)
(c)  roman numeral heading ``IV. Methods``                   1
(d)  ALL-CAPS line longer than three characters              2
(e)  short capitalised line ending in a colon                3
===  =====================================================  =====
"""

from __future__ import annotations

import re

import structlog

from src.models.document import Segment

logger = structlog.get_logger(logger_name=__name__)

_BLANK_LINE = re.compile(r"\n[ \t\r\f\v]*\n\s*")
_CHAPTER_HEADER = re.compile(r"^(Chapter|Section|Part)\s+\d+", re.IGNORECASE)
_NUMBERED_HEADER = re.compile(r"^\d+(\.\d+)*\.?\s+[A-Z]")
_ROMAN_HEADER = re.compile(r"^[IVXLCDM]+\.\s+[A-Z]")
_HAS_UPPER = re.compile(r"[A-Z]")
_STARTS_UPPER = re.compile(r"^[A-Z]")
_WHITESPACE_RUN = re.compile(r"\s+")

_INDENT = "    "
_COLON_HEADER_MAX_LEN = 100


def classify_header(line: str) -> tuple[bool, int]:
    """Return ``(is_header, level)`` for a single line or paragraph.

    Whitespace runs are collapsed first so a paragraph that wraps across
    several lines is judged on its text alone.  Non-headers return level 0.
    """
    trimmed = _WHITESPACE_RUN.sub(" ", line).strip()
    if not trimmed:
        return False, 0

    if _CHAPTER_HEADER.match(trimmed):
        return True, 1

    if _NUMBERED_HEADER.match(trimmed):
        # Only the dots of the leading number count toward the level.
        number = trimmed.split(None, 1)[0]
        return True, min(number.count(".") + 1, 3)

    if _ROMAN_HEADER.match(trimmed):
        return True, 1

    if len(trimmed) > 3 and trimmed == trimmed.upper() and _HAS_UPPER.search(trimmed):
        return True, 2

    if (
        trimmed.endswith(":")
        and len(trimmed) < _COLON_HEADER_MAX_LEN
        and _STARTS_UPPER.match(trimmed)
    ):
        return True, 3

    return False, 0


class StructuralSegmenter:
    """Splits text into paragraph segments and detects structural headers.

    Stateless; one instance can be shared across documents.
    """

    def segment(self, text: str) -> list[Segment]:
        """Return the ordered paragraph segments of *text*.

        Parameters
        ----------
        text:
            Raw document text.

        Returns
        -------
        list[Segment]
            Segments in document order.  Blank or empty input yields ``[]``.
        """
        if not isinstance(text, str):
            raise TypeError(f"segment() expects str, got {type(text).__name__}")

        segments: list[Segment] = []
        for block_start, block_end in self._blocks(text):
            for start, end in self._paragraphs(text, block_start, block_end):
                is_header, level = classify_header(text[start:end])
                segments.append(
                    Segment(
                        text=text[start:end],
                        start=start,
                        end=end,
                        is_header=is_header,
                        header_level=level,
                    )
                )

        logger.debug(
            "segmentation_complete",
            num_segments=len(segments),
            num_headers=sum(1 for s in segments if s.is_header),
        )
        return segments

    # ------------------------------------------------------------------
    # Block / paragraph splitting
    # ------------------------------------------------------------------

    @staticmethod
    def _blocks(text: str) -> list[tuple[int, int]]:
        """Return ``(start, end)`` spans of text between blank lines."""
        spans: list[tuple[int, int]] = []
        cursor = 0
        for match in _BLANK_LINE.finditer(text):
            spans.append((cursor, match.start()))
            cursor = match.end()
        spans.append((cursor, len(text)))
        return [(s, e) for s, e in spans if text[s:e].strip()]

    @staticmethod
    def _paragraphs(text: str, block_start: int, block_end: int) -> list[tuple[int, int]]:
        """Re-split one block on indentation and capital-after-period lines.

        Returned spans are trimmed of surrounding whitespace.
        """
        lines: list[tuple[int, int]] = []
        cursor = block_start
        while cursor <= block_end:
            newline = text.find("\n", cursor, block_end)
            line_end = block_end if newline == -1 else newline
            lines.append((cursor, line_end))
            if newline == -1:
                break
            cursor = newline + 1

        breaks: list[int] = [0]
        for i in range(1, len(lines)):
            line = text[lines[i][0] : lines[i][1]]
            previous = text[lines[i - 1][0] : lines[i - 1][1]].rstrip()
            if line.startswith(_INDENT) or (
                _STARTS_UPPER.match(line.strip()) and previous.endswith(".")
            ):
                breaks.append(i)

        spans: list[tuple[int, int]] = []
        for n, first in enumerate(breaks):
            last = breaks[n + 1] - 1 if n + 1 < len(breaks) else len(lines) - 1
            start, end = lines[first][0], lines[last][1]
            span = _trim(text, start, end)
            if span is not None:
                spans.append(span)
        return spans


def _trim(text: str, start: int, end: int) -> tuple[int, int] | None:
    """Shrink ``[start, end)`` past leading/trailing whitespace; ``None`` if blank."""
    while start < end and text[start].isspace():
        start += 1
    while end > start and text[end - 1].isspace():
        end -= 1
    if start == end:
        return None
    return start, end
