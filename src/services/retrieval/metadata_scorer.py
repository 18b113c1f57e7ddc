"""Section-intent detection and metadata relevance scoring.

A query such as ``"what does section 4.2 say"`` carries a structural
reference.  :func:`detect_section_query` parses it into a
:class:`~src.models.rag.SectionIntent`; :func:`score_metadata` rewards
candidates whose stored section number matches it exactly (+100), matches
a direct subsection (+50) or merely mention it in their text (+20), plus
smaller bonuses for query words found in descriptive metadata fields.

:func:`filter_by_metadata` applies the optional post-ranking filters
(section requirement, document, page range, topics).
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from typing import Any

from src.models.document import ChunkType
from src.models.rag import MetadataFilter, ScoredResult, SectionIntent

_NUMBER = r"(\d+(?:\.\d+)*)"

# Checked in order; the first match wins.
_SECTION_PATTERNS = (
    re.compile(rf"\bsection\s+{_NUMBER}", re.IGNORECASE),
    re.compile(rf"\bsec\s+{_NUMBER}", re.IGNORECASE),
    re.compile(rf"\bchapter\s+{_NUMBER}", re.IGNORECASE),
    re.compile(rf"\bpart\s+{_NUMBER}", re.IGNORECASE),
    re.compile(rf"\barticle\s+{_NUMBER}", re.IGNORECASE),
    re.compile(rf"\bparagraph\s+{_NUMBER}", re.IGNORECASE),
    re.compile(rf"\bclause\s+{_NUMBER}", re.IGNORECASE),
    re.compile(rf"\bitem\s+{_NUMBER}", re.IGNORECASE),
    re.compile(rf"\b{_NUMBER}\s+(?:section|chapter|part|article)\b", re.IGNORECASE),
    re.compile(rf"§\s*{_NUMBER}"),
)

_EXACT_SECTION = 100.0
_SUBSECTION = 50.0
_SECTION_MENTION = 20.0
_CHUNK_TYPE_MATCH = 10.0

_FIELD_WEIGHTS: tuple[tuple[str, float], ...] = (
    ("topics", 5),
    ("section_title", 10),
    ("summary", 3),
    ("filename", 2),
    ("document_id", 1),
)

# chunk_type -> query phrases that signal interest in that kind of chunk
_CHUNK_TYPE_QUERIES: dict[str, tuple[str, ...]] = {
    ChunkType.CODE.value: ("code", "snippet", "script", "command", "syntax"),
    ChunkType.LIST.value: ("list", "steps", "checklist", "bullet"),
    ChunkType.TOC.value: ("table of contents", "outline"),
    ChunkType.REFERENCES.value: ("references", "bibliography", "citation", "sources"),
    ChunkType.HEADER.value: ("heading", "headings"),
}


def detect_section_query(query: str) -> SectionIntent:
    """Parse a structural reference such as ``"section 4.2"`` out of *query*."""
    for pattern in _SECTION_PATTERNS:
        match = pattern.search(query)
        if match:
            number = match.group(1)
            return SectionIntent(
                is_section=True,
                section_number=number,
                section_pattern=rf"^{re.escape(number)}(\.\d+)?$",
            )
    return SectionIntent()


def mentions_section(content: str, section_number: str) -> bool:
    """Return ``True`` if *content* names the section explicitly."""
    lowered = content.lower()
    return any(
        form in lowered
        for form in (
            f"section {section_number}",
            f"section{section_number}",
            f"sec {section_number}",
            f"§{section_number}",
        )
    )


def score_metadata(metadata: Mapping[str, Any], query: str, intent: SectionIntent) -> float:
    """Score a candidate's metadata against the query and its section intent."""
    score = 0.0
    content = str(metadata.get("content", ""))
    stored_section = metadata.get("section_number")
    stored_section = str(stored_section) if stored_section is not None else None

    if intent.is_section and intent.section_number:
        if stored_section == intent.section_number:
            score += _EXACT_SECTION
        elif stored_section and intent.section_pattern and re.match(
            intent.section_pattern, stored_section
        ):
            score += _SUBSECTION
        elif f"section {intent.section_number}" in content.lower():
            score += _SECTION_MENTION

    query_lower = query.lower()
    query_words = [w for w in query_lower.split() if len(w) > 2]
    for name, weight in _FIELD_WEIGHTS:
        value = metadata.get(name)
        if not value:
            continue
        field_text = (
            " ".join(str(v) for v in value) if isinstance(value, (list, tuple)) else str(value)
        ).lower()
        score += weight * sum(1 for word in query_words if word in field_text)

    chunk_type = metadata.get("chunk_type")
    phrases = _CHUNK_TYPE_QUERIES.get(str(chunk_type)) if chunk_type else None
    if phrases and any(p in query_lower for p in phrases):
        score += _CHUNK_TYPE_MATCH

    return score


def passes_section_requirement(result: ScoredResult, intent: SectionIntent) -> bool:
    """Section gate: exact ``section_number`` match or an explicit mention in the text.

    Always ``True`` when the query carries no section intent.
    """
    if not (intent.is_section and intent.section_number):
        return True
    stored = result.metadata.get("section_number")
    if stored is not None and str(stored) == intent.section_number:
        return True
    return mentions_section(result.content, intent.section_number)


def filter_by_metadata(
    results: Sequence[ScoredResult],
    intent: SectionIntent,
    options: MetadataFilter,
) -> list[ScoredResult]:
    """Apply the optional metadata filters, preserving order unless asked to re-sort.

    With ``options.sort_by_metadata`` the survivors are ordered by
    ``metadata_score - 100 * distance``, highest first.
    """
    filtered = list(results)

    if options.require_section:
        filtered = [r for r in filtered if passes_section_requirement(r, intent)]

    if options.document_filter:
        wanted = options.document_filter
        filtered = [
            r
            for r in filtered
            if r.metadata.get("document_id") == wanted or r.metadata.get("filename") == wanted
        ]

    if options.page_range:
        first, last = options.page_range
        kept = []
        for r in filtered:
            page_start = r.metadata.get("page_start") or 0
            page_end = r.metadata.get("page_end") or page_start
            if page_end >= first and page_start <= last:
                kept.append(r)
        filtered = kept

    if options.topic_filter:
        wanted_topics = [t.lower() for t in options.topic_filter]
        kept = []
        for r in filtered:
            topics = r.metadata.get("topics")
            if not topics:
                continue
            text = (
                " ".join(str(t) for t in topics) if isinstance(topics, (list, tuple)) else str(topics)
            ).lower()
            if any(t in text for t in wanted_topics):
                kept.append(r)
        filtered = kept

    if options.sort_by_metadata:
        filtered.sort(key=lambda r: r.metadata_score - r.distance * 100, reverse=True)

    return filtered
