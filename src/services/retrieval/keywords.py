"""Query keyword extraction and lexical scoring of candidate chunks.

:func:`extract_keywords` turns a query into numeric tokens, content words
and adjacent-word bigrams.  :func:`keyword_score` counts how often those
keywords occur in a chunk's text and adds fixed bonuses when they appear in
structural metadata (section number, title, topics, summary, filename).
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

STOP_WORDS = frozenset({"the", "is", "a", "an", "and", "or", "but", "in", "to", "for", "of", "as", "by"})

_DISALLOWED = re.compile(r"[^\w\s.\-]")
_NUMBER = re.compile(r"\d+(?:\.\d+)*")
_REGEX_SAFE_WORD = re.compile(r"\w+")


@dataclass(frozen=True)
class KeywordWeights:
    """Per-occurrence and per-field weights for :func:`keyword_score`."""

    bigram: float = 5
    word: float = 2
    metadata_fields: Mapping[str, float] = field(
        default_factory=lambda: {
            "section_number": 10,
            "section_title": 5,
            "topics": 3,
            "summary": 2,
            "filename": 1,
        }
    )


DEFAULT_WEIGHTS = KeywordWeights()


def extract_keywords(query: str) -> list[str]:
    """Return the deduplicated keyword set of *query*, in first-seen order.

    Numbers (including decimals such as ``"4.2"``) are always kept; other
    tokens need two or more characters and must not be stop words.  Every
    adjacent pair of words is added as a bigram.

    >>> extract_keywords("Section 4.2 covers")
    ['4.2', 'section', 'covers', 'section 4.2', '4.2 covers']
    """
    cleaned = _DISALLOWED.sub("", query.lower())
    tokens = [t.strip(".-") for t in cleaned.split()]
    tokens = [t for t in tokens if t]

    numbers = _NUMBER.findall(cleaned)
    words = [t for t in tokens if len(t) >= 2 and t not in STOP_WORDS]
    bigrams = [f"{a} {b}" for a, b in zip(tokens, tokens[1:])]

    return list(dict.fromkeys([*numbers, *words, *bigrams]))


def keyword_score(
    content: str,
    metadata: Mapping[str, Any],
    keywords: Sequence[str],
    weights: KeywordWeights = DEFAULT_WEIGHTS,
) -> float:
    """Score *content* and *metadata* against *keywords*.

    Parameters
    ----------
    content:
        The candidate chunk's text.
    metadata:
        The candidate's stored metadata; list values are joined.
    keywords:
        Output of :func:`extract_keywords`.
    weights:
        Occurrence and metadata-field weights.
    """
    lowered = content.lower()
    fields = {
        name: _field_text(metadata.get(name)) for name in weights.metadata_fields
    }

    score = 0.0
    for keyword in keywords:
        if " " in keyword:
            score += lowered.count(keyword) * weights.bigram
        elif _REGEX_SAFE_WORD.fullmatch(keyword):
            hits = len(re.findall(rf"\b{keyword}\b", lowered))
            score += hits * weights.word
        else:
            score += lowered.count(keyword) * weights.word

        for name, weight in weights.metadata_fields.items():
            if fields[name] and keyword in fields[name]:
                score += weight
    return score


def _field_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple, set)):
        return " ".join(str(v) for v in value).lower()
    return str(value).lower()
