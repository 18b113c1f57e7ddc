"""Hybrid retrieval: keyword extraction, metadata scoring and ranking.

- **keywords** -- query keyword extraction and lexical scoring.
- **metadata_scorer** -- section-intent detection, metadata scoring and
  optional metadata filters.
- **hybrid_ranker** -- vector + keyword blending, filtering and top-N.
- **search_service** -- embeds the query and fans out over indices.
"""

from src.services.retrieval.hybrid_ranker import HybridRanker
from src.services.retrieval.keywords import KeywordWeights, extract_keywords, keyword_score
from src.services.retrieval.metadata_scorer import (
    detect_section_query,
    filter_by_metadata,
    score_metadata,
)
from src.services.retrieval.search_service import SearchService, parse_query

__all__ = [
    "HybridRanker",
    "KeywordWeights",
    "SearchService",
    "detect_section_query",
    "extract_keywords",
    "filter_by_metadata",
    "keyword_score",
    "parse_query",
    "score_metadata",
]
