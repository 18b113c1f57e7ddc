"""Hybrid ranking of vector-search candidates.

Combines the store's vector score with a lexical keyword score::

    vector_score     = similarity            (or 1 - distance)
    normalized_kw    = min(keyword_score / keyword_normalizer, 1)
    hybrid_score     = w * vector_score + (1 - w) * normalized_kw

A candidate survives filtering when ``distance <= max_distance`` or its
keyword score reaches ``min_keyword_score``.  Candidates with a strong
keyword score (above ``strong_keyword_threshold``) get a relaxed distance
threshold of ``max_distance * distance_relaxation``.  Survivors are sorted
by hybrid score (stable, highest first) and cut to ``top_n``.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence

import structlog

from src.models.config import RankingConfig
from src.models.rag import Query, QueryMatch, ScoreConvention, ScoredResult
from src.services.retrieval.keywords import DEFAULT_WEIGHTS, KeywordWeights, keyword_score
from src.services.retrieval.metadata_scorer import passes_section_requirement, score_metadata

logger = structlog.get_logger(logger_name=__name__)


class HybridRanker:
    """Scores, filters and orders candidates from one or more indices.

    Parameters
    ----------
    config:
        Thresholds, weights and result caps.
    keyword_weights:
        Occurrence and metadata-field weights for the keyword score.
    """

    def __init__(
        self,
        config: RankingConfig | None = None,
        keyword_weights: KeywordWeights = DEFAULT_WEIGHTS,
    ) -> None:
        self._config = config or RankingConfig()
        self._weights = keyword_weights

    @property
    def config(self) -> RankingConfig:
        return self._config

    def hybrid_score(self, vector_score: float, keyword_score_value: float) -> float:
        """Blend a vector score and a raw keyword score."""
        w = self._config.weight_vector
        normalized = min(keyword_score_value / self._config.keyword_normalizer, 1.0)
        return w * vector_score + (1.0 - w) * normalized

    def score(
        self,
        query: Query,
        match: QueryMatch,
        index_name: str,
        score_convention: ScoreConvention,
    ) -> ScoredResult:
        """Compute every ranking component for one store match."""
        if score_convention is ScoreConvention.SIMILARITY:
            vector_score = match.score
            distance = 1.0 - match.score
        else:
            distance = match.score
            vector_score = 1.0 - match.score

        content = str(match.metadata.get("content", ""))
        kw = keyword_score(content, match.metadata, query.keywords, self._weights)
        return ScoredResult(
            key=match.key,
            index_name=index_name,
            content=content,
            metadata=dict(match.metadata),
            distance=distance,
            vector_score=vector_score,
            keyword_score=kw,
            metadata_score=score_metadata(match.metadata, query.text, query.intent),
            hybrid_score=self.hybrid_score(vector_score, kw),
        )

    def passes(self, result: ScoredResult, query: Query) -> bool:
        """Apply the content, distance/keyword and section filters."""
        cfg = self._config
        if len(result.content.strip()) < cfg.min_content_length:
            return False

        threshold = cfg.max_distance
        if result.keyword_score > cfg.strong_keyword_threshold:
            threshold *= cfg.distance_relaxation
        if not (result.distance <= threshold or result.keyword_score >= cfg.min_keyword_score):
            return False

        if cfg.require_section and not passes_section_requirement(result, query.intent):
            return False
        return True

    def rank(
        self,
        query: Query,
        candidates: Mapping[str, Sequence[QueryMatch]],
        score_convention: ScoreConvention,
    ) -> list[ScoredResult]:
        """Score, filter, sort and cap candidates.

        Parameters
        ----------
        query:
            The parsed query (text, keywords, section intent).
        candidates:
            Store matches keyed by the index they came from.
        score_convention:
            How the store's ``QueryMatch.score`` values should be read.

        Returns
        -------
        list[ScoredResult]
            At most ``top_n`` results, highest hybrid score first.
        """
        scored = [
            self.score(query, match, index_name, score_convention)
            for index_name, matches in candidates.items()
            for match in matches
        ]
        kept = [r for r in scored if self.passes(r, query)]
        # sorted() is stable, so equal scores keep candidate order.
        ranked = sorted(kept, key=lambda r: r.hybrid_score, reverse=True)[: self._config.top_n]

        logger.debug(
            "hybrid_rank_complete",
            candidates=len(scored),
            kept=len(kept),
            returned=len(ranked),
            top_score=round(ranked[0].hybrid_score, 4) if ranked else 0.0,
        )
        return ranked
