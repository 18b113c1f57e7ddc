"""Query-time orchestration: embed -> fan out over indices -> rank.

A search embeds the query once, queries every requested index
concurrently, and hands the pooled matches to the
:class:`~src.services.retrieval.hybrid_ranker.HybridRanker`.  An index that
fails to answer does not fail the search: its error becomes a
:class:`~src.models.rag.SearchDiagnostic` on the response and the other
indices' results are still returned.
"""

from __future__ import annotations

from collections.abc import Sequence

import structlog

from src.interfaces.vector_store_provider import IVectorStoreProvider
from src.models.rag import (
    MetadataFilter,
    Query,
    QueryMatch,
    SearchDiagnostic,
    SearchResponse,
)
from src.services.embedding.pipeline import EmbeddingPipeline
from src.services.retrieval.hybrid_ranker import HybridRanker
from src.services.retrieval.keywords import extract_keywords
from src.services.retrieval.metadata_scorer import detect_section_query, filter_by_metadata
from src.utils.concurrency import throttled_gather

logger = structlog.get_logger(logger_name=__name__)


def parse_query(text: str) -> Query:
    """Build a :class:`Query` with its keywords and section intent."""
    return Query(text=text, keywords=extract_keywords(text), intent=detect_section_query(text))


class SearchService:
    """Hybrid search across one or more per-document indices.

    Parameters
    ----------
    embedding_pipeline:
        Embeds the query text (with retry and fallback).
    vector_store:
        Store holding the indices to search.
    ranker:
        Hybrid ranker; its config supplies ``top_k`` per index.
    """

    def __init__(
        self,
        embedding_pipeline: EmbeddingPipeline,
        vector_store: IVectorStoreProvider,
        ranker: HybridRanker | None = None,
    ) -> None:
        self._embedding = embedding_pipeline
        self._store = vector_store
        self._ranker = ranker or HybridRanker()

    async def search(
        self,
        query_text: str,
        index_names: Sequence[str] | None = None,
        filters: MetadataFilter | None = None,
    ) -> SearchResponse:
        """Run a hybrid search.

        Parameters
        ----------
        query_text:
            Natural-language query.  Blank queries return no results.
        index_names:
            Indices to search; all indices in the store when omitted.
        filters:
            Optional metadata filters applied after ranking.
        """
        query = parse_query(query_text)
        if not query_text.strip():
            return SearchResponse(query=query)

        if index_names is None:
            index_names = await self._store.list_indices()
        if not index_names:
            return SearchResponse(query=query)

        vector = await self._embedding.embed_query(query_text)
        top_k = self._ranker.config.top_k
        outcomes = await throttled_gather(
            [self._store.query_top_k(name, vector, top_k) for name in index_names]
        )

        candidates: dict[str, list[QueryMatch]] = {}
        diagnostics: list[SearchDiagnostic] = []
        for name, outcome in zip(index_names, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.warning("index_query_failed", index_name=name, error=str(outcome))
                diagnostics.append(SearchDiagnostic(index_name=name, message=str(outcome)))
                continue
            candidates[name] = list(outcome)

        results = self._ranker.rank(query, candidates, self._store.score_convention)
        if filters is not None:
            results = filter_by_metadata(results, query.intent, filters)

        logger.info(
            "search_complete",
            keywords=len(query.keywords),
            section=query.intent.section_number,
            indices=len(index_names),
            failed_indices=len(diagnostics),
            results=len(results),
        )
        return SearchResponse(query=query, results=results, diagnostics=diagnostics)
