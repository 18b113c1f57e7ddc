"""sectionrag composition root.

Wires providers and services together via constructor injection.  Loads
configuration from ``.env`` and ``config/config.yaml`` and configures
structured logging.  Callers get a dict of ready services:

    services = build_services()
    result = await services["ingestion"].ingest(document)
    response = await services["search"].search("what does section 4.2 say?")
"""

from __future__ import annotations

from typing import Any

import structlog

from src.config.loader import component_configs, load_config
from src.config.settings import Settings
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.vector_store_provider import IVectorStoreProvider
from src.pipeline.progress_tracker import ProgressTracker
from src.pipeline.status_store import ProcessingStatusStore
from src.providers.cache.memory_cache import MemoryCacheProvider
from src.providers.embedding.hash_embedding_provider import HashEmbeddingProvider
from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from src.providers.vector_store.chromadb_provider import ChromaDBVectorStore
from src.providers.vector_store.memory_store import InMemoryVectorStore
from src.services.embedding.pipeline import EmbeddingPipeline
from src.services.ingestion.chunker import BoundaryAwareChunker
from src.services.ingestion.ingestion_service import IngestionService
from src.services.retrieval.hybrid_ranker import HybridRanker
from src.services.retrieval.search_service import SearchService
from src.utils.errors import ConfigurationError
from src.utils.logging import configure_logging

logger = structlog.get_logger(logger_name=__name__)


# ---------------------------------------------------------------------------
# Provider selection
# ---------------------------------------------------------------------------


def build_embedding_provider(app_settings: Settings) -> IEmbeddingProvider:
    """Select the embedding provider.

    OpenAI (or an OpenAI-compatible endpoint) when an API key is set,
    otherwise the offline hash provider.
    """
    if app_settings.openai_api_key:
        provider: IEmbeddingProvider = OpenAIEmbeddingProvider(settings=app_settings)
        if provider.is_available():
            return provider

    logger.warning(
        "embedding_provider_offline",
        msg="No embedding API key configured; using deterministic hash vectors.",
    )
    return HashEmbeddingProvider(dimension=app_settings.embedding_dimension)


def build_vector_store(app_settings: Settings) -> IVectorStoreProvider:
    """Build the vector store named by ``VECTOR_STORE_BACKEND``."""
    backend = app_settings.vector_store_backend.lower()
    if backend == "memory":
        return InMemoryVectorStore()
    if backend == "chromadb":
        return ChromaDBVectorStore(persist_directory=app_settings.chromadb_persist_dir or None)
    raise ConfigurationError(
        message=f"Unknown vector store backend '{app_settings.vector_store_backend}'"
    )


# ---------------------------------------------------------------------------
# Full assembly
# ---------------------------------------------------------------------------


def build_services(
    custom_settings: Settings | None = None,
    config_path: str = "config/config.yaml",
) -> dict[str, Any]:
    """Construct every provider and service with injected dependencies.

    Parameters
    ----------
    custom_settings:
        Application settings.  Read from the environment if not provided.
    config_path:
        YAML file holding the component defaults.

    Returns
    -------
    dict
        Components keyed by role: ``ingestion``, ``search``,
        ``embedding_pipeline``, ``vector_store``, ``status_store``,
        ``progress_tracker``, ``settings``.

    Raises
    ------
    ConfigurationError
        If any component configuration is invalid.
    """
    s = custom_settings or Settings()
    config = load_config(config_path, settings=s)
    configure_logging(
        log_level=config.get("logging", {}).get("level", s.log_level),
        json_output=(s.app_env == "production"),
    )

    chunking, rate_limit, ranking = component_configs(config)

    embedding_provider = build_embedding_provider(s)
    vector_store = build_vector_store(s)
    cache = MemoryCacheProvider(max_size=s.status_max_entries, ttl=s.status_ttl_seconds)
    tracker = ProgressTracker()
    status_store = ProcessingStatusStore(cache)

    # One pipeline per process: its consecutive-failure count is shared
    # by every ingestion run.
    embedding_pipeline = EmbeddingPipeline(
        provider=embedding_provider,
        config=rate_limit,
        progress_tracker=tracker,
        cache=cache,
    )

    ingestion = IngestionService(
        chunker=BoundaryAwareChunker(chunking),
        embedding_pipeline=embedding_pipeline,
        vector_store=vector_store,
        status_store=status_store,
        progress_tracker=tracker,
    )
    search = SearchService(
        embedding_pipeline=embedding_pipeline,
        vector_store=vector_store,
        ranker=HybridRanker(ranking),
    )

    logger.info(
        "services_built",
        embedding_provider=embedding_provider.get_provider_name(),
        vector_store=vector_store.get_provider_name(),
        strategy=chunking.strategy.value,
    )
    return {
        "ingestion": ingestion,
        "search": search,
        "embedding_pipeline": embedding_pipeline,
        "vector_store": vector_store,
        "status_store": status_store,
        "progress_tracker": tracker,
        "settings": s,
    }
