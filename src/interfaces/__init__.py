"""Abstract provider contracts.

Every external service (embedding API, vector database, cache) is reached
only through the abstract base classes defined here.  Concrete adapters
live in ``src/providers/`` and are wired together in ``src/main.py``.

    Interface               ->  Concrete implementations
    ---------------------------------------------------------------
    IEmbeddingProvider      ->  OpenAIEmbeddingProvider,
                                HashEmbeddingProvider
    IVectorStoreProvider    ->  ChromaDBVectorStore, InMemoryVectorStore
    ICacheProvider          ->  MemoryCacheProvider
"""

from src.interfaces.cache_provider import ICacheProvider
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.vector_store_provider import IVectorStoreProvider

__all__ = [
    "ICacheProvider",
    "IEmbeddingProvider",
    "IVectorStoreProvider",
]
