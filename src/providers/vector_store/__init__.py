"""Vector store provider implementations.

Two implementations of IVectorStoreProvider:
    1. InMemoryVectorStore  -- numpy cosine similarity, nothing persisted.
       Used by the test suite and for small, short-lived corpora.
    2. ChromaDBVectorStore  -- one ChromaDB collection per index, persisted
       at CHROMADB_PERSIST_DIR when set.

To add another vector database, implement IVectorStoreProvider and register
it in src/main.py.
"""

from src.providers.vector_store.chromadb_provider import ChromaDBVectorStore
from src.providers.vector_store.memory_store import InMemoryVectorStore

__all__ = ["ChromaDBVectorStore", "InMemoryVectorStore"]
