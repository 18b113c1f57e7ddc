"""Abstract base class for text-embedding service providers.

Defines the contract for generating embedding vectors from text.
Implementations may wrap OpenAI ``text-embedding-3-small``, any
OpenAI-compatible endpoint, or a local model.  The embedding pipeline only
ever talks to this interface, so providers are interchangeable.

Error contract
--------------
Providers must raise :class:`~src.utils.errors.RateLimitError` when the
backend throttles a request (HTTP 429 or equivalent).  Any other failure
should surface as :class:`~src.utils.errors.EmbeddingError` (or any other
exception); the pipeline treats those as non-retryable.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementation:
#   OpenAIEmbeddingProvider -- text-embedding-3-small (requires API key)
# Located in: src/providers/embedding/
class IEmbeddingProvider(ABC):
    """Contract for text-embedding services used by the embedding pipeline.

    Embeddings are written through
    :class:`~src.interfaces.vector_store_provider.IVectorStoreProvider` and
    compared against query embeddings at search time.
    """

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for a batch of texts.

        Parameters
        ----------
        texts:
            One or more text strings to embed.

        Returns
        -------
        list[list[float]]
            Embedding vectors corresponding positionally to *texts*.  Each
            inner list has length equal to :meth:`get_dimension`.

        Raises
        ------
        src.utils.errors.RateLimitError
            If the backend throttled the request.
        src.utils.errors.EmbeddingError
            If the embedding call fails for any other reason.
        """

    @abstractmethod
    async def embed_single(self, text: str) -> list[float]:
        """Generate an embedding vector for a single text string.

        The embedding pipeline calls this once per chunk so each request
        can be paced and retried independently.

        Parameters
        ----------
        text:
            The text string to embed.

        Returns
        -------
        list[float]
            The embedding vector with length equal to :meth:`get_dimension`.
        """

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the dimensionality of the embedding vectors.

        Constant for the lifetime of the provider; the ingestion service
        creates indices with this dimension and the fallback generator
        produces vectors of the same length.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"openai_embedding"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured (credentials present)."""
