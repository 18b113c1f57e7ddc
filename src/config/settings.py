"""Application settings loaded from environment variables via pydantic-settings.

Settings are read from two sources, highest priority first:

1. Environment variables, e.g. ``OPENAI_API_KEY=sk-abc123``.
2. A ``.env`` file in the working directory (local development).

Field ``openai_api_key`` maps to env var ``OPENAI_API_KEY``; defaults apply
when neither source sets a value.  The flat chunking, rate-limit and
ranking fields reach the component configs through
:func:`src.config.loader.load_config`, which merges them over the YAML.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict

from src.models.document import ChunkingStrategy


class Settings(BaseSettings):
    """sectionrag application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === Embedding provider ===
    # Empty key = "not configured" -> main.py uses the deterministic
    # fallback-only provider instead of OpenAI.
    openai_api_key: str = ""
    openai_base_url: str = ""  # OpenAI-compatible endpoint (TogetherAI, etc.)
    openai_embedding_model: str = ""  # Defaults to text-embedding-3-small
    embedding_dimension: int = 1536  # Used by the offline provider only

    # === Vector store ===
    vector_store_backend: str = "memory"  # "memory" | "chromadb"
    chromadb_persist_dir: str = ""  # Empty = in-memory ChromaDB client

    # === Chunking ===
    chunk_max_size: int = 1500
    chunk_min_size: int = 200
    chunk_overlap_size: int = 200
    chunk_strategy: ChunkingStrategy = ChunkingStrategy.SEMANTIC

    # === Embedding rate limits ===
    embedding_requests_per_minute: float = 20
    embedding_burst_size: int = 2
    embedding_retry_attempts: int = 3
    embedding_backoff_multiplier: float = 2
    embedding_initial_backoff_ms: float = 2000

    # === Ranking ===
    search_max_distance: float = 0.3
    search_min_keyword_score: float = 0
    search_top_k: int = 20
    search_top_n: int = 10
    search_vector_weight: float = 0.7

    # === Processing status ===
    status_ttl_seconds: int = 3600
    status_max_entries: int = 1000

    # === App Config ===
    app_env: str = "development"
    log_level: str = "INFO"
