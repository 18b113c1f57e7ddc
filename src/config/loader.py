"""YAML configuration loader with environment variable overrides.

Configuration is loaded in layers (later layers override earlier):

1. ``config/config.yaml`` -- static defaults checked into the repo.
2. ``.env`` file -- local developer overrides (not committed).
3. Environment variables -- set at deploy time.

Only values that the environment actually sets are merged over the YAML,
so a YAML default survives unless an env var names the same key.
"""

from pathlib import Path

import yaml

from src.config.settings import Settings
from src.models.config import ChunkingConfig, RankingConfig, RateLimitConfig

# Settings field -> (YAML section, key)
_ENV_KEYS: dict[str, tuple[str, str]] = {
    "chunk_max_size": ("chunking", "max_chunk_size"),
    "chunk_min_size": ("chunking", "min_chunk_size"),
    "chunk_overlap_size": ("chunking", "overlap_size"),
    "chunk_strategy": ("chunking", "strategy"),
    "embedding_requests_per_minute": ("rate_limit", "requests_per_minute"),
    "embedding_burst_size": ("rate_limit", "burst_size"),
    "embedding_retry_attempts": ("rate_limit", "retry_attempts"),
    "embedding_backoff_multiplier": ("rate_limit", "backoff_multiplier"),
    "embedding_initial_backoff_ms": ("rate_limit", "initial_backoff_ms"),
    "search_max_distance": ("ranking", "max_distance"),
    "search_min_keyword_score": ("ranking", "min_keyword_score"),
    "search_top_k": ("ranking", "top_k"),
    "search_top_n": ("ranking", "top_n"),
    "search_vector_weight": ("ranking", "weight_vector"),
    "log_level": ("logging", "level"),
    "app_env": ("app", "env"),
}


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict:
    """Load YAML config and merge with environment-based Settings.

    Args:
        path: Path to the YAML configuration file.
        settings: Pre-built settings; read from the environment when omitted.

    Returns:
        Fully resolved configuration dictionary.
    """
    config_path = Path(path)
    if config_path.exists():
        with open(config_path) as f:
            yaml_config = yaml.safe_load(f) or {}
    else:
        yaml_config = {}

    settings = settings or Settings()
    env_overrides: dict = {}
    for field_name in settings.model_fields_set:
        if field_name not in _ENV_KEYS:
            continue
        section, key = _ENV_KEYS[field_name]
        value = getattr(settings, field_name)
        env_overrides.setdefault(section, {})[key] = getattr(value, "value", value)

    _deep_merge(yaml_config, env_overrides)
    return yaml_config


def component_configs(config: dict) -> tuple[ChunkingConfig, RateLimitConfig, RankingConfig]:
    """Build the closed component configs from a resolved config dict.

    Raises:
        ConfigurationError: If any section holds an unknown key or an
            invalid value.
    """
    return (
        ChunkingConfig.from_mapping(config.get("chunking")),
        RateLimitConfig.from_mapping(config.get("rate_limit")),
        RankingConfig.from_mapping(config.get("ranking")),
    )


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
