"""
Runtime configuration.

Configuration is loaded from environment variables on first access and can
be overridden programmatically:

    from agent_memory_runtime.config import configure, get_config

    configure(
        model_provider="anthropic",
        default_model="claude-sonnet-4-5-20250929",
        recency_count=20,
    )

    config = get_config()
    print(config.max_steps)

Environment variables (all optional):
    AGENT_MEMORY_MODEL_PROVIDER   openai | anthropic
    AGENT_MEMORY_DEFAULT_MODEL    model id used when none is passed
    AGENT_MEMORY_EMBEDDING_MODEL  embedding model id
    AGENT_MEMORY_MAX_STEPS        default step bound for runs
    AGENT_MEMORY_RECENCY_COUNT    messages recalled by recency
    AGENT_MEMORY_TOP_K            messages recalled by similarity
    AGENT_MEMORY_MESSAGE_RANGE    neighbours added around each similar message
    AGENT_MEMORY_VECTOR_INDEX     vector index holding message embeddings
    AGENT_MEMORY_DATA_DIR         base directory for file-backed stores
    AGENT_MEMORY_DEBUG            1/true to enable debug logging
    AGENT_MEMORY_LOG_LEVEL        logging level name for the package logger
"""

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

PACKAGE_LOGGER = "agent_memory_runtime"


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Ignoring non-integer value for {name}: {value!r}")
        return default


@dataclass
class RuntimeConfig:
    """Process-level defaults for agents, memory and model clients."""

    # Model provider
    model_provider: str = "openai"
    default_model: Optional[str] = None
    openai_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None
    embedding_model: str = "text-embedding-3-small"

    # Agent loop
    max_steps: int = 5

    # Memory recall
    recency_count: int = 10
    top_k: int = 2
    message_range: int = 2
    vector_index_name: str = "memory_messages"

    # File-backed stores
    data_dir: Optional[Path] = None

    # Diagnostics
    debug: bool = False
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls) -> "RuntimeConfig":
        """Build a config from AGENT_MEMORY_* environment variables."""
        data_dir = os.environ.get("AGENT_MEMORY_DATA_DIR")
        return cls(
            model_provider=os.environ.get("AGENT_MEMORY_MODEL_PROVIDER", "openai"),
            default_model=os.environ.get("AGENT_MEMORY_DEFAULT_MODEL") or None,
            embedding_model=os.environ.get(
                "AGENT_MEMORY_EMBEDDING_MODEL", "text-embedding-3-small"
            ),
            max_steps=_env_int("AGENT_MEMORY_MAX_STEPS", 5),
            recency_count=_env_int("AGENT_MEMORY_RECENCY_COUNT", 10),
            top_k=_env_int("AGENT_MEMORY_TOP_K", 2),
            message_range=_env_int("AGENT_MEMORY_MESSAGE_RANGE", 2),
            vector_index_name=os.environ.get("AGENT_MEMORY_VECTOR_INDEX", "memory_messages"),
            data_dir=Path(data_dir) if data_dir else None,
            debug=_env_bool("AGENT_MEMORY_DEBUG"),
            log_level=os.environ.get("AGENT_MEMORY_LOG_LEVEL", "WARNING"),
        )

    def get_openai_api_key(self) -> Optional[str]:
        return self.openai_api_key or os.environ.get("OPENAI_API_KEY")

    def get_anthropic_api_key(self) -> Optional[str]:
        return self.anthropic_api_key or os.environ.get("ANTHROPIC_API_KEY")

    def effective_log_level(self) -> int:
        if self.debug:
            return logging.DEBUG
        level = logging.getLevelName(self.log_level.upper())
        return level if isinstance(level, int) else logging.WARNING


_config: Optional[RuntimeConfig] = None


def get_config() -> RuntimeConfig:
    """Get the active configuration, loading it from the environment if needed."""
    global _config
    if _config is None:
        _config = RuntimeConfig.from_env()
    return _config


def configure(**kwargs: Any) -> RuntimeConfig:
    """
    Override configuration values.

    Raises:
        ValueError: If an unknown option is passed
    """
    config = get_config()
    known = {f.name for f in fields(RuntimeConfig)}
    unknown = set(kwargs) - known
    if unknown:
        raise ValueError(
            f"Unknown configuration option(s): {', '.join(sorted(unknown))}. "
            f"Valid options: {', '.join(sorted(known))}"
        )

    for key, value in kwargs.items():
        if key == "data_dir" and value is not None:
            value = Path(value)
        setattr(config, key, value)

    logging.getLogger(PACKAGE_LOGGER).setLevel(config.effective_log_level())
    return config


def reset_config() -> None:
    """Drop overrides; the next get_config() reloads from the environment."""
    global _config
    _config = None
