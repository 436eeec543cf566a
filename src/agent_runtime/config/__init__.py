"""Runtime configuration."""

from .runtime_config import RuntimeConfig, get_runtime_config, DEFAULT_SYSTEM_PROMPT

__all__ = ["RuntimeConfig", "get_runtime_config", "DEFAULT_SYSTEM_PROMPT"]
