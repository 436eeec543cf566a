"""Runtime configuration with environment variable loading."""

import os
from functools import lru_cache
from pydantic import BaseModel, Field
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

DEFAULT_SYSTEM_PROMPT = "You are a privacy-focused assistant."


class RuntimeConfig(BaseModel):
    """Configuration for the agent runtime."""

    # Agent
    default_system_prompt: str = Field(
        default_factory=lambda: os.getenv("AGENT_SYSTEM_PROMPT", DEFAULT_SYSTEM_PROMPT),
        description="System prompt used until set_prompt() is called",
    )
    message_preview_length: int = Field(
        default_factory=lambda: int(os.getenv("AGENT_PREVIEW_LENGTH", "200")),
        gt=0,
        description="Characters kept in the last-message preview",
    )

    # Checkpoint store
    chats_folder: str = Field(
        default_factory=lambda: os.getenv("AGENT_CHATS_FOLDER", "chats"),
        description="Folder holding one .chat file per thread",
    )
    index_file: str = Field(
        default_factory=lambda: os.getenv("AGENT_INDEX_FILE", "threads.json"),
        description="Thread index file name inside the chats folder",
    )
    save_debounce_seconds: float = Field(
        default_factory=lambda: float(os.getenv("AGENT_SAVE_DEBOUNCE", "1.0")),
        ge=0,
        description="Coalescing window for per-thread record writes",
    )
    index_debounce_seconds: float = Field(
        default_factory=lambda: float(os.getenv("AGENT_INDEX_DEBOUNCE", "2.0")),
        ge=0,
        description="Coalescing window for index writes",
    )

    # Providers
    http_timeout: float = Field(
        default_factory=lambda: float(os.getenv("AGENT_HTTP_TIMEOUT", "30.0")),
        gt=0,
        description="Timeout in seconds for auth checks and model discovery",
    )

    @property
    def index_path(self) -> str:
        """Relative path of the thread index."""
        return f"{self.chats_folder}/{self.index_file}"


@lru_cache(maxsize=1)
def get_runtime_config() -> RuntimeConfig:
    """
    Get the process-wide runtime configuration.

    Returns:
        Cached RuntimeConfig built from the environment
    """
    return RuntimeConfig()
