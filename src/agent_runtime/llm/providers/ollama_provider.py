"""Ollama provider for local model integration."""

import logging
from typing import Any, Dict, List

import httpx
from langchain_core.embeddings import Embeddings
from langchain_core.language_models.chat_models import BaseChatModel

from ..base import BaseProvider
from ...models.llm_models import (
    AuthFieldDefinition,
    AuthObject,
    ModelOptions,
    ProviderKind,
    SetupInstructions,
)

logger = logging.getLogger(__name__)

OLLAMA_DEFAULT_URL = "http://localhost:11434"


class OllamaProvider(BaseProvider):
    """
    Ollama provider for local model access.

    PATTERN: HTTP-based API communication with async httpx
    GOTCHA: Models must be pulled before use with ollama pull
    GOTCHA: context window is passed as num_ctx, Ollama's default is small
    """

    id = "ollama"
    display_name = "Ollama"
    kind = ProviderKind.CHAT_AND_EMBEDDING
    model_discovery = True
    auth_fields = [
        AuthFieldDefinition(
            key="base_url",
            label="Base URL",
            description="Address of the running Ollama server",
            required=True,
            placeholder=OLLAMA_DEFAULT_URL,
        ),
    ]
    setup_instructions = SetupInstructions(
        steps=[
            "Install Ollama and start it with: ollama serve",
            "Pull a model, e.g.: ollama pull llama3.1",
            f"Enter the server address (usually {OLLAMA_DEFAULT_URL}).",
        ],
        link="https://ollama.com/download",
    )

    def base_url(self, auth: AuthObject) -> str:
        return (auth.base_url or OLLAMA_DEFAULT_URL).rstrip("/")

    def _build_chat_model(self, auth: AuthObject, model_id: str, options: ModelOptions) -> BaseChatModel:
        module = self._import_integration("langchain_ollama", "langchain-ollama")
        kwargs: Dict[str, Any] = {"model": model_id, "base_url": self.base_url(auth)}
        if options.temperature is not None:
            kwargs["temperature"] = options.temperature
        if options.context_window is not None:
            kwargs["num_ctx"] = options.context_window
        if auth.headers:
            kwargs["client_kwargs"] = {"headers": dict(auth.headers)}
        return module.ChatOllama(**kwargs)

    def _build_embedding_model(self, auth: AuthObject, model_id: str, options: ModelOptions) -> Embeddings:
        module = self._import_integration("langchain_ollama", "langchain-ollama")
        return module.OllamaEmbeddings(model=model_id, base_url=self.base_url(auth))

    async def _fetch_models(self, auth: AuthObject, client: httpx.AsyncClient) -> List[str]:
        response = await client.get(f"{self.base_url(auth)}/api/tags", headers=dict(auth.headers))
        self._raise_for_status(response)
        return [m["name"] for m in self._json_items(response, "models") if m.get("name")]
