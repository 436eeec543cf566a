"""OpenAI and OpenAI-compatible providers."""

import logging
from typing import Dict, List

import httpx
from langchain_core.embeddings import Embeddings
from langchain_core.language_models.chat_models import BaseChatModel

from ..base import BaseProvider
from ...models.llm_models import (
    AuthFieldDefinition,
    AuthFieldKind,
    AuthObject,
    ModelOptions,
    ProviderKind,
    SetupInstructions,
)

logger = logging.getLogger(__name__)

OPENAI_BASE_URL = "https://api.openai.com/v1"

HEADERS_FIELD = AuthFieldDefinition(
    key="headers",
    label="Extra headers",
    description="Optional JSON object of headers sent with every request",
    kind=AuthFieldKind.TEXTAREA,
    placeholder='{"X-Org": "my-team"}',
)


class OpenAIProvider(BaseProvider):
    """
    OpenAI provider.

    PATTERN: chat and embedding handles come from langchain-openai
    GOTCHA: rejected keys surface as 401 or as an invalid_api_key error code
    """

    id = "openai"
    display_name = "OpenAI"
    kind = ProviderKind.CHAT_AND_EMBEDDING
    model_discovery = True
    default_base_url = OPENAI_BASE_URL
    auth_fields = [
        AuthFieldDefinition(
            key="api_key",
            label="API key",
            kind=AuthFieldKind.SECRET,
            required=True,
            placeholder="sk-...",
        ),
        AuthFieldDefinition(
            key="base_url",
            label="Base URL",
            description="Override for proxies and gateways",
            placeholder=OPENAI_BASE_URL,
        ),
        HEADERS_FIELD,
    ]
    setup_instructions = SetupInstructions(
        steps=[
            "Create an API key in the OpenAI dashboard.",
            "Paste the key into the API key field.",
        ],
        link="https://platform.openai.com/api-keys",
    )
    default_chat_models = ["gpt-4o-mini", "gpt-4o", "gpt-4.1-mini"]
    default_embedding_models = ["text-embedding-3-small", "text-embedding-3-large"]

    def base_url(self, auth: AuthObject) -> str:
        """API root for requests, without a trailing slash."""
        return (auth.base_url or self.default_base_url).rstrip("/")

    def request_headers(self, auth: AuthObject) -> Dict[str, str]:
        headers = dict(auth.headers)
        if auth.api_key:
            headers["Authorization"] = f"Bearer {auth.api_key}"
        return headers

    def _build_chat_model(self, auth: AuthObject, model_id: str, options: ModelOptions) -> BaseChatModel:
        module = self._import_integration("langchain_openai", "langchain-openai")
        kwargs = {
            "model": model_id,
            "api_key": auth.api_key or "not-required",
            "base_url": self.base_url(auth),
        }
        if auth.headers:
            kwargs["default_headers"] = dict(auth.headers)
        if options.temperature is not None:
            kwargs["temperature"] = options.temperature
        return module.ChatOpenAI(**kwargs)

    def _build_embedding_model(self, auth: AuthObject, model_id: str, options: ModelOptions) -> Embeddings:
        module = self._import_integration("langchain_openai", "langchain-openai")
        kwargs = {
            "model": model_id,
            "api_key": auth.api_key or "not-required",
            "base_url": self.base_url(auth),
        }
        if auth.headers:
            kwargs["default_headers"] = dict(auth.headers)
        return module.OpenAIEmbeddings(**kwargs)

    async def _fetch_models(self, auth: AuthObject, client: httpx.AsyncClient) -> List[str]:
        response = await client.get(
            f"{self.base_url(auth)}/models",
            headers=self.request_headers(auth),
        )
        self._raise_for_status(response)
        return sorted(str(item["id"]) for item in self._json_items(response, "data") if item.get("id"))


class OpenAICompatibleProvider(OpenAIProvider):
    """
    Any server exposing the OpenAI REST API (LM Studio, vLLM, llama.cpp).

    GOTCHA: users enter the server root, /v1 is appended here
    """

    id = "openai-compatible"
    display_name = "OpenAI-compatible server"
    auth_fields = [
        AuthFieldDefinition(
            key="base_url",
            label="Base URL",
            description="Server root, e.g. http://localhost:1234",
            required=True,
            placeholder="http://localhost:1234",
        ),
        AuthFieldDefinition(
            key="api_key",
            label="API key",
            kind=AuthFieldKind.SECRET,
            placeholder="not-required",
        ),
        HEADERS_FIELD,
    ]
    setup_instructions = SetupInstructions(
        steps=[
            "Start your OpenAI-compatible server.",
            "Enter the server root URL without /v1.",
            "Leave the API key empty unless the server requires one.",
        ],
    )
    default_chat_models: List[str] = []
    default_embedding_models: List[str] = []

    def base_url(self, auth: AuthObject) -> str:
        root = (auth.base_url or "").rstrip("/")
        return root if root.endswith("/v1") else f"{root}/v1"

    def request_headers(self, auth: AuthObject) -> Dict[str, str]:
        headers = dict(auth.headers)
        if auth.api_key and auth.api_key != "not-required":
            headers["Authorization"] = f"Bearer {auth.api_key}"
        return headers
