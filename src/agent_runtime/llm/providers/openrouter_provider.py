"""OpenRouter provider for hosted multi-vendor models."""

import logging
from typing import Dict, List

import httpx

from .openai_provider import OpenAIProvider
from ...models.llm_models import (
    AuthFieldDefinition,
    AuthFieldKind,
    AuthObject,
    ProviderKind,
    SetupInstructions,
)

logger = logging.getLogger(__name__)

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


class OpenRouterProvider(OpenAIProvider):
    """
    OpenRouter provider.

    PATTERN: OpenAI-compatible API, so chat handles reuse ChatOpenAI
    GOTCHA: /models is public, credentials are checked against /key instead
    """

    id = "openrouter"
    display_name = "OpenRouter"
    kind = ProviderKind.CHAT
    default_base_url = OPENROUTER_BASE_URL
    auth_fields = [
        AuthFieldDefinition(
            key="api_key",
            label="API key",
            kind=AuthFieldKind.SECRET,
            required=True,
            placeholder="sk-or-...",
        ),
    ]
    setup_instructions = SetupInstructions(
        steps=[
            "Create an API key in your OpenRouter account settings.",
            "Paste the key into the API key field.",
        ],
        link="https://openrouter.ai/keys",
    )
    default_chat_models = [
        "openai/gpt-4o-mini",
        "anthropic/claude-sonnet-4",
        "meta-llama/llama-3.3-70b-instruct",
    ]
    default_embedding_models: List[str] = []

    def request_headers(self, auth: AuthObject) -> Dict[str, str]:
        headers = super().request_headers(auth)
        headers.setdefault("HTTP-Referer", "https://github.com/agent-runtime")
        headers.setdefault("X-Title", "Agent Runtime")
        return headers

    async def _check_credentials(self, auth: AuthObject, client: httpx.AsyncClient) -> None:
        response = await client.get(
            f"{self.base_url(auth)}/key",
            headers=self.request_headers(auth),
        )
        self._raise_for_status(response)
