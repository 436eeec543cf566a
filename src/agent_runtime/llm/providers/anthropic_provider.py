"""Anthropic provider for Claude models."""

import logging
from typing import Any, Dict, List

import httpx
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

ANTHROPIC_BASE_URL = "https://api.anthropic.com"
ANTHROPIC_VERSION = "2023-06-01"
THINKING_MODEL_MARKERS = ("sonnet-4", "opus-4", "haiku-4-5")
THINKING_BUDGET_TOKENS = 4096
MAX_OUTPUT_TOKENS = 8192


def supports_thinking(model_id: str) -> bool:
    """Whether extended thinking is enabled for a model id."""
    return any(marker in model_id for marker in THINKING_MODEL_MARKERS)


class AnthropicProvider(BaseProvider):
    """
    Anthropic provider (chat only).

    CRITICAL: thinking models ignore temperature, it is not sent for them
    GOTCHA: credentials are validated with a one-token message request
    """

    id = "anthropic"
    display_name = "Anthropic"
    kind = ProviderKind.CHAT
    model_discovery = True
    auth_fields = [
        AuthFieldDefinition(
            key="api_key",
            label="API key",
            kind=AuthFieldKind.SECRET,
            required=True,
            placeholder="sk-ant-...",
        ),
    ]
    setup_instructions = SetupInstructions(
        steps=[
            "Create an API key in the Anthropic console.",
            "Paste the key into the API key field.",
        ],
        link="https://console.anthropic.com/settings/keys",
    )
    default_chat_models = ["claude-sonnet-4-5", "claude-haiku-4-5", "claude-opus-4-1"]

    def base_url(self, auth: AuthObject) -> str:
        return (auth.base_url or ANTHROPIC_BASE_URL).rstrip("/")

    def request_headers(self, auth: AuthObject) -> Dict[str, str]:
        headers = dict(auth.headers)
        headers["x-api-key"] = auth.api_key or ""
        headers["anthropic-version"] = ANTHROPIC_VERSION
        return headers

    def _build_chat_model(self, auth: AuthObject, model_id: str, options: ModelOptions) -> BaseChatModel:
        module = self._import_integration("langchain_anthropic", "langchain-anthropic")
        kwargs: Dict[str, Any] = {
            "model": model_id,
            "api_key": auth.api_key,
            "max_tokens": MAX_OUTPUT_TOKENS,
        }
        if auth.base_url:
            kwargs["base_url"] = auth.base_url
        if auth.headers:
            kwargs["default_headers"] = dict(auth.headers)
        if supports_thinking(model_id):
            kwargs["thinking"] = {"type": "enabled", "budget_tokens": THINKING_BUDGET_TOKENS}
        elif options.temperature is not None:
            kwargs["temperature"] = options.temperature
        return module.ChatAnthropic(**kwargs)

    async def _check_credentials(self, auth: AuthObject, client: httpx.AsyncClient) -> None:
        response = await client.post(
            f"{self.base_url(auth)}/v1/messages",
            headers=self.request_headers(auth),
            json={
                "model": self.chat_models[0] if self.chat_models else self.default_chat_models[0],
                "max_tokens": 1,
                "messages": [{"role": "user", "content": "ping"}],
            },
        )
        self._raise_for_status(response)

    async def _fetch_models(self, auth: AuthObject, client: httpx.AsyncClient) -> List[str]:
        response = await client.get(
            f"{self.base_url(auth)}/v1/models",
            headers=self.request_headers(auth),
        )
        self._raise_for_status(response)
        return [item["id"] for item in self._json_items(response, "data") if item.get("id")]
