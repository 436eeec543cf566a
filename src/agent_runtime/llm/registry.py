"""Provider registry: auth, capability checks and model handle factories."""

import json
import logging
import os
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional

import httpx
from langchain_core.embeddings import Embeddings
from langchain_core.language_models.chat_models import BaseChatModel

from .base import (
    BaseProvider,
    ModelNotFoundError,
    ProviderCapabilityError,
    ProviderNotFoundError,
)
from .providers import builtin_providers
from ..config.runtime_config import RuntimeConfig, get_runtime_config
from ..models.llm_models import (
    AuthObject,
    AuthValidationResult,
    ModelOptions,
    ProviderAuthConfig,
)

logger = logging.getLogger(__name__)

SecretResolver = Callable[[str], Optional[str]]


class EnvironmentSecretResolver:
    """
    Resolve secret ids from environment variables.

    Secret ids are upper-cased, dashes become underscores and an
    optional prefix is prepended: ``openai-key`` -> ``AGENT_SECRET_OPENAI_KEY``.
    """

    def __init__(self, prefix: str = "AGENT_SECRET_"):
        self.prefix = prefix

    def __call__(self, secret_id: str) -> Optional[str]:
        name = f"{self.prefix}{secret_id}".upper().replace("-", "_")
        return os.getenv(name)


@dataclass
class ProviderRegistration:
    """A provider definition paired with its stored credentials."""

    definition: BaseProvider
    auth: ProviderAuthConfig


class ProviderRegistry:
    """
    Registry of model providers keyed by normalized id.

    PATTERN: explicit instance, no module-level singleton
    CRITICAL: secrets are resolved on every use and never stored in plaintext
    GOTCHA: not locked, safe only because callers share one event loop
    """

    def __init__(
        self,
        secret_resolver: Optional[SecretResolver] = None,
        config: Optional[RuntimeConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        builtins: Optional[Iterable[BaseProvider]] = None,
    ):
        """
        Initialize provider registry.

        Args:
            secret_resolver: Maps secret ids to plaintext at the point of use
            config: Runtime configuration (HTTP timeout)
            transport: Optional httpx transport for auth checks and discovery
            builtins: Built-in provider catalog, defaults to every bundled provider
        """
        self.secret_resolver = secret_resolver
        self.config = config or get_runtime_config()
        self.transport = transport
        catalog = builtins if builtins is not None else builtin_providers()
        self._builtins: Dict[str, BaseProvider] = {p.id: p for p in catalog}
        self._registrations: Dict[str, ProviderRegistration] = {}

    @staticmethod
    def normalize_id(provider_id: str) -> str:
        return provider_id.strip().lower()

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(
        self,
        provider_id: str,
        definition: Optional[BaseProvider] = None,
        auth: Optional[ProviderAuthConfig] = None,
    ) -> ProviderRegistration:
        """
        Register or replace a provider.

        Re-registering an id replaces the previous definition and
        credentials entirely. A custom definition registered under a
        built-in id is ignored in favour of the built-in one.

        Args:
            provider_id: Provider id (normalized)
            definition: Provider definition, the built-in one when omitted
            auth: Stored credentials

        Returns:
            The stored registration

        Raises:
            ProviderNotFoundError: If no definition is given and the id is not built in
        """
        key = self.normalize_id(provider_id)
        builtin = self._builtins.get(key)
        if definition is None:
            if builtin is None:
                raise ProviderNotFoundError(key)
            definition = builtin
        elif builtin is not None and type(definition) is not type(builtin):
            logger.warning(f"Provider id {key} is built in, ignoring custom {type(definition).__name__}")
            definition = builtin

        registration = ProviderRegistration(
            definition=definition,
            auth=auth.model_copy(deep=True) if auth else ProviderAuthConfig(),
        )
        self._registrations[key] = registration
        logger.info(f"Registered provider {key} ({definition.display_name or definition.id})")
        return registration

    def unregister(self, provider_id: str) -> bool:
        """Remove a provider. Returns True if it was registered."""
        return self._registrations.pop(self.normalize_id(provider_id), None) is not None

    def is_registered(self, provider_id: str) -> bool:
        return self.normalize_id(provider_id) in self._registrations

    def list_providers(self) -> List[str]:
        """Ids of registered providers in registration order."""
        return list(self._registrations)

    def builtin_definitions(self) -> List[BaseProvider]:
        """Built-in provider catalog, registered or not."""
        return list(self._builtins.values())

    def get_registration(self, provider_id: str) -> ProviderRegistration:
        key = self.normalize_id(provider_id)
        registration = self._registrations.get(key)
        if registration is None:
            raise ProviderNotFoundError(key)
        return registration

    def get_definition(self, provider_id: str) -> BaseProvider:
        return self.get_registration(provider_id).definition

    def list_chat_models(self, provider_id: str) -> List[str]:
        return list(self.get_definition(provider_id).chat_models)

    def list_embedding_models(self, provider_id: str) -> List[str]:
        return list(self.get_definition(provider_id).embedding_models)

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    def resolve_auth(self, provider_id: str) -> AuthObject:
        """
        Resolve stored credentials into runtime auth.

        Secret ids are looked up through the secret resolver on every call.

        Raises:
            ProviderNotFoundError: If the provider is not registered
        """
        registration = self.get_registration(provider_id)
        values = dict(registration.auth.values)
        for key, secret_id in registration.auth.secret_ids.items():
            secret = self.secret_resolver(secret_id) if self.secret_resolver else None
            if secret is None:
                logger.warning(f"Secret {secret_id} for {provider_id} could not be resolved")
                continue
            values[key] = secret

        return AuthObject(
            api_key=values.get("api_key") or None,
            base_url=values.get("base_url") or None,
            headers=self._parse_headers(provider_id, values.get("headers")),
        )

    @staticmethod
    def _parse_headers(provider_id: str, raw: Optional[str]) -> Dict[str, str]:
        if not raw or not raw.strip():
            return {}
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Ignoring malformed headers for {provider_id}: {e}")
            return {}
        if not isinstance(parsed, dict):
            logger.warning(f"Ignoring headers for {provider_id}: expected a JSON object")
            return {}
        return {str(key): str(value) for key, value in parsed.items()}

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.config.http_timeout, transport=self.transport)

    async def validate_auth(self, provider_id: str) -> AuthValidationResult:
        """
        Validate a provider's credentials.

        Returns:
            {valid: True} or {valid: False, error}

        Raises:
            ProviderNotFoundError: If the provider is not registered
        """
        definition = self.get_definition(provider_id)
        auth = self.resolve_auth(provider_id)
        async with self._client() as client:
            result = await definition.validate_auth(auth, client)
        if not result.valid:
            logger.warning(f"Auth validation failed for {provider_id}: {result.error}")
        return result

    async def discover_models(self, provider_id: str) -> List[str]:
        """
        Discover models a provider serves.

        GOTCHA: an unreachable provider yields an empty list, not an exception

        Raises:
            ProviderNotFoundError: If the provider is not registered
        """
        definition = self.get_definition(provider_id)
        auth = self.resolve_auth(provider_id)
        async with self._client() as client:
            return await definition.discover_models(auth, client)

    # ------------------------------------------------------------------
    # Model handles
    # ------------------------------------------------------------------

    def create_chat_instance(
        self,
        provider_id: str,
        model_id: str,
        options: Optional[ModelOptions] = None,
    ) -> BaseChatModel:
        """
        Build a chat model handle.

        Raises:
            ProviderNotFoundError: If the provider is not registered
            ProviderCapabilityError: If the provider has no chat support
            ModelNotFoundError: If the provider has a fixed model list without model_id
        """
        definition = self.get_definition(provider_id)
        if not definition.capabilities.chat:
            raise ProviderCapabilityError(self.normalize_id(provider_id), "chat")
        self._check_model(provider_id, definition, model_id, definition.chat_models, "chat")
        return definition.create_chat_instance(self.resolve_auth(provider_id), model_id, options)

    def create_embedding_instance(
        self,
        provider_id: str,
        model_id: str,
        options: Optional[ModelOptions] = None,
    ) -> Embeddings:
        """
        Build an embedding model handle.

        Raises:
            ProviderNotFoundError: If the provider is not registered
            ProviderCapabilityError: If the provider has no embedding support
            ModelNotFoundError: If the provider has a fixed model list without model_id
        """
        definition = self.get_definition(provider_id)
        if not definition.capabilities.embedding:
            raise ProviderCapabilityError(self.normalize_id(provider_id), "embedding")
        self._check_model(provider_id, definition, model_id, definition.embedding_models, "embedding")
        return definition.create_embedding_instance(self.resolve_auth(provider_id), model_id, options)

    def _check_model(
        self,
        provider_id: str,
        definition: BaseProvider,
        model_id: str,
        models: List[str],
        kind: str,
    ) -> None:
        # Discovering providers can serve models beyond their static list
        if not model_id:
            raise ModelNotFoundError(self.normalize_id(provider_id), model_id, kind)
        if models and not definition.model_discovery and model_id not in models:
            raise ModelNotFoundError(self.normalize_id(provider_id), model_id, kind)
