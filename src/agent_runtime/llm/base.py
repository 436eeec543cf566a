"""Base provider abstraction and provider error taxonomy."""

import importlib
import logging
from abc import ABC
from types import ModuleType
from typing import Any, Dict, List, Optional

import httpx
import openai
from langchain_core.embeddings import Embeddings
from langchain_core.language_models.chat_models import BaseChatModel

from ..models.llm_models import (
    AuthFieldDefinition,
    AuthObject,
    AuthValidationResult,
    ModelOptions,
    ProviderCapabilities,
    ProviderKind,
    SetupInstructions,
)

logger = logging.getLogger(__name__)

CONNECTION_REFUSED_MESSAGE = "Connection refused - service may not be running"


class BaseProvider(ABC):
    """
    Abstract base class for all model providers.

    A provider belongs to exactly one capability variant (see
    ProviderKind). Factories for a capability the variant lacks raise
    ProviderCapabilityError, so callers branch on ``capabilities``
    instead of on provider ids.

    PATTERN: HTTP checks go through an injected httpx.AsyncClient
    CRITICAL: validate_auth() reports expected credential failures, it never raises them
    """

    id: str = ""
    display_name: str = ""
    kind: ProviderKind = ProviderKind.CHAT
    model_discovery: bool = False
    auth_fields: List[AuthFieldDefinition] = []
    setup_instructions: SetupInstructions = SetupInstructions()
    default_chat_models: List[str] = []
    default_embedding_models: List[str] = []

    def __init__(
        self,
        chat_models: Optional[List[str]] = None,
        embedding_models: Optional[List[str]] = None,
    ):
        """
        Initialize provider.

        Args:
            chat_models: Chat model ids offered by this provider, in preference order
            embedding_models: Embedding model ids offered by this provider
        """
        self.chat_models = list(chat_models if chat_models is not None else self.default_chat_models)
        self.embedding_models = list(
            embedding_models if embedding_models is not None else self.default_embedding_models
        )
        self.logger = logging.getLogger(f"{__name__}.{self.id or type(self).__name__}")

    @property
    def capabilities(self) -> ProviderCapabilities:
        """Capability flags derived from the provider kind."""
        return ProviderCapabilities(
            chat=self.kind in (ProviderKind.CHAT, ProviderKind.CHAT_AND_EMBEDDING),
            embedding=self.kind in (ProviderKind.EMBEDDING, ProviderKind.CHAT_AND_EMBEDDING),
            model_discovery=self.model_discovery,
        )

    # ------------------------------------------------------------------
    # Model factories
    # ------------------------------------------------------------------

    def create_chat_instance(
        self,
        auth: AuthObject,
        model_id: str,
        options: Optional[ModelOptions] = None,
    ) -> BaseChatModel:
        """
        Build a chat model handle.

        Args:
            auth: Resolved credentials
            model_id: Model identifier
            options: Temperature and context window

        Returns:
            LangChain chat model

        Raises:
            ProviderCapabilityError: If the provider has no chat support
            ProviderImportError: If the integration package is missing
        """
        if not self.capabilities.chat:
            raise ProviderCapabilityError(self.id, "chat")
        return self._build_chat_model(auth, model_id, options or ModelOptions())

    def create_embedding_instance(
        self,
        auth: AuthObject,
        model_id: str,
        options: Optional[ModelOptions] = None,
    ) -> Embeddings:
        """
        Build an embedding model handle.

        Raises:
            ProviderCapabilityError: If the provider has no embedding support
        """
        if not self.capabilities.embedding:
            raise ProviderCapabilityError(self.id, "embedding")
        return self._build_embedding_model(auth, model_id, options or ModelOptions())

    def _build_chat_model(self, auth: AuthObject, model_id: str, options: ModelOptions) -> BaseChatModel:
        raise ProviderCapabilityError(self.id, "chat")

    def _build_embedding_model(self, auth: AuthObject, model_id: str, options: ModelOptions) -> Embeddings:
        raise ProviderCapabilityError(self.id, "embedding")

    def _import_integration(self, module: str, package: str) -> ModuleType:
        """Import a LangChain integration module on first use."""
        try:
            return importlib.import_module(module)
        except ImportError as e:
            raise ProviderImportError(self.id, package) from e

    # ------------------------------------------------------------------
    # Auth validation and model discovery
    # ------------------------------------------------------------------

    def missing_auth_fields(self, auth: AuthObject) -> List[str]:
        """Labels of required auth fields with no value."""
        return [
            field.label
            for field in self.auth_fields
            if field.required and not getattr(auth, field.key, None)
        ]

    async def validate_auth(self, auth: AuthObject, client: httpx.AsyncClient) -> AuthValidationResult:
        """
        Check credentials against the provider.

        Args:
            auth: Resolved credentials
            client: HTTP client used for the check

        Returns:
            AuthValidationResult, invalid with a short message on failure
        """
        missing = self.missing_auth_fields(auth)
        if missing:
            return AuthValidationResult(valid=False, error=f"{missing[0]} is required.")

        try:
            await self._check_credentials(auth, client)
        except (ProviderAuthError, ProviderEndpointError) as e:
            return AuthValidationResult(valid=False, error=str(e))
        except httpx.HTTPError as e:
            self.logger.warning(f"Auth check failed for {self.id}: {e}")
            return AuthValidationResult(valid=False, error=str(ProviderEndpointError(self.id, CONNECTION_REFUSED_MESSAGE)))
        return AuthValidationResult(valid=True)

    async def discover_models(self, auth: AuthObject, client: httpx.AsyncClient) -> List[str]:
        """
        List model ids the provider currently serves.

        GOTCHA: failures are logged and reported as an empty list

        Returns:
            Discovered model ids, or the configured chat models when discovery is unsupported
        """
        if not self.model_discovery:
            return list(self.chat_models)
        try:
            return await self._fetch_models(auth, client)
        except (ProviderRegistryError, httpx.HTTPError, ValueError) as e:
            self.logger.warning(f"Model discovery failed for {self.id}: {e}")
            return []

    async def _check_credentials(self, auth: AuthObject, client: httpx.AsyncClient) -> None:
        if self.model_discovery:
            await self._fetch_models(auth, client)

    async def _fetch_models(self, auth: AuthObject, client: httpx.AsyncClient) -> List[str]:
        return list(self.chat_models)

    def _json_object(self, response: httpx.Response) -> Dict[str, Any]:
        """Decode a JSON object body, raising ProviderEndpointError for anything else."""
        try:
            body = response.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            raise ProviderEndpointError(self.id, "Unexpected response body", status=response.status_code)
        return body

    def _json_items(self, response: httpx.Response, key: str) -> List[Dict[str, Any]]:
        """Object entries of the list stored under ``key`` in a JSON object body."""
        items = self._json_object(response).get(key) or []
        if not isinstance(items, list):
            raise ProviderEndpointError(self.id, "Unexpected response body", status=response.status_code)
        return [item for item in items if isinstance(item, dict)]

    def _raise_for_status(self, response: httpx.Response) -> None:
        """Translate an error response into a provider error."""
        if response.status_code < 400:
            return

        code: Optional[str] = None
        detail: Optional[str] = None
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            error = body.get("error")
            if isinstance(error, dict):
                code = error.get("code") or error.get("type")
                detail = error.get("message")
            elif isinstance(error, str):
                detail = error
        if detail is None and response.text:
            detail = response.text[:200]

        if response.status_code in (401, 403) or code == "invalid_api_key":
            raise ProviderAuthError(self.id, response.status_code, code=code, detail=detail)
        raise ProviderEndpointError(self.id, detail or response.reason_phrase, status=response.status_code)


class ProviderRegistryError(Exception):
    """Base class for provider and registry errors."""

    pass


class ProviderNotFoundError(ProviderRegistryError):
    """Raised when a provider id is not registered."""

    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(f'No provider registered with name "{provider}".')


class ModelNotFoundError(ProviderRegistryError):
    """Raised when a provider does not offer the requested model."""

    def __init__(self, provider: str, model: Optional[str], kind: str = "chat"):
        self.provider = provider
        self.model = model
        self.kind = kind
        super().__init__(f'Model "{model}" not found for {kind} models in provider "{provider}".')


class ProviderCapabilityError(ProviderRegistryError):
    """Raised when a provider lacks the requested capability."""

    def __init__(self, provider: str, capability: str):
        self.provider = provider
        self.capability = capability
        super().__init__(f'Provider "{provider}" does not support {capability} models.')


class ProviderAuthError(ProviderRegistryError):
    """Raised when a provider rejects credentials."""

    def __init__(
        self,
        provider: str,
        status: int,
        code: Optional[str] = None,
        detail: Optional[str] = None,
    ):
        self.provider = provider
        self.status = status
        self.code = code
        self.detail = detail
        message = f'Authentication failed for provider "{provider}" with status {status}'
        if detail:
            message += f": {detail}"
        if code:
            message += f" ({code})"
        super().__init__(f"{message}.")


class ProviderEndpointError(ProviderRegistryError):
    """Raised when a provider endpoint is unreachable or misbehaves."""

    def __init__(self, provider: str, message: str, status: Optional[int] = None):
        self.provider = provider
        self.status = status
        status_text = f" (status {status})" if status is not None else ""
        super().__init__(f'Endpoint error for provider "{provider}"{status_text}: {message}')


class ProviderImportError(ProviderRegistryError):
    """Raised when a provider's integration package is not installed."""

    def __init__(self, provider: str, package: str):
        self.provider = provider
        self.package = package
        super().__init__(
            f'Provider "{provider}" requires the "{package}" package. '
            f"Install it with: pip install {package}"
        )


def classify_provider_error(provider: str, error: BaseException) -> Optional[ProviderRegistryError]:
    """
    Map a raw provider or transport exception to a typed provider error.

    Walks the exception cause chain so SDK errors wrapping httpx
    failures are recognized.

    Args:
        provider: Provider id used in the error message
        error: Exception raised while talking to the provider

    Returns:
        Typed error, or None when the exception is not provider related
    """
    current: Optional[BaseException] = error
    seen: Dict[int, bool] = {}
    while current is not None and id(current) not in seen:
        seen[id(current)] = True
        if isinstance(current, ProviderRegistryError):
            return current

        status: Any = getattr(current, "status_code", None)
        if isinstance(current, (openai.AuthenticationError, openai.PermissionDeniedError)) or status in (401, 403):
            return ProviderAuthError(
                provider,
                status if isinstance(status, int) else 401,
                code=getattr(current, "code", None),
                detail=getattr(current, "message", None) or str(current),
            )
        if isinstance(current, (httpx.TransportError, openai.APIConnectionError, ConnectionError)):
            return ProviderEndpointError(provider, CONNECTION_REFUSED_MESSAGE)

        current = current.__cause__ or current.__context__
    return None
