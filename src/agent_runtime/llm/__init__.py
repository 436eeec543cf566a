"""Model provider layer: provider definitions, errors and the registry."""

from .base import (
    BaseProvider,
    ProviderRegistryError,
    ProviderNotFoundError,
    ModelNotFoundError,
    ProviderCapabilityError,
    ProviderAuthError,
    ProviderEndpointError,
    ProviderImportError,
    classify_provider_error,
)
from .registry import (
    ProviderRegistry,
    ProviderRegistration,
    EnvironmentSecretResolver,
    SecretResolver,
)

__all__ = [
    "BaseProvider",
    "ProviderRegistryError",
    "ProviderNotFoundError",
    "ModelNotFoundError",
    "ProviderCapabilityError",
    "ProviderAuthError",
    "ProviderEndpointError",
    "ProviderImportError",
    "classify_provider_error",
    "ProviderRegistry",
    "ProviderRegistration",
    "EnvironmentSecretResolver",
    "SecretResolver",
]
