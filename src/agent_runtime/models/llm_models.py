"""Provider-related data models."""

from pydantic import BaseModel, Field
from typing import Dict, List, Optional
from enum import Enum


class ProviderKind(str, Enum):
    """Capability variant a provider belongs to."""

    CHAT = "chat"
    CHAT_AND_EMBEDDING = "chat_and_embedding"
    EMBEDDING = "embedding"


class AuthFieldKind(str, Enum):
    """Input style for an auth field."""

    TEXT = "text"
    SECRET = "secret"
    TEXTAREA = "textarea"


class ProviderCapabilities(BaseModel):
    """Capability flags exposed by a provider."""

    chat: bool = False
    embedding: bool = False
    model_discovery: bool = False


class AuthFieldDefinition(BaseModel):
    """Describes one credential field a provider needs."""

    key: str = Field(description="Field key, e.g. api_key or base_url")
    label: str = Field(description="Human readable label")
    description: Optional[str] = Field(default=None)
    kind: AuthFieldKind = Field(default=AuthFieldKind.TEXT)
    required: bool = Field(default=False)
    placeholder: Optional[str] = Field(default=None)

    class Config:
        """Pydantic configuration."""

        use_enum_values = True


class SetupInstructions(BaseModel):
    """Steps shown to a user configuring a provider."""

    steps: List[str] = Field(default_factory=list)
    link: Optional[str] = Field(default=None)


class ProviderAuthConfig(BaseModel):
    """
    Stored provider credentials.

    CRITICAL: secret fields are stored as secret ids, never as plaintext
    """

    values: Dict[str, str] = Field(
        default_factory=dict,
        description="Non-secret field values keyed by field key",
    )
    secret_ids: Dict[str, str] = Field(
        default_factory=dict,
        description="Secret resolver ids keyed by field key",
    )


class AuthObject(BaseModel):
    """Credentials resolved at the point of use."""

    api_key: Optional[str] = None
    base_url: Optional[str] = None
    headers: Dict[str, str] = Field(default_factory=dict)


class AuthValidationResult(BaseModel):
    """Outcome of a credential check."""

    valid: bool
    error: Optional[str] = None


class ModelOptions(BaseModel):
    """Options applied when building a model handle."""

    temperature: Optional[float] = Field(default=None, ge=0, le=2)
    context_window: Optional[int] = Field(default=None, gt=0)
