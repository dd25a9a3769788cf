"""Upstream generation providers."""

from nexus.providers.base import (
    BaseProvider,
    GenerationParams,
    ProviderType,
    build_system_instruction,
)
from nexus.providers.mock import MockProvider
from nexus.providers.openai_compat import OpenAICompatProvider
from nexus.providers.registry import ProviderRegistry

__all__ = [
    "BaseProvider",
    "GenerationParams",
    "MockProvider",
    "OpenAICompatProvider",
    "ProviderRegistry",
    "ProviderType",
    "build_system_instruction",
]
