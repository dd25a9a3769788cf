"""Provider contract for upstream text generation."""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

# Each few-shot example is truncated to this many characters in the system prompt.
EXAMPLE_MAX_CHARS = 500


class ProviderType(str, Enum):
    """Known provider kinds."""

    OPENAI_COMPAT = "openai_compat"
    MOCK = "mock"


@dataclass
class GenerationParams:
    """Everything an upstream needs to produce one reply."""

    prompt: str
    system_instruction: str = "You are a helpful AI assistant."
    model: Optional[str] = None
    user_preferences: Optional[str] = None
    context_examples: List[str] = field(default_factory=list)
    session_id: Optional[str] = None


def build_system_instruction(params: GenerationParams) -> str:
    """Combine the agent prompt with the user's memory and liked examples."""
    instruction = params.system_instruction

    if params.user_preferences and params.user_preferences.strip():
        instruction += (
            "\n\n[GLOBAL USER MEMORY & PREFERENCES]:\n"
            f"{params.user_preferences}\n\n"
            "(IMPORTANT: You MUST respect the above Global Preferences in your response.)"
        )

    if params.context_examples:
        instruction += (
            "\n\n[SUCCESSFUL EXAMPLES / KNOWLEDGE BASE]:\n"
            "Here are past outputs that the user liked. "
            "Use them as a style reference (Few-Shot Learning):\n"
        )
        for i, example in enumerate(params.context_examples, start=1):
            instruction += f"\n--- Example {i} ---\n{example[:EXAMPLE_MAX_CHARS]}...\n"

    return instruction


class BaseProvider(ABC):
    """A producer of text fragments for a generation request."""

    provider_type: ProviderType

    @abstractmethod
    async def healthcheck(self) -> bool:
        """Return True if the upstream is reachable."""

    @abstractmethod
    def stream_text(
        self, params: GenerationParams, cancelled: asyncio.Event
    ) -> AsyncIterator[str]:
        """Yield reply fragments in production order.

        The iterator is lazy, finite and not restartable. ``cancelled`` is set
        when the consumer has gone away; implementations must stop promptly
        and release their upstream connection in a ``finally`` block.
        """

    async def aclose(self) -> None:
        """Release long-lived resources."""
