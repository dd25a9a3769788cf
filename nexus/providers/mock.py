"""Deterministic mock provider for CI/E2E."""

import asyncio
from collections.abc import AsyncIterator

from nexus.providers.base import BaseProvider, GenerationParams, ProviderType


class MockProvider(BaseProvider):
    """Echoes the prompt back word by word."""

    provider_type = ProviderType.MOCK

    def __init__(self, delay_seconds: float = 0.0):
        self.delay_seconds = delay_seconds

    async def healthcheck(self) -> bool:
        return True

    async def stream_text(
        self, params: GenerationParams, cancelled: asyncio.Event
    ) -> AsyncIterator[str]:
        words = f"[mock] {params.prompt}".strip().split(" ")
        for i, word in enumerate(words):
            if cancelled.is_set():
                return
            if self.delay_seconds:
                await asyncio.sleep(self.delay_seconds)
            yield word if i == len(words) - 1 else f"{word} "
