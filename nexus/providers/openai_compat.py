"""OpenAI-compatible provider implementation."""

import asyncio
import json
from collections.abc import AsyncIterator

import httpx

from nexus.core.exceptions import ProviderError
from nexus.core.logging import get_logger
from nexus.providers.base import (
    BaseProvider,
    GenerationParams,
    ProviderType,
    build_system_instruction,
)

logger = get_logger(__name__)


class OpenAICompatProvider(BaseProvider):
    """Provider for OpenAI-compatible ``/chat/completions`` endpoints."""

    provider_type = ProviderType.OPENAI_COMPAT

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: int = 60,
        default_model: str = "deepseek-chat",
        temperature: float = 0.7,
        max_tokens: int = 2000,
        auth_header_format: str = "",
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize OpenAI-compatible provider."""
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.default_model = default_model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.auth_header_format = auth_header_format
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            headers = {"Content-Type": "application/json"}
            if self.api_key:
                if self.auth_header_format:
                    headers["Authorization"] = self.auth_header_format.replace("{api_key}", self.api_key)
                else:
                    headers["Authorization"] = f"Bearer {self.api_key}"

            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                # Read timeout is per chunk; a stream may run arbitrarily long overall.
                timeout=httpx.Timeout(self.timeout, connect=10.0),
                headers=headers,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        """Close HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def healthcheck(self) -> bool:
        """Check if endpoint is available."""
        if not self.base_url:
            return False
        try:
            response = await self.client.get("/models")
            return response.status_code == 200
        except httpx.HTTPError:
            return False

    def _payload(self, params: GenerationParams) -> dict:
        return {
            "model": params.model or self.default_model,
            "messages": [
                {"role": "system", "content": build_system_instruction(params)},
                {"role": "user", "content": params.prompt},
            ],
            "stream": True,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }

    async def stream_text(
        self, params: GenerationParams, cancelled: asyncio.Event
    ) -> AsyncIterator[str]:
        """Stream reply fragments parsed from the upstream SSE body."""
        if not self.base_url:
            raise ProviderError(
                "No API configuration found. Please configure an API in the admin settings.",
                provider=self.provider_type.value,
            )

        payload = self._payload(params)
        logger.info(
            "Calling upstream chat completions",
            data={"base_url": self.base_url, "model": payload["model"], "session_id": params.session_id},
        )

        yielded = 0
        async with self.client.stream("POST", "/chat/completions", json=payload) as response:
            if response.status_code >= 400:
                body = (await response.aread()).decode("utf-8", errors="replace")
                logger.error(
                    "Upstream request failed",
                    data={"status": response.status_code, "body": body[:500]},
                )
                raise ProviderError(
                    f"API request failed: {response.status_code} {body}".strip(),
                    provider=self.provider_type.value,
                    upstream_status=response.status_code,
                )

            async for line in response.aiter_lines():
                if cancelled.is_set():
                    logger.info("Upstream stream cancelled by consumer", data={"yielded": yielded})
                    return

                if not line.startswith("data: "):
                    continue

                data_str = line[6:].strip()
                if data_str == "[DONE]":
                    break

                try:
                    data = json.loads(data_str)
                except json.JSONDecodeError:
                    if data_str:
                        logger.warning("Failed to parse upstream chunk", data={"chunk": data_str[:100]})
                    continue

                choices = data.get("choices") or [{}]
                content = (choices[0].get("delta") or {}).get("content") or ""
                if content:
                    yielded += 1
                    yield content

        logger.info("Upstream stream finished", data={"yielded": yielded})
