"""Provider registry: the process-wide set of upstream generation backends."""

from typing import Callable, Dict, List, Optional

from nexus.config import Settings
from nexus.core.logging import get_logger
from nexus.providers.base import BaseProvider, ProviderType
from nexus.providers.mock import MockProvider
from nexus.providers.openai_compat import OpenAICompatProvider

logger = get_logger(__name__)


def _openai_compat(settings: Settings) -> BaseProvider:
    return OpenAICompatProvider(
        base_url=settings.openai_compat_base_url,
        api_key=settings.openai_compat_api_key,
        timeout=settings.provider_timeout_seconds,
        default_model=settings.default_model,
        temperature=settings.generation_temperature,
        max_tokens=settings.generation_max_tokens,
        auth_header_format=settings.openai_compat_auth_header_format,
    )


_FACTORIES: Dict[str, Callable[[Settings], BaseProvider]] = {
    ProviderType.OPENAI_COMPAT.value: _openai_compat,
    ProviderType.MOCK.value: lambda settings: MockProvider(),
}


class ProviderRegistry:
    """Owns provider instances from startup until :meth:`aclose`.

    ``PROVIDER_MODE=mock`` replaces the configured set with a single
    deterministic mock so no request can reach a real upstream.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.providers: Dict[str, BaseProvider] = {}
        self.default_provider = settings.provider_default

        if settings.provider_mode == ProviderType.MOCK.value:
            self.register(ProviderType.MOCK.value, MockProvider())
            self.default_provider = ProviderType.MOCK.value
            logger.info("Using deterministic mock provider", data={"provider_mode": "mock"})
            return

        for name in settings.providers_enabled_list:
            factory = _FACTORIES.get(name)
            if factory is None:
                logger.warning("Skipping unknown provider", data={"provider": name})
                continue
            self.register(name, factory(settings))

    def register(self, name: str, provider: BaseProvider) -> None:
        """Add or replace a provider."""
        self.providers[name] = provider
        logger.info("Registered provider", data={"provider": name})

    def get_provider(self, name: Optional[str] = None) -> Optional[BaseProvider]:
        """Provider called ``name``, or the default when ``name`` is empty."""
        return self.providers.get(name or self.default_provider)

    def list_providers(self) -> List[str]:
        return list(self.providers)

    async def healthcheck_all(self) -> Dict[str, bool]:
        """Reachability of every provider; a raising check counts as down."""
        results: Dict[str, bool] = {}
        for name, provider in self.providers.items():
            try:
                results[name] = bool(await provider.healthcheck())
            except Exception as exc:
                logger.warning("Provider healthcheck failed", data={"provider": name, "error": str(exc)})
                results[name] = False
        return results

    async def aclose(self) -> None:
        """Close every provider, continuing past individual failures."""
        for name, provider in self.providers.items():
            try:
                await provider.aclose()
            except Exception as exc:
                logger.warning("Error closing provider", data={"provider": name, "error": str(exc)})
