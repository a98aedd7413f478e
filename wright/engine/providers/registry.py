"""Provider registry — maps provider names to Provider factories."""
from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from wright.engine.errors import ProviderNotAvailableError
from .base import Provider
from .openai_provider import OpenAIProvider

if TYPE_CHECKING:
    from wright.engine.config import AppConfig

logger = logging.getLogger(__name__)

ProviderFactory = Callable[["AppConfig"], Provider]


def _openai_factory(config: AppConfig) -> Provider:
    return OpenAIProvider(
        api_key=config.api_key,
        model=config.model,
        base_url=config.base_url,
    )


class ProviderRegistry:
    """Registry of known providers.

    Maps short names (e.g. 'openai') to factories that build a
    configured Provider instance.
    """

    def __init__(self) -> None:
        self._factories: dict[str, ProviderFactory] = {}

    def register(self, name: str, factory: ProviderFactory) -> None:
        """Register a provider factory by name."""
        self._factories[name] = factory
        logger.debug("Provider registered: %s", name)

    def list_names(self) -> list[str]:
        """Return all registered provider names."""
        return list(self._factories.keys())

    def create(self, name: str, config: AppConfig) -> Provider:
        """Build the named provider, raising ProviderNotAvailableError if unknown."""
        factory = self._factories.get(name)
        if factory is None:
            raise ProviderNotAvailableError(name, self.list_names())
        provider = factory(config)
        logger.info("Provider created: %s model=%s", name, provider.model)
        return provider


def build_provider_registry() -> ProviderRegistry:
    registry = ProviderRegistry()
    registry.register("openai", _openai_factory)
    return registry


def build_provider(config: AppConfig) -> Provider:
    """Build the provider selected by ``config.provider``."""
    return build_provider_registry().create(config.provider, config)
