"""Provider name to adapter constructor mapping."""

import logging
import threading
from typing import Any, Callable, Dict, List, Mapping

from ..exceptions import UnknownProviderError
from ..services import IModelAdapter
from .anthropic_adapter import AnthropicAdapter
from .ollama_adapter import OllamaAdapter
from .openai_adapter import OpenAIAdapter

LOGGER = logging.getLogger(__name__)

AdapterFactory = Callable[[Mapping[str, Any]], IModelAdapter]


class AdapterRegistry:
    """Registry of adapter constructors keyed by lower-cased provider name.

    Instances are owned by whoever orchestrates audits; there is no module-level
    registry, so tests can register fakes without leaking into other callers.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._factories: Dict[str, AdapterFactory] = {}

    def register(self, provider: str, factory: AdapterFactory) -> None:
        key = provider.lower()
        with self._lock:
            if key in self._factories:
                LOGGER.info("Replacing adapter registration for %s", key)
            self._factories[key] = factory

    def has_provider(self, provider: str) -> bool:
        with self._lock:
            return provider.lower() in self._factories

    def providers(self) -> List[str]:
        with self._lock:
            return sorted(self._factories)

    def create(self, provider: str, config: Mapping[str, Any]) -> IModelAdapter:
        """Build an adapter; raises UnknownProviderError for unregistered names."""
        with self._lock:
            factory = self._factories.get(provider.lower())
            available = sorted(self._factories)
        if factory is None:
            raise UnknownProviderError(provider, available)
        return factory(config)


def default_registry() -> AdapterRegistry:
    """Registry pre-populated with the built-in backends."""
    registry = AdapterRegistry()
    registry.register(OpenAIAdapter.provider, OpenAIAdapter)
    registry.register(AnthropicAdapter.provider, AnthropicAdapter)
    registry.register(OllamaAdapter.provider, OllamaAdapter)
    return registry


__all__ = ["AdapterFactory", "AdapterRegistry", "default_registry"]
