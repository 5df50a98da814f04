"""Model backend adapters."""

from .anthropic_adapter import AnthropicAdapter
from .ollama_adapter import OllamaAdapter
from .openai_adapter import OpenAIAdapter
from .registry import AdapterFactory, AdapterRegistry, default_registry

__all__ = [
    "AdapterFactory",
    "AdapterRegistry",
    "AnthropicAdapter",
    "OllamaAdapter",
    "OpenAIAdapter",
    "default_registry",
]
