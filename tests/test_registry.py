from __future__ import annotations

from typing import Any, Mapping

import pytest

from model_audit.adapters import AdapterRegistry, OllamaAdapter, default_registry
from model_audit.exceptions import UnknownProviderError


def test_default_registry_has_builtin_providers() -> None:
    registry = default_registry()
    assert registry.providers() == ["anthropic", "ollama", "openai"]
    assert registry.has_provider("OpenAI")


def test_create_is_case_insensitive() -> None:
    adapter = default_registry().create("Ollama", {"model": "llama3"})
    assert isinstance(adapter, OllamaAdapter)


def test_unknown_provider_lists_available() -> None:
    with pytest.raises(UnknownProviderError) as excinfo:
        default_registry().create("bard", {})

    assert excinfo.value.available == ["anthropic", "ollama", "openai"]
    assert "Unknown adapter provider: bard. Available: anthropic, ollama, openai" in str(excinfo.value)


def test_registrations_are_per_instance() -> None:
    class FakeAdapter:
        provider = "fake"

        def __init__(self, config: Mapping[str, Any]) -> None:
            self.config = dict(config)

    custom = AdapterRegistry()
    custom.register("Fake", FakeAdapter)  # type: ignore[arg-type]

    created = custom.create("fake", {"model": "x"})
    assert isinstance(created, FakeAdapter)
    assert not default_registry().has_provider("fake")
    assert custom.providers() == ["fake"]
