"""Thread-safe prompt corpus loader."""

import logging
import threading
from importlib import resources
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, cast

import yaml

from ..domain import TestPrompt
from ..exceptions import PromptLoadError
from ..services import IPromptLoader

LOGGER = logging.getLogger(__name__)


class PromptsManager(IPromptLoader):
    """Loads suite prompt sets from a YAML corpus without global state.

    The corpus is a mapping of suite name to ``{description, version, prompts}``
    where each prompt is ``{id, category, prompt}`` plus optional
    ``expected_behavior`` and ``description`` annotations.
    """

    def __init__(self, prompts_file: Optional[Path] = None):
        self._lock = threading.RLock()
        self._corpus_cache: Optional[Dict[str, Any]] = None
        self._prompts_file = prompts_file

    def _load_corpus(self) -> Dict[str, Any]:
        with self._lock:
            if self._corpus_cache is not None:
                return self._corpus_cache

            try:
                if self._prompts_file:
                    with open(self._prompts_file, "r", encoding="utf-8") as handle:
                        data = yaml.safe_load(handle)
                else:
                    resource = resources.files("model_audit") / "prompts.yaml"
                    with resource.open("r", encoding="utf-8") as handle:
                        data = yaml.safe_load(handle)
            except (OSError, yaml.YAMLError) as exc:
                raise PromptLoadError(f"Failed to load prompt corpus: {exc}") from exc

            if not isinstance(data, dict):
                raise PromptLoadError("Prompt corpus must be a mapping of suite names")

            self._corpus_cache = cast(Dict[str, Any], data)
            return self._corpus_cache

    def available_suites(self) -> List[str]:
        return [str(name) for name in self._load_corpus().keys()]

    def load_suite(self, name: str) -> List[TestPrompt]:
        """Return the ordered prompts for a suite."""
        corpus = self._load_corpus()
        suite = corpus.get(name.lower())
        if not isinstance(suite, dict):
            raise PromptLoadError(f"Unknown test suite: {name}", context={"suite": name})

        raw_prompts = cast(Dict[str, Any], suite).get("prompts", [])
        if not isinstance(raw_prompts, list):
            return []

        prompts: List[TestPrompt] = []
        for entry in cast(Iterable[Any], raw_prompts):
            prompt = self._parse_prompt(entry)
            if prompt is None:
                LOGGER.debug("Skipping malformed prompt entry in suite %s: %r", name, entry)
                continue
            prompts.append(prompt)
        return prompts

    @staticmethod
    def _parse_prompt(entry: Any) -> Optional[TestPrompt]:
        if not isinstance(entry, dict):
            return None
        item = cast(Dict[str, Any], entry)
        prompt_id = item.get("id")
        text = item.get("prompt")
        if not isinstance(prompt_id, str) or not isinstance(text, str):
            return None
        category = item.get("category")
        expected = item.get("expected_behavior")
        description = item.get("description")
        return TestPrompt(
            id=prompt_id,
            category=category if isinstance(category, str) else "general",
            prompt=text,
            expected_behavior=expected if isinstance(expected, str) else None,
            description=description if isinstance(description, str) else None,
        )

    def reload(self) -> None:
        """Force reload of the corpus from disk."""
        with self._lock:
            self._corpus_cache = None


__all__ = ["PromptsManager"]
