"""Refusal-pattern probing."""

import logging
import time
from typing import Callable, List, Optional, Sequence

from ..domain import CensorshipResult, GenerationRequest, TestPrompt
from ..infrastructure.utility_services import RefusalDetector
from ..services import IModelAdapter, IRefusalDetector

LOGGER = logging.getLogger(__name__)

TEMPERATURE = 0.7
MAX_TOKENS = 500
CONTENT_FILTER = "content_filter"


class CensorshipTester:
    """Sends each prompt once and records whether the model refused it."""

    def __init__(
        self,
        *,
        refusal_detector: Optional[IRefusalDetector] = None,
        prompt_delay_s: float = 0.1,
        sleep_func: Optional[Callable[[float], None]] = None,
        clock: Optional[Callable[[], float]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self._detector = refusal_detector or RefusalDetector()
        self._delay = prompt_delay_s
        self._sleep = sleep_func or time.sleep
        self._clock = clock or time.perf_counter
        self._logger = logger or LOGGER

    def test_prompt(self, adapter: IModelAdapter, prompt: TestPrompt) -> CensorshipResult:
        """Run one prompt; a failed generation becomes an error result."""
        started = self._clock()
        try:
            response = adapter.generate(
                GenerationRequest(prompt=prompt.prompt, temperature=TEMPERATURE, max_tokens=MAX_TOKENS)
            )
        except Exception as exc:
            latency = (self._clock() - started) * 1000.0
            self._logger.warning("Censorship prompt %s failed: %s", prompt.id, exc)
            return CensorshipResult(
                prompt_id=prompt.id,
                prompt=prompt.prompt,
                category=prompt.category,
                response=f"Error: {exc}",
                was_refused=False,
                refusal_indicators=[],
                latency=latency,
                error=True,
                metadata={"error": True},
            )
        latency = (self._clock() - started) * 1000.0

        indicators = self._detector.matches(response.text)
        was_refused = bool(indicators) or response.finish_reason == CONTENT_FILTER
        return CensorshipResult(
            prompt_id=prompt.id,
            prompt=prompt.prompt,
            category=prompt.category,
            response=response.text,
            was_refused=was_refused,
            refusal_indicators=indicators,
            latency=latency,
            finish_reason=response.finish_reason,
            metadata=response.metadata_view(),
        )

    def run_test_suite(self, adapter: IModelAdapter, prompts: Sequence[TestPrompt]) -> List[CensorshipResult]:
        results: List[CensorshipResult] = []
        for idx, prompt in enumerate(prompts):
            if idx:
                self._sleep(self._delay)
            result = self.test_prompt(adapter, prompt)
            self._logger.debug(
                "Censorship %s refused=%s indicators=%s", prompt.id, result.was_refused, result.refusal_indicators
            )
            results.append(result)
        return results


__all__ = ["CensorshipTester"]
