"""Adapter for a local Ollama server."""

import logging
import threading
import time
from typing import Any, Dict, Mapping, Optional

import httpx

from ..domain import GenerationRequest, GenerationResponse, TokenUsage
from ..services import IModelAdapter
from .base import config_value, elapsed_ms, check_connection, provider_error_from_http

DEFAULT_BASE_URL = "http://localhost:11434"
DEFAULT_MODEL = "llama2"
# Local inference is slow; allow minutes per call.
DEFAULT_TIMEOUT = 300.0

PASSTHROUGH_FIELDS = ("total_duration", "load_duration", "eval_duration")


def _error_detail(payload: Any) -> Optional[str]:
    if isinstance(payload, dict) and payload.get("error"):
        return str(payload["error"])
    return None


class OllamaAdapter(IModelAdapter):
    """Talks to ``/api/generate`` with streaming disabled; no credential needed."""

    provider = "ollama"

    def __init__(
        self,
        config: Mapping[str, Any],
        *,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.BaseTransport] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self._config: Dict[str, Any] = dict(config)
        self._base_url = config_value(self._config, "base_url", "baseUrl") or DEFAULT_BASE_URL
        self._model = config_value(self._config, "model") or DEFAULT_MODEL
        self._timeout = timeout
        self._transport = transport
        self._logger = logger or logging.getLogger(__name__)
        self._lock = threading.RLock()
        self._client: Optional[httpx.Client] = None

    @property
    def model(self) -> str:
        return self._model

    def get_config(self) -> Dict[str, Any]:
        return dict(self._config)

    def validate_config(self) -> bool:
        return bool(config_value(self._config, "model"))

    def test_connection(self) -> bool:
        return check_connection(self)

    def _ensure_client(self) -> httpx.Client:
        with self._lock:
            if self._client is None:
                self._client = httpx.Client(
                    base_url=self._base_url,
                    timeout=httpx.Timeout(self._timeout, connect=10),
                    transport=self._transport,
                )
            return self._client

    def _build_payload(self, request: GenerationRequest) -> Dict[str, Any]:
        prompt = request.prompt
        if request.system_prompt:
            prompt = f"{request.system_prompt}\n\n{request.prompt}"
        options: Dict[str, Any] = {}
        if request.temperature is not None:
            options["temperature"] = request.temperature
        if request.max_tokens is not None:
            options["num_predict"] = request.max_tokens
        if request.stop_sequences:
            options["stop"] = list(request.stop_sequences)
        return {"model": self._model, "prompt": prompt, "stream": False, "options": options}

    def generate(self, request: GenerationRequest) -> GenerationResponse:
        client = self._ensure_client()
        payload = self._build_payload(request)
        self._logger.debug("POST %s/api/generate model=%s", self._base_url, self._model)

        started = time.perf_counter()
        try:
            response = client.post("/api/generate", json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as exc:
            self._logger.error("Ollama request failed: %s", exc)
            raise provider_error_from_http(self.provider, "Ollama", exc, _error_detail) from exc
        latency = elapsed_ms(started)

        usage: Optional[TokenUsage] = None
        eval_count = data.get("eval_count")
        if eval_count is not None:
            prompt_count = data.get("prompt_eval_count") or 0
            usage = TokenUsage(
                prompt_tokens=prompt_count,
                completion_tokens=eval_count,
                total_tokens=prompt_count + eval_count,
            )

        metadata = {key: data[key] for key in PASSTHROUGH_FIELDS if key in data}

        return GenerationResponse(
            text=str(data.get("response") or ""),
            finish_reason="stop" if data.get("done") else "length",
            usage=usage,
            latency_ms=latency,
            model=self._model,
            metadata=metadata,
        )

    def close(self) -> None:
        with self._lock:
            if self._client:
                self._client.close()
                self._client = None

    def __enter__(self) -> "OllamaAdapter":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


__all__ = ["OllamaAdapter"]
