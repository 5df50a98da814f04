"""Anthropic messages API adapter."""

import logging
import threading
import time
from typing import Any, Dict, List, Mapping, Optional

import httpx

from ..domain import GenerationRequest, GenerationResponse, TokenUsage
from ..exceptions import ConfigurationError
from ..services import IModelAdapter
from .base import config_value, elapsed_ms, check_connection, provider_error_from_http

DEFAULT_BASE_URL = "https://api.anthropic.com/v1"
DEFAULT_MODEL = "claude-3-sonnet-20240229"
DEFAULT_MAX_TOKENS = 1024
DEFAULT_TEMPERATURE = 0.7
API_VERSION = "2023-06-01"


def _error_detail(payload: Any) -> Optional[str]:
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
    return None


class AnthropicAdapter(IModelAdapter):
    provider = "anthropic"

    def __init__(
        self,
        config: Mapping[str, Any],
        *,
        timeout: float = 120,
        transport: Optional[httpx.BaseTransport] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self._config: Dict[str, Any] = dict(config)
        api_key = config_value(self._config, "api_key", "apiKey")
        if not api_key:
            raise ConfigurationError("Anthropic API key is required", context={"provider": self.provider})
        self._api_key = api_key
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
        return bool(config_value(self._config, "api_key", "apiKey") and config_value(self._config, "model"))

    def test_connection(self) -> bool:
        return check_connection(self)

    def _ensure_client(self) -> httpx.Client:
        with self._lock:
            if self._client is None:
                self._client = httpx.Client(
                    base_url=self._base_url,
                    headers={
                        "x-api-key": self._api_key,
                        "anthropic-version": API_VERSION,
                        "content-type": "application/json",
                    },
                    timeout=httpx.Timeout(self._timeout, connect=10),
                    transport=self._transport,
                )
            return self._client

    def _build_payload(self, request: GenerationRequest) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self._model,
            "messages": [{"role": "user", "content": request.prompt}],
            "max_tokens": request.max_tokens if request.max_tokens is not None else DEFAULT_MAX_TOKENS,
            "temperature": request.temperature if request.temperature is not None else DEFAULT_TEMPERATURE,
        }
        if request.system_prompt:
            payload["system"] = request.system_prompt
        if request.stop_sequences:
            payload["stop_sequences"] = list(request.stop_sequences)
        return payload

    def generate(self, request: GenerationRequest) -> GenerationResponse:
        client = self._ensure_client()
        payload = self._build_payload(request)
        self._logger.debug("POST %s/messages model=%s", self._base_url, self._model)

        started = time.perf_counter()
        try:
            response = client.post("/messages", json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as exc:
            self._logger.error("Anthropic request failed: %s", exc)
            raise provider_error_from_http(self.provider, "Anthropic", exc, _error_detail) from exc
        latency = elapsed_ms(started)

        metadata: Dict[str, Any] = {}
        if data.get("id"):
            metadata["response_id"] = data["id"]

        return GenerationResponse(
            text=self._extract_text(data.get("content")),
            finish_reason=data.get("stop_reason"),
            usage=self._extract_usage(data.get("usage")),
            latency_ms=latency,
            model=self._model,
            metadata=metadata,
        )

    @staticmethod
    def _extract_text(content: Any) -> str:
        if isinstance(content, str):
            return content
        if not isinstance(content, list):
            return ""
        parts: List[str] = []
        for block in content:
            if isinstance(block, dict) and block.get("type", "text") == "text":
                text = block.get("text")
                if isinstance(text, str):
                    parts.append(text)
        return "".join(parts)

    @staticmethod
    def _extract_usage(usage: Any) -> Optional[TokenUsage]:
        if not isinstance(usage, dict):
            return None
        input_tokens = usage.get("input_tokens")
        output_tokens = usage.get("output_tokens")
        total = None
        if isinstance(input_tokens, int) and isinstance(output_tokens, int):
            total = input_tokens + output_tokens
        return TokenUsage(prompt_tokens=input_tokens, completion_tokens=output_tokens, total_tokens=total)

    def close(self) -> None:
        with self._lock:
            if self._client:
                self._client.close()
                self._client = None

    def __enter__(self) -> "AnthropicAdapter":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


__all__ = ["AnthropicAdapter"]
