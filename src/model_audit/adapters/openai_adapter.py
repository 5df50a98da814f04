"""OpenAI chat-completions adapter built on the official SDK."""

import logging
import threading
import time
from typing import Any, Dict, List, Mapping, Optional, cast

import httpx
from openai import OpenAI, OpenAIError

from ..domain import GenerationRequest, GenerationResponse, TokenUsage
from ..exceptions import ConfigurationError, ProviderError
from ..infrastructure.utility_services import ResponseParser
from ..services import IModelAdapter, IResponseParser
from .base import config_value, elapsed_ms, check_connection

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-3.5-turbo"
DEFAULT_TEMPERATURE = 0.7


class OpenAIAdapter(IModelAdapter):
    """Thread-safe adapter for OpenAI-compatible chat backends."""

    provider = "openai"

    def __init__(
        self,
        config: Mapping[str, Any],
        *,
        timeout: float = 120,
        max_retries: int = 2,
        response_parser: Optional[IResponseParser] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self._config: Dict[str, Any] = dict(config)
        api_key = config_value(self._config, "api_key", "apiKey")
        if not api_key:
            raise ConfigurationError("OpenAI API key is required", context={"provider": self.provider})
        self._api_key = api_key
        self._base_url = config_value(self._config, "base_url", "baseUrl") or DEFAULT_BASE_URL
        self._model = config_value(self._config, "model") or DEFAULT_MODEL
        self._timeout = timeout
        self._max_retries = max_retries
        self._parser = response_parser or ResponseParser()
        self._logger = logger or logging.getLogger(__name__)
        self._lock = threading.RLock()
        self._client: Optional[OpenAI] = None
        self._http_client: Optional[httpx.Client] = None

    @property
    def model(self) -> str:
        return self._model

    def get_config(self) -> Dict[str, Any]:
        return dict(self._config)

    def validate_config(self) -> bool:
        return bool(config_value(self._config, "api_key", "apiKey") and config_value(self._config, "model"))

    def test_connection(self) -> bool:
        return check_connection(self)

    def _ensure_client(self) -> OpenAI:
        """Lazily create and cache the OpenAI client."""
        with self._lock:
            if self._client is None:
                self._http_client = httpx.Client(http2=True, timeout=httpx.Timeout(self._timeout, connect=10))
                self._client = OpenAI(
                    api_key=self._api_key,
                    base_url=self._base_url,
                    http_client=self._http_client,
                    max_retries=self._max_retries,
                )
                self._logger.debug("Initialized OpenAI client with persistent HTTP/2 connection pool.")
            return self._client

    def _build_messages(self, request: GenerationRequest) -> List[Dict[str, str]]:
        messages: List[Dict[str, str]] = []
        if request.system_prompt:
            messages.append({"role": "system", "content": request.system_prompt})
        messages.append({"role": "user", "content": request.prompt})
        return messages

    def generate(self, request: GenerationRequest) -> GenerationResponse:
        client = self._ensure_client()
        params: Dict[str, Any] = {
            "model": self._model,
            "messages": self._build_messages(request),
            "temperature": request.temperature if request.temperature is not None else DEFAULT_TEMPERATURE,
        }
        if request.max_tokens is not None:
            params["max_tokens"] = request.max_tokens
        if request.stop_sequences:
            params["stop"] = list(request.stop_sequences)

        self._logger.debug(
            "POST %s/chat/completions model=%s max_tokens=%s temperature=%.2f",
            self._base_url,
            self._model,
            request.max_tokens,
            params["temperature"],
        )

        started = time.perf_counter()
        try:
            chat_with_raw = cast(Any, client).chat.completions.with_raw_response
            raw_response = chat_with_raw.create(**params)
            completion = raw_response.parse()
        except OpenAIError as exc:
            self._logger.error("OpenAI request failed: %s", exc)
            raise ProviderError(
                f"OpenAI API error: {getattr(exc, 'message', None) or exc}",
                provider=self.provider,
                status_code=getattr(exc, "status_code", None),
            ) from exc
        latency = elapsed_ms(started)

        payload = cast(Dict[str, Any], completion.model_dump())
        self._logger.debug("Received response latency=%.1fms model=%s", latency, self._model)

        metadata: Dict[str, Any] = {}
        if payload.get("id"):
            metadata["response_id"] = payload["id"]

        return GenerationResponse(
            text=self._parser.extract_text(payload),
            finish_reason=self._parser.extract_finish_reason(payload),
            usage=self._extract_usage(payload),
            latency_ms=latency,
            model=self._model,
            metadata=metadata,
        )

    @staticmethod
    def _extract_usage(payload: Dict[str, Any]) -> Optional[TokenUsage]:
        usage = payload.get("usage")
        if not isinstance(usage, dict):
            return None
        usage_map = cast(Dict[str, Any], usage)
        return TokenUsage(
            prompt_tokens=usage_map.get("prompt_tokens"),
            completion_tokens=usage_map.get("completion_tokens"),
            total_tokens=usage_map.get("total_tokens"),
        )

    def close(self) -> None:
        """Close connections and cleanup resources."""
        with self._lock:
            if self._http_client:
                self._http_client.close()
                self._http_client = None
            self._client = None

    def __enter__(self) -> "OpenAIAdapter":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


__all__ = ["OpenAIAdapter"]
