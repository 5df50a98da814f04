"""Helpers shared by the backend adapters."""

import logging
import time
from typing import Any, Callable, Mapping, Optional

import httpx

from ..domain import GenerationRequest
from ..exceptions import ProviderError
from ..services import IModelAdapter

LOGGER = logging.getLogger(__name__)

CONNECTION_CHECK = GenerationRequest(prompt="Test", max_tokens=10)


def config_value(config: Mapping[str, Any], *names: str) -> Optional[str]:
    """Return the first non-empty string value among ``names``."""
    for name in names:
        value = config.get(name)
        if isinstance(value, str) and value:
            return value
    return None


def elapsed_ms(started: float) -> float:
    """Milliseconds since a ``time.perf_counter()`` reading."""
    return (time.perf_counter() - started) * 1000.0


def check_connection(adapter: IModelAdapter) -> bool:
    """Issue one minimal generation; any failure is reported as False."""
    try:
        adapter.generate(CONNECTION_CHECK)
        return True
    except Exception:
        LOGGER.error("Connection test failed for %s", adapter.provider, exc_info=True)
        return False


def provider_error_from_http(
    provider: str,
    label: str,
    exc: httpx.HTTPError,
    detail: Callable[[Any], Optional[str]],
) -> ProviderError:
    """Translate an httpx failure into a ProviderError carrying the backend message."""
    status_code: Optional[int] = None
    body: Optional[str] = None
    message = str(exc) or exc.__class__.__name__
    if isinstance(exc, httpx.HTTPStatusError):
        status_code = exc.response.status_code
        body = exc.response.text
        try:
            extracted = detail(exc.response.json())
        except ValueError:
            extracted = None
        if extracted:
            message = extracted
    return ProviderError(
        f"{label} API error: {message}",
        provider=provider,
        status_code=status_code,
        response_body=body,
    )


__all__ = ["CONNECTION_CHECK", "config_value", "elapsed_ms", "check_connection", "provider_error_from_http"]
