"""Custom exception hierarchy for model-audit."""

from typing import Any, Dict, List, Optional


class ModelAuditException(Exception):
    """Base exception for all model-audit errors."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        """Initialize exception with message and optional context.

        Args:
            message: Human-readable error message
            context: Optional dictionary with additional error context
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        """Return string representation with context if available."""
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} ({context_str})"
        return self.message


class ConfigurationError(ModelAuditException):
    """Raised when adapter or application configuration is invalid or missing."""

    pass


class UnknownProviderError(ConfigurationError):
    """Raised when no adapter is registered for a provider name."""

    def __init__(self, provider: str, available: List[str], context: Optional[Dict[str, Any]] = None):
        """Initialize with the rejected provider and the registered names.

        Args:
            provider: Provider name that was requested
            available: Provider names currently registered
            context: Additional context
        """
        message = f"Unknown adapter provider: {provider}. Available: {', '.join(available)}"
        super().__init__(message, context)
        self.provider = provider
        self.available = list(available)


class ProviderError(ModelAuditException):
    """Raised when a single generation call against a backend fails."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        """Initialize with backend response information.

        Args:
            message: Error message reported by the backend
            provider: Provider name of the failing adapter
            status_code: HTTP status code, when one was received
            response_body: Raw response body, when one was received
            context: Additional context
        """
        super().__init__(message, context)
        self.provider = provider
        self.status_code = status_code
        self.response_body = response_body


class SuiteFailureError(ModelAuditException):
    """Raised when a whole suite runner fails before producing results."""

    def __init__(self, message: str, suite: Optional[str] = None, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, context)
        self.suite = suite


class EngineFailureError(ModelAuditException):
    """Raised when an audit run fails outside of the suite runners."""

    pass


class NotFoundError(ModelAuditException):
    """Raised when a model, audit or comparison id is unknown."""

    def __init__(
        self,
        message: str,
        kind: Optional[str] = None,
        identifier: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, context)
        self.kind = kind
        self.identifier = identifier


class PreconditionError(ModelAuditException):
    """Raised when an operation is requested against a record in the wrong state."""

    pass


class UnsupportedFormatError(ModelAuditException):
    """Raised when an export format other than json is requested."""

    def __init__(self, fmt: str, supported: Optional[List[str]] = None, context: Optional[Dict[str, Any]] = None):
        supported_list = supported or ["json"]
        super().__init__(f"Unsupported format: {fmt}. Supported: {', '.join(supported_list)}", context)
        self.format = fmt
        self.supported = supported_list


class ValidationError(ModelAuditException):
    """Raised when input validation fails."""

    def __init__(
        self, message: str, field: Optional[str] = None, value: Any = None, context: Optional[Dict[str, Any]] = None
    ):
        """Initialize with validation details.

        Args:
            message: Error message
            field: Field that failed validation
            value: Invalid value
            context: Additional context
        """
        super().__init__(message, context)
        self.field = field
        self.value = value


class PromptLoadError(ModelAuditException):
    """Raised when a prompt suite cannot be loaded."""

    pass


class RepositoryError(ModelAuditException):
    """Raised when the record store cannot persist or read a record."""

    pass


__all__ = [
    "ModelAuditException",
    "ConfigurationError",
    "UnknownProviderError",
    "ProviderError",
    "SuiteFailureError",
    "EngineFailureError",
    "NotFoundError",
    "PreconditionError",
    "UnsupportedFormatError",
    "ValidationError",
    "PromptLoadError",
    "RepositoryError",
]
