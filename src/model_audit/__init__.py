"""Public API for the model-audit package."""

from .adapters import AdapterRegistry, AnthropicAdapter, OllamaAdapter, OpenAIAdapter, default_registry
from .comparison import ComparisonEngine
from .container import ServiceContainer, create_container
from .domain import (
    VALID_SUITES,
    AuditRecord,
    ComparisonRecord,
    EngineSettings,
    GenerationRequest,
    GenerationResponse,
    ModelConfig,
    TestPrompt,
)
from .engine import AuditEngine
from .service import AuditHandle, AuditService
from .suites import BiasTester, CensorshipTester, SideChannelScanner
from .versioning import ModelVersioning

__all__ = [
    "VALID_SUITES",
    "AdapterRegistry",
    "AnthropicAdapter",
    "AuditEngine",
    "AuditHandle",
    "AuditRecord",
    "AuditService",
    "BiasTester",
    "CensorshipTester",
    "ComparisonEngine",
    "ComparisonRecord",
    "EngineSettings",
    "GenerationRequest",
    "GenerationResponse",
    "ModelConfig",
    "ModelVersioning",
    "OllamaAdapter",
    "OpenAIAdapter",
    "ServiceContainer",
    "SideChannelScanner",
    "TestPrompt",
    "create_container",
    "default_registry",
]
