"""Infrastructure implementations."""

from .config_manager import ConfigurationManager
from .prompts_manager import PromptsManager
from .record_store import AUDITS, COMPARISONS, MODELS, InMemoryRecordStore, JsonFileRecordStore
from .utility_services import (
    FileSystemService,
    RefusalDetector,
    ResponseParser,
    TimeService,
)

__all__ = [
    "ConfigurationManager",
    "PromptsManager",
    "MODELS",
    "AUDITS",
    "COMPARISONS",
    "InMemoryRecordStore",
    "JsonFileRecordStore",
    "TimeService",
    "RefusalDetector",
    "ResponseParser",
    "FileSystemService",
]
