"""Service interfaces for dependency injection."""

from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from ..domain import GenerationRequest, GenerationResponse, TestPrompt


class IModelAdapter(Protocol):
    """Uniform capability over one model backend."""

    provider: str

    def get_config(self) -> Dict[str, Any]:
        """Return a copy of the adapter configuration."""
        ...

    def generate(self, request: GenerationRequest) -> GenerationResponse:
        """Generate a completion; raises ProviderError on backend failure."""
        ...

    def validate_config(self) -> bool:
        """Check required configuration fields without any network call."""
        ...

    def test_connection(self) -> bool:
        """Issue one minimal generation and report whether it succeeded."""
        ...

    def close(self) -> None:
        """Close connections and cleanup resources."""
        ...


class IPromptLoader(Protocol):
    """Interface for the prompt corpus."""

    def load_suite(self, name: str) -> List[TestPrompt]:
        """Return the ordered prompts for a suite."""
        ...


class IRecordStore(Protocol):
    """Key-value store for model, audit and comparison records."""

    def create(self, collection: str, record: Dict[str, Any]) -> Dict[str, Any]:
        """Persist a new record, assigning id and created_at when absent."""
        ...

    def get(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Return a copy of the record or None."""
        ...

    def update(self, collection: str, record_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        """Apply changes to a record as one whole-record write."""
        ...

    def find(self, collection: str, **filters: Any) -> List[Dict[str, Any]]:
        """Return records matching every filter, newest first."""
        ...

    def count(self, collection: str, **filters: Any) -> int:
        """Count records matching every filter."""
        ...


class ITimeService(Protocol):
    """Interface for time-related operations."""

    def now_iso(self) -> str:
        """Get current UTC timestamp in ISO-8601 format with Z suffix."""
        ...


class IRefusalDetector(Protocol):
    """Interface for detecting refusals in text."""

    def matches(self, text: str) -> List[str]:
        """Return the refusal terms found in text."""
        ...


class IResponseParser(Protocol):
    """Interface for parsing chat completion payloads."""

    def extract_text(self, payload: Dict[str, Any]) -> str:
        """Extract text content from API response payload."""
        ...

    def extract_finish_reason(self, payload: Dict[str, Any]) -> Optional[str]:
        """Extract the finish reason from API response payload."""
        ...


class IFileSystemService(Protocol):
    """Interface for file system operations."""

    def write_json(self, path: Path, data: Any) -> None:
        """Write data as JSON to path, creating directories as needed."""
        ...

    def read_json(self, path: Path) -> Any:
        """Read JSON data from path."""
        ...

    def create_temp_dir(self, prefix: str = "model-audit-") -> Path:
        """Create and return a temporary directory."""
        ...


__all__ = [
    "IModelAdapter",
    "IPromptLoader",
    "IRecordStore",
    "ITimeService",
    "IRefusalDetector",
    "IResponseParser",
    "IFileSystemService",
]
