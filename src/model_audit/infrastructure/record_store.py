"""Record store implementations for model, audit and comparison records."""

import copy
import logging
import threading
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..exceptions import NotFoundError, RepositoryError
from ..services import IFileSystemService, IRecordStore, ITimeService
from .utility_services import FileSystemService, TimeService

LOGGER = logging.getLogger(__name__)

MODELS = "models"
AUDITS = "audits"
COMPARISONS = "comparisons"


def _matches(record: Dict[str, Any], filters: Dict[str, Any]) -> bool:
    return all(record.get(key) == value for key, value in filters.items())


def _newest_first(records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    # Reverse first so that equal timestamps keep newest-inserted first.
    return sorted(reversed(records), key=lambda r: str(r.get("created_at", "")), reverse=True)


class InMemoryRecordStore(IRecordStore):
    """Process-local store; every read and write deep-copies the record."""

    def __init__(self, time_service: Optional[ITimeService] = None):
        self._time = time_service or TimeService()
        self._lock = threading.RLock()
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}

    def create(self, collection: str, record: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            stored = copy.deepcopy(record)
            stored.setdefault("id", uuid.uuid4().hex)
            stored.setdefault("created_at", self._time.now_iso())
            bucket = self._collections.setdefault(collection, {})
            if stored["id"] in bucket:
                raise RepositoryError(f"Duplicate id in {collection}: {stored['id']}")
            bucket[stored["id"]] = stored
            return copy.deepcopy(stored)

    def get(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._collections.get(collection, {}).get(record_id)
            return copy.deepcopy(record) if record is not None else None

    def update(self, collection: str, record_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            bucket = self._collections.get(collection, {})
            if record_id not in bucket:
                raise NotFoundError(f"{collection} record {record_id} not found", kind=collection, identifier=record_id)
            updated = {**bucket[record_id], **copy.deepcopy(changes), "id": record_id}
            bucket[record_id] = updated
            return copy.deepcopy(updated)

    def find(self, collection: str, **filters: Any) -> List[Dict[str, Any]]:
        with self._lock:
            records = [r for r in self._collections.get(collection, {}).values() if _matches(r, filters)]
            return copy.deepcopy(_newest_first(records))

    def count(self, collection: str, **filters: Any) -> int:
        with self._lock:
            return sum(1 for r in self._collections.get(collection, {}).values() if _matches(r, filters))


class JsonFileRecordStore(IRecordStore):
    """Store persisting one JSON document per record under ``<base>/<collection>/<id>.json``."""

    def __init__(
        self,
        base_dir: Path,
        fs_service: Optional[IFileSystemService] = None,
        time_service: Optional[ITimeService] = None,
    ):
        """Initialize the file store.

        Args:
            base_dir: Root directory holding one sub-directory per collection
            fs_service: File system service for JSON operations
            time_service: Clock used to stamp ``created_at``
        """
        self._base_dir = base_dir
        self._fs = fs_service or FileSystemService()
        self._time = time_service or TimeService()
        self._lock = threading.RLock()

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def _path(self, collection: str, record_id: str) -> Path:
        if not record_id or "/" in record_id or "\\" in record_id or record_id.startswith("."):
            raise RepositoryError(f"Invalid record id: {record_id!r}")
        return self._base_dir / collection / f"{record_id}.json"

    def _read(self, path: Path) -> Dict[str, Any]:
        try:
            data = self._fs.read_json(path)
        except (OSError, ValueError) as exc:
            raise RepositoryError(f"Failed to read record {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise RepositoryError(f"Record {path} is not a JSON object")
        return data

    def _write(self, path: Path, record: Dict[str, Any]) -> None:
        try:
            self._fs.write_json(path, record)
        except (OSError, TypeError, ValueError) as exc:
            raise RepositoryError(f"Failed to write record {path}: {exc}") from exc

    def create(self, collection: str, record: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            stored = copy.deepcopy(record)
            stored.setdefault("id", uuid.uuid4().hex)
            stored.setdefault("created_at", self._time.now_iso())
            path = self._path(collection, str(stored["id"]))
            if path.exists():
                raise RepositoryError(f"Duplicate id in {collection}: {stored['id']}")
            self._write(path, stored)
            LOGGER.debug("Created %s record %s", collection, stored["id"])
            return stored

    def get(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            path = self._path(collection, record_id)
            if not path.exists():
                return None
            return self._read(path)

    def update(self, collection: str, record_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            path = self._path(collection, record_id)
            if not path.exists():
                raise NotFoundError(f"{collection} record {record_id} not found", kind=collection, identifier=record_id)
            updated = {**self._read(path), **copy.deepcopy(changes), "id": record_id}
            self._write(path, updated)
            return updated

    def _all(self, collection: str) -> List[Dict[str, Any]]:
        folder = self._base_dir / collection
        if not folder.is_dir():
            return []
        return [self._read(path) for path in sorted(folder.glob("*.json"))]

    def find(self, collection: str, **filters: Any) -> List[Dict[str, Any]]:
        with self._lock:
            return _newest_first([r for r in self._all(collection) if _matches(r, filters)])

    def count(self, collection: str, **filters: Any) -> int:
        with self._lock:
            return sum(1 for r in self._all(collection) if _matches(r, filters))


__all__ = [
    "MODELS",
    "AUDITS",
    "COMPARISONS",
    "InMemoryRecordStore",
    "JsonFileRecordStore",
]
