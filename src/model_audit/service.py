"""Facade over model versioning, audit runs and comparisons."""

import json
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from .adapters.registry import AdapterRegistry, default_registry
from .comparison import ComparisonEngine
from .domain import VALID_SUITES, AuditRecord, ComparisonRecord, EngineSettings, ModelConfig
from .engine import AuditEngine
from .exceptions import ConfigurationError, NotFoundError, UnsupportedFormatError, ValidationError
from .infrastructure.prompts_manager import PromptsManager
from .infrastructure.record_store import AUDITS, InMemoryRecordStore
from .infrastructure.utility_services import TimeService
from .services import IModelAdapter, IPromptLoader, IRecordStore, IRefusalDetector, ITimeService
from .versioning import ModelVersioning

LOGGER = logging.getLogger(__name__)

EXPORT_FORMATS = ["json"]


@dataclass(frozen=True)
class AuditHandle:
    """A started audit: its id plus the future of the background run."""

    run_id: str
    future: "Future[AuditRecord]"


def validate_suites(suites: Sequence[str]) -> List[str]:
    """Return the suites as a list; unknown or repeated names raise ValidationError."""
    if isinstance(suites, str) or not suites:
        raise ValidationError(
            f"At least one test suite is required. Valid: {', '.join(VALID_SUITES)}", field="test_suites", value=suites
        )
    invalid = [suite for suite in suites if suite not in VALID_SUITES]
    if invalid:
        raise ValidationError(
            f"Invalid test suites: {', '.join(invalid)}. Valid: {', '.join(VALID_SUITES)}",
            field="test_suites",
            value=list(suites),
        )
    duplicates = sorted({suite for suite in suites if list(suites).count(suite) > 1})
    if duplicates:
        raise ValidationError(
            f"Duplicate test suites: {', '.join(duplicates)}", field="test_suites", value=list(suites)
        )
    return list(suites)


class AuditService:
    """Entry point used by the HTTP layer and the CLI.

    Audits run on a thread pool; ``start_audit`` returns as soon as the
    ``running`` record exists.
    """

    def __init__(
        self,
        store: Optional[IRecordStore] = None,
        prompt_loader: Optional[IPromptLoader] = None,
        *,
        registry: Optional[AdapterRegistry] = None,
        settings: Optional[EngineSettings] = None,
        time_service: Optional[ITimeService] = None,
        refusal_detector: Optional[IRefusalDetector] = None,
        sleep_func: Optional[Callable[[float], None]] = None,
        clock: Optional[Callable[[], float]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self._time = time_service or TimeService()
        self._store = store or InMemoryRecordStore(self._time)
        self._registry = registry or default_registry()
        self._settings = settings or EngineSettings()
        self._logger = logger or LOGGER
        self._models = ModelVersioning(self._store, self._registry)
        self._engine = AuditEngine(
            self._store,
            prompt_loader or PromptsManager(),
            settings=self._settings,
            time_service=self._time,
            refusal_detector=refusal_detector,
            sleep_func=sleep_func,
            clock=clock,
        )
        self._comparisons = ComparisonEngine(self._store)
        self._executor = ThreadPoolExecutor(max_workers=self._settings.max_workers, thread_name_prefix="audit")
        self._lock = threading.RLock()
        self._handles: Dict[str, "Future[AuditRecord]"] = {}

    @property
    def registry(self) -> AdapterRegistry:
        return self._registry

    @property
    def engine(self) -> AuditEngine:
        return self._engine

    # ------------------------------------------------------------------ #
    # Models

    def list_models(self) -> List[ModelConfig]:
        return self._models.list_models()

    def get_model(self, model_id: str) -> Optional[ModelConfig]:
        return self._models.get_model(model_id)

    def upsert_model(self, name: str, provider: str, version: str, config: Mapping[str, Any]) -> ModelConfig:
        return self._models.upsert_model(name, provider, version, config)

    def get_model_versions(self, name: str, provider: str) -> List[ModelConfig]:
        return self._models.get_model_versions(name, provider)

    def get_audit_history(self, model_id: str) -> List[AuditRecord]:
        return self._models.get_audit_history(model_id)

    def _require_model(self, model_id: str) -> ModelConfig:
        model = self._models.get_model(model_id)
        if model is None:
            raise NotFoundError(f"Model {model_id} not found", kind="model", identifier=model_id)
        return model

    def _build_adapter(self, model: ModelConfig) -> IModelAdapter:
        adapter = self._registry.create(model.provider, model.config)
        if not adapter.validate_config():
            adapter.close()
            raise ConfigurationError("Invalid model configuration", context={"model_id": model.id})
        return adapter

    def test_connection(self, model_id: str) -> bool:
        adapter = self._build_adapter(self._require_model(model_id))
        try:
            return adapter.test_connection()
        finally:
            adapter.close()

    # ------------------------------------------------------------------ #
    # Audits

    def start_audit(self, model_id: str, suites: Sequence[str]) -> AuditHandle:
        """Validate, create the ``running`` record and hand the run to the pool."""
        requested = validate_suites(suites)
        model = self._require_model(model_id)
        adapter = self._build_adapter(model)

        record = self._engine.create_run(model.id, requested)
        try:
            future = self._executor.submit(self._run_worker, record.id, model.id, requested, adapter)
        except RuntimeError as exc:
            adapter.close()
            self._engine.fail_run(record.id, f"Audit could not be scheduled: {exc}")
            raise
        with self._lock:
            self._handles[record.id] = future
        future.add_done_callback(lambda done: self._on_done(record.id, done))
        return AuditHandle(run_id=record.id, future=future)

    def _run_worker(self, run_id: str, model_id: str, suites: List[str], adapter: IModelAdapter) -> AuditRecord:
        try:
            return self._engine.run_audit(model_id, suites, adapter, existing_run_id=run_id)
        finally:
            adapter.close()

    def _on_done(self, run_id: str, future: "Future[AuditRecord]") -> None:
        with self._lock:
            self._handles.pop(run_id, None)
        exc = future.exception()
        if exc is not None:
            self._logger.error("Background audit %s failed: %s", run_id, exc)
        else:
            self._logger.debug("Background audit %s finished", run_id)

    def get_run_handle(self, run_id: str) -> Optional["Future[AuditRecord]"]:
        """Future of an in-flight run; None once the run has finished."""
        with self._lock:
            return self._handles.get(run_id)

    def get_audit(self, audit_id: str) -> Optional[AuditRecord]:
        return self._engine.get_audit_result(audit_id)

    def list_audits(
        self, model_id: Optional[str] = None, status: Optional[str] = None, limit: int = 50
    ) -> List[AuditRecord]:
        if limit < 1:
            raise ValidationError("limit must be a positive integer", field="limit", value=limit)
        filters: Dict[str, Any] = {}
        if model_id:
            filters["model_id"] = model_id
        if status:
            filters["status"] = status
        return [AuditRecord.from_dict(data) for data in self._store.find(AUDITS, **filters)[:limit]]

    def export_audit(self, audit_id: str, fmt: str = "json") -> bytes:
        audit = self.get_audit(audit_id)
        if audit is None:
            raise NotFoundError(f"Audit {audit_id} not found", kind="audit", identifier=audit_id)
        if fmt not in EXPORT_FORMATS:
            raise UnsupportedFormatError(fmt, EXPORT_FORMATS)
        return json.dumps(audit.to_dict(), indent=2, sort_keys=True, ensure_ascii=False).encode("utf-8")

    # ------------------------------------------------------------------ #
    # Comparisons

    def compare_audits(self, audit_a_id: str, audit_b_id: str) -> ComparisonRecord:
        return self._comparisons.compare_audits(audit_a_id, audit_b_id)

    def get_comparison(self, comparison_id: str) -> Optional[ComparisonRecord]:
        return self._comparisons.get_comparison(comparison_id)

    def list_comparisons_for_model(self, model_id: str) -> List[ComparisonRecord]:
        return self._comparisons.list_comparisons_for_model(model_id)

    def close(self) -> None:
        """Wait for in-flight runs and release the worker pool."""
        self._executor.shutdown(wait=True)

    def __enter__(self) -> "AuditService":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


__all__ = ["AuditHandle", "AuditService", "EXPORT_FORMATS", "validate_suites"]
