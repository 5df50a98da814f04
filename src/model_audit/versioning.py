"""Model configuration records keyed by name, provider and version."""

import logging
from typing import Any, Dict, List, Mapping, Optional

from .adapters.registry import AdapterRegistry
from .domain import AuditRecord, ModelConfig
from .exceptions import UnknownProviderError, ValidationError
from .infrastructure.record_store import AUDITS, MODELS
from .services import IRecordStore

LOGGER = logging.getLogger(__name__)


class ModelVersioning:
    """Create, update and look up audited model endpoints.

    A name/provider/version triple identifies one logical version; registering
    the same triple again replaces its configuration in place.
    """

    def __init__(self, store: IRecordStore, registry: AdapterRegistry, logger: Optional[logging.Logger] = None):
        self._store = store
        self._registry = registry
        self._logger = logger or LOGGER

    def _with_count(self, data: Mapping[str, Any]) -> ModelConfig:
        return ModelConfig.from_dict(data, audit_count=self._store.count(AUDITS, model_id=data["id"]))

    def list_models(self) -> List[ModelConfig]:
        return [self._with_count(data) for data in self._store.find(MODELS)]

    def get_model(self, model_id: str) -> Optional[ModelConfig]:
        data = self._store.get(MODELS, model_id)
        return self._with_count(data) if data is not None else None

    def upsert_model(self, name: str, provider: str, version: str, config: Mapping[str, Any]) -> ModelConfig:
        """Update the matching name/provider/version record or create a new one."""
        for field_name, value in (("name", name), ("provider", provider), ("version", version)):
            if not isinstance(value, str) or not value.strip():
                raise ValidationError(f"Missing required field: {field_name}", field=field_name, value=value)
        provider_key = provider.lower()
        if not self._registry.has_provider(provider_key):
            raise UnknownProviderError(provider, self._registry.providers())

        config_data: Dict[str, Any] = dict(config)
        existing = self._store.find(MODELS, name=name, provider=provider_key, version=version)
        if existing:
            updated = self._store.update(MODELS, existing[0]["id"], {"config": config_data})
            self._logger.info("Updated model %s (%s %s)", updated["id"], name, version)
            return self._with_count(updated)

        created = self._store.create(
            MODELS, {"name": name, "provider": provider_key, "version": version, "config": config_data}
        )
        self._logger.info("Registered model %s (%s/%s %s)", created["id"], provider_key, name, version)
        return ModelConfig.from_dict(created)

    def get_model_versions(self, name: str, provider: str) -> List[ModelConfig]:
        return [self._with_count(data) for data in self._store.find(MODELS, name=name, provider=provider.lower())]

    def get_audit_history(self, model_id: str) -> List[AuditRecord]:
        """Audits of one model, newest first."""
        return [AuditRecord.from_dict(data) for data in self._store.find(AUDITS, model_id=model_id)]


__all__ = ["ModelVersioning"]
