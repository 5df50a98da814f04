"""Thread-safe dependency injection container."""

import logging
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Optional

LOGGER = logging.getLogger(__name__)


class ServiceContainer:
    """Thread-safe dependency injection container."""

    def __init__(self) -> None:
        self._services: Dict[object, Any] = {}
        self._factories: Dict[object, Callable[[], Any]] = {}
        self._lock = threading.RLock()

    def register_singleton(self, interface: object, instance: Any) -> None:
        """Register a singleton service."""
        with self._lock:
            self._services[interface] = instance

    def register_factory(self, interface: object, factory: Callable[[], Any]) -> None:
        """Register a factory for creating instances."""
        with self._lock:
            self._factories[interface] = factory

    def resolve(self, interface: object) -> Any:
        """Resolve a service by interface."""
        with self._lock:
            if interface in self._services:
                return self._services[interface]

            if interface in self._factories:
                instance = self._factories[interface]()
                # Cache as singleton after first creation
                self._services[interface] = instance
                return instance

            name = getattr(interface, "__name__", repr(interface))
            raise ValueError(f"No registration found for {name}")

    def clear(self) -> None:
        """Clear all registrations and close resources."""
        with self._lock:
            for service in self._services.values():
                close = getattr(service, "close", None)
                if callable(close):
                    try:
                        close()
                    except Exception:
                        LOGGER.warning("Failed to close %s", type(service).__name__, exc_info=True)
            self._services.clear()
            self._factories.clear()


def create_container(
    config: Optional[Dict[str, Any]] = None,
    *,
    config_file: Optional[Path] = None,
) -> ServiceContainer:
    """Build a container wired from a configuration file and/or overrides.

    ``config`` is merged over the file contents, so callers can override single
    keys (``{"storage": {"backend": "memory"}}``) without a file.
    """
    from .adapters.registry import AdapterRegistry, default_registry
    from .exceptions import ConfigurationError
    from .infrastructure.config_manager import ConfigurationManager
    from .infrastructure.prompts_manager import PromptsManager
    from .infrastructure.record_store import InMemoryRecordStore, JsonFileRecordStore
    from .infrastructure.utility_services import FileSystemService, RefusalDetector, TimeService
    from .service import AuditService
    from .services import IFileSystemService, IPromptLoader, IRecordStore, IRefusalDetector, ITimeService

    container = ServiceContainer()

    config_manager = ConfigurationManager(config_file=config_file)
    if config:
        config_manager.merge(config)
    container.register_singleton(ConfigurationManager, config_manager)

    time_service = TimeService()
    fs_service = FileSystemService()
    container.register_singleton(ITimeService, time_service)
    container.register_singleton(IFileSystemService, fs_service)
    refusal_detector = RefusalDetector()
    container.register_singleton(IRefusalDetector, refusal_detector)

    backend = str(config_manager.get("storage.backend", "memory")).lower()
    store: IRecordStore
    if backend == "memory":
        store = InMemoryRecordStore(time_service)
    elif backend == "json":
        path = config_manager.get("storage.path")
        base_dir = Path(path) if path else fs_service.create_temp_dir()
        store = JsonFileRecordStore(base_dir, fs_service, time_service)
    else:
        raise ConfigurationError(f"Unknown storage backend: {backend}. Supported: memory, json")
    container.register_singleton(IRecordStore, store)

    prompts_file = config_manager.get("prompts.file")
    prompts_manager = PromptsManager(prompts_file=Path(prompts_file) if prompts_file else None)
    container.register_singleton(IPromptLoader, prompts_manager)

    registry = default_registry()
    container.register_singleton(AdapterRegistry, registry)

    container.register_factory(
        AuditService,
        lambda: AuditService(
            store,
            prompts_manager,
            registry=registry,
            settings=config_manager.engine_settings(),
            time_service=time_service,
            refusal_detector=refusal_detector,
        ),
    )

    return container


__all__ = ["ServiceContainer", "create_container"]
