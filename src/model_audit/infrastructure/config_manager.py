"""Thread-safe configuration management."""

import json
import os
import threading
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, cast

import yaml

from ..domain import EngineSettings
from ..exceptions import ConfigurationError

ENV_PREFIX = "MODEL_AUDIT_"


class ConfigurationManager:
    """Thread-safe configuration manager with file and environment support."""

    def __init__(
        self,
        config_file: Optional[Path | str] = None,
        auto_reload: bool = False,
        env_prefix: str = ENV_PREFIX,
    ):
        """Initialize configuration manager.

        Args:
            config_file: Path to configuration file (YAML or JSON)
            auto_reload: Reload the file on access when it changed on disk
            env_prefix: Prefix for environment overrides (``engine.max_workers``
                is read from ``MODEL_AUDIT_ENGINE_MAX_WORKERS``)
        """
        self._config_file: Optional[Path] = Path(config_file) if isinstance(config_file, str) else config_file
        self._auto_reload = auto_reload
        self._env_prefix = env_prefix
        self._lock = threading.RLock()
        self._config: Dict[str, Any] = {}
        self._mtime: Optional[float] = None

        if self._config_file:
            self.reload()

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by dot-notation key.

        Environment variables override file config if present.
        """
        with self._lock:
            self._maybe_reload()

            env_value = os.getenv(self._env_key(key))
            if env_value is not None:
                return self._parse_env_value(env_value)

            current: Any = self._config
            for part in key.split("."):
                if not isinstance(current, Mapping):
                    return default
                current_map = cast(Mapping[str, Any], current)
                if part not in current_map:
                    return default
                current = current_map[part]

            return current if current is not None else default

    def set(self, key: str, value: Any) -> None:
        """Set an in-memory configuration value."""
        with self._lock:
            keys = key.split(".")
            config = self._config
            for part in keys[:-1]:
                if not isinstance(config.get(part), dict):
                    config[part] = {}
                config = config[part]
            config[keys[-1]] = value

    def get_section(self, section: str) -> Dict[str, Any]:
        """Get entire configuration section."""
        value = self.get(section, {})
        if isinstance(value, dict):
            return cast(Dict[str, Any], value)
        return {}

    def get_all(self) -> Dict[str, Any]:
        with self._lock:
            self._maybe_reload()
            return json.loads(json.dumps(self._config))

    def merge(self, config: Mapping[str, Any]) -> None:
        """Deep merge a configuration mapping into the current config."""
        with self._lock:
            self._deep_merge(self._config, {str(key): value for key, value in config.items()})

    def reload(self) -> None:
        """Reload configuration from file."""
        with self._lock:
            if not self._config_file:
                self._config = {}
                return

            if not self._config_file.exists():
                raise ConfigurationError(f"Configuration file not found: {self._config_file}")

            suffix = self._config_file.suffix.lower()
            data: Any
            with open(self._config_file, "r", encoding="utf-8") as handle:
                if suffix in {".yaml", ".yml"}:
                    data = yaml.safe_load(handle)
                elif suffix == ".json":
                    data = json.load(handle)
                else:
                    raise ConfigurationError(f"Unsupported configuration file format: {suffix}")

            if data is None:
                data = {}
            if not isinstance(data, dict):
                raise ConfigurationError("Configuration file must contain a mapping/object")

            self._config = dict(cast(Dict[str, Any], data))
            self._mtime = self._config_file.stat().st_mtime

    def engine_settings(self) -> EngineSettings:
        """Build engine pacing settings from the ``engine`` section."""
        defaults = EngineSettings()
        try:
            return EngineSettings(
                prompt_delay_s=float(self.get("engine.prompt_delay_s", defaults.prompt_delay_s)),
                sample_delay_s=float(self.get("engine.sample_delay_s", defaults.sample_delay_s)),
                suite_pause_s=float(self.get("engine.suite_pause_s", defaults.suite_pause_s)),
                max_workers=int(self.get("engine.max_workers", defaults.max_workers)),
            )
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid engine configuration: {exc}") from exc

    def _env_key(self, key: str) -> str:
        return self._env_prefix + key.upper().replace(".", "_").replace("-", "_")

    def _maybe_reload(self) -> None:
        if not self._auto_reload or not self._config_file or not self._config_file.exists():
            return
        if self._config_file.stat().st_mtime != self._mtime:
            self.reload()

    @staticmethod
    def _deep_merge(target: Dict[str, Any], source: Mapping[str, Any]) -> None:
        for key, value in source.items():
            if key in target and isinstance(target[key], dict) and isinstance(value, dict):
                ConfigurationManager._deep_merge(target[key], value)
            else:
                target[key] = value

    @staticmethod
    def _parse_env_value(value: str) -> Any:
        """Parse environment variable value to appropriate type."""
        try:
            return json.loads(value)
        except (json.JSONDecodeError, ValueError):
            return value


__all__ = ["ConfigurationManager", "ENV_PREFIX"]
