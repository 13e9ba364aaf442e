"""
YAML-backed persistence for the gateway identity.
"""

from pathlib import Path
from typing import Any, Dict, Mapping
import threading

import yaml

from shared.logging import get_logger
from .store import IdentityConfiguration

# Persisted key for each identity field
PERSISTED_KEYS = {
    "home_org": "HOME_ORG",
    "registry_host": "REGISTRY_HOST",
    "driver_host": "TOKENIZE_DRIVER_HOST",
}


class ConfigPersistenceError(Exception):
    """Raised when the configuration file cannot be read or written."""


class YamlConfigPersistence:
    """Reads and writes the gateway configuration file."""

    def __init__(self, path: str):
        self.path = Path(path)
        self.logger = get_logger("tokenization.config_persistence")
        self._lock = threading.Lock()

    def get_config(self) -> Dict[str, Any]:
        """Return the persisted configuration, empty when the file is absent."""
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as handle:
                data = yaml.safe_load(handle) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigPersistenceError(f"Could not read {self.path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigPersistenceError(f"{self.path} does not contain a mapping")
        return data

    def update_config(self, partial: Mapping[str, Any]) -> None:
        """Merge ``partial`` into the persisted configuration."""
        with self._lock:
            data = self.get_config()
            data.update(partial)
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with self.path.open("w", encoding="utf-8") as handle:
                    yaml.safe_dump(data, handle, default_flow_style=False, sort_keys=True)
            except OSError as e:
                raise ConfigPersistenceError(f"Could not write {self.path}: {e}") from e

        self.logger.info("Configuration persisted", path=str(self.path), keys=sorted(partial))


def to_persisted(partial: Mapping[str, Any]) -> Dict[str, Any]:
    """Translate identity field names into persisted keys."""
    return {PERSISTED_KEYS[name]: value for name, value in partial.items()}


def load_identity(config, persistence: YamlConfigPersistence) -> IdentityConfiguration:
    """Build the startup identity: persisted values win over settings."""
    persisted = persistence.get_config()
    values = {
        "home_org": config.home_org,
        "registry_host": config.registry_host,
        "driver_host": config.driver_host,
    }
    for name, key in PERSISTED_KEYS.items():
        if persisted.get(key):
            values[name] = persisted[key]

    values["registry_host"] = values["registry_host"].rstrip("/")
    values["driver_host"] = values["driver_host"].rstrip("/")
    return IdentityConfiguration(**values)
