"""YAML datasource configuration.

a config file is just a list of datasource settings:

    datasources:
      - name: warehouse
        hostname: adb-123.azuredatabricks.net
        path: /sql/1.0/warehouses/abc
        authenticationMethod: dsn
        token: ${DATABRICKS_TOKEN}

${VAR} references are expanded from the environment before parsing, so
secrets can stay out of the file (and out of git).
"""

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from lakedash.datasource import Datasource
from lakedash.errors import ConfigError
from lakedash.models.settings import DatasourceSettings

logger = logging.getLogger(__name__)


def load_datasources(path: str | Path) -> list[DatasourceSettings]:
    """Parse every datasource in a YAML config file."""
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    with open(path) as f:
        raw = os.path.expandvars(f.read())

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc

    if data is None:
        return []  # empty file
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a mapping at the top of {path}")

    settings: list[DatasourceSettings] = []
    seen: set[str] = set()
    for entry in data.get("datasources") or []:
        parsed = _parse_settings(entry)
        if parsed.name in seen:
            raise ConfigError(f"Duplicate datasource: {parsed.name}")
        seen.add(parsed.name)
        settings.append(parsed)

    logger.debug("Loaded %d datasources from %s", len(settings), path)
    return settings


def _parse_settings(entry: Any) -> DatasourceSettings:
    try:
        return DatasourceSettings.model_validate(entry)
    except ValidationError as exc:
        name = entry.get("name", "?") if isinstance(entry, dict) else "?"
        raise ConfigError(f"Invalid settings for datasource '{name}': {exc}") from exc


class DatasourceRegistry:
    """Configured datasources by name, connected on first use.

    settings are validated up front; the connection (and the eager ping)
    only happens when a datasource is actually asked for.
    """

    def __init__(self, settings: list[DatasourceSettings] | None = None, validate: bool = True) -> None:
        self.settings: dict[str, DatasourceSettings] = {}
        self.validate = validate
        self._instances: dict[str, Datasource] = {}
        for s in settings or []:
            self.add(s)

    @classmethod
    def from_file(cls, path: str | Path, validate: bool = True) -> "DatasourceRegistry":
        return cls(load_datasources(path), validate=validate)

    def add(self, settings: DatasourceSettings) -> None:
        """Register (or replace) a datasource. A replaced instance is disposed."""
        old = self._instances.pop(settings.name, None)
        if old is not None:
            # settings changed - the old pool must not outlive them
            old.dispose()
        self.settings[settings.name] = settings

    def names(self) -> list[str]:
        return sorted(self.settings)

    def get(self, name: str) -> Datasource:
        if name not in self.settings:
            raise KeyError(f"Unknown datasource: {name}")
        if name not in self._instances:
            self._instances[name] = Datasource.from_settings(self.settings[name], validate=self.validate)
        return self._instances[name]

    def close(self) -> None:
        """Dispose every connected datasource."""
        for datasource in self._instances.values():
            datasource.dispose()
        self._instances.clear()

    def __enter__(self) -> "DatasourceRegistry":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
