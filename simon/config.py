"""
Exporter configuration: YAML file, environment and CLI overrides.

Example config.yml:

    exporter:
      host: 0.0.0.0
      port: 9184
      collection_interval: 5
      cpu_mode: percentage
      log_level: INFO
      log_file: ${LOG_DIR}/simon-exporter.log
"""

import logging
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from simon.errors import ConfigError
from simon.log import parse_level
from simon.sampler import CPU_MODES

SECTION = 'exporter'
PORT_ENV = 'SIMON_PORT'


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass
class ExporterConfig:
    host: str = '0.0.0.0'
    port: int = 9184
    collection_interval: float = 5.0
    cpu_mode: str = 'percentage'
    namespace: str = 'simon'
    stop_timeout: float = 10.0
    log_level: str = 'INFO'
    log_file: Optional[str] = None
    log_json: bool = True

    def validate(self) -> 'ExporterConfig':
        """
        Check value ranges and types.

        Raises:
            ConfigError: If any value is invalid
        """
        if not isinstance(self.port, int) or isinstance(self.port, bool) or not 0 < self.port < 65536:
            raise ConfigError(f"Invalid port: {self.port!r}")
        if not _is_number(self.collection_interval) or self.collection_interval <= 0:
            raise ConfigError(f"collection_interval must be a positive number, got {self.collection_interval!r}")
        if not _is_number(self.stop_timeout) or self.stop_timeout < 0:
            raise ConfigError(f"stop_timeout must be a non-negative number, got {self.stop_timeout!r}")
        if self.cpu_mode not in CPU_MODES:
            raise ConfigError(f"cpu_mode must be one of {', '.join(CPU_MODES)}, got {self.cpu_mode!r}")
        if not isinstance(self.namespace, str):
            raise ConfigError(f"namespace must be a string, got {self.namespace!r}")
        if not isinstance(self.log_json, bool):
            raise ConfigError(f"log_json must be true or false, got {self.log_json!r}")
        try:
            parse_level(self.log_level)
        except ValueError as e:
            raise ConfigError(str(e))
        return self

    @property
    def level(self) -> int:
        return parse_level(self.log_level)

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _expand(value):
    if isinstance(value, str):
        return os.path.expandvars(value)
    return value


def _coerce(name: str, value):
    """Convert strings from YAML/env to the field's type"""
    if name == 'port' and isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            raise ConfigError(f"Invalid port: {value!r}")
    if name in ('collection_interval', 'stop_timeout') and isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            raise ConfigError(f"{name} must be a number, got {value!r}")
    if name == 'log_level' and isinstance(value, int) and not isinstance(value, bool):
        return logging.getLevelName(value)
    return value


def from_mapping(data: Mapping[str, Any]) -> ExporterConfig:
    """Build a config from a dict; unknown keys are rejected"""
    known = {f.name for f in fields(ExporterConfig)}
    unknown = set(data) - known
    if unknown:
        raise ConfigError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

    values = {name: _coerce(name, _expand(value)) for name, value in data.items()}
    return ExporterConfig(**values)


def load_config(
    path: Optional[str] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None
) -> ExporterConfig:
    """
    Load and validate the exporter configuration.

    Precedence, lowest first: defaults, config file, SIMON_PORT, overrides.
    Overrides whose value is None are ignored.

    Raises:
        ConfigError: If the file is missing, malformed, or values are invalid
    """
    environ = os.environ if environ is None else environ
    data: Dict[str, Any] = {}

    if path:
        try:
            with open(path, 'r') as f:
                document = yaml.safe_load(f) or {}
        except FileNotFoundError:
            raise ConfigError(f"Config file not found: {path}")
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML: {e}")

        if not isinstance(document, dict):
            raise ConfigError(f"Config file must contain a mapping: {Path(path).name}")
        section = document.get(SECTION, {}) or {}
        if not isinstance(section, dict):
            raise ConfigError(f"'{SECTION}' section must be a mapping")
        data.update(section)

    if environ.get(PORT_ENV):
        data['port'] = environ[PORT_ENV]

    for key, value in (overrides or {}).items():
        if value is not None:
            data[key] = value

    return from_mapping(data).validate()
