"""Configuration parser for SQLBridge.

Configuration lives in a YAML mapping. String values may reference the
environment as ``${NAME}`` (required) or ``${NAME:-fallback}``, and an
``include`` key names further YAML files that sit under the including file.
"""

import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import ValidationError

from sqlbridge.config.models import SQLBridgeConfig, EnvironmentSettings
from sqlbridge.exceptions import ConfigurationError

PathLike = Union[str, Path]

ENV_REFERENCE = re.compile(r'\$\{\s*(?P<name>[^}:\s]+)\s*(?::-(?P<fallback>[^}]*))?\}')

DEFAULT_FILE_NAMES = ("sqlbridge.yaml", "sqlbridge.yml", "config/sqlbridge.yaml")


def _env_lookup(match: "re.Match[str]") -> str:
    name, fallback = match.group('name'), match.group('fallback')
    value = os.environ.get(name)
    if value is not None:
        return value
    if fallback is None:
        raise ConfigurationError(f"Required environment variable '{name}' is not set")
    return fallback.strip()


def expand_env_references(node: Any) -> Any:
    """Resolve ``${...}`` references in every string of a parsed YAML tree."""
    if isinstance(node, str):
        return ENV_REFERENCE.sub(_env_lookup, node)
    if isinstance(node, dict):
        return {key: expand_env_references(value) for key, value in node.items()}
    if isinstance(node, list):
        return [expand_env_references(item) for item in node]
    return node


def overlay(lower: Dict[str, Any], upper: Dict[str, Any]) -> Dict[str, Any]:
    """Lay ``upper`` over ``lower``; mappings present in both are combined key by key."""
    merged = dict(lower)
    for key, value in upper.items():
        below = merged.get(key)
        merged[key] = overlay(below, value) if isinstance(below, dict) and isinstance(value, dict) else value
    return merged


def _read_mapping(path: Path, label: str) -> Optional[Dict[str, Any]]:
    """Parse one YAML file; ``None`` means the file held no document."""
    try:
        with open(path, 'r', encoding='utf-8') as stream:
            data = yaml.safe_load(stream)
    except FileNotFoundError:
        raise ConfigurationError(f"{label} '{path}' not found")
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {label.lower()} '{path}': {e}")
    except OSError as e:
        raise ConfigurationError(f"Error loading configuration from '{path}': {e}")

    if data is not None and not isinstance(data, dict):
        raise ConfigurationError(f"{label} '{path}' must contain a mapping")
    return data or None


class ConfigParser:
    """Loads ``SQLBridgeConfig`` from YAML with environment interpolation and includes."""

    def __init__(self) -> None:
        self.env_settings = EnvironmentSettings()

    def load_config(self, config_path: Optional[PathLike] = None) -> SQLBridgeConfig:
        """Load and validate a configuration file.

        Args:
            config_path: Explicit file; when omitted the default locations are searched.

        Raises:
            ConfigurationError: If the file is missing, malformed or fails validation.
        """
        config_file = self.locate(config_path)
        data = _read_mapping(config_file, "Configuration file")
        if data is None:
            raise ConfigurationError(f"Configuration file '{config_file}' is empty")

        data = expand_env_references(data)
        for include_path in self._include_paths(data.pop('include', None), config_file):
            included = _read_mapping(include_path, "Included file")
            if included:
                data = overlay(expand_env_references(included), data)

        try:
            return SQLBridgeConfig(**data)
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed: {e}")

    def locate(self, config_path: Optional[PathLike] = None) -> Path:
        """Resolve the configuration file to load."""
        if config_path:
            path = Path(config_path)
            if not path.exists():
                raise ConfigurationError(f"Configuration file '{config_path}' not found")
            return path

        candidates: List[Path] = []
        if self.env_settings.config_file:
            candidates.append(Path(self.env_settings.config_file))
        candidates.extend(Path.cwd() / name for name in DEFAULT_FILE_NAMES)

        for candidate in candidates:
            if candidate.exists():
                return candidate
        raise ConfigurationError(
            f"No configuration file found in default locations: {[str(c) for c in candidates]}"
        )

    @staticmethod
    def _include_paths(include: Any, config_file: Path) -> List[Path]:
        if include is None:
            return []
        names = include if isinstance(include, list) else [include]
        return [config_file.parent / str(name) for name in names]

    def validate_config_file(self, config_path: PathLike) -> bool:
        """Return True when the file loads; otherwise raise ConfigurationError."""
        self.load_config(config_path)
        return True

    def create_sample_config(self, output_path: PathLike) -> None:
        """Write a starter file with one MySQL and one SQLite connection."""
        sample_config = {
            'connections': {
                'main': {
                    'driver': 'mysql+pymysql',
                    'server': 'localhost',
                    'port': 3306,
                    'database': 'app',
                    'user': 'app_user',
                    'password': '${MAIN_DB_PASSWORD:-app_password}',
                    'timeout': 600,
                    'options': {
                        'charset': 'utf8mb4',
                    }
                },
                'local': {
                    'driver': 'sqlite',
                    'path': './local.db'
                }
            },
            'default_connection': 'main',
            'default_isolation_level': 'READ_COMMITTED',
        }

        with open(output_path, 'w', encoding='utf-8') as stream:
            yaml.safe_dump(sample_config, stream, default_flow_style=False, sort_keys=False)


_config_parser = ConfigParser()
_loaded_config: Optional[SQLBridgeConfig] = None


def get_config(config_path: Optional[PathLike] = None, reload: bool = False) -> SQLBridgeConfig:
    """Return the process-wide configuration, loading it on first use.

    An explicit ``config_path`` or ``reload`` always reads the file again.
    """
    global _loaded_config

    if _loaded_config is None or reload or config_path is not None:
        _loaded_config = _config_parser.load_config(config_path)
    return _loaded_config


def validate_config_file(config_path: PathLike) -> bool:
    return _config_parser.validate_config_file(config_path)


def create_sample_config(output_path: PathLike) -> None:
    _config_parser.create_sample_config(output_path)
