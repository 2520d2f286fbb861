"""
Config system - Layered typed configuration with validation.

Loads the ``http`` section that tunes Plume's message layer and merges it
with precedence:
overrides > environment variables > .env file > YAML/JSON files > defaults
"""

from typing import Any, Dict, Optional, Type, get_args, get_origin
from dataclasses import dataclass, fields, is_dataclass, MISSING
from pathlib import Path
import os
import json

import yaml
from dotenv import dotenv_values

from .faults import ConfigError


@dataclass(frozen=True)
class HttpConfig:
    """Settings consumed by streams, uploads, responses and the ASGI bridge."""

    # Response rendering
    server_header: str = "Plume"
    default_content_type: str = "text/html"

    # Streams
    stream_spool_max_size: int = 2 * 1024 * 1024  # 2 MiB in memory, then disk

    # Uploads
    upload_copy_chunk_size: int = 1_000_000
    upload_max_depth: int = 32
    upload_max_files: int = 1000
    upload_tempdir: Optional[str] = None

    # ASGI bridge limits
    max_body_size: int = 10_485_760  # 10 MiB
    max_file_size: int = 2_147_483_648  # 2 GiB
    max_field_count: int = 1000

    def __post_init__(self):
        for name in (
            "stream_spool_max_size",
            "upload_copy_chunk_size",
            "upload_max_depth",
            "upload_max_files",
            "max_body_size",
            "max_file_size",
            "max_field_count",
        ):
            if getattr(self, name) <= 0:
                raise ConfigError(f"Config field '{name}' must be positive", field=name)


class ConfigLoader:
    """
    Loads and merges configuration from multiple sources with precedence:
    overrides > environment variables > .env file > config files > defaults
    """

    def __init__(self, env_prefix: str = "PLUME_"):
        self.env_prefix = env_prefix
        self.config_data: Dict[str, Any] = {}

    @classmethod
    def load(
        cls,
        paths: Optional[list[str]] = None,
        env_prefix: str = "PLUME_",
        env_file: Optional[str] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> "ConfigLoader":
        """
        Load configuration from multiple sources with proper merge strategy.

        Merge order (later overrides earlier):
        1. Config files (YAML or JSON, glob patterns supported)
        2. .env file (only keys carrying the prefix)
        3. Environment variables (PLUME_* prefix, ``__`` separates levels)
        4. Manual overrides

        Args:
            paths: List of config file paths (glob patterns supported)
            env_prefix: Prefix for environment variables
            env_file: Path to .env file
            overrides: Manual overrides (highest precedence)

        Returns:
            Configured ConfigLoader instance
        """
        loader = cls(env_prefix=env_prefix)

        for pattern in paths or []:
            loader._load_from_files(pattern)

        if env_file:
            loader._load_env_file(env_file)

        loader._load_from_env()

        if overrides:
            loader._merge_dict(loader.config_data, overrides)

        return loader

    def _load_from_files(self, pattern: str):
        """Load config from JSON or YAML files."""
        from glob import glob

        for path_str in sorted(glob(pattern)):
            path = Path(path_str)

            if path.suffix == ".json":
                self._load_json_file(path)
            elif path.suffix in (".yaml", ".yml"):
                self._load_yaml_file(path)

    def _load_json_file(self, path: Path):
        """Load config from JSON file."""
        with open(path) as f:
            data = json.load(f)
            if data:
                self._merge_dict(self.config_data, data)

    def _load_yaml_file(self, path: Path):
        """Load config from YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f)
            if data:
                self._merge_dict(self.config_data, data)

    def _load_env_file(self, path: str):
        """Load prefixed keys from a .env file."""
        env_path = Path(path)
        if not env_path.exists():
            return

        for key, value in dotenv_values(env_path).items():
            if value is not None and key.startswith(self.env_prefix):
                self._set_nested(key, value)

    def _load_from_env(self):
        """Load config from environment variables."""
        for key, value in os.environ.items():
            if key.startswith(self.env_prefix):
                self._set_nested(key, value)

    def _set_nested(self, key: str, value: str):
        """Convert PLUME_HTTP__MAX_BODY_SIZE to nested dict."""
        key = key[len(self.env_prefix):]

        # Double underscore separates nesting levels
        parts = key.lower().split("__")

        current = self.config_data
        for part in parts[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]

        current[parts[-1]] = self._parse_value(value)

    def _parse_value(self, value: str) -> Any:
        """Parse string value to appropriate type."""
        # Boolean
        if value.lower() in ("true", "yes"):
            return True
        if value.lower() in ("false", "no"):
            return False

        # Number
        try:
            if "." in value:
                return float(value)
            return int(value)
        except ValueError:
            pass

        # JSON
        if value.startswith(("{", "[")):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                pass

        return value

    def _merge_dict(self, target: dict, source: dict):
        """Deep merge source into target."""
        for key, value in source.items():
            if key in target and isinstance(target[key], dict) and isinstance(value, dict):
                self._merge_dict(target[key], value)
            else:
                target[key] = value

    def get(self, path: str, default: Any = None) -> Any:
        """Get config value by dot-separated path."""
        parts = path.split(".")
        current = self.config_data

        for part in parts:
            if isinstance(current, dict) and part in current:
                current = current[part]
            else:
                return default

        return current

    def get_http_config(self) -> HttpConfig:
        """
        Build the validated HttpConfig from the ``http`` section.

        Raises:
            ConfigError: If a value has the wrong type or is out of range
        """
        data = self.get("http", {})
        if not isinstance(data, dict):
            raise ConfigError("Config section 'http' must be a mapping")
        return self._instantiate_dataclass(HttpConfig, data)

    def _instantiate_dataclass(self, config_class: Type, data: dict):
        """Instantiate dataclass config with validation."""
        kwargs = {}

        for field_info in fields(config_class):
            field_name = field_info.name
            field_type = field_info.type

            if field_name in data:
                value = data[field_name]

                if not self._check_type(value, field_type):
                    raise ConfigError(
                        f"Config field '{field_name}' expected {field_type}, "
                        f"got {type(value).__name__}",
                        field=field_name,
                    )

                kwargs[field_name] = value
            elif field_info.default is not MISSING:
                kwargs[field_name] = field_info.default
            elif field_info.default_factory is not MISSING:
                kwargs[field_name] = field_info.default_factory()
            else:
                raise ConfigError(
                    f"Required config field '{field_name}' not provided",
                    field=field_name,
                )

        return config_class(**kwargs)

    def _check_type(self, value: Any, expected_type: Any) -> bool:
        """Basic type checking."""
        import types
        origin = get_origin(expected_type)
        if origin is types.UnionType or str(origin) == "typing.Union":
            args = get_args(expected_type)
            if value is None:
                return True
            if args:
                return self._check_type(value, args[0])

        if origin:
            return isinstance(value, origin)

        # bool is an int subclass; numeric fields must not accept it
        if expected_type is int and isinstance(value, bool):
            return False

        try:
            return isinstance(value, expected_type)
        except TypeError:
            return True

    def to_dict(self) -> dict:
        """Export all config as dictionary."""
        return self.config_data.copy()


# ============================================================================
# Process default
# ============================================================================

_default_config: Optional[HttpConfig] = None


def get_default_config() -> HttpConfig:
    """Get the process-wide default HttpConfig (built lazily)."""
    global _default_config
    if _default_config is None:
        _default_config = HttpConfig()
    return _default_config


def set_default_config(config: Optional[HttpConfig]) -> None:
    """Replace the process-wide default HttpConfig (None resets it)."""
    global _default_config
    if config is not None and not is_dataclass(config):
        raise ConfigError("Default config must be an HttpConfig instance")
    _default_config = config
