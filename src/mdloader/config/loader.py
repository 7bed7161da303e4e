"""
Configuration file loading.

Loads config.yaml (plus an optional config.{env}.yaml overlay) into a Config.
"""

from collections.abc import Iterator
from pathlib import Path
from typing import Any

import yaml

from mdloader.config.resolver import resolve_config
from mdloader.exceptions import ConfigurationError

CONFIG_FILENAME = "config.yaml"


class Config:
    """mdloader configuration container with dict-like access."""

    def __init__(self, data: dict[str, Any]):
        self.data = data
        self.store = data.get("store", {})
        self.upload = data.get("upload", {})
        self.annotations = data.get("annotations", {})

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value using dot notation."""
        value = self.data
        for k in key.split("."):
            if isinstance(value, dict):
                value = value.get(k)
                if value is None:
                    return default
            else:
                return default
        return value

    def __getitem__(self, key: str) -> Any:
        """Dict-like access: config['key'] or config['nested.key']."""
        if isinstance(key, str) and "." in key:
            return self.get(key)
        if key in self.data:
            value = self.data[key]
            if isinstance(value, dict):
                return Config(value)
            return value
        raise KeyError(f"Config key '{key}' not found")

    def __contains__(self, key: str) -> bool:
        if isinstance(key, str) and "." in key:
            value = self.data
            for k in key.split("."):
                if not isinstance(value, dict) or k not in value:
                    return False
                value = value[k]
            return True
        return key in self.data

    def __iter__(self) -> Iterator[str]:
        return iter(self.data)

    def keys(self):
        return self.data.keys()

    def items(self):
        return self.data.items()

    def validate(self) -> None:
        """Validate the top-level structure of the configuration."""
        errors = []
        for section in ("store", "upload", "trajectory", "annotations", "logging"):
            value = self.data.get(section)
            if value is not None and not isinstance(value, dict):
                errors.append(f"Configuration '{section}' must be a mapping, got {type(value).__name__}")
        if errors:
            raise ConfigurationError("\n".join(errors), details={"errors": errors})


def load_config(config_dir: Path | None = None, env: str | None = None, *, required: bool = False) -> Config:
    """
    Load mdloader configuration.

    Args:
        config_dir: Directory holding config.yaml (default: current directory)
        env: Environment name; config.{env}.yaml is merged over the base file
        required: Fail when config.yaml is missing instead of using defaults

    Returns:
        Config instance with merged and resolved configuration
    """
    if config_dir is None:
        config_dir = Path.cwd()
    config_dir = Path(config_dir)

    base_config_path = config_dir / CONFIG_FILENAME
    if base_config_path.exists():
        config_data = _read_yaml(base_config_path)
    elif required:
        raise ConfigurationError(
            f"Configuration file not found: {base_config_path}", details={"path": str(base_config_path)}
        )
    else:
        config_data = {}

    if env:
        env_config_path = config_dir / f"config.{env}.yaml"
        if env_config_path.exists():
            _merge_dict(config_data, _read_yaml(env_config_path))

    config = Config(resolve_config(config_data, env or "default"))
    config.validate()
    return config


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        mark = getattr(e, "problem_mark", None)
        where = f" at line {mark.line + 1}, column {mark.column + 1}" if mark is not None else ""
        raise ConfigurationError(f"Error parsing {path.name}{where}: {e}", details={"path": str(path)}) from e
    except OSError as e:
        raise ConfigurationError(f"Cannot read {path}: {e}", details={"path": str(path)}) from e
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Configuration must be a mapping, got {type(data).__name__}", details={"path": str(path)}
        )
    return data


def _merge_dict(base: dict, override: dict):
    """Recursively merge override into base."""
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _merge_dict(base[key], value)
        else:
            base[key] = value
