"""Configuration helpers for engine runs."""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

import yaml
from jsonschema import Draft7Validator, ValidationError

from .errors import ConfigurationError

DEFAULT_CONFIG_PATH = Path("cogrun.json")
DEFAULT_MEMORY_IMAGE = "actr6.mem"
LOGGER = logging.getLogger(__name__)

CONFIG_SCHEMA = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "properties": {
        "engine_root": {"type": "string", "minLength": 1},
        "memory_image": {"type": "string", "minLength": 1},
        "working_directory": {"type": ["string", "null"]},
        "poll_interval_seconds": {"type": "number", "exclusiveMinimum": 0},
        "terminate_grace_seconds": {"type": "number", "minimum": 0},
    },
    "additionalProperties": False,
}

_VALIDATOR = Draft7Validator(CONFIG_SCHEMA)


@dataclass
class EngineConfig:
    engine_root: Path = Path(".")
    memory_image: str = DEFAULT_MEMORY_IMAGE
    working_directory: Optional[Path] = None
    poll_interval_seconds: float = 0.1
    terminate_grace_seconds: float = 5.0

    @classmethod
    def load(cls, path: Path | None = None, env: Mapping[str, str] | None = None) -> "EngineConfig":
        """Load configuration from YAML/JSON file."""
        config_path = path or DEFAULT_CONFIG_PATH
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with config_path.open("r", encoding="utf-8") as f:
            suffix = config_path.suffix.lower()
            try:
                if suffix in {".yaml", ".yml"}:
                    raw = yaml.safe_load(f)
                else:
                    raw = json.load(f)
            except (yaml.YAMLError, json.JSONDecodeError) as exc:
                raise ConfigurationError(f"Unreadable configuration file {config_path}: {exc}") from exc

        LOGGER.debug("Loaded configuration from %s", config_path)
        return cls.from_dict(raw or {}, env=env)

    @classmethod
    def from_dict(cls, raw: dict, env: Mapping[str, str] | None = None) -> "EngineConfig":
        if not isinstance(raw, dict):
            raise ConfigurationError(f"Invalid configuration: expected a mapping, got {type(raw).__name__}")
        data = _with_env_overrides(raw, os.environ if env is None else env)
        try:
            _VALIDATOR.validate(data)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid configuration: {exc.message}") from exc

        working_directory = data.get("working_directory")
        return cls(
            engine_root=Path(data.get("engine_root", ".")).expanduser(),
            memory_image=data.get("memory_image", DEFAULT_MEMORY_IMAGE),
            working_directory=Path(working_directory).expanduser() if working_directory else None,
            poll_interval_seconds=float(data.get("poll_interval_seconds", 0.1)),
            terminate_grace_seconds=float(data.get("terminate_grace_seconds", 5.0)),
        )

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "EngineConfig":
        return cls.from_dict({}, env=env)


def _with_env_overrides(data: dict, env: Mapping[str, str]) -> dict:
    """Override dictionary values with ``COGRUN_*`` environment variables."""
    result = dict(data)
    for key in ["engine_root", "memory_image", "working_directory"]:
        env_key = f"COGRUN_{key.upper()}"
        if env.get(env_key):
            result[key] = env[env_key]
    for key, env_key in [
        ("poll_interval_seconds", "COGRUN_POLL_INTERVAL"),
        ("terminate_grace_seconds", "COGRUN_TERMINATE_GRACE"),
    ]:
        if env.get(env_key):
            try:
                result[key] = float(env[env_key])
            except ValueError as exc:
                raise ConfigurationError(f"{env_key} must be a number, got {env[env_key]!r}") from exc
    return result


__all__ = ["EngineConfig", "CONFIG_SCHEMA", "DEFAULT_CONFIG_PATH", "DEFAULT_MEMORY_IMAGE"]
