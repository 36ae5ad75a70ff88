from __future__ import annotations

import importlib
import importlib.util
import json
import os
from dataclasses import is_dataclass
from typing import Any, Dict, Iterable, Optional, Tuple

if importlib.util.find_spec("tomllib"):
    tomllib = importlib.import_module("tomllib")  # type: ignore
else:  # pragma: no cover
    tomllib = importlib.import_module("tomli")  # type: ignore

from .config_struct import ExtractionConfig, validate_config
from .errors import ConfigError

DEFAULT_CONFIG_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "config")


class UnknownConfigKeyError(ConfigError, ValueError):
    """Raised when a configuration key is not present in the schema."""


def _load_toml(path: str) -> Dict[str, Any]:
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {path}: {exc}") from exc


def parse_override(raw: str) -> Tuple[str, Any]:
    """Split ``dotted.key=value``; the value is read as JSON when it parses, else kept as a string."""
    if "=" not in raw:
        raise ConfigError(f"Override {raw!r} must look like key=value")
    dotted, text = raw.split("=", 1)
    dotted = dotted.strip()
    text = text.strip()
    if not dotted:
        raise ConfigError(f"Override {raw!r} has an empty key")
    try:
        value = json.loads(text)
    except json.JSONDecodeError:
        value = text
    return dotted, value


class ConfigLoader:
    """
    Strict, provenance-tracking config loader.
    Unknown keys raise errors and every value is tagged with a source string.
    """

    def __init__(self) -> None:
        self.provenance: Dict[str, str] = {}

    def load(
        self,
        base_dir: Optional[str] = None,
        preset: Optional[str] = None,
        overrides: Optional[Iterable[Tuple[str, Any]]] = None,
    ) -> ExtractionConfig:
        base_dir = base_dir or DEFAULT_CONFIG_DIR
        config = ExtractionConfig()

        default_path = os.path.join(base_dir, "default.toml")
        if os.path.exists(default_path):
            self._apply_layer(config, _load_toml(default_path), "default")

        if preset:
            preset_path = os.path.join(base_dir, "presets", f"{preset}.toml")
            if not os.path.exists(preset_path):
                raise ConfigError(f"Preset '{preset}' not found at {preset_path}")
            self._apply_layer(config, _load_toml(preset_path), f"preset:{preset}")

        if overrides:
            self._apply_overrides(config, dict(overrides), "override")

        return validate_config(config)

    def _apply_overrides(self, config: ExtractionConfig, data: Dict[str, Any], source: str) -> None:
        for dotted, value in data.items():
            parts = dotted.split(".")
            target = config
            path_parts = []
            for part in parts[:-1]:
                path_parts.append(part)
                if not hasattr(target, part):
                    raise UnknownConfigKeyError(".".join(path_parts))
                target = getattr(target, part)
            leaf = parts[-1]
            path_parts.append(leaf)
            if not hasattr(target, leaf) or is_dataclass(getattr(target, leaf)):
                raise UnknownConfigKeyError(".".join(path_parts))
            setattr(target, leaf, value)
            self.provenance[".".join(path_parts)] = source

    def _apply_layer(self, config: Any, data: Dict[str, Any], source: str, prefix: str = "") -> None:
        for key, value in data.items():
            path = f"{prefix}.{key}" if prefix else key
            if not hasattr(config, key):
                raise UnknownConfigKeyError(path)
            existing = getattr(config, key)
            if is_dataclass(existing):
                if not isinstance(value, dict):
                    raise ConfigError(f"Expected mapping at {path}")
                self._apply_layer(existing, value, source, prefix=path)
            else:
                setattr(config, key, value)
                self.provenance[path] = source
