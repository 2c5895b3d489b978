"""
Policy configuration: increment bounds, cache TTLs, heartbeat cadence,
rate limits and the like.

Values come from ``config/defaults.yaml``, optionally overlaid by
``config/<ENVIRONMENT>.yaml``, with in-process overrides from ``set()`` on
top. Keys are read with dot notation and every read takes a default, so a
missing key never raises.

>>> ConfigManager.get("ranking.cache.ttl_seconds", 30)
30
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from rankstream.core.logging.logger import get_logger

logger = get_logger(__name__)

_MISSING = object()


class ConfigManagerError(RuntimeError):
    pass


class ConfigInitializationError(ConfigManagerError):
    """A config file exists but cannot be read as a YAML mapping."""


def _merge(into: Dict[str, Any], layer: Dict[str, Any]) -> None:
    for key, value in layer.items():
        if isinstance(value, dict) and isinstance(into.get(key), dict):
            _merge(into[key], value)
        else:
            into[key] = copy.deepcopy(value)


def _lookup(tree: Dict[str, Any], dotted: str) -> Any:
    node: Any = tree
    for part in dotted.split("."):
        if not isinstance(node, dict) or part not in node:
            return _MISSING
        node = node[part]
    return node


class ConfigManager:
    _values: Dict[str, Any] = {}
    _files: List[str] = []
    _overrides: Dict[str, Any] = {}
    _initialized: bool = False

    @classmethod
    def _config_dir(cls) -> Path:
        from rankstream.core.config.config import Config

        local = Path("config")
        return local if local.is_dir() else Config.CONFIG_DIR

    @staticmethod
    def _read(path: Path) -> Dict[str, Any]:
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigInitializationError(f"Cannot load {path}: {exc}") from exc
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigInitializationError(f"{path} must contain a mapping at the top level")
        return data

    @classmethod
    def initialize(cls, config_dir: Optional[Path] = None) -> None:
        """
        Load the YAML layers. Repeated calls are no-ops unless a directory
        is passed explicitly.

        Raises:
            ConfigInitializationError: A present file is unreadable or not a mapping.
        """
        if cls._initialized and config_dir is None:
            return

        from rankstream.core.config.config import Config

        directory = config_dir or cls._config_dir()
        values: Dict[str, Any] = {}
        files: List[str] = []
        for name in ("defaults.yaml", f"{Config.ENVIRONMENT}.yaml"):
            path = directory / name
            if path.is_file():
                _merge(values, cls._read(path))
                files.append(name)

        if not files:
            logger.warning(
                "No policy config found, built-in defaults apply",
                extra={"config_dir": str(directory)},
            )

        cls._values, cls._files = values, files
        for key, value in cls._overrides.items():
            cls._assign(key, value)
        cls._initialized = True
        logger.info("Policy config loaded", extra={"files": files})

    @classmethod
    def get(cls, key: str, default: Any = None) -> Any:
        if not cls._initialized:
            cls.initialize()
        value = _lookup(cls._values, key)
        return default if value is _MISSING or value is None else value

    @classmethod
    def _assign(cls, key: str, value: Any) -> None:
        *parents, leaf = key.split(".")
        node = cls._values
        for part in parents:
            child = node.get(part)
            if not isinstance(child, dict):
                child = node[part] = {}
            node = child
        node[leaf] = value

    @classmethod
    def set(cls, key: str, value: Any) -> None:
        """Override one key until ``reset()``; survives re-initialization."""
        if not cls._initialized:
            cls.initialize()
        cls._overrides[key] = value
        cls._assign(key, value)
        logger.info("Policy override applied", extra={"config_key": key})

    @classmethod
    def reset(cls) -> None:
        cls._values, cls._files, cls._overrides = {}, [], {}
        cls._initialized = False

    @classmethod
    def health_snapshot(cls) -> Dict[str, Any]:
        return {
            "initialized": cls._initialized,
            "files": list(cls._files),
            "overrides": sorted(cls._overrides),
        }
