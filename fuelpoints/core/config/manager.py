"""
ConfigManager: dot-notation access to tunable reward and cadence values.

Purpose
-------
- Provide hierarchical, dot-notation access to reward tables (boost FP,
  challenge rewards, quest rewards) and cadences (boost quota, reset weekday,
  rolling window lengths, resync debounce).
- Back configuration with YAML defaults plus in-memory overrides.

Responsibilities
----------------
- Load and deep-merge the packaged `defaults.yaml` plus any extra YAML files.
- Serve reads from an in-memory cache with hit/miss metrics.
- Apply in-memory overrides (`set`) so tests and operators can retune values
  without editing files.

Key Design Decisions
--------------------
- YAML is the single source for **defaults**; overrides live in memory only.
- Values read here are snapshotted into instances by the store at creation
  time, so a changed table never alters an in-progress instance.
- Reads never raise; a missing key resolves to the caller's default.

Dependencies
------------
- PyYAML for parsing the defaults file.
- `fuelpoints.core.logging.logger.get_logger` for structured logging.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, MutableMapping, Optional

import yaml

from fuelpoints.core.exceptions import ConfigurationError
from fuelpoints.core.logging.logger import get_logger

logger = get_logger(__name__)

DEFAULTS_PATH = Path(__file__).with_name("defaults.yaml")

_MISSING = object()


@dataclass
class ConfigMetrics:
    gets: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    overrides_applied: int = 0


# ============================================================================
# ConfigManager
# ============================================================================


class ConfigManager:
    """
    Dynamic configuration with YAML defaults and in-memory overrides.

    Usage
    -----
    >>> ConfigManager.initialize()
    >>> ConfigManager.get_int("boosts.daily_quota", 3)
    3
    >>> ConfigManager.set("quests.weekly_reward", 40)
    """

    _defaults: Dict[str, Any] = {}
    _cache: Dict[str, Any] = {}
    _initialized: bool = False
    _metrics: ConfigMetrics = ConfigMetrics()

    # =========================================================================
    # YAML LOADING & DEFAULTS
    # =========================================================================

    @staticmethod
    def _deep_merge_dict(
        target: MutableMapping[str, Any],
        source: MutableMapping[str, Any],
    ) -> None:
        """Recursively merge `source` into `target` (in-place)."""
        for key, value in source.items():
            if isinstance(value, dict) and isinstance(target.get(key), dict):
                ConfigManager._deep_merge_dict(target[key], value)
            else:
                target[key] = value

    @classmethod
    def _load_yaml(cls, path: Path) -> None:
        try:
            with path.open("r", encoding="utf-8") as handle:
                data = yaml.safe_load(handle)
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigurationError(
                str(path), f"failed to load YAML config: {exc}"
            ) from exc

        if data is None:
            return
        if not isinstance(data, dict):
            raise ConfigurationError(
                str(path), f"YAML root must be a mapping, got {type(data).__name__}"
            )

        cls._deep_merge_dict(cls._defaults, data)
        logger.debug("Loaded YAML config", extra={"file": str(path)})

    @classmethod
    def initialize(cls, extra_files: Optional[Iterable[Path]] = None) -> None:
        """
        Load packaged defaults plus optional extra YAML files, discarding
        any previous overrides.

        Raises
        ------
        ConfigurationError
            If a YAML file cannot be read or does not hold a mapping.
        """
        cls._defaults = {}
        cls._load_yaml(DEFAULTS_PATH)
        for path in extra_files or ():
            cls._load_yaml(Path(path))

        cls._cache = copy.deepcopy(cls._defaults)
        cls._metrics = ConfigMetrics()
        cls._initialized = True

        logger.info(
            "ConfigManager initialized",
            extra={"top_level_keys": sorted(cls._cache.keys())},
        )

    @classmethod
    def _ensure_initialized(cls) -> None:
        if not cls._initialized:
            cls.initialize()

    # =========================================================================
    # READS
    # =========================================================================

    @staticmethod
    def _resolve(tree: Dict[str, Any], key: str) -> Any:
        value: Any = tree
        for part in key.split("."):
            if isinstance(value, dict) and part in value:
                value = value[part]
            else:
                return _MISSING
        return value

    @classmethod
    def get(cls, key: str, default: Any = None) -> Any:
        """
        Retrieve a configuration value by dot-notation path.

        Parameters
        ----------
        key:
            Dot-notation config path (e.g. `"quests.weekly_reward"`).
        default:
            Value to return if the key is not found.
        """
        cls._ensure_initialized()
        cls._metrics.gets += 1

        value = cls._resolve(cls._cache, key)
        if value is _MISSING or value is None:
            cls._metrics.cache_misses += 1
            return default

        cls._metrics.cache_hits += 1
        return value

    @classmethod
    def get_int(cls, key: str, default: int) -> int:
        value = cls.get(key, default)
        try:
            return int(value)
        except (TypeError, ValueError):
            logger.warning(
                "Config value is not an integer, using default",
                extra={"config_key": key, "value": value, "default": default},
            )
            return default

    @classmethod
    def get_float(cls, key: str, default: float) -> float:
        value = cls.get(key, default)
        try:
            return float(value)
        except (TypeError, ValueError):
            logger.warning(
                "Config value is not a number, using default",
                extra={"config_key": key, "value": value, "default": default},
            )
            return default

    @classmethod
    def get_bool(cls, key: str, default: bool) -> bool:
        value = cls.get(key, default)
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            return value.strip().lower() in {"true", "yes", "1", "on"}
        return bool(value)

    @classmethod
    def get_all_keys(cls) -> List[str]:
        cls._ensure_initialized()
        return list(cls._cache.keys())

    # =========================================================================
    # WRITES
    # =========================================================================

    @classmethod
    def set(cls, key: str, value: Any) -> None:
        """Override a value in memory; intermediate mappings are created."""
        cls._ensure_initialized()

        parts = key.split(".")
        node = cls._cache
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = value
        cls._metrics.overrides_applied += 1

        logger.info("Config override applied", extra={"config_key": key, "value": value})

    @classmethod
    def reset_overrides(cls) -> None:
        """Drop every override and return to the loaded defaults."""
        cls._ensure_initialized()
        cls._cache = copy.deepcopy(cls._defaults)

    @classmethod
    def get_metrics(cls) -> Dict[str, Any]:
        m = cls._metrics
        total = m.cache_hits + m.cache_misses
        return {
            "gets": m.gets,
            "cache_hits": m.cache_hits,
            "cache_misses": m.cache_misses,
            "cache_hit_rate": round(m.cache_hits / total * 100, 2) if total else 0.0,
            "overrides_applied": m.overrides_applied,
        }
