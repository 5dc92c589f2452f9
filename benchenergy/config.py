"""
Configuration for the benchmark energy hook.

Defaults live in ``_DEFAULTS``; each key may be overridden by an environment
variable. ``CONFIG`` is the validated result for the current process.
"""

import os
from typing import Any, Dict, Mapping, Optional


_DEFAULTS: Dict[str, Any] = {
    # Single-run YAML report path (None -> print to console)
    "ENERGY_YML": None,
    # Append-only CSV log, one row per socket per iteration
    "ENERGY_CSV": "energy.csv",
    # Linux powercap sysfs root holding the intel-rapl zones
    "RAPL_ROOT": "/sys/class/powercap",
    "LOG_LEVEL": "INFO",
}

# Config key -> environment variable
_ENV_OVERRIDES = {
    "ENERGY_YML": "ENERGY_YML",
    "ENERGY_CSV": "ENERGY_CSV",
    "RAPL_ROOT": "RAPL_ROOT",
    "LOG_LEVEL": "ENERGY_LOG_LEVEL",
}

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def validate_config(cfg: Dict[str, Any]) -> None:
    """
    Ensure all keys exist with usable values.
    Raise ValueError("<reason>") on any violation.
    """
    missing_keys = set(_DEFAULTS) - set(cfg)
    if missing_keys:
        raise ValueError(f"CONFIG missing required keys: {', '.join(sorted(missing_keys))}")

    yml = cfg["ENERGY_YML"]
    if yml is not None and (not isinstance(yml, str) or not yml):
        raise ValueError(f"CONFIG[ENERGY_YML] must be None or a non-empty path, got {yml!r}")

    for key in ("ENERGY_CSV", "RAPL_ROOT"):
        value = cfg[key]
        if not isinstance(value, str) or not value.strip():
            raise ValueError(f"CONFIG[{key}] must be a non-empty path, got {value!r}")

    level = cfg["LOG_LEVEL"]
    if not isinstance(level, str) or level.upper() not in _LOG_LEVELS:
        raise ValueError(f"CONFIG[LOG_LEVEL] must be one of {sorted(_LOG_LEVELS)}, got {level!r}")


def _apply_env_overrides(cfg: Dict[str, Any], environ: Mapping[str, str]) -> Dict[str, Any]:
    """Apply environment variable overrides to config."""
    result = cfg.copy()

    for key, env_var in _ENV_OVERRIDES.items():
        if env_var not in environ:
            continue
        value = environ[env_var].strip()
        if key == "ENERGY_YML" and not value:
            # An empty value means "unset", same as the variable being absent
            result[key] = None
        elif key == "LOG_LEVEL":
            result[key] = value.upper()
        else:
            result[key] = value

    return result


def load_config(environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Build a fresh validated config from defaults plus ``environ`` (default ``os.environ``)."""
    cfg = _apply_env_overrides(_DEFAULTS, os.environ if environ is None else environ)
    validate_config(cfg)
    return cfg


def merge_config(base: Mapping[str, Any], overrides: Mapping[str, Any]) -> Dict[str, Any]:
    """Layer a caller-supplied (possibly partial) mapping over ``base`` and validate it."""
    cfg = dict(base)
    cfg.update(overrides)
    if isinstance(cfg.get("LOG_LEVEL"), str):
        cfg["LOG_LEVEL"] = cfg["LOG_LEVEL"].strip().upper()
    validate_config(cfg)
    return cfg


CONFIG = load_config()
