"""
Hardware-profile selector.

TANK_POD_MODE names a module under tankpod/config/ (default pi_v1); its
upper-case constants become attributes of tankpod.config. A handful of
site-specific paths/ports can be overridden without a new profile:

    TANK_POD_SETTINGS_FILE=/data/settings.json TANK_POD_LOG_DIR=/data/logs
"""

import importlib
import logging
import os
import pkgutil
from typing import Any, Dict, List

from . import base

log = logging.getLogger(__name__)

ENV_OVERRIDABLE = ("SETTINGS_FILE", "LOG_DIR", "SERIAL_PORT", "DISTANCE_PORT", "RELAY_DEV", "TIMEZONE")
_NOT_PROFILES = {"base"}


def available_modes() -> List[str]:
    return sorted(
        m.name for m in pkgutil.iter_modules(__path__)
        if m.name not in _NOT_PROFILES
    )


def _load_mode(mode: str):
    if mode not in available_modes():
        log.warning(f"[CONFIG] Unknown mode '{mode}' (have {available_modes()}), using {base.DEFAULT_MODE}")
        mode = base.DEFAULT_MODE
    return importlib.import_module(f"{__name__}.{mode}")


def env_overrides(environ=None) -> Dict[str, str]:
    environ = os.environ if environ is None else environ
    found = {}
    for name in ENV_OVERRIDABLE:
        value = environ.get(f"{base.ENV_PREFIX}{name}")
        if value:
            found[name] = value
    return found


_cfg = _load_mode(os.getenv(base.ENV_VAR, base.DEFAULT_MODE))
_overrides = env_overrides()
MODE = getattr(_cfg, "MODE_NAME", base.DEFAULT_MODE)

for _name, _value in _overrides.items():
    log.info(f"[CONFIG] {_name} overridden from environment: {_value}")


def __getattr__(name: str) -> Any:
    if name in _overrides:
        return _overrides[name]
    if name.isupper() and hasattr(_cfg, name):
        return getattr(_cfg, name)
    raise AttributeError(f"config ({MODE}) has no setting {name}")


def __dir__():
    return sorted(set(globals()) | {n for n in dir(_cfg) if n.isupper()})


__all__ = [name for name in dir(_cfg) if name.isupper()] + ["MODE"]
