"""
Persisted pump settings (the key/value JSON file on the pod) and the
human-readable change logs that go alongside it.

File layout (all keys optional, defaults from tankpod.config):

    {"on": 20, "off": 90, "pre": 65, "rec": 70, "sched": true, "h_cm": 100}
"""

import json
import logging
import os
from dataclasses import asdict
from datetime import datetime
from typing import Any, Iterable, Optional

from tankpod import config
from tankpod.model.pump_state import PumpSettings

log = logging.getLogger(__name__)

# persisted key -> PumpSettings field
KEY_MAP = {
    "on": "pump_on_level",
    "off": "pump_off_level",
    "pre": "pre_schedule_limit",
    "rec": "recovery_trigger",
    "sched": "schedules_enabled",
    "h_cm": "tank_height_cm",
}
BOOL_KEYS = {"sched"}


def default_settings() -> PumpSettings:
    return PumpSettings(
        tank_height_cm=config.TANK_HEIGHT_CM,
        sensor_gap_cm=config.SENSOR_GAP_CM,
        pump_on_level=config.PUMP_ON_PERCENT,
        pump_off_level=config.PUMP_OFF_PERCENT,
        schedules_enabled=config.SCHEDULES_ENABLED,
        pre_schedule_limit=config.PRE_SCHEDULE_PERCENT,
        recovery_trigger=config.RECOVERY_TRIGGER_PERCENT,
    )


def coerce_int(value: Any) -> Optional[int]:
    """Accept ints and integral-looking floats/strings; None for anything else."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def coerce_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str) and value.strip().lower() in ("true", "false", "1", "0"):
        return value.strip().lower() in ("true", "1")
    return None


def _log_to_targets(message: str, targets: Iterable[str]) -> None:
    for path in targets:
        try:
            parent = os.path.dirname(path)
            if parent:
                os.makedirs(parent, exist_ok=True)
            with open(path, "a") as f:
                f.write(message + "\n")
                f.flush()
                os.fsync(f.fileno())
        except OSError as e:
            log.warning(f"[LOG WRITE FAILED] {path}: {e}")


def log_mode_change(mode: str, source: str = "downlink", log_dir: Optional[str] = None) -> None:
    """Append a MANUAL/AUTO mode change to the local mode log."""
    log.info(f"[LOG] mode_change -> mode={mode} source={source}")
    timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    line = f"{timestamp} - Mode {mode} (source={source})"
    _log_to_targets(line, [os.path.join(log_dir or config.LOG_DIR, "mode_log.txt")])


def log_setting_change(key: str, old_value, new_value, source: str = "downlink",
                       log_dir: Optional[str] = None) -> None:
    """Append a single setting change to the local settings log."""
    timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    line = f"{timestamp} - Setting '{key}': {old_value} -> {new_value} (source={source})"
    _log_to_targets(line, [os.path.join(log_dir or config.LOG_DIR, "settings_log.txt")])


class SettingsStore:
    def __init__(self, path: Optional[str] = None, defaults: Optional[PumpSettings] = None):
        self.path = path or config.SETTINGS_FILE
        self.defaults = defaults or default_settings()

    def load(self) -> PumpSettings:
        """
        Read every key with its default if absent or unusable.
        A missing or unreadable file means first boot: defaults all round.
        """
        settings = PumpSettings(**asdict(self.defaults))

        if not os.path.exists(self.path):
            log.info(f"[SETTINGS] No settings file at {self.path}; using defaults.")
            return settings

        try:
            with open(self.path, "r") as f:
                stored = json.load(f)
        except (OSError, ValueError) as e:
            log.error(f"[SETTINGS] Failed to read {self.path}, using defaults: {e}")
            return settings

        if not isinstance(stored, dict):
            log.error(f"[SETTINGS] {self.path} does not hold an object; using defaults.")
            return settings

        for key, field_name in KEY_MAP.items():
            if key not in stored:
                log.info(f"[SETTINGS] '{key}' missing; default {getattr(settings, field_name)}")
                continue
            raw = stored[key]
            value = coerce_bool(raw) if key in BOOL_KEYS else coerce_int(raw)
            if value is None:
                log.warning(f"[SETTINGS] Invalid '{key}'={raw!r}; default {getattr(settings, field_name)}")
                continue
            setattr(settings, field_name, value)

        problems = settings.problems()
        if problems:
            log.error(f"[SETTINGS] Stored settings inconsistent ({'; '.join(problems)}); using defaults.")
            return PumpSettings(**asdict(self.defaults))

        log.info(f"[SETTINGS] Loaded {self.to_record(settings)} from {self.path}")
        return settings

    @staticmethod
    def to_record(settings: PumpSettings) -> dict:
        return {key: getattr(settings, field_name) for key, field_name in KEY_MAP.items()}

    def save(self, settings: PumpSettings) -> None:
        """
        Write every key. The file is replaced atomically so a power cut
        leaves either the old or the new settings, never half of each.
        Raises OSError on failure.
        """
        record = self.to_record(settings)
        parent = os.path.dirname(self.path)
        if parent:
            os.makedirs(parent, exist_ok=True)

        tmp_path = self.path + ".tmp"
        with open(tmp_path, "w") as f:
            json.dump(record, f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, self.path)

        log.info(f"[SETTINGS] Saved {record} to {self.path}")
