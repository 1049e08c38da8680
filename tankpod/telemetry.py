# FILE: telemetry.py

import json
import logging
import math
from typing import Optional

from tankpod.model.pump_state import PumpSettings, RuntimeState

log = logging.getLogger(__name__)


def linear_map(x: float, in_lo: float, in_hi: float, out_lo: float, out_hi: float) -> float:
    if in_hi == in_lo:
        return out_lo
    return (x - in_lo) * (out_hi - out_lo) / (in_hi - in_lo) + out_lo


def distance_to_fill(distance_cm: float, tank_height_cm: float, sensor_gap_cm: float) -> float:
    """
    Convert sensor-to-water distance into a tank fill percentage.

    Distance at the sensor gap (water right under the sensor) is 100% full,
    distance at tank_height + gap (water at the bottom) is 0%.
    """
    empty_cm = tank_height_cm + sensor_gap_cm
    fill = linear_map(distance_cm, empty_cm, sensor_gap_cm, 0.0, 100.0)
    fill = max(0.0, min(fill, 100.0))

    log.debug(f"[FILL] distance={distance_cm:.1f} cm -> fill={fill:.1f}%")
    return fill


def is_valid_reading(value: Optional[float]) -> bool:
    if value is None:
        return False
    try:
        value = float(value)
    except (TypeError, ValueError):
        return False
    return not math.isnan(value) and not math.isinf(value)


def build_status_message(state: RuntimeState, settings: PumpSettings) -> dict:
    """
    Outbound status sent once per tick:

        {level, pump, temp, mode, settings: {min, max, sched, pre, rec, h_cm}}
    """
    temp = state.last_temperature
    return {
        "level": int(round(state.last_fill_percent)),
        "pump": bool(state.pump_on),
        "temp": round(temp, 1) if temp is not None else None,
        "mode": "MANUAL" if state.manual_mode else "AUTO",
        "settings": {
            "min": settings.pump_on_level,
            "max": settings.pump_off_level,
            "sched": settings.schedules_enabled,
            "pre": settings.pre_schedule_limit,
            "rec": settings.recovery_trigger,
            "h_cm": settings.tank_height_cm,
        },
    }


def encode_status(status: dict) -> bytes:
    """Compact UTF-8 JSON for the radio uplink."""
    return json.dumps(status, separators=(",", ":")).encode("utf-8")
