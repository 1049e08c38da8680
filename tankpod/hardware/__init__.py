# Hardware factory helpers for TankPod variants.

from .buzzer import build_feedback
from .distance_sensor import build_distance_sensor
from .pump_control import build_pump_relay
from .radio_rak import build_radio
from .temperature import build_temperature_sensor

__all__ = [
    "build_distance_sensor",
    "build_feedback",
    "build_pump_relay",
    "build_radio",
    "build_temperature_sensor",
]
