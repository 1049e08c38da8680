# Bench mode: pi_v1 values with simulated hardware for desk testing.

from .pi_v1 import *

MODE_NAME = "bench"

# Hardware selectors
DISTANCE_SENSOR_IMPL = "sim"
TEMPERATURE_SENSOR_IMPL = "none"
PUMP_DRIVER = "sim"
FEEDBACK_DRIVER = "log"
RADIO_DRIVER = "dummy"

# Keep files out of /home/pi on a dev box
LOCAL_ROOT_DIR = "/tmp/tankpod"
LOG_DIR = LOCAL_ROOT_DIR + "/logs"
SETTINGS_FILE = LOCAL_ROOT_DIR + "/tankpod_settings.json"

SAMPLE_INTERVAL_SECONDS = 2

# Simulated tank (fill/drain per tick, in cm of water)
SIM_START_DISTANCE_CM = 60.0
SIM_FILL_CM_PER_TICK = 3.0
SIM_DRAIN_CM_PER_TICK = 0.5

__all__ = [name for name in globals().keys() if name.isupper() or name.endswith("_IMPL")]
