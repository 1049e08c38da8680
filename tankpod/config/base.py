# Defaults shared by every hardware profile.

DEFAULT_MODE = "pi_v1"
ENV_VAR = "TANK_POD_MODE"
ENV_PREFIX = "TANK_POD_"

LOCAL_ROOT_DIR = "/home/pi"
LOG_DIR = LOCAL_ROOT_DIR + "/logs"
