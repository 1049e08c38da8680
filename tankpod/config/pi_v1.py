# Pi v1 (A02YYUW ultrasonic on UART, GPIO relay + buzzer, DS18B20, RAK3172)

from .base import LOCAL_ROOT_DIR, LOG_DIR

# Mode metadata / selectors
MODE_NAME = "pi_v1"
DISTANCE_SENSOR_IMPL = "a02yyuw"
TEMPERATURE_SENSOR_IMPL = "ds18b20"
PUMP_DRIVER = "gpio"
FEEDBACK_DRIVER = "gpio_buzzer"
RADIO_DRIVER = "rak3172"

# Device identity
DEVICE_NAME = "tankpod_pi_rak"
SITE_NAME = "T1"

# Timing
SAMPLE_INTERVAL_SECONDS = 30  # One control tick + one status uplink
TIMEZONE = "UTC"
MIN_VALID_YEAR = 2024         # Older clock means no NTP/RTC sync yet

# Retry limits
MAX_RETRIES = 5
RADIO_RECONNECT_BACKOFF_SECONDS = 300  # Radio down -> retry at most this often

# Hardware configuration
SERIAL_PORT = "/dev/rak"              # RAK3172 UART
RAK_PORT_CANDIDATES = ["/dev/ttyUSB0"]
DISTANCE_PORT = "/dev/serial0"        # A02YYUW TX -> Pi RX
DISTANCE_BAUD = 9600
PUMP_GPIO_PIN = 23                    # Pump relay coil (active HIGH)
BUZZER_GPIO_PIN = 24                  # Piezo buzzer
STATUS_LED_GPIO_PIN = 17              # Panel LED mirrors the buzzer
RELAY_DEV = "/dev/ttyACM0"            # Numato USB relay, when PUMP_DRIVER = "numato_serial"
RELAY_CANDIDATES = ["/dev/ttyACM1"]
ANALOG_CHANNEL = 0                    # ADS1115 input for analog sensors
ANALOG_SUPPLY_V = 3.3
W1_DEVICES_DIR = "/sys/bus/w1/devices"

# Tank geometry
TANK_HEIGHT_CM = 100  # Default, overridden by the persisted h_cm
SENSOR_GAP_CM = 5     # Sensor face to full-water surface

# Schedule
SCHEDULE_HOURS = (8, 14, 20)
SCHEDULE_WINDOW_MINUTES = 10
SCHEDULE_SKIP_PERCENT = 85   # Already this full at a slot -> skip the fill
RECOVERY_CLEAR_PERCENT = 90  # Topped up this far -> missed slot forgiven

# Defaults for persisted settings
PUMP_ON_PERCENT = 20
PUMP_OFF_PERCENT = 90
PRE_SCHEDULE_PERCENT = 65
RECOVERY_TRIGGER_PERCENT = 70
SCHEDULES_ENABLED = True

# Files / paths
SETTINGS_FILE = LOCAL_ROOT_DIR + "/tankpod_settings.json"
LOG_MAX_BYTES = 1_000_000   # tankpod_service.log rotation
LOG_BACKUP_COUNT = 3

__all__ = [
    "MODE_NAME",
    "DISTANCE_SENSOR_IMPL",
    "TEMPERATURE_SENSOR_IMPL",
    "PUMP_DRIVER",
    "FEEDBACK_DRIVER",
    "RADIO_DRIVER",
    "DEVICE_NAME",
    "SITE_NAME",
    "SAMPLE_INTERVAL_SECONDS",
    "TIMEZONE",
    "MIN_VALID_YEAR",
    "MAX_RETRIES",
    "RADIO_RECONNECT_BACKOFF_SECONDS",
    "SERIAL_PORT",
    "RAK_PORT_CANDIDATES",
    "DISTANCE_PORT",
    "DISTANCE_BAUD",
    "PUMP_GPIO_PIN",
    "BUZZER_GPIO_PIN",
    "STATUS_LED_GPIO_PIN",
    "RELAY_DEV",
    "RELAY_CANDIDATES",
    "ANALOG_CHANNEL",
    "ANALOG_SUPPLY_V",
    "W1_DEVICES_DIR",
    "TANK_HEIGHT_CM",
    "SENSOR_GAP_CM",
    "SCHEDULE_HOURS",
    "SCHEDULE_WINDOW_MINUTES",
    "SCHEDULE_SKIP_PERCENT",
    "RECOVERY_CLEAR_PERCENT",
    "PUMP_ON_PERCENT",
    "PUMP_OFF_PERCENT",
    "PRE_SCHEDULE_PERCENT",
    "RECOVERY_TRIGGER_PERCENT",
    "SCHEDULES_ENABLED",
    "SETTINGS_FILE",
    "LOG_MAX_BYTES",
    "LOG_BACKUP_COUNT",
    "LOCAL_ROOT_DIR",
    "LOG_DIR",
]
