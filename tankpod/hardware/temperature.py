"""
DS18B20 1-wire temperature probe, read through the w1-gpio sysfs interface.
"""

import glob
import logging
import os
from typing import Optional

log = logging.getLogger(__name__)


def parse_w1_slave(text: str) -> Optional[float]:
    """
    w1_slave looks like:

        72 01 4b 46 7f ff 0e 10 57 : crc=57 YES
        72 01 4b 46 7f ff 0e 10 57 t=23125
    """
    lines = text.strip().splitlines()
    if len(lines) < 2 or not lines[0].strip().endswith("YES"):
        return None
    _, sep, milli = lines[1].partition("t=")
    if not sep:
        return None
    try:
        return int(milli.strip()) / 1000.0
    except ValueError:
        return None


class NullTemperatureSensor:
    def setup(self) -> bool:
        return False

    def read(self) -> Optional[float]:
        return None


class Ds18b20Sensor:
    def __init__(self, devices_dir: str = "/sys/bus/w1/devices"):
        self.devices_dir = devices_dir
        self.device_file = None

    def setup(self) -> bool:
        matches = sorted(glob.glob(os.path.join(self.devices_dir, "28-*")))
        if not matches:
            log.error(f"[TEMP] No DS18B20 found under {self.devices_dir}")
            return False
        self.device_file = os.path.join(matches[0], "w1_slave")
        log.info(f"[TEMP] DS18B20 at {matches[0]}")
        return True

    def read(self) -> Optional[float]:
        if self.device_file is None:
            return None
        try:
            with open(self.device_file, "r") as f:
                value = parse_w1_slave(f.read())
        except OSError as e:
            log.error(f"[TEMP] Failed to read {self.device_file}: {e}")
            return None
        if value is None:
            log.warning("[TEMP] DS18B20 CRC check failed")
        return value


def build_temperature_sensor(impl: str, devices_dir: str = "/sys/bus/w1/devices"):
    if impl == "ds18b20":
        return Ds18b20Sensor(devices_dir)
    if impl == "none":
        return NullTemperatureSensor()
    raise ValueError(f"Unknown temperature sensor impl: {impl}")
