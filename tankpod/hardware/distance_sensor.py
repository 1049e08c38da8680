"""
Distance sensor implementations (A02YYUW UART ultrasonic, analog
ultrasonic through an ADS1115, and a simulated tank for the bench).
"""

import logging
from typing import Callable, Optional

import serial

from tankpod import config
from tankpod.model.distance_telemetry import DistanceTelemetry

log = logging.getLogger(__name__)

# A02YYUW frame: 0xFF, DATA_H, DATA_L, SUM  (distance in mm)
A02_HEADER = 0xFF
A02_FRAME_LEN = 4
A02_MIN_MM = 30
A02_MAX_MM = 4500


class DistanceSensor:
    def setup(self) -> bool:
        raise NotImplementedError

    def read(self) -> DistanceTelemetry:
        raise NotImplementedError


def parse_a02yyuw_frames(buf: bytes) -> Optional[int]:
    """
    Return the distance in mm from the newest frame in `buf` whose checksum
    is good, or None if there isn't one.
    """
    latest = None
    i = 0
    while i <= len(buf) - A02_FRAME_LEN:
        if buf[i] != A02_HEADER:
            i += 1
            continue
        high, low, checksum = buf[i + 1], buf[i + 2], buf[i + 3]
        if (A02_HEADER + high + low) & 0xFF == checksum:
            latest = (high << 8) | low
            i += A02_FRAME_LEN
        else:
            i += 1
    return latest


class A02yyuwDistanceSensor(DistanceSensor):
    """
    DFRobot A02YYUW waterproof ultrasonic sensor on a UART (processed
    output mode, one frame every ~100 ms).
    """

    def __init__(self, port: Optional[str] = None, baud: Optional[int] = None):
        self.port = port or getattr(config, "DISTANCE_PORT", "/dev/serial0")
        self.baud = baud or getattr(config, "DISTANCE_BAUD", 9600)
        self.initialized = False

    def setup(self) -> bool:
        try:
            with serial.Serial(self.port, self.baud, timeout=1) as ser:
                ser.reset_input_buffer()
            self.initialized = True
            log.info(f"[DISTANCE] A02YYUW ready on {self.port}")
            return True
        except serial.SerialException as e:
            self.initialized = False
            log.error(f"[DISTANCE] A02YYUW init failed on {self.port}: {e}")
            return False

    def read(self) -> DistanceTelemetry:
        if not self.initialized:
            raise RuntimeError("A02YYUW not initialized; call setup() first.")

        with serial.Serial(self.port, self.baud, timeout=0.5) as ser:
            ser.reset_input_buffer()
            buf = ser.read(A02_FRAME_LEN * 6)

        mm = parse_a02yyuw_frames(buf)
        if mm is None:
            log.warning(f"[DISTANCE] No valid A02YYUW frame in {len(buf)} bytes")
            return DistanceTelemetry(None, -1, "a02yyuw")

        if not A02_MIN_MM <= mm <= A02_MAX_MM:
            log.warning(f"[DISTANCE] A02YYUW out of range: {mm} mm")
            return DistanceTelemetry(None, mm, "a02yyuw")

        log.debug(f"[DISTANCE] A02YYUW {mm} mm")
        return DistanceTelemetry(mm / 10.0, mm, "a02yyuw")


class Ads1115DistanceSensor(DistanceSensor):
    """
    Analog-output ultrasonic sensor (MaxBotix style: Vcc/1024 per 5 mm)
    read through an ADS1115.
    """

    def __init__(self, channel_index: Optional[int] = None):
        self.channel_index = channel_index if channel_index is not None else getattr(config, "ANALOG_CHANNEL", 0)
        self.supply_v = getattr(config, "ANALOG_SUPPLY_V", 3.3)
        self.chan = None

    def setup(self) -> bool:
        try:
            import board
            import busio
            import adafruit_ads1x15.ads1115 as ADS
            from adafruit_ads1x15.analog_in import AnalogIn

            i2c = busio.I2C(board.SCL, board.SDA)
            ads = ADS.ADS1115(i2c)
            self.chan = AnalogIn(ads, self.channel_index)
            log.info("[DISTANCE] ADS1115 detected on I2C bus.")
            return True
        except Exception as e:
            self.chan = None
            log.error(f"[DISTANCE] No ADS1115 detected ({e}).")
            return False

    def read(self) -> DistanceTelemetry:
        if self.chan is None:
            raise RuntimeError("ADS1115 channel not initialized; cannot read distance.")

        voltage = float(self.chan.voltage)
        mm = voltage / (self.supply_v / 1024.0) * 5.0
        log.debug(f"[DISTANCE] V={voltage:.4f} -> {mm:.0f} mm")
        return DistanceTelemetry(mm / 10.0, int(round(mm)), "ads1115")


class SimDistanceSensor(DistanceSensor):
    """
    Bench tank: the water surface rises while `pump_is_on()` and drains
    slowly otherwise.
    """

    def __init__(self, pump_is_on: Callable[[], bool]):
        self.pump_is_on = pump_is_on
        self.tank_height_cm = getattr(config, "TANK_HEIGHT_CM", 100)
        self.gap_cm = getattr(config, "SENSOR_GAP_CM", 5)
        self.distance_cm = float(getattr(config, "SIM_START_DISTANCE_CM", 60.0))
        self.fill_step = float(getattr(config, "SIM_FILL_CM_PER_TICK", 3.0))
        self.drain_step = float(getattr(config, "SIM_DRAIN_CM_PER_TICK", 0.5))

    def setup(self) -> bool:
        log.info("[SIM] Simulated distance sensor active.")
        return True

    def read(self) -> DistanceTelemetry:
        step = -self.fill_step if self.pump_is_on() else self.drain_step
        empty_cm = self.tank_height_cm + self.gap_cm
        self.distance_cm = max(float(self.gap_cm), min(self.distance_cm + step, float(empty_cm)))
        return DistanceTelemetry(self.distance_cm, int(self.distance_cm * 10), "sim")


def build_distance_sensor(impl: str, pump_is_on: Optional[Callable[[], bool]] = None) -> DistanceSensor:
    if impl == "a02yyuw":
        return A02yyuwDistanceSensor()
    if impl == "ads1115":
        return Ads1115DistanceSensor()
    if impl == "sim":
        return SimDistanceSensor(pump_is_on or (lambda: False))
    raise ValueError(f"Unknown distance sensor impl: {impl}")
