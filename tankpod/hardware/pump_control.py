"""
Pump relay actuators. The controller only ever calls set_pump(bool).
"""

import logging
import os

import serial

log = logging.getLogger(__name__)


class PumpRelay:
    def setup(self) -> bool:
        return True

    def set_pump(self, on: bool) -> None:
        raise NotImplementedError

    def is_on(self) -> bool:
        raise NotImplementedError

    def close(self) -> None:
        return


class GpioPumpRelay(PumpRelay):
    """Relay coil driven straight from a GPIO pin (active HIGH)."""

    def __init__(self, pin: int):
        self.pin = pin
        self._gpio = None
        self._on = False

    def setup(self) -> bool:
        try:
            import RPi.GPIO as GPIO

            GPIO.setwarnings(False)
            GPIO.setmode(GPIO.BCM)
            GPIO.setup(self.pin, GPIO.OUT)
            GPIO.output(self.pin, GPIO.LOW)
            self._gpio = GPIO
            log.info(f"[RELAY] Pump relay on GPIO{self.pin}")
            return True
        except Exception as e:
            self._gpio = None
            log.error(f"[RELAY] GPIO setup failed for pin {self.pin}: {e}")
            return False

    def set_pump(self, on: bool) -> None:
        if self._gpio is None:
            raise RuntimeError(f"GPIO{self.pin} relay not initialized")
        self._gpio.output(self.pin, self._gpio.HIGH if on else self._gpio.LOW)
        self._on = on
        log.info(f"[PUMP] Pump turned {'ON' if on else 'OFF'} (GPIO{self.pin})")

    def is_on(self) -> bool:
        return self._on

    def close(self) -> None:
        if self._gpio is not None:
            self._gpio.output(self.pin, self._gpio.LOW)
            self._gpio.cleanup(self.pin)


class NumatoPumpRelay(PumpRelay):
    """Numato USB relay board (relay 0) over its serial console."""

    def __init__(self, relay_dev: str, candidates=None):
        self.relay_dev = relay_dev
        self.relay_candidates = candidates or []
        self._on = False

    def _resolve_device(self):
        if os.path.exists(self.relay_dev):
            return self.relay_dev
        for c in self.relay_candidates:
            if os.path.exists(c):
                self.relay_dev = c
                return c
        return None

    def setup(self) -> bool:
        dev = self._resolve_device()
        if dev is None:
            log.error(f"[RELAY] No Numato relay at {self.relay_dev} or {self.relay_candidates}")
            return False
        log.info(f"[RELAY] Numato relay on {dev}")
        return True

    def _send_relay_command(self, command: str) -> None:
        dev = self._resolve_device()
        if dev is None:
            raise RuntimeError(f"No relay device available for '{command}'")
        with serial.Serial(dev, 9600, timeout=1) as ser:
            ser.write((command + "\r").encode())
        log.info(f"[RELAY] Sent '{command}' to {dev}")

    def set_pump(self, on: bool) -> None:
        self._send_relay_command("relay on 0" if on else "relay off 0")
        self._on = on
        log.info(f"[PUMP] Pump turned {'ON' if on else 'OFF'}")

    def is_on(self) -> bool:
        return self._on


class SimPumpRelay(PumpRelay):
    def __init__(self):
        self._on = False

    def set_pump(self, on: bool) -> None:
        self._on = on
        log.info(f"[SIM] Pump {'ON' if on else 'OFF'}")

    def is_on(self) -> bool:
        return self._on


def build_pump_relay(driver: str, pin: int = 0, relay_dev: str = "/dev/ttyACM0",
                     relay_candidates=None) -> PumpRelay:
    if driver == "gpio":
        return GpioPumpRelay(pin)
    if driver == "numato_serial":
        return NumatoPumpRelay(relay_dev, relay_candidates)
    if driver == "sim":
        return SimPumpRelay()
    raise ValueError(f"Unknown pump driver: {driver}")
