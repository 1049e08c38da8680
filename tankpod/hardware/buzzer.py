"""
Audible/visual feedback: beep(times, duration_ms) on a piezo buzzer with the
panel LED flashing alongside. Patterns play on a worker thread so the control
tick never waits on them.
"""

import logging
import queue
import threading
import time

log = logging.getLogger(__name__)


class LogFeedback:
    """Bench feedback: just log the pattern."""

    def setup(self) -> bool:
        return True

    def beep(self, times: int, duration_ms: int) -> None:
        log.info(f"[BEEP] x{times} {duration_ms} ms")

    def close(self) -> None:
        return


class GpioBuzzer:
    def __init__(self, buzzer_pin: int, led_pin=None):
        self.buzzer_pin = buzzer_pin
        self.led_pin = led_pin
        self._gpio = None
        self._patterns: "queue.Queue" = queue.Queue(maxsize=8)
        self._worker = None

    def setup(self) -> bool:
        try:
            import RPi.GPIO as GPIO

            GPIO.setwarnings(False)
            GPIO.setmode(GPIO.BCM)
            for pin in self._pins():
                GPIO.setup(pin, GPIO.OUT)
                GPIO.output(pin, GPIO.LOW)
            self._gpio = GPIO
        except Exception as e:
            self._gpio = None
            log.error(f"[BEEP] GPIO setup failed ({e}); feedback disabled.")
            return False

        self._worker = threading.Thread(target=self._run, name="buzzer", daemon=True)
        self._worker.start()
        return True

    def _pins(self):
        return [p for p in (self.buzzer_pin, self.led_pin) if p is not None]

    def _drive(self, state: bool) -> None:
        for pin in self._pins():
            self._gpio.output(pin, self._gpio.HIGH if state else self._gpio.LOW)

    def _run(self) -> None:
        while True:
            times, duration_ms = self._patterns.get()
            if times is None:
                return
            try:
                for _ in range(times):
                    self._drive(True)
                    time.sleep(duration_ms / 1000.0)
                    self._drive(False)
                    time.sleep(duration_ms / 1000.0)
            except Exception as e:
                log.error(f"[BEEP] Pattern x{times} failed: {e}")

    def beep(self, times: int, duration_ms: int) -> None:
        if self._gpio is None:
            log.debug(f"[BEEP] (disabled) x{times} {duration_ms} ms")
            return
        try:
            self._patterns.put_nowait((times, duration_ms))
        except queue.Full:
            log.warning(f"[BEEP] Pattern queue full; dropped x{times} {duration_ms} ms")

    def close(self) -> None:
        if self._worker is not None:
            self._patterns.put((None, 0))
            self._worker.join(timeout=5)
        if self._gpio is not None:
            self._drive(False)


def build_feedback(driver: str, buzzer_pin: int = 0, led_pin=None):
    if driver == "gpio_buzzer":
        return GpioBuzzer(buzzer_pin, led_pin)
    if driver == "log":
        return LogFeedback()
    raise ValueError(f"Unknown feedback driver: {driver}")
