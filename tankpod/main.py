#!/usr/bin/env python3
"""
Tank pod main control program.

Every SAMPLE_INTERVAL_SECONDS:

- Reads the distance sensor and converts it to a fill percentage
- Reads the DS18B20 temperature probe
- Reads the wall clock for the fill schedule
- Applies any pending downlink command (PUMP_ON / PUMP_OFF / AUTO / SETTINGS)
- Runs one step of the pump control policy
- Sends the JSON status uplink through the RAK3172
"""

import logging
import time

from tankpod import config, logger
from tankpod.control import PumpController
from tankpod.downlink import check_downlink
from tankpod.hardware import (
    build_distance_sensor,
    build_feedback,
    build_pump_relay,
    build_radio,
    build_temperature_sensor,
)
from tankpod.hardware.clock import SystemClock
from tankpod.model.pump_state import Schedule
from tankpod.settings_store import SettingsStore

log = logging.getLogger(__name__)


def build_controller(relay, feedback) -> PumpController:
    store = SettingsStore(config.SETTINGS_FILE)
    settings = store.load()
    schedule = Schedule(
        hours=tuple(config.SCHEDULE_HOURS),
        window_minutes=config.SCHEDULE_WINDOW_MINUTES,
        skip_percent=config.SCHEDULE_SKIP_PERCENT,
        recovery_clear_percent=config.RECOVERY_CLEAR_PERCENT,
    )
    return PumpController(settings, store, relay, feedback, schedule=schedule, log_dir=config.LOG_DIR)


def read_distance_cm(sensor):
    try:
        measurement = sensor.read()
    except Exception as e:
        log.error(f"[MAIN] Error reading distance: {e}")
        return None
    return measurement.distance_cm


def run_tick(controller, sensor, thermometer, clock, radio) -> None:
    """One sampling tick."""
    distance_cm = read_distance_cm(sensor)
    fill = controller.read_fill(distance_cm)
    controller.read_temperature(thermometer.read())
    now = clock.read()

    check_downlink(radio, controller)

    decision = controller.evaluate(fill, now)
    log.info(
        f"[MEASURE] distance={distance_cm} cm fill={fill:.1f}% "
        f"pump={'ON' if decision.pump_on else 'OFF'} action={decision.action.value}"
    )

    try:
        if not radio.send_status(controller.status()):
            log.warning("[MAIN] Send failed; attempting radio reconnect.")
            radio.reconnect()
    except Exception as e:
        log.error(f"[MAIN] Telemetry send error: {e}")


def main() -> None:
    logger.setupLogging()
    log.info(f"Starting tank pod {config.DEVICE_NAME} at {config.SITE_NAME} ({config.MODE}) ...")

    relay = build_pump_relay(
        config.PUMP_DRIVER,
        pin=config.PUMP_GPIO_PIN,
        relay_dev=config.RELAY_DEV,
        relay_candidates=config.RELAY_CANDIDATES,
    )
    relay.setup()
    feedback = build_feedback(
        config.FEEDBACK_DRIVER,
        buzzer_pin=config.BUZZER_GPIO_PIN,
        led_pin=config.STATUS_LED_GPIO_PIN,
    )
    feedback.setup()

    sensor = build_distance_sensor(config.DISTANCE_SENSOR_IMPL, pump_is_on=relay.is_on)
    if not sensor.setup():
        log.error("[MAIN] Distance sensor unavailable; readings will hold the last value.")

    thermometer = build_temperature_sensor(config.TEMPERATURE_SENSOR_IMPL, config.W1_DEVICES_DIR)
    thermometer.setup()

    clock = SystemClock(config.TIMEZONE, config.MIN_VALID_YEAR)

    radio = build_radio(config.RADIO_DRIVER)
    if not radio.open():
        log.error("[MAIN] Radio unavailable; running the pump policy offline.")

    controller = build_controller(relay, feedback)
    controller.force_off()

    try:
        while True:
            started = time.monotonic()
            run_tick(controller, sensor, thermometer, clock, radio)
            elapsed = time.monotonic() - started
            time.sleep(max(0.0, config.SAMPLE_INTERVAL_SECONDS - elapsed))
    except KeyboardInterrupt:
        log.info("[MAIN] Stopping.")
    finally:
        controller.force_off()
        feedback.close()
        relay.close()
        radio.close()


if __name__ == "__main__":
    main()
