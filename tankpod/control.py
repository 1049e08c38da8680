# FILE: control.py
"""
Pump control policy for the tank pod.

PumpController owns the persisted settings and the volatile runtime state and
is the only thing allowed to change either. Two entry points drive it:

- apply_command(): remote PUMP_ON / PUMP_OFF / AUTO / SETTINGS
- evaluate(): one automatic-policy step per sampling tick

Both run under the same lock, so a downlink listener thread and the sampling
loop can share one controller without reordering the tick steps.
"""

import dataclasses
import logging
import threading
from typing import List, Optional

from tankpod.model.clock_reading import ClockReading
from tankpod.model.commands import Auto, Command, PumpOff, PumpOn, Settings
from tankpod.model.pump_state import (
    Beep,
    Decision,
    PumpAction,
    PumpSettings,
    RuntimeState,
    Schedule,
)
from tankpod.settings_store import log_mode_change, log_setting_change
from tankpod.telemetry import build_status_message, distance_to_fill, is_valid_reading

log = logging.getLogger(__name__)

# Feedback patterns (times, duration_ms)
BEEP_MANUAL = (1, 100)
BEEP_AUTO = (2, 50)
BEEP_SETTINGS = (3, 100)
BEEP_START = (1, 500)
BEEP_RECOVERY_START = (3, 200)
BEEP_STOP = (2, 200)

# SETTINGS command field -> PumpSettings field
SETTINGS_FIELDS = {
    "min": "pump_on_level",
    "max": "pump_off_level",
    "sched": "schedules_enabled",
    "pre": "pre_schedule_limit",
    "rec": "recovery_trigger",
}


class PumpController:
    def __init__(self, settings: PumpSettings, store, actuator, feedback,
                 schedule: Optional[Schedule] = None, log_dir: Optional[str] = None):
        """
        `store` needs save(PumpSettings); `actuator` needs set_pump(bool);
        `feedback` needs beep(times, duration_ms). `log_dir` enables the
        mode/settings audit files; None keeps them off.
        """
        self.settings = settings
        self.store = store
        self.actuator = actuator
        self.feedback = feedback
        self.schedule = schedule or Schedule()
        self.log_dir = log_dir
        self.state = RuntimeState()
        self._lock = threading.Lock()
        self._events: List[Beep] = []

    # ------------------------------------------------------------------
    # Side effects
    # ------------------------------------------------------------------

    def _drive_pump(self, on: bool) -> None:
        self.state.pump_on = on
        try:
            self.actuator.set_pump(on)
        except Exception as e:
            log.error(f"[PUMP] Actuator failed to switch {'ON' if on else 'OFF'}: {e}")

    def _signal(self, pattern) -> None:
        beep = Beep(*pattern)
        self._events.append(beep)
        try:
            self.feedback.beep(beep.times, beep.duration_ms)
        except Exception as e:
            log.error(f"[FEEDBACK] beep{pattern} failed: {e}")

    def _finish(self, was_on: bool) -> Decision:
        if self.state.pump_on == was_on:
            action = PumpAction.UNCHANGED
        else:
            action = PumpAction.TURN_ON if self.state.pump_on else PumpAction.TURN_OFF
        events, self._events = self._events, []
        return Decision(pump_on=self.state.pump_on, action=action, events=events)

    # ------------------------------------------------------------------
    # Remote commands
    # ------------------------------------------------------------------

    def apply_command(self, cmd: Optional[Command]) -> Decision:
        with self._lock:
            was_on = self.state.pump_on

            if isinstance(cmd, PumpOn):
                self.state.manual_mode = True
                self._drive_pump(True)
                self._signal(BEEP_MANUAL)
                log.info("[COMMAND] PUMP_ON -> manual mode, pump ON")
                self._audit_mode("MANUAL")

            elif isinstance(cmd, PumpOff):
                self.state.manual_mode = True
                self._drive_pump(False)
                self._signal(BEEP_MANUAL)
                log.info("[COMMAND] PUMP_OFF -> manual mode, pump OFF")
                self._audit_mode("MANUAL")

            elif isinstance(cmd, Auto):
                self.state.manual_mode = False
                self._signal(BEEP_AUTO)
                log.info("[COMMAND] AUTO -> automatic policy resumed")
                self._audit_mode("AUTO")

            elif isinstance(cmd, Settings):
                self._apply_settings(cmd)

            else:
                log.debug(f"[COMMAND] Ignoring {cmd!r}")

            return self._finish(was_on)

    def _apply_settings(self, cmd: Settings) -> None:
        changes = {
            field_name: getattr(cmd, key)
            for key, field_name in SETTINGS_FIELDS.items()
            if getattr(cmd, key) is not None
        }
        candidate = dataclasses.replace(self.settings, **changes)

        problems = candidate.problems()
        if problems:
            log.warning(f"[SETTINGS] Rejected {cmd}: {'; '.join(problems)}")
            return

        old = self.settings
        self.settings = candidate
        for field_name, value in changes.items():
            old_value = getattr(old, field_name)
            if old_value != value:
                log.info(f"[SETPOINT] {field_name} {old_value} -> {value}")
                if self.log_dir:
                    log_setting_change(field_name, old_value, value, log_dir=self.log_dir)

        try:
            self.store.save(self.settings)
        except Exception as e:
            # Keep running on the new values but don't acknowledge with a beep
            log.error(f"[SETTINGS] Failed to persist settings: {e}")
            return

        self._signal(BEEP_SETTINGS)

    def _audit_mode(self, mode: str) -> None:
        if self.log_dir:
            log_mode_change(mode, log_dir=self.log_dir)

    # ------------------------------------------------------------------
    # Sensor inputs
    # ------------------------------------------------------------------

    def read_fill(self, raw_distance_cm: Optional[float]) -> float:
        """
        Convert a raw distance to a fill percentage. Invalid or non-positive
        readings hold over the previous value.
        """
        with self._lock:
            if not is_valid_reading(raw_distance_cm) or float(raw_distance_cm) <= 0:
                log.warning(
                    f"[DISTANCE] Invalid reading {raw_distance_cm!r}; "
                    f"holding {self.state.last_fill_percent:.1f}%"
                )
                return self.state.last_fill_percent

            fill = distance_to_fill(
                float(raw_distance_cm),
                self.settings.tank_height_cm,
                self.settings.sensor_gap_cm,
            )
            self.state.last_fill_percent = fill
            return fill

    def read_temperature(self, temperature_c: Optional[float]) -> Optional[float]:
        with self._lock:
            if is_valid_reading(temperature_c):
                self.state.last_temperature = float(temperature_c)
            return self.state.last_temperature

    # ------------------------------------------------------------------
    # Automatic policy
    # ------------------------------------------------------------------

    def evaluate(self, fill_percent: Optional[float], now: Optional[ClockReading]) -> Decision:
        """
        One policy step. `now` is None when the clock is unavailable; the
        schedule steps are skipped for that tick and the normal stop level
        applies.
        """
        with self._lock:
            st = self.state
            was_on = st.pump_on

            if st.manual_mode:
                return self._finish(was_on)

            if is_valid_reading(fill_percent):
                fill = max(0.0, min(float(fill_percent), 100.0))
            else:
                fill = st.last_fill_percent

            if now is not None:
                if now.day != st.last_schedule_day:
                    log.info(f"[SCHED] New day {now.day}; schedule slots reset")
                    st.last_schedule_day = now.day
                    st.last_schedule_hour = -1

                if self.settings.schedules_enabled:
                    self._check_schedule(fill, now)

            if not st.pump_on:
                self._check_start(fill)
            else:
                self._check_stop(fill, now)

            return self._finish(was_on)

    def _check_schedule(self, fill: float, now: ClockReading) -> None:
        st = self.state
        sched = self.schedule

        for slot in sched.hours:
            in_window = (
                now.hour == slot
                and now.minute < sched.window_minutes
                and st.last_schedule_hour != slot
            )
            if in_window:
                if fill <= sched.skip_percent:
                    if not st.pump_on:
                        log.info(f"[SCHED] {slot:02d}:00 window, fill={fill:.1f}% -> pump ON")
                        self._drive_pump(True)
                        self._signal(BEEP_START)
                else:
                    log.info(f"[SCHED] {slot:02d}:00 window, fill={fill:.1f}% full enough -> skip")
                st.last_schedule_hour = slot

            elif now.hour > slot and st.last_schedule_hour < slot:
                if not st.recovery_pending:
                    log.warning(f"[RECOVERY] {slot:02d}:00 window missed; recovery pending")
                st.recovery_pending = True

    def _check_start(self, fill: float) -> None:
        st = self.state
        cfg = self.settings

        if fill <= cfg.pump_on_level:
            log.info(f"[PUMP] fill={fill:.1f}% <= ON={cfg.pump_on_level}% -> ON")
            self._drive_pump(True)
            self._signal(BEEP_START)
        elif st.recovery_pending and fill <= cfg.recovery_trigger:
            log.info(f"[RECOVERY] fill={fill:.1f}% <= REC={cfg.recovery_trigger}% -> ON")
            self._drive_pump(True)
            self._signal(BEEP_RECOVERY_START)

    def _check_stop(self, fill: float, now: Optional[ClockReading]) -> None:
        st = self.state
        cfg = self.settings

        if now is not None and self.schedule.is_pre_schedule_hour(now.hour):
            threshold, label = cfg.pre_schedule_limit, "PRE"
        else:
            threshold, label = cfg.pump_off_level, "OFF"

        if fill >= threshold:
            log.info(f"[PUMP] fill={fill:.1f}% >= {label}={threshold}% -> OFF")
            self._drive_pump(False)
            self._signal(BEEP_STOP)
            if fill >= self.schedule.recovery_clear_percent and st.recovery_pending:
                log.info("[RECOVERY] Tank topped up; recovery cleared")
                st.recovery_pending = False

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def snapshot(self) -> RuntimeState:
        with self._lock:
            return dataclasses.replace(self.state)

    def status(self) -> dict:
        with self._lock:
            return build_status_message(self.state, self.settings)

    def force_off(self) -> None:
        """Known safe state at startup: pump OFF, no feedback."""
        with self._lock:
            log.info("[PUMP] Startup: forcing pump OFF for known safe state.")
            self._drive_pump(False)
