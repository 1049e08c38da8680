import threading
import unittest
from unittest import mock

from tankpod.control import PumpController
from tankpod.model.clock_reading import ClockReading
from tankpod.model.commands import Auto, PumpOff, PumpOn, Settings
from tankpod.model.pump_state import Beep, PumpAction, PumpSettings, Schedule


class FakeStore:
    def __init__(self, fail=False):
        self.saved = []
        self.fail = fail

    def save(self, settings):
        if self.fail:
            raise OSError("read-only file system")
        self.saved.append(settings)


def at(hour, minute=30, day=1):
    return ClockReading(day=day, hour=hour, minute=minute)


class PumpControllerTestBase(unittest.TestCase):
    def make_controller(self, schedules=True, hours=(8, 14, 20), **overrides):
        settings = PumpSettings(
            tank_height_cm=100,
            sensor_gap_cm=5,
            pump_on_level=20,
            pump_off_level=90,
            schedules_enabled=schedules,
            pre_schedule_limit=65,
            recovery_trigger=70,
        )
        for name, value in overrides.items():
            setattr(settings, name, value)
        self.store = FakeStore()
        self.actuator = mock.Mock()
        self.feedback = mock.Mock()
        self.ctrl = PumpController(
            settings, self.store, self.actuator, self.feedback, schedule=Schedule(hours=hours)
        )
        return self.ctrl


class TestThresholds(PumpControllerTestBase):
    def setUp(self):
        self.make_controller(schedules=False)

    def test_low_level_starts_pump(self):
        for fill in (0, 10, 20):
            self.make_controller(schedules=False)
            decision = self.ctrl.evaluate(fill, at(10))
            self.assertTrue(decision.pump_on, fill)
            self.assertEqual(decision.action, PumpAction.TURN_ON)
            self.assertEqual(decision.events, [Beep(1, 500)])
            self.actuator.set_pump.assert_called_once_with(True)

    def test_between_levels_keeps_pump_off(self):
        decision = self.ctrl.evaluate(50, at(10))
        self.assertFalse(decision.pump_on)
        self.assertEqual(decision.action, PumpAction.UNCHANGED)
        self.assertEqual(decision.events, [])
        self.actuator.set_pump.assert_not_called()

    def test_high_level_stops_pump(self):
        self.ctrl.evaluate(10, at(10))
        for fill in (90, 95, 100):
            self.ctrl.state.pump_on = True
            decision = self.ctrl.evaluate(fill, at(10))
            self.assertFalse(decision.pump_on, fill)
            self.assertEqual(decision.action, PumpAction.TURN_OFF)
            self.assertEqual(decision.events, [Beep(2, 200)])

    def test_hysteresis_keeps_pump_running_until_off_level(self):
        self.ctrl.evaluate(10, at(10))
        decision = self.ctrl.evaluate(60, at(10))
        self.assertTrue(decision.pump_on)
        self.assertEqual(decision.action, PumpAction.UNCHANGED)

    def test_repeated_ticks_do_not_oscillate(self):
        first = self.ctrl.evaluate(15, at(10))
        second = self.ctrl.evaluate(15, at(10))
        self.assertTrue(first.pump_on)
        self.assertTrue(second.pump_on)
        self.assertEqual(second.action, PumpAction.UNCHANGED)
        self.assertEqual(second.events, [])

        first = self.ctrl.evaluate(92, at(10))
        second = self.ctrl.evaluate(92, at(10))
        self.assertFalse(first.pump_on)
        self.assertFalse(second.pump_on)
        self.assertEqual(second.events, [])

    def test_invalid_fill_uses_last_reading(self):
        self.ctrl.read_fill(55)  # 50%
        decision = self.ctrl.evaluate(None, at(10))
        self.assertFalse(decision.pump_on)
        decision = self.ctrl.evaluate(float("nan"), at(10))
        self.assertFalse(decision.pump_on)

    def test_actuator_failure_does_not_raise(self):
        self.actuator.set_pump.side_effect = RuntimeError("relay gone")
        decision = self.ctrl.evaluate(10, at(10))
        self.assertTrue(decision.pump_on)

    def test_clock_unavailable_still_runs_thresholds(self):
        self.make_controller(schedules=True)
        self.assertTrue(self.ctrl.evaluate(10, None).pump_on)
        decision = self.ctrl.evaluate(90, None)
        self.assertFalse(decision.pump_on)
        self.assertFalse(self.ctrl.state.recovery_pending)
        self.assertEqual(self.ctrl.state.last_schedule_day, -1)


class TestManualOverride(PumpControllerTestBase):
    def setUp(self):
        self.make_controller(schedules=True)

    def test_pump_on_command(self):
        decision = self.ctrl.apply_command(PumpOn())
        self.assertTrue(decision.pump_on)
        self.assertTrue(self.ctrl.state.manual_mode)
        self.assertEqual(decision.events, [Beep(1, 100)])
        self.actuator.set_pump.assert_called_once_with(True)
        self.feedback.beep.assert_called_once_with(1, 100)

    def test_pump_off_command(self):
        self.ctrl.evaluate(10, at(10))
        decision = self.ctrl.apply_command(PumpOff())
        self.assertFalse(decision.pump_on)
        self.assertEqual(decision.action, PumpAction.TURN_OFF)
        self.assertTrue(self.ctrl.state.manual_mode)
        self.assertEqual(decision.events, [Beep(1, 100)])

    def test_manual_mode_suppresses_policy(self):
        self.ctrl.apply_command(PumpOn())
        self.actuator.reset_mock()
        for fill, now in ((100, at(10)), (95, at(7)), (88, at(8, 5))):
            decision = self.ctrl.evaluate(fill, now)
            self.assertTrue(decision.pump_on)
            self.assertEqual(decision.events, [])
        self.actuator.set_pump.assert_not_called()

        self.ctrl.apply_command(PumpOff())
        decision = self.ctrl.evaluate(0, at(8, 5))
        self.assertFalse(decision.pump_on)

    def test_auto_hands_back_to_policy(self):
        self.ctrl.apply_command(PumpOn())
        self.actuator.reset_mock()

        decision = self.ctrl.apply_command(Auto())
        self.assertFalse(self.ctrl.state.manual_mode)
        self.assertTrue(decision.pump_on)
        self.assertEqual(decision.events, [Beep(2, 50)])
        self.actuator.set_pump.assert_not_called()

        decision = self.ctrl.evaluate(95, at(10))
        self.assertFalse(decision.pump_on)

    def test_unknown_command_is_ignored(self):
        decision = self.ctrl.apply_command(None)
        self.assertEqual(decision.events, [])
        self.assertFalse(self.ctrl.state.manual_mode)
        self.feedback.beep.assert_not_called()


class TestSettingsCommand(PumpControllerTestBase):
    def setUp(self):
        self.make_controller()

    def test_partial_update_is_persisted(self):
        decision = self.ctrl.apply_command(Settings(min=25))
        self.assertEqual(self.ctrl.settings.pump_on_level, 25)
        self.assertEqual(self.ctrl.settings.pump_off_level, 90)
        self.assertEqual(self.ctrl.settings.pre_schedule_limit, 65)
        self.assertEqual(self.ctrl.settings.recovery_trigger, 70)
        self.assertTrue(self.ctrl.settings.schedules_enabled)
        self.assertEqual(len(self.store.saved), 1)
        self.assertEqual(self.store.saved[0].pump_on_level, 25)
        self.assertEqual(decision.events, [Beep(3, 100)])

    def test_all_fields(self):
        self.ctrl.apply_command(Settings(min=10, max=80, sched=False, pre=50, rec=40))
        s = self.ctrl.settings
        self.assertEqual(
            (s.pump_on_level, s.pump_off_level, s.schedules_enabled, s.pre_schedule_limit, s.recovery_trigger),
            (10, 80, False, 50, 40),
        )

    def test_inconsistent_settings_are_rejected(self):
        for cmd in (Settings(min=95), Settings(max=10), Settings(rec=5), Settings(pre=150)):
            decision = self.ctrl.apply_command(cmd)
            self.assertEqual(self.ctrl.settings.pump_on_level, 20, cmd)
            self.assertEqual(self.ctrl.settings.pump_off_level, 90, cmd)
            self.assertEqual(decision.events, [], cmd)
        self.assertEqual(self.store.saved, [])

    def test_save_failure_keeps_running(self):
        self.ctrl.store = FakeStore(fail=True)
        decision = self.ctrl.apply_command(Settings(max=85))
        self.assertEqual(self.ctrl.settings.pump_off_level, 85)
        self.assertEqual(decision.events, [])

    def test_new_levels_apply_on_next_tick(self):
        self.ctrl.apply_command(Settings(min=40, rec=50, sched=False))
        self.assertTrue(self.ctrl.evaluate(35, at(10)).pump_on)


class TestSchedule(PumpControllerTestBase):
    def setUp(self):
        self.make_controller(hours=(8, 14, 20))

    def test_window_start(self):
        decision = self.ctrl.evaluate(80, at(8, 5))
        self.assertTrue(decision.pump_on)
        self.assertEqual(decision.events, [Beep(1, 500)])
        self.assertEqual(self.ctrl.state.last_schedule_hour, 8)
        self.assertEqual(self.ctrl.state.last_schedule_day, 1)

    def test_full_tank_skips_slot(self):
        decision = self.ctrl.evaluate(88, at(8, 5))
        self.assertFalse(decision.pump_on)
        self.assertEqual(self.ctrl.state.last_schedule_hour, 8)

        self.ctrl.evaluate(88, at(9, 0))
        self.assertFalse(self.ctrl.state.recovery_pending)

    def test_outside_window_minutes(self):
        decision = self.ctrl.evaluate(80, at(8, 10))
        self.assertFalse(decision.pump_on)
        self.assertEqual(self.ctrl.state.last_schedule_hour, -1)

    def test_slot_resolves_once(self):
        self.ctrl.evaluate(80, at(8, 1))
        self.ctrl.evaluate(95, at(8, 2))  # stopped at the off level
        decision = self.ctrl.evaluate(80, at(8, 3))
        self.assertFalse(decision.pump_on)

    def test_day_rollover_reopens_slot(self):
        self.ctrl.evaluate(80, at(8, 1, day=1))
        self.ctrl.evaluate(95, at(8, 2, day=1))
        self.assertEqual(self.ctrl.state.last_schedule_hour, 8)

        self.ctrl.evaluate(80, at(0, 0, day=2))
        self.assertEqual(self.ctrl.state.last_schedule_day, 2)
        self.assertEqual(self.ctrl.state.last_schedule_hour, -1)

        decision = self.ctrl.evaluate(80, at(8, 1, day=2))
        self.assertTrue(decision.pump_on)
        self.assertEqual(self.ctrl.state.last_schedule_hour, 8)

    def test_schedules_disabled(self):
        self.make_controller(schedules=False)
        decision = self.ctrl.evaluate(80, at(8, 5))
        self.assertFalse(decision.pump_on)
        self.ctrl.evaluate(80, at(9, 0))
        self.assertFalse(self.ctrl.state.recovery_pending)

    def test_schedule_start_is_seen_by_stop_check(self):
        self.make_controller(pump_off_level=80)
        decision = self.ctrl.evaluate(82, at(8, 5))
        self.assertFalse(decision.pump_on)
        self.assertEqual(decision.action, PumpAction.UNCHANGED)
        self.assertEqual(decision.events, [Beep(1, 500), Beep(2, 200)])


class TestRecovery(PumpControllerTestBase):
    def setUp(self):
        self.make_controller(hours=(8,))

    def test_recovery_round_trip(self):
        decision = self.ctrl.evaluate(80, at(9, 0))
        self.assertTrue(self.ctrl.state.recovery_pending)
        self.assertFalse(decision.pump_on)

        decision = self.ctrl.evaluate(65, at(9, 30))
        self.assertTrue(decision.pump_on)
        self.assertEqual(decision.events, [Beep(3, 200)])

        decision = self.ctrl.evaluate(92, at(10, 0))
        self.assertFalse(decision.pump_on)
        self.assertFalse(self.ctrl.state.recovery_pending)

    def test_missed_slot_flag_repeats_until_resolved(self):
        self.ctrl.evaluate(80, at(9, 0))
        self.ctrl.state.recovery_pending = False
        self.ctrl.evaluate(80, at(11, 0))
        self.assertTrue(self.ctrl.state.recovery_pending)

    def test_stop_below_clear_level_keeps_recovery(self):
        self.make_controller(hours=(8,), pump_off_level=85)
        self.ctrl.evaluate(60, at(9, 0))
        decision = self.ctrl.evaluate(86, at(9, 5))
        self.assertFalse(decision.pump_on)
        self.assertTrue(self.ctrl.state.recovery_pending)

    def test_low_level_start_has_priority(self):
        decision = self.ctrl.evaluate(15, at(9, 0))
        self.assertTrue(self.ctrl.state.recovery_pending)
        self.assertEqual(decision.events, [Beep(1, 500)])

    def test_resolved_slot_is_not_missed(self):
        self.ctrl.evaluate(80, at(8, 5))
        self.ctrl.evaluate(95, at(8, 30))
        self.ctrl.evaluate(80, at(9, 0))
        self.assertFalse(self.ctrl.state.recovery_pending)


class TestPreScheduleThrottle(PumpControllerTestBase):
    def setUp(self):
        self.make_controller(hours=(8, 14, 20))

    def test_pre_schedule_hour_uses_lower_limit(self):
        self.ctrl.evaluate(10, at(7, 0))
        decision = self.ctrl.evaluate(66, at(7, 15))
        self.assertFalse(decision.pump_on)
        self.assertEqual(decision.events, [Beep(2, 200)])

    def test_other_hours_use_off_level(self):
        self.ctrl.evaluate(10, at(10, 0))
        decision = self.ctrl.evaluate(66, at(10, 15))
        self.assertTrue(decision.pump_on)

    def test_all_pre_schedule_hours(self):
        for hour in (7, 13, 19):
            self.make_controller()
            self.ctrl.evaluate(10, at(hour, 0))
            self.assertFalse(self.ctrl.evaluate(65, at(hour, 1)).pump_on, hour)


class TestReadFill(PumpControllerTestBase):
    def setUp(self):
        self.make_controller()

    def test_example_conversion(self):
        self.assertAlmostEqual(self.ctrl.read_fill(55), 50.0)
        self.assertAlmostEqual(self.ctrl.state.last_fill_percent, 50.0)

    def test_clamped(self):
        self.assertEqual(self.ctrl.read_fill(2), 100.0)
        self.assertEqual(self.ctrl.read_fill(400), 0.0)

    def test_invalid_reading_holds_last_value(self):
        self.ctrl.read_fill(30)
        for raw in (None, 0, -5, float("nan")):
            self.assertAlmostEqual(self.ctrl.read_fill(raw), 75.0, msg=repr(raw))

    def test_temperature_holdover(self):
        self.assertIsNone(self.ctrl.read_temperature(None))
        self.assertEqual(self.ctrl.read_temperature(21.5), 21.5)
        self.assertEqual(self.ctrl.read_temperature(None), 21.5)


class TestSerialization(PumpControllerTestBase):
    def test_hardware_is_driven_under_the_lock(self):
        self.make_controller(schedules=False)
        held = []
        self.actuator.set_pump.side_effect = lambda on: held.append(self.ctrl._lock.locked())
        self.feedback.beep.side_effect = lambda times, ms: held.append(self.ctrl._lock.locked())

        self.ctrl.evaluate(10, at(10))
        self.ctrl.apply_command(PumpOff())
        self.ctrl.apply_command(Auto())
        self.ctrl.apply_command(Settings(min=25))

        self.assertEqual(len(held), 6)
        self.assertTrue(all(held))

    def test_commands_and_ticks_from_two_threads(self):
        self.make_controller(schedules=False)
        errors = []

        def commands():
            try:
                for i in range(200):
                    self.ctrl.apply_command(Settings(min=10, rec=40) if i % 2 else Settings(min=30, rec=70))
            except Exception as e:
                errors.append(e)

        def ticks():
            try:
                for i in range(200):
                    self.ctrl.evaluate(5 if i % 2 else 95, at(10))
            except Exception as e:
                errors.append(e)

        workers = [threading.Thread(target=commands), threading.Thread(target=ticks)]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join(timeout=10)

        self.assertEqual(errors, [])
        self.assertEqual(self.ctrl.settings.problems(), [])
        self.assertEqual(len(self.store.saved), 200)
        self.assertEqual(self.actuator.set_pump.call_args[0][0], self.ctrl.state.pump_on)


class TestStatus(PumpControllerTestBase):
    def test_status_message(self):
        self.make_controller()
        self.ctrl.read_fill(55)
        self.ctrl.read_temperature(18.31)
        self.ctrl.apply_command(PumpOn())
        self.assertEqual(
            self.ctrl.status(),
            {
                "level": 50,
                "pump": True,
                "temp": 18.3,
                "mode": "MANUAL",
                "settings": {"min": 20, "max": 90, "sched": True, "pre": 65, "rec": 70, "h_cm": 100},
            },
        )

    def test_snapshot_is_a_copy(self):
        self.make_controller()
        snap = self.ctrl.snapshot()
        snap.pump_on = True
        self.assertFalse(self.ctrl.state.pump_on)


if __name__ == "__main__":
    unittest.main()
