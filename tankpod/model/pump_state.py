from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple


@dataclass
class PumpSettings:
    # Persisted; see settings_store.py for the key names
    tank_height_cm: int = 100
    sensor_gap_cm: int = 5
    pump_on_level: int = 20
    pump_off_level: int = 90
    schedules_enabled: bool = True
    pre_schedule_limit: int = 65
    recovery_trigger: int = 70

    def problems(self) -> List[str]:
        """Return the invariant violations of this settings set (empty when valid)."""
        issues = []
        for name in ("pump_on_level", "pump_off_level", "pre_schedule_limit", "recovery_trigger"):
            value = getattr(self, name)
            if not 0 <= value <= 100:
                issues.append(f"{name}={value} outside 0..100")
        if self.pump_on_level >= self.pump_off_level:
            issues.append(f"pump_on_level={self.pump_on_level} >= pump_off_level={self.pump_off_level}")
        if self.pump_on_level > self.recovery_trigger:
            issues.append(f"pump_on_level={self.pump_on_level} > recovery_trigger={self.recovery_trigger}")
        if self.tank_height_cm <= 0:
            issues.append(f"tank_height_cm={self.tank_height_cm} must be positive")
        return issues


@dataclass(frozen=True)
class Schedule:
    hours: Tuple[int, ...] = (8, 14, 20)
    window_minutes: int = 10
    skip_percent: float = 85.0
    recovery_clear_percent: float = 90.0

    def __post_init__(self):
        object.__setattr__(self, "hours", tuple(sorted(self.hours)))

    def is_pre_schedule_hour(self, hour: int) -> bool:
        return any(hour == slot - 1 for slot in self.hours)


@dataclass
class RuntimeState:
    manual_mode: bool = False
    pump_on: bool = False
    recovery_pending: bool = False
    last_schedule_day: int = -1
    last_schedule_hour: int = -1
    last_fill_percent: float = 0.0
    last_temperature: Optional[float] = None


@dataclass(frozen=True)
class Beep:
    times: int
    duration_ms: int


class PumpAction(str, Enum):
    UNCHANGED = "UNCHANGED"
    TURN_ON = "TURN_ON"
    TURN_OFF = "TURN_OFF"


@dataclass
class Decision:
    pump_on: bool
    action: PumpAction = PumpAction.UNCHANGED
    events: List[Beep] = field(default_factory=list)
