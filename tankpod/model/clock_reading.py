from dataclasses import dataclass


@dataclass(frozen=True)
class ClockReading:
    day: int
    hour: int
    minute: int
