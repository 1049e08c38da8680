"""
Remote commands accepted by the pump controller.
"""

from dataclasses import dataclass
from typing import Optional, Union


@dataclass(frozen=True)
class PumpOn:
    pass


@dataclass(frozen=True)
class PumpOff:
    pass


@dataclass(frozen=True)
class Auto:
    pass


@dataclass(frozen=True)
class Settings:
    """
    Partial settings update; None means "keep the current value".

    Field names are the downlink keys (min/max/sched/pre/rec), so `min` and
    `max` shadow the builtins inside this class only.
    """
    min: Optional[int] = None
    max: Optional[int] = None
    sched: Optional[bool] = None
    pre: Optional[int] = None
    rec: Optional[int] = None


Command = Union[PumpOn, PumpOff, Auto, Settings]
