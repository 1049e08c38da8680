from dataclasses import dataclass
from typing import Optional


@dataclass
class DistanceTelemetry:
    distance_cm: Optional[float]  # None when the sensor frame was unusable
    raw: int
    source: str
