"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class MotorState(str, Enum):
    """Pump motor state reported alongside each distance sample."""

    on = "ON"
    off = "OFF"


@dataclass(frozen=True, slots=True)
class Reading:
    """A single accepted sensor sample.

    ``distance`` is the ultrasonic distance to the water surface in cm, so a
    smaller value means a higher water level.
    """

    distance: float
    motor: MotorState
    timestamp: datetime
