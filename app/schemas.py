"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from models.records import MotorState, Reading


class ReadingIn(BaseModel):
    """Sensor payload accepted by ``POST /data``."""

    distance: float = Field(
        ..., ge=0, strict=True, allow_inf_nan=False, description="Distance to water in cm."
    )
    motor: MotorState


class ReadingOut(BaseModel):
    """Stored reading as exposed by ``GET /data``."""

    distance: float
    motor: MotorState
    ts: int = Field(..., description="Receive time in epoch milliseconds.")

    @classmethod
    def from_reading(cls, reading: Reading) -> "ReadingOut":
        return cls(
            distance=reading.distance,
            motor=reading.motor,
            ts=int(reading.timestamp.timestamp() * 1000),
        )


class DataSummary(BaseModel):
    count: int = Field(..., ge=0)
    latest: Optional[ReadingOut] = None


class IngestAck(BaseModel):
    ok: bool = True


class InvalidPayload(BaseModel):
    """Body of the 400 response for a rejected reading."""

    error: str
    got: Any = None


class EmailSystemStatus(BaseModel):
    emailSystem: str
    config: Optional[Dict[str, Optional[str]]] = None
    message: Optional[str] = None
