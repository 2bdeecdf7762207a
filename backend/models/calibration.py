"""
Compliance Reading Engine - Meter & Calibration Models
Version: 1.0.1

Changelog:
v1.0.1 (2026-10-12): expiring_soon flag on meter listings
v1.0.0 (2026-10-05): Initial meter/calibration models
"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional
from datetime import datetime, timezone


def as_utc(value: datetime) -> datetime:
    """Treat naive timestamps as UTC so comparisons never mix naive/aware"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Calibration(BaseModel):
    """Time-bounded certification of a meter's accuracy"""
    id: int = Field(..., description="Record ID")
    meter_id: int = Field(..., description="Meter this certificate belongs to")
    calibrated_at: datetime = Field(..., description="Date of calibration")
    expires_at: datetime = Field(..., description="Certificate expiry")
    certificate_ref: Optional[str] = Field(None, description="Certificate number or URL")

    @field_validator("calibrated_at", "expires_at")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return as_utc(v)

    def is_expired(self, at: Optional[datetime] = None) -> bool:
        """Check if calibration has expired at the given instant"""
        return self.expires_at < as_utc(at or utcnow())

    def days_until_expiry(self, at: Optional[datetime] = None) -> int:
        """Days until expiry (negative if expired)"""
        return (self.expires_at - as_utc(at or utcnow())).days


class CalibrationCreate(BaseModel):
    """Record a new calibration certificate"""
    calibrated_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime
    certificate_ref: Optional[str] = None

    @field_validator("calibrated_at", "expires_at")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return as_utc(v)


class MeterCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    serial_number: str = Field(..., min_length=1, max_length=100)
    model: Optional[str] = None


class Meter(MeterCreate):
    """Measuring instrument with its currently active calibration"""
    id: int
    active_calibration: Optional[Calibration] = None
    expired: bool = False
    expiring_soon: bool = False

    @property
    def identity(self) -> str:
        return f"{self.name} (S/N {self.serial_number})"
