"""
Compliance Reading Engine - Metrology Guard
Version: 1.1.0

Changelog:
v1.1.0 (2026-10-12): Client-supplied calibration is re-validated against the
                      meter's active calibration at capture time
v1.0.0 (2026-10-05): Initial guard

Binds numeric readings to a meter and a frozen calibration snapshot. Only
missing or mismatched identifiers block a capture; an expired calibration
produces an advisory warning unless FORMS_BLOCK_EXPIRED_CALIBRATION is set.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from config import settings
from models.calibration import Meter, utcnow
from models.forms import EntityTemplate, FieldDefinition, FieldType
from models.submission import ReadingResult
from services.errors import ValidationError
from services.evaluation import classify

logger = logging.getLogger(__name__)


def expiry_warning(meter: Meter, expires_at: datetime) -> str:
    return f"Calibration expired for meter {meter.identity} on {expires_at:%Y-%m-%d}"


def resolve_reading_field(template: EntityTemplate,
                          field_id: Optional[str]) -> FieldDefinition:
    """The numeric field a reading measures; defaults to the first number field"""
    if field_id:
        field = template.field(field_id)
        if field is None:
            raise ValidationError(f"Unknown field '{field_id}' on '{template.title}'")
        if field.type != FieldType.NUMBER:
            raise ValidationError(f"Field '{field_id}' is not a numeric field")
        return field

    field = template.first_numeric_field()
    if field is None:
        raise ValidationError(f"'{template.title}' has no numeric field to record a reading on")
    return field


class MetrologyGuard:
    """Validates meter/calibration pairs and records readings with a calibration snapshot."""

    def __init__(self, repository):
        self.repository = repository

    async def check_calibration(self, meter_id: int, calibration_id: int):
        """
        Re-validate a (meter, calibration) pair against the registry.

        Args:
            meter_id: meters.id chosen by the operator
            calibration_id: calibrations.id the client believes is current

        Returns:
            (Meter, Calibration) tuple

        Raises:
            NotFoundError: Unknown meter or calibration
            ValidationError: Calibration belongs to another meter or has been
                             superseded by a newer certificate
        """
        meter = await self.repository.get_meter(meter_id)
        calibration = await self.repository.get_calibration(calibration_id)

        if calibration.meter_id != meter.id:
            raise ValidationError(
                f"Calibration {calibration_id} does not belong to meter {meter.identity}")

        active = meter.active_calibration
        if active is None or active.id != calibration.id:
            raise ValidationError(
                f"Calibration {calibration_id} is no longer active for meter "
                f"{meter.identity}; current calibration is "
                f"{active.id if active else 'none'}")

        return meter, calibration

    async def capture(self, entity_instance_id: int, meter_id: Optional[int],
                      calibration_id: Optional[int], value: Any,
                      field_id: Optional[str] = None) -> ReadingResult:
        """
        Record (or overwrite) a reading on an entity instance.

        Raises:
            ValidationError: Missing meter/calibration id, unusable field,
                             mismatched or superseded calibration, or expired
                             calibration when blocking is enabled
            NotFoundError: Unknown instance, meter or calibration
            SubmissionLockedError: Owning submission already submitted
        """
        if meter_id is None or meter_id == "":
            raise ValidationError("meter_id is required")
        if calibration_id is None or calibration_id == "":
            raise ValidationError("calibration_id is required")

        instance, template, _ = await self.repository.load_instance_context(
            entity_instance_id, for_write=True)
        field = resolve_reading_field(template, field_id)
        meter, calibration = await self.check_calibration(meter_id, calibration_id)

        now = utcnow()
        expired = calibration.is_expired(now)
        warnings = []
        if expired:
            warnings.append(expiry_warning(meter, calibration.expires_at))
            if settings.FORMS_BLOCK_EXPIRED_CALIBRATION:
                raise ValidationError(warnings[0])
            logger.warning(f"Instance {instance.id}: {warnings[0]}")

        reading = await self.repository.upsert_reading(
            instance.id, field.id, meter.id, calibration.id, value,
            calibration_expires_at=calibration.expires_at,
            calibration_expired=expired,
        )
        reading.verdict = classify(field, reading.value)
        return ReadingResult(reading=reading, warnings=warnings)
