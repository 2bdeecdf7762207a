"""
Compliance Reading Engine - Answer Store
Version: 1.0.1

Changelog:
v1.0.1 (2026-10-12): Required-ness moved to submit time so partial saves work
v1.0.0 (2026-10-05): Initial answer validation and persistence

Type-checks free-form answers against the entity template's fields and
replaces the instance's answers map (last write wins).
"""

import logging
from typing import Any, Dict, Iterable, List, Set

from models.forms import FieldDefinition, FieldType
from services.errors import ValidationError
from services.evaluation import is_blank

logger = logging.getLogger(__name__)

PASS_FAIL_TOKENS = ("pass", "fail", "na")


def _check_value(field: FieldDefinition, value: Any) -> str | None:
    """Return an error message for a wrong-typed value, or None"""
    label = field.display_label
    if field.type == FieldType.TEXT:
        if not isinstance(value, str):
            return f"{label} must be text"
    elif field.type == FieldType.NUMBER:
        # Unparseable strings are kept; they classify as NA
        if isinstance(value, bool) or not isinstance(value, (int, float, str)):
            return f"{label} must be a number"
    elif field.type == FieldType.BOOLEAN:
        if not isinstance(value, bool):
            return f"{label} must be true/false"
    elif field.type == FieldType.SELECT:
        if not isinstance(value, str):
            return f"{label} must be a choice"
        if value not in field.options:
            return f"{label} must be one of the provided options"
    elif field.type == FieldType.PASS_FAIL:
        if isinstance(value, bool):
            return None
        if not isinstance(value, str) or value.strip().lower() not in PASS_FAIL_TOKENS:
            return f"{label} must be pass, fail or na"
    return None


def validate_answers(fields: Iterable[FieldDefinition],
                     answers: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate an answers map against field definitions.

    Args:
        fields: Field definitions of the instance's entity template
        answers: Field id -> raw value

    Returns:
        Cleaned answers with blank values dropped

    Raises:
        ValidationError: Unknown field ids or wrong-typed values
    """
    if not isinstance(answers, dict):
        raise ValidationError("answers must be an object keyed by field id")

    by_id = {f.id: f for f in fields}
    errors: List[str] = []
    cleaned: Dict[str, Any] = {}

    for field_id, value in answers.items():
        field = by_id.get(field_id)
        if field is None:
            errors.append(f"Unknown field '{field_id}'")
            continue
        if is_blank(value):
            continue
        message = _check_value(field, value)
        if message:
            errors.append(message)
        else:
            cleaned[field_id] = value

    if errors:
        raise ValidationError(", ".join(errors), details=errors)
    return cleaned


def missing_required(fields: Iterable[FieldDefinition], answers: Dict[str, Any],
                     measured_field_ids: Set[str] = frozenset()) -> List[str]:
    """Labels of required fields left blank; a reading fills a number field"""
    missing = []
    for field in fields:
        if not field.required:
            continue
        if field.id in measured_field_ids:
            continue
        if is_blank(answers.get(field.id)):
            missing.append(field.display_label)
    return missing


class AnswerStore:
    """Persists validated answers per entity instance."""

    def __init__(self, repository):
        self.repository = repository

    async def save(self, entity_instance_id: int, answers: Dict[str, Any]):
        """
        Replace an instance's answers.

        Raises:
            NotFoundError: Unknown instance
            SubmissionLockedError: Owning submission already submitted
            ValidationError: Unknown fields or wrong-typed values
        """
        instance, template, _ = await self.repository.load_instance_context(
            entity_instance_id, for_write=True)
        cleaned = validate_answers(template.fields, answers)
        updated = await self.repository.update_answers(instance.id, cleaned)
        logger.debug(f"Saved {len(cleaned)} answers on instance {instance.id}")
        return updated

