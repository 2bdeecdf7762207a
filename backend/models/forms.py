"""
Compliance Reading Engine - Form Template Models
Version: 1.1.0

Changelog:
v1.1.0 (2026-10-19): System types, library entities, generation request
v1.0.1 (2026-10-12): Threshold/option consistency checks on FieldDefinition
v1.0.0 (2026-10-05): Initial template catalog models
"""

from pydantic import BaseModel, Field, model_validator
from typing import Optional, List
from datetime import datetime
from enum import Enum


class FieldType(str, Enum):
    """Captured value types"""
    TEXT = "text"
    NUMBER = "number"
    BOOLEAN = "boolean"
    SELECT = "select"
    PASS_FAIL = "pass_fail"


class VersionStatus(str, Enum):
    """Form version lifecycle"""
    DRAFT = "draft"
    PUBLISHED = "published"


class FieldDefinition(BaseModel):
    """Schema for one captured value"""
    id: str = Field(..., min_length=1, description="Field key within the entity")
    label: str = Field("", description="Operator-facing label")
    type: FieldType = Field(..., description="Value type")
    required: bool = Field(False, description="Must be filled before submission")
    unit: Optional[str] = Field(None, description="Display unit, e.g. 'm/s'")
    pass_threshold: Optional[float] = Field(None, description="Lower acceptable bound")
    fail_threshold: Optional[float] = Field(None, description="Upper acceptable bound")
    options: List[str] = Field(default_factory=list, description="Choices for select fields")

    @model_validator(mode="after")
    def _check_consistency(self):
        has_thresholds = self.pass_threshold is not None or self.fail_threshold is not None
        if has_thresholds and self.type != FieldType.NUMBER:
            raise ValueError(f"Field '{self.id}': thresholds only apply to number fields")
        if (self.pass_threshold is not None and self.fail_threshold is not None
                and self.pass_threshold > self.fail_threshold):
            raise ValueError(
                f"Field '{self.id}': pass_threshold {self.pass_threshold} exceeds "
                f"fail_threshold {self.fail_threshold}")
        if self.type == FieldType.SELECT and not self.options:
            raise ValueError(f"Field '{self.id}': select fields need at least one option")
        return self

    @property
    def display_label(self) -> str:
        return self.label or self.id


class EntityTemplateCreate(BaseModel):
    """Named group of fields, optionally repeated once per asset"""
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    repeat_per_asset: bool = Field(False, description="Fan out one instance per job asset")
    sort_order: int = 0
    fields: List[FieldDefinition] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_field_ids(self):
        seen = set()
        for f in self.fields:
            if f.id in seen:
                raise ValueError(f"Duplicate field id '{f.id}' in '{self.title}'")
            seen.add(f.id)
        return self


class EntityTemplate(EntityTemplateCreate):
    """Entity template as stored in a form version"""
    id: int
    form_version_id: int

    def field(self, field_id: str) -> Optional[FieldDefinition]:
        for f in self.fields:
            if f.id == field_id:
                return f
        return None

    def first_numeric_field(self) -> Optional[FieldDefinition]:
        for f in self.fields:
            if f.type == FieldType.NUMBER:
                return f
        return None


class FormTemplateCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None


class FormTemplate(FormTemplateCreate):
    id: int
    created_at: Optional[datetime] = None


class FormVersionCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    notes: Optional[str] = None
    entities: List[EntityTemplateCreate] = Field(default_factory=list)


class FormVersion(BaseModel):
    """Versioned, ordered set of entity templates; immutable once published"""
    id: int
    template_id: int
    version_number: int
    title: str
    notes: Optional[str] = None
    status: VersionStatus = VersionStatus.DRAFT
    published_at: Optional[datetime] = None
    entities: List[EntityTemplate] = Field(default_factory=list)


class SystemType(BaseModel):
    """Smoke-control system classification, e.g. PSS or CAR_PARK"""
    id: int
    code: str
    name: str
    standard: Optional[str] = None
    description: Optional[str] = None


class LibraryEntity(BaseModel):
    """Reusable entity definition, in the position its system type requires"""
    id: int
    code: str
    name: str
    standard: Optional[str] = None
    description: Optional[str] = None
    sort_order: int = 0
    fields: List[FieldDefinition] = Field(default_factory=list)


class GenerateFromSystemType(BaseModel):
    system_type_code: str = Field(..., min_length=1)
    template_name: str = Field(..., min_length=1, max_length=200)
