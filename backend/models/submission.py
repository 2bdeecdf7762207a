"""
Compliance Reading Engine - Submission Models
Version: 1.1.0

Changelog:
v1.1.0 (2026-10-12): Verdicts are derived on read, never persisted per reading
v1.0.0 (2026-10-05): Initial submission models
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime
from enum import Enum


class SubmissionStatus(str, Enum):
    """Submission lifecycle"""
    DRAFT = "draft"
    ACTIVE = "active"
    SUBMITTED = "submitted"


class Verdict(str, Enum):
    """Classification of a single captured value"""
    PASS = "pass"
    FAIL = "fail"
    NA = "na"


class OverallResult(str, Enum):
    """Submission-level rollup"""
    PASS = "pass"
    FAIL = "fail"
    INCOMPLETE = "incomplete"


class Asset(BaseModel):
    """Physical asset on a job (damper, fan, door...)"""
    id: int
    job_id: Optional[int] = None
    label: str
    location: Optional[str] = None


class AssetCreate(BaseModel):
    label: str = Field(..., min_length=1, max_length=200)
    location: Optional[str] = None


class Aggregate(BaseModel):
    pass_count: int = 0
    fail_count: int = 0
    na_count: int = 0
    overall_result: OverallResult = OverallResult.INCOMPLETE


class EntityInstance(BaseModel):
    """One concrete occurrence of an entity template within a submission"""
    id: int
    submission_id: int
    entity_template_id: int
    asset_id: Optional[int] = None
    location: Optional[str] = None
    answers: Dict[str, Any] = Field(default_factory=dict)
    verdicts: Dict[str, Verdict] = Field(default_factory=dict, description="Derived on read")
    updated_at: Optional[datetime] = None


class Reading(BaseModel):
    """Measured value bound to a meter and a calibration snapshot"""
    id: int
    entity_instance_id: int
    field_id: str
    meter_id: int
    calibration_id: int
    value: Any = None
    calibration_expires_at: datetime
    calibration_expired: bool = False
    recorded_at: datetime
    verdict: Optional[Verdict] = Field(None, description="Derived on read")


class Submission(BaseModel):
    """One test session of a form version against a job"""
    id: int
    job_id: int
    form_version_id: int
    status: SubmissionStatus = SubmissionStatus.DRAFT
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    aggregate: Optional[Aggregate] = None
    entities: List[EntityInstance] = Field(default_factory=list)
    readings: List[Reading] = Field(default_factory=list)
    untested_assets: List[Asset] = Field(default_factory=list)


class SubmissionCreate(BaseModel):
    job_id: int
    form_version_id: int


class InstantiateResult(BaseModel):
    submission: Submission
    assets: List[Asset] = Field(default_factory=list)
    created: int = 0
    skipped: int = 0


class ReadingResult(BaseModel):
    reading: Reading
    warnings: List[str] = Field(default_factory=list)


class SubmitResult(BaseModel):
    submission: Submission
    warnings: List[str] = Field(default_factory=list)
