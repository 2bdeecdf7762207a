"""
Compliance Reading Engine - Forms API
Version: 1.2.0

Changelog:
v1.2.0 (2026-10-19): System-type listing and draft generation
v1.1.0 (2026-10-12): Untested-assets read; 409 on writes after submission
v1.0.0 (2026-10-05): Template catalog, submissions, answers, readings, submit

Template catalog management plus the test-session workflow used by the
field PWA: create submission -> instantiate -> answers/readings -> submit.
"""

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel
from typing import Optional, Dict, Any
import logging

from api import http_error
from models.forms import (
    EntityTemplateCreate, FormTemplateCreate, FormVersionCreate, GenerateFromSystemType,
)
from models.submission import SubmissionCreate
from services import submission_engine
from services.errors import FormsError
from services.forms_repository import FormsRepository

router = APIRouter(prefix="/forms", tags=["forms"])
logger = logging.getLogger(__name__)

repository = FormsRepository()


class AnswersSubmit(BaseModel):
    """Replace the answers of one entity instance."""
    answers: Dict[str, Any] = {}


class ReadingSubmit(BaseModel):
    """Metered reading; ids are optional here so the engine can reject them."""
    meter_id: Optional[int] = None
    calibration_id: Optional[int] = None
    value: Any = None
    field_id: Optional[str] = None


# -- Template catalog --

@router.get("/templates")
async def list_templates():
    return {"templates": await repository.list_templates()}


@router.post("/templates", status_code=201)
async def create_template(data: FormTemplateCreate):
    return {"template": await repository.create_template(data)}


@router.post("/templates/{template_id}/versions", status_code=201)
async def create_version(template_id: int, data: FormVersionCreate):
    try:
        return {"version": await repository.create_version(template_id, data)}
    except FormsError as e:
        raise http_error(e)


@router.post("/versions/{version_id}/entities", status_code=201)
async def add_entity(version_id: int, data: EntityTemplateCreate):
    try:
        return {"entity": await repository.add_entity(version_id, data)}
    except FormsError as e:
        raise http_error(e)


@router.post("/versions/{version_id}/publish")
async def publish_version(version_id: int):
    try:
        return {"version": await repository.publish_version(version_id)}
    except FormsError as e:
        raise http_error(e)


@router.get("/versions")
async def list_versions():
    """Published versions with their ordered entity templates."""
    return {"versions": await repository.list_versions()}


@router.get("/versions/{version_id}")
async def get_version(version_id: int):
    try:
        return {"version": await repository.get_version(version_id)}
    except FormsError as e:
        raise http_error(e)


# -- Smoke-control system types --

@router.get("/system-types")
async def list_system_types():
    return {"system_types": await repository.list_system_types()}


@router.get("/system-types/{code}/entities")
async def list_system_type_entities(code: str):
    """Required library entities of a system type, in form order."""
    return {"entities": await repository.list_system_type_entities(code)}


@router.post("/generate-from-system-type", status_code=201)
async def generate_from_system_type(data: GenerateFromSystemType):
    """Draft template + version with the system type's required entities."""
    try:
        template, version = await repository.generate_from_system_type(
            data.system_type_code, data.template_name)
        return {"template": template, "version": version}
    except FormsError as e:
        raise http_error(e)


# -- Submissions --

@router.post("/submissions", status_code=201)
async def create_submission(data: SubmissionCreate):
    try:
        submission = await submission_engine.create_submission(
            data.job_id, data.form_version_id)
        return {"submission": submission}
    except FormsError as e:
        raise http_error(e)


@router.get("/submissions/{submission_id}")
async def get_submission(submission_id: int):
    try:
        return {"submission": await submission_engine.get_submission(submission_id)}
    except FormsError as e:
        raise http_error(e)


@router.post("/submissions/{submission_id}/instantiate")
async def instantiate(submission_id: int):
    try:
        return await submission_engine.instantiate(submission_id)
    except FormsError as e:
        raise http_error(e)


@router.get("/submissions/{submission_id}/untested-assets")
async def get_untested_assets(submission_id: int):
    try:
        return {"assets": await submission_engine.untested_assets(submission_id)}
    except FormsError as e:
        raise http_error(e)


@router.post("/entity-instances/{entity_instance_id}/answers")
async def save_answers(entity_instance_id: int, data: AnswersSubmit):
    try:
        entity = await submission_engine.save_answers(entity_instance_id, data.answers)
        return {"entity": entity}
    except FormsError as e:
        raise http_error(e)


@router.post("/entity-instances/{entity_instance_id}/readings", status_code=201)
async def save_reading(entity_instance_id: int, data: ReadingSubmit):
    """Record a metered reading; calibration warnings ride along, never block."""
    try:
        return await submission_engine.save_reading(
            entity_instance_id, data.meter_id, data.calibration_id,
            data.value, data.field_id)
    except FormsError as e:
        raise http_error(e)


@router.post("/submissions/{submission_id}/submit")
async def submit(submission_id: int):
    try:
        return await submission_engine.submit(submission_id)
    except FormsError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Failed to submit {submission_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))
