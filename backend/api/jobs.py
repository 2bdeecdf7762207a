"""
Compliance Reading Engine - Jobs API
Version: 1.0.1

Changelog:
v1.0.1 (2026-10-14): Replace a job's asset list in one call
v1.0.0 (2026-10-05): Jobs and their asset lists
"""

from fastapi import APIRouter
from pydantic import BaseModel
from typing import List, Optional

from api import http_error
from models.submission import AssetCreate
from services.errors import FormsError
from services.forms_repository import FormsRepository

router = APIRouter(prefix="/jobs", tags=["jobs"])

repository = FormsRepository()


class JobCreate(BaseModel):
    reference: str
    site_name: Optional[str] = None


@router.post("/", status_code=201)
async def create_job(data: JobCreate):
    return {"job": await repository.create_job(data.reference, data.site_name)}


@router.get("/{job_id}")
async def get_job(job_id: int):
    try:
        return {"job": await repository.get_job(job_id)}
    except FormsError as e:
        raise http_error(e)


@router.post("/{job_id}/assets", status_code=201)
async def add_asset(job_id: int, data: AssetCreate):
    try:
        return {"asset": await repository.add_asset(job_id, data)}
    except FormsError as e:
        raise http_error(e)


@router.put("/{job_id}/assets")
async def set_assets(job_id: int, data: List[AssetCreate]):
    """Replace the job's asset list; matching labels keep their ids."""
    try:
        return {"assets": await repository.set_job_assets(job_id, data)}
    except FormsError as e:
        raise http_error(e)


@router.get("/{job_id}/assets")
async def list_assets(job_id: int):
    try:
        await repository.get_job(job_id)
        return {"assets": await repository.list_assets_for_job(job_id)}
    except FormsError as e:
        raise http_error(e)
