"""
Compliance Reading Engine - Meters API
Version: 1.0.0

Changelog:
v1.0.0 (2026-10-05): Meter registry with calibration history
"""

from fastapi import APIRouter

from api import http_error
from models.calibration import CalibrationCreate, MeterCreate
from services.errors import FormsError
from services.forms_repository import FormsRepository

router = APIRouter(prefix="/meters", tags=["meters"])

repository = FormsRepository()


@router.post("/", status_code=201)
async def create_meter(data: MeterCreate):
    try:
        return {"meter": await repository.create_meter(data)}
    except FormsError as e:
        raise http_error(e)


@router.get("/active")
async def list_active_meters():
    """All meters with their active calibration and expiry flags."""
    return {"meters": await repository.list_meters()}


@router.get("/{meter_id}")
async def get_meter(meter_id: int):
    try:
        return {"meter": await repository.get_meter(meter_id)}
    except FormsError as e:
        raise http_error(e)


@router.post("/{meter_id}/calibrations", status_code=201)
async def add_calibration(meter_id: int, data: CalibrationCreate):
    """Record a calibration; the newest certificate becomes the active one."""
    try:
        return {"calibration": await repository.add_calibration(meter_id, data)}
    except FormsError as e:
        raise http_error(e)
