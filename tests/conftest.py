"""Shared fixtures: a fresh SQLite file per test and a session builder."""

from datetime import datetime, timedelta, timezone

import pytest

from config import settings
from models import (
    AssetCreate, CalibrationCreate, EntityTemplateCreate, FieldDefinition,
    FormTemplateCreate, FormVersionCreate, MeterCreate, init_db,
)
from services.forms_repository import FormsRepository
from services.submission_engine import SubmissionEngine


@pytest.fixture
async def repo(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "SQLITE_DB_PATH", str(tmp_path / "compliance.db"))
    await init_db()
    return FormsRepository()


@pytest.fixture
def engine(repo):
    return SubmissionEngine(repo)


def damper_entity(**field_overrides) -> EntityTemplateCreate:
    """Per-asset template with one numeric field banded 10..20"""
    airflow = dict(id="airflow", label="Airflow", type="number", unit="m/s",
                   pass_threshold=10, fail_threshold=20)
    airflow.update(field_overrides)
    return EntityTemplateCreate(
        title="Damper Test", repeat_per_asset=True,
        fields=[FieldDefinition(**airflow)],
    )


def site_entity(required: bool = False) -> EntityTemplateCreate:
    return EntityTemplateCreate(
        title="Site Checks", sort_order=-1,
        fields=[
            FieldDefinition(id="panel", label="Panel status", type="select",
                            required=required, options=["normal", "fault"]),
            FieldDefinition(id="casing", label="Fan casing", type="pass_fail"),
        ],
    )


@pytest.fixture
def build_session(repo, engine):
    """Create job + assets + published version + DRAFT submission."""

    async def _build(asset_labels=("A", "B"), entities=None):
        job = await repo.create_job("JOB-1", "Test Site")
        assets = [await repo.add_asset(job["id"], AssetCreate(label=label, location=f"Level {i}"))
                  for i, label in enumerate(asset_labels, start=1)]
        template = await repo.create_template(FormTemplateCreate(name="Smoke control"))
        version = await repo.create_version(template.id, FormVersionCreate(
            title="v1", entities=list(entities if entities is not None else [damper_entity()])))
        await repo.publish_version(version.id)
        submission = await engine.create_submission(job["id"], version.id)
        return submission, assets

    return _build


@pytest.fixture
def make_meter(repo):
    """Meter with one calibration expiring `expires_in_days` from now."""

    async def _make(serial="SN-1", expires_in_days=180, name="Anemometer"):
        meter = await repo.create_meter(MeterCreate(name=name, serial_number=serial))
        now = datetime.now(timezone.utc)
        calibration = await repo.add_calibration(meter.id, CalibrationCreate(
            calibrated_at=now - timedelta(days=365),
            expires_at=now + timedelta(days=expires_in_days),
            certificate_ref=f"CERT-{serial}",
        ))
        return meter, calibration

    return _make
