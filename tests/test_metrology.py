"""Meter/calibration validation and reading capture."""

from datetime import timedelta

import pytest

from config import settings
from conftest import site_entity
from models import (
    CalibrationCreate, EntityTemplateCreate, FieldDefinition, MeterCreate, OverallResult,
    SubmissionStatus, Verdict,
)
from models.calibration import utcnow
from services.errors import NotFoundError, SubmissionLockedError, ValidationError


@pytest.fixture
def active_instance(build_session, engine):
    """First per-asset damper instance of an ACTIVE submission"""

    async def _get(**kwargs):
        submission, assets = await build_session(**kwargs)
        result = await engine.instantiate(submission.id)
        instance = next(e for e in result.submission.entities if e.asset_id == assets[0].id)
        return submission, instance

    return _get


class TestCapture:

    async def test_records_reading_with_snapshot(self, active_instance, make_meter, engine):
        _, instance = await active_instance()
        meter, calibration = await make_meter()

        result = await engine.save_reading(instance.id, meter.id, calibration.id, 15)

        assert result.warnings == []
        assert result.reading.field_id == "airflow"
        assert result.reading.calibration_id == calibration.id
        assert result.reading.calibration_expires_at == calibration.expires_at
        assert result.reading.calibration_expired is False
        assert result.reading.verdict == Verdict.PASS

    async def test_missing_calibration_id_writes_nothing(self, active_instance, make_meter,
                                                         engine, repo):
        submission, instance = await active_instance()
        meter, _ = await make_meter()

        with pytest.raises(ValidationError, match="calibration_id"):
            await engine.save_reading(instance.id, meter.id, None, 15)

        assert await repo.list_readings(submission.id) == []

    async def test_missing_meter_id(self, active_instance, make_meter, engine):
        _, instance = await active_instance()
        _, calibration = await make_meter()

        with pytest.raises(ValidationError, match="meter_id"):
            await engine.save_reading(instance.id, None, calibration.id, 15)

    async def test_expired_calibration_warns_but_records(self, active_instance, make_meter,
                                                         engine, repo):
        submission, instance = await active_instance()
        meter, calibration = await make_meter(expires_in_days=-5, name="Vane Anemometer")

        result = await engine.save_reading(instance.id, meter.id, calibration.id, 15)

        assert len(result.warnings) == 1
        assert "expired" in result.warnings[0]
        assert "Vane Anemometer" in result.warnings[0]
        assert result.reading.calibration_expired is True
        assert len(await repo.list_readings(submission.id)) == 1

    async def test_expired_calibration_blocks_when_configured(self, active_instance, make_meter,
                                                              engine, repo, monkeypatch):
        monkeypatch.setattr(settings, "FORMS_BLOCK_EXPIRED_CALIBRATION", True)
        submission, instance = await active_instance()
        meter, calibration = await make_meter(expires_in_days=-5)

        with pytest.raises(ValidationError, match="expired"):
            await engine.save_reading(instance.id, meter.id, calibration.id, 15)
        assert await repo.list_readings(submission.id) == []

    async def test_superseded_calibration_rejected(self, active_instance, make_meter,
                                                   engine, repo):
        _, instance = await active_instance()
        meter, old = await make_meter()
        await repo.add_calibration(meter.id, CalibrationCreate(
            expires_at=utcnow() + timedelta(days=365)))

        with pytest.raises(ValidationError, match="no longer active"):
            await engine.save_reading(instance.id, meter.id, old.id, 15)

    async def test_calibration_of_other_meter_rejected(self, active_instance, make_meter, engine):
        _, instance = await active_instance()
        meter, _ = await make_meter(serial="SN-1")
        _, other = await make_meter(serial="SN-2")

        with pytest.raises(ValidationError, match="does not belong"):
            await engine.save_reading(instance.id, meter.id, other.id, 15)

    async def test_unknown_meter(self, active_instance, make_meter, engine):
        _, instance = await active_instance()
        _, calibration = await make_meter()

        with pytest.raises(NotFoundError):
            await engine.save_reading(instance.id, 999, calibration.id, 15)

    async def test_recapture_overwrites(self, active_instance, make_meter, engine, repo):
        submission, instance = await active_instance()
        meter, calibration = await make_meter()

        await engine.save_reading(instance.id, meter.id, calibration.id, 15)
        result = await engine.save_reading(instance.id, meter.id, calibration.id, 25)

        readings = await repo.list_readings(submission.id)
        assert len(readings) == 1
        assert readings[0].value == 25
        assert result.reading.verdict == Verdict.FAIL

    async def test_unparseable_value_is_stored_as_na(self, active_instance, make_meter, engine):
        _, instance = await active_instance()
        meter, calibration = await make_meter()

        result = await engine.save_reading(instance.id, meter.id, calibration.id, "abc")

        assert result.reading.value == "abc"
        assert result.reading.verdict == Verdict.NA

    async def test_explicit_field_id(self, active_instance, make_meter, engine):
        entity = EntityTemplateCreate(title="Fan", repeat_per_asset=True, fields=[
            FieldDefinition(id="speed", type="number"),
            FieldDefinition(id="current", type="number", fail_threshold=5),
            FieldDefinition(id="noise", type="text"),
        ])
        _, instance = await active_instance(entities=[entity])
        meter, calibration = await make_meter()

        result = await engine.save_reading(instance.id, meter.id, calibration.id, 6,
                                           field_id="current")
        assert result.reading.field_id == "current"
        assert result.reading.verdict == Verdict.FAIL

        with pytest.raises(ValidationError, match="not a numeric field"):
            await engine.save_reading(instance.id, meter.id, calibration.id, 6,
                                      field_id="noise")
        with pytest.raises(ValidationError, match="Unknown field"):
            await engine.save_reading(instance.id, meter.id, calibration.id, 6,
                                      field_id="torque")

    async def test_template_without_number_field(self, build_session, make_meter, engine):
        submission, _ = await build_session(entities=[site_entity()])
        instance = (await engine.instantiate(submission.id)).submission.entities[0]
        meter, calibration = await make_meter()

        with pytest.raises(ValidationError, match="no numeric field"):
            await engine.save_reading(instance.id, meter.id, calibration.id, 3)

    async def test_locked_after_submit(self, active_instance, make_meter, engine):
        submission, instance = await active_instance(asset_labels=("A",))
        meter, calibration = await make_meter()
        await engine.save_reading(instance.id, meter.id, calibration.id, 15)
        await engine.submit(submission.id)

        with pytest.raises(SubmissionLockedError):
            await engine.save_reading(instance.id, meter.id, calibration.id, 12)

    async def test_submit_between_check_and_write(self, active_instance, make_meter,
                                                  engine, repo, monkeypatch):
        submission, instance = await active_instance(asset_labels=("A",))
        meter, calibration = await make_meter()
        await engine.save_reading(instance.id, meter.id, calibration.id, 15)

        check = engine.metrology.check_calibration

        async def check_then_submit(*args, **kwargs):
            result = await check(*args, **kwargs)
            await engine.submit(submission.id)
            return result

        monkeypatch.setattr(engine.metrology, "check_calibration", check_then_submit)

        with pytest.raises(SubmissionLockedError):
            await engine.save_reading(instance.id, meter.id, calibration.id, 99)

        readings = await repo.list_readings(submission.id)
        assert [r.value for r in readings] == [15]
        stored = await repo.get_submission_row(submission.id)
        assert stored.status == SubmissionStatus.SUBMITTED
        assert stored.aggregate.overall_result == OverallResult.PASS

    async def test_recalibration_between_check_and_write(self, active_instance, make_meter,
                                                         engine, repo, monkeypatch):
        submission, instance = await active_instance()
        meter, calibration = await make_meter()

        check = engine.metrology.check_calibration

        async def check_then_recalibrate(*args, **kwargs):
            result = await check(*args, **kwargs)
            now = utcnow()
            await repo.add_calibration(meter.id, CalibrationCreate(
                calibrated_at=now, expires_at=now + timedelta(days=365)))
            return result

        monkeypatch.setattr(engine.metrology, "check_calibration", check_then_recalibrate)

        with pytest.raises(ValidationError, match="no longer active"):
            await engine.save_reading(instance.id, meter.id, calibration.id, 15)

        assert await repo.list_readings(submission.id) == []


class TestMeterRegistry:

    async def test_expiry_flags(self, make_meter, repo):
        await make_meter(serial="OK", expires_in_days=200)
        await make_meter(serial="SOON", expires_in_days=10)
        await make_meter(serial="LAPSED", expires_in_days=-1)

        meters = {m.serial_number: m for m in await repo.list_meters()}

        assert not meters["OK"].expired and not meters["OK"].expiring_soon
        assert meters["SOON"].expiring_soon
        assert meters["LAPSED"].expired and not meters["LAPSED"].expiring_soon

    async def test_meter_without_calibration(self, repo):
        meter = await repo.create_meter(MeterCreate(name="Manometer", serial_number="M-1"))
        assert meter.active_calibration is None
        assert meter.expired is False

    async def test_duplicate_serial(self, make_meter, repo):
        await make_meter(serial="DUP")
        with pytest.raises(ValidationError):
            await repo.create_meter(MeterCreate(name="Other", serial_number="DUP"))

    async def test_calibration_must_expire_after_it_starts(self, make_meter, repo):
        meter, _ = await make_meter()
        now = utcnow()
        with pytest.raises(ValidationError):
            await repo.add_calibration(meter.id, CalibrationCreate(
                calibrated_at=now, expires_at=now - timedelta(days=1)))
