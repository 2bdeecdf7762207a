"""End-to-end submission lifecycle through the engine."""

import pytest

from config import settings
from conftest import damper_entity, site_entity
from models import (
    EntityTemplateCreate, FieldDefinition, OverallResult, SubmissionStatus, Verdict,
)
from services.errors import SubmissionConflictError, ValidationError


def _per_asset(submission, asset):
    return next(e for e in submission.entities if e.asset_id == asset.id)


def _general(submission):
    return next(e for e in submission.entities if e.asset_id is None)


async def test_reading_on_one_of_two_assets(build_session, make_meter, engine):
    submission, (a, b) = await build_session()
    active = (await engine.instantiate(submission.id)).submission
    meter, calibration = await make_meter()

    await engine.save_reading(_per_asset(active, a).id, meter.id, calibration.id, 15)
    result = await engine.submit(submission.id)

    assert result.submission.status == SubmissionStatus.SUBMITTED
    assert result.submission.aggregate.overall_result == OverallResult.PASS
    assert result.submission.aggregate.pass_count == 1
    assert "untested: B" in result.warnings
    assert [x.label for x in result.submission.untested_assets] == ["B"]
    assert result.submission.submitted_at is not None


async def test_out_of_band_reading_fails_submission(build_session, make_meter, engine):
    submission, (a, b) = await build_session()
    active = (await engine.instantiate(submission.id)).submission
    meter, calibration = await make_meter()

    await engine.save_reading(_per_asset(active, a).id, meter.id, calibration.id, 15)
    await engine.save_reading(_per_asset(active, b).id, meter.id, calibration.id, 25)
    result = await engine.submit(submission.id)

    aggregate = result.submission.aggregate
    assert aggregate.overall_result == OverallResult.FAIL
    assert (aggregate.pass_count, aggregate.fail_count) == (1, 1)
    assert result.warnings == []


async def test_pass_fail_answers_roll_up(build_session, engine):
    submission, _ = await build_session(asset_labels=(), entities=[site_entity()])
    active = (await engine.instantiate(submission.id)).submission
    general = _general(active)

    await engine.save_answers(general.id, {"panel": "normal", "casing": "fail"})
    view = await engine.get_submission(submission.id)

    assert view.entities[0].verdicts == {"panel": Verdict.PASS, "casing": Verdict.FAIL}
    # select answers are presence-only and do not count toward the rollup
    assert view.aggregate.pass_count == 0
    assert view.aggregate.overall_result == OverallResult.FAIL


async def test_fresh_submission_is_incomplete(build_session, engine):
    submission, _ = await build_session()

    view = await engine.get_submission(submission.id)

    assert view.status == SubmissionStatus.DRAFT
    assert view.entities == []
    assert view.aggregate.overall_result == OverallResult.INCOMPLETE
    assert [a.label for a in view.untested_assets] == ["A", "B"]


async def test_create_submission_returns_existing(build_session, engine):
    submission, _ = await build_session()

    again = await engine.create_submission(submission.job_id, submission.form_version_id)

    assert again.id == submission.id


async def test_submit_from_draft_instantiates_first(build_session, engine):
    submission, _ = await build_session()

    result = await engine.submit(submission.id)

    assert len(result.submission.entities) == 2
    assert result.warnings == ["untested: A", "untested: B"]
    assert result.submission.aggregate.overall_result == OverallResult.INCOMPLETE


async def test_resubmit_is_idempotent(build_session, make_meter, engine):
    submission, (a, _) = await build_session()
    active = (await engine.instantiate(submission.id)).submission
    meter, calibration = await make_meter()
    await engine.save_reading(_per_asset(active, a).id, meter.id, calibration.id, 12)

    first = await engine.submit(submission.id)
    second = await engine.submit(submission.id)

    assert second.submission.status == SubmissionStatus.SUBMITTED
    assert second.submission.submitted_at == first.submission.submitted_at
    assert second.warnings == first.warnings


async def test_required_general_field_blocks_submit(build_session, engine):
    submission, _ = await build_session(asset_labels=(), entities=[site_entity(required=True)])
    active = (await engine.instantiate(submission.id)).submission

    with pytest.raises(ValidationError, match="Panel status is required"):
        await engine.submit(submission.id)

    await engine.save_answers(_general(active).id, {"panel": "normal"})
    result = await engine.submit(submission.id)
    assert result.submission.status == SubmissionStatus.SUBMITTED


async def test_required_number_filled_by_reading(build_session, make_meter, engine):
    submission, (a, _) = await build_session(entities=[damper_entity(required=True)])
    active = (await engine.instantiate(submission.id)).submission
    meter, calibration = await make_meter()

    await engine.save_reading(_per_asset(active, a).id, meter.id, calibration.id, 12)
    result = await engine.submit(submission.id)

    # B was never started, so it is reported as untested rather than incomplete
    assert result.warnings == ["untested: B"]


async def test_started_asset_with_blank_required_field(build_session, engine):
    entity = EntityTemplateCreate(title="Damper Test", repeat_per_asset=True, fields=[
        FieldDefinition(id="airflow", label="Airflow", type="number", required=True),
        FieldDefinition(id="notes_ok", label="Notes", type="pass_fail"),
    ])
    submission, (a, _) = await build_session(entities=[entity])
    active = (await engine.instantiate(submission.id)).submission

    await engine.save_answers(_per_asset(active, a).id, {"notes_ok": "pass"})

    with pytest.raises(ValidationError) as exc:
        await engine.submit(submission.id)
    assert exc.value.details == ["Damper Test / A: Airflow is required"]


async def test_untested_assets_block_when_configured(build_session, engine, monkeypatch):
    monkeypatch.setattr(settings, "FORMS_BLOCK_UNTESTED_ASSETS", True)
    submission, _ = await build_session()
    await engine.instantiate(submission.id)

    with pytest.raises(ValidationError, match="untested: A"):
        await engine.submit(submission.id)

    view = await engine.get_submission(submission.id)
    assert view.status == SubmissionStatus.ACTIVE


async def test_expired_calibration_reported_at_submit(build_session, make_meter, engine):
    submission, (a, b) = await build_session()
    active = (await engine.instantiate(submission.id)).submission
    meter, calibration = await make_meter(expires_in_days=-3, name="Anemometer")

    await engine.save_reading(_per_asset(active, a).id, meter.id, calibration.id, 12)
    await engine.save_reading(_per_asset(active, b).id, meter.id, calibration.id, 13)
    result = await engine.submit(submission.id)

    assert len(result.warnings) == 2
    assert all(w.startswith("Calibration expired for meter Anemometer (S/N SN-1)")
               for w in result.warnings)
    assert result.submission.status == SubmissionStatus.SUBMITTED


async def test_untested_assets_query(build_session, engine):
    submission, (a, b, c) = await build_session(asset_labels=("A", "B", "C"))
    active = (await engine.instantiate(submission.id)).submission

    await engine.save_answers(_per_asset(active, a).id, {"airflow": 11})

    untested = await engine.untested_assets(submission.id)
    assert [x.label for x in untested] == ["B", "C"]


async def test_write_after_evaluation_is_included(build_session, make_meter, engine, repo,
                                                  monkeypatch):
    submission, (a,) = await build_session(asset_labels=("A",))
    active = (await engine.instantiate(submission.id)).submission
    instance = _per_asset(active, a)
    meter, calibration = await make_meter()
    await engine.save_reading(instance.id, meter.id, calibration.id, 15)

    finalize = repo.finalize_submission
    calls = []

    async def capture_then_finalize(*args, **kwargs):
        if not calls:
            await engine.save_reading(instance.id, meter.id, calibration.id, 25)
        calls.append(kwargs.get("evaluated_at"))
        return await finalize(*args, **kwargs)

    monkeypatch.setattr(repo, "finalize_submission", capture_then_finalize)
    result = await engine.submit(submission.id)

    assert len(calls) == 2
    assert result.submission.aggregate.overall_result == OverallResult.FAIL
    stored = await repo.get_submission_row(submission.id)
    assert stored.aggregate.overall_result == OverallResult.FAIL


async def test_submit_gives_up_when_writes_keep_arriving(build_session, make_meter, engine,
                                                         repo, monkeypatch):
    submission, (a,) = await build_session(asset_labels=("A",))
    active = (await engine.instantiate(submission.id)).submission
    instance = _per_asset(active, a)
    meter, calibration = await make_meter()

    finalize = repo.finalize_submission
    values = iter(range(10, 20))

    async def capture_then_finalize(*args, **kwargs):
        await engine.save_reading(instance.id, meter.id, calibration.id, next(values))
        return await finalize(*args, **kwargs)

    monkeypatch.setattr(repo, "finalize_submission", capture_then_finalize)

    with pytest.raises(SubmissionConflictError):
        await engine.submit(submission.id)
    assert (await repo.get_submission_row(submission.id)).status == SubmissionStatus.ACTIVE
