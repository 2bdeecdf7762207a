"""
Compliance Reading Engine - Submission Engine
Version: 1.1.1

Changelog:
v1.1.1 (2026-10-19): Final aggregate is only stored if no write landed
                      after it was computed; otherwise re-evaluated
v1.1.0 (2026-10-12): SUBMITTED is terminal; writes after submission are
                      rejected. Required fields checked at submit time.
v1.0.0 (2026-10-05): Initial submission state machine

Lifecycle of one test session (job x form version):

    DRAFT --instantiate--> ACTIVE --submit--> SUBMITTED

- instantiate: fan templates out over the job's assets (idempotent,
  re-entrant while ACTIVE)
- ACTIVE: answers and readings may be overwritten any number of times
- submit: re-instantiate for newly added assets, recompute aggregates and
  untested assets, return warnings alongside the finalized submission.
  Warnings do not block unless the FORMS_BLOCK_* settings say so.
"""

import logging
from typing import Any, Dict, List, Optional

from config import settings
from models.forms import FieldType, FormVersion
from models.submission import (
    Asset, EntityInstance, InstantiateResult, Reading, ReadingResult,
    Submission, SubmissionStatus, SubmitResult, Verdict,
)
from services import completeness, evaluation
from services.answer_store import AnswerStore, missing_required
from services.errors import SubmissionConflictError, SubmissionLockedError, ValidationError
from services.forms_repository import FormsRepository
from services.instantiation import plan_instances, required_keys
from services.metrology import MetrologyGuard, expiry_warning

logger = logging.getLogger(__name__)

FINALIZE_ATTEMPTS = 3


class SubmissionEngine:
    """Orchestrates instantiation, capture, evaluation and submission."""

    def __init__(self, repository: Optional[FormsRepository] = None):
        self.repository = repository or FormsRepository()
        self.answer_store = AnswerStore(self.repository)
        self.metrology = MetrologyGuard(self.repository)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def create_submission(self, job_id: int, form_version_id: int) -> Submission:
        submission, created = await self.repository.create_submission(job_id, form_version_id)
        if created:
            logger.info(f"Submission {submission.id} created for job {job_id}, "
                        f"version {form_version_id}")
        return await self.get_submission(submission.id)

    async def instantiate(self, submission_id: int) -> InstantiateResult:
        """
        Ensure one instance per (repeatable template, asset) and one general
        instance per other template.

        Returns:
            InstantiateResult with the ACTIVE submission and the asset list

        Raises:
            NotFoundError: Unknown submission
            SubmissionLockedError: Submission already submitted
        """
        submission = await self.repository.get_submission_row(submission_id)
        if submission.status == SubmissionStatus.SUBMITTED:
            raise SubmissionLockedError(f"Submission {submission_id} already submitted")

        version = await self.repository.get_version(submission.form_version_id)
        assets = await self.repository.list_assets_for_job(submission.job_id)
        existing = await self.repository.list_instances(submission_id)

        wanted = required_keys(version.entities, assets)
        missing = plan_instances(version.entities, assets, existing)
        created = await self.repository.insert_instances(
            submission_id, missing, {a.id: a for a in assets})

        if created:
            logger.info(f"Submission {submission_id}: created {created} instances "
                        f"across {len(assets)} assets")
        if not assets and any(t.repeat_per_asset for t in version.entities):
            logger.info(f"Submission {submission_id}: job {submission.job_id} has no "
                        f"assets; repeatable sections left empty")

        return InstantiateResult(
            submission=await self.get_submission(submission_id),
            assets=assets,
            created=created,
            skipped=len(wanted) - created,
        )

    async def save_answers(self, entity_instance_id: int,
                           answers: Dict[str, Any]) -> EntityInstance:
        return await self.answer_store.save(entity_instance_id, answers)

    async def save_reading(self, entity_instance_id: int, meter_id: Optional[int],
                           calibration_id: Optional[int], value: Any,
                           field_id: Optional[str] = None) -> ReadingResult:
        return await self.metrology.capture(
            entity_instance_id, meter_id, calibration_id, value, field_id)

    async def submit(self, submission_id: int) -> SubmitResult:
        """
        Finalize a submission.

        Re-submitting a SUBMITTED submission returns it unchanged with its
        warnings recomputed, so callers may safely retry.

        Raises:
            NotFoundError: Unknown submission
            ValidationError: Required fields left blank, or a blocking
                             policy is enabled and its warnings are present
            SubmissionConflictError: Answers or readings kept arriving while
                                     the aggregate was being computed
        """
        submission = await self.repository.get_submission_row(submission_id)
        if submission.status != SubmissionStatus.SUBMITTED:
            await self.instantiate(submission_id)

        for _ in range(FINALIZE_ATTEMPTS):
            view = await self.get_submission(submission_id)
            version = await self.repository.get_version(view.form_version_id)

            asset_warnings = completeness.asset_warnings(view.untested_assets)
            calibration_warnings = await self._calibration_warnings(view.readings)
            warnings = asset_warnings + calibration_warnings

            if view.status == SubmissionStatus.SUBMITTED:
                return SubmitResult(submission=view, warnings=warnings)

            assets = await self.repository.list_assets_for_job(view.job_id)
            blank = self._missing_required(version, view, assets)
            if blank:
                raise ValidationError("; ".join(blank), details=blank)
            if asset_warnings and settings.FORMS_BLOCK_UNTESTED_ASSETS:
                raise ValidationError("; ".join(asset_warnings), details=asset_warnings)
            if calibration_warnings and settings.FORMS_BLOCK_EXPIRED_CALIBRATION:
                raise ValidationError("; ".join(calibration_warnings),
                                      details=calibration_warnings)

            # Only finalizes if nothing was written since the view was read
            if await self.repository.finalize_submission(
                    submission_id, view.aggregate, evaluated_at=view.updated_at):
                logger.info(f"Submission {submission_id} submitted: "
                            f"{view.aggregate.overall_result.value} "
                            f"({view.aggregate.pass_count} pass / "
                            f"{view.aggregate.fail_count} fail / "
                            f"{view.aggregate.na_count} n/a), {len(warnings)} warnings")
                return SubmitResult(submission=await self.get_submission(submission_id),
                                    warnings=warnings)
            logger.info(f"Submission {submission_id} changed while submitting, re-evaluating")

        raise SubmissionConflictError(
            f"Submission {submission_id} kept changing during submit; retry")

    # ------------------------------------------------------------------
    # Derived reads
    # ------------------------------------------------------------------

    async def get_submission(self, submission_id: int) -> Submission:
        """Submission with instances, readings, verdicts, aggregate and untested assets."""
        submission = await self.repository.get_submission_row(submission_id)
        version = await self.repository.get_version(submission.form_version_id)
        instances = await self.repository.list_instances(submission_id)
        readings = await self.repository.list_readings(submission_id)
        assets = await self.repository.list_assets_for_job(submission.job_id)

        submission.entities = instances
        submission.readings = readings
        submission.aggregate = self._evaluate(version, instances, readings)
        submission.untested_assets = completeness.untested_assets(
            version.entities, assets, instances, readings)
        return submission

    async def untested_assets(self, submission_id: int) -> List[Asset]:
        return (await self.get_submission(submission_id)).untested_assets

    def _evaluate(self, version: FormVersion, instances: List[EntityInstance],
                  readings: List[Reading]):
        """Attach derived verdicts and roll readings + pass_fail answers up."""
        templates = {t.id: t for t in version.entities}
        instance_templates = {}
        verdicts: List[Verdict] = []

        for instance in instances:
            template = templates.get(instance.entity_template_id)
            if template is None:
                continue
            instance_templates[instance.id] = template
            instance.verdicts = evaluation.classify_answers(template.fields, instance.answers)
            for field in template.fields:
                if field.type == FieldType.PASS_FAIL and field.id in instance.answers:
                    verdicts.append(instance.verdicts[field.id])

        for reading in readings:
            template = instance_templates.get(reading.entity_instance_id)
            field = template.field(reading.field_id) if template else None
            reading.verdict = evaluation.classify(field, reading.value) if field else Verdict.NA
            verdicts.append(reading.verdict)

        return evaluation.aggregate(verdicts)

    def _missing_required(self, version: FormVersion, view: Submission,
                          assets: List[Asset]) -> List[str]:
        templates = {t.id: t for t in version.entities}
        by_id = {a.id: a for a in assets}
        measured: Dict[int, set] = {}
        for reading in view.readings:
            measured.setdefault(reading.entity_instance_id, set()).add(reading.field_id)

        problems = []
        for instance in view.entities:
            template = templates.get(instance.entity_template_id)
            if template is None:
                continue
            started = bool(instance.answers) or instance.id in measured
            # Untouched per-asset instances surface as untested, not as errors
            if template.repeat_per_asset and not started:
                continue
            missing = missing_required(template.fields, instance.answers,
                                       measured.get(instance.id, set()))
            if not missing:
                continue
            where = template.title
            if instance.asset_id is not None:
                asset = by_id.get(instance.asset_id)
                where = f"{template.title} / {asset.label if asset else instance.asset_id}"
            problems.extend(f"{where}: {label} is required" for label in missing)
        return problems

    async def _calibration_warnings(self, readings: List[Reading]) -> List[str]:
        """One warning per reading captured against an expired calibration"""
        warnings = []
        meters = {}
        for reading in readings:
            if not reading.calibration_expired:
                continue
            if reading.meter_id not in meters:
                meters[reading.meter_id] = await self.repository.get_meter(reading.meter_id)
            warnings.append(expiry_warning(meters[reading.meter_id],
                                           reading.calibration_expires_at))
        return warnings


# Singleton
_engine = SubmissionEngine()


async def create_submission(job_id: int, form_version_id: int) -> Submission:
    return await _engine.create_submission(job_id, form_version_id)


async def get_submission(submission_id: int) -> Submission:
    return await _engine.get_submission(submission_id)


async def instantiate(submission_id: int) -> InstantiateResult:
    return await _engine.instantiate(submission_id)


async def save_answers(entity_instance_id: int, answers: Dict[str, Any]) -> EntityInstance:
    return await _engine.save_answers(entity_instance_id, answers)


async def save_reading(entity_instance_id: int, meter_id: Optional[int],
                       calibration_id: Optional[int], value: Any,
                       field_id: Optional[str] = None) -> ReadingResult:
    return await _engine.save_reading(entity_instance_id, meter_id, calibration_id,
                                      value, field_id)


async def submit(submission_id: int) -> SubmitResult:
    return await _engine.submit(submission_id)


async def untested_assets(submission_id: int) -> List[Asset]:
    return await _engine.untested_assets(submission_id)
