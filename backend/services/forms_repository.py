"""
Compliance Reading Engine - Forms Repository
Version: 1.2.0

Changelog:
v1.2.0 (2026-10-19): Reading upsert re-checks submission status and active
                      calibration under the write lock; finalize only applies
                      to the state it was evaluated on; draft generation from
                      smoke-control system types
v1.1.0 (2026-10-12): Reading upsert keyed on (instance, field); instance
                      insert collapses duplicates on the composite unique index;
                      answer writes re-check the submission lock in SQL
v1.0.0 (2026-10-05): Initial SQLite repository

SQLite persistence for the template catalog, job assets, meter registry,
submissions, entity instances and readings. The engines receive an instance
of this class rather than touching the database themselves.
"""

import json
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from config import settings
from database import (
    get_db, write_transaction, execute_one, execute_all, execute_insert, execute_update,
    json_col, from_json,
)
from models.calibration import (
    Calibration, CalibrationCreate, Meter, MeterCreate, utcnow,
)
from models.forms import (
    EntityTemplate, EntityTemplateCreate, FormTemplate, FormTemplateCreate,
    FormVersion, FormVersionCreate, LibraryEntity, SystemType, VersionStatus,
)
from models.submission import (
    Aggregate, Asset, AssetCreate, EntityInstance, Reading, Submission,
    SubmissionStatus,
)
from services.errors import NotFoundError, SubmissionLockedError, ValidationError
from services import smoke_library
from services.instantiation import InstanceKey

logger = logging.getLogger(__name__)


def _now() -> str:
    return utcnow().isoformat()


# -- Row converters --

def _entity_from_row(row: dict) -> EntityTemplate:
    return EntityTemplate(
        id=row["id"],
        form_version_id=row["form_version_id"],
        title=row["title"],
        description=row["description"],
        repeat_per_asset=bool(row["repeat_per_asset"]),
        sort_order=row["sort_order"] or 0,
        fields=from_json(row["fields"], []),
    )


def _library_entity_from_row(row: dict) -> LibraryEntity:
    return LibraryEntity(
        id=row["id"],
        code=row["code"],
        name=row["name"],
        standard=row["standard"],
        description=row["description"],
        sort_order=row["sort_order"] or 0,
        fields=from_json(row["fields"], []),
    )


def _instance_from_row(row: dict) -> EntityInstance:
    return EntityInstance(
        id=row["id"],
        submission_id=row["submission_id"],
        entity_template_id=row["entity_template_id"],
        asset_id=row["asset_id"],
        location=row["location"],
        answers=from_json(row["answers"], {}),
        updated_at=row["updated_at"],
    )


def _reading_from_row(row: dict) -> Reading:
    return Reading(
        id=row["id"],
        entity_instance_id=row["entity_instance_id"],
        field_id=row["field_id"],
        meter_id=row["meter_id"],
        calibration_id=row["calibration_id"],
        value=from_json(row["reading"]),
        calibration_expires_at=row["calibration_expires_at"],
        calibration_expired=bool(row["calibration_expired"]),
        recorded_at=row["recorded_at"],
    )


def _submission_from_row(row: dict) -> Submission:
    aggregate = None
    if row["overall_result"]:
        aggregate = Aggregate(
            pass_count=row["pass_count"] or 0,
            fail_count=row["fail_count"] or 0,
            na_count=row["na_count"] or 0,
            overall_result=row["overall_result"],
        )
    return Submission(
        id=row["id"],
        job_id=row["job_id"],
        form_version_id=row["form_version_id"],
        status=row["status"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        submitted_at=row["submitted_at"],
        aggregate=aggregate,
    )


def _calibration_from_row(row: dict) -> Calibration:
    return Calibration(
        id=row["id"],
        meter_id=row["meter_id"],
        calibrated_at=row["calibrated_at"],
        expires_at=row["expires_at"],
        certificate_ref=row["certificate_ref"],
    )


def _meter_from_rows(row: dict, calibration_row: Optional[dict]) -> Meter:
    active = _calibration_from_row(calibration_row) if calibration_row else None
    expired = bool(active and active.is_expired())
    expiring_soon = bool(
        active and not expired
        and active.days_until_expiry() <= settings.CALIBRATION_WARNING_DAYS
    )
    return Meter(
        id=row["id"],
        name=row["name"],
        serial_number=row["serial_number"],
        model=row["model"],
        active_calibration=active,
        expired=expired,
        expiring_soon=expiring_soon,
    )


class FormsRepository:
    """SQLite-backed template catalog, asset directory, meter registry and instance store."""

    # ------------------------------------------------------------------
    # Template catalog
    # ------------------------------------------------------------------

    async def create_template(self, data: FormTemplateCreate) -> FormTemplate:
        now = _now()
        async with get_db() as db:
            template_id = await execute_insert(
                db, "INSERT INTO form_templates (name, description, created_at) VALUES (?, ?, ?)",
                (data.name, data.description, now))
        return FormTemplate(id=template_id, name=data.name,
                            description=data.description, created_at=now)

    async def list_templates(self) -> List[FormTemplate]:
        async with get_db() as db:
            rows = await execute_all(db, "SELECT * FROM form_templates ORDER BY id")
        return [FormTemplate(**r) for r in rows]

    async def create_version(self, template_id: int, data: FormVersionCreate) -> FormVersion:
        async with write_transaction() as db:
            template = await execute_one(
                db, "SELECT id FROM form_templates WHERE id = ?", (template_id,))
            if not template:
                raise NotFoundError(f"Template {template_id} not found")

            row = await execute_one(db, """
                SELECT COALESCE(MAX(version_number), 0) AS n
                FROM form_versions WHERE template_id = ?
            """, (template_id,))
            version_number = row["n"] + 1

            cursor = await db.execute("""
                INSERT INTO form_versions
                    (template_id, version_number, title, notes, status, created_at)
                VALUES (?, ?, ?, ?, 'draft', ?)
            """, (template_id, version_number, data.title, data.notes, _now()))
            version_id = cursor.lastrowid

            for entity in data.entities:
                await self._insert_entity(db, version_id, entity)

        logger.info(f"Created version {version_number} of template {template_id} "
                    f"with {len(data.entities)} entities")
        return await self.get_version(version_id)

    async def add_entity(self, version_id: int, data: EntityTemplateCreate) -> EntityTemplate:
        async with get_db() as db:
            version = await execute_one(
                db, "SELECT * FROM form_versions WHERE id = ?", (version_id,))
            if not version:
                raise NotFoundError(f"Version {version_id} not found")
            if version["status"] == VersionStatus.PUBLISHED.value:
                raise ValidationError("Cannot edit a published version")
            in_use = await execute_one(
                db, "SELECT id FROM submissions WHERE form_version_id = ? LIMIT 1",
                (version_id,))
            if in_use:
                raise ValidationError("Version already in use")

            entity_id = await self._insert_entity(db, version_id, data)
            await db.commit()
            row = await execute_one(
                db, "SELECT * FROM entity_templates WHERE id = ?", (entity_id,))
        return _entity_from_row(row)

    async def _insert_entity(self, db, version_id: int, data: EntityTemplateCreate) -> int:
        """Insert a single entity_templates row and return its ID."""
        cursor = await db.execute("""
            INSERT INTO entity_templates
                (form_version_id, title, description, repeat_per_asset,
                 sort_order, fields, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (
            version_id, data.title, data.description, data.repeat_per_asset,
            data.sort_order,
            json.dumps([f.model_dump(mode="json") for f in data.fields]),
            _now(),
        ))
        return cursor.lastrowid

    async def publish_version(self, version_id: int) -> FormVersion:
        async with get_db() as db:
            changed = await execute_update(db, """
                UPDATE form_versions SET status = 'published', published_at = ?
                WHERE id = ? AND status = 'draft'
            """, (_now(), version_id))
        version = await self.get_version(version_id)
        if changed:
            logger.info(f"Published version {version.version_number} of template "
                        f"{version.template_id}")
        return version

    async def get_version(self, version_id: int) -> FormVersion:
        async with get_db() as db:
            row = await execute_one(
                db, "SELECT * FROM form_versions WHERE id = ?", (version_id,))
            if not row:
                raise NotFoundError(f"Version {version_id} not found")
            entities = await execute_all(db, """
                SELECT * FROM entity_templates WHERE form_version_id = ?
                ORDER BY sort_order, id
            """, (version_id,))
        return FormVersion(
            id=row["id"],
            template_id=row["template_id"],
            version_number=row["version_number"],
            title=row["title"],
            notes=row["notes"],
            status=row["status"],
            published_at=row["published_at"],
            entities=[_entity_from_row(e) for e in entities],
        )

    async def list_versions(self, published_only: bool = True) -> List[FormVersion]:
        query = "SELECT id FROM form_versions"
        if published_only:
            query += " WHERE status = 'published'"
        query += " ORDER BY template_id, version_number"
        async with get_db() as db:
            rows = await execute_all(db, query)
        return [await self.get_version(r["id"]) for r in rows]

    # ------------------------------------------------------------------
    # Smoke-control system types
    # ------------------------------------------------------------------

    async def seed_smoke_library(self):
        """Copy the built-in system types and entity library in; existing codes are kept."""
        async with write_transaction() as db:
            for t in smoke_library.SYSTEM_TYPES:
                await db.execute(
                    "INSERT OR IGNORE INTO system_types (code, name, standard, description) "
                    "VALUES (?, ?, ?, ?)",
                    (t["code"], t["name"], t["standard"], t.get("description")))
            for e in smoke_library.ENTITY_LIBRARY:
                await db.execute(
                    "INSERT OR IGNORE INTO entity_library "
                    "(code, name, standard, description, fields) VALUES (?, ?, ?, ?, ?)",
                    (e["code"], e["name"], e["standard"], e["description"],
                     json_col(e["fields"], '[]')))
            for type_code, entity_codes in smoke_library.REQUIRED_SETS.items():
                for position, entity_code in enumerate(entity_codes):
                    await db.execute("""
                        INSERT OR IGNORE INTO system_type_entities
                            (system_type_id, entity_library_id, sort_order)
                        SELECT t.id, e.id, ? FROM system_types t, entity_library e
                        WHERE t.code = ? AND e.code = ?
                    """, (position, type_code, entity_code))

    async def list_system_types(self) -> List[SystemType]:
        await self.seed_smoke_library()
        async with get_db() as db:
            rows = await execute_all(db, "SELECT * FROM system_types ORDER BY name")
        return [SystemType(**r) for r in rows]

    async def list_system_type_entities(self, code: str) -> List[LibraryEntity]:
        """Required library entities of a system type, in form order."""
        await self.seed_smoke_library()
        async with get_db() as db:
            rows = await self._system_type_entity_rows(db, code)
        return [_library_entity_from_row(r) for r in rows]

    async def _system_type_entity_rows(self, db, code: str) -> List[dict]:
        return await execute_all(db, """
            SELECT e.*, m.sort_order FROM system_type_entities m
            JOIN system_types t ON t.id = m.system_type_id
            JOIN entity_library e ON e.id = m.entity_library_id
            WHERE t.code = ?
            ORDER BY m.sort_order, e.id
        """, (code,))

    async def generate_from_system_type(self, code: str,
                                        template_name: str) -> Tuple[FormTemplate, FormVersion]:
        """
        Create a template with a draft v1 holding one entity per required
        library entry of the system type.

        Raises:
            NotFoundError: Unknown system type code
            ValidationError: System type has no required entities
        """
        await self.seed_smoke_library()
        now = _now()
        async with write_transaction() as db:
            system_type = await execute_one(
                db, "SELECT * FROM system_types WHERE code = ?", (code,))
            if not system_type:
                raise NotFoundError(f"System type {code} not found")
            required = await self._system_type_entity_rows(db, code)
            if not required:
                raise ValidationError(f"System type {code} has no required entities")

            cursor = await db.execute(
                "INSERT INTO form_templates (name, description, created_at) VALUES (?, ?, ?)",
                (template_name, system_type["standard"], now))
            template_id = cursor.lastrowid
            cursor = await db.execute("""
                INSERT INTO form_versions
                    (template_id, version_number, title, notes, status, created_at)
                VALUES (?, 1, ?, ?, 'draft', ?)
            """, (template_id, f"{system_type['name']} v1", system_type["standard"], now))
            version_id = cursor.lastrowid

            for row in required:
                entity = _library_entity_from_row(row)
                await self._insert_entity(db, version_id, EntityTemplateCreate(
                    title=entity.name, description=entity.description,
                    sort_order=entity.sort_order, fields=entity.fields))

            await db.execute(
                "INSERT OR IGNORE INTO form_template_systems (template_id, system_type_id) "
                "VALUES (?, ?)", (template_id, system_type["id"]))

        logger.info(f"Generated template {template_id} '{template_name}' from system type "
                    f"{code} with {len(required)} entities")
        template = FormTemplate(id=template_id, name=template_name,
                                description=system_type["standard"], created_at=now)
        return template, await self.get_version(version_id)

    # ------------------------------------------------------------------
    # Jobs & assets
    # ------------------------------------------------------------------

    async def create_job(self, reference: str, site_name: Optional[str] = None) -> dict:
        async with get_db() as db:
            job_id = await execute_insert(
                db, "INSERT INTO jobs (reference, site_name, created_at) VALUES (?, ?, ?)",
                (reference, site_name, _now()))
            return await execute_one(db, "SELECT * FROM jobs WHERE id = ?", (job_id,))

    async def get_job(self, job_id: int) -> dict:
        async with get_db() as db:
            row = await execute_one(db, "SELECT * FROM jobs WHERE id = ?", (job_id,))
        if not row:
            raise NotFoundError(f"Job {job_id} not found")
        return row

    async def add_asset(self, job_id: int, data: AssetCreate) -> Asset:
        await self.get_job(job_id)
        async with get_db() as db:
            asset_id = await execute_insert(
                db, "INSERT INTO assets (job_id, label, location, created_at) VALUES (?, ?, ?, ?)",
                (job_id, data.label, data.location, _now()))
        return Asset(id=asset_id, job_id=job_id, label=data.label, location=data.location)

    async def set_job_assets(self, job_id: int, assets: List[AssetCreate]) -> List[Asset]:
        """
        Replace a job's asset list.

        Assets are matched on label: a surviving label keeps its id (so its
        entity instances stay attached), its location is refreshed, labels
        not in the new list are removed and new labels are inserted.
        """
        await self.get_job(job_id)
        wanted = {a.label: a for a in assets}
        now = _now()
        async with write_transaction() as db:
            current = await execute_all(
                db, "SELECT id, label FROM assets WHERE job_id = ?", (job_id,))
            kept = set()
            for row in current:
                data = wanted.get(row["label"])
                if data is None:
                    await db.execute("DELETE FROM assets WHERE id = ?", (row["id"],))
                else:
                    await db.execute("UPDATE assets SET location = ? WHERE id = ?",
                                     (data.location, row["id"]))
                    kept.add(row["label"])
            for label, data in wanted.items():
                if label not in kept:
                    await db.execute(
                        "INSERT INTO assets (job_id, label, location, created_at) "
                        "VALUES (?, ?, ?, ?)",
                        (job_id, label, data.location, now))
        logger.info(f"Job {job_id}: asset list replaced ({len(wanted)} assets)")
        return await self.list_assets_for_job(job_id)

    async def list_assets_for_job(self, job_id: int) -> List[Asset]:
        async with get_db() as db:
            rows = await execute_all(db, """
                SELECT id, job_id, label, location FROM assets
                WHERE job_id = ? ORDER BY id
            """, (job_id,))
        return [Asset(**r) for r in rows]

    # ------------------------------------------------------------------
    # Meter registry
    # ------------------------------------------------------------------

    async def create_meter(self, data: MeterCreate) -> Meter:
        async with get_db() as db:
            existing = await execute_one(
                db, "SELECT id FROM meters WHERE serial_number = ?", (data.serial_number,))
            if existing:
                raise ValidationError(
                    f"Meter with serial number {data.serial_number} already exists")
            meter_id = await execute_insert(
                db, "INSERT INTO meters (name, serial_number, model, created_at) VALUES (?, ?, ?, ?)",
                (data.name, data.serial_number, data.model, _now()))
        return await self.get_meter(meter_id)

    async def add_calibration(self, meter_id: int, data: CalibrationCreate) -> Calibration:
        if data.expires_at <= data.calibrated_at:
            raise ValidationError("expires_at must be after calibrated_at")
        async with get_db() as db:
            meter = await execute_one(db, "SELECT id FROM meters WHERE id = ?", (meter_id,))
            if not meter:
                raise NotFoundError(f"Meter {meter_id} not found")
            cursor = await db.execute("""
                INSERT INTO calibrations
                    (meter_id, calibrated_at, expires_at, certificate_ref, created_at)
                VALUES (?, ?, ?, ?, ?)
            """, (meter_id, data.calibrated_at.isoformat(), data.expires_at.isoformat(),
                  data.certificate_ref, _now()))
            await db.commit()
            row = await execute_one(
                db, "SELECT * FROM calibrations WHERE id = ?", (cursor.lastrowid,))
        logger.info(f"Meter {meter_id} calibrated, expires {data.expires_at.date()}")
        return _calibration_from_row(row)

    async def _active_calibration_row(self, db, meter_id: int) -> Optional[dict]:
        # Latest certificate supersedes earlier ones, expired or not
        return await execute_one(db, """
            SELECT * FROM calibrations WHERE meter_id = ?
            ORDER BY calibrated_at DESC, id DESC LIMIT 1
        """, (meter_id,))

    async def get_meter(self, meter_id: int) -> Meter:
        async with get_db() as db:
            row = await execute_one(db, "SELECT * FROM meters WHERE id = ?", (meter_id,))
            if not row:
                raise NotFoundError(f"Meter {meter_id} not found")
            calibration = await self._active_calibration_row(db, meter_id)
        return _meter_from_rows(row, calibration)

    async def get_calibration(self, calibration_id: int) -> Calibration:
        async with get_db() as db:
            row = await execute_one(
                db, "SELECT * FROM calibrations WHERE id = ?", (calibration_id,))
        if not row:
            raise NotFoundError(f"Calibration {calibration_id} not found")
        return _calibration_from_row(row)

    async def list_meters(self) -> List[Meter]:
        async with get_db() as db:
            rows = await execute_all(db, "SELECT * FROM meters ORDER BY name, id")
            meters = []
            for row in rows:
                calibration = await self._active_calibration_row(db, row["id"])
                meters.append(_meter_from_rows(row, calibration))
        return meters

    # ------------------------------------------------------------------
    # Submissions
    # ------------------------------------------------------------------

    async def create_submission(self, job_id: int, form_version_id: int) -> Tuple[Submission, bool]:
        """Create (or return the existing) submission for a job/version pair."""
        await self.get_job(job_id)
        version = await self.get_version(form_version_id)
        if version.status != VersionStatus.PUBLISHED:
            raise ValidationError("Version must be published")

        now = _now()
        async with get_db() as db:
            cursor = await db.execute("""
                INSERT OR IGNORE INTO submissions
                    (job_id, form_version_id, status, created_at, updated_at)
                VALUES (?, ?, 'draft', ?, ?)
            """, (job_id, form_version_id, now, now))
            await db.commit()
            created = cursor.rowcount == 1
            row = await execute_one(db, """
                SELECT * FROM submissions WHERE job_id = ? AND form_version_id = ?
            """, (job_id, form_version_id))
        return _submission_from_row(row), created

    async def get_submission_row(self, submission_id: int) -> Submission:
        async with get_db() as db:
            row = await execute_one(
                db, "SELECT * FROM submissions WHERE id = ?", (submission_id,))
        if not row:
            raise NotFoundError(f"Submission {submission_id} not found")
        return _submission_from_row(row)

    async def list_instances(self, submission_id: int) -> List[EntityInstance]:
        async with get_db() as db:
            rows = await execute_all(db, """
                SELECT * FROM entity_instances WHERE submission_id = ? ORDER BY id
            """, (submission_id,))
        return [_instance_from_row(r) for r in rows]

    async def list_readings(self, submission_id: int) -> List[Reading]:
        async with get_db() as db:
            rows = await execute_all(db, """
                SELECT r.* FROM readings r
                JOIN entity_instances ei ON r.entity_instance_id = ei.id
                WHERE ei.submission_id = ?
                ORDER BY r.id
            """, (submission_id,))
        return [_reading_from_row(r) for r in rows]

    async def insert_instances(self, submission_id: int, keys: Iterable[InstanceKey],
                               assets: Dict[int, Asset]) -> int:
        """
        Insert planned instances and move a DRAFT submission to ACTIVE.

        Duplicate keys (a concurrent run got there first) are ignored by the
        composite unique index.

        Returns:
            Number of instances actually created
        """
        created = 0
        now = _now()
        async with get_db() as db:
            for key in keys:
                asset = assets.get(key.asset_id) if key.asset_id is not None else None
                cursor = await db.execute("""
                    INSERT OR IGNORE INTO entity_instances
                        (submission_id, entity_template_id, asset_id, location,
                         answers, created_at, updated_at)
                    VALUES (?, ?, ?, ?, '{}', ?, ?)
                """, (submission_id, key.entity_template_id, key.asset_id,
                      asset.location if asset else None, now, now))
                created += cursor.rowcount
            await db.execute("""
                UPDATE submissions SET status = 'active', updated_at = ?
                WHERE id = ? AND status = 'draft'
            """, (now, submission_id))
            await db.commit()
        return created

    async def load_instance_context(self, entity_instance_id: int, for_write: bool = False
                                    ) -> Tuple[EntityInstance, EntityTemplate, Submission]:
        """Instance with its entity template and owning submission."""
        async with get_db() as db:
            row = await execute_one(
                db, "SELECT * FROM entity_instances WHERE id = ?", (entity_instance_id,))
            if not row:
                raise NotFoundError(f"Entity instance {entity_instance_id} not found")
            template_row = await execute_one(
                db, "SELECT * FROM entity_templates WHERE id = ?",
                (row["entity_template_id"],))
            submission_row = await execute_one(
                db, "SELECT * FROM submissions WHERE id = ?", (row["submission_id"],))
        if not template_row:
            raise NotFoundError(f"Entity template {row['entity_template_id']} not found")

        submission = _submission_from_row(submission_row)
        if for_write and submission.status == SubmissionStatus.SUBMITTED:
            raise SubmissionLockedError(f"Submission {submission.id} already submitted")
        return _instance_from_row(row), _entity_from_row(template_row), submission

    async def update_answers(self, entity_instance_id: int,
                             answers: Dict[str, Any]) -> EntityInstance:
        now = _now()
        async with get_db() as db:
            # Re-check the lock in the same statement as the write
            cursor = await db.execute("""
                UPDATE entity_instances SET answers = ?, updated_at = ?
                WHERE id = ? AND (
                    SELECT status FROM submissions s
                    WHERE s.id = entity_instances.submission_id
                ) != 'submitted'
            """, (json_col(answers), now, entity_instance_id))
            if cursor.rowcount == 0:
                raise SubmissionLockedError(
                    f"Entity instance {entity_instance_id} belongs to a submitted submission")
            await db.execute("""
                UPDATE submissions SET updated_at = ?
                WHERE id = (SELECT submission_id FROM entity_instances WHERE id = ?)
            """, (now, entity_instance_id))
            await db.commit()
            row = await execute_one(
                db, "SELECT * FROM entity_instances WHERE id = ?", (entity_instance_id,))
        return _instance_from_row(row)

    async def upsert_reading(self, entity_instance_id: int, field_id: str,
                             meter_id: int, calibration_id: int, value: Any,
                             calibration_expires_at: datetime,
                             calibration_expired: bool) -> Reading:
        """
        Insert or overwrite the reading for (instance, field).

        The submission status and the meter's active calibration are
        re-read under the write lock, so a submit or recalibration that
        lands after the caller's own checks still rejects the write.

        Raises:
            SubmissionLockedError: Owning submission was submitted meanwhile
            ValidationError: Calibration superseded meanwhile
        """
        now = _now()
        async with write_transaction() as db:
            owner = await execute_one(db, """
                SELECT s.id, s.status FROM entity_instances ei
                JOIN submissions s ON s.id = ei.submission_id
                WHERE ei.id = ?
            """, (entity_instance_id,))
            if not owner:
                raise NotFoundError(f"Entity instance {entity_instance_id} not found")
            if owner["status"] == SubmissionStatus.SUBMITTED.value:
                raise SubmissionLockedError(f"Submission {owner['id']} already submitted")

            active = await self._active_calibration_row(db, meter_id)
            if not active or active["id"] != calibration_id:
                raise ValidationError(
                    f"Calibration {calibration_id} is no longer active for meter {meter_id}")

            await db.execute("""
                INSERT INTO readings
                    (entity_instance_id, field_id, meter_id, calibration_id, reading,
                     calibration_expires_at, calibration_expired, recorded_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(entity_instance_id, field_id) DO UPDATE SET
                    meter_id = excluded.meter_id,
                    calibration_id = excluded.calibration_id,
                    reading = excluded.reading,
                    calibration_expires_at = excluded.calibration_expires_at,
                    calibration_expired = excluded.calibration_expired,
                    recorded_at = excluded.recorded_at
            """, (entity_instance_id, field_id, meter_id, calibration_id,
                  json.dumps(value), calibration_expires_at.isoformat(),
                  calibration_expired, now))
            await db.execute(
                "UPDATE submissions SET updated_at = ? WHERE id = ?", (now, owner["id"]))
            row = await execute_one(db, """
                SELECT * FROM readings WHERE entity_instance_id = ? AND field_id = ?
            """, (entity_instance_id, field_id))
        return _reading_from_row(row)

    async def finalize_submission(self, submission_id: int, aggregate: Aggregate,
                                  evaluated_at: Optional[datetime] = None) -> bool:
        """
        Mark an ACTIVE submission SUBMITTED with its final aggregate.

        When evaluated_at is given the update only applies if the submission's
        updated_at still matches it, i.e. no answer or reading was written
        after the aggregate was computed.

        Returns:
            False if the submission was already final or changed meanwhile
        """
        now = _now()
        stamp = evaluated_at.isoformat() if evaluated_at else None
        async with get_db() as db:
            changed = await execute_update(db, """
                UPDATE submissions
                SET status = 'submitted', pass_count = ?, fail_count = ?, na_count = ?,
                    overall_result = ?, submitted_at = ?, updated_at = ?
                WHERE id = ? AND status = 'active'
                  AND (? IS NULL OR updated_at = ?)
            """, (aggregate.pass_count, aggregate.fail_count, aggregate.na_count,
                  aggregate.overall_result.value, now, now, submission_id, stamp, stamp))
        return changed == 1
