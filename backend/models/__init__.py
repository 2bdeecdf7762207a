"""
Compliance Reading Engine - Database Models
Version: 1.2.0

Changelog:
v1.2.0 (2026-10-19): Smoke-control system types, entity library and
                      template links
v1.1.0 (2026-10-12): Readings keyed on (entity_instance_id, field_id) with
                      calibration expiry snapshot; final aggregate columns on
                      submissions; dropped stored per-reading verdicts
v1.0.0 (2026-10-05): Template catalog, jobs/assets, meters/calibrations,
                      submissions, entity instances, readings
"""

from .forms import (
    FieldType, FieldDefinition, EntityTemplate, EntityTemplateCreate,
    FormTemplate, FormTemplateCreate, FormVersion, FormVersionCreate,
    GenerateFromSystemType, LibraryEntity, SystemType, VersionStatus,
)
from .calibration import Calibration, CalibrationCreate, Meter, MeterCreate
from .submission import (
    Aggregate, Asset, AssetCreate, EntityInstance, InstantiateResult,
    OverallResult, Reading, ReadingResult, Submission, SubmissionCreate,
    SubmissionStatus, SubmitResult, Verdict,
)

import aiosqlite
import logging

logger = logging.getLogger(__name__)


async def init_db():
    """Initialize SQLite database with the forms schema"""
    from database import get_db_path
    db_path = get_db_path()
    logger.info(f"Initializing database: {db_path}")

    async with aiosqlite.connect(db_path) as db:
        await db.execute("PRAGMA journal_mode=WAL")
        await db.execute("PRAGMA foreign_keys=ON")

        # ================================================================
        # TEMPLATE CATALOG
        # ================================================================
        await db.execute("""
            CREATE TABLE IF NOT EXISTS form_templates (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                description TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS form_versions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                template_id INTEGER NOT NULL REFERENCES form_templates(id),
                version_number INTEGER NOT NULL,
                title TEXT NOT NULL,
                notes TEXT,
                status TEXT NOT NULL DEFAULT 'draft',
                published_at TIMESTAMP,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                UNIQUE(template_id, version_number)
            )
        """)

        # fields: JSON array of FieldDefinition
        await db.execute("""
            CREATE TABLE IF NOT EXISTS entity_templates (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                form_version_id INTEGER NOT NULL REFERENCES form_versions(id),
                title TEXT NOT NULL,
                description TEXT,
                repeat_per_asset BOOLEAN NOT NULL DEFAULT 0,
                sort_order INTEGER NOT NULL DEFAULT 0,
                fields TEXT NOT NULL DEFAULT '[]',
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        # ================================================================
        # SMOKE CONTROL LIBRARY
        # ================================================================
        await db.execute("""
            CREATE TABLE IF NOT EXISTS system_types (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                code TEXT NOT NULL UNIQUE,
                name TEXT NOT NULL,
                standard TEXT,
                description TEXT
            )
        """)

        # fields: JSON array of FieldDefinition
        await db.execute("""
            CREATE TABLE IF NOT EXISTS entity_library (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                code TEXT NOT NULL UNIQUE,
                name TEXT NOT NULL,
                standard TEXT,
                description TEXT,
                fields TEXT NOT NULL DEFAULT '[]'
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS system_type_entities (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                system_type_id INTEGER NOT NULL REFERENCES system_types(id),
                entity_library_id INTEGER NOT NULL REFERENCES entity_library(id),
                sort_order INTEGER NOT NULL DEFAULT 0,
                UNIQUE(system_type_id, entity_library_id)
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS form_template_systems (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                template_id INTEGER NOT NULL REFERENCES form_templates(id),
                system_type_id INTEGER NOT NULL REFERENCES system_types(id),
                UNIQUE(template_id, system_type_id)
            )
        """)

        # ================================================================
        # JOBS & ASSETS
        # ================================================================
        await db.execute("""
            CREATE TABLE IF NOT EXISTS jobs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                reference TEXT NOT NULL,
                site_name TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS assets (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                job_id INTEGER NOT NULL REFERENCES jobs(id),
                label TEXT NOT NULL,
                location TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        # ================================================================
        # METERS & CALIBRATIONS
        # ================================================================
        await db.execute("""
            CREATE TABLE IF NOT EXISTS meters (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                serial_number TEXT NOT NULL UNIQUE,
                model TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS calibrations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                meter_id INTEGER NOT NULL REFERENCES meters(id),
                calibrated_at TIMESTAMP NOT NULL,
                expires_at TIMESTAMP NOT NULL,
                certificate_ref TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        # ================================================================
        # SUBMISSIONS
        # ================================================================
        await db.execute("""
            CREATE TABLE IF NOT EXISTS submissions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                job_id INTEGER NOT NULL REFERENCES jobs(id),
                form_version_id INTEGER NOT NULL REFERENCES form_versions(id),
                status TEXT NOT NULL DEFAULT 'draft',
                pass_count INTEGER,
                fail_count INTEGER,
                na_count INTEGER,
                overall_result TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                submitted_at TIMESTAMP,
                UNIQUE(job_id, form_version_id)
            )
        """)

        # asset_id is not a foreign key: assets belong to the external
        # directory and instances keep their own location snapshot
        await db.execute("""
            CREATE TABLE IF NOT EXISTS entity_instances (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                submission_id INTEGER NOT NULL REFERENCES submissions(id),
                entity_template_id INTEGER NOT NULL REFERENCES entity_templates(id),
                asset_id INTEGER,
                location TEXT,
                answers TEXT NOT NULL DEFAULT '{}',
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        # NULL asset_id would defeat a plain UNIQUE constraint
        await db.execute("""
            CREATE UNIQUE INDEX IF NOT EXISTS ux_entity_instances_key
            ON entity_instances(submission_id, entity_template_id, IFNULL(asset_id, 0))
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS readings (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                entity_instance_id INTEGER NOT NULL REFERENCES entity_instances(id),
                field_id TEXT NOT NULL,
                meter_id INTEGER NOT NULL REFERENCES meters(id),
                calibration_id INTEGER NOT NULL REFERENCES calibrations(id),
                reading TEXT,
                calibration_expires_at TIMESTAMP NOT NULL,
                calibration_expired BOOLEAN NOT NULL DEFAULT 0,
                recorded_at TIMESTAMP NOT NULL,
                UNIQUE(entity_instance_id, field_id)
            )
        """)

        await db.execute(
            "CREATE INDEX IF NOT EXISTS ix_assets_job ON assets(job_id)")
        await db.execute(
            "CREATE INDEX IF NOT EXISTS ix_calibrations_meter ON calibrations(meter_id)")

        await db.commit()

    logger.info("Database initialized")
