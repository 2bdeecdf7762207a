"""
Compliance Reading Engine - Demo Seed Data
Version: 1.0.0

Changelog:
v1.0.0 (2026-10-05): Initial seed data: 1 job with 3 smoke dampers,
                      1 published smoke-control template (site checks +
                      per-damper test), 2 meters with calibration history
"""

import json
import logging
from datetime import datetime, timedelta, timezone

log = logging.getLogger(__name__)


# =============================================================================
# JOB & ASSETS
# =============================================================================

SEED_JOB = {"id": 1, "reference": "JOB-2026-0142", "site_name": "Harbour View Apartments"}

SEED_ASSETS = [
    {"id": 1, "label": "SD-01", "location": "Level 1 lobby"},
    {"id": 2, "label": "SD-02", "location": "Level 2 lobby"},
    {"id": 3, "label": "SD-03", "location": "Level 3 lobby"},
]


# =============================================================================
# TEMPLATE CATALOG
# =============================================================================

SEED_TEMPLATE = {"id": 1, "name": "Smoke Control Annual Inspection",
                 "description": "MSHEV / damper checks to BS 7346-7"}

SEED_VERSION = {"id": 1, "template_id": 1, "version_number": 1,
                "title": "Smoke Control Annual Inspection v1",
                "notes": "BS 7346-7:2013"}

SEED_ENTITIES = [
    {"id": 1, "title": "Site Checks", "repeat_per_asset": False, "sort_order": 0,
     "fields": [
         {"id": "panel_status", "label": "Control panel status", "type": "select",
          "required": True, "options": ["normal", "fault", "isolated"]},
         {"id": "logbook_reviewed", "label": "Logbook reviewed", "type": "boolean"},
         {"id": "fan_casing", "label": "Fan casing secure and free of corrosion",
          "type": "pass_fail"},
         {"id": "notes", "label": "Engineer notes", "type": "text"},
     ]},
    {"id": 2, "title": "Damper Test", "repeat_per_asset": True, "sort_order": 1,
     "fields": [
         {"id": "airflow", "label": "Face velocity", "type": "number", "unit": "m/s",
          "pass_threshold": 1.5, "fail_threshold": 4.0},
         {"id": "opening_time", "label": "Opening time", "type": "number", "unit": "s",
          "fail_threshold": 60},
         {"id": "actuator", "label": "Actuator response", "type": "pass_fail"},
     ]},
]


# =============================================================================
# METERS & CALIBRATIONS
# =============================================================================

SEED_METERS = [
    {"id": 1, "name": "Anemometer", "serial_number": "TSI-9565-0412", "model": "TSI 9565-P"},
    {"id": 2, "name": "Manometer", "serial_number": "DWY-475-1187", "model": "Dwyer 475"},
]


def _build_calibrations():
    """Meter 1: expired cert superseded by a current one. Meter 2: lapsed."""
    now = datetime.now(timezone.utc).replace(microsecond=0)
    return [
        {"id": 1, "meter_id": 1, "calibrated_at": now - timedelta(days=400),
         "expires_at": now - timedelta(days=35), "certificate_ref": "UKAS-0412-2025"},
        {"id": 2, "meter_id": 1, "calibrated_at": now - timedelta(days=30),
         "expires_at": now + timedelta(days=335), "certificate_ref": "UKAS-0412-2026"},
        {"id": 3, "meter_id": 2, "calibrated_at": now - timedelta(days=380),
         "expires_at": now - timedelta(days=15), "certificate_ref": "UKAS-1187-2025"},
    ]


# =============================================================================
# seed_if_empty(db): populate all tables when they are empty
# =============================================================================

async def seed_if_empty(db):
    """Populate the database with demo data if the tables are empty.

    Inserts in FK-dependency order:
        jobs -> assets -> form_templates -> form_versions ->
        entity_templates -> meters -> calibrations
    """

    async def _count(table: str) -> int:
        row = await db.execute(f"SELECT COUNT(*) FROM {table}")
        result = await row.fetchone()
        return result[0] if result else 0

    now = datetime.now(timezone.utc).isoformat()

    # ------------------------------------------------------------------
    # 1. JOBS & ASSETS
    # ------------------------------------------------------------------
    if await _count("jobs") == 0:
        log.info("Seeding job %s with %d assets...", SEED_JOB["reference"], len(SEED_ASSETS))
        await db.execute(
            "INSERT INTO jobs (id, reference, site_name, created_at) VALUES (?, ?, ?, ?)",
            (SEED_JOB["id"], SEED_JOB["reference"], SEED_JOB["site_name"], now),
        )
        for a in SEED_ASSETS:
            await db.execute(
                """INSERT INTO assets (id, job_id, label, location, created_at)
                   VALUES (?, ?, ?, ?, ?)""",
                (a["id"], SEED_JOB["id"], a["label"], a["location"], now),
            )

    # ------------------------------------------------------------------
    # 2. TEMPLATE CATALOG (published)
    # ------------------------------------------------------------------
    if await _count("form_templates") == 0:
        log.info("Seeding template '%s' (%d entities)...",
                 SEED_TEMPLATE["name"], len(SEED_ENTITIES))
        await db.execute(
            "INSERT INTO form_templates (id, name, description, created_at) VALUES (?, ?, ?, ?)",
            (SEED_TEMPLATE["id"], SEED_TEMPLATE["name"], SEED_TEMPLATE["description"], now),
        )
        v = SEED_VERSION
        await db.execute(
            """INSERT INTO form_versions
               (id, template_id, version_number, title, notes, status,
                published_at, created_at)
               VALUES (?, ?, ?, ?, ?, 'published', ?, ?)""",
            (v["id"], v["template_id"], v["version_number"], v["title"], v["notes"],
             now, now),
        )
        for e in SEED_ENTITIES:
            await db.execute(
                """INSERT INTO entity_templates
                   (id, form_version_id, title, repeat_per_asset, sort_order,
                    fields, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (e["id"], v["id"], e["title"], e["repeat_per_asset"],
                 e["sort_order"], json.dumps(e["fields"]), now),
            )

    # ------------------------------------------------------------------
    # 3. METERS & CALIBRATIONS
    # ------------------------------------------------------------------
    if await _count("meters") == 0:
        log.info("Seeding meters (%d records)...", len(SEED_METERS))
        for m in SEED_METERS:
            await db.execute(
                """INSERT INTO meters (id, name, serial_number, model, created_at)
                   VALUES (?, ?, ?, ?, ?)""",
                (m["id"], m["name"], m["serial_number"], m["model"], now),
            )
        for c in _build_calibrations():
            await db.execute(
                """INSERT INTO calibrations
                   (id, meter_id, calibrated_at, expires_at, certificate_ref, created_at)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (c["id"], c["meter_id"], c["calibrated_at"].isoformat(),
                 c["expires_at"].isoformat(), c["certificate_ref"], now),
            )

    await db.commit()
    log.info("Seed complete")
