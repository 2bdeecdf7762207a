"""
Compliance Reading Engine - Smoke Control Library
Version: 1.0.0

Changelog:
v1.0.0 (2026-10-19): System types, reusable entity library and the required
                      entity set per system type

Catalog used to generate a draft form for a smoke-control system type. The
repository copies these rows into the system_types / entity_library /
system_type_entities tables on first use; position within a required set
is the generated entity's sort_order.
"""


# =============================================================================
# SYSTEM TYPES
# =============================================================================

SYSTEM_TYPES = [
    {"code": "PSS", "name": "Pressurization Smoke Control System",
     "standard": "EN 12101-3 & EN 12101-8"},
    {"code": "NSS", "name": "Natural Smoke Shaft System",
     "standard": "EN 12101-2 & EN 12101-8"},
    {"code": "PD", "name": "Pressure Differential System", "standard": "EN 12101-6"},
    {"code": "CAR_PARK", "name": "Car Park Smoke Control", "standard": "BS 7346-7"},
    {"code": "NSHEV", "name": "Natural SHEV", "standard": "EN 12101-2"},
    {"code": "PSHEV", "name": "Powered SHEV", "standard": "EN 12101-3"},
]


# =============================================================================
# ENTITY LIBRARY
# =============================================================================

def _bool(field_id, label, required=True):
    return {"id": field_id, "label": label, "type": "boolean", "required": required}


def _number(field_id, label, required=True):
    return {"id": field_id, "label": label, "type": "number", "required": required}


ENTITY_LIBRARY = [
    {"code": "fan_run_verification", "name": "Smoke Exhaust/Pressurization Fan",
     "standard": "EN 12101-3",
     "description": "Verify primary fan operation, airflow, and run-on controls.",
     "fields": [
         _bool("fan_starts", "Fan runs on command"),
         _number("airflow", "Airflow within design"),
         _bool("rotation", "Rotation correct"),
         _bool("overrun", "Run-on timer/overrun confirmed", required=False),
     ]},
    {"code": "damper_interface", "name": "Smoke Damper / Smoke Control Damper",
     "standard": "EN 12101-8",
     "description": "Check damper travel, feedback, and fail-safe operation.",
     "fields": [
         _bool("opens", "Opens to smoke position"),
         _bool("closes", "Closes on stop/reset"),
         _bool("feedback", "Position feedback received"),
         _bool("failsafe", "Failsafe/power-loss action confirmed", required=False),
     ]},
    {"code": "control_panel", "name": "Control Panel & Indications",
     "standard": "EN 12101-8",
     "description": "Confirm panel power, indications, overrides, and alarms.",
     "fields": [
         _bool("panel_power", "Panel power healthy"),
         _bool("fault_lights", "No active faults"),
         _bool("manual_override", "Manual override functions"),
         _bool("alarm_signal", "Alarm signal received"),
     ]},
    {"code": "pressure_readings", "name": "Pressure Differential Performance",
     "standard": "EN 12101-6",
     "description": "Record stair and lobby pressures with door forces.",
     "fields": [
         _number("stair_pressure", "Stair pressure (Pa)"),
         _number("lobby_pressure", "Lobby/vestibule pressure (Pa)", required=False),
         _number("door_force", "Door open force (N)"),
         {"id": "leakage_paths", "label": "Leakage paths noted", "type": "text"},
     ]},
    {"code": "natural_vent", "name": "Natural Vent / AOV",
     "standard": "EN 12101-2",
     "description": "Verify vent travel, free area, and failsafe closure.",
     "fields": [
         _bool("opens", "Vent opens on command"),
         _bool("closes", "Vent closes on reset"),
         _number("free_area", "Aerodynamic free area (m²)"),
         _bool("failsafe", "Failsafe position confirmed", required=False),
     ]},
    {"code": "jet_fan", "name": "Car Park Jet Fan / Extract",
     "standard": "BS 7346-7",
     "description": "Validate jet fan start, direction, and CO response.",
     "fields": [
         _bool("fan_start", "Fan starts on demand"),
         {"id": "direction", "label": "Direction set (Forward/Reverse)", "type": "select",
          "required": True, "options": ["Forward", "Reverse"]},
         _bool("co_detection", "CO detection linked"),
         _bool("local_isolation", "Local isolation available", required=False),
     ]},
    {"code": "detector_interface", "name": "Alarm / Detector Interface",
     "standard": "EN 12101-8",
     "description": "Check alarm input, isolation, and BMS signals.",
     "fields": [
         _bool("alarm_received", "Alarm input received"),
         _bool("zone_isolated", "Zone isolation control", required=False),
         _bool("bms_signal", "Signal to BMS/monitoring", required=False),
     ]},
]


# =============================================================================
# REQUIRED ENTITIES PER SYSTEM TYPE (in form order)
# =============================================================================

REQUIRED_SETS = {
    "PSS": ["fan_run_verification", "damper_interface", "control_panel", "detector_interface"],
    "NSS": ["natural_vent", "control_panel", "detector_interface"],
    "PD": ["pressure_readings", "fan_run_verification", "damper_interface", "control_panel"],
    "CAR_PARK": ["jet_fan", "detector_interface", "control_panel"],
    "NSHEV": ["natural_vent", "detector_interface"],
    "PSHEV": ["fan_run_verification", "damper_interface", "control_panel"],
}
