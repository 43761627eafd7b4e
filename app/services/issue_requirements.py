"""Issue requirements table.

Maps each document type to the ordered modules that gate issuance. A rule
marked ``required`` blocks issue when its module has no data; any other
rule only raises a warning. Document types without an entry fall back to
requiring data on every module present.

Adding a document type, or changing which modules gate it, is an edit to
``ISSUE_REQUIREMENTS`` only.
"""

from collections.abc import Callable
from dataclasses import dataclass, field

from app.models.assessment import DocumentType, ModuleInstance


def _is_filled(value) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) > 0
    return True


def module_has_data(module: ModuleInstance) -> bool:
    """A module has data once it holds any filled field, notes, or is completed."""
    data = module.data or {}
    if any(_is_filled(value) for value in data.values()):
        return True
    if _is_filled(module.assessor_notes):
        return True
    return module.completed_at is not None


@dataclass(frozen=True)
class ModuleRule:
    key: str
    label: str
    required: bool = True
    has_data: Callable[[ModuleInstance], bool] = field(
        default=module_has_data, compare=False
    )


ISSUE_REQUIREMENTS: dict[DocumentType, tuple[ModuleRule, ...]] = {
    DocumentType.FRA: (
        ModuleRule("A1_DOC_CONTROL", "Document Control & Governance"),
        ModuleRule("A2_BUILDING_PROFILE", "Building Profile"),
        ModuleRule("A3_PERSONS_AT_RISK", "Occupancy & Persons at Risk"),
        ModuleRule("A4_MANAGEMENT_CONTROLS", "Management Systems"),
        ModuleRule("A5_EMERGENCY_ARRANGEMENTS", "Emergency Arrangements"),
        ModuleRule("A7_REVIEW_ASSURANCE", "Review & Assurance", required=False),
        ModuleRule("FRA_1_HAZARDS", "Hazards & Ignition Sources"),
        ModuleRule("FRA_2_ESCAPE_ASIS", "Means of Escape (As-Is)"),
        ModuleRule("FRA_3_PROTECTION_ASIS", "Fire Protection (As-Is)"),
        ModuleRule(
            "FRA_5_EXTERNAL_FIRE_SPREAD", "External Fire Spread", required=False
        ),
        ModuleRule("FRA_4_SIGNIFICANT_FINDINGS", "Significant Findings (Summary)"),
    ),
    DocumentType.FSD: (
        ModuleRule("A1_DOC_CONTROL", "Document Control & Governance"),
        ModuleRule("A2_BUILDING_PROFILE", "Building Profile"),
        ModuleRule("FSD_1_REG_BASIS", "Regulatory Basis"),
        ModuleRule("FSD_2_EVAC_STRATEGY", "Evacuation Strategy"),
        ModuleRule("FSD_3_ESCAPE_DESIGN", "Escape Design"),
        ModuleRule("FSD_4_PASSIVE_PROTECTION", "Passive Fire Protection"),
        ModuleRule("FSD_5_ACTIVE_SYSTEMS", "Active Fire Systems"),
        ModuleRule("FSD_6_FRS_ACCESS", "Fire & Rescue Service Access"),
        ModuleRule("FSD_7_DRAWINGS", "Drawings & Schedules", required=False),
        ModuleRule("FSD_8_SMOKE_CONTROL", "Smoke Control", required=False),
        ModuleRule("FSD_9_CONSTRUCTION_PHASE", "Construction Phase", required=False),
    ),
    DocumentType.DSEAR: (
        ModuleRule("A1_DOC_CONTROL", "Document Control & Governance"),
        ModuleRule("A2_BUILDING_PROFILE", "Building Profile"),
        ModuleRule("DSEAR_1_DANGEROUS_SUBSTANCES", "Dangerous Substances Register"),
        ModuleRule("DSEAR_2_PROCESS_RELEASES", "Process & Release Assessment"),
        ModuleRule(
            "DSEAR_3_HAZARDOUS_AREA_CLASSIFICATION", "Hazardous Area Classification"
        ),
        ModuleRule("DSEAR_4_IGNITION_SOURCES", "Ignition Source Control"),
        ModuleRule("DSEAR_5_EXPLOSION_PROTECTION", "Explosion Protection & Mitigation"),
        ModuleRule("DSEAR_6_RISK_ASSESSMENT", "Risk Assessment Table"),
        ModuleRule(
            "DSEAR_10_HIERARCHY_OF_CONTROL", "Hierarchy of Control", required=False
        ),
        ModuleRule(
            "DSEAR_11_EXPLOSION_EMERGENCY_RESPONSE",
            "Explosion Emergency Response",
            required=False,
        ),
    ),
}


def get_rules(document_type: DocumentType) -> tuple[ModuleRule, ...] | None:
    return ISSUE_REQUIREMENTS.get(document_type)


def describe_requirements(document_type: DocumentType) -> dict:
    rules = get_rules(document_type)
    if rules is None:
        return {
            "document_type": document_type.value,
            "policy": "all_modules",
            "rules": [],
            "required_count": 0,
            "optional_count": 0,
            "description": "Every module must contain data before issue",
        }
    required = [r for r in rules if r.required]
    optional = [r for r in rules if not r.required]
    return {
        "document_type": document_type.value,
        "policy": "table",
        "rules": [
            {"key": r.key, "label": r.label, "required": r.required} for r in rules
        ],
        "required_count": len(required),
        "optional_count": len(optional),
        "description": f"{len(required)} required modules must be completed",
    }
