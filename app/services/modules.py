import copy
import logging

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.assessment import Document, DocumentType, ModuleInstance
from app.schemas.assessment import ModuleInstanceUpsert
from app.services.common import coerce_uuid, get_scoped_document, require_draft, utcnow

logger = logging.getLogger(__name__)


# (name, order) per module key
MODULE_CATALOG: dict[str, tuple[str, int]] = {
    "A1_DOC_CONTROL": ("A1 - Document Control & Governance", 1),
    "A2_BUILDING_PROFILE": ("A2 - Building Profile", 2),
    "A3_PERSONS_AT_RISK": ("A3 - Occupancy & Persons at Risk", 3),
    "A4_MANAGEMENT_CONTROLS": ("A4 - Management Systems", 4),
    "A5_EMERGENCY_ARRANGEMENTS": ("A5 - Emergency Arrangements", 5),
    "A7_REVIEW_ASSURANCE": ("A7 - Review & Assurance", 7),
    "FRA_1_HAZARDS": ("FRA-1 - Hazards & Ignition Sources", 10),
    "FRA_2_ESCAPE_ASIS": ("FRA-2 - Means of Escape (As-Is)", 11),
    "FRA_3_PROTECTION_ASIS": ("FRA-3 - Fire Protection (As-Is)", 12),
    "FRA_5_EXTERNAL_FIRE_SPREAD": ("FRA-5 - External Fire Spread", 13),
    "FRA_4_SIGNIFICANT_FINDINGS": ("FRA-4 - Significant Findings (Summary)", 14),
    "FSD_1_REG_BASIS": ("FSD-1 - Regulatory Basis", 20),
    "FSD_2_EVAC_STRATEGY": ("FSD-2 - Evacuation Strategy", 21),
    "FSD_3_ESCAPE_DESIGN": ("FSD-3 - Escape Design", 22),
    "FSD_4_PASSIVE_PROTECTION": ("FSD-4 - Passive Fire Protection", 23),
    "FSD_5_ACTIVE_SYSTEMS": ("FSD-5 - Active Fire Systems", 24),
    "FSD_6_FRS_ACCESS": ("FSD-6 - Fire & Rescue Service Access", 25),
    "FSD_7_DRAWINGS": ("FSD-7 - Drawings & Schedules", 26),
    "FSD_8_SMOKE_CONTROL": ("FSD-8 - Smoke Control", 27),
    "FSD_9_CONSTRUCTION_PHASE": ("FSD-9 - Construction Phase", 28),
    "DSEAR_1_DANGEROUS_SUBSTANCES": ("DSEAR-1 - Dangerous Substances Register", 30),
    "DSEAR_2_PROCESS_RELEASES": ("DSEAR-2 - Process & Release Assessment", 31),
    "DSEAR_3_HAZARDOUS_AREA_CLASSIFICATION": (
        "DSEAR-3 - Hazardous Area Classification",
        32,
    ),
    "DSEAR_4_IGNITION_SOURCES": ("DSEAR-4 - Ignition Source Control", 33),
    "DSEAR_5_EXPLOSION_PROTECTION": ("DSEAR-5 - Explosion Protection & Mitigation", 34),
    "DSEAR_6_RISK_ASSESSMENT": ("DSEAR-6 - Risk Assessment Table", 35),
    "DSEAR_10_HIERARCHY_OF_CONTROL": ("DSEAR-10 - Hierarchy of Control", 36),
    "DSEAR_11_EXPLOSION_EMERGENCY_RESPONSE": (
        "DSEAR-11 - Explosion Emergency Response",
        37,
    ),
    "RE_01_DOC_CONTROL": ("RE-01 - Document Control", 40),
    "RE_02_CONSTRUCTION": ("RE-02 - Construction", 41),
    "RE_03_OCCUPANCY": ("RE-03 - Occupancy", 42),
    "RE_06_FIRE_PROTECTION": ("RE-04 - Fire Protection", 43),
    "RE_07_NATURAL_HAZARDS": ("RE-05 - Natural Hazards", 44),
    "RE_08_UTILITIES": ("RE-06 - Utilities", 45),
    "RE_09_MANAGEMENT": ("RE-07 - Management", 46),
    "RE_12_LOSS_VALUES": ("RE-08 - Loss Values", 47),
    "RE_13_RECOMMENDATIONS": ("RE-09 - Recommendations", 48),
}

MODULE_SKELETONS: dict[DocumentType, list[str]] = {
    DocumentType.FRA: [
        "A1_DOC_CONTROL",
        "A2_BUILDING_PROFILE",
        "A3_PERSONS_AT_RISK",
        "A4_MANAGEMENT_CONTROLS",
        "A5_EMERGENCY_ARRANGEMENTS",
        "A7_REVIEW_ASSURANCE",
        "FRA_1_HAZARDS",
        "FRA_2_ESCAPE_ASIS",
        "FRA_3_PROTECTION_ASIS",
        "FRA_5_EXTERNAL_FIRE_SPREAD",
        "FRA_4_SIGNIFICANT_FINDINGS",
    ],
    DocumentType.FSD: [
        "A1_DOC_CONTROL",
        "A2_BUILDING_PROFILE",
        "FSD_1_REG_BASIS",
        "FSD_2_EVAC_STRATEGY",
        "FSD_3_ESCAPE_DESIGN",
        "FSD_4_PASSIVE_PROTECTION",
        "FSD_5_ACTIVE_SYSTEMS",
        "FSD_6_FRS_ACCESS",
        "FSD_7_DRAWINGS",
        "FSD_8_SMOKE_CONTROL",
        "FSD_9_CONSTRUCTION_PHASE",
    ],
    DocumentType.DSEAR: [
        "A1_DOC_CONTROL",
        "A2_BUILDING_PROFILE",
        "DSEAR_1_DANGEROUS_SUBSTANCES",
        "DSEAR_2_PROCESS_RELEASES",
        "DSEAR_3_HAZARDOUS_AREA_CLASSIFICATION",
        "DSEAR_4_IGNITION_SOURCES",
        "DSEAR_5_EXPLOSION_PROTECTION",
        "DSEAR_6_RISK_ASSESSMENT",
        "DSEAR_10_HIERARCHY_OF_CONTROL",
        "DSEAR_11_EXPLOSION_EMERGENCY_RESPONSE",
    ],
    DocumentType.RE: [
        "RE_01_DOC_CONTROL",
        "RE_02_CONSTRUCTION",
        "RE_03_OCCUPANCY",
        "RE_06_FIRE_PROTECTION",
        "RE_07_NATURAL_HAZARDS",
        "RE_08_UTILITIES",
        "RE_09_MANAGEMENT",
        "RE_12_LOSS_VALUES",
        "RE_13_RECOMMENDATIONS",
    ],
}


def module_name(module_key: str) -> str:
    entry = MODULE_CATALOG.get(module_key)
    return entry[0] if entry else module_key


def module_order(module_key: str) -> int:
    entry = MODULE_CATALOG.get(module_key)
    return entry[1] if entry else 999


def clone_module(
    module: ModuleInstance, document_id, organisation_id
) -> ModuleInstance:
    """New row for ``document_id`` carrying a deep copy of ``module``'s content."""
    return ModuleInstance(
        organisation_id=organisation_id,
        document_id=document_id,
        module_key=module.module_key,
        data=copy.deepcopy(module.data or {}),
        assessor_notes=module.assessor_notes or "",
        outcome=module.outcome,
        completed_at=module.completed_at,
    )


class ModuleInstances:
    @staticmethod
    def create_skeleton(db: Session, document: Document) -> list[ModuleInstance]:
        modules = [
            ModuleInstance(
                organisation_id=document.organisation_id,
                document_id=document.id,
                module_key=key,
                data={},
                assessor_notes="",
            )
            for key in MODULE_SKELETONS.get(document.document_type, [])
        ]
        db.add_all(modules)
        db.flush()
        return modules

    @staticmethod
    def list_for_document(db: Session, document_id) -> list[ModuleInstance]:
        stmt = select(ModuleInstance).where(
            ModuleInstance.document_id == coerce_uuid(document_id)
        )
        modules = list(db.scalars(stmt).all())
        return sorted(modules, key=lambda m: module_order(m.module_key))

    @staticmethod
    def get_by_key(db: Session, document_id, module_key: str) -> ModuleInstance | None:
        return db.scalar(
            select(ModuleInstance).where(
                ModuleInstance.document_id == coerce_uuid(document_id),
                ModuleInstance.module_key == module_key,
            )
        )

    @staticmethod
    def upsert(
        db: Session,
        document_id,
        organisation_id,
        module_key: str,
        payload: ModuleInstanceUpsert,
    ) -> ModuleInstance:
        document = get_scoped_document(db, document_id, organisation_id)
        if not document:
            raise HTTPException(status_code=404, detail="Document not found")
        require_draft(document, "Module")

        module = ModuleInstances.get_by_key(db, document.id, module_key)
        if module is None:
            module = ModuleInstance(
                organisation_id=document.organisation_id,
                document_id=document.id,
                module_key=module_key,
            )
            db.add(module)
        module.data = copy.deepcopy(payload.data)
        module.assessor_notes = payload.assessor_notes
        module.outcome = payload.outcome
        if payload.completed is True and module.completed_at is None:
            module.completed_at = utcnow()
        elif payload.completed is False:
            module.completed_at = None
        db.commit()
        db.refresh(module)
        logger.info("Saved module %s on document %s", module_key, document.id)
        return module

    @staticmethod
    def _get_editable(db: Session, module_id, organisation_id) -> ModuleInstance:
        module = db.get(ModuleInstance, coerce_uuid(module_id))
        if not module:
            raise HTTPException(status_code=404, detail="Module not found")
        document = get_scoped_document(db, module.document_id, organisation_id)
        if not document:
            raise HTTPException(status_code=404, detail="Module not found")
        require_draft(document, "Module")
        return module

    @staticmethod
    def update(
        db: Session, module_id, organisation_id, payload: ModuleInstanceUpsert
    ) -> ModuleInstance:
        module = ModuleInstances._get_editable(db, module_id, organisation_id)
        data = payload.model_dump(exclude_unset=True)
        if "data" in data:
            module.data = copy.deepcopy(data["data"])
        if "assessor_notes" in data:
            module.assessor_notes = data["assessor_notes"]
        if "outcome" in data:
            module.outcome = data["outcome"]
        if data.get("completed") is True and module.completed_at is None:
            module.completed_at = utcnow()
        elif data.get("completed") is False:
            module.completed_at = None
        db.commit()
        db.refresh(module)
        return module

    @staticmethod
    def complete(db: Session, module_id, organisation_id) -> ModuleInstance:
        module = ModuleInstances._get_editable(db, module_id, organisation_id)
        if module.completed_at is None:
            module.completed_at = utcnow()
            db.commit()
            db.refresh(module)
            logger.info("Completed module %s", module.id)
        return module


module_instances = ModuleInstances()
