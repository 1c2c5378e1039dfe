"""
Built-in drug interaction table.

A small table of common, well-known interactions used when no external
interaction service is configured. It is not a substitute for a curated
interaction database.
"""

from typing import Dict, List, Optional, Sequence
import logging

from clinic_rx.domain.prescribing.collaborators import MedicationRef, PatientRecordProvider
from clinic_rx.domain.prescribing.models import InteractionFinding, Severity

logger = logging.getLogger(__name__)

BASIC_INTERACTIONS: Dict[str, List[dict]] = {
    "warfarin": [
        {"drug": "aspirin", "severity": "severe", "description": "Increased risk of bleeding"},
        {"drug": "ibuprofen", "severity": "moderate", "description": "Increased bleeding risk"},
        {"drug": "acetaminophen", "severity": "mild", "description": "May affect INR"},
    ],
    "aspirin": [
        {"drug": "warfarin", "severity": "severe", "description": "Increased risk of bleeding"},
        {"drug": "ibuprofen", "severity": "moderate", "description": "Increased GI bleeding risk"},
    ],
    "ibuprofen": [
        {"drug": "warfarin", "severity": "moderate", "description": "Increased bleeding risk"},
        {"drug": "aspirin", "severity": "moderate", "description": "Increased GI bleeding risk"},
        {"drug": "lithium", "severity": "moderate", "description": "May increase lithium levels"},
    ],
    "metformin": [
        {"drug": "alcohol", "severity": "moderate", "description": "Increased risk of lactic acidosis"},
    ],
    "digoxin": [
        {"drug": "furosemide", "severity": "moderate", "description": "May cause hypokalemia and digoxin toxicity"},
    ],
    "lithium": [
        {"drug": "ibuprofen", "severity": "moderate", "description": "May increase lithium levels"},
        {"drug": "furosemide", "severity": "moderate", "description": "May increase lithium levels"},
    ],
    "furosemide": [
        {"drug": "digoxin", "severity": "moderate", "description": "May cause hypokalemia and digoxin toxicity"},
        {"drug": "lithium", "severity": "moderate", "description": "May increase lithium levels"},
    ],
    "sildenafil": [
        {"drug": "nitroglycerin", "severity": "contraindicated", "description": "Profound hypotension"},
    ],
    "nitroglycerin": [
        {"drug": "sildenafil", "severity": "contraindicated", "description": "Profound hypotension"},
    ],
}

RECOMMENDATIONS = {
    Severity.CONTRAINDICATED: "Do not use together. Consider alternative medications.",
    Severity.SEVERE: "Use with extreme caution. Monitor closely. Consider dose adjustment or alternative.",
    Severity.MODERATE: "Monitor patient closely. May require dose adjustment or additional monitoring.",
    Severity.MILD: "Minor interaction. Monitor patient.",
}


def normalize_medication_name(name: Optional[str]) -> str:
    return (name or "").strip().lower()


def recommendation_for(severity: Severity) -> str:
    return RECOMMENDATIONS.get(severity, "Review interaction and monitor patient.")


def _table_entry(first: str, second: str) -> Optional[dict]:
    for candidate in BASIC_INTERACTIONS.get(normalize_medication_name(first), []):
        if normalize_medication_name(candidate["drug"]) == normalize_medication_name(second):
            return candidate
    return None


def basic_interaction(first: str, second: str) -> Optional[InteractionFinding]:
    """Finding for two names in either direction, or None"""
    entry = _table_entry(first, second) or _table_entry(second, first)
    if entry is None:
        return None
    severity = Severity(entry["severity"])
    return InteractionFinding(
        medication1=first,
        medication2=second,
        severity=severity,
        description=entry["description"],
        recommendation=recommendation_for(severity),
    )


def check_drug_interactions(medications: Sequence[MedicationRef]) -> List[InteractionFinding]:
    """Pairwise check of every medication against every later one.

    Brand names are tried first, then generic/generic, then the mixed
    combinations.
    """
    findings = []
    for i, first in enumerate(medications):
        for second in medications[i + 1:]:
            finding = basic_interaction(first.name, second.name)
            if finding is None and first.generic_name and second.generic_name:
                finding = basic_interaction(first.generic_name, second.generic_name)
            if finding is None and first.generic_name:
                finding = basic_interaction(first.generic_name, second.name)
            if finding is None and second.generic_name:
                finding = basic_interaction(first.name, second.generic_name)
            if finding is not None:
                findings.append(finding)
    return findings


class LocalInteractionLookup:
    """Interaction lookup backed by the built-in table"""

    def __init__(self, patient_provider: Optional[PatientRecordProvider] = None):
        self.patient_provider = patient_provider

    async def lookup(
        self,
        medications: Sequence[MedicationRef],
        patient_id: Optional[str] = None,
        include_patient_medications: bool = False,
    ) -> List[InteractionFinding]:
        combined = list(medications)
        if include_patient_medications and patient_id and self.patient_provider is not None:
            current = await self.patient_provider.active_medications(patient_id)
            logger.debug(f"Including {len(current)} active medications for patient {patient_id}")
            combined.extend(current)
        return check_drug_interactions(combined)
