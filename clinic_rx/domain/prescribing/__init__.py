# Prescribing domain module
from clinic_rx.domain.prescribing.models import (
    DosageRange,
    MedicineCatalogEntry,
    PatientContext,
    PatientRecord,
    MedicationDraftLine,
    InteractionFinding,
    Severity,
    DigitalSignature,
    PrescriptionDraft,
    PrescriptionPayload,
)

__all__ = [
    "DosageRange",
    "MedicineCatalogEntry",
    "PatientContext",
    "PatientRecord",
    "MedicationDraftLine",
    "InteractionFinding",
    "Severity",
    "DigitalSignature",
    "PrescriptionDraft",
    "PrescriptionPayload",
]
