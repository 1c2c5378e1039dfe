"""
Prescription draft transitions.

Every function takes a ``PrescriptionDraft`` and returns a new one; nothing is
mutated in place. Dependent fields (quantity, instructions) are recomputed
inside the transition that changes their inputs.
"""

from typing import Any, List, Optional, Tuple
from datetime import datetime, timezone
import logging

from pydantic import ValidationError as PydanticValidationError

from clinic_rx.core.exceptions import DraftStateError, DraftValidationError
from clinic_rx.domain.prescribing.dosage import resolve_dosage
from clinic_rx.domain.prescribing.instructions import format_instructions
from clinic_rx.domain.prescribing.models import (
    DigitalSignature,
    InteractionFinding,
    MedicationDraftLine,
    MedicineCatalogEntry,
    PatientContext,
    PrescriptionDraft,
)
from clinic_rx.domain.prescribing.quantity import estimate_quantity

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = {
    "name", "generic_name", "form", "strength", "dose", "route",
    "frequency", "duration_days", "quantity", "instructions",
}
QUANTITY_INPUTS = {"frequency", "duration_days", "dose"}


def _replace_line(draft: PrescriptionDraft, index: int, line: MedicationDraftLine) -> PrescriptionDraft:
    medications = list(draft.medications)
    medications[index] = line
    return draft.model_copy(update={"medications": tuple(medications)})


def _line(draft: PrescriptionDraft, index: int) -> MedicationDraftLine:
    if index < 0 or index >= len(draft.medications):
        raise DraftStateError(
            f"No medication at position {index}",
            details={"index": index, "count": len(draft.medications)},
        )
    return draft.medications[index]


def add_medication(draft: PrescriptionDraft, duration_days: int = 7) -> PrescriptionDraft:
    """Append an empty medication line"""
    line = MedicationDraftLine(duration_days=duration_days)
    return draft.model_copy(update={"medications": draft.medications + (line,)})


def remove_medication(draft: PrescriptionDraft, index: int) -> PrescriptionDraft:
    _line(draft, index)
    medications = draft.medications[:index] + draft.medications[index + 1:]
    return draft.model_copy(update={"medications": medications})


def update_medication(draft: PrescriptionDraft, index: int, field: str, value: Any) -> PrescriptionDraft:
    """Set one field of a line; quantity follows frequency, duration and dose"""
    if field not in EDITABLE_FIELDS:
        raise DraftValidationError({f"medications[{index}].{field}": ["field is not editable"]})
    line = _line(draft, index)
    data = line.model_dump()
    data[field] = value
    try:
        updated = MedicationDraftLine.model_validate(data)
    except PydanticValidationError as e:
        raise DraftValidationError(
            {f"medications[{index}].{field}": [err["msg"] for err in e.errors()]}
        ) from e

    if field in QUANTITY_INPUTS and updated.frequency and updated.dose:
        estimate = estimate_quantity(updated.frequency, updated.duration_days, updated.dose)
        updated = updated.model_copy(
            update={"quantity": estimate.quantity, "warnings": tuple(estimate.warnings)}
        )
    else:
        updated = updated.model_copy(update={"warnings": line.warnings})
    return _replace_line(draft, index, updated)


def build_line(
    medicine: MedicineCatalogEntry,
    patient: Optional[PatientContext],
    duration_days: int = 7,
) -> MedicationDraftLine:
    """Fully populated line for a catalog medicine"""
    resolved = resolve_dosage(medicine, patient)
    estimate = estimate_quantity(resolved.frequency, duration_days, resolved.effective_dose)
    warnings = list(resolved.warnings)
    if resolved.frequency:
        warnings.extend(estimate.warnings)
    return MedicationDraftLine(
        medicine_id=medicine.id,
        name=medicine.name,
        generic_name=medicine.generic_name,
        form=medicine.form,
        strength=medicine.strength,
        dose=resolved.effective_dose,
        route=medicine.route,
        frequency=resolved.frequency,
        duration_days=duration_days,
        quantity=estimate.quantity if resolved.frequency else 0,
        instructions=format_instructions(medicine, resolved, duration_days),
        warnings=tuple(warnings),
    )


def select_medicine(
    draft: PrescriptionDraft,
    index: int,
    medicine: MedicineCatalogEntry,
    duration_days: int = 7,
) -> PrescriptionDraft:
    """Replace a line with the catalog medicine, dosed for the draft's patient"""
    _line(draft, index)
    line = build_line(medicine, draft.patient, duration_days)
    if line.warnings:
        logger.info(f"Dosage warnings for {medicine.name!r}: {'; '.join(line.warnings)}")
    return _replace_line(draft, index, line)


def set_patient(draft: PrescriptionDraft, patient: Optional[PatientContext]) -> PrescriptionDraft:
    return draft.model_copy(update={"patient": patient})


def set_visit(draft: PrescriptionDraft, visit_id: Optional[str]) -> PrescriptionDraft:
    return draft.model_copy(update={"visit_id": visit_id or None})


def set_notes(draft: PrescriptionDraft, notes: Optional[str]) -> PrescriptionDraft:
    return draft.model_copy(update={"notes": notes or ""})


def sign(
    draft: PrescriptionDraft,
    provider_name: str,
    signature_data: Optional[str],
    signed_at: Optional[datetime] = None,
) -> PrescriptionDraft:
    """Attach a signature; empty signature data removes it"""
    if not signature_data:
        return draft.model_copy(update={"digital_signature": None})
    signature = DigitalSignature(
        provider_name=provider_name,
        signature_data=signature_data,
        signed_at=signed_at or datetime.now(timezone.utc),
    )
    return draft.model_copy(update={"digital_signature": signature})


def with_interactions(draft: PrescriptionDraft, findings: List[InteractionFinding]) -> PrescriptionDraft:
    return draft.model_copy(update={"interactions": tuple(findings)})


def interaction_inputs(draft: PrescriptionDraft) -> Tuple[Tuple[str, str], ...]:
    """What the interaction check depends on: the ordered name pairs"""
    return tuple(
        ((line.name or "").strip().lower(), (line.generic_name or "").strip().lower())
        for line in draft.medications
    )
