from fastapi import APIRouter, Depends

from clinic_rx.api.deps import get_interaction_lookup
from clinic_rx.api.v1.prescribing.schemas import (
    DosageData,
    DosageRequest,
    DosageResponse,
    InteractionCheckData,
    InteractionCheckRequest,
    InteractionCheckResponse,
    SeverityCounts,
)
from clinic_rx.domain.prescribing.collaborators import InteractionLookup
from clinic_rx.domain.prescribing.dosage import resolve_dosage
from clinic_rx.domain.prescribing.instructions import format_instructions
from clinic_rx.domain.prescribing.interactions import InteractionChecker
from clinic_rx.domain.prescribing.quantity import estimate_quantity

router = APIRouter(tags=["Prescribing"])


@router.post("/interactions/check", response_model=InteractionCheckResponse, response_model_by_alias=True)
async def check_interactions(
    request: InteractionCheckRequest,
    lookup: InteractionLookup = Depends(get_interaction_lookup),
):
    """Check the given medications (and optionally the patient's active ones) for interactions"""
    checker = InteractionChecker(lookup)
    findings = await checker.check(
        request.medications,
        patient_id=request.patient_id,
        include_patient_medications=request.include_patient_medications,
    )
    counts = {severity: 0 for severity in SeverityCounts.model_fields}
    for finding in findings:
        counts[finding.severity.value] += 1

    return InteractionCheckResponse(
        data=InteractionCheckData(
            interactions=findings,
            has_interactions=bool(findings),
            severity_counts=SeverityCounts(**counts),
        )
    )


@router.post("/dosage", response_model=DosageResponse, response_model_by_alias=True)
async def calculate_dosage(request: DosageRequest):
    """Resolve dose, quantity and instructions for one medicine and patient"""
    resolved = resolve_dosage(request.medicine, request.patient)
    estimate = estimate_quantity(resolved.frequency, request.duration_days, resolved.effective_dose)
    warnings = list(resolved.warnings)
    if resolved.frequency:
        warnings.extend(estimate.warnings)

    return DosageResponse(
        data=DosageData(
            dose=resolved.effective_dose,
            frequency=resolved.frequency,
            weight_based_dose=resolved.weight_based_dose,
            total_daily_dose=resolved.total_daily_dose,
            basis=resolved.basis,
            quantity=estimate.quantity if resolved.frequency else 0,
            quantity_estimated=estimate.estimated,
            instructions=format_instructions(request.medicine, resolved, request.duration_days),
            warnings=warnings,
        )
    )
