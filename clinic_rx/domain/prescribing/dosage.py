"""
Dosage resolution

Picks the dose and frequency for a catalog medicine given the patient's age
and weight. Ranges are evaluated in catalog order and the first range whose
bounds admit the patient wins.
"""

from typing import Optional, List
from decimal import Decimal, ROUND_HALF_UP
import logging
import re

from pydantic import BaseModel

from clinic_rx.domain.prescribing.models import DosageRange, MedicineCatalogEntry, PatientContext

logger = logging.getLogger(__name__)

NO_DOSAGE_DATA_WARNING = "no applicable dosage data; manual entry required"
NO_MATCHING_RANGE_WARNING = "no dosage range matches this patient; using standard dosage"
UNKNOWN_WEIGHT_WARNING = "dose is weight-based but patient weight is unknown; confirm dose manually"

_PER_KG_RANGE = re.compile(r"(\d+(?:\.\d+)?)\s*[-–]\s*(\d+(?:\.\d+)?)\s*mg\s*/\s*kg", re.IGNORECASE)
_PER_KG_SINGLE = re.compile(r"(\d+(?:\.\d+)?)\s*mg\s*/\s*kg", re.IGNORECASE)


class ResolvedDosage(BaseModel):
    dose: str = ""
    frequency: str = ""
    weight_based_dose: Optional[str] = None
    total_daily_dose: Optional[str] = None
    basis: Optional[str] = None
    matched_range: Optional[int] = None
    warnings: List[str] = []

    @property
    def effective_dose(self) -> str:
        """Dose to put on the prescription line"""
        return self.weight_based_dose or self.dose


def _within(value: Optional[float], lower: Optional[float], upper: Optional[float]) -> bool:
    if lower is None and upper is None:
        return True
    # A bounded axis cannot admit an unknown value
    if value is None:
        return False
    if lower is not None and value < lower:
        return False
    if upper is not None and value > upper:
        return False
    return True


def range_admits(dosage_range: DosageRange, patient: PatientContext) -> bool:
    """True when the range's age and weight bounds admit the patient"""
    return (
        _within(patient.age, dosage_range.min_age, dosage_range.max_age)
        and _within(patient.weight, dosage_range.min_weight, dosage_range.max_weight)
    )


def find_dosage_range(medicine: MedicineCatalogEntry, patient: PatientContext) -> Optional[int]:
    """Index of the first admitting range, or None"""
    for index, dosage_range in enumerate(medicine.dosage_ranges):
        if range_admits(dosage_range, patient):
            return index
    return None


def _round_mg(value: float) -> int:
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def weight_based_dose(dose: str, weight: Optional[float]) -> Optional[str]:
    """Concrete mg figure for a per-kg dose, or None when not applicable"""
    if not weight or not dose:
        return None
    match = _PER_KG_RANGE.search(dose)
    if match:
        low = _round_mg(float(match.group(1)) * weight)
        high = _round_mg(float(match.group(2)) * weight)
        return f"{low}-{high} mg"
    match = _PER_KG_SINGLE.search(dose)
    if match:
        return f"{_round_mg(float(match.group(1)) * weight)} mg"
    return None


def is_weight_based(dose: str) -> bool:
    return bool(dose) and _PER_KG_SINGLE.search(dose) is not None


def _basis(patient: PatientContext) -> Optional[str]:
    parts = []
    if patient.age is not None:
        parts.append(f"age ({patient.age} years)")
    if patient.weight is not None:
        parts.append(f"weight ({patient.weight:g} kg)")
    if not parts:
        return None
    return "Based on patient's " + " and ".join(parts)


def contraindication_warnings(medicine: MedicineCatalogEntry, patient: PatientContext) -> List[str]:
    warnings = []
    for condition in patient.conditions:
        lowered = condition.lower()
        if any(contra and contra.lower() in lowered for contra in medicine.contraindications):
            warnings.append(
                f"Warning: This medication may be contraindicated for patients with {condition}"
            )
    return warnings


def resolve_dosage(medicine: MedicineCatalogEntry, patient: Optional[PatientContext] = None) -> ResolvedDosage:
    """Resolve dose and frequency for ``medicine`` and ``patient``.

    Never raises: missing ranges, missing standard dosage, or an unknown
    age/weight all degrade to warnings on the result.
    """
    patient = patient or PatientContext()
    warnings = contraindication_warnings(medicine, patient)

    index = find_dosage_range(medicine, patient)
    if index is not None:
        selected = medicine.dosage_ranges[index]
        per_kg = weight_based_dose(selected.dose, patient.weight)
        if per_kg is None and is_weight_based(selected.dose):
            warnings.append(UNKNOWN_WEIGHT_WARNING)
        return ResolvedDosage(
            dose=selected.dose,
            frequency=selected.frequency,
            weight_based_dose=per_kg,
            total_daily_dose=selected.max_daily_dose,
            basis=_basis(patient),
            matched_range=index,
            warnings=warnings,
        )

    standard_dose = (medicine.standard_dosage or "").strip()
    standard_frequency = (medicine.standard_frequency or "").strip()

    if not standard_dose and not standard_frequency:
        logger.debug(f"No dosage data for medicine {medicine.name!r}")
        warnings.append(NO_DOSAGE_DATA_WARNING)
        return ResolvedDosage(warnings=warnings)

    if medicine.dosage_ranges:
        warnings.append(NO_MATCHING_RANGE_WARNING)
    if not standard_dose:
        warnings.append("no standard dose; manual entry required")
    if not standard_frequency:
        warnings.append("no standard frequency; manual entry required")

    per_kg = weight_based_dose(standard_dose, patient.weight)
    if per_kg is None and is_weight_based(standard_dose):
        warnings.append(UNKNOWN_WEIGHT_WARNING)

    return ResolvedDosage(
        dose=standard_dose,
        frequency=standard_frequency,
        weight_based_dose=per_kg,
        basis="Standard adult dosage",
        warnings=warnings,
    )
