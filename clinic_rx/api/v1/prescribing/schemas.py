from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import List, Optional

from clinic_rx.domain.prescribing.models import (
    InteractionFinding,
    MedicineCatalogEntry,
    PatientContext,
)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MedicationInput(CamelModel):
    name: str
    generic_name: Optional[str] = None


class InteractionCheckRequest(CamelModel):
    medications: List[MedicationInput]
    patient_id: Optional[str] = None
    include_patient_medications: bool = False


class SeverityCounts(CamelModel):
    contraindicated: int = 0
    severe: int = 0
    moderate: int = 0
    mild: int = 0


class InteractionCheckData(CamelModel):
    interactions: List[InteractionFinding]
    has_interactions: bool
    severity_counts: SeverityCounts


class InteractionCheckResponse(CamelModel):
    success: bool = True
    data: InteractionCheckData


class DosageRequest(CamelModel):
    medicine: MedicineCatalogEntry
    patient: Optional[PatientContext] = None
    duration_days: int = Field(7, ge=1, le=365)


class DosageData(CamelModel):
    dose: str
    frequency: str
    weight_based_dose: Optional[str] = None
    total_daily_dose: Optional[str] = None
    basis: Optional[str] = None
    quantity: int
    quantity_estimated: bool = False
    instructions: str
    warnings: List[str] = []


class DosageResponse(CamelModel):
    success: bool = True
    data: DosageData
