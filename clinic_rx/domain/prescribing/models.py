"""
Prescribing Domain Models

Immutable values shared by the prescription safety engine:
- Medicine catalog entries and their age/weight dosage ranges
- Patient context derived from the patient record
- Draft prescription lines and the draft aggregate
- Drug interaction findings and their severity scale
- The payload handed to the persistence collaborator
"""

from typing import Optional, List, Tuple
from datetime import date, datetime
import enum

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class EngineModel(BaseModel):
    """Frozen model with camelCase aliases on the wire"""
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Severity(str, enum.Enum):
    """Interaction severity, ordered mild < moderate < severe < contraindicated"""
    MILD = "mild"
    MODERATE = "moderate"
    SEVERE = "severe"
    CONTRAINDICATED = "contraindicated"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)

    @property
    def is_blocking(self) -> bool:
        return self.rank >= Severity.SEVERE.rank

    def __lt__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank >= other.rank


_SEVERITY_ORDER = [Severity.MILD, Severity.MODERATE, Severity.SEVERE, Severity.CONTRAINDICATED]


class DosageRange(EngineModel):
    """Age/weight bracket mapped to a recommended dose and frequency"""
    min_age: Optional[float] = None
    max_age: Optional[float] = None
    min_weight: Optional[float] = None
    max_weight: Optional[float] = None
    dose: str
    frequency: str
    max_daily_dose: Optional[str] = None


class MedicineCatalogEntry(EngineModel):
    """Reference data for a medicine, owned by the catalog collaborator"""
    id: Optional[str] = Field(default=None, alias="_id")
    name: str
    generic_name: Optional[str] = None
    brand_names: List[str] = []
    form: str = "other"
    strength: str = ""
    unit: Optional[str] = None
    route: str = "other"
    category: str = ""
    contraindications: List[str] = []
    standard_dosage: Optional[str] = None
    standard_frequency: Optional[str] = None
    dosage_ranges: List[DosageRange] = []


class PatientRecord(EngineModel):
    """Subset of the patient record the engine needs"""
    id: str = Field(alias="_id")
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    date_of_birth: Optional[date] = None
    weight: Optional[float] = None
    conditions: List[str] = []


class PatientContext(EngineModel):
    """Age and weight of the patient a prescription is written for"""
    patient_id: Optional[str] = None
    age: Optional[int] = None
    weight: Optional[float] = None
    conditions: List[str] = []

    @field_validator("weight")
    @classmethod
    def drop_non_positive_weight(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v <= 0:
            return None
        return v

    @field_validator("age")
    @classmethod
    def drop_negative_age(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 0:
            return None
        return v

    @classmethod
    def from_record(cls, record: PatientRecord, today: Optional[date] = None) -> "PatientContext":
        return cls(
            patient_id=record.id,
            age=age_in_years(record.date_of_birth, today),
            weight=record.weight,
            conditions=list(record.conditions),
        )


def age_in_years(date_of_birth: Optional[date], today: Optional[date] = None) -> Optional[int]:
    """Completed whole years between date of birth and today"""
    if date_of_birth is None:
        return None
    if isinstance(date_of_birth, datetime):
        date_of_birth = date_of_birth.date()
    today = today or date.today()
    years = today.year - date_of_birth.year
    if (today.month, today.day) < (date_of_birth.month, date_of_birth.day):
        years -= 1
    return years if years >= 0 else None


class MedicationDraftLine(EngineModel):
    """One medication row of the prescription being authored"""
    medicine_id: Optional[str] = None
    name: str = ""
    generic_name: Optional[str] = None
    form: str = ""
    strength: str = ""
    dose: str = ""
    route: str = ""
    frequency: str = ""
    duration_days: int = Field(default=7, ge=1)
    quantity: int = Field(default=0, ge=0)
    instructions: Optional[str] = None
    warnings: Tuple[str, ...] = Field(default=(), exclude=True)


class InteractionFinding(EngineModel):
    """A detected risk between two medications of the same draft"""
    medication1: str
    medication2: str
    severity: Severity
    description: str
    recommendation: Optional[str] = None
    checked_at: Optional[datetime] = None


class DigitalSignature(EngineModel):
    provider_name: str
    signature_data: str
    signed_at: datetime


class PrescriptionDraft(EngineModel):
    """The in-progress prescription; replaced wholesale on every edit"""
    patient: Optional[PatientContext] = None
    visit_id: Optional[str] = None
    medications: Tuple[MedicationDraftLine, ...] = ()
    notes: str = ""
    digital_signature: Optional[DigitalSignature] = None
    interactions: Tuple[InteractionFinding, ...] = ()


class PrescriptionPayload(EngineModel):
    """Draft handed to the persistence collaborator after the submission gate"""
    patient: str
    visit: Optional[str] = None
    medications: List[MedicationDraftLine]
    notes: str = ""
    digital_signature: Optional[DigitalSignature] = None
    drug_interactions: List[InteractionFinding] = []
    override_confirmed: bool = False


def max_severity(findings) -> Optional[Severity]:
    """Worst severity present, or None for no findings"""
    worst = None
    for finding in findings:
        if worst is None or finding.severity > worst:
            worst = finding.severity
    return worst
