"""
Interfaces of the collaborators the prescribing engine talks to.

Persistence, catalog search and the interaction database live outside this
package; the engine only depends on these protocols.
"""

from typing import Any, List, Optional, Protocol, Sequence, runtime_checkable

from pydantic import BaseModel

from clinic_rx.domain.prescribing.models import (
    InteractionFinding,
    MedicineCatalogEntry,
    PatientRecord,
    PrescriptionPayload,
)


class MedicationRef(BaseModel):
    """Name pair sent to the interaction lookup"""
    name: str
    generic_name: Optional[str] = None


@runtime_checkable
class MedicineCatalog(Protocol):
    async def search(self, query: str, limit: int = 10) -> List[MedicineCatalogEntry]:
        ...


@runtime_checkable
class InteractionLookup(Protocol):
    async def lookup(
        self,
        medications: Sequence[MedicationRef],
        patient_id: Optional[str] = None,
        include_patient_medications: bool = False,
    ) -> List[InteractionFinding]:
        ...


@runtime_checkable
class PatientRecordProvider(Protocol):
    async def get_patient(self, patient_id: str) -> PatientRecord:
        ...

    async def active_medications(self, patient_id: str) -> List[MedicationRef]:
        ...


@runtime_checkable
class PrescriptionSink(Protocol):
    async def create_prescription(self, payload: PrescriptionPayload) -> Any:
        ...
