from typing import Any, List
from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from clinic_rx.core.exceptions import ExternalServiceError
from clinic_rx.domain.prescribing.collaborators import MedicationRef
from clinic_rx.domain.prescribing.models import MedicineCatalogEntry, PatientRecord, PrescriptionPayload
from clinic_rx.services.http import ServiceClient, unwrap

ACTIVE_PRESCRIPTION_STATUSES = ("active", "partially-dispensed")


def _invalid(service_name: str, error: Exception) -> ExternalServiceError:
    logger.error(f"{service_name} returned an invalid payload: {error}")
    return ExternalServiceError(
        message=f"External service {service_name} returned an invalid payload",
        details={"service_name": service_name, "original_error": str(error)},
    )


class HttpMedicineCatalog(ServiceClient):
    service_name = "medicine-catalog"

    async def search(self, query: str, limit: int = 10) -> List[MedicineCatalogEntry]:
        body = await self.request("GET", "/medicines", params={"search": query, "limit": limit})
        items = unwrap(body) or []
        try:
            return [MedicineCatalogEntry.model_validate(item) for item in items][:limit]
        except (PydanticValidationError, TypeError) as e:
            raise _invalid(self.service_name, e) from e


class HttpPatientRecordProvider(ServiceClient):
    service_name = "patient-records"

    async def get_patient(self, patient_id: str) -> PatientRecord:
        body = await self.request("GET", f"/patients/{patient_id}")
        try:
            return PatientRecord.model_validate(unwrap(body))
        except PydanticValidationError as e:
            raise _invalid(self.service_name, e) from e

    async def active_medications(self, patient_id: str) -> List[MedicationRef]:
        """Medications on the patient's active or partially dispensed prescriptions"""
        body = await self.request(
            "GET",
            "/prescriptions",
            params={"patient": patient_id, "status": ",".join(ACTIVE_PRESCRIPTION_STATUSES)},
        )
        medications = []
        for prescription in unwrap(body) or []:
            for med in prescription.get("medications", []):
                if med.get("name"):
                    medications.append(
                        MedicationRef(name=med["name"], generic_name=med.get("genericName"))
                    )
        return medications


class HttpPrescriptionSink(ServiceClient):
    service_name = "prescriptions"

    async def create_prescription(self, payload: PrescriptionPayload) -> Any:
        body = await self.request("POST", "/prescriptions", json=payload.to_wire())
        record = unwrap(body)
        logger.info(f"Prescription created: {record.get('prescriptionCode') if isinstance(record, dict) else record}")
        return record
