from typing import List, Optional, Sequence
from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from clinic_rx.core.config import Settings
from clinic_rx.core.exceptions import ExternalServiceError
from clinic_rx.domain.prescribing.collaborators import InteractionLookup, MedicationRef, PatientRecordProvider
from clinic_rx.domain.prescribing.interaction_table import LocalInteractionLookup
from clinic_rx.domain.prescribing.models import InteractionFinding
from clinic_rx.services.http import ServiceClient, unwrap


class HttpInteractionLookup(ServiceClient):
    """Remote interaction lookup service"""

    service_name = "interaction-lookup"

    async def lookup(
        self,
        medications: Sequence[MedicationRef],
        patient_id: Optional[str] = None,
        include_patient_medications: bool = False,
    ) -> List[InteractionFinding]:
        body = {
            "medications": [
                {"name": med.name, "genericName": med.generic_name} for med in medications
            ],
            "includePatientMedications": include_patient_medications,
        }
        if patient_id:
            body["patientId"] = patient_id

        logger.debug(f"Checking interactions for {len(medications)} medication(s)")
        response = await self.request("POST", "/interactions/check", json=body)
        interactions = unwrap(response, "interactions")
        if interactions is None:
            interactions = []
        if not isinstance(interactions, list):
            raise ExternalServiceError(
                message="Interaction lookup returned an invalid payload",
                details={"service_name": self.service_name},
            )
        try:
            return [InteractionFinding.model_validate(item) for item in interactions]
        except PydanticValidationError as e:
            logger.error(f"Malformed interaction finding from lookup service: {e}")
            raise ExternalServiceError(
                message="Interaction lookup returned an invalid finding",
                details={"service_name": self.service_name, "original_error": str(e)},
            ) from e


def build_interaction_lookup(
    settings: Settings,
    patient_provider: Optional[PatientRecordProvider] = None,
) -> InteractionLookup:
    """Remote lookup when configured, the built-in table otherwise"""
    if settings.INTERACTION_API_URL:
        logger.info(f"Using interaction lookup service at {settings.INTERACTION_API_URL}")
        return HttpInteractionLookup(
            settings.INTERACTION_API_URL,
            api_key=settings.INTERACTION_API_KEY,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        )
    logger.info("INTERACTION_API_URL not set; using built-in interaction table")
    return LocalInteractionLookup(patient_provider)
