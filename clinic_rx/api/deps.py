from typing import AsyncGenerator

from clinic_rx.core.config import settings
from clinic_rx.domain.prescribing.collaborators import InteractionLookup
from clinic_rx.services.http import ServiceClient
from clinic_rx.services.interaction_client import build_interaction_lookup
from clinic_rx.services.records_client import HttpPatientRecordProvider


async def get_interaction_lookup() -> AsyncGenerator[InteractionLookup, None]:
    """Interaction lookup for one request; HTTP clients are closed afterwards"""
    patient_provider = None
    if settings.PATIENT_API_URL:
        patient_provider = HttpPatientRecordProvider(
            settings.PATIENT_API_URL,
            api_key=settings.SERVICE_API_KEY,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        )
    lookup = build_interaction_lookup(settings, patient_provider)
    try:
        yield lookup
    finally:
        if isinstance(lookup, ServiceClient):
            await lookup.aclose()
        if patient_provider is not None:
            await patient_provider.aclose()
