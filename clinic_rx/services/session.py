from dataclasses import dataclass, field
from typing import List, Optional
from loguru import logger

from clinic_rx.core.config import Settings, settings as default_settings
from clinic_rx.core.exceptions import ConfigurationError
from clinic_rx.domain.prescribing.controller import PrescriptionDraftController
from clinic_rx.domain.prescribing.interactions import InteractionChecker
from clinic_rx.domain.prescribing.search import MedicineSearch
from clinic_rx.infrastructure.cache import RedisManager, build_catalog_cache
from clinic_rx.services.http import ServiceClient
from clinic_rx.services.interaction_client import build_interaction_lookup
from clinic_rx.services.records_client import (
    HttpMedicineCatalog,
    HttpPatientRecordProvider,
    HttpPrescriptionSink,
)


@dataclass
class AuthoringSession:
    """Everything one prescription authoring session needs"""
    controller: PrescriptionDraftController
    search: Optional[MedicineSearch]
    clients: List[ServiceClient] = field(default_factory=list)
    redis: Optional[RedisManager] = None

    async def close(self) -> None:
        await self.controller.close()
        if self.search is not None:
            await self.search.close()
        for client in self.clients:
            await client.aclose()
        if self.redis is not None:
            await self.redis.disconnect()


async def open_authoring_session(
    settings: Optional[Settings] = None,
    include_patient_medications: bool = False,
) -> AuthoringSession:
    """Wire the HTTP collaborators, the optional Redis cache and the controller"""
    settings = settings or default_settings
    if not settings.PRESCRIPTION_API_URL:
        raise ConfigurationError("PRESCRIPTION_API_URL is required to submit prescriptions")

    clients: List[ServiceClient] = []
    timeout = settings.HTTP_TIMEOUT_SECONDS

    try:
        sink = HttpPrescriptionSink(settings.PRESCRIPTION_API_URL, api_key=settings.SERVICE_API_KEY, timeout=timeout)
        clients.append(sink)

        patient_provider = None
        if settings.PATIENT_API_URL:
            patient_provider = HttpPatientRecordProvider(
                settings.PATIENT_API_URL, api_key=settings.SERVICE_API_KEY, timeout=timeout
            )
            clients.append(patient_provider)

        lookup = build_interaction_lookup(settings, patient_provider)
        if isinstance(lookup, ServiceClient):
            clients.append(lookup)

        search = None
        redis_manager = None
        if settings.CATALOG_API_URL:
            catalog = HttpMedicineCatalog(settings.CATALOG_API_URL, api_key=settings.SERVICE_API_KEY, timeout=timeout)
            clients.append(catalog)
            redis_manager = RedisManager()
            cache = await build_catalog_cache(redis_manager, settings.REDIS_URL, settings.CATALOG_CACHE_TTL_SECONDS)
            if cache is None:
                redis_manager = None
            search = MedicineSearch(catalog, cache=cache, settings=settings)
        else:
            logger.warning("CATALOG_API_URL not set; medicine search disabled")
    except Exception:
        for client in clients:
            await client.aclose()
        raise

    controller = PrescriptionDraftController(
        InteractionChecker(lookup, settings=settings),
        sink,
        patient_provider=patient_provider,
        settings=settings,
        include_patient_medications=include_patient_medications,
    )
    return AuthoringSession(controller=controller, search=search, clients=clients, redis=redis_manager)
