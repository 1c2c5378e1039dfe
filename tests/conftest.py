import pytest
from typing import AsyncGenerator
from httpx import ASGITransport, AsyncClient
from datetime import date

from clinic_rx.main import app
from clinic_rx.core.config import Settings
from clinic_rx.core.exceptions import ExternalServiceError
from clinic_rx.api.deps import get_interaction_lookup
from clinic_rx.domain.prescribing.collaborators import MedicationRef
from clinic_rx.domain.prescribing.controller import PrescriptionDraftController
from clinic_rx.domain.prescribing.interaction_table import LocalInteractionLookup
from clinic_rx.domain.prescribing.interactions import InteractionChecker
from clinic_rx.domain.prescribing.models import (
    DosageRange,
    MedicineCatalogEntry,
    PatientContext,
    PatientRecord,
    Severity,
)

from tests.fakes import FIXED_NOW, FakeInteractionLookup, FakePatientProvider, FakePrescriptionSink, finding


@pytest.fixture
def test_settings() -> Settings:
    """Settings with debouncing disabled so tests run synchronously enough."""
    return Settings(
        _env_file=None,
        INTERACTION_DEBOUNCE_MS=0,
        MEDICINE_SEARCH_DEBOUNCE_MS=0,
    )


@pytest.fixture
def amoxicillin() -> MedicineCatalogEntry:
    return MedicineCatalogEntry(
        id="med-amox",
        name="Amoxicillin",
        generic_name="amoxicillin",
        form="capsule",
        strength="250 mg",
        route="oral",
        category="Antibiotic",
        dosage_ranges=[DosageRange(max_age=12, dose="20-40 mg/kg", frequency="TID")],
        standard_dosage="500 mg",
        standard_frequency="TID",
    )


@pytest.fixture
def paracetamol() -> MedicineCatalogEntry:
    return MedicineCatalogEntry(
        id="med-para",
        name="Panadol",
        generic_name="Paracetamol",
        form="tablet",
        strength="500 mg",
        route="oral",
        category="Analgesic",
        standard_dosage="500 mg",
        standard_frequency="QID",
    )


@pytest.fixture
def warfarin() -> MedicineCatalogEntry:
    return MedicineCatalogEntry(
        id="med-warf",
        name="Warfarin",
        form="tablet",
        strength="5 mg",
        route="oral",
        category="Anticoagulant",
        standard_dosage="5 mg",
        standard_frequency="OD",
    )


@pytest.fixture
def aspirin() -> MedicineCatalogEntry:
    return MedicineCatalogEntry(
        id="med-asa",
        name="Aspirin",
        form="tablet",
        strength="81 mg",
        route="oral",
        category="Antiplatelet",
        standard_dosage="81 mg",
        standard_frequency="OD",
    )


@pytest.fixture
def child() -> PatientContext:
    return PatientContext(patient_id="pt-child", age=5)


@pytest.fixture
def adult() -> PatientContext:
    return PatientContext(patient_id="pt-adult", age=40, weight=70)


@pytest.fixture
def lookup() -> FakeInteractionLookup:
    return FakeInteractionLookup({
        frozenset({"warfarin", "aspirin"}): [finding("Warfarin", "Aspirin", Severity.SEVERE, "Increased risk of bleeding")],
        frozenset({"sildenafil", "nitroglycerin"}): [
            finding("Sildenafil", "Nitroglycerin", Severity.CONTRAINDICATED, "Profound hypotension")
        ],
        frozenset({"warfarin", "panadol"}): [finding("Warfarin", "Panadol", Severity.MILD, "May affect INR")],
    })


@pytest.fixture
def sink() -> FakePrescriptionSink:
    return FakePrescriptionSink()


@pytest.fixture
def patient_provider() -> FakePatientProvider:
    return FakePatientProvider(
        records={
            "pt-child": PatientRecord(id="pt-child", first_name="Sam", date_of_birth=date(2021, 3, 1), weight=18),
            "pt-adult": PatientRecord(id="pt-adult", first_name="Alex", date_of_birth=date(1985, 10, 19)),
        },
        active={"pt-adult": [MedicationRef(name="Aspirin")]},
    )


@pytest.fixture
async def controller(lookup, sink, patient_provider, test_settings):
    checker = InteractionChecker(lookup, settings=test_settings)
    ctrl = PrescriptionDraftController(
        checker,
        sink,
        patient_provider=patient_provider,
        settings=test_settings,
        clock=lambda: FIXED_NOW,
    )
    yield ctrl
    await ctrl.close()


@pytest.fixture
def network_error() -> ExternalServiceError:
    return ExternalServiceError("External service interaction-lookup unavailable")


@pytest.fixture(scope="function")
async def client() -> AsyncGenerator[AsyncClient, None]:
    """API client with the built-in interaction table instead of remote services."""

    def override_get_interaction_lookup():
        return LocalInteractionLookup()

    app.dependency_overrides[get_interaction_lookup] = override_get_interaction_lookup

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# Pytest configuration
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "gate: mark test as submission gate related"
    )
