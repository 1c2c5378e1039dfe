import pytest
import asyncio
from datetime import date

import httpx

from clinic_rx.core.exceptions import (
    DraftStateError,
    DraftValidationError,
    ExternalServiceError,
    SubmissionBlockedError,
)
from clinic_rx.domain.prescribing.controller import (
    PrescriptionDraftController,
    SubmissionStatus,
    build_payload,
)
from clinic_rx.domain.prescribing.gate import GateState
from clinic_rx.domain.prescribing.interaction_table import LocalInteractionLookup
from clinic_rx.domain.prescribing.interactions import InteractionChecker
from clinic_rx.domain.prescribing.models import PatientContext, PrescriptionDraft, Severity
from clinic_rx.services.records_client import HttpPatientRecordProvider

from tests.fakes import FIXED_NOW


async def prescribe(controller, *names):
    """Add one fully specified line per name and let the check settle"""
    for name in names:
        index = controller.add_medication()
        controller.update_medication(index, "name", name)
        controller.update_medication(index, "dose", "1 tab")
        controller.update_medication(index, "frequency", "OD")
    await controller.checker.wait()


@pytest.mark.integration
class TestSubmission:

    @pytest.mark.asyncio
    async def test_contraindicated_pair_needs_confirmed_override(self, controller, sink, adult):
        controller.set_patient(adult)
        await prescribe(controller, "Sildenafil", "Nitroglycerin")
        assert controller.gate_state == GateState.HAS_FINDINGS

        result = await controller.submit()
        assert result.status == SubmissionStatus.OVERRIDE_REQUIRED
        assert [f.severity for f in result.blocking_findings] == [Severity.CONTRAINDICATED]
        assert controller.gate_state == GateState.CONFIRMING_OVERRIDE
        assert sink.payloads == []

        result = await controller.confirm_override()
        assert result.status == SubmissionStatus.SUBMITTED
        assert controller.gate_state == GateState.SUBMITTED

        payload = sink.payloads[0]
        assert payload.override_confirmed is True
        assert payload.patient == "pt-adult"
        assert len(payload.drug_interactions) == 1
        assert payload.drug_interactions[0].severity == Severity.CONTRAINDICATED
        assert payload.drug_interactions[0].checked_at == FIXED_NOW
        assert result.record == {"prescriptionCode": "RX-000001"}

    @pytest.mark.asyncio
    async def test_mild_findings_submit_directly(self, controller, sink, adult, warfarin, paracetamol):
        controller.set_patient(adult)
        controller.select_medicine(controller.add_medication(), warfarin)
        controller.select_medicine(controller.add_medication(), paracetamol)
        await controller.checker.wait()

        result = await controller.submit()

        assert result.status == SubmissionStatus.SUBMITTED
        assert [f.severity for f in result.payload.drug_interactions] == [Severity.MILD]
        assert result.payload.override_confirmed is False
        assert len(sink.payloads) == 1

    @pytest.mark.asyncio
    async def test_amoxicillin_for_child_end_to_end(self, controller, sink, child, amoxicillin):
        controller.set_patient(child)
        index = controller.add_medication()
        controller.select_medicine(index, amoxicillin)

        line = controller.draft.medications[index]
        assert line.frequency == "TID"
        assert line.quantity == 21
        assert controller.gate_state == GateState.CLEAN

        result = await controller.submit()
        assert result.status == SubmissionStatus.SUBMITTED
        wire = sink.payloads[0].to_wire()
        assert wire["medications"][0]["quantity"] == 21
        assert wire["medications"][0]["durationDays"] == 7
        assert "warnings" not in wire["medications"][0]

    @pytest.mark.asyncio
    async def test_incomplete_draft_is_rejected_without_persisting(self, controller, sink):
        controller.add_medication()
        with pytest.raises(DraftValidationError) as exc_info:
            await controller.submit()
        assert "patient" in exc_info.value.field_errors
        assert "medications[0].name" in exc_info.value.field_errors
        assert sink.payloads == []

    @pytest.mark.asyncio
    async def test_submit_refused_while_check_outstanding(self, controller, lookup, adult):
        controller.set_patient(adult)
        lookup.hold = asyncio.Event()
        index = controller.add_medication()
        controller.update_medication(index, "name", "Warfarin")
        controller.update_medication(index, "dose", "5 mg")
        controller.update_medication(index, "frequency", "OD")
        index = controller.add_medication()
        controller.update_medication(index, "dose", "81 mg")
        controller.update_medication(index, "frequency", "OD")
        controller.update_medication(index, "name", "Aspirin")
        assert controller.gate_state == GateState.CHECKING

        with pytest.raises(SubmissionBlockedError):
            await controller.submit()

        lookup.hold.set()
        await controller.checker.wait()
        assert controller.gate_state == GateState.HAS_FINDINGS

    @pytest.mark.asyncio
    async def test_edits_after_submission_are_refused(self, controller, child, amoxicillin):
        controller.set_patient(child)
        controller.select_medicine(controller.add_medication(), amoxicillin)
        await controller.submit()

        with pytest.raises(DraftStateError):
            controller.set_notes("late note")
        with pytest.raises(DraftStateError):
            await controller.submit()


@pytest.mark.gate
class TestOverrideFlow:

    @pytest.mark.asyncio
    async def test_cancel_keeps_draft_editable(self, controller, sink, adult):
        controller.set_patient(adult)
        await prescribe(controller, "Warfarin", "Aspirin")
        await controller.submit()

        controller.cancel_override()
        assert controller.gate_state == GateState.HAS_FINDINGS
        assert sink.payloads == []

        controller.remove_medication(1)
        assert controller.gate_state == GateState.CLEAN
        assert controller.draft.interactions == ()

        result = await controller.submit()
        assert result.status == SubmissionStatus.SUBMITTED

    @pytest.mark.asyncio
    async def test_edit_during_override_cancels_it(self, controller, adult):
        controller.set_patient(adult)
        await prescribe(controller, "Warfarin", "Aspirin")
        await controller.submit()
        assert controller.gate_state == GateState.CONFIRMING_OVERRIDE

        controller.set_notes("Patient counselled on bleeding risk")

        assert controller.gate_state == GateState.HAS_FINDINGS
        with pytest.raises(DraftStateError):
            await controller.confirm_override()

    @pytest.mark.asyncio
    async def test_sink_failure_reopens_draft(self, controller, sink, adult, network_error):
        controller.set_patient(adult)
        await prescribe(controller, "Warfarin", "Aspirin")
        await controller.submit()
        sink.fail_with = network_error

        with pytest.raises(ExternalServiceError):
            await controller.confirm_override()
        assert controller.gate_state == GateState.HAS_FINDINGS
        assert controller.submitted_payload is None

        sink.fail_with = None
        result = await controller.submit()
        assert result.status == SubmissionStatus.OVERRIDE_REQUIRED
        result = await controller.confirm_override()
        assert result.status == SubmissionStatus.SUBMITTED


@pytest.mark.integration
class TestInteractionWiring:

    @pytest.mark.asyncio
    async def test_removed_medication_discards_in_flight_result(self, controller, lookup, adult):
        controller.set_patient(adult)
        await prescribe(controller, "Warfarin")
        lookup.hold = asyncio.Event()
        prescribe_without_wait(controller, "Aspirin")
        assert controller.gate_state == GateState.CHECKING

        controller.remove_medication(1)
        assert controller.gate_state == GateState.CLEAN

        lookup.hold.set()
        for _ in range(5):
            await asyncio.sleep(0)

        assert controller.draft.interactions == ()
        assert controller.gate_state == GateState.CLEAN

    @pytest.mark.asyncio
    async def test_dose_edits_do_not_recheck(self, controller, lookup, adult):
        controller.set_patient(adult)
        await prescribe(controller, "Warfarin", "Aspirin")
        calls = len(lookup.calls)

        controller.update_medication(0, "dose", "2.5 mg")
        controller.set_notes("note")
        await controller.checker.wait()

        assert len(lookup.calls) == calls
        assert controller.gate_state == GateState.HAS_FINDINGS

    @pytest.mark.asyncio
    async def test_load_patient_from_record(self, controller):
        draft = await controller.load_patient("pt-child", today=date(2026, 10, 18))
        assert draft.patient == PatientContext(patient_id="pt-child", age=5, weight=18)

    @pytest.mark.asyncio
    async def test_recalculate_keeps_duration(self, controller, amoxicillin):
        controller.set_patient(PatientContext(patient_id="pt-child", age=5))
        index = controller.add_medication()
        controller.select_medicine(index, amoxicillin)
        controller.update_medication(index, "duration_days", 10)

        controller.set_patient(PatientContext(patient_id="pt-child", age=5, weight=18))
        controller.recalculate_medication(index, amoxicillin)

        line = controller.draft.medications[index]
        assert line.dose == "360-720 mg"
        assert line.duration_days == 10
        assert line.quantity == 30

    @pytest.mark.asyncio
    async def test_signature_uses_clock(self, controller):
        draft = controller.sign("Dr. Okafor", "data:image/png;base64,AAAA")
        assert draft.digital_signature.signed_at == FIXED_NOW


@pytest.mark.integration
class TestFailedChecks:

    @pytest.mark.asyncio
    async def test_missing_patient_record_settles_gate(self, sink, adult, test_settings):
        provider = HttpPatientRecordProvider(
            "https://records.example",
            transport=httpx.MockTransport(lambda request: httpx.Response(404, json={"success": False})),
        )
        controller = PrescriptionDraftController(
            InteractionChecker(LocalInteractionLookup(patient_provider=provider), settings=test_settings),
            sink,
            settings=test_settings,
            include_patient_medications=True,
            clock=lambda: FIXED_NOW,
        )
        controller.set_patient(adult)

        await prescribe(controller, "Warfarin", "Aspirin")

        assert not controller.checker.is_checking
        assert controller.gate_state == GateState.CLEAN
        assert "not found" in controller.checker.last_error

        result = await controller.submit()
        assert result.status == SubmissionStatus.SUBMITTED
        await controller.close()
        await provider.aclose()

    @pytest.mark.asyncio
    async def test_raw_transport_error_keeps_previous_findings(self, controller, lookup, adult):
        controller.set_patient(adult)
        await prescribe(controller, "Warfarin", "Aspirin")
        assert controller.gate_state == GateState.HAS_FINDINGS

        lookup.fail_with = httpx.ConnectError("Connection refused")
        await prescribe(controller, "Metformin")

        assert not controller.checker.is_checking
        assert controller.gate_state == GateState.HAS_FINDINGS
        assert controller.checker.last_error == "Connection refused"

        result = await controller.submit()
        assert result.status == SubmissionStatus.OVERRIDE_REQUIRED


def prescribe_without_wait(controller, name):
    index = controller.add_medication()
    controller.update_medication(index, "dose", "1 tab")
    controller.update_medication(index, "frequency", "OD")
    controller.update_medication(index, "name", name)


@pytest.mark.unit
def test_build_payload_requires_patient():
    with pytest.raises(DraftValidationError):
        build_payload(PrescriptionDraft(), override_confirmed=False, checked_at=FIXED_NOW)
