"""
Prescription draft controller.

Owns the single in-progress draft of an authoring session. Every edit goes
through a pure transition from ``draft.py``; edits that change the medication
names re-trigger the interaction check, and the submission gate decides when
the draft may be handed to the persistence collaborator.
"""

from typing import Any, Callable, List, Optional
from datetime import date, datetime, timezone
import enum
import logging

from pydantic import BaseModel, ConfigDict

from clinic_rx.core.config import Settings, settings as default_settings
from clinic_rx.core.exceptions import DraftStateError, DraftValidationError
from clinic_rx.domain.prescribing import draft as transitions
from clinic_rx.domain.prescribing.collaborators import PatientRecordProvider, PrescriptionSink
from clinic_rx.domain.prescribing.gate import (
    GateDecision,
    GateState,
    SubmissionGate,
    blocking_findings,
)
from clinic_rx.domain.prescribing.interactions import CheckEvent, InteractionChecker
from clinic_rx.domain.prescribing.models import (
    InteractionFinding,
    MedicineCatalogEntry,
    PatientContext,
    PrescriptionDraft,
    PrescriptionPayload,
)

logger = logging.getLogger(__name__)


class SubmissionStatus(str, enum.Enum):
    SUBMITTED = "SUBMITTED"
    OVERRIDE_REQUIRED = "OVERRIDE_REQUIRED"


class SubmissionResult(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    status: SubmissionStatus
    blocking_findings: List[InteractionFinding] = []
    payload: Optional[PrescriptionPayload] = None
    record: Any = None


def build_payload(
    draft: PrescriptionDraft,
    override_confirmed: bool,
    checked_at: datetime,
) -> PrescriptionPayload:
    """Copy of the draft for persistence, every finding stamped with ``checked_at``"""
    if draft.patient is None or not draft.patient.patient_id:
        raise DraftValidationError({"patient": ["Please select a patient"]})
    return PrescriptionPayload(
        patient=draft.patient.patient_id,
        visit=draft.visit_id,
        medications=list(draft.medications),
        notes=draft.notes,
        digital_signature=draft.digital_signature,
        drug_interactions=[
            finding.model_copy(update={"checked_at": checked_at}) for finding in draft.interactions
        ],
        override_confirmed=override_confirmed,
    )


class PrescriptionDraftController:
    """Stateful core of the prescription authoring session"""

    def __init__(
        self,
        interaction_checker: InteractionChecker,
        prescription_sink: PrescriptionSink,
        patient_provider: Optional[PatientRecordProvider] = None,
        settings: Optional[Settings] = None,
        include_patient_medications: bool = False,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.settings = settings or default_settings
        self.checker = interaction_checker
        self.sink = prescription_sink
        self.patient_provider = patient_provider
        self.include_patient_medications = include_patient_medications
        self.gate = SubmissionGate()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._draft = PrescriptionDraft()
        self._payload: Optional[PrescriptionPayload] = None
        self.checker.add_listener(self._on_check_event)

    @property
    def draft(self) -> PrescriptionDraft:
        return self._draft

    @property
    def gate_state(self) -> GateState:
        return self.gate.state

    @property
    def blocking_findings(self) -> List[InteractionFinding]:
        return blocking_findings(self._draft.interactions)

    @property
    def submitted_payload(self) -> Optional[PrescriptionPayload]:
        return self._payload

    def _on_check_event(self, event: CheckEvent, findings: List[InteractionFinding]) -> None:
        if self.gate.state == GateState.SUBMITTED:
            return
        if event == CheckEvent.STARTED:
            self.gate.check_started()
        elif event in (CheckEvent.COMPLETED, CheckEvent.CLEARED):
            self._draft = transitions.with_interactions(self._draft, findings)
            self.gate.findings_updated(findings)
        elif event == CheckEvent.FAILED:
            self.gate.check_failed()

    def _schedule_check(self) -> None:
        patient_id = self._draft.patient.patient_id if self._draft.patient else None
        self.checker.schedule(
            self._draft.medications,
            patient_id=patient_id,
            include_patient_medications=self.include_patient_medications,
        )

    def _apply(self, new_draft: PrescriptionDraft, recheck: bool = False) -> PrescriptionDraft:
        if self.gate.state == GateState.SUBMITTED:
            raise DraftStateError("Prescription has already been submitted")
        if self.gate.state == GateState.CONFIRMING_OVERRIDE:
            logger.info("Draft edited while override pending; override cancelled")
            self.gate.cancel_override()

        previous = self._draft
        self._draft = new_draft
        if recheck or transitions.interaction_inputs(previous) != transitions.interaction_inputs(new_draft):
            self._schedule_check()
        return self._draft

    # Patient

    def set_patient(self, patient: Optional[PatientContext]) -> PrescriptionDraft:
        return self._apply(
            transitions.set_patient(self._draft, patient),
            recheck=self.include_patient_medications,
        )

    async def load_patient(self, patient_id: str, today: Optional[date] = None) -> PrescriptionDraft:
        if self.patient_provider is None:
            raise DraftStateError("No patient record provider configured")
        record = await self.patient_provider.get_patient(patient_id)
        return self.set_patient(PatientContext.from_record(record, today=today))

    # Medications

    def add_medication(self) -> int:
        """Append an empty line and return its index"""
        self._apply(transitions.add_medication(self._draft, self.settings.DEFAULT_DURATION_DAYS))
        return len(self._draft.medications) - 1

    def remove_medication(self, index: int) -> PrescriptionDraft:
        return self._apply(transitions.remove_medication(self._draft, index))

    def update_medication(self, index: int, field: str, value: Any) -> PrescriptionDraft:
        return self._apply(transitions.update_medication(self._draft, index, field, value))

    def select_medicine(self, index: int, medicine: MedicineCatalogEntry) -> PrescriptionDraft:
        return self._apply(
            transitions.select_medicine(
                self._draft, index, medicine, self.settings.DEFAULT_DURATION_DAYS
            )
        )

    def recalculate_medication(self, index: int, medicine: MedicineCatalogEntry) -> PrescriptionDraft:
        """Re-dose a line for the current patient, keeping its duration"""
        current = self._draft.medications[index] if 0 <= index < len(self._draft.medications) else None
        duration = current.duration_days if current else self.settings.DEFAULT_DURATION_DAYS
        return self._apply(transitions.select_medicine(self._draft, index, medicine, duration))

    # Header fields

    def set_notes(self, notes: Optional[str]) -> PrescriptionDraft:
        return self._apply(transitions.set_notes(self._draft, notes))

    def set_visit(self, visit_id: Optional[str]) -> PrescriptionDraft:
        return self._apply(transitions.set_visit(self._draft, visit_id))

    def sign(self, provider_name: str, signature_data: Optional[str]) -> PrescriptionDraft:
        return self._apply(
            transitions.sign(self._draft, provider_name, signature_data, signed_at=self._clock())
        )

    # Submission

    async def submit(self) -> SubmissionResult:
        """Run the gate; persist directly unless an override is needed"""
        decision = self.gate.request_submit(self._draft)
        if decision == GateDecision.OVERRIDE_REQUIRED:
            return SubmissionResult(
                status=SubmissionStatus.OVERRIDE_REQUIRED,
                blocking_findings=self.blocking_findings,
            )
        return await self._persist(override_confirmed=False)

    async def confirm_override(self) -> SubmissionResult:
        self.gate.confirm_override()
        return await self._persist(override_confirmed=True)

    def cancel_override(self) -> PrescriptionDraft:
        self.gate.cancel_override()
        return self._draft

    async def _persist(self, override_confirmed: bool) -> SubmissionResult:
        payload = build_payload(self._draft, override_confirmed, checked_at=self._clock())
        self.gate.mark_submitted()
        try:
            record = await self.sink.create_prescription(payload)
        except Exception as e:
            logger.error(f"Failed to persist prescription: {e}")
            self.gate.submission_failed()
            raise
        self._payload = payload
        logger.info(
            f"Prescription submitted for patient {payload.patient} with "
            f"{len(payload.medications)} medication(s) and {len(payload.drug_interactions)} finding(s)"
        )
        return SubmissionResult(status=SubmissionStatus.SUBMITTED, payload=payload, record=record)

    async def close(self) -> None:
        await self.checker.close()
