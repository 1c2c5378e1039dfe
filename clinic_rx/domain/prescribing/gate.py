"""
Submission gate for prescription drafts.

Two checkpoints run on submit, in order:
1. Required-field validation (blocking, no override)
2. Interaction severity: severe or contraindicated findings park the draft in
   CONFIRMING_OVERRIDE until the prescriber confirms or cancels
"""

from typing import Dict, List, Optional
import enum
import logging

from clinic_rx.core.exceptions import (
    DraftStateError,
    DraftValidationError,
    OverrideRequiredError,
    SubmissionBlockedError,
)
from clinic_rx.domain.prescribing.models import (
    InteractionFinding,
    PrescriptionDraft,
    Severity,
    max_severity,
)

logger = logging.getLogger(__name__)


class GateState(str, enum.Enum):
    CLEAN = "CLEAN"
    CHECKING = "CHECKING"
    HAS_FINDINGS = "HAS_FINDINGS"
    CONFIRMING_OVERRIDE = "CONFIRMING_OVERRIDE"
    SUBMITTED = "SUBMITTED"


class GateDecision(str, enum.Enum):
    ACCEPTED = "ACCEPTED"
    OVERRIDE_REQUIRED = "OVERRIDE_REQUIRED"


def validate_draft(draft: PrescriptionDraft) -> Dict[str, List[str]]:
    """Per-field messages for everything missing; empty when complete"""
    errors: Dict[str, List[str]] = {}
    if draft.patient is None or not draft.patient.patient_id:
        errors["patient"] = ["Please select a patient"]
    if not draft.medications:
        errors["medications"] = ["Please add at least one medication"]
    for index, line in enumerate(draft.medications):
        for field in ("name", "dose", "frequency"):
            if not (getattr(line, field) or "").strip():
                errors.setdefault(f"medications[{index}].{field}", []).append(f"{field} is required")
    return errors


def blocking_findings(findings) -> List[InteractionFinding]:
    return [finding for finding in findings if finding.severity.is_blocking]


class SubmissionGate:
    """State machine deciding when a draft may be handed to persistence"""

    def __init__(self):
        self.state = GateState.CLEAN
        self.max_severity: Optional[Severity] = None
        self._findings: List[InteractionFinding] = []
        self._override_confirmed = False

    @property
    def override_confirmed(self) -> bool:
        return self._override_confirmed

    @property
    def findings(self) -> List[InteractionFinding]:
        return list(self._findings)

    def _ensure_open(self) -> None:
        if self.state == GateState.SUBMITTED:
            raise DraftStateError("Prescription has already been submitted")

    def _settled_state(self) -> GateState:
        return GateState.HAS_FINDINGS if self._findings else GateState.CLEAN

    def _transition(self, new_state: GateState) -> None:
        if new_state != self.state:
            logger.debug(f"Submission gate {self.state.value} -> {new_state.value}")
        self.state = new_state

    # Interaction check events

    def check_started(self) -> None:
        self._ensure_open()
        self._override_confirmed = False
        self._transition(GateState.CHECKING)

    def findings_updated(self, findings: List[InteractionFinding]) -> None:
        self._ensure_open()
        self._findings = list(findings)
        self.max_severity = max_severity(self._findings)
        self._override_confirmed = False
        self._transition(self._settled_state())

    def check_failed(self) -> None:
        self._ensure_open()
        self._transition(self._settled_state())

    def cleared(self) -> None:
        self.findings_updated([])

    # Submission

    def request_submit(self, draft: PrescriptionDraft) -> GateDecision:
        self._ensure_open()
        errors = validate_draft(draft)
        if errors:
            raise DraftValidationError(errors)
        if self.state == GateState.CHECKING:
            raise SubmissionBlockedError()
        if self.state == GateState.CONFIRMING_OVERRIDE:
            return GateDecision.OVERRIDE_REQUIRED

        blocking = blocking_findings(self._findings)
        if blocking:
            logger.warning(
                f"Submission needs override: {len(blocking)} severe/contraindicated interaction(s)"
            )
            self._transition(GateState.CONFIRMING_OVERRIDE)
            return GateDecision.OVERRIDE_REQUIRED
        return GateDecision.ACCEPTED

    def cancel_override(self) -> None:
        if self.state != GateState.CONFIRMING_OVERRIDE:
            raise DraftStateError("No override is pending")
        self._transition(self._settled_state())

    def confirm_override(self) -> None:
        if self.state != GateState.CONFIRMING_OVERRIDE:
            raise DraftStateError("No override is pending")
        self._override_confirmed = True
        logger.warning(
            f"Interaction override confirmed for {len(blocking_findings(self._findings))} finding(s)"
        )

    def mark_submitted(self) -> None:
        """Terminal transition; refuses if blocking findings were never confirmed"""
        self._ensure_open()
        if self.state == GateState.CHECKING:
            raise SubmissionBlockedError()
        blocking = blocking_findings(self._findings)
        if blocking and not (self.state == GateState.CONFIRMING_OVERRIDE and self._override_confirmed):
            raise OverrideRequiredError([finding.to_wire() for finding in blocking])
        self._transition(GateState.SUBMITTED)

    def submission_failed(self) -> None:
        """Persistence failed; reopen the draft, any override must be redone"""
        self._override_confirmed = False
        self._transition(self._settled_state())
