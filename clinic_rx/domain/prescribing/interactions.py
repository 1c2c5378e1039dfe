"""
Interaction checking for the medications of a draft prescription.

``InteractionChecker.check`` asks the lookup oracle and normalizes its answer.
``InteractionChecker.schedule`` is called on every medication list mutation:
it debounces, tags each request with a generation number and only applies the
result of the most recent request.
"""

from typing import Callable, List, Optional, Sequence, Set, Tuple, Union
import asyncio
import enum
import logging

from clinic_rx.core.config import Settings, settings as default_settings
from clinic_rx.domain.prescribing.collaborators import InteractionLookup, MedicationRef
from clinic_rx.domain.prescribing.interaction_table import normalize_medication_name
from clinic_rx.domain.prescribing.models import InteractionFinding

logger = logging.getLogger(__name__)

MIN_MEDICATIONS_FOR_CHECK = 2


class CheckEvent(str, enum.Enum):
    STARTED = "started"
    COMPLETED = "completed"
    CLEARED = "cleared"
    FAILED = "failed"


Listener = Callable[[CheckEvent, List[InteractionFinding]], None]


def medication_refs(medications: Sequence[Union[MedicationRef, dict, object]]) -> List[MedicationRef]:
    """Name pairs for every medication with a non-blank name"""
    refs = []
    for med in medications:
        if isinstance(med, dict):
            name = med.get("name")
            generic = med.get("generic_name", med.get("genericName"))
        else:
            name = getattr(med, "name", None)
            generic = getattr(med, "generic_name", None)
        if not name or not str(name).strip():
            continue
        generic = generic.strip() if isinstance(generic, str) and generic.strip() else None
        refs.append(MedicationRef(name=str(name).strip(), generic_name=generic))
    return refs


def _identity_index(refs: Sequence[MedicationRef]) -> dict:
    index = {}
    for position, ref in enumerate(refs):
        for label in (ref.name, ref.generic_name):
            key = normalize_medication_name(label)
            if key and key not in index:
                index[key] = position
    return index


def normalize_findings(
    findings: Sequence[InteractionFinding],
    refs: Sequence[MedicationRef],
) -> List[InteractionFinding]:
    """Collapse (A, B)/(B, A) duplicates, drop self-pairs, worst severity first.

    Names are compared case-insensitively and a brand name and its generic
    name count as the same medication.
    """
    identities = _identity_index(refs)
    kept = {}
    order = []
    for finding in findings:
        first = normalize_medication_name(finding.medication1)
        second = normalize_medication_name(finding.medication2)
        left = identities.get(first, first)
        right = identities.get(second, second)
        if left == right:
            continue
        key: Tuple = tuple(sorted((left, right), key=str))
        if key not in kept:
            kept[key] = finding
            order.append(key)
        elif finding.severity > kept[key].severity:
            kept[key] = finding
    result = [kept[key] for key in order]
    result.sort(key=lambda f: f.severity.rank, reverse=True)
    return result


class InteractionChecker:
    """Debounced, last-request-wins interaction checking"""

    def __init__(
        self,
        lookup: InteractionLookup,
        settings: Optional[Settings] = None,
        listener: Optional[Listener] = None,
    ):
        settings = settings or default_settings
        self.lookup = lookup
        self.debounce_seconds = max(settings.INTERACTION_DEBOUNCE_MS, 0) / 1000
        self._listeners: List[Listener] = [listener] if listener else []
        self._generation = 0
        self._findings: List[InteractionFinding] = []
        self._checking = False
        self._task: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()
        self.last_error: Optional[str] = None

    @property
    def findings(self) -> List[InteractionFinding]:
        return list(self._findings)

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_checking(self) -> bool:
        return self._checking

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def _notify(self, event: CheckEvent) -> None:
        for listener in self._listeners:
            listener(event, self.findings)

    async def check(
        self,
        medications: Sequence,
        patient_id: Optional[str] = None,
        include_patient_medications: bool = False,
    ) -> List[InteractionFinding]:
        """One lookup round trip, normalized. No state is touched."""
        refs = medication_refs(medications)
        if len(refs) < MIN_MEDICATIONS_FOR_CHECK:
            return []
        raw = await self.lookup.lookup(
            refs,
            patient_id=patient_id,
            include_patient_medications=include_patient_medications,
        )
        return normalize_findings(raw, refs)

    def schedule(
        self,
        medications: Sequence,
        patient_id: Optional[str] = None,
        include_patient_medications: bool = False,
    ) -> Optional[asyncio.Task]:
        """Start a check for the current medication list.

        Below two named medications the findings are cleared right away and
        no request is made. Must be called from a running event loop otherwise.
        """
        self._generation += 1
        generation = self._generation
        refs = medication_refs(medications)

        if len(refs) < MIN_MEDICATIONS_FOR_CHECK:
            self._task = None
            self._checking = False
            self.last_error = None
            had_findings = bool(self._findings)
            self._findings = []
            logger.debug(f"Interaction findings cleared at generation {generation}")
            self._notify(CheckEvent.CLEARED)
            if had_findings:
                logger.info("Interaction findings cleared; fewer than two medications")
            return None

        loop = asyncio.get_running_loop()
        self._checking = True
        self._notify(CheckEvent.STARTED)
        task = loop.create_task(
            self._run(generation, refs, patient_id, include_patient_medications)
        )
        self._task = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(
        self,
        generation: int,
        refs: List[MedicationRef],
        patient_id: Optional[str],
        include_patient_medications: bool,
    ) -> None:
        if self.debounce_seconds:
            await asyncio.sleep(self.debounce_seconds)
        if generation != self._generation:
            logger.debug(f"Interaction check {generation} superseded before dispatch")
            return

        try:
            findings = await self.check(refs, patient_id, include_patient_medications)
        except Exception as e:
            if generation != self._generation:
                logger.debug(f"Ignoring failure of superseded interaction check {generation}: {e}")
                return
            logger.warning(f"Interaction check failed; keeping previous findings: {e}")
            self.last_error = str(e)
            self._checking = False
            self._notify(CheckEvent.FAILED)
            return

        if generation != self._generation:
            logger.debug(
                f"Discarding stale interaction result for generation {generation} "
                f"(current {self._generation})"
            )
            return

        self._findings = findings
        self._checking = False
        self.last_error = None
        logger.info(f"Interaction check {generation} found {len(findings)} interaction(s)")
        self._notify(CheckEvent.COMPLETED)

    async def wait(self) -> None:
        """Wait until the most recent check has settled"""
        while self._task is not None and not self._task.done():
            await asyncio.wait({self._task})

    async def close(self) -> None:
        """Cancel every outstanding check"""
        self._generation += 1
        self._checking = False
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
