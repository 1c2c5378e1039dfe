"""
Patient-facing instruction line built from dose, route, frequency and duration.

Known frequency codes expand to plain phrases; free-text frequencies are used
as written.
"""

from typing import Optional

from clinic_rx.domain.prescribing.dosage import ResolvedDosage
from clinic_rx.domain.prescribing.models import MedicineCatalogEntry
from clinic_rx.domain.prescribing.quantity import AS_NEEDED_CODES, normalize_frequency_code, INTERVAL_CODE

FREQUENCY_PHRASES = {
    "OD": "once daily",
    "QD": "once daily",
    "DAILY": "once daily",
    "QAM": "every morning",
    "QPM": "every evening",
    "QHS": "at bedtime",
    "HS": "at bedtime",
    "BID": "twice daily",
    "TID": "three times daily",
    "QID": "four times daily",
}

ROUTE_PHRASES = {
    "oral": "by mouth",
    "iv": "intravenously",
    "im": "intramuscularly",
    "topical": "topically",
    "inhalation": "by inhalation",
    "ophthalmic": "in the eye",
    "otic": "in the ear",
}


def expand_frequency(frequency: Optional[str]) -> str:
    """Natural-language phrase for a frequency code; free text passes through"""
    code = normalize_frequency_code(frequency)
    if not code:
        return ""
    if code in FREQUENCY_PHRASES:
        return FREQUENCY_PHRASES[code]
    if code in AS_NEEDED_CODES:
        return "as needed"
    interval = INTERVAL_CODE.match(code)
    if interval:
        hours = int(interval.group(1))
        return "every hour" if hours == 1 else f"every {hours} hours"
    return frequency.strip()


def route_phrase(route: Optional[str]) -> str:
    if not route or route.lower() == "other":
        return ""
    return ROUTE_PHRASES.get(route.lower(), route.strip())


def format_instructions(
    medicine: MedicineCatalogEntry,
    resolved: ResolvedDosage,
    duration_days: int,
) -> str:
    """Human-readable instruction, e.g. "Take 500 mg by mouth twice daily for 7 days"."""
    parts = ["Take", resolved.effective_dose, route_phrase(medicine.route), expand_frequency(resolved.frequency)]
    if duration_days and duration_days > 0:
        parts.append(f"for {duration_days} day{'s' if duration_days != 1 else ''}")
    return " ".join(part for part in parts if part)
