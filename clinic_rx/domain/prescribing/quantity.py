"""
Dispensable quantity from frequency and duration.

Frequency codes map to doses per day; PRN and anything unrecognized count as
one dose per day and mark the estimate so the prescriber can adjust it.
"""

from typing import Optional, List, Tuple
import math
import re

from pydantic import BaseModel

FREQUENCY_DOSES_PER_DAY = {
    "OD": 1,
    "QD": 1,
    "DAILY": 1,
    "QAM": 1,
    "QPM": 1,
    "QHS": 1,
    "HS": 1,
    "BID": 2,
    "TID": 3,
    "QID": 4,
}

AS_NEEDED_CODES = {"PRN", "ASNEEDED", "SOS"}

INTERVAL_CODE = re.compile(r"^Q(\d+)H$")
_EVERY_HOURS = re.compile(r"every\s*(\d+)\s*h", re.IGNORECASE)
_PHRASES: List[Tuple[str, int]] = [
    ("four times", 4),
    ("three times", 3),
    ("twice", 2),
    ("once", 1),
]


class QuantityEstimate(BaseModel):
    quantity: int
    doses_per_day: int
    estimated: bool = False
    warnings: List[str] = []


def normalize_frequency_code(frequency: Optional[str]) -> str:
    """Upper-case code with dots and whitespace removed ("b.i.d." -> "BID")"""
    if not frequency:
        return ""
    return re.sub(r"[\s.]", "", frequency).upper()


def doses_per_day(frequency: Optional[str]) -> Optional[int]:
    """Doses per day for a known frequency, None when it is PRN or unknown"""
    code = normalize_frequency_code(frequency)
    if not code or code in AS_NEEDED_CODES:
        return None
    if code in FREQUENCY_DOSES_PER_DAY:
        return FREQUENCY_DOSES_PER_DAY[code]

    interval = INTERVAL_CODE.match(code)
    if interval:
        hours = int(interval.group(1))
        if 0 < hours <= 24:
            return 24 // hours
        return None

    text = frequency.lower()
    if "as needed" in text:
        return None
    every = _EVERY_HOURS.search(text)
    if every:
        hours = int(every.group(1))
        if 0 < hours <= 24:
            return 24 // hours
        return None
    for phrase, count in _PHRASES:
        if phrase in text:
            return count
    return None


def estimate_quantity(frequency: Optional[str], duration_days: int, dose: Optional[str] = None) -> QuantityEstimate:
    """Quantity to dispense with the multiplier used and any warnings.

    ``dose`` is accepted for call-site symmetry; the count is doses, not
    dispensing units, so it does not change the result.
    """
    per_day = doses_per_day(frequency)
    warnings = []
    estimated = False

    if per_day is None:
        estimated = True
        per_day = 1
        code = normalize_frequency_code(frequency)
        if code in AS_NEEDED_CODES or (frequency and "as needed" in frequency.lower()):
            warnings.append("as-needed frequency; quantity is an estimate")
        else:
            warnings.append(
                f"unrecognized frequency '{frequency or ''}'; quantity estimated at 1 dose per day"
            )

    if not duration_days or duration_days < 1:
        return QuantityEstimate(quantity=0, doses_per_day=per_day, estimated=estimated, warnings=warnings)

    return QuantityEstimate(
        quantity=math.ceil(per_day * duration_days),
        doses_per_day=per_day,
        estimated=estimated,
        warnings=warnings,
    )


def compute_quantity(frequency: Optional[str], duration_days: int, dose: Optional[str] = None) -> int:
    return estimate_quantity(frequency, duration_days, dose).quantity
