"""
Custom medication normalisation and treatment cost arithmetic.

Prices are :class:`~decimal.Decimal`; a medicine's cost over a course is
``price * days(unit) * duration_value``.
"""
from __future__ import annotations

import json
import math
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable, Optional

from care.models import DurationUnit, MedSchedule

DAYS_PER_UNIT = {
    DurationUnit.DAY: 1,
    DurationUnit.WEEK: 7,
    DurationUnit.MONTH: 30,
    DurationUnit.YEAR: 365,
}
CENT = Decimal('0.01')


def quantize(value) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def _to_number(value) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return None if math.isnan(value) else float(value)
    if isinstance(value, str) and value.strip():
        try:
            number = float(value.strip())
        except ValueError:
            return None
        return None if math.isnan(number) else number
    return None


def _clean_text(value) -> str:
    return value.strip() if isinstance(value, str) else ''


def normalize_custom_medications(raw: Any) -> list[dict]:
    """Coerce user input into a list of valid custom medication dicts.

    Accepts a list, a single dict or a JSON string of either. Invalid
    entries are dropped rather than rejected.
    """
    if raw is None or raw == '':
        return []
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            return []
    if isinstance(raw, dict):
        raw = [raw]
    if not isinstance(raw, (list, tuple)):
        return []

    result: list[dict] = []
    for med in raw:
        if not isinstance(med, dict):
            continue
        name = _clean_text(med.get('medicineName', med.get('name')))
        dosage = _clean_text(med.get('dosage'))
        frequency = _clean_text(med.get('frequency'))

        duration = _to_number(med.get('durationValue'))
        if duration is None or duration == 0:
            duration = 1
        if duration <= 0 or not name or not dosage or not frequency:
            continue

        unit = med.get('durationUnit')
        if unit not in DurationUnit.values:
            unit = DurationUnit.DAY

        item = {
            'medicineName': name,
            'dosage': dosage,
            'frequency': frequency,
            'durationValue': int(duration) if float(duration).is_integer() else duration,
            'durationUnit': str(unit),
        }
        if med.get('schedule') in MedSchedule.values:
            item['schedule'] = med['schedule']
        price = _to_number(med.get('price'))
        if price is not None and price >= 0:
            item['price'] = price
        result.append(item)
    return result


def medication_cost(price, unit, duration_value) -> Decimal:
    try:
        price_d = Decimal(str(price or 0))
        value_d = Decimal(str(duration_value or 0))
    except InvalidOperation:
        return Decimal('0')
    return price_d * DAYS_PER_UNIT.get(unit, 1) * value_d


def protocol_breakdown(protocol) -> list[dict]:
    """Cost line per protocol medicine; expects ``medicines__medicine`` prefetched."""
    if protocol is None:
        return []
    lines = []
    for pm in protocol.medicines.all():
        cost = medication_cost(pm.medicine.price, pm.duration_unit, pm.duration_value)
        lines.append({
            'medicineId': pm.medicine_id,
            'medicineName': pm.medicine.name,
            'price': float(pm.medicine.price),
            'durationValue': pm.duration_value,
            'durationUnit': pm.duration_unit,
            'cost': float(quantize(cost)),
        })
    return lines


def custom_breakdown(custom_medications: Optional[Iterable[dict]]) -> list[dict]:
    lines = []
    for med in custom_medications or []:
        cost = medication_cost(med.get('price', 0), med.get('durationUnit'), med.get('durationValue'))
        lines.append({
            'medicineName': med.get('medicineName'),
            'price': med.get('price', 0),
            'durationValue': med.get('durationValue'),
            'durationUnit': med.get('durationUnit'),
            'cost': float(quantize(cost)),
        })
    return lines


def calculate_total(protocol, custom_medications: Optional[Iterable[dict]]) -> Decimal:
    total = Decimal('0')
    if protocol is not None:
        for pm in protocol.medicines.all():
            total += medication_cost(pm.medicine.price, pm.duration_unit, pm.duration_value)
    for med in custom_medications or []:
        total += medication_cost(med.get('price', 0), med.get('durationUnit'), med.get('durationValue'))
    return quantize(total)
