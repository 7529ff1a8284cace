"""
Aggregate statistics over patient treatments.

The general statistics are cached because the dashboard polls them;
``refresh_caches`` re-warms the entry.
"""
from __future__ import annotations

import math
from collections import Counter
from decimal import Decimal
from typing import Optional

from django.conf import settings
from django.core.cache import cache
from django.db.models import Count, Sum
from django.utils import timezone
from rest_framework.exceptions import NotFound

from care import repositories
from care.models import PatientTreatment, TreatmentProtocol
from care.services.clinical import assess_adherence
from care.services.medications import custom_breakdown
from care.services.treatment_queries import apply_date_range
from care.services.treatments import parse_datetime_value, parse_id

GENERAL_STATS_CACHE_KEY = 'treatment-stats:general'


def _pct(part, whole) -> float:
    return round(part / whole * 100, 2) if whole else 0


def _avg(total, count) -> float:
    return round(float(total) / count, 2) if count else 0


def _sum_total(qs) -> Decimal:
    return qs.aggregate(s=Sum('total'))['s'] or Decimal('0')


def _duration_days(t: PatientTreatment) -> float:
    return (t.end_date - t.start_date).total_seconds() / 86400


def patient_stats(patient_id) -> dict:
    patient_id = parse_id(patient_id, 'patientId')
    qs = PatientTreatment.objects.alive().filter(patient_id=patient_id)
    total = qs.count()
    active = qs.active().count()
    total_cost = _sum_total(qs)
    return {
        'patientId': patient_id,
        'totalTreatments': total,
        'activeTreatments': active,
        'completedTreatments': total - active,
        'totalCost': float(total_cost),
        'averageCost': _avg(total_cost, total),
    }


def doctor_workload(doctor_id) -> dict:
    doctor_id = parse_id(doctor_id, 'doctorId')
    qs = PatientTreatment.objects.alive().filter(doctor_id=doctor_id)
    total = qs.count()
    unique_patients = qs.values('patient_id').distinct().count()
    return {
        'doctorId': doctor_id,
        'totalTreatments': total,
        'activeTreatments': qs.active().count(),
        'uniquePatients': unique_patients,
        'averageTreatmentsPerPatient': _avg(total, unique_patients),
    }


def custom_medication_stats() -> dict:
    qs = PatientTreatment.objects.alive()
    total = qs.count()
    names: Counter = Counter()
    with_custom = 0
    for meds in qs.filter(custom_medications__isnull=False).values_list('custom_medications', flat=True):
        if not meds:
            continue
        with_custom += 1
        for med in meds:
            name = (med or {}).get('medicineName')
            if name:
                names[name] += 1
    return {
        'totalTreatments': total,
        'treatmentsWithCustomMeds': with_custom,
        'customMedicationUsageRate': _pct(with_custom, total),
        'topCustomMedicines': [{'name': n, 'count': c} for n, c in names.most_common(10)],
    }


def _group_summary(items: list[PatientTreatment], now) -> dict:
    completed = [t for t in items if t.end_date is not None and t.end_date <= now]
    durations = [_duration_days(t) for t in completed]
    total_cost = sum((t.total for t in items), Decimal('0'))
    return {
        'count': len(items),
        'averageDuration': math.ceil(sum(durations) / len(durations)) if durations else 0,
        'averageCost': _avg(total_cost, len(items)),
        'completionRate': _pct(len(completed), len(items)),
    }


def protocol_comparison(protocol_id) -> dict:
    protocol_id = parse_id(protocol_id, 'protocolId')
    protocol = TreatmentProtocol.objects.filter(pk=protocol_id).first()
    if protocol is None:
        raise NotFound(f'Protocol with ID {protocol_id} not found')
    now = timezone.now()
    items = list(PatientTreatment.objects.alive().filter(protocol_id=protocol_id))
    standard = [t for t in items if not t.custom_medications]
    custom = [t for t in items if t.custom_medications]
    return {
        'protocolId': protocol.id,
        'protocolName': protocol.name,
        'totalTreatments': len(items),
        'standardTreatments': _group_summary(standard, now),
        'customTreatments': _group_summary(custom, now),
        'customizationRate': _pct(len(custom), len(items)),
    }


def _month_starts(now, count: int = 12) -> list:
    local = timezone.localtime(now)
    year, month = local.year, local.month
    starts = []
    for _ in range(count):
        starts.append((year, month))
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(starts))


def compute_general_stats(now=None) -> dict:
    now = now or timezone.now()
    qs = PatientTreatment.objects.alive()
    total = qs.count()
    active = qs.active(now).count()
    total_cost = _sum_total(qs)

    completed = list(qs.filter(end_date__isnull=False, end_date__lte=now).only('start_date', 'end_date'))
    durations = [_duration_days(t) for t in completed]

    top = (qs.filter(protocol__isnull=False).values('protocol_id', 'protocol__name')
           .annotate(count=Count('id')).order_by('-count', 'protocol_id')[:5])
    top_protocols = [{
        'protocolId': row['protocol_id'],
        'protocolName': row['protocol__name'],
        'count': row['count'],
        'percentage': round(row['count'] / total * 10000) / 100 if total else 0,
    } for row in top]

    months = _month_starts(now)
    trends = {key: {'month': f'{key[0]:04d}-{key[1]:02d}', 'newTreatments': 0, 'completedTreatments': 0,
                    'totalCost': Decimal('0')} for key in months}
    for t in qs.only('start_date', 'end_date', 'total'):
        start = timezone.localtime(t.start_date)
        bucket = trends.get((start.year, start.month))
        if bucket is not None:
            bucket['newTreatments'] += 1
            bucket['totalCost'] += t.total
        if t.end_date is not None and t.end_date <= now:
            end = timezone.localtime(t.end_date)
            bucket = trends.get((end.year, end.month))
            if bucket is not None:
                bucket['completedTreatments'] += 1

    return {
        'totalTreatments': total,
        'activeTreatments': active,
        'completedTreatments': total - active,
        'totalPatients': qs.values('patient_id').distinct().count(),
        'averageTreatmentDuration': round(sum(durations) / len(durations), 2) if durations else 0,
        'totalCost': round(float(total_cost), 2),
        'averageCostPerTreatment': _avg(total_cost, total),
        'topProtocols': top_protocols,
        'monthlyTrends': [dict(trends[key], totalCost=float(trends[key]['totalCost'])) for key in months],
        'generatedAt': now.isoformat(),
    }


def general_stats(*, refresh: bool = False) -> dict:
    if not refresh:
        cached = cache.get(GENERAL_STATS_CACHE_KEY)
        if cached:
            return cached
    data = compute_general_stats()
    cache.set(GENERAL_STATS_CACHE_KEY, data, getattr(settings, 'CACHE_TTL', 300))
    return data


def invalidate_general_stats() -> None:
    cache.delete(GENERAL_STATS_CACHE_KEY)


def compliance_stats(patient_id, now=None) -> dict:
    """Adherence estimated from how much of the treatment history is covered.

    Each uncovered day between the first treatment start and today (or the
    last treatment end) counts as a missed dose.
    """
    patient_id = parse_id(patient_id, 'patientId')
    now = now or timezone.now()
    items = list(PatientTreatment.objects.alive().filter(patient_id=patient_id, start_date__lte=now)
                 .order_by('start_date'))
    if not items:
        raise NotFound(f'No treatments found for patient {patient_id}')

    span_start = items[0].start_date
    span_end = now if any(t.end_date is None or t.end_date > now for t in items) \
        else max(t.end_date for t in items)
    merged: list[list] = []
    for t in items:
        start, end = t.start_date, min(t.end_date or span_end, span_end)
        if end <= start:
            continue
        if merged and start <= merged[-1][1]:
            merged[-1][1] = max(merged[-1][1], end)
        else:
            merged.append([start, end])

    span_days = max(1, round((span_end - span_start).total_seconds() / 86400))
    covered_days = sum((end - start).total_seconds() for start, end in merged) / 86400
    missed = max(0, min(span_days, round(span_days - covered_days)))
    assessment = assess_adherence(total_doses=span_days, missed_doses=missed)
    return {
        'patientId': patient_id,
        'adherence': assessment['percentage'],
        'adherenceLevel': assessment['level'],
        'missedDoses': missed,
        'periodDays': span_days,
        'treatmentCount': len(items),
        'riskLevel': assessment['riskLevel'],
        'recommendations': assessment['recommendations'],
    }


def cost_analysis(params) -> dict:
    qs = repositories.treatments()
    for key, field in (('patientId', 'patient_id'), ('doctorId', 'doctor_id'), ('protocolId', 'protocol_id')):
        value = parse_id(params.get(key), key, required=False)
        if value:
            qs = qs.filter(**{field: value})
    qs = apply_date_range(qs, parse_datetime_value(params.get('startDate'), 'startDate'),
                          parse_datetime_value(params.get('endDate'), 'endDate'))

    items = list(qs.order_by('id'))
    total = sum((t.total for t in items), Decimal('0'))
    custom_cost = 0.0
    by_protocol: dict[Optional[int], dict] = {}
    warnings: list[str] = []
    for t in items:
        lines = custom_breakdown(t.custom_medications)
        custom_cost += sum(line['cost'] for line in lines)
        row = by_protocol.setdefault(t.protocol_id, {
            'protocolId': t.protocol_id,
            'protocolName': t.protocol.name if t.protocol_id else None,
            'count': 0,
            'totalCost': Decimal('0'),
        })
        row['count'] += 1
        row['totalCost'] += t.total
        if t.total <= 0:
            warnings.append(f'Treatment {t.id} has zero cost')
        if any('price' not in (med or {}) for med in (t.custom_medications or [])):
            warnings.append(f'Treatment {t.id} has custom medications without price')

    custom_cost = round(custom_cost, 2)
    return {
        'treatmentCount': len(items),
        'totalCost': float(total),
        'averageCost': _avg(total, len(items)),
        'breakdown': {
            'standardCost': round(float(total) - custom_cost, 2),
            'customMedicationCost': custom_cost,
            'byProtocol': [dict(row, totalCost=float(row['totalCost'])) for row in by_protocol.values()],
        },
        'warnings': warnings,
    }
