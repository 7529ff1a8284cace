"""
Clinical validation checks for HIV treatment decisions.

All checks except :func:`check_continuity` are pure functions over
their inputs: table-driven thresholds mapped to risk levels, warnings
and recommendations. None of them persists anything.
"""
from __future__ import annotations

import math
from typing import Iterable, Optional

from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from care.models import PatientTreatment

# ---------------------------------------------------------------------
# Adherence
# ---------------------------------------------------------------------
ADHERENCE_LEVELS = [
    (95, 'excellent', 'low'),
    (85, 'good', 'medium'),
    (70, 'suboptimal', 'high'),
    (0, 'poor', 'critical'),
]


def assess_adherence(total_doses, missed_doses) -> dict:
    try:
        total = float(total_doses)
        missed = float(missed_doses)
    except (TypeError, ValueError):
        raise ValidationError('totalDoses and missedDoses must be numbers')
    if math.isnan(total) or math.isnan(missed) or total < 0 or missed < 0:
        raise ValidationError('totalDoses and missedDoses must be non-negative numbers')
    if missed > total:
        raise ValidationError('missedDoses cannot exceed totalDoses')

    percentage = round((total - missed) / total * 100, 2) if total else 0
    level, risk = next((lvl, r) for threshold, lvl, r in ADHERENCE_LEVELS if percentage >= threshold)

    interventions: list[str] = []
    recommendations: list[str] = []
    if percentage < 95:
        interventions.append('Adherence counseling required')
        recommendations.append('Schedule adherence counseling session')
    if percentage < 85:
        interventions.append('Enhanced support measures')
        recommendations.append('Consider pill organizers, reminders, or directly observed therapy')
    if percentage < 70:
        interventions.append('Urgent clinical review')
        recommendations.append('Immediate clinical assessment for treatment modification')

    return {
        'percentage': percentage,
        'level': level,
        'riskLevel': risk,
        'interventions': interventions,
        'recommendations': recommendations,
    }


# ---------------------------------------------------------------------
# Organ function
# ---------------------------------------------------------------------
# (status, alt, ast, bilirubin) checked most severe first
LIVER_THRESHOLDS = [
    ('severe', 120, 120, 3),
    ('moderate', 80, 80, 2),
    ('mild', 40, 40, 1.5),
]
# (status, egfr below, creatinine above)
KIDNEY_THRESHOLDS = [
    ('severe', 30, 3),
    ('moderate', 60, 2),
    ('mild', 90, 1.5),
]


def _num(values: dict, key: str) -> Optional[float]:
    value = values.get(key)
    if value in (None, ''):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{key} must be a number')


def _liver_status(liver: dict) -> str:
    alt, ast, bili = _num(liver, 'alt'), _num(liver, 'ast'), _num(liver, 'bilirubin')
    for status, alt_max, ast_max, bili_max in LIVER_THRESHOLDS:
        if (alt is not None and alt > alt_max) or (ast is not None and ast > ast_max) \
                or (bili is not None and bili > bili_max):
            return status
    return 'normal'


def _kidney_status(kidney: dict) -> str:
    egfr, creatinine = _num(kidney, 'egfr'), _num(kidney, 'creatinine')
    for status, egfr_min, creat_max in KIDNEY_THRESHOLDS:
        if (egfr is not None and egfr < egfr_min) or (creatinine is not None and creatinine > creat_max):
            return status
    return 'normal'


def assess_organ_function(liver: Optional[dict] = None, kidney: Optional[dict] = None) -> dict:
    liver_status = _liver_status(liver or {})
    kidney_status = _kidney_status(kidney or {})
    dose_adjustments: list[str] = []
    contraindications: list[str] = []
    monitoring: list[str] = []

    if liver_status != 'normal':
        dose_adjustments.append('Consider dose reduction for hepatically metabolized drugs')
        monitoring.append('Weekly liver function monitoring')
        if liver_status == 'severe':
            contraindications.append('Nevirapine')
            monitoring.append('Consider hepatology consultation')
    if kidney_status != 'normal':
        dose_adjustments.append('Adjust doses for renally eliminated drugs')
        monitoring.append('Weekly kidney function monitoring')
        if kidney_status == 'severe':
            dose_adjustments.append('Reduce tenofovir dose by 50%')
            monitoring.append('Consider nephrology consultation')

    return {
        'liverFunction': liver_status,
        'kidneyFunction': kidney_status,
        'requiresDoseAdjustment': bool(dose_adjustments),
        'doseAdjustments': dose_adjustments,
        'contraindications': contraindications,
        'monitoringRequirements': monitoring,
    }


# ---------------------------------------------------------------------
# Pregnancy / breastfeeding
# ---------------------------------------------------------------------
EFAVIRENZ_PROTOCOL_ID = 1


def assess_pregnancy_safety(*, gender: str, is_pregnant: bool = False, is_breastfeeding: bool = False,
                            protocol_id: Optional[int] = None) -> dict:
    if str(gender or '').strip().lower() not in ('female', 'f'):
        return {
            'isSafe': True,
            'pregnancyCategory': 'N/A',
            'contraindications': [],
            'alternatives': [],
            'monitoringRequirements': ['Standard monitoring applies'],
        }

    contraindications: list[str] = []
    alternatives: list[str] = []
    monitoring: list[str] = []
    category = 'N/A'
    if is_pregnant or is_breastfeeding:
        category = 'B'
        if protocol_id == EFAVIRENZ_PROTOCOL_ID:
            contraindications.append('Efavirenz')
            alternatives.append('Switch to integrase inhibitor-based regimen')
    if is_pregnant:
        monitoring += [
            'Monthly viral load monitoring',
            'Obstetric consultation',
            'Fetal development monitoring',
        ]
    if is_breastfeeding:
        monitoring += [
            'Infant HIV testing at 6 weeks, 3 months, 6 months',
            'Monitor infant for drug side effects',
        ]
    return {
        'isSafe': not contraindications,
        'pregnancyCategory': category,
        'contraindications': contraindications,
        'alternatives': alternatives,
        'monitoringRequirements': monitoring or ['Standard monitoring applies'],
    }


# ---------------------------------------------------------------------
# Resistance
# ---------------------------------------------------------------------
MUTATION_RESISTANCE = {
    'M184V': ['Lamivudine', 'Emtricitabine'],
    'K103N': ['Efavirenz', 'Nevirapine'],
    'Q148H': ['Raltegravir', 'Elvitegravir'],
}
RESISTANCE_PENALTY = {'none': 0, 'low': 20, 'intermediate': 40, 'high': 60}
EFFECTIVE_SCORE = 70


def assess_resistance(*, resistance_level: str = 'none', mutations: Iterable[str] = (),
                      previous_failed_regimens: Iterable[str] = ()) -> dict:
    level = str(resistance_level or 'none').strip().lower()
    if level not in RESISTANCE_PENALTY:
        raise ValidationError(f'resistanceLevel must be one of: {", ".join(RESISTANCE_PENALTY)}')
    resistant: list[str] = []
    # every mutation hit costs 15 per mapped drug, even when a drug repeats
    hits = 0
    for mutation in mutations or ():
        for drug in MUTATION_RESISTANCE.get(str(mutation).strip().upper(), []):
            hits += 1
            if drug not in resistant:
                resistant.append(drug)
    failed = [r for r in (previous_failed_regimens or ()) if r]

    score = 100 - RESISTANCE_PENALTY[level] - 15 * hits - 10 * len(failed)
    effective = score >= EFFECTIVE_SCORE
    recommendations: list[str] = []
    if not effective:
        recommendations += [
            'Consider second-line regimen with integrase inhibitor',
            'Evaluate newer antiretroviral agents',
        ]
    return {
        'isEffective': effective,
        'effectivenessScore': max(0, score),
        'resistantMedications': resistant,
        'recommendations': recommendations,
        'requiresGenotyping': level != 'none' or bool(failed),
    }


# ---------------------------------------------------------------------
# Emergency protocols (PEP / PrEP)
# ---------------------------------------------------------------------
PEP_WINDOW_HOURS = 72
PEP_OPTIMAL_HOURS = 24


def assess_emergency_protocol(*, treatment_type: str, hours_since_exposure: Optional[float] = None) -> dict:
    kind = str(treatment_type or 'standard').strip().lower()
    if kind not in ('pep', 'prep', 'standard'):
        raise ValidationError('treatmentType must be one of: pep, prep, standard')

    result = {
        'isValidTiming': True,
        'timeWindow': 'Standard treatment timing',
        'urgencyLevel': 'routine',
        'recommendations': [],
        'followUpRequirements': [],
    }
    if kind == 'pep':
        if hours_since_exposure is None:
            raise ValidationError('hoursSinceExposure is required for PEP')
        try:
            hours = float(hours_since_exposure)
        except (TypeError, ValueError):
            raise ValidationError('hoursSinceExposure must be a number')
        if hours < 0:
            raise ValidationError('hoursSinceExposure must be non-negative')
        if hours > PEP_WINDOW_HOURS:
            result.update(isValidTiming=False, timeWindow='PEP window expired (>72 hours)', urgencyLevel='emergency')
            result['recommendations'].append('PEP may not be effective - consult HIV specialist')
        elif hours > PEP_OPTIMAL_HOURS:
            result.update(timeWindow='Late PEP initiation (24-72 hours)', urgencyLevel='emergency')
            result['recommendations'].append('Start PEP immediately - reduced efficacy expected')
        else:
            result.update(timeWindow='Optimal PEP window (<24 hours)', urgencyLevel='emergency')
            result['recommendations'].append('Start PEP within 2 hours of presentation')
        result['followUpRequirements'] += [
            'HIV testing at baseline, 6 weeks, 3 months, 6 months',
            'Monitor for drug side effects',
        ]
    elif kind == 'prep':
        result['recommendations'] += [
            'Confirm HIV negative status before starting',
            'Assess kidney function (creatinine, eGFR)',
        ]
        result['followUpRequirements'] += [
            'HIV testing every 3 months',
            'Kidney function monitoring every 6 months',
        ]
    else:
        result['recommendations'].append('Follow standard HIV treatment guidelines')
        result['followUpRequirements'].append('Routine clinical follow-up as per protocol')
    return result


# ---------------------------------------------------------------------
# Continuity (reads treatment history)
# ---------------------------------------------------------------------
CONTINUITY_GAP_DAYS = 7


def assess_gap(gap_days: Optional[int]) -> dict:
    if gap_days is None:
        return {
            'isContinuous': True,
            'gapDays': None,
            'riskLevel': 'low',
            'recommendations': ['First treatment for patient - no continuity concerns'],
        }
    if gap_days <= CONTINUITY_GAP_DAYS:
        return {'isContinuous': True, 'gapDays': gap_days, 'riskLevel': 'low', 'recommendations': []}
    if gap_days > 30:
        risk = 'critical'
        recommendations = [
            'Treatment gap >30 days - high risk of viral rebound',
            'Consider resistance testing before restarting',
        ]
    elif gap_days > 14:
        risk = 'high'
        recommendations = ['Treatment gap >14 days - monitor for viral rebound']
    else:
        risk = 'medium'
        recommendations = ['Short treatment gap detected - monitor closely']
    return {'isContinuous': False, 'gapDays': gap_days, 'riskLevel': risk, 'recommendations': recommendations}


def check_continuity(patient_id: int, current_start=None) -> dict:
    """Gap between the previous treatment's end and the current treatment start.

    ``current_start`` defaults to the start of the patient's latest treatment.
    """
    history = list(PatientTreatment.objects.alive().filter(patient_id=patient_id).order_by('start_date', 'id'))
    if not history:
        raise NotFound(f'No treatments found for patient {patient_id}')
    if current_start is None:
        current_start = history[-1].start_date
    previous = [t for t in history if t.start_date < current_start]
    if not previous:
        return dict(assess_gap(None), patientId=patient_id)
    last_end = previous[-1].end_date or timezone.now()
    gap = max(0, math.floor((current_start - last_end).total_seconds() / 86400))
    return dict(assess_gap(gap), patientId=patient_id, previousTreatmentId=previous[-1].id)
