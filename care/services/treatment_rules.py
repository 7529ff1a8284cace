"""Detection and repair of patients holding more than one active treatment."""
from __future__ import annotations

import logging
from collections import defaultdict

from django.db import DatabaseError, transaction
from django.utils import timezone

from care import repositories
from care.models import PatientTreatment
from care.services.audit import log_action

logger = logging.getLogger(__name__)


def _active_by_patient(now) -> dict[int, list[PatientTreatment]]:
    grouped: dict[int, list[PatientTreatment]] = defaultdict(list)
    for t in repositories.treatments().active(now).order_by('patient_id', '-start_date', '-id'):
        grouped[t.patient_id].append(t)
    return grouped


def detect_violations(now=None) -> list[dict]:
    now = now or timezone.now()
    violations = []
    for patient_id, items in _active_by_patient(now).items():
        if len(items) <= 1:
            continue
        violations.append({
            'patientId': patient_id,
            'activeTreatmentCount': len(items),
            'treatments': [{
                'id': t.id,
                'protocolId': t.protocol_id,
                'startDate': t.start_date.isoformat(),
                'endDate': t.end_date.isoformat() if t.end_date else None,
            } for t in items],
            'protocols': sorted({t.protocol_id for t in items if t.protocol_id}),
        })
    return violations


def fix_violations(*, dry_run: bool = True, user=None) -> dict:
    """Keep the newest active treatment per patient and end the others.

    Treatments are ranked by start date (newest first). With ``dry_run``
    nothing is written; the returned actions describe what would change.
    """
    now = timezone.now()
    result = {'dryRun': dry_run, 'processedPatients': 0, 'treatmentsEnded': 0, 'errors': [], 'actions': []}
    for patient_id, items in _active_by_patient(now).items():
        if len(items) <= 1:
            continue
        keep, to_end = items[0], items[1:]
        result['processedPatients'] += 1
        for t in to_end:
            result['actions'].append({
                'patientId': patient_id,
                'treatmentId': t.id,
                'action': 'end',
                'keptTreatmentId': keep.id,
                'reason': 'Multiple active treatments; keeping the most recent one',
            })
        if dry_run:
            continue
        try:
            with transaction.atomic():
                ended = PatientTreatment.objects.filter(id__in=[t.id for t in to_end]).update(end_date=now)
                log_action(user=user, action='treatment_fix_violation', object_type='user', object_id=patient_id,
                           detail={'kept': keep.id, 'ended': [t.id for t in to_end]})
            result['treatmentsEnded'] += ended
        except DatabaseError as exc:
            logger.exception('Failed to fix active treatments for patient %s', patient_id)
            result['errors'].append({'patientId': patient_id, 'message': str(exc)})
    if dry_run:
        result['treatmentsEnded'] = len(result['actions'])
    logger.info('Violation fix (dry_run=%s): %s patients, %s treatments', dry_run,
                result['processedPatients'], result['treatmentsEnded'])
    return result
