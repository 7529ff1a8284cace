"""
Patient treatment lifecycle.

Creation enforces the single-active-treatment rule per patient under a
row lock on the patient, normalises custom medications and stores the
computed cost. Patients may only read their own treatments.
"""
from __future__ import annotations

import logging
from contextlib import nullcontext
from datetime import datetime, time
from typing import Any, Optional

from django.contrib.auth import get_user_model
from django.db import transaction
from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime
from rest_framework.exceptions import APIException, NotFound, PermissionDenied, ValidationError

from care import repositories
from care.exceptions import Conflict
from care.models import PatientTreatment, TreatmentProtocol
from care.services.audit import log_action
from care.services.medications import (
    calculate_total,
    custom_breakdown,
    normalize_custom_medications,
    protocol_breakdown,
)

User = get_user_model()
logger = logging.getLogger(__name__)

BULK_BATCH_SIZE = 10
STATUS_ACTIVE = 'ACTIVE'
STATUS_COMPLETED = 'COMPLETED'
STATUS_DISCONTINUED = 'DISCONTINUED'


# ---------------------------------------------------------------------
# Formatting & parsing helpers
# ---------------------------------------------------------------------
def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def format_treatment(t: PatientTreatment) -> dict:
    doctor_user = t.doctor.user if t.doctor_id else None
    return {
        'id': t.id,
        'patientId': t.patient_id,
        'patientName': t.patient.get_full_name() or t.patient.username,
        'doctorId': t.doctor_id,
        'doctorName': (doctor_user.get_full_name() or doctor_user.username) if doctor_user else None,
        'protocolId': t.protocol_id,
        'protocolName': t.protocol.name if t.protocol_id else None,
        'customMedications': t.custom_medications or [],
        'notes': t.notes,
        'startDate': _iso(t.start_date),
        'endDate': _iso(t.end_date),
        'total': float(t.total),
        'status': t.status,
        'isActive': t.is_active,
        'createdBy': t.created_by_id,
        'createdAt': _iso(t.created_at),
        'updatedAt': _iso(t.updated_at),
        'deletedAt': _iso(t.deleted_at),
    }


def error_message(exc: Exception) -> str:
    if isinstance(exc, APIException):
        detail = exc.detail
        if isinstance(detail, list) and detail:
            return str(detail[0])
        if isinstance(detail, dict):
            return '; '.join(f'{k}: {v[0] if isinstance(v, list) and v else v}' for k, v in detail.items())
        return str(detail)
    return str(exc)


def parse_id(value, name: str, *, required: bool = True) -> Optional[int]:
    if value in (None, ''):
        if required:
            raise ValidationError(f'Invalid or missing numeric field: {name}')
        return None
    if isinstance(value, bool):
        raise ValidationError(f'Invalid or missing numeric field: {name}')
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        raise ValidationError(f'Invalid or missing numeric field: {name}')
    if number <= 0:
        raise ValidationError(f'Invalid or missing numeric field: {name}')
    return number


def parse_datetime_value(value, name: str) -> Optional[datetime]:
    """Parse an ISO datetime or date; naive values use the current time zone."""
    if value in (None, ''):
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        try:
            parsed = parse_datetime(text)
            if parsed is None:
                day = parse_date(text)
                parsed = datetime.combine(day, time.min) if day else None
        except ValueError:
            parsed = None
        if parsed is None:
            raise ValidationError(f'Invalid {name} format')
    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed)
    return parsed


def _flag(value, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in {'1', 'true', 'yes'}
    return bool(value)


def _protocol_or_none(protocol_id: Optional[int]) -> Optional[TreatmentProtocol]:
    if protocol_id is None:
        return None
    protocol = repositories.protocols().filter(pk=protocol_id).first()
    if protocol is None:
        raise ValidationError(f'Protocol with ID {protocol_id} not found')
    return protocol


# ---------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------
def can_view(user, treatment: PatientTreatment) -> bool:
    if getattr(user, 'role', None) == User.ROLE_PATIENT:
        return treatment.patient_id == user.id
    return True


def get_treatment(pk: int, *, user=None, include_deleted: bool = False) -> PatientTreatment:
    treatment = repositories.treatments(include_deleted=include_deleted).filter(pk=pk).first()
    if treatment is None:
        raise NotFound(f'Patient treatment with ID {pk} not found')
    if user is not None and not can_view(user, treatment):
        raise PermissionDenied('You can only view your own treatments')
    return treatment


def active_treatments_for(patient_id: int):
    return repositories.treatments().active().filter(patient_id=patient_id).order_by('-start_date')


# ---------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------
def validate_treatment_input(data: dict) -> dict:
    """Parse and check a create payload; returns the resolved values.

    Raises ``ValidationError`` for malformed input or unknown references.
    """
    patient_id = parse_id(data.get('patientId'), 'patientId')
    doctor_id = parse_id(data.get('doctorId'), 'doctorId')
    protocol_id = parse_id(data.get('protocolId'), 'protocolId', required=False)

    start_date = parse_datetime_value(data.get('startDate'), 'startDate') or timezone.now()
    end_date = parse_datetime_value(data.get('endDate'), 'endDate')
    if end_date is not None and end_date < start_date:
        raise ValidationError('endDate must not be before startDate')

    patient = User.objects.filter(pk=patient_id).first()
    if patient is None:
        raise ValidationError(f'Patient with ID {patient_id} not found')
    doctor = repositories.doctors().filter(pk=doctor_id).first()
    if doctor is None:
        raise ValidationError(f'Doctor with ID {doctor_id} not found')
    protocol = _protocol_or_none(protocol_id)

    custom_meds = normalize_custom_medications(data.get('customMedications'))
    if custom_meds and protocol is None:
        raise ValidationError(
            'Custom medications require a valid protocolId. '
            'Personalized treatments must be based on an existing protocol.'
        )

    notes = data.get('notes') or ''
    if not isinstance(notes, str):
        raise ValidationError('notes must be a string')

    return {
        'patient': patient,
        'doctor': doctor,
        'protocol': protocol,
        'start_date': start_date,
        'end_date': end_date,
        'custom_medications': custom_meds or None,
        'notes': notes.strip(),
        'status': _flag(data.get('status')),
    }


def _conflict_for(patient_id: int, active: list[PatientTreatment]) -> Conflict:
    protocols = ', '.join(str(t.protocol_id) for t in active if t.protocol_id) or 'none'
    return Conflict(
        f'Patient {patient_id} already has {len(active)} active treatment(s) with protocol(s): {protocols}. '
        'Only 1 active protocol per patient is allowed.'
    )


def _end_active(patient_id: int, now=None) -> int:
    now = now or timezone.now()
    return PatientTreatment.objects.active(now).filter(patient_id=patient_id).update(end_date=now)


def create_treatment(data: dict, *, created_by=None, auto_end_existing: Optional[bool] = None) -> PatientTreatment:
    """Create one treatment, enforcing the single-active rule for the patient."""
    values = validate_treatment_input(data)
    if auto_end_existing is None:
        auto_end_existing = _flag(data.get('autoEndExisting'))
    patient = values['patient']

    with transaction.atomic():
        # serialise concurrent creates for the same patient
        User.objects.select_for_update().filter(pk=patient.pk).first()
        active = list(PatientTreatment.objects.active().filter(patient_id=patient.pk))
        ended = 0
        if active:
            if not auto_end_existing:
                raise _conflict_for(patient.pk, active)
            ended = _end_active(patient.pk)

        total = calculate_total(values['protocol'], values['custom_medications'])
        treatment = PatientTreatment.objects.create(
            patient=patient,
            doctor=values['doctor'],
            protocol=values['protocol'],
            custom_medications=values['custom_medications'],
            notes=values['notes'],
            start_date=values['start_date'],
            end_date=values['end_date'],
            total=total,
            status=values['status'],
            created_by=created_by if getattr(created_by, 'pk', None) else None,
        )
        log_action(user=created_by, action='treatment_create', object_type='patient_treatment',
                   object_id=treatment.id, detail={'patientId': patient.pk, 'endedExisting': ended,
                                                   'total': str(total)})
    logger.info('Created treatment %s for patient %s (ended %s active)', treatment.id, patient.pk, ended)
    return get_treatment(treatment.id)


# ---------------------------------------------------------------------
# Update / status / delete
# ---------------------------------------------------------------------
def update_treatment(pk: int, data: dict, *, user=None) -> PatientTreatment:
    treatment = get_treatment(pk)
    was_active = treatment.is_active
    fields: list[str] = []
    recalc = False

    if 'notes' in data:
        treatment.notes = (data.get('notes') or '').strip()
        fields.append('notes')
    if 'startDate' in data:
        start = parse_datetime_value(data.get('startDate'), 'startDate')
        if start is None:
            raise ValidationError('startDate cannot be empty')
        treatment.start_date = start
        fields.append('start_date')
    if 'endDate' in data:
        treatment.end_date = parse_datetime_value(data.get('endDate'), 'endDate')
        fields.append('end_date')
    if 'protocolId' in data:
        protocol_id = parse_id(data.get('protocolId'), 'protocolId', required=False)
        treatment.protocol = _protocol_or_none(protocol_id)
        fields.append('protocol')
        recalc = True
    if 'customMedications' in data:
        treatment.custom_medications = normalize_custom_medications(data.get('customMedications')) or None
        fields.append('custom_medications')
        recalc = True
    if 'status' in data:
        treatment.status = _flag(data.get('status'))
        fields.append('status')

    if treatment.end_date is not None and treatment.end_date < treatment.start_date:
        raise ValidationError('endDate must not be before startDate')
    if treatment.custom_medications and treatment.protocol_id is None:
        raise ValidationError(
            'Custom medications require a valid protocolId. '
            'Personalized treatments must be based on an existing protocol.'
        )
    if recalc:
        protocol = _protocol_or_none(treatment.protocol_id)
        treatment.total = calculate_total(protocol, treatment.custom_medications)
        fields.append('total')
    if not fields:
        return treatment

    with transaction.atomic():
        if treatment.is_active and not was_active:
            others = list(PatientTreatment.objects.active().filter(patient_id=treatment.patient_id).exclude(pk=pk))
            if others:
                raise _conflict_for(treatment.patient_id, others)
        treatment.save(update_fields=fields + ['updated_at'])
        log_action(user=user, action='treatment_update', object_type='patient_treatment', object_id=pk,
                   detail={'fields': fields})
    return get_treatment(pk)


def change_status(pk: int, status: str, *, user=None) -> PatientTreatment:
    """COMPLETED/DISCONTINUED end the treatment now; ACTIVE reopens it."""
    treatment = get_treatment(pk)
    now = timezone.now()
    if status in (STATUS_COMPLETED, STATUS_DISCONTINUED):
        if treatment.is_active:
            treatment.end_date = now
    elif status == STATUS_ACTIVE:
        if not treatment.is_active:
            others = list(PatientTreatment.objects.active().filter(patient_id=treatment.patient_id).exclude(pk=pk))
            if others:
                raise _conflict_for(treatment.patient_id, others)
            treatment.end_date = None
    else:
        raise ValidationError(f'Unknown status: {status}')
    treatment.save(update_fields=['end_date', 'updated_at'])
    log_action(user=user, action='treatment_status', object_type='patient_treatment', object_id=pk,
               detail={'status': status})
    return get_treatment(pk)


def soft_delete(pk: int, *, user=None) -> None:
    treatment = get_treatment(pk)
    treatment.deleted_at = timezone.now()
    treatment.save(update_fields=['deleted_at', 'updated_at'])
    log_action(user=user, action='treatment_delete', object_type='patient_treatment', object_id=pk)


def restore(pk: int, *, user=None) -> PatientTreatment:
    treatment = get_treatment(pk, include_deleted=True)
    if treatment.deleted_at is None:
        raise ValidationError(f'Patient treatment with ID {pk} is not deleted')
    with transaction.atomic():
        if treatment.end_date is None or treatment.end_date > timezone.now():
            active = list(PatientTreatment.objects.active().filter(patient_id=treatment.patient_id))
            if active:
                raise _conflict_for(treatment.patient_id, active)
        treatment.deleted_at = None
        treatment.save(update_fields=['deleted_at', 'updated_at'])
        log_action(user=user, action='treatment_restore', object_type='patient_treatment', object_id=pk)
    return get_treatment(pk)


# ---------------------------------------------------------------------
# Single-protocol rule helpers
# ---------------------------------------------------------------------
def end_active_treatments(patient_id: int, *, user=None) -> dict:
    if not User.objects.filter(pk=patient_id).exists():
        raise NotFound(f'Patient with ID {patient_id} not found')
    now = timezone.now()
    with transaction.atomic():
        ids = list(PatientTreatment.objects.active(now).filter(patient_id=patient_id).values_list('id', flat=True))
        ended = _end_active(patient_id, now)
        if ended:
            log_action(user=user, action='treatment_end_active', object_type='user', object_id=patient_id,
                       detail={'treatmentIds': ids})
    return {
        'patientId': patient_id,
        'endedCount': ended,
        'endedTreatmentIds': ids,
        'endDate': now.isoformat(),
        'message': f'Ended {ended} active treatment(s) for patient {patient_id}',
    }


def validate_single_protocol_rule(patient_id: int) -> dict:
    active = list(active_treatments_for(patient_id))
    protocols = sorted({t.protocol_id for t in active if t.protocol_id})
    valid = len(active) <= 1
    if not active:
        message = 'Patient has no active treatment'
    elif valid:
        message = 'Patient complies with the single active protocol rule'
    else:
        message = (f'Patient {patient_id} has {len(active)} active treatments. '
                   'Only 1 active protocol per patient is allowed.')
    return {
        'patientId': patient_id,
        'isValid': valid,
        'activeTreatmentCount': len(active),
        'activeTreatments': [format_treatment(t) for t in active],
        'protocols': protocols,
        'message': message,
    }


# ---------------------------------------------------------------------
# Cost preview
# ---------------------------------------------------------------------
def preview_cost(data: dict) -> dict:
    """Compute the cost a create request would store, without saving."""
    warnings: list[str] = []
    protocol = None
    protocol_id = parse_id(data.get('protocolId'), 'protocolId', required=False)
    if protocol_id is not None:
        protocol = repositories.protocols().filter(pk=protocol_id).first()
        if protocol is None:
            warnings.append(f'Protocol with ID {protocol_id} not found')

    raw = data.get('customMedications')
    custom_meds = normalize_custom_medications(raw)
    if isinstance(raw, list) and len(custom_meds) < len(raw):
        warnings.append(f'{len(raw) - len(custom_meds)} custom medication(s) were invalid and ignored')
    if custom_meds and protocol is None:
        warnings.append('Custom medications require a valid protocolId')
    for med in custom_meds:
        if 'price' not in med:
            warnings.append(f"No price for custom medication '{med['medicineName']}'; counted as 0")

    start = parse_datetime_value(data.get('startDate'), 'startDate') or timezone.now()
    end = parse_datetime_value(data.get('endDate'), 'endDate')
    duration_days = None
    if end is not None:
        if end < start:
            warnings.append('endDate is before startDate')
        else:
            duration_days = (end - start).days

    protocol_lines = protocol_breakdown(protocol)
    custom_lines = custom_breakdown(custom_meds)
    total = calculate_total(protocol, custom_meds)
    is_valid = not (protocol_id is not None and protocol is None) and not (custom_meds and protocol is None) \
        and not (end is not None and end < start)
    return {
        'isValid': is_valid,
        'calculatedTotal': float(total),
        'breakdown': {
            'protocolCost': round(sum(line['cost'] for line in protocol_lines), 2),
            'customMedicationCost': round(sum(line['cost'] for line in custom_lines), 2),
            'protocolMedicines': protocol_lines,
            'customMedications': custom_lines,
            'durationDays': duration_days,
        },
        'warnings': warnings,
    }


# ---------------------------------------------------------------------
# Bulk create
# ---------------------------------------------------------------------
def _create_items(items, options, created_by, created, errors) -> None:
    for index, item in enumerate(items):
        try:
            with transaction.atomic():
                created.append(create_treatment(item, created_by=created_by, auto_end_existing=False))
        except APIException as exc:
            if not options['continueOnError']:
                raise
            errors.append({'index': index, 'patientId': item.get('patientId'), 'message': error_message(exc)})


def bulk_create(items: Any, *, created_by=None, continue_on_error: bool = False,
                validate_before_create: bool = True) -> dict:
    """Create several treatments for distinct patients.

    Without ``continue_on_error`` the whole request is one transaction;
    otherwise each item commits on its own and failures are collected.
    """
    if not isinstance(items, list) or not items:
        raise ValidationError('items must be a non-empty array')
    if not all(isinstance(item, dict) for item in items):
        raise ValidationError('Each item must be an object')

    positions: dict[str, list[int]] = {}
    for index, item in enumerate(items):
        positions.setdefault(str(item.get('patientId')), []).append(index)
    for patient_id, idx in positions.items():
        if len(idx) > 1:
            raise ValidationError(
                f'Patient {patient_id} has {len(idx)} treatments in bulk request '
                f'(items: {", ".join(str(i) for i in idx)}). Only 1 treatment per patient is allowed.'
            )

    options = {'continueOnError': continue_on_error, 'validateBeforeCreate': validate_before_create}
    errors: list[dict] = []
    skip: set[int] = set()
    if validate_before_create:
        for index, item in enumerate(items):
            try:
                values = validate_treatment_input(item)
                active = list(PatientTreatment.objects.active().filter(patient_id=values['patient'].pk))
                if active:
                    raise _conflict_for(values['patient'].pk, active)
            except APIException as exc:
                if not continue_on_error:
                    raise ValidationError(f'Item {index}: {error_message(exc)}')
                errors.append({'index': index, 'patientId': item.get('patientId'), 'message': error_message(exc)})
                skip.add(index)

    created: list[PatientTreatment] = []
    pending = [(i, item) for i, item in enumerate(items) if i not in skip]
    with transaction.atomic() if not continue_on_error else nullcontext():
        for start in range(0, len(pending), BULK_BATCH_SIZE):
            batch = pending[start:start + BULK_BATCH_SIZE]
            batch_errors: list[dict] = []
            _create_items([item for _, item in batch], options, created_by, created, batch_errors)
            for err in batch_errors:
                err['index'] = batch[err['index']][0]
            errors.extend(batch_errors)

    errors.sort(key=lambda e: e['index'])
    logger.info('Bulk treatment create: %s requested, %s created, %s failed', len(items), len(created), len(errors))
    return {
        'created': [format_treatment(t) for t in created],
        'errors': errors,
        'summary': {'requested': len(items), 'created': len(created), 'failed': len(errors)},
    }

