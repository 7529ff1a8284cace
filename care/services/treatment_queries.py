from __future__ import annotations

from typing import Optional

from django.db.models import Q
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from care import repositories
from care.services.pagination import paginate
from care.services.treatments import parse_datetime_value, parse_id

SORT_FIELDS = {
    'startDate': 'start_date',
    'endDate': 'end_date',
    'createdAt': 'created_at',
    'total': 'total',
}


def apply_date_range(qs, start=None, end=None):
    """Filter by treatment period.

    Both bounds select treatments overlapping the window (open-ended
    treatments count as still running); a single bound filters on the
    matching edge only.
    """
    if start and end:
        if end < start:
            raise ValidationError('endDate must not be before startDate')
        return qs.filter(start_date__lte=end).filter(Q(end_date__gte=start) | Q(end_date__isnull=True))
    if start:
        return qs.filter(start_date__gte=start)
    if end:
        return qs.filter(end_date__lte=end)
    return qs


def _ordering(sort_by: Optional[str], sort_order: Optional[str]) -> str:
    field = SORT_FIELDS.get(sort_by or 'createdAt')
    if field is None:
        raise ValidationError(f'Invalid sortBy: {sort_by}. Allowed: {", ".join(SORT_FIELDS)}')
    order = (sort_order or 'desc').lower()
    if order not in ('asc', 'desc'):
        raise ValidationError('sortOrder must be asc or desc')
    return field if order == 'asc' else f'-{field}'


def _dates(params):
    return (parse_datetime_value(params.get('startDate'), 'startDate'),
            parse_datetime_value(params.get('endDate'), 'endDate'))


def list_treatments(params) -> tuple[list, Optional[dict]]:
    qs = repositories.treatments()
    qs = apply_date_range(qs, *_dates(params))
    return paginate(qs.order_by('-created_at'), params.get('page'), params.get('limit'))


def treatments_by_patient(patient_id, params) -> tuple[list, Optional[dict]]:
    patient_id = parse_id(patient_id, 'patientId')
    qs = repositories.treatments().filter(patient_id=patient_id)
    include_completed = str(params.get('includeCompleted', 'true')).lower() not in ('0', 'false', 'no')
    if not include_completed:
        qs = qs.active()
    qs = apply_date_range(qs, *_dates(params))
    qs = qs.order_by(_ordering(params.get('sortBy'), params.get('sortOrder')), '-id')
    return paginate(qs, params.get('page'), params.get('limit'))


def treatments_by_doctor(doctor_id, params) -> tuple[list, Optional[dict]]:
    doctor_id = parse_id(doctor_id, 'doctorId')
    qs = repositories.treatments().filter(doctor_id=doctor_id)
    qs = apply_date_range(qs, *_dates(params))
    qs = qs.order_by(_ordering(params.get('sortBy'), params.get('sortOrder')), '-id')
    return paginate(qs, params.get('page'), params.get('limit'))


def search_treatments(query: str, params) -> tuple[list, Optional[dict]]:
    query = (query or '').strip()
    if not query:
        raise ValidationError('Search query is required')
    cond = (
        Q(notes__icontains=query)
        | Q(patient__first_name__icontains=query)
        | Q(patient__last_name__icontains=query)
        | Q(patient__username__icontains=query)
        | Q(doctor__user__first_name__icontains=query)
        | Q(doctor__user__last_name__icontains=query)
        | Q(doctor__user__username__icontains=query)
    )
    qs = repositories.treatments().filter(cond).distinct().order_by('-created_at')
    return paginate(qs, params.get('page'), params.get('limit'), always=True)


def active_treatments(params) -> tuple[list, Optional[dict]]:
    qs = repositories.treatments().active(timezone.now())
    patient_id = parse_id(params.get('patientId'), 'patientId', required=False)
    if patient_id:
        qs = qs.filter(patient_id=patient_id)
    return paginate(qs.order_by('-start_date'), params.get('page'), params.get('limit'))


def treatments_with_custom_medications(params) -> tuple[list, Optional[dict]]:
    qs = repositories.treatments().filter(custom_medications__isnull=False).order_by('-created_at')
    return paginate(qs, params.get('page'), params.get('limit'))
