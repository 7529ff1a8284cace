from typing import Optional

from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.db import IntegrityError, transaction
from django.db.models import Q
from rest_framework.exceptions import NotFound, ValidationError

from care import repositories
from care.exceptions import Conflict
from care.models import Doctor
from care.services.audit import log_action

User = get_user_model()


def format_doctor(d: Doctor) -> dict:
    return {
        'id': d.id,
        'userId': d.user_id,
        'name': d.user.get_full_name() or d.user.username,
        'email': d.user.email,
        'phoneNumber': d.user.phone_number,
        'specialization': d.specialization,
        'certifications': d.certifications or [],
        'isAvailable': d.is_available,
    }


def get_doctor(pk: int) -> Doctor:
    doctor = repositories.doctors().filter(pk=pk).first()
    if doctor is None:
        raise NotFound(f'Doctor with ID {pk} not found')
    return doctor


def list_doctors(*, q: Optional[str] = None, specialization: Optional[str] = None,
                 available_only: bool = False):
    qs = repositories.doctors().order_by('id')
    if q:
        qs = qs.filter(Q(user__first_name__icontains=q) | Q(user__last_name__icontains=q)
                       | Q(user__username__icontains=q) | Q(user__email__icontains=q))
    if specialization:
        qs = qs.filter(specialization__icontains=specialization)
    if available_only:
        qs = qs.filter(is_available=True)
    return qs


@transaction.atomic
def create_doctor(*, user_id: int, specialization: str = '', certifications=None,
                  is_available: bool = True, actor=None) -> Doctor:
    user = User.objects.filter(pk=user_id).first()
    if user is None:
        raise ValidationError(f'User with ID {user_id} not found')
    if Doctor.objects.filter(user_id=user_id).exists():
        raise Conflict(f'User {user_id} already has a doctor profile')
    try:
        with transaction.atomic():
            doctor = Doctor.objects.create(user=user, specialization=specialization,
                                           certifications=list(certifications or []), is_available=is_available)
    except IntegrityError:
        raise Conflict(f'User {user_id} already has a doctor profile')
    if user.role != User.ROLE_DOCTOR and user.role != User.ROLE_ADMIN:
        user.role = User.ROLE_DOCTOR
        user.save(update_fields=['role'])
    log_action(user=actor, action='doctor_create', object_type='doctor', object_id=doctor.id)
    invalidate_list_cache()
    return get_doctor(doctor.id)


def update_doctor(pk: int, data: dict, *, actor=None) -> Doctor:
    doctor = get_doctor(pk)
    fields = []
    for key, attr in (('specialization', 'specialization'), ('certifications', 'certifications'),
                      ('isAvailable', 'is_available')):
        if key in data:
            setattr(doctor, attr, data[key])
            fields.append(attr)
    if fields:
        doctor.save(update_fields=fields + ['updated_at'])
        log_action(user=actor, action='doctor_update', object_type='doctor', object_id=pk, detail={'fields': fields})
        invalidate_list_cache()
    return doctor


def delete_doctor(pk: int, *, actor=None) -> None:
    doctor = get_doctor(pk)
    if doctor.treatments.exists():
        raise Conflict(f'Doctor {pk} has treatments and cannot be deleted; mark unavailable instead')
    doctor.delete()
    log_action(user=actor, action='doctor_delete', object_type='doctor', object_id=pk)
    invalidate_list_cache()


# ---------------------------------------------------------------------
# List cache
# ---------------------------------------------------------------------
LIST_VERSION_KEY = 'doctors:version'


def list_cache_version() -> int:
    version = cache.get(LIST_VERSION_KEY)
    if version is None:
        version = 1
        cache.set(LIST_VERSION_KEY, version, None)
    return version


def invalidate_list_cache() -> None:
    """Orphan every cached doctor list by moving to a new key version."""
    try:
        cache.incr(LIST_VERSION_KEY)
    except ValueError:
        cache.set(LIST_VERSION_KEY, 2, None)


def list_cache_key(*, q=None, specialization=None, available_only=False, page=None, limit=None) -> str:
    return (f"doctors:v={list_cache_version()}:q={q or ''}:s={specialization or ''}"
            f":a={int(available_only)}:p={page}:l={limit}")
