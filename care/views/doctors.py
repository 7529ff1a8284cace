"""
Doctor profiles and shift schedules.

Doctor lists are cached for ``CACHE_TTL`` seconds; every write moves
the cache to a new key version so stale pages are never served.
"""
from __future__ import annotations

from django.conf import settings
from django.core.cache import cache
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import IsAuthenticated

from care.permissions import IsAdminRole, IsDoctorOrAdmin
from care.serializers.doctor import (
    DateRangeQuerySerializer,
    DayQuerySerializer,
    DoctorCreateSerializer,
    DoctorUpdateSerializer,
    GenerateScheduleSerializer,
    ManualAssignSerializer,
    SwapShiftSerializer,
    TimeOffSerializer,
)
from care.services import doctors, scheduling
from care.services.pagination import paginate
from care.services.scheduling import format_schedule

from .common import created, flag, ok


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def doctor_collection(request):
    """List doctors or, for administrators, create a doctor profile.

    Query params: q (name/username/email contains), specialization,
    availableOnly (1|0), page, limit.
    """
    if request.method == 'POST':
        if not IsAdminRole().has_permission(request, None):
            raise PermissionDenied('Only administrators can create doctors')
        s = DoctorCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        vd = s.validated_data
        doctor = doctors.create_doctor(user_id=vd['userId'], specialization=vd['specialization'],
                                       certifications=vd['certifications'], is_available=vd['isAvailable'],
                                       actor=request.user)
        return created(doctors.format_doctor(doctor))

    params = request.query_params
    q = (params.get('q') or '').strip() or None
    specialization = (params.get('specialization') or '').strip() or None
    available_only = flag(request, 'availableOnly')
    cache_key = doctors.list_cache_key(q=q, specialization=specialization, available_only=available_only,
                                       page=params.get('page'), limit=params.get('limit'))
    cached = cache.get(cache_key)
    if cached:
        return ok(**cached)

    items, meta = paginate(doctors.list_doctors(q=q, specialization=specialization, available_only=available_only),
                           params.get('page'), params.get('limit'))
    payload = {'data': [doctors.format_doctor(d) for d in items]}
    if meta is not None:
        payload['pagination'] = meta
    cache.set(cache_key, payload, settings.CACHE_TTL)
    return ok(**payload)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def doctor_detail(request, pk: int):
    if request.method == 'GET':
        return ok(doctors.format_doctor(doctors.get_doctor(pk)))
    if not IsAdminRole().has_permission(request, None):
        raise PermissionDenied('Only administrators can change doctors')
    if request.method == 'DELETE':
        doctors.delete_doctor(pk, actor=request.user)
        return ok({'id': pk, 'deleted': True})
    s = DoctorUpdateSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    return ok(doctors.format_doctor(doctors.update_doctor(pk, s.validated_data, actor=request.user)))


# ---------------------------------------------------------------------
# Schedules
# ---------------------------------------------------------------------
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def doctor_schedule(request, pk: int):
    """Schedule rows for one doctor; defaults to today .. today + SCHEDULE_LOOKAHEAD_DAYS."""
    doctors.get_doctor(pk)
    q = DateRangeQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    qs = scheduling.schedules_in_range(doctor_id=pk, start=q.validated_data.get('startDate'),
                                       end=q.validated_data.get('endDate'))
    return ok([format_schedule(s) for s in qs])


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def time_off_list(request):
    q = DateRangeQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    qs = scheduling.schedules_in_range(doctor_id=q.validated_data.get('doctorId'),
                                       start=q.validated_data.get('startDate'),
                                       end=q.validated_data.get('endDate'), time_off_only=True)
    return ok([format_schedule(s) for s in qs])


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def doctors_on_date(request):
    q = DayQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    return ok(scheduling.doctors_on_date(q.validated_data['date']))


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def generate_schedule(request):
    s = GenerateScheduleSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    result = scheduling.generate_week(doctors_per_shift=vd.get('doctorsPerShift'), start_date=vd.get('startDate'),
                                      seed=vd.get('seed'), actor=request.user)
    return created(result)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDoctorOrAdmin])
def request_time_off(request, pk: int):
    """A doctor may only take their own slot off; administrators any."""
    doctor = doctors.get_doctor(pk)
    if request.user.role != 'ADMIN' and doctor.user_id != request.user.id:
        raise PermissionDenied('You can only request time off for yourself')
    s = TimeOffSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    row = scheduling.request_time_off(doctor_id=pk, day=s.validated_data['date'], shift=s.validated_data['shift'],
                                      actor=request.user)
    return ok(format_schedule(row))


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def assign_shift(request):
    s = ManualAssignSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    rows = scheduling.assign_manually(day=vd['date'], shift=vd['shift'], doctor_ids=vd['doctorIds'],
                                      doctors_per_shift=vd.get('doctorsPerShift'), actor=request.user)
    return created([format_schedule(r) for r in rows])


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def swap_shifts(request):
    s = SwapShiftSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    first, second = scheduling.swap_shifts(s.validated_data['doctor1'], s.validated_data['doctor2'],
                                           actor=request.user)
    return ok([format_schedule(first), format_schedule(second)])
