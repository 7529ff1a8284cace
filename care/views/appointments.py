"""
Appointment endpoints.

Patients book and read their own appointments. Clinic staff see every
appointment and are the only ones allowed to edit, delete or change
status.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import IsAuthenticated

from care.permissions import CLINIC_ROLES, IsClinicStaff
from care.serializers.appointment import (
    AppointmentQuerySerializer,
    AppointmentSerializer,
    AppointmentStatusSerializer,
    AppointmentUpdateSerializer,
)
from care.services import appointments
from care.services.pagination import paginate

from .common import created, ok, page


def _is_staff(request) -> bool:
    return getattr(request.user, 'role', None) in CLINIC_ROLES


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def appointment_collection(request):
    """Query params: status, type, dateFrom, dateTo, page, limit."""
    if request.method == 'POST':
        s = AppointmentSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        data = dict(s.validated_data)
        data.setdefault('userId', request.user.id)
        if not _is_staff(request) and data['userId'] != request.user.id:
            raise PermissionDenied('You can only book appointments for yourself')
        return created(appointments.format_appointment(appointments.create_appointment(data, actor=request.user)))

    q = AppointmentQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    qs = appointments.list_appointments(status=vd.get('status'), appointment_type=vd.get('type'),
                                        date_from=vd.get('dateFrom'), date_to=vd.get('dateTo'))
    if not _is_staff(request):
        qs = qs.filter(user_id=request.user.id)
    items, meta = paginate(qs, request.query_params.get('page'), request.query_params.get('limit'), always=True)
    return page(items, meta, appointments.format_appointment)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def appointment_detail(request, pk: int):
    appointment = appointments.get_appointment(pk)
    if request.method == 'GET':
        if not _is_staff(request) and appointment.user_id != request.user.id:
            raise PermissionDenied('You can only view your own appointments')
        return ok(appointments.format_appointment(appointment))
    if not _is_staff(request):
        raise PermissionDenied('Only clinic staff can change appointments')
    if request.method == 'DELETE':
        appointments.delete_appointment(pk, actor=request.user)
        return ok({'id': pk, 'deleted': True})
    s = AppointmentUpdateSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    return ok(appointments.format_appointment(
        appointments.update_appointment(pk, s.validated_data, actor=request.user)))


@api_view(['PATCH'])
@permission_classes([IsAuthenticated, IsClinicStaff])
def appointment_status(request, pk: int):
    s = AppointmentStatusSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    appointment = appointments.update_status(pk, s.validated_data['status'], actor=request.user)
    return ok(appointments.format_appointment(appointment))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def appointments_by_user(request, user_id: int):
    if not _is_staff(request) and request.user.id != user_id:
        raise PermissionDenied('You can only view your own appointments')
    return ok([appointments.format_appointment(a) for a in appointments.appointments_for_user(user_id)])


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsClinicStaff])
def appointments_by_doctor(request, doctor_id: int):
    return ok([appointments.format_appointment(a) for a in appointments.appointments_for_doctor(doctor_id)])
