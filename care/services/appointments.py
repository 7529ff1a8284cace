"""
Appointments between a patient and a doctor.

Online appointments are the ones that can carry meeting records; any
appointment can be paid through an order.
"""
from typing import Optional

from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from care import repositories
from care.models import Appointment, Doctor, User
from care.services.audit import log_action


def format_appointment(a: Appointment) -> dict:
    doctor_user = a.doctor.user if a.doctor_id else None
    return {
        'id': a.id,
        'userId': a.user_id,
        'patientName': a.user.get_full_name() or a.user.username,
        'doctorId': a.doctor_id,
        'doctorName': (doctor_user.get_full_name() or doctor_user.username) if doctor_user else None,
        'appointmentTime': a.appointment_time.isoformat(),
        'type': a.type,
        'status': a.status,
        'notes': a.notes,
        'createdAt': a.created_at.isoformat() if a.created_at else None,
    }


def get_appointment(pk: int) -> Appointment:
    appointment = repositories.appointments().filter(pk=pk).first()
    if appointment is None:
        raise NotFound(f'Appointment with ID {pk} not found')
    return appointment


def _user(user_id: int) -> User:
    user = User.objects.filter(pk=user_id).first()
    if user is None:
        raise ValidationError(f'User with ID {user_id} not found')
    return user


def _doctor(doctor_id: int) -> Doctor:
    doctor = Doctor.objects.filter(pk=doctor_id).first()
    if doctor is None:
        raise ValidationError(f'Doctor with ID {doctor_id} not found')
    return doctor


def _check_time(value) -> None:
    if value < timezone.now():
        raise ValidationError('Appointment time cannot be in the past')


def create_appointment(data: dict, *, actor=None) -> Appointment:
    user = _user(data['userId'])
    doctor = _doctor(data['doctorId'])
    _check_time(data['appointmentTime'])
    appointment = Appointment.objects.create(
        user=user,
        doctor=doctor,
        appointment_time=data['appointmentTime'],
        type=data.get('type') or Appointment.TYPE_OFFLINE,
        notes=data.get('notes') or '',
    )
    log_action(user=actor, action='appointment_create', object_type='appointment', object_id=appointment.id)
    return get_appointment(appointment.id)


def update_appointment(pk: int, data: dict, *, actor=None) -> Appointment:
    appointment = get_appointment(pk)
    if 'userId' in data:
        appointment.user = _user(data['userId'])
    if 'doctorId' in data:
        appointment.doctor = _doctor(data['doctorId'])
    if 'appointmentTime' in data:
        _check_time(data['appointmentTime'])
        appointment.appointment_time = data['appointmentTime']
    if 'type' in data:
        appointment.type = data['type']
    if 'notes' in data:
        appointment.notes = data['notes'] or ''
    appointment.save()
    log_action(user=actor, action='appointment_update', object_type='appointment', object_id=pk)
    return get_appointment(pk)


def update_status(pk: int, status: str, *, actor=None) -> Appointment:
    if status not in dict(Appointment.STATUS_CHOICES):
        raise ValidationError(f'Invalid appointment status: {status}')
    appointment = get_appointment(pk)
    if appointment.status != status:
        previous = appointment.status
        appointment.status = status
        appointment.save(update_fields=['status'])
        log_action(user=actor, action='appointment_status', object_type='appointment', object_id=pk,
                   detail={'from': previous, 'to': status})
    return appointment


def delete_appointment(pk: int, *, actor=None) -> None:
    get_appointment(pk).delete()
    log_action(user=actor, action='appointment_delete', object_type='appointment', object_id=pk)


def list_appointments(*, status: Optional[str] = None, appointment_type: Optional[str] = None,
                      date_from=None, date_to=None):
    qs = repositories.appointments().order_by('-appointment_time', '-id')
    if status:
        qs = qs.filter(status=status)
    if appointment_type:
        qs = qs.filter(type=appointment_type)
    if date_from:
        qs = qs.filter(appointment_time__gte=date_from)
    if date_to:
        qs = qs.filter(appointment_time__lte=date_to)
    return qs


def appointments_for_user(user_id: int):
    _user(user_id)
    return repositories.appointments().filter(user_id=user_id).order_by('-appointment_time', '-id')


def appointments_for_doctor(doctor_id: int):
    _doctor(doctor_id)
    return repositories.appointments().filter(doctor_id=doctor_id).order_by('-appointment_time', '-id')
