from typing import Optional

from django.db.models import Q
from rest_framework.exceptions import NotFound, ValidationError

from care import repositories
from care.models import Appointment, MeetingRecord
from care.services.audit import log_action
from care.services.blogs import clean_text


def format_meeting_record(r: MeetingRecord) -> dict:
    appointment = r.appointment
    return {
        'id': r.id,
        'appointmentId': r.appointment_id,
        'patientId': appointment.user_id,
        'doctorId': appointment.doctor_id,
        'title': r.title,
        'content': r.content,
        'startTime': r.start_time.isoformat(),
        'endTime': r.end_time.isoformat(),
        'recordedById': r.recorded_by_id,
        'recordedByName': (r.recorded_by.get_full_name() or r.recorded_by.username) if r.recorded_by_id else None,
        'createdAt': r.created_at.isoformat() if r.created_at else None,
        'updatedAt': r.updated_at.isoformat() if r.updated_at else None,
    }


def get_record(pk: int) -> MeetingRecord:
    record = repositories.meeting_records().filter(pk=pk).first()
    if record is None:
        raise NotFound(f'Meeting record with ID {pk} not found')
    return record


def _check_times(start, end) -> None:
    if end < start:
        raise ValidationError('endTime must not be before startTime')


def create_record(data: dict, *, recorded_by=None) -> MeetingRecord:
    appointment = Appointment.objects.filter(pk=data['appointmentId']).first()
    if appointment is None:
        raise NotFound(f"Appointment with ID {data['appointmentId']} not found")
    if appointment.type == Appointment.TYPE_OFFLINE:
        raise ValidationError('Appointment is offline')
    _check_times(data['startTime'], data['endTime'])
    record = MeetingRecord.objects.create(
        appointment=appointment,
        title=clean_text(data['title']),
        content=clean_text(data['content']),
        start_time=data['startTime'],
        end_time=data['endTime'],
        recorded_by=recorded_by,
    )
    log_action(user=recorded_by, action='meeting_record_create', object_type='meeting_record', object_id=record.id)
    return get_record(record.id)


def list_records(*, q: Optional[str] = None, recorded_by_id: Optional[int] = None):
    qs = repositories.meeting_records().order_by('-created_at')
    if recorded_by_id:
        qs = qs.filter(recorded_by_id=recorded_by_id)
    if q:
        qs = qs.filter(Q(title__icontains=q) | Q(content__icontains=q))
    return qs


def record_for_appointment(appointment_id: int) -> Optional[MeetingRecord]:
    return repositories.meeting_records().filter(appointment_id=appointment_id).order_by('-created_at').first()


def records_for_patient(patient_id: int):
    return repositories.meeting_records().filter(appointment__user_id=patient_id).order_by('-created_at')


def update_record(pk: int, data: dict, *, actor=None) -> MeetingRecord:
    record = get_record(pk)
    if 'title' in data:
        record.title = clean_text(data['title'])
    if 'content' in data:
        record.content = clean_text(data['content'])
    if 'startTime' in data:
        record.start_time = data['startTime']
    if 'endTime' in data:
        record.end_time = data['endTime']
    _check_times(record.start_time, record.end_time)
    record.save()
    log_action(user=actor, action='meeting_record_update', object_type='meeting_record', object_id=pk)
    return get_record(pk)


def delete_record(pk: int, *, actor=None) -> None:
    get_record(pk).delete()
    log_action(user=actor, action='meeting_record_delete', object_type='meeting_record', object_id=pk)
