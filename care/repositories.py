"""
Query shapes for the care models.

Services never build raw querysets for the main entities; they start
from these factories so that every read loads the same relations.
"""
from django.db.models import Prefetch

from care.models import (
    Appointment,
    BlogPost,
    Doctor,
    DoctorSchedule,
    MeetingRecord,
    Order,
    Payment,
    PatientTreatment,
    ProtocolMedicine,
    TreatmentProtocol,
)


def protocol_medicines():
    return ProtocolMedicine.objects.select_related('medicine').order_by('id')


def protocols():
    return TreatmentProtocol.objects.prefetch_related(
        Prefetch('medicines', queryset=protocol_medicines()),
    )


def treatments(include_deleted: bool = False):
    qs = PatientTreatment.objects.select_related(
        'patient', 'doctor__user', 'protocol', 'created_by',
    ).prefetch_related(
        Prefetch('protocol__medicines', queryset=protocol_medicines()),
    )
    return qs if include_deleted else qs.filter(deleted_at__isnull=True)


def doctors():
    return Doctor.objects.select_related('user')


def schedules():
    return DoctorSchedule.objects.select_related('doctor__user')


def appointments():
    return Appointment.objects.select_related('user', 'doctor__user')


def meeting_records():
    return MeetingRecord.objects.select_related('appointment__user', 'appointment__doctor__user', 'recorded_by')


def blog_posts():
    return BlogPost.objects.select_related('author', 'category')


def orders():
    return Order.objects.select_related('user', 'appointment', 'patient_treatment')


def payments():
    return Payment.objects.select_related('order__user')
