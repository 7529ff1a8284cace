"""
Database models for the clinic backend.

The schema covers users and doctors, weekly doctor schedules, the
medicine catalogue and treatment protocols, patient treatments with
optional custom medications, appointments and their meeting records,
blog content, and the order/payment records fed by the payment
gateway webhook.
"""
from __future__ import annotations

from django.contrib.auth.models import AbstractUser
from django.db import models
from django.db.models import Q
from django.utils import timezone


class User(AbstractUser):
    """Authenticated account with a single clinic role."""
    ROLE_ADMIN = 'ADMIN'
    ROLE_DOCTOR = 'DOCTOR'
    ROLE_STAFF = 'STAFF'
    ROLE_PATIENT = 'PATIENT'
    ROLE_CHOICES = [
        (ROLE_ADMIN, 'Administrator'),
        (ROLE_DOCTOR, 'Doctor'),
        (ROLE_STAFF, 'Staff'),
        (ROLE_PATIENT, 'Patient'),
    ]
    role = models.CharField(max_length=10, choices=ROLE_CHOICES, default=ROLE_PATIENT, db_index=True)
    phone_number = models.CharField(max_length=32, blank=True)
    avatar = models.URLField(max_length=500, blank=True)

    def __str__(self) -> str:
        return f"{self.username} ({self.role})"


class Doctor(models.Model):
    """Clinical profile attached to a user with the doctor role."""
    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='doctor')
    specialization = models.CharField(max_length=255, blank=True)
    certifications = models.JSONField(default=list, blank=True)
    # unavailable doctors are skipped by weekly schedule generation
    is_available = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"Dr. {self.user.get_full_name() or self.user.username}"


class DoctorSchedule(models.Model):
    """One doctor working one shift on one date."""
    SHIFT_MORNING = 'MORNING'
    SHIFT_AFTERNOON = 'AFTERNOON'
    SHIFT_CHOICES = [
        (SHIFT_MORNING, 'Morning'),
        (SHIFT_AFTERNOON, 'Afternoon'),
    ]
    doctor = models.ForeignKey(Doctor, on_delete=models.CASCADE, related_name='schedules')
    date = models.DateField(db_index=True)
    # 0 = Monday ... 6 = Sunday
    day_of_week = models.PositiveSmallIntegerField()
    shift = models.CharField(max_length=10, choices=SHIFT_CHOICES)
    is_off = models.BooleanField(default=False)
    swapped_with = models.ForeignKey('self', null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['date', 'shift', 'doctor_id']
        constraints = [
            models.UniqueConstraint(fields=['doctor', 'date', 'shift'], name='uniq_doctor_date_shift'),
        ]

    def __str__(self) -> str:
        return f"{self.doctor_id}@{self.date}:{self.shift}"


class Medicine(models.Model):
    name = models.CharField(max_length=255, db_index=True)
    description = models.TextField(blank=True)
    unit = models.CharField(max_length=50, blank=True)
    dose = models.CharField(max_length=100, blank=True)
    price = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']

    def __str__(self) -> str:
        return self.name


class DurationUnit(models.TextChoices):
    DAY = 'DAY', 'Day'
    WEEK = 'WEEK', 'Week'
    MONTH = 'MONTH', 'Month'
    YEAR = 'YEAR', 'Year'


class MedSchedule(models.TextChoices):
    MORNING = 'MORNING', 'Morning'
    AFTERNOON = 'AFTERNOON', 'Afternoon'
    NIGHT = 'NIGHT', 'Night'


class TreatmentProtocol(models.Model):
    """A named standard regimen built from dosed medicines."""
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    target_disease = models.CharField(max_length=255, blank=True, db_index=True)
    created_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    updated_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self) -> str:
        return self.name


class ProtocolMedicine(models.Model):
    protocol = models.ForeignKey(TreatmentProtocol, on_delete=models.CASCADE, related_name='medicines')
    medicine = models.ForeignKey(Medicine, on_delete=models.PROTECT, related_name='protocol_entries')
    dosage = models.CharField(max_length=100)
    duration_value = models.PositiveIntegerField(default=1)
    duration_unit = models.CharField(max_length=10, choices=DurationUnit.choices, default=DurationUnit.DAY)
    schedule = models.CharField(max_length=10, choices=MedSchedule.choices, blank=True)
    notes = models.TextField(blank=True)

    class Meta:
        ordering = ['id']
        constraints = [
            models.UniqueConstraint(fields=['protocol', 'medicine'], name='uniq_protocol_medicine'),
        ]


class PatientTreatmentQuerySet(models.QuerySet):
    def alive(self):
        return self.filter(deleted_at__isnull=True)

    def active(self, now=None):
        """Not deleted, and either open-ended or ending in the future."""
        now = now or timezone.now()
        return self.alive().filter(Q(end_date__isnull=True) | Q(end_date__gt=now))


class PatientTreatment(models.Model):
    """A patient's course of treatment under a doctor.

    At most one treatment per patient may be active at a time. ``total`` is
    derived from the protocol medicines plus ``custom_medications`` and
    ``status`` flips to True once the linked order is paid.
    """
    patient = models.ForeignKey(User, on_delete=models.CASCADE, related_name='treatments')
    doctor = models.ForeignKey(Doctor, on_delete=models.PROTECT, related_name='treatments')
    protocol = models.ForeignKey(TreatmentProtocol, null=True, blank=True, on_delete=models.SET_NULL, related_name='treatments')
    custom_medications = models.JSONField(null=True, blank=True)
    notes = models.TextField(blank=True)
    start_date = models.DateTimeField(db_index=True)
    end_date = models.DateTimeField(null=True, blank=True, db_index=True)
    total = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    status = models.BooleanField(default=False)
    created_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    deleted_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = PatientTreatmentQuerySet.as_manager()

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['patient', 'end_date'], name='treatment_patient_end_idx'),
        ]

    @property
    def is_active(self) -> bool:
        return self.deleted_at is None and (self.end_date is None or self.end_date > timezone.now())

    def __str__(self) -> str:
        return f"Treatment #{self.pk} for {self.patient_id}"


class Appointment(models.Model):
    TYPE_ONLINE = 'ONLINE'
    TYPE_OFFLINE = 'OFFLINE'
    TYPE_CHOICES = [(TYPE_ONLINE, 'Online'), (TYPE_OFFLINE, 'Offline')]
    STATUS_PENDING = 'PENDING'
    STATUS_PAID = 'PAID'
    STATUS_COMPLETED = 'COMPLETED'
    STATUS_CANCELLED = 'CANCELLED'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_PAID, 'Paid'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='appointments')
    doctor = models.ForeignKey(Doctor, null=True, blank=True, on_delete=models.SET_NULL, related_name='appointments')
    appointment_time = models.DateTimeField()
    type = models.CharField(max_length=10, choices=TYPE_CHOICES, default=TYPE_OFFLINE)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_PENDING)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-appointment_time']


class MeetingRecord(models.Model):
    """Minutes of an online appointment."""
    appointment = models.ForeignKey(Appointment, on_delete=models.CASCADE, related_name='meeting_records')
    title = models.CharField(max_length=500)
    content = models.TextField()
    start_time = models.DateTimeField()
    end_time = models.DateTimeField()
    recorded_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='meeting_records')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']


class CategoryBlog(models.Model):
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    is_published = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['title']

    def __str__(self) -> str:
        return self.title


class BlogPost(models.Model):
    title = models.CharField(max_length=255)
    slug = models.SlugField(max_length=280, unique=True)
    content = models.TextField()
    image_url = models.URLField(max_length=500, blank=True)
    author = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='blog_posts')
    category = models.ForeignKey(CategoryBlog, null=True, blank=True, on_delete=models.SET_NULL, related_name='posts')
    is_published = models.BooleanField(default=False, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self) -> str:
        return self.title


class Order(models.Model):
    STATUS_PENDING = 'PENDING'
    STATUS_PAID = 'PAID'
    STATUS_CANCELLED = 'CANCELLED'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_PAID, 'Paid'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='orders')
    appointment = models.ForeignKey(Appointment, null=True, blank=True, on_delete=models.SET_NULL, related_name='orders')
    patient_treatment = models.ForeignKey(PatientTreatment, null=True, blank=True, on_delete=models.SET_NULL, related_name='orders')
    order_code = models.CharField(max_length=32, unique=True)
    total_amount = models.DecimalField(max_digits=14, decimal_places=2)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_PENDING)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']


class Payment(models.Model):
    STATUS_PENDING = 'PENDING'
    STATUS_SUCCESS = 'SUCCESS'
    STATUS_FAILED = 'FAILED'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_SUCCESS, 'Success'),
        (STATUS_FAILED, 'Failed'),
    ]
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='payments')
    amount = models.DecimalField(max_digits=14, decimal_places=2)
    transaction_code = models.CharField(max_length=32, unique=True)
    method = models.CharField(max_length=20, default='BANK_TRANSFER')
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)
    payment_url = models.URLField(max_length=1000, blank=True)
    gateway_response = models.JSONField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']


class PaymentTransaction(models.Model):
    """Raw record of every webhook notification received from the gateway."""
    gateway = models.CharField(max_length=100, blank=True)
    transaction_date = models.DateTimeField(null=True, blank=True)
    account_number = models.CharField(max_length=100, blank=True)
    sub_account = models.CharField(max_length=250, blank=True)
    amount_in = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    amount_out = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    accumulated = models.DecimalField(max_digits=16, decimal_places=2, default=0)
    code = models.CharField(max_length=250, blank=True)
    transaction_content = models.TextField(blank=True)
    reference_number = models.CharField(max_length=255, blank=True)
    body = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']


class AuditEvent(models.Model):
    user = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='audit_events')
    action = models.CharField(max_length=64, db_index=True)
    object_type = models.CharField(max_length=64, blank=True, null=True)
    object_id = models.BigIntegerField(blank=True, null=True)
    detail = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ['-created_at']
