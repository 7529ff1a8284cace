"""
Django admin registrations for the care models.

Appointments have no API of their own; they are managed here.
"""
from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from .models import (
    Appointment,
    AuditEvent,
    BlogPost,
    CategoryBlog,
    Doctor,
    DoctorSchedule,
    MeetingRecord,
    Medicine,
    Order,
    PatientTreatment,
    Payment,
    PaymentTransaction,
    ProtocolMedicine,
    TreatmentProtocol,
    User,
)


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = ('username', 'email', 'role', 'is_staff', 'is_superuser')
    list_filter = ('role', 'is_staff')
    fieldsets = BaseUserAdmin.fieldsets + (('Clinic', {'fields': ('role', 'phone_number', 'avatar')}),)


@admin.register(Doctor)
class DoctorAdmin(admin.ModelAdmin):
    list_display = ('id', 'user', 'specialization', 'is_available')
    list_filter = ('is_available',)
    search_fields = ('user__username', 'user__first_name', 'user__last_name', 'specialization')


@admin.register(DoctorSchedule)
class DoctorScheduleAdmin(admin.ModelAdmin):
    list_display = ('doctor', 'date', 'shift', 'is_off')
    list_filter = ('shift', 'is_off')
    date_hierarchy = 'date'


@admin.register(Medicine)
class MedicineAdmin(admin.ModelAdmin):
    list_display = ('name', 'unit', 'dose', 'price')
    search_fields = ('name',)


class ProtocolMedicineInline(admin.TabularInline):
    model = ProtocolMedicine
    extra = 0


@admin.register(TreatmentProtocol)
class TreatmentProtocolAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'target_disease', 'created_at')
    search_fields = ('name', 'target_disease')
    inlines = [ProtocolMedicineInline]


@admin.register(PatientTreatment)
class PatientTreatmentAdmin(admin.ModelAdmin):
    list_display = ('id', 'patient', 'doctor', 'protocol', 'start_date', 'end_date', 'total', 'status', 'deleted_at')
    list_filter = ('status',)
    search_fields = ('patient__username', 'notes')


@admin.register(Appointment)
class AppointmentAdmin(admin.ModelAdmin):
    list_display = ('id', 'user', 'doctor', 'appointment_time', 'type', 'status')
    list_filter = ('type', 'status')


@admin.register(MeetingRecord)
class MeetingRecordAdmin(admin.ModelAdmin):
    list_display = ('id', 'appointment', 'title', 'start_time', 'recorded_by')


@admin.register(CategoryBlog)
class CategoryBlogAdmin(admin.ModelAdmin):
    list_display = ('id', 'title', 'is_published')


@admin.register(BlogPost)
class BlogPostAdmin(admin.ModelAdmin):
    list_display = ('id', 'title', 'slug', 'category', 'is_published', 'created_at')
    list_filter = ('is_published', 'category')
    search_fields = ('title',)


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ('order_code', 'user', 'total_amount', 'status', 'created_at')
    list_filter = ('status',)
    search_fields = ('order_code',)


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ('transaction_code', 'order', 'amount', 'status', 'paid_at')
    list_filter = ('status', 'method')
    search_fields = ('transaction_code',)


@admin.register(PaymentTransaction)
class PaymentTransactionAdmin(admin.ModelAdmin):
    list_display = ('id', 'gateway', 'code', 'amount_in', 'transaction_date', 'created_at')
    search_fields = ('code', 'reference_number')


@admin.register(AuditEvent)
class AuditEventAdmin(admin.ModelAdmin):
    list_display = ('created_at', 'action', 'user', 'object_type', 'object_id')
    list_filter = ('action', 'object_type')
