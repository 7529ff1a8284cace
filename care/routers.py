"""
URL mappings for the clinic care API.

Trailing slashes are omitted (``APPEND_SLASH = False``). Ids of the
list-by-owner and statistics routes are captured as strings so that a
malformed id answers 400 rather than 404.
"""
from django.urls import include, path

from .auth_views import jwt_logout_view, jwt_refresh_view, login_view, me_view
from .views import appointments, clinical, content, doctors, health, payments, protocols, treatments

urlpatterns = [
    path('metrics', include('django_prometheus.urls')),
    path('healthz', health.healthz),

    # Authentication
    path('api/auth/login', login_view, name='login_view'),
    path('api/auth/refresh', jwt_refresh_view),
    path('api/auth/logout', jwt_logout_view),
    path('api/auth/me', me_view),

    # Patient treatments
    path('api/patient-treatments', treatments.treatment_collection),
    path('api/patient-treatments/search', treatments.search_treatments),
    path('api/patient-treatments/active', treatments.active_treatments),
    path('api/patient-treatments/custom-medications', treatments.custom_medication_treatments),
    path('api/patient-treatments/preview-cost', treatments.preview_cost),
    path('api/patient-treatments/bulk', treatments.bulk_create),
    path('api/patient-treatments/violations', treatments.rule_violations),
    path('api/patient-treatments/violations/fix', treatments.fix_rule_violations),
    path('api/patient-treatments/patient/<str:patient_id>', treatments.treatments_by_patient),
    path('api/patient-treatments/patient/<str:patient_id>/end-active', treatments.end_active_treatments),
    path('api/patient-treatments/patient/<str:patient_id>/validate-protocol', treatments.validate_single_protocol),
    path('api/patient-treatments/doctor/<str:doctor_id>', treatments.treatments_by_doctor),
    path('api/patient-treatments/<int:pk>', treatments.treatment_detail),
    path('api/patient-treatments/<int:pk>/status', treatments.treatment_status),
    path('api/patient-treatments/<int:pk>/restore', treatments.treatment_restore),

    # Treatment statistics
    path('api/treatment-stats/general', treatments.general_stats),
    path('api/treatment-stats/patient/<str:patient_id>', treatments.patient_stats),
    path('api/treatment-stats/doctor/<str:doctor_id>', treatments.doctor_workload),
    path('api/treatment-stats/custom-medications', treatments.custom_medication_stats),
    path('api/treatment-stats/protocol/<str:protocol_id>/comparison', treatments.protocol_comparison),
    path('api/treatment-stats/compliance/<str:patient_id>', treatments.compliance_stats),
    path('api/treatment-stats/cost-analysis', treatments.cost_analysis),

    # Clinical validation
    path('api/clinical/adherence', clinical.adherence),
    path('api/clinical/organ-function', clinical.organ_function),
    path('api/clinical/pregnancy-safety', clinical.pregnancy_safety),
    path('api/clinical/resistance', clinical.resistance),
    path('api/clinical/emergency-protocol', clinical.emergency_protocol),
    path('api/clinical/continuity/<str:patient_id>', clinical.continuity),

    # Doctors & schedules
    path('api/doctors', doctors.doctor_collection),
    path('api/doctors/<int:pk>', doctors.doctor_detail),
    path('api/doctors/<int:pk>/schedule', doctors.doctor_schedule),
    path('api/doctors/<int:pk>/time-off', doctors.request_time_off),
    path('api/schedules/generate', doctors.generate_schedule),
    path('api/schedules/time-off', doctors.time_off_list),
    path('api/schedules/on-duty', doctors.doctors_on_date),
    path('api/schedules/assign', doctors.assign_shift),
    path('api/schedules/swap', doctors.swap_shifts),

    # Protocols & medicines
    path('api/protocols', protocols.protocol_collection),
    path('api/protocols/popular', protocols.popular_protocols),
    path('api/protocols/created-by/<int:user_id>', protocols.protocols_by_creator),
    path('api/protocols/<int:pk>', protocols.protocol_detail),
    path('api/protocols/<int:pk>/medicines', protocols.protocol_add_medicine),
    path('api/protocols/<int:pk>/medicines/<int:medicine_id>', protocols.protocol_medicine_detail),
    path('api/protocols/<int:pk>/clone', protocols.protocol_clone),
    path('api/protocols/<int:pk>/usage', protocols.protocol_usage),
    path('api/medicines', protocols.medicine_collection),
    path('api/medicines/<int:pk>', protocols.medicine_detail),

    # Appointments
    path('api/appointments', appointments.appointment_collection),
    path('api/appointments/user/<int:user_id>', appointments.appointments_by_user),
    path('api/appointments/doctor/<int:doctor_id>', appointments.appointments_by_doctor),
    path('api/appointments/<int:pk>', appointments.appointment_detail),
    path('api/appointments/<int:pk>/status', appointments.appointment_status),

    # Blogs & meeting records
    path('api/blog-categories', content.category_collection),
    path('api/blog-categories/<int:pk>', content.category_detail),
    path('api/blogs', content.blog_collection),
    path('api/blogs/<int:pk>', content.blog_detail),
    path('api/meeting-records', content.meeting_record_collection),
    path('api/meeting-records/<int:pk>', content.meeting_record_detail),
    path('api/meeting-records/appointment/<int:appointment_id>', content.meeting_record_for_appointment),
    path('api/meeting-records/patient/<int:patient_id>', content.meeting_records_for_patient),

    # Orders & payments
    path('api/orders', payments.create_order),
    path('api/orders/<int:pk>', payments.order_detail),
    path('api/orders/<int:pk>/payments', payments.create_payment),
    path('api/payments/webhook', payments.payment_webhook),
    path('api/payments/dashboard', payments.payment_dashboard),
    path('api/payments/revenue', payments.revenue_stats),
    path('api/payments/<int:pk>', payments.payment_detail),
    path('api/payments/<int:pk>/cancel', payments.cancel_payment),
]
