"""
Patient treatment endpoints.

Clinic staff manage treatments; a patient may read their own treatments,
statistics and compliance but nothing else. Every list endpoint accepts
``page``/``limit`` and answers with ``pagination`` when they are given.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import IsAuthenticated

from care.permissions import ClinicStaffOrReadOnly, IsAdminRole, IsClinicStaff, IsDoctorOrAdmin
from care.serializers.treatment import BulkCreateSerializer, FixViolationsSerializer, TreatmentStatusSerializer
from care.services import treatment_queries, treatment_rules, treatment_stats, treatments
from care.services.treatments import format_treatment, parse_id

from .common import created, flag, ok, page


def _ensure_own_or_staff(request, patient_id) -> int:
    patient_id = parse_id(patient_id, 'patientId')
    user = request.user
    if getattr(user, 'role', None) == 'PATIENT' and user.id != patient_id:
        raise PermissionDenied('You can only view your own treatments')
    return patient_id


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsClinicStaff])
def treatment_collection(request):
    """GET lists treatments (``startDate``/``endDate`` filter); POST creates one."""
    if request.method == 'POST':
        treatment = treatments.create_treatment(request.data, created_by=request.user)
        treatment_stats.invalidate_general_stats()
        return created(format_treatment(treatment))
    items, meta = treatment_queries.list_treatments(request.query_params)
    return page(items, meta, format_treatment)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, ClinicStaffOrReadOnly])
def treatment_detail(request, pk: int):
    if request.method == 'GET':
        return ok(format_treatment(treatments.get_treatment(pk, user=request.user)))
    if request.method == 'DELETE':
        treatments.soft_delete(pk, user=request.user)
        treatment_stats.invalidate_general_stats()
        return ok({'id': pk, 'deleted': True})
    treatment = treatments.update_treatment(pk, request.data, user=request.user)
    treatment_stats.invalidate_general_stats()
    return ok(format_treatment(treatment))


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDoctorOrAdmin])
def treatment_restore(request, pk: int):
    treatment = treatments.restore(pk, user=request.user)
    treatment_stats.invalidate_general_stats()
    return ok(format_treatment(treatment))


@api_view(['PUT', 'PATCH'])
@permission_classes([IsAuthenticated, IsClinicStaff])
def treatment_status(request, pk: int):
    s = TreatmentStatusSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    treatment = treatments.change_status(pk, s.validated_data['status'], user=request.user)
    treatment_stats.invalidate_general_stats()
    return ok(format_treatment(treatment))


# ---------------------------------------------------------------------
# Lists
# ---------------------------------------------------------------------
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def treatments_by_patient(request, patient_id: str):
    """Query params: includeCompleted, startDate, endDate, sortBy, sortOrder, page, limit."""
    patient_id = _ensure_own_or_staff(request, patient_id)
    items, meta = treatment_queries.treatments_by_patient(patient_id, request.query_params)
    return page(items, meta, format_treatment)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsClinicStaff])
def treatments_by_doctor(request, doctor_id: str):
    items, meta = treatment_queries.treatments_by_doctor(doctor_id, request.query_params)
    return page(items, meta, format_treatment)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsClinicStaff])
def search_treatments(request):
    items, meta = treatment_queries.search_treatments(request.query_params.get('q'), request.query_params)
    return page(items, meta, format_treatment)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsClinicStaff])
def active_treatments(request):
    items, meta = treatment_queries.active_treatments(request.query_params)
    return page(items, meta, format_treatment)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsClinicStaff])
def custom_medication_treatments(request):
    items, meta = treatment_queries.treatments_with_custom_medications(request.query_params)
    return page(items, meta, format_treatment)


# ---------------------------------------------------------------------
# Single active protocol rule
# ---------------------------------------------------------------------
@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDoctorOrAdmin])
def end_active_treatments(request, patient_id: str):
    patient_id = parse_id(patient_id, 'patientId')
    result = treatments.end_active_treatments(patient_id, user=request.user)
    treatment_stats.invalidate_general_stats()
    return ok(result)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsClinicStaff])
def validate_single_protocol(request, patient_id: str):
    return ok(treatments.validate_single_protocol_rule(parse_id(patient_id, 'patientId')))


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def rule_violations(request):
    violations = treatment_rules.detect_violations()
    return ok(violations, total=len(violations))


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def fix_rule_violations(request):
    s = FixViolationsSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    result = treatment_rules.fix_violations(dry_run=s.validated_data['dryRun'], user=request.user)
    if not result['dryRun']:
        treatment_stats.invalidate_general_stats()
    return ok(result)


# ---------------------------------------------------------------------
# Cost preview & bulk create
# ---------------------------------------------------------------------
@api_view(['POST'])
@permission_classes([IsAuthenticated, IsClinicStaff])
def preview_cost(request):
    return ok(treatments.preview_cost(request.data))


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDoctorOrAdmin])
def bulk_create(request):
    s = BulkCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    result = treatments.bulk_create(
        request.data.get('items'),
        created_by=request.user,
        continue_on_error=vd['continueOnError'],
        validate_before_create=vd['validateBeforeCreate'],
    )
    treatment_stats.invalidate_general_stats()
    return created(result)


# ---------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------
@api_view(['GET'])
@permission_classes([IsAuthenticated, IsClinicStaff])
def general_stats(request):
    return ok(treatment_stats.general_stats(refresh=flag(request, 'refresh')))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def patient_stats(request, patient_id: str):
    return ok(treatment_stats.patient_stats(_ensure_own_or_staff(request, patient_id)))


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsClinicStaff])
def doctor_workload(request, doctor_id: str):
    return ok(treatment_stats.doctor_workload(doctor_id))


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsClinicStaff])
def custom_medication_stats(request):
    return ok(treatment_stats.custom_medication_stats())


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsClinicStaff])
def protocol_comparison(request, protocol_id: str):
    return ok(treatment_stats.protocol_comparison(protocol_id))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def compliance_stats(request, patient_id: str):
    return ok(treatment_stats.compliance_stats(_ensure_own_or_staff(request, patient_id)))


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsClinicStaff])
def cost_analysis(request):
    """Filters: patientId, doctorId, protocolId, startDate, endDate."""
    return ok(treatment_stats.cost_analysis(request.query_params))
