"""
Clinical validation endpoints.

Thin wrappers over :mod:`care.services.clinical`; none of them writes
to the database.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated

from care.permissions import IsClinicStaff
from care.serializers.clinical import (
    AdherenceSerializer,
    ContinuityQuerySerializer,
    EmergencyProtocolSerializer,
    OrganFunctionSerializer,
    PregnancySafetySerializer,
    ResistanceSerializer,
)
from care.services import clinical
from care.services.treatments import parse_id

from .common import ok


def _validated(serializer_class, data) -> dict:
    s = serializer_class(data=data)
    s.is_valid(raise_exception=True)
    return s.validated_data


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsClinicStaff])
def adherence(request):
    vd = _validated(AdherenceSerializer, request.data)
    return ok(clinical.assess_adherence(vd['totalDoses'], vd['missedDoses']))


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsClinicStaff])
def organ_function(request):
    vd = _validated(OrganFunctionSerializer, request.data)
    return ok(clinical.assess_organ_function(vd.get('liverFunction'), vd.get('kidneyFunction')))


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsClinicStaff])
def pregnancy_safety(request):
    vd = _validated(PregnancySafetySerializer, request.data)
    return ok(clinical.assess_pregnancy_safety(
        gender=vd['gender'],
        is_pregnant=vd['isPregnant'],
        is_breastfeeding=vd['isBreastfeeding'],
        protocol_id=vd.get('protocolId'),
    ))


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsClinicStaff])
def resistance(request):
    vd = _validated(ResistanceSerializer, request.data)
    return ok(clinical.assess_resistance(
        resistance_level=vd['resistanceLevel'],
        mutations=vd['mutations'],
        previous_failed_regimens=vd['previousFailedRegimens'],
    ))


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsClinicStaff])
def emergency_protocol(request):
    vd = _validated(EmergencyProtocolSerializer, request.data)
    return ok(clinical.assess_emergency_protocol(
        treatment_type=vd['treatmentType'],
        hours_since_exposure=vd.get('hoursSinceExposure'),
    ))


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsClinicStaff])
def continuity(request, patient_id: str):
    """Optional ``currentStart`` query param; defaults to the latest treatment start."""
    vd = _validated(ContinuityQuerySerializer, request.query_params)
    return ok(clinical.check_continuity(parse_id(patient_id, 'patientId'), vd.get('currentStart')))
