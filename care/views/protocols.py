"""
Treatment protocol and medicine catalogue endpoints.

Any authenticated user may read; writes are limited to clinic staff.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated

from care.permissions import ClinicStaffOrReadOnly, IsClinicStaff
from care.serializers.protocol import (
    MedicineQuerySerializer,
    MedicineSerializer,
    ProtocolCloneSerializer,
    ProtocolMedicineSerializer,
    ProtocolMedicineUpdateSerializer,
    ProtocolSerializer,
)
from care.services import medicines, protocols
from care.services.pagination import paginate
from care.services.treatments import parse_id

from .common import created, ok, page


# ---------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, ClinicStaffOrReadOnly])
def protocol_collection(request):
    """Query params: q, targetDisease, page, limit."""
    if request.method == 'POST':
        s = ProtocolSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        return created(protocols.format_protocol(protocols.create_protocol(s.validated_data, actor=request.user)))
    params = request.query_params
    qs = protocols.list_protocols(q=params.get('q'), target_disease=params.get('targetDisease'))
    items, meta = paginate(qs, params.get('page'), params.get('limit'))
    return page(items, meta, protocols.format_protocol)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, ClinicStaffOrReadOnly])
def protocol_detail(request, pk: int):
    if request.method == 'GET':
        return ok(protocols.format_protocol(protocols.get_protocol(pk)))
    if request.method == 'DELETE':
        protocols.delete_protocol(pk, actor=request.user)
        return ok({'id': pk, 'deleted': True})
    s = ProtocolSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    return ok(protocols.format_protocol(protocols.update_protocol(pk, s.validated_data, actor=request.user)))


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsClinicStaff])
def protocol_add_medicine(request, pk: int):
    s = ProtocolMedicineSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    return created(protocols.format_protocol(protocols.add_medicine(pk, s.validated_data, actor=request.user)))


@api_view(['PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsClinicStaff])
def protocol_medicine_detail(request, pk: int, medicine_id: int):
    if request.method == 'DELETE':
        return ok(protocols.format_protocol(protocols.remove_medicine(pk, medicine_id, actor=request.user)))
    s = ProtocolMedicineUpdateSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    protocol = protocols.update_medicine(pk, medicine_id, s.validated_data, actor=request.user)
    return ok(protocols.format_protocol(protocol))


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsClinicStaff])
def protocol_clone(request, pk: int):
    s = ProtocolCloneSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    clone = protocols.clone_protocol(pk, name=s.validated_data.get('name'), actor=request.user)
    return created(protocols.format_protocol(clone))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def protocols_by_creator(request, user_id: int):
    return ok([protocols.format_protocol(p) for p in protocols.protocols_by_creator(user_id)])


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def popular_protocols(request):
    limit = parse_id(request.query_params.get('limit'), 'limit', required=False) or 5
    return ok(protocols.most_popular(limit))


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsClinicStaff])
def protocol_usage(request, pk: int):
    return ok(protocols.usage_stats(pk))


# ---------------------------------------------------------------------
# Medicines
# ---------------------------------------------------------------------
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, ClinicStaffOrReadOnly])
def medicine_collection(request):
    if request.method == 'POST':
        s = MedicineSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        return created(medicines.format_medicine(medicines.create_medicine(s.validated_data, actor=request.user)))
    q = MedicineQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    qs = medicines.list_medicines(q=vd.get('q'), min_price=vd.get('minPrice'), max_price=vd.get('maxPrice'))
    items, meta = paginate(qs, request.query_params.get('page'), request.query_params.get('limit'))
    return page(items, meta, medicines.format_medicine)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, ClinicStaffOrReadOnly])
def medicine_detail(request, pk: int):
    if request.method == 'GET':
        return ok(medicines.format_medicine(medicines.get_medicine(pk)))
    if request.method == 'DELETE':
        medicines.delete_medicine(pk, actor=request.user)
        return ok({'id': pk, 'deleted': True})
    s = MedicineSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    return ok(medicines.format_medicine(medicines.update_medicine(pk, s.validated_data, actor=request.user)))
