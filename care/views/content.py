"""
Blog and meeting record endpoints.

Published blog posts are public. Drafts and every write require clinic
staff. Meeting records belong to online appointments; a patient may
read the records of their own appointments.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import NotFound, PermissionDenied
from rest_framework.permissions import AllowAny, IsAuthenticated

from care.permissions import CLINIC_ROLES, ClinicStaffOrReadOnly, IsClinicStaff
from care.serializers.content import (
    BlogSerializer,
    CategoryBlogSerializer,
    MeetingRecordSerializer,
    MeetingRecordUpdateSerializer,
)
from care.services import blogs, meeting_records
from care.services.pagination import paginate
from care.services.treatments import parse_id

from .common import created, ok, page


def _is_staff(request) -> bool:
    user = request.user
    return bool(user and user.is_authenticated and getattr(user, 'role', None) in CLINIC_ROLES)


def _require_staff(request) -> None:
    if not _is_staff(request):
        raise PermissionDenied('Only clinic staff can change content')


# ---------------------------------------------------------------------
# Blog categories
# ---------------------------------------------------------------------
@api_view(['GET', 'POST'])
@permission_classes([AllowAny])
def category_collection(request):
    if request.method == 'POST':
        _require_staff(request)
        s = CategoryBlogSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        return created(blogs.format_category(blogs.save_category(s.validated_data)))
    qs = blogs.list_categories(published_only=not _is_staff(request))
    return ok([blogs.format_category(c) for c in qs])


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([AllowAny])
def category_detail(request, pk: int):
    if request.method == 'GET':
        category = blogs.get_category(pk)
        if not category.is_published and not _is_staff(request):
            raise NotFound(f'Blog category with ID {pk} not found')
        return ok(blogs.format_category(category))
    _require_staff(request)
    if request.method == 'DELETE':
        blogs.delete_category(pk)
        return ok({'id': pk, 'deleted': True})
    s = CategoryBlogSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    return ok(blogs.format_category(blogs.save_category(s.validated_data, pk)))


# ---------------------------------------------------------------------
# Blog posts
# ---------------------------------------------------------------------
@api_view(['GET', 'POST'])
@permission_classes([AllowAny])
def blog_collection(request):
    """Query params: q, categoryId, page, limit. Drafts are listed for staff only."""
    if request.method == 'POST':
        _require_staff(request)
        s = BlogSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        return created(blogs.format_post(blogs.create_post(s.validated_data, author=request.user)))
    params = request.query_params
    qs = blogs.list_posts(q=params.get('q'),
                          category_id=parse_id(params.get('categoryId'), 'categoryId', required=False),
                          published_only=not _is_staff(request))
    items, meta = paginate(qs, params.get('page'), params.get('limit'))
    return page(items, meta, blogs.format_post)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([AllowAny])
def blog_detail(request, pk: int):
    if request.method == 'GET':
        return ok(blogs.format_post(blogs.get_post(pk, published_only=not _is_staff(request))))
    _require_staff(request)
    if request.method == 'DELETE':
        blogs.delete_post(pk, actor=request.user)
        return ok({'id': pk, 'deleted': True})
    s = BlogSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    return ok(blogs.format_post(blogs.update_post(pk, s.validated_data, actor=request.user)))


# ---------------------------------------------------------------------
# Meeting records
# ---------------------------------------------------------------------
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsClinicStaff])
def meeting_record_collection(request):
    """Query params: q, recordedBy, page, limit."""
    if request.method == 'POST':
        s = MeetingRecordSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        record = meeting_records.create_record(s.validated_data, recorded_by=request.user)
        return created(meeting_records.format_meeting_record(record))
    params = request.query_params
    qs = meeting_records.list_records(q=params.get('q'),
                                      recorded_by_id=parse_id(params.get('recordedBy'), 'recordedBy',
                                                              required=False))
    items, meta = paginate(qs, params.get('page'), params.get('limit'))
    return page(items, meta, meeting_records.format_meeting_record)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, ClinicStaffOrReadOnly])
def meeting_record_detail(request, pk: int):
    record = meeting_records.get_record(pk)
    if request.method == 'GET':
        if not _is_staff(request) and record.appointment.user_id != request.user.id:
            raise PermissionDenied('You can only view records of your own appointments')
        return ok(meeting_records.format_meeting_record(record))
    if request.method == 'DELETE':
        meeting_records.delete_record(pk, actor=request.user)
        return ok({'id': pk, 'deleted': True})
    s = MeetingRecordUpdateSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    return ok(meeting_records.format_meeting_record(
        meeting_records.update_record(pk, s.validated_data, actor=request.user)))


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsClinicStaff])
def meeting_record_for_appointment(request, appointment_id: int):
    record = meeting_records.record_for_appointment(appointment_id)
    if record is None:
        raise NotFound(f'No meeting record for appointment {appointment_id}')
    return ok(meeting_records.format_meeting_record(record))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def meeting_records_for_patient(request, patient_id: int):
    if not _is_staff(request) and request.user.id != patient_id:
        raise PermissionDenied('You can only view your own meeting records')
    return ok([meeting_records.format_meeting_record(r) for r in meeting_records.records_for_patient(patient_id)])
