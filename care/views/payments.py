"""
Order, payment and payment-gateway webhook endpoints.

The webhook is called by the gateway, not by a user: it authenticates
with ``Authorization: Apikey <PAYMENT_API_KEY>`` and is throttled under
the ``webhook`` scope.
"""
from __future__ import annotations

import logging

from rest_framework.decorators import api_view, authentication_classes, permission_classes
from rest_framework.permissions import IsAuthenticated

from care.authentication import PaymentApiKeyAuthentication
from care.permissions import HasPaymentApiKey, IsAdminRole, IsClinicStaff
from care.serializers.payment import OrderCreateSerializer, PaymentQuerySerializer
from care.services import payments
from care.services.pagination import paginate

from .common import created, ok, page

logger = logging.getLogger(__name__)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def create_order(request):
    s = OrderCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    order = payments.create_order(user=request.user, treatment_id=vd.get('patientTreatmentId'),
                                  appointment_id=vd.get('appointmentId'), amount=vd.get('amount'),
                                  notes=vd['notes'])
    return created(payments.format_order(order))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def order_detail(request, pk: int):
    order = payments.get_order(pk, user=request.user)
    data = payments.format_order(order)
    data['payments'] = [payments.format_payment(p) for p in order.payments.select_related('order')]
    return ok(data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def create_payment(request, pk: int):
    """Create (or return the pending) payment for an order."""
    return created(payments.format_payment(payments.create_payment(pk, user=request.user)))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def payment_detail(request, pk: int):
    return ok(payments.format_payment(payments.get_payment(pk, user=request.user)))


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsClinicStaff])
def cancel_payment(request, pk: int):
    return ok(payments.format_payment(payments.cancel_payment_and_order(pk)))


@api_view(['POST'])
@authentication_classes([PaymentApiKeyAuthentication])
@permission_classes([HasPaymentApiKey])
def payment_webhook(request):
    logger.info('Payment webhook received: code=%s amount=%s', request.data.get('code'),
                request.data.get('transferAmount'))
    result = payments.process_webhook(request.data)
    return ok(result['data'], message=result['message'])

# ScopedRateThrottle reads throttle_scope from the view class
payment_webhook.cls.throttle_scope = 'webhook'


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def payment_dashboard(request):
    """Query params: status, startDate, endDate, page, limit."""
    q = PaymentQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    qs = payments.dashboard_payments(status=vd.get('status'), start=vd.get('startDate'), end=vd.get('endDate'))
    items, meta = paginate(qs, request.query_params.get('page'), request.query_params.get('limit'), always=True)
    return page(items, meta, payments.format_payment)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def revenue_stats(request):
    q = PaymentQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    return ok(payments.revenue_stats(period=vd['period'], start=vd.get('startDate'), end=vd.get('endDate')))
