"""
Orders, payments and the payment gateway webhook.

An order covers either a patient treatment or an appointment. Paying
it creates a :class:`Payment` whose ``transaction_code`` the customer
quotes in the bank transfer; the gateway later calls the webhook with
that code and the transferred amount.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Optional

import requests
from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Count, Sum
from django.db.models.functions import TruncDay, TruncMonth
from django.utils import timezone
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError

from care import repositories
from care.exceptions import Conflict, ServiceUnavailable
from care.models import Appointment, Order, Payment, PaymentTransaction, PatientTreatment
from care.services import payment_gateway, transfer_content
from care.services.audit import log_action
from care.services.notify import broadcast_update

logger = logging.getLogger(__name__)

WEBHOOK_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'
EXPIRED_NOTE = 'Order payment expired automatically'


def format_order(o: Order) -> dict:
    return {
        'id': o.id,
        'orderCode': o.order_code,
        'userId': o.user_id,
        'appointmentId': o.appointment_id,
        'patientTreatmentId': o.patient_treatment_id,
        'totalAmount': float(o.total_amount),
        'status': o.status,
        'notes': o.notes,
        'createdAt': o.created_at.isoformat() if o.created_at else None,
    }


def format_payment(p: Payment) -> dict:
    return {
        'id': p.id,
        'orderId': p.order_id,
        'orderCode': p.order.order_code,
        'userId': p.order.user_id,
        'amount': float(p.amount),
        'transactionCode': p.transaction_code,
        'method': p.method,
        'status': p.status,
        'paymentUrl': p.payment_url or None,
        'paidAt': p.paid_at.isoformat() if p.paid_at else None,
        'createdAt': p.created_at.isoformat() if p.created_at else None,
    }


def _is_patient(user) -> bool:
    return getattr(user, 'role', None) == 'PATIENT'


def _new_order_code() -> str:
    base = int(timezone.now().timestamp() * 1000)
    code = str(base)
    while Order.objects.filter(order_code=code).exists():
        base += 1
        code = str(base)
    return code


# ---------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------
def get_order(pk: int, *, user=None) -> Order:
    order = repositories.orders().filter(pk=pk).first()
    if order is None:
        raise NotFound(f'Order with ID {pk} not found')
    if user is not None and _is_patient(user) and order.user_id != user.id:
        raise PermissionDenied('You can only access your own orders')
    return order


def create_order(*, user, treatment_id: Optional[int] = None, appointment_id: Optional[int] = None,
                 amount: Optional[Decimal] = None, notes: str = '') -> Order:
    if bool(treatment_id) == bool(appointment_id):
        raise ValidationError('Provide exactly one of patientTreatmentId or appointmentId')
    treatment = appointment = None
    if treatment_id:
        treatment = PatientTreatment.objects.alive().filter(pk=treatment_id).first()
        if treatment is None:
            raise NotFound(f'Patient treatment with ID {treatment_id} not found')
        if treatment.status:
            raise Conflict(f'Patient treatment {treatment_id} is already paid')
        owner, total = treatment.patient, treatment.total
    else:
        appointment = Appointment.objects.filter(pk=appointment_id).first()
        if appointment is None:
            raise NotFound(f'Appointment with ID {appointment_id} not found')
        if amount is None:
            raise ValidationError('amount is required for appointment orders')
        owner, total = appointment.user, amount
    if _is_patient(user) and owner.id != user.id:
        raise PermissionDenied('You can only create orders for yourself')
    if total is None or Decimal(total) <= 0:
        raise ValidationError('Order amount must be greater than zero')

    order = Order.objects.create(
        user=owner,
        appointment=appointment,
        patient_treatment=treatment,
        order_code=_new_order_code(),
        total_amount=total,
        notes=notes or '',
    )
    log_action(user=user, action='order_create', object_type='order', object_id=order.id,
               detail={'amount': str(total)})
    return get_order(order.id)


# ---------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------
def get_payment(pk: int, *, user=None) -> Payment:
    payment = repositories.payments().filter(pk=pk).first()
    if payment is None:
        raise NotFound(f'Payment with ID {pk} not found')
    if user is not None and _is_patient(user) and payment.order.user_id != user.id:
        raise PermissionDenied('You can only access your own payments')
    return payment


def create_payment(order_id: int, *, user=None) -> Payment:
    order = get_order(order_id, user=user)
    if order.status != Order.STATUS_PENDING:
        raise Conflict(f'Order {order.id} is not pending')
    existing = order.payments.filter(status=Payment.STATUS_PENDING).first()
    if existing is not None:
        return get_payment(existing.id)

    code = transfer_content.generate(order.order_code, settings.PAYMENT_CONTENT_PREFIX)
    try:
        with transaction.atomic():
            payment = Payment.objects.create(order=order, amount=order.total_amount, transaction_code=code)
    except IntegrityError:
        raise Conflict(f'Transaction code {code} is already in use')

    if settings.PAYMENT_GATEWAY_ENABLE:
        try:
            link = payment_gateway.create_payment_link(order_code=order.order_code, amount=order.total_amount,
                                                       content=code, description=f'Order {order.order_code}')
        except (requests.RequestException, payment_gateway.GatewayError) as exc:
            logger.warning('Payment gateway call failed for order %s: %s', order.id, exc)
            payment.status = Payment.STATUS_FAILED
            payment.save(update_fields=['status', 'updated_at'])
            raise ServiceUnavailable('Payment gateway unavailable, please retry later')
        payment.payment_url = link.payment_url
        payment.save(update_fields=['payment_url', 'updated_at'])
    log_action(user=user, action='payment_create', object_type='payment', object_id=payment.id,
               detail={'orderId': order.id, 'transactionCode': code})
    return get_payment(payment.id)


def _decimal(value, name: str) -> Decimal:
    try:
        return Decimal(str(value if value not in (None, '') else 0))
    except InvalidOperation:
        raise ValidationError(f'{name} must be a number')


def _webhook_date(value) -> Optional[datetime]:
    if not value:
        return None
    try:
        return timezone.make_aware(datetime.strptime(str(value), WEBHOOK_DATE_FORMAT))
    except ValueError:
        logger.warning('Unparseable webhook transactionDate: %r', value)
        return None


def record_transaction(payload: dict) -> PaymentTransaction:
    amount = _decimal(payload.get('transferAmount'), 'transferAmount')
    incoming = str(payload.get('transferType') or 'in').lower() == 'in'
    return PaymentTransaction.objects.create(
        gateway=payload.get('gateway') or '',
        transaction_date=_webhook_date(payload.get('transactionDate')),
        account_number=payload.get('accountNumber') or '',
        sub_account=payload.get('subAccount') or '',
        amount_in=amount if incoming else 0,
        amount_out=0 if incoming else amount,
        accumulated=_decimal(payload.get('accumulated'), 'accumulated'),
        code=payload.get('code') or '',
        transaction_content=payload.get('content') or '',
        reference_number=payload.get('referenceCode') or '',
        body=payload.get('description') or '',
    )


def _result(message: str, payment: Payment) -> dict:
    return {
        'message': message,
        'data': {
            'paymentId': payment.id,
            'orderId': payment.order_id,
            'amount': float(payment.amount),
            'status': payment.status,
        },
    }


def process_webhook(payload: dict) -> dict:
    """Settle the payment named by a gateway notification.

    Every notification is stored first. The payment, its order, the
    linked appointment and the linked treatment are then updated together.
    """
    if not isinstance(payload, dict):
        raise ValidationError('Invalid webhook payload')
    record_transaction(payload)

    code = (payload.get('code') or '').strip()
    parsed = transfer_content.parse(code) if code else transfer_content.find_in_text(payload.get('content'))
    if not code and parsed is None:
        raise ValidationError('No transaction code provided in webhook')
    code = code or parsed.code
    lookup = parsed.code if parsed else code

    with transaction.atomic():
        payment = (Payment.objects.select_for_update().select_related('order')
                   .filter(transaction_code__iexact=lookup).first())
        if payment is None:
            raise ValidationError(f'Payment not found with transactionCode {code}')
        if payment.status == Payment.STATUS_SUCCESS:
            logger.info('Duplicate webhook for payment %s ignored', payment.id)
            return _result('Payment already processed', payment)
        amount = _decimal(payload.get('transferAmount'), 'transferAmount')
        if amount != payment.amount:
            raise ValidationError(f'Amount mismatch: expected {payment.amount} but got {amount}')

        now = timezone.now()
        payment.status = Payment.STATUS_SUCCESS
        payment.paid_at = now
        payment.gateway_response = json.loads(json.dumps(payload, default=str))
        payment.save(update_fields=['status', 'paid_at', 'gateway_response', 'updated_at'])

        order = payment.order
        order.status = Order.STATUS_PAID
        order.save(update_fields=['status', 'updated_at'])
        # a treatment ordered against the same appointment keeps it out of the PAID state
        if order.appointment_id and not PatientTreatment.objects.filter(
                orders__appointment_id=order.appointment_id).exists():
            Appointment.objects.filter(pk=order.appointment_id).update(status=Appointment.STATUS_PAID)
        if order.patient_treatment_id:
            PatientTreatment.objects.filter(pk=order.patient_treatment_id).update(status=True, updated_at=now)
        log_action(user=None, action='payment_success', object_type='payment', object_id=payment.id,
                   detail={'orderId': order.id, 'amount': str(amount)})
        result = _result('Payment processed successfully', payment)
        transaction.on_commit(lambda: broadcast_update('payment.updated', result['data']))

    logger.info('Payment %s settled for order %s', payment.id, payment.order_id)
    return result


def cancel_payment_and_order(payment_id: int) -> Payment:
    with transaction.atomic():
        payment = Payment.objects.select_for_update().select_related('order').filter(pk=payment_id).first()
        if payment is None:
            raise NotFound(f'Payment with ID {payment_id} not found')
        if payment.status == Payment.STATUS_SUCCESS:
            raise Conflict(f'Payment {payment_id} already succeeded')
        payment.status = Payment.STATUS_FAILED
        payment.save(update_fields=['status', 'updated_at'])
        order = payment.order
        order.status = Order.STATUS_PENDING
        order.notes = EXPIRED_NOTE
        order.save(update_fields=['status', 'notes', 'updated_at'])
        log_action(user=None, action='payment_expire', object_type='payment', object_id=payment.id)
    return payment


def expire_pending_payments(older_than_minutes: int) -> list[int]:
    cutoff = timezone.now() - timedelta(minutes=older_than_minutes)
    ids = list(Payment.objects.filter(status=Payment.STATUS_PENDING, created_at__lt=cutoff)
               .values_list('id', flat=True))
    for payment_id in ids:
        cancel_payment_and_order(payment_id)
    return ids


# ---------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------
def dashboard_payments(*, status: Optional[str] = None, start=None, end=None):
    qs = repositories.payments().order_by('-created_at')
    if status:
        if status not in dict(Payment.STATUS_CHOICES):
            raise ValidationError(f'Invalid status: {status}')
        qs = qs.filter(status=status)
    if start:
        qs = qs.filter(created_at__gte=start)
    if end:
        qs = qs.filter(created_at__lte=end)
    return qs


def revenue_stats(*, period: str = 'day', start=None, end=None) -> dict:
    trunc = {'day': TruncDay, 'month': TruncMonth}.get(period)
    if trunc is None:
        raise ValidationError('period must be day or month')
    qs = Payment.objects.filter(status=Payment.STATUS_SUCCESS, paid_at__isnull=False)
    if start:
        qs = qs.filter(paid_at__gte=start)
    if end:
        qs = qs.filter(paid_at__lte=end)
    rows = (qs.annotate(bucket=trunc('paid_at')).values('bucket')
            .annotate(revenue=Sum('amount'), count=Count('id')).order_by('bucket'))
    fmt = '%Y-%m-%d' if period == 'day' else '%Y-%m'
    series = [{
        'period': timezone.localtime(row['bucket']).strftime(fmt) if timezone.is_aware(row['bucket'])
        else row['bucket'].strftime(fmt),
        'revenue': float(row['revenue'] or 0),
        'count': row['count'],
    } for row in rows]
    return {
        'period': period,
        'totalRevenue': round(sum(item['revenue'] for item in series), 2),
        'totalPayments': sum(item['count'] for item in series),
        'series': series,
    }
