import json
import logging
from dataclasses import dataclass
from decimal import Decimal

import requests
from Crypto.Hash import HMAC, SHA256
from django.conf import settings

logger = logging.getLogger(__name__)


class GatewayError(RuntimeError):
    pass


@dataclass
class GatewayPayment:
    payment_url: str
    reference: str
    raw: dict


def sign(payload: dict, secret: str) -> str:
    """HMAC-SHA256 over ``key=value`` pairs joined by ``&`` in key order."""
    message = '&'.join(f'{key}={payload[key]}' for key in sorted(payload))
    mac = HMAC.new(secret.encode('utf-8'), digestmod=SHA256)
    mac.update(message.encode('utf-8'))
    return mac.hexdigest()


def create_payment_link(*, order_code: str, amount: Decimal, content: str, description: str = '') -> GatewayPayment:
    if not settings.PAYMENT_GATEWAY_ENABLE:
        raise GatewayError('Payment gateway not enabled on server')
    payload = {
        'account_number': settings.PAYMENT_GATEWAY_ACCOUNT,
        'order_code': order_code,
        'amount': str(int(amount)),
        'content': content,
        'description': description or content,
    }
    payload['signature'] = sign(payload, settings.PAYMENT_GATEWAY_SECRET)
    url = f'{settings.PAYMENT_GATEWAY_BASE_URL}/api/payment/create'
    r = requests.post(
        url,
        data=json.dumps(payload),
        headers={'Authorization': f'Bearer {settings.PAYMENT_GATEWAY_API_KEY}', 'Content-Type': 'application/json'},
        timeout=settings.PAYMENT_GATEWAY_TIMEOUT,
    )
    r.raise_for_status()
    data = r.json()
    if data.get('status') not in (None, 200, 'success', True):
        raise GatewayError(f"Gateway error {data.get('status')}: {data.get('message')}")
    payment_url = (data.get('data') or {}).get('payment_url') or data.get('payment_url')
    if not payment_url:
        raise GatewayError('Invalid response from gateway: missing payment_url')
    logger.info('Gateway payment link created for order %s', order_code)
    return GatewayPayment(payment_url=payment_url, reference=str((data.get('data') or {}).get('id', '')), raw=data)
