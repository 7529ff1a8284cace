"""
Custom authentication backends.

Kept apart from the views so that DRF can import the authentication
classes during settings initialisation without pulling in the views.
"""
from __future__ import annotations

import hmac

from django.conf import settings
from django.contrib.auth.models import AnonymousUser
from rest_framework import authentication, exceptions

PAYMENT_GATEWAY_AUTH = 'payment-gateway'


class TokenAuthentication(authentication.TokenAuthentication):
    """DRF token authentication under a stable project import path."""

    keyword = 'Token'


class PaymentApiKeyAuthentication(authentication.BaseAuthentication):
    """Authenticate payment gateway callbacks.

    The gateway sends ``Authorization: Apikey <key>``. A matching key
    yields an anonymous user with ``request.auth`` set to
    :data:`PAYMENT_GATEWAY_AUTH`; a wrong key is rejected with 401.
    """

    keyword = 'Apikey'

    def authenticate(self, request):
        header = authentication.get_authorization_header(request).split()
        if not header or header[0].lower() != self.keyword.lower().encode():
            return None
        if len(header) != 2:
            raise exceptions.AuthenticationFailed('Invalid API key header.')
        expected = getattr(settings, 'PAYMENT_API_KEY', '') or ''
        try:
            key = header[1].decode()
        except UnicodeError:
            raise exceptions.AuthenticationFailed('Invalid API key header.')
        if not expected or not hmac.compare_digest(key, expected):
            raise exceptions.AuthenticationFailed('Invalid API key.')
        return AnonymousUser(), PAYMENT_GATEWAY_AUTH

    def authenticate_header(self, request):
        return self.keyword
