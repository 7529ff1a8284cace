"""
Authentication views.

Login returns both a legacy DRF token and a JWT pair. Kept apart from
``care.authentication`` so DRF can import the authentication classes
without pulling in the views.
"""
from __future__ import annotations

import logging

from django.contrib.auth import authenticate
from rest_framework.authtoken.models import Token
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import AuthenticationFailed, ValidationError
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.token_blacklist.models import BlacklistedToken, OutstandingToken
from rest_framework_simplejwt.tokens import RefreshToken
from rest_framework_simplejwt.views import TokenRefreshView

from care.serializers.auth import LoginSerializer
from care.services.audit import log_action

logger = logging.getLogger(__name__)


def _user_payload(user) -> dict:
    doctor = getattr(user, 'doctor', None) if user.role == 'DOCTOR' else None
    return {
        'id': user.id,
        'username': user.username,
        'name': user.get_full_name() or user.username,
        'email': user.email,
        'role': user.role,
        'doctorId': doctor.id if doctor else None,
    }


@api_view(['POST'])
@permission_classes([AllowAny])
def login_view(request):
    """Username/password login."""
    s = LoginSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    username = s.validated_data['username']
    ip = request.META.get('REMOTE_ADDR')

    user = authenticate(request, username=username, password=s.validated_data['password'])
    if not user:
        # audit only the username of failed attempts
        log_action(user=None, action='login', object_type='user', object_id=None,
                   detail={'result': 'fail', 'username': username, 'ip': ip})
        logger.warning('Failed login for %s from %s', username, ip)
        raise AuthenticationFailed('Invalid username or password')

    log_action(user=user, action='login', object_type='user', object_id=user.id,
               detail={'result': 'ok', 'ip': ip})
    token_obj, _ = Token.objects.get_or_create(user=user)
    refresh = RefreshToken.for_user(user)
    return Response({
        'ok': True,
        'data': {
            'token': token_obj.key,
            'jwtAccess': str(refresh.access_token),
            'jwtRefresh': str(refresh),
            'role': user.role,
            'user': _user_payload(user),
        },
    })

# ScopedRateThrottle reads throttle_scope from the view class
login_view.cls.throttle_scope = 'login'


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def me_view(request):
    return Response({'ok': True, 'data': _user_payload(request.user)})


@api_view(['POST'])
@permission_classes([AllowAny])
def jwt_refresh_view(request):
    """Return a new access token from a refresh token."""
    resp = TokenRefreshView.as_view()(request._request)
    data = dict(resp.data)
    if resp.status_code != 200:
        # already shaped by the project exception handler
        return Response(data, status=resp.status_code)
    payload = {'jwtAccess': data['access']}
    if 'refresh' in data:
        payload['jwtRefresh'] = data['refresh']
    return Response({'ok': True, 'data': payload})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def jwt_logout_view(request):
    """Blacklist the given refresh token, or every outstanding token of the user."""
    refresh = request.data.get('refresh')
    count = 0
    if refresh:
        try:
            token = RefreshToken(refresh)
        except TokenError as exc:
            raise ValidationError(str(exc))
        if str(token.get('user_id')) != str(request.user.id):
            raise ValidationError('Token does not belong to the current user')
        token.blacklist()
        count = 1
    else:
        for token in OutstandingToken.objects.filter(user=request.user):
            _, was_created = BlacklistedToken.objects.get_or_create(token=token)
            count += int(was_created)
    log_action(user=request.user, action='logout', object_type='user', object_id=request.user.id,
               detail={'blacklisted': count})
    return Response({'ok': True, 'data': {'blacklisted': count}})
