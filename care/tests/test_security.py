import pytest
from django.urls import reverse
from rest_framework.test import APIClient

from care.models import AuditEvent, User

pytestmark = pytest.mark.django_db


def login(client, username, password='P@ssw0rd1'):
    return client.post(reverse('login_view'), {'username': username, 'password': password}, format='json')


def test_login_returns_jwt_and_legacy_token(doctor):
    r = login(APIClient(), 'doc1')
    assert r.status_code == 200
    data = r.data['data']
    assert data['token'] and data['jwtAccess'] and data['jwtRefresh']
    assert data['role'] == 'DOCTOR'
    assert data['user']['doctorId'] == doctor.id
    assert data['user']['name'] == 'Minh Tran'


def test_login_ignores_extra_role_field(patient):
    r = APIClient().post(reverse('login_view'),
                         {'username': 'patient1', 'password': 'P@ssw0rd1', 'role': 'ADMIN'}, format='json')
    assert r.status_code == 200
    assert r.data['data']['role'] == 'PATIENT'
    patient.refresh_from_db()
    assert patient.role == User.ROLE_PATIENT


def test_bad_login_is_rejected_and_audited(patient):
    r = login(APIClient(), 'patient1', 'wrong-password')
    assert r.status_code == 401
    assert r.data['ok'] is False
    assert r.data['error']['code'] == 'authentication_failed'
    event = AuditEvent.objects.get(action='login')
    assert event.user is None
    assert event.detail['result'] == 'fail'
    assert event.detail['username'] == 'patient1'


def test_login_requires_both_fields():
    r = APIClient().post(reverse('login_view'), {'username': 'x'}, format='json')
    assert r.status_code == 400


def test_both_token_kinds_authenticate(patient):
    data = login(APIClient(), 'patient1').data['data']

    jwt_client = APIClient()
    jwt_client.credentials(HTTP_AUTHORIZATION=f"Bearer {data['jwtAccess']}")
    r = jwt_client.get('/api/auth/me')
    assert r.status_code == 200
    assert r.data['data']['username'] == 'patient1'

    token_client = APIClient()
    token_client.credentials(HTTP_AUTHORIZATION=f"Token {data['token']}")
    assert token_client.get('/api/auth/me').status_code == 200


def test_refresh_and_logout_blacklists_token(patient):
    client = APIClient()
    refresh = login(client, 'patient1').data['data']['jwtRefresh']

    r = client.post('/api/auth/refresh', {'refresh': refresh}, format='json')
    assert r.status_code == 200
    assert r.data['data']['jwtAccess']

    client.force_authenticate(user=patient)
    r = client.post('/api/auth/logout', {'refresh': refresh}, format='json')
    assert r.status_code == 200
    assert r.data['data']['blacklisted'] == 1

    client.force_authenticate(user=None)
    assert client.post('/api/auth/refresh', {'refresh': refresh}, format='json').status_code == 401


def test_logout_rejects_foreign_refresh_token(patient, other_patient):
    refresh = login(APIClient(), 'patient2').data['data']['jwtRefresh']
    client = APIClient()
    client.force_authenticate(user=patient)
    r = client.post('/api/auth/logout', {'refresh': refresh}, format='json')
    assert r.status_code == 400


def test_anonymous_requests_are_rejected():
    client = APIClient()
    assert client.get('/api/auth/me').status_code == 401
    assert client.get('/api/doctors').status_code == 401
    assert client.get('/api/medicines').status_code == 401


def test_error_envelope_for_missing_resource(client_for, doctor):
    r = client_for(doctor.user).get('/api/patient-treatments/987654')
    assert r.status_code == 404
    assert r.data == {'ok': False, 'error': {'code': 'not_found',
                                             'message': 'Patient treatment with ID 987654 not found'}}


def test_validation_errors_keep_field_details(client_for, doctor):
    r = client_for(doctor.user).post('/api/clinical/adherence', {'totalDoses': 'x'}, format='json')
    assert r.status_code == 400
    assert r.data['error']['code'] == 'invalid'
    assert set(r.data['error']['message']) == {'totalDoses', 'missedDoses'}


def test_healthz():
    r = APIClient().get('/healthz')
    assert r.status_code == 200
    assert r.json() == {'ok': True, 'db': True}
