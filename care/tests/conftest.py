from decimal import Decimal

import pytest
from django.core.cache import cache
from rest_framework.test import APIClient

from care.models import Doctor, Medicine, ProtocolMedicine, TreatmentProtocol, User


@pytest.fixture(autouse=True)
def _clear_cache():
    # throttle counters and cached lists live in the cache
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def admin_user(db):
    return User.objects.create_user(username='admin1', password='P@ssw0rd1', role=User.ROLE_ADMIN)


@pytest.fixture
def doctor(db):
    user = User.objects.create_user(username='doc1', password='P@ssw0rd1', role=User.ROLE_DOCTOR,
                                    first_name='Minh', last_name='Tran')
    return Doctor.objects.create(user=user, specialization='Infectious diseases')


@pytest.fixture
def patient(db):
    return User.objects.create_user(username='patient1', password='P@ssw0rd1', role=User.ROLE_PATIENT,
                                    first_name='Lan', last_name='Pham')


@pytest.fixture
def other_patient(db):
    return User.objects.create_user(username='patient2', password='P@ssw0rd1', role=User.ROLE_PATIENT)


@pytest.fixture
def protocol(db):
    """Paracetamol 1.50 x 5 days + Amoxicillin 2.00 x 7 days = 21.50."""
    paracetamol = Medicine.objects.create(name='Paracetamol', unit='tablet', dose='500mg', price=Decimal('1.50'))
    amoxicillin = Medicine.objects.create(name='Amoxicillin', unit='capsule', dose='500mg', price=Decimal('2.00'))
    p = TreatmentProtocol.objects.create(name='Fever Treatment', target_disease='Fever')
    ProtocolMedicine.objects.create(protocol=p, medicine=paracetamol, dosage='1 tablet', duration_value=5,
                                    duration_unit='DAY', schedule='MORNING')
    ProtocolMedicine.objects.create(protocol=p, medicine=amoxicillin, dosage='1 capsule', duration_value=7,
                                    duration_unit='DAY', schedule='AFTERNOON')
    return p


@pytest.fixture
def client_for():
    def make(user=None):
        client = APIClient()
        if user is not None:
            client.force_authenticate(user=user)
        return client
    return make
