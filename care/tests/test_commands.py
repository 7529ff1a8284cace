from datetime import timedelta
from io import StringIO

import pytest
from django.core.cache import cache
from django.core.management import call_command
from django.utils import timezone

from care.models import Doctor, Medicine, PatientTreatment, TreatmentProtocol, User
from care.services import doctors, treatment_stats

pytestmark = pytest.mark.django_db


def run(*args, **kwargs) -> str:
    out = StringIO()
    call_command(*args, stdout=out, **kwargs)
    return out.getvalue()


def test_ensure_test_users_is_idempotent(settings):
    settings.TEST_USER_PASSWORD = 'Sw0rdfish!'
    run('ensure_test_users')
    run('ensure_test_users')
    assert set(User.objects.values_list('username', flat=True)) == {'admin1', 'doctor1', 'staff1', 'patient1'}
    assert User.objects.get(username='admin1').check_password('Sw0rdfish!')
    assert Doctor.objects.filter(user__username='doctor1').count() == 1


def test_ensure_test_users_refuses_prod(settings):
    settings.ENV = 'prod'
    err = StringIO()
    call_command('ensure_test_users', stdout=StringIO(), stderr=err)
    assert 'Refusing' in err.getvalue()
    assert not User.objects.exists()


def test_seed_data_runs_twice_without_duplicates():
    run('seed_data')
    counts = (Medicine.objects.count(), TreatmentProtocol.objects.count(), Doctor.objects.count(),
              PatientTreatment.objects.count())
    run('seed_data')
    assert (Medicine.objects.count(), TreatmentProtocol.objects.count(), Doctor.objects.count(),
            PatientTreatment.objects.count()) == counts == (4, 2, 4, 2)
    fever = PatientTreatment.objects.get(protocol__name='Fever Treatment')
    assert fever.total == 21.5


def test_refresh_caches_warms_doctor_list_and_stats(doctor):
    out = run('refresh_caches')
    assert 'Refreshed 3 keys' in out
    assert cache.get(doctors.list_cache_key())['data'][0]['id'] == doctor.id
    assert cache.get(treatment_stats.GENERAL_STATS_CACHE_KEY)['totalTreatments'] == 0


def test_fix_treatment_violations_command(doctor, patient):
    now = timezone.now()
    PatientTreatment.objects.create(patient=patient, doctor=doctor, start_date=now - timedelta(days=4))
    PatientTreatment.objects.create(patient=patient, doctor=doctor, start_date=now - timedelta(days=1))

    assert 'dry run: 1 patients, 1 treatments' in run('fix_treatment_violations')
    assert PatientTreatment.objects.active().count() == 2
    assert 'applied: 1 patients, 1 treatments' in run('fix_treatment_violations', '--apply')
    assert PatientTreatment.objects.active().count() == 1


def test_expire_payments_command():
    assert 'Expired 0 payment(s)' in run('expire_payments', '--minutes', '5')
