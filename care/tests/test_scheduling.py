from collections import Counter
from datetime import date, timedelta

import pytest
from django.core.management import call_command
from django.core.management.base import CommandError
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from care.models import Doctor, DoctorSchedule, User
from care.services import scheduling

pytestmark = pytest.mark.django_db

MONDAY = date(2030, 1, 7)
SUNDAY = date(2030, 1, 6)


def make_doctors(count, start=2):
    result = []
    for i in range(start, start + count):
        user = User.objects.create_user(username=f'doc{i}', password='P@ssw0rd1', role=User.ROLE_DOCTOR)
        result.append(Doctor.objects.create(user=user, specialization='General'))
    return result


@pytest.fixture
def staff(doctor):
    return [doctor] + make_doctors(3)


def test_shifts_per_day():
    assert scheduling.shifts_for_day(MONDAY) == ['MORNING', 'AFTERNOON']
    assert scheduling.shifts_for_day(MONDAY + timedelta(days=5)) == ['MORNING']
    assert scheduling.shifts_for_day(SUNDAY) == []


def test_generate_fills_every_shift(staff):
    result = scheduling.generate_week(doctors_per_shift=2, start_date=MONDAY, seed=42)
    assert result['startDate'] == '2030-01-07'
    assert result['endDate'] == '2030-01-13'
    assert result['totalAssignedShifts'] == 22
    assert result['remainingShifts'] == 0
    assert result['shiftsNeedingDoctors'] == []

    rows = list(DoctorSchedule.objects.all())
    per_slot = Counter((r.date, r.shift) for r in rows)
    assert len(per_slot) == 11
    assert set(per_slot.values()) == {2}
    assert not [r for r in rows if r.date.weekday() == 6]
    assert {r.shift for r in rows if r.date.weekday() == 5} == {'MORNING'}
    assert all(r.day_of_week == r.date.weekday() for r in rows)

    per_doctor = Counter(r.doctor_id for r in rows)
    assert sorted(per_doctor.values()) == [5, 5, 6, 6]


def test_generate_is_reproducible_with_seed(staff):
    scheduling.generate_week(doctors_per_shift=2, start_date=MONDAY, seed=7)
    first = sorted(DoctorSchedule.objects.values_list('doctor_id', 'date', 'shift'))
    DoctorSchedule.objects.all().delete()
    scheduling.generate_week(doctors_per_shift=2, start_date=MONDAY, seed=7)
    assert sorted(DoctorSchedule.objects.values_list('doctor_id', 'date', 'shift')) == first


def test_generate_with_uneven_staff(doctor):
    make_doctors(2)
    result = scheduling.generate_week(doctors_per_shift=2, start_date=MONDAY, seed=1)
    assert result['totalAssignedShifts'] + result['remainingShifts'] == 22
    assert DoctorSchedule.objects.count() == result['totalAssignedShifts']


def test_sunday_start_moves_to_monday(staff):
    result = scheduling.generate_week(doctors_per_shift=1, start_date=SUNDAY, seed=3)
    assert result['startDate'] == MONDAY.isoformat()
    assert not DoctorSchedule.objects.filter(date=SUNDAY).exists()


def test_generate_rejects_existing_week_and_bad_counts(staff):
    scheduling.generate_week(doctors_per_shift=2, start_date=MONDAY, seed=1)
    with pytest.raises(ValidationError, match='Schedule already exists for this week'):
        scheduling.generate_week(doctors_per_shift=2, start_date=MONDAY)
    with pytest.raises(ValidationError):
        scheduling.generate_week(doctors_per_shift=5, start_date=MONDAY + timedelta(days=7))
    with pytest.raises(ValidationError):
        scheduling.generate_week(doctors_per_shift=0, start_date=MONDAY + timedelta(days=7))


def test_generate_without_doctors():
    with pytest.raises(ValidationError, match='No available doctors found'):
        scheduling.generate_week(doctors_per_shift=1, start_date=MONDAY)


def test_generate_endpoint_is_admin_only(client_for, admin_user, staff):
    body = {'doctorsPerShift': 2, 'startDate': '2030-01-07', 'seed': 11}
    assert client_for(staff[0].user).post('/api/schedules/generate', body, format='json').status_code == 403
    r = client_for(admin_user).post('/api/schedules/generate', body, format='json')
    assert r.status_code == 201
    assert r.data['data']['totalAssignedShifts'] == 22

    r = client_for(staff[0].user).get('/api/schedules/on-duty?date=2030-01-07')
    assert r.status_code == 200
    assert len(r.data['data']) == 4


def test_time_off(client_for, admin_user, staff):
    scheduling.generate_week(doctors_per_shift=2, start_date=MONDAY, seed=5)
    row = DoctorSchedule.objects.filter(doctor=staff[0]).first()
    other = staff[1]
    body = {'date': row.date.isoformat(), 'shift': row.shift}

    r = client_for(other.user).post(f'/api/doctors/{staff[0].id}/time-off', body, format='json')
    assert r.status_code == 403

    r = client_for(staff[0].user).post(f'/api/doctors/{staff[0].id}/time-off', body, format='json')
    assert r.status_code == 200
    assert r.data['data']['isOff'] is True

    off = client_for(admin_user).get('/api/schedules/time-off?startDate=2030-01-07&endDate=2030-01-13')
    assert [item['id'] for item in off.data['data']] == [row.id]
    on_duty = scheduling.doctors_on_date(row.date)
    assert row.id not in [item['id'] for item in on_duty]


def test_time_off_for_missing_slot(staff):
    with pytest.raises(NotFound):
        scheduling.request_time_off(doctor_id=staff[0].id, day=MONDAY, shift='MORNING')


def test_assign_manually(staff):
    future = timezone.localdate() + timedelta(days=30)
    while future.weekday() >= 5:
        future += timedelta(days=1)
    rows = scheduling.assign_manually(day=future, shift='MORNING', doctor_ids=[staff[0].id, staff[1].id],
                                      doctors_per_shift=2)
    assert {r.doctor_id for r in rows} == {staff[0].id, staff[1].id}

    with pytest.raises(ValidationError, match='already fully staffed'):
        scheduling.assign_manually(day=future, shift='MORNING', doctor_ids=[staff[2].id], doctors_per_shift=2)
    with pytest.raises(ValidationError, match='Only 1 slot'):
        scheduling.assign_manually(day=future, shift='AFTERNOON', doctor_ids=[staff[2].id, staff[3].id],
                                   doctors_per_shift=1)
    with pytest.raises(ValidationError, match='not found'):
        scheduling.assign_manually(day=future, shift='AFTERNOON', doctor_ids=[999999], doctors_per_shift=2)


def test_assign_rejects_past_and_sunday(staff):
    with pytest.raises(ValidationError, match='Cannot assign shifts in the past'):
        scheduling.assign_manually(day=timezone.localdate() - timedelta(days=1), shift='MORNING',
                                   doctor_ids=[staff[0].id])
    with pytest.raises(ValidationError):
        scheduling.assign_manually(day=SUNDAY, shift='MORNING', doctor_ids=[staff[0].id])


def test_swap_shifts_endpoint(client_for, admin_user, staff):
    a, b = staff[0], staff[1]
    tuesday = MONDAY + timedelta(days=1)
    scheduling.assign_manually(day=MONDAY, shift='MORNING', doctor_ids=[a.id])
    scheduling.assign_manually(day=tuesday, shift='AFTERNOON', doctor_ids=[b.id])

    r = client_for(admin_user).post('/api/schedules/swap', {
        'doctor1': {'doctorId': a.id, 'date': MONDAY.isoformat(), 'shift': 'MORNING'},
        'doctor2': {'doctorId': b.id, 'date': tuesday.isoformat(), 'shift': 'AFTERNOON'},
    }, format='json')
    assert r.status_code == 200
    assert DoctorSchedule.objects.get(date=MONDAY, shift='MORNING').doctor_id == b.id
    assert DoctorSchedule.objects.get(date=tuesday, shift='AFTERNOON').doctor_id == a.id


def test_swap_rejects_same_doctor_and_missing_rows(staff):
    a = staff[0]
    scheduling.assign_manually(day=MONDAY, shift='MORNING', doctor_ids=[a.id])
    scheduling.assign_manually(day=MONDAY, shift='AFTERNOON', doctor_ids=[a.id])
    with pytest.raises(ValidationError, match='same doctor'):
        scheduling.swap_shifts({'doctorId': a.id, 'date': MONDAY, 'shift': 'MORNING'},
                               {'doctorId': a.id, 'date': MONDAY, 'shift': 'AFTERNOON'})
    with pytest.raises(ValidationError, match='has no schedule'):
        scheduling.swap_shifts({'doctorId': a.id, 'date': MONDAY, 'shift': 'MORNING'},
                               {'doctorId': staff[1].id, 'date': MONDAY, 'shift': 'MORNING'})


def test_generate_schedule_command(staff, capsys):
    call_command('generate_schedule', '--start', '2030-01-07', '--per-shift', '2', '--seed', '9')
    assert 'assigned=22 unfilled=0' in capsys.readouterr().out
    with pytest.raises(CommandError, match='already exists'):
        call_command('generate_schedule', '--start', '2030-01-07')
