from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from care.exceptions import Conflict
from care.models import PatientTreatment, User
from care.services import treatment_queries, treatment_rules, treatments
from care.services.medications import calculate_total, normalize_custom_medications

pytestmark = pytest.mark.django_db

VITAMIN_C = {'medicineName': 'Vitamin C', 'dosage': '1 tablet', 'frequency': 'daily',
             'durationValue': 10, 'durationUnit': 'DAY', 'price': 0.5}


def aware(*args):
    return timezone.make_aware(datetime(*args))


def make_treatment(patient, doctor, protocol=None, start=None, end=None, **extra):
    return PatientTreatment.objects.create(patient=patient, doctor=doctor, protocol=protocol,
                                           start_date=start or timezone.now(), end_date=end, **extra)


# ---------------------------------------------------------------------
# Custom medications & cost
# ---------------------------------------------------------------------
def test_normalize_accepts_json_string_and_defaults_duration():
    meds = normalize_custom_medications(
        '[{"name": "Zinc", "dosage": "1 tab", "frequency": "daily", "durationValue": 0}]')
    assert meds == [{'medicineName': 'Zinc', 'dosage': '1 tab', 'frequency': 'daily',
                     'durationValue': 1, 'durationUnit': 'DAY'}]


def test_normalize_drops_invalid_entries():
    raw = [
        VITAMIN_C,
        {'medicineName': 'No frequency', 'dosage': '1'},
        {'medicineName': 'Negative', 'dosage': '1', 'frequency': 'daily', 'durationValue': -3},
        'not a dict',
    ]
    meds = normalize_custom_medications(raw)
    assert [m['medicineName'] for m in meds] == ['Vitamin C']


def test_normalize_wraps_single_dict_and_ignores_garbage():
    assert len(normalize_custom_medications(VITAMIN_C)) == 1
    assert normalize_custom_medications('not json') == []
    assert normalize_custom_medications(42) == []


def test_calculate_total_uses_duration_units(protocol):
    weekly = {'medicineName': 'Iron', 'dosage': '1', 'frequency': 'daily', 'durationValue': 2,
              'durationUnit': 'WEEK', 'price': 1}
    assert calculate_total(protocol, None) == Decimal('21.50')
    assert calculate_total(protocol, normalize_custom_medications([weekly])) == Decimal('35.50')
    assert calculate_total(None, None) == Decimal('0.00')


# ---------------------------------------------------------------------
# Create & the single-active rule
# ---------------------------------------------------------------------
def test_create_computes_total_with_custom_medications(patient, doctor, protocol):
    t = treatments.create_treatment({'patientId': patient.id, 'doctorId': doctor.id, 'protocolId': protocol.id,
                                     'customMedications': [VITAMIN_C]})
    assert t.total == Decimal('26.50')
    assert t.custom_medications[0]['medicineName'] == 'Vitamin C'
    assert t.is_active


def test_create_rejects_custom_medications_without_protocol(client_for, doctor, patient):
    r = client_for(doctor.user).post('/api/patient-treatments', {
        'patientId': patient.id, 'doctorId': doctor.id, 'customMedications': [VITAMIN_C],
    }, format='json')
    assert r.status_code == 400
    assert r.data['ok'] is False
    assert r.data['error']['message'].startswith('Custom medications require a valid protocolId')


@pytest.mark.parametrize('payload, message', [
    ({'patientId': 'abc', 'doctorId': 1}, 'Invalid or missing numeric field: patientId'),
    ({'patientId': 999999, 'doctorId': None}, 'Invalid or missing numeric field: doctorId'),
])
def test_create_rejects_bad_ids(payload, message):
    with pytest.raises(ValidationError) as exc:
        treatments.create_treatment(payload)
    assert message in str(exc.value.detail)


def test_create_rejects_end_before_start(patient, doctor):
    with pytest.raises(ValidationError):
        treatments.create_treatment({'patientId': patient.id, 'doctorId': doctor.id,
                                     'startDate': '2030-01-10', 'endDate': '2030-01-01'})


def test_second_active_treatment_conflicts(client_for, doctor, patient, protocol):
    client = client_for(doctor.user)
    body = {'patientId': patient.id, 'doctorId': doctor.id, 'protocolId': protocol.id}
    assert client.post('/api/patient-treatments', body, format='json').status_code == 201
    r = client.post('/api/patient-treatments', body, format='json')
    assert r.status_code == 409
    assert r.data['error']['code'] == 'conflict'
    assert 'Only 1 active protocol per patient is allowed' in r.data['error']['message']


def test_auto_end_existing_ends_previous(doctor, patient, protocol):
    first = treatments.create_treatment({'patientId': patient.id, 'doctorId': doctor.id})
    second = treatments.create_treatment({'patientId': patient.id, 'doctorId': doctor.id,
                                          'protocolId': protocol.id, 'autoEndExisting': True})
    first.refresh_from_db()
    assert first.end_date is not None
    assert list(PatientTreatment.objects.active().filter(patient=patient)) == [second]


def test_ended_treatment_does_not_block_new_one(doctor, patient):
    make_treatment(patient, doctor, start=timezone.now() - timedelta(days=20),
                   end=timezone.now() - timedelta(days=10))
    t = treatments.create_treatment({'patientId': patient.id, 'doctorId': doctor.id})
    assert t.is_active


# ---------------------------------------------------------------------
# Update / status / delete
# ---------------------------------------------------------------------
def test_update_recomputes_total(client_for, doctor, patient, protocol):
    t = treatments.create_treatment({'patientId': patient.id, 'doctorId': doctor.id, 'protocolId': protocol.id})
    r = client_for(doctor.user).patch(f'/api/patient-treatments/{t.id}',
                                      {'notes': ' follow up ', 'customMedications': [VITAMIN_C]}, format='json')
    assert r.status_code == 200
    assert r.data['data']['total'] == 26.5
    assert r.data['data']['notes'] == 'follow up'


def test_status_complete_then_reactivate_conflicts(doctor, patient):
    first = treatments.create_treatment({'patientId': patient.id, 'doctorId': doctor.id})
    done = treatments.change_status(first.id, treatments.STATUS_COMPLETED)
    assert not done.is_active
    treatments.create_treatment({'patientId': patient.id, 'doctorId': doctor.id})
    with pytest.raises(Conflict):
        treatments.change_status(first.id, treatments.STATUS_ACTIVE)


def test_soft_delete_and_restore(client_for, admin_user, doctor, patient):
    t = treatments.create_treatment({'patientId': patient.id, 'doctorId': doctor.id})
    client = client_for(admin_user)
    assert client.delete(f'/api/patient-treatments/{t.id}').status_code == 200
    assert client.get(f'/api/patient-treatments/{t.id}').status_code == 404
    r = client.post(f'/api/patient-treatments/{t.id}/restore')
    assert r.status_code == 200
    assert r.data['data']['deletedAt'] is None


def test_restore_conflicts_with_newer_active(doctor, patient):
    t = treatments.create_treatment({'patientId': patient.id, 'doctorId': doctor.id})
    treatments.soft_delete(t.id)
    treatments.create_treatment({'patientId': patient.id, 'doctorId': doctor.id})
    with pytest.raises(Conflict):
        treatments.restore(t.id)


# ---------------------------------------------------------------------
# Access control
# ---------------------------------------------------------------------
def test_patient_reads_only_own_treatments(client_for, doctor, patient, other_patient):
    mine = make_treatment(patient, doctor)
    theirs = make_treatment(other_patient, doctor)
    client = client_for(patient)
    assert client.get(f'/api/patient-treatments/{mine.id}').status_code == 200
    assert client.get(f'/api/patient-treatments/{theirs.id}').status_code == 403
    assert client.get(f'/api/patient-treatments/patient/{patient.id}').status_code == 200
    assert client.get(f'/api/patient-treatments/patient/{other_patient.id}').status_code == 403


def test_patient_cannot_create_or_list_all(client_for, doctor, patient):
    client = client_for(patient)
    assert client.get('/api/patient-treatments').status_code == 403
    r = client.post('/api/patient-treatments', {'patientId': patient.id, 'doctorId': doctor.id}, format='json')
    assert r.status_code == 403


def test_anonymous_is_rejected(client_for):
    assert client_for().get('/api/patient-treatments').status_code in (401, 403)


# ---------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------
def test_date_range_overlap_and_single_bounds(doctor, patient, other_patient, admin_user):
    t1 = make_treatment(patient, doctor, start=aware(2030, 1, 1), end=aware(2030, 1, 10))
    t2 = make_treatment(other_patient, doctor, start=aware(2030, 1, 5))
    t3 = make_treatment(admin_user, doctor, start=aware(2030, 2, 1), end=aware(2030, 2, 10))

    items, meta = treatment_queries.list_treatments({'startDate': '2030-01-08', 'endDate': '2030-01-20'})
    assert meta is None
    assert {t.id for t in items} == {t1.id, t2.id}

    items, _ = treatment_queries.list_treatments({'startDate': '2030-01-05'})
    assert {t.id for t in items} == {t2.id, t3.id}

    items, _ = treatment_queries.list_treatments({'endDate': '2030-01-31'})
    assert {t.id for t in items} == {t1.id}


def test_list_pagination_meta(client_for, doctor, patient, other_patient):
    make_treatment(patient, doctor)
    make_treatment(other_patient, doctor)
    r = client_for(doctor.user).get('/api/patient-treatments?page=1&limit=1')
    assert r.status_code == 200
    assert len(r.data['data']) == 1
    assert r.data['pagination'] == {'total': 2, 'page': 1, 'limit': 1, 'totalPages': 2}
    r = client_for(doctor.user).get('/api/patient-treatments?limit=500')
    assert r.data['pagination']['limit'] == 100


def test_by_patient_excludes_completed_on_request(doctor, patient):
    make_treatment(patient, doctor, start=aware(2020, 1, 1), end=aware(2020, 2, 1))
    current = make_treatment(patient, doctor)
    items, _ = treatment_queries.treatments_by_patient(patient.id, {'includeCompleted': 'false'})
    assert [t.id for t in items] == [current.id]
    items, _ = treatment_queries.treatments_by_patient(patient.id, {'sortBy': 'startDate', 'sortOrder': 'asc'})
    assert items[-1].id == current.id
    with pytest.raises(ValidationError):
        treatment_queries.treatments_by_patient(patient.id, {'sortBy': 'nope'})


def test_search_requires_query_and_is_paginated(client_for, doctor, patient):
    make_treatment(patient, doctor, notes='Needs viral load check')
    client = client_for(doctor.user)
    assert client.get('/api/patient-treatments/search').status_code == 400
    r = client.get('/api/patient-treatments/search?q=Lan')
    assert r.status_code == 200
    assert len(r.data['data']) == 1
    assert r.data['pagination']['total'] == 1
    assert client.get('/api/patient-treatments/search?q=viral').data['pagination']['total'] == 1


def test_by_doctor_rejects_non_numeric_id(client_for, doctor):
    r = client_for(doctor.user).get('/api/patient-treatments/doctor/abc')
    assert r.status_code == 400


# ---------------------------------------------------------------------
# Single protocol rule helpers
# ---------------------------------------------------------------------
def test_validate_rule_and_end_active(doctor, patient):
    make_treatment(patient, doctor, start=timezone.now() - timedelta(days=3))
    make_treatment(patient, doctor)
    report = treatments.validate_single_protocol_rule(patient.id)
    assert report['isValid'] is False
    assert report['activeTreatmentCount'] == 2

    result = treatments.end_active_treatments(patient.id)
    assert result['endedCount'] == 2
    assert treatments.validate_single_protocol_rule(patient.id)['isValid'] is True


def test_fix_violations_keeps_newest(doctor, patient):
    old = make_treatment(patient, doctor, start=timezone.now() - timedelta(days=5))
    new = make_treatment(patient, doctor, start=timezone.now() - timedelta(days=1))

    violations = treatment_rules.detect_violations()
    assert [v['patientId'] for v in violations] == [patient.id]

    dry = treatment_rules.fix_violations(dry_run=True)
    assert dry['treatmentsEnded'] == 1
    assert dry['actions'][0]['keptTreatmentId'] == new.id
    old.refresh_from_db()
    assert old.end_date is None

    applied = treatment_rules.fix_violations(dry_run=False)
    assert applied['treatmentsEnded'] == 1
    old.refresh_from_db()
    new.refresh_from_db()
    assert old.end_date is not None and new.end_date is None
    assert treatment_rules.detect_violations() == []


# ---------------------------------------------------------------------
# Preview & bulk
# ---------------------------------------------------------------------
def test_preview_cost_breakdown(client_for, doctor, protocol):
    r = client_for(doctor.user).post('/api/patient-treatments/preview-cost', {
        'protocolId': protocol.id, 'customMedications': [VITAMIN_C],
        'startDate': '2030-01-01', 'endDate': '2030-01-15',
    }, format='json')
    assert r.status_code == 200
    data = r.data['data']
    assert data['isValid'] is True
    assert data['calculatedTotal'] == 26.5
    assert data['breakdown']['protocolCost'] == 21.5
    assert data['breakdown']['customMedicationCost'] == 5.0
    assert data['breakdown']['durationDays'] == 14


def test_preview_cost_unknown_protocol_is_invalid():
    result = treatments.preview_cost({'protocolId': 987654})
    assert result['isValid'] is False
    assert 'Protocol with ID 987654 not found' in result['warnings']


def test_bulk_rejects_duplicate_patients(client_for, doctor, patient):
    item = {'patientId': patient.id, 'doctorId': doctor.id}
    r = client_for(doctor.user).post('/api/patient-treatments/bulk', {'items': [item, item]}, format='json')
    assert r.status_code == 400
    assert 'has 2 treatments in bulk request' in r.data['error']['message']


def test_bulk_continue_on_error_collects_failures(doctor, patient, other_patient):
    result = treatments.bulk_create([
        {'patientId': patient.id, 'doctorId': doctor.id},
        {'patientId': other_patient.id, 'doctorId': 999999},
    ], continue_on_error=True)
    assert result['summary'] == {'requested': 2, 'created': 1, 'failed': 1}
    assert result['errors'][0]['index'] == 1
    assert 'Doctor with ID 999999 not found' in result['errors'][0]['message']


def test_bulk_without_continue_creates_nothing_on_error(doctor, patient, other_patient):
    with pytest.raises(ValidationError):
        treatments.bulk_create([
            {'patientId': patient.id, 'doctorId': doctor.id},
            {'patientId': other_patient.id, 'doctorId': 999999},
        ])
    assert PatientTreatment.objects.count() == 0


def test_bulk_counts_existing_active_as_error(doctor, patient, other_patient):
    make_treatment(patient, doctor)
    result = treatments.bulk_create([
        {'patientId': patient.id, 'doctorId': doctor.id},
        {'patientId': other_patient.id, 'doctorId': doctor.id},
    ], continue_on_error=True)
    assert result['summary']['created'] == 1
    assert result['errors'][0]['patientId'] == patient.id


@pytest.mark.parametrize('validate_first', [True, False])
def test_bulk_reports_original_indexes_across_batches(doctor, validate_first):
    patients = [User.objects.create_user(username=f'bulk{i}', password='P@ssw0rd1') for i in range(13)]
    items = [{'patientId': p.id, 'doctorId': doctor.id} for p in patients]
    for failing in (2, 12):
        items[failing]['doctorId'] = 999999

    result = treatments.bulk_create(items, continue_on_error=True, validate_before_create=validate_first)

    assert result['summary'] == {'requested': 13, 'created': 11, 'failed': 2}
    assert [e['index'] for e in result['errors']] == [2, 12]
    assert [e['patientId'] for e in result['errors']] == [patients[2].id, patients[12].id]
    assert set(PatientTreatment.objects.values_list('patient_id', flat=True)) == \
        {p.id for i, p in enumerate(patients) if i not in (2, 12)}
