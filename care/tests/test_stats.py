from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from care.models import PatientTreatment
from care.services import treatment_stats, treatments

pytestmark = pytest.mark.django_db

VITAMIN_C = {'medicineName': 'Vitamin C', 'dosage': '1 tablet', 'frequency': 'daily',
             'durationValue': 10, 'durationUnit': 'DAY', 'price': 0.5}


def test_patient_and_doctor_stats(patient, other_patient, doctor):
    now = timezone.now()
    PatientTreatment.objects.create(patient=patient, doctor=doctor, start_date=now - timedelta(days=20),
                                    end_date=now - timedelta(days=10), total=Decimal('10.00'))
    PatientTreatment.objects.create(patient=patient, doctor=doctor, start_date=now, total=Decimal('21.50'))
    PatientTreatment.objects.create(patient=other_patient, doctor=doctor, start_date=now, total=Decimal('5.00'))

    stats = treatment_stats.patient_stats(patient.id)
    assert stats['totalTreatments'] == 2
    assert stats['activeTreatments'] == 1
    assert stats['completedTreatments'] == 1
    assert stats['totalCost'] == 31.5
    assert stats['averageCost'] == 15.75

    workload = treatment_stats.doctor_workload(str(doctor.id))
    assert workload['totalTreatments'] == 3
    assert workload['uniquePatients'] == 2
    assert workload['averageTreatmentsPerPatient'] == 1.5


def test_general_stats_are_cached_until_refresh(doctor, patient, other_patient, protocol):
    treatments.create_treatment({'patientId': patient.id, 'doctorId': doctor.id, 'protocolId': protocol.id})
    first = treatment_stats.general_stats()
    assert first['totalTreatments'] == 1
    assert first['topProtocols'][0]['protocolName'] == 'Fever Treatment'
    assert first['topProtocols'][0]['percentage'] == 100
    assert len(first['monthlyTrends']) == 12
    assert first['monthlyTrends'][-1]['newTreatments'] == 1

    PatientTreatment.objects.create(patient=other_patient, doctor=doctor, start_date=timezone.now())
    assert treatment_stats.general_stats()['totalTreatments'] == 1
    assert treatment_stats.general_stats(refresh=True)['totalTreatments'] == 2


def test_creating_through_api_invalidates_general_stats(client_for, doctor, patient):
    client = client_for(doctor.user)
    assert client.get('/api/treatment-stats/general').data['data']['totalTreatments'] == 0
    client.post('/api/patient-treatments', {'patientId': patient.id, 'doctorId': doctor.id}, format='json')
    assert client.get('/api/treatment-stats/general').data['data']['totalTreatments'] == 1


def test_custom_medication_stats_and_comparison(doctor, patient, other_patient, protocol):
    treatments.create_treatment({'patientId': patient.id, 'doctorId': doctor.id, 'protocolId': protocol.id,
                                 'customMedications': [VITAMIN_C]})
    treatments.create_treatment({'patientId': other_patient.id, 'doctorId': doctor.id, 'protocolId': protocol.id})

    stats = treatment_stats.custom_medication_stats()
    assert stats['treatmentsWithCustomMeds'] == 1
    assert stats['customMedicationUsageRate'] == 50
    assert stats['topCustomMedicines'] == [{'name': 'Vitamin C', 'count': 1}]

    comparison = treatment_stats.protocol_comparison(protocol.id)
    assert comparison['totalTreatments'] == 2
    assert comparison['standardTreatments']['count'] == 1
    assert comparison['customTreatments']['averageCost'] == 26.5
    assert comparison['customizationRate'] == 50


def test_cost_analysis_splits_custom_cost(doctor, patient, other_patient, protocol):
    treatments.create_treatment({'patientId': patient.id, 'doctorId': doctor.id, 'protocolId': protocol.id,
                                 'customMedications': [VITAMIN_C]})
    unpriced = dict(VITAMIN_C, medicineName='Zinc')
    del unpriced['price']
    t = treatments.create_treatment({'patientId': other_patient.id, 'doctorId': doctor.id,
                                     'protocolId': protocol.id, 'customMedications': [unpriced]})

    result = treatment_stats.cost_analysis({})
    assert result['treatmentCount'] == 2
    assert result['totalCost'] == 48.0
    assert result['breakdown']['customMedicationCost'] == 5.0
    assert result['breakdown']['standardCost'] == 43.0
    assert result['breakdown']['byProtocol'][0]['count'] == 2
    assert f'Treatment {t.id} has custom medications without price' in result['warnings']

    only_patient = treatment_stats.cost_analysis({'patientId': str(patient.id)})
    assert only_patient['treatmentCount'] == 1


def test_compliance_from_treatment_coverage(patient, doctor):
    now = timezone.now()
    PatientTreatment.objects.create(patient=patient, doctor=doctor, start_date=now - timedelta(days=10),
                                    end_date=now - timedelta(days=5))
    PatientTreatment.objects.create(patient=patient, doctor=doctor, start_date=now - timedelta(days=2))

    result = treatment_stats.compliance_stats(patient.id, now=now)
    assert result['periodDays'] == 10
    assert result['missedDoses'] == 3
    assert result['adherence'] == 70
    assert result['adherenceLevel'] == 'suboptimal'
    assert result['treatmentCount'] == 2


def test_compliance_endpoint_is_patient_scoped(client_for, patient, other_patient, doctor):
    PatientTreatment.objects.create(patient=patient, doctor=doctor, start_date=timezone.now() - timedelta(days=3))
    client = client_for(patient)
    r = client.get(f'/api/treatment-stats/compliance/{patient.id}')
    assert r.status_code == 200
    assert r.data['data']['adherence'] == 100
    assert client.get(f'/api/treatment-stats/compliance/{other_patient.id}').status_code == 403
    assert client.get('/api/treatment-stats/general').status_code == 403
