from datetime import datetime

import pytest
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from care.models import PatientTreatment
from care.services import clinical


def aware(*args):
    return timezone.make_aware(datetime(*args))


@pytest.mark.parametrize('missed, level, risk, interventions', [
    (3, 'excellent', 'low', 0),
    (10, 'good', 'medium', 1),
    (20, 'suboptimal', 'high', 2),
    (40, 'poor', 'critical', 3),
])
def test_adherence_levels(missed, level, risk, interventions):
    result = clinical.assess_adherence(100, missed)
    assert result['percentage'] == 100 - missed
    assert result['level'] == level
    assert result['riskLevel'] == risk
    assert len(result['interventions']) == interventions


def test_adherence_rejects_bad_counts():
    with pytest.raises(ValidationError):
        clinical.assess_adherence(10, 11)
    with pytest.raises(ValidationError):
        clinical.assess_adherence('ten', 1)
    with pytest.raises(ValidationError):
        clinical.assess_adherence(-1, 0)


def test_organ_function_grades():
    result = clinical.assess_organ_function({'alt': 130, 'ast': 30}, {'egfr': 50})
    assert result['liverFunction'] == 'severe'
    assert result['kidneyFunction'] == 'moderate'
    assert result['contraindications'] == ['Nevirapine']
    assert result['requiresDoseAdjustment'] is True
    assert 'Reduce tenofovir dose by 50%' not in result['doseAdjustments']

    normal = clinical.assess_organ_function({'alt': 20}, {'egfr': 100, 'creatinine': 0.9})
    assert normal['liverFunction'] == normal['kidneyFunction'] == 'normal'
    assert normal['requiresDoseAdjustment'] is False


def test_severe_kidney_reduces_tenofovir():
    result = clinical.assess_organ_function(None, {'creatinine': 3.5})
    assert result['kidneyFunction'] == 'severe'
    assert 'Reduce tenofovir dose by 50%' in result['doseAdjustments']


def test_pregnancy_safety():
    male = clinical.assess_pregnancy_safety(gender='male')
    assert male['isSafe'] is True and male['pregnancyCategory'] == 'N/A'

    pregnant = clinical.assess_pregnancy_safety(gender='Female', is_pregnant=True,
                                                protocol_id=clinical.EFAVIRENZ_PROTOCOL_ID)
    assert pregnant['isSafe'] is False
    assert pregnant['pregnancyCategory'] == 'B'
    assert pregnant['contraindications'] == ['Efavirenz']
    assert 'Obstetric consultation' in pregnant['monitoringRequirements']

    nursing = clinical.assess_pregnancy_safety(gender='f', is_breastfeeding=True, protocol_id=7)
    assert nursing['isSafe'] is True
    assert 'Monitor infant for drug side effects' in nursing['monitoringRequirements']


def test_resistance_scoring():
    result = clinical.assess_resistance(resistance_level='high', mutations=['m184v'])
    assert result['resistantMedications'] == ['Lamivudine', 'Emtricitabine']
    assert result['effectivenessScore'] == 10
    assert result['isEffective'] is False
    assert result['requiresGenotyping'] is True
    assert result['recommendations']

    clean = clinical.assess_resistance()
    assert clean['effectivenessScore'] == 100
    assert clean['isEffective'] is True
    assert clean['requiresGenotyping'] is False

    assert clinical.assess_resistance(previous_failed_regimens=['TDF/3TC/EFV'])['requiresGenotyping'] is True
    with pytest.raises(ValidationError):
        clinical.assess_resistance(resistance_level='extreme')


def test_repeated_mutation_penalises_each_hit():
    result = clinical.assess_resistance(mutations=['M184V', 'M184V'])
    assert result['effectivenessScore'] == 40
    assert result['resistantMedications'] == ['Lamivudine', 'Emtricitabine']
    assert result['isEffective'] is False


@pytest.mark.parametrize('hours, window, valid', [
    (10, 'Optimal PEP window (<24 hours)', True),
    (48, 'Late PEP initiation (24-72 hours)', True),
    (80, 'PEP window expired (>72 hours)', False),
])
def test_pep_windows(hours, window, valid):
    result = clinical.assess_emergency_protocol(treatment_type='pep', hours_since_exposure=hours)
    assert result['timeWindow'] == window
    assert result['isValidTiming'] is valid
    assert result['urgencyLevel'] == 'emergency'


def test_emergency_protocol_other_types():
    with pytest.raises(ValidationError):
        clinical.assess_emergency_protocol(treatment_type='pep')
    prep = clinical.assess_emergency_protocol(treatment_type='PrEP')
    assert prep['urgencyLevel'] == 'routine'
    assert 'HIV testing every 3 months' in prep['followUpRequirements']
    with pytest.raises(ValidationError):
        clinical.assess_emergency_protocol(treatment_type='other')


@pytest.mark.parametrize('gap, continuous, risk', [
    (None, True, 'low'),
    (5, True, 'low'),
    (10, False, 'medium'),
    (20, False, 'high'),
    (40, False, 'critical'),
])
def test_gap_assessment(gap, continuous, risk):
    result = clinical.assess_gap(gap)
    assert result['isContinuous'] is continuous
    assert result['riskLevel'] == risk


@pytest.mark.django_db
def test_continuity_from_history(patient, doctor):
    first = PatientTreatment.objects.create(patient=patient, doctor=doctor, start_date=aware(2030, 1, 1),
                                            end_date=aware(2030, 1, 10))
    PatientTreatment.objects.create(patient=patient, doctor=doctor, start_date=aware(2030, 1, 25))
    result = clinical.check_continuity(patient.id)
    assert result['gapDays'] == 15
    assert result['riskLevel'] == 'high'
    assert result['previousTreatmentId'] == first.id

    at_first = clinical.check_continuity(patient.id, aware(2030, 1, 1))
    assert at_first['gapDays'] is None


@pytest.mark.django_db
def test_continuity_without_history(patient):
    with pytest.raises(NotFound):
        clinical.check_continuity(patient.id)


@pytest.mark.django_db
def test_clinical_endpoints(client_for, doctor, patient):
    client = client_for(doctor.user)
    r = client.post('/api/clinical/adherence', {'totalDoses': 60, 'missedDoses': 3}, format='json')
    assert r.status_code == 200
    assert r.data['data']['level'] == 'excellent'

    r = client.post('/api/clinical/adherence', {'totalDoses': 5, 'missedDoses': 9}, format='json')
    assert r.status_code == 400

    r = client.post('/api/clinical/emergency-protocol', {'treatmentType': 'pep'}, format='json')
    assert r.status_code == 400

    r = client.post('/api/clinical/organ-function', {'kidneyFunction': {'egfr': 25}}, format='json')
    assert r.data['data']['kidneyFunction'] == 'severe'

    assert client_for(patient).post('/api/clinical/adherence', {'totalDoses': 1, 'missedDoses': 0},
                                    format='json').status_code == 403
