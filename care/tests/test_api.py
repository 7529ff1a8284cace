from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from django.utils import timezone
from rest_framework.test import APIClient

from care.models import Appointment, Doctor, Medicine, PatientTreatment, User

pytestmark = pytest.mark.django_db


# ---------------------------------------------------------------------
# Doctors
# ---------------------------------------------------------------------
def test_doctor_list_is_cached_until_a_write(client_for, admin_user, patient, doctor):
    client = client_for(patient)
    r = client.get('/api/doctors')
    assert r.status_code == 200
    assert [d['specialization'] for d in r.data['data']] == ['Infectious diseases']

    # bypasses the service layer, so the cached page is still served
    Doctor.objects.filter(pk=doctor.pk).update(specialization='Cardiology')
    assert client.get('/api/doctors').data['data'][0]['specialization'] == 'Infectious diseases'

    r = client_for(admin_user).patch(f'/api/doctors/{doctor.id}', {'isAvailable': False}, format='json')
    assert r.status_code == 200
    fresh = client.get('/api/doctors').data['data'][0]
    assert fresh['specialization'] == 'Cardiology'
    assert fresh['isAvailable'] is False
    assert client.get('/api/doctors?availableOnly=1').data['data'] == []


def test_doctor_search_and_pagination(client_for, patient, doctor):
    r = client_for(patient).get('/api/doctors?q=minh&page=1&limit=5')
    assert r.data['pagination']['total'] == 1
    assert r.data['data'][0]['name'] == 'Minh Tran'
    assert client_for(patient).get('/api/doctors?q=nobody').data['data'] == []


def test_only_admin_creates_doctors(client_for, admin_user, doctor):
    user = User.objects.create_user(username='newdoc', password='P@ssw0rd1', role=User.ROLE_STAFF)
    body = {'userId': user.id, 'specialization': 'Pediatrics', 'certifications': ['MD']}
    assert client_for(doctor.user).post('/api/doctors', body, format='json').status_code == 403

    r = client_for(admin_user).post('/api/doctors', body, format='json')
    assert r.status_code == 201
    assert r.data['data']['certifications'] == ['MD']
    user.refresh_from_db()
    assert user.role == User.ROLE_DOCTOR

    assert client_for(admin_user).post('/api/doctors', body, format='json').status_code == 409


def test_doctor_with_treatments_cannot_be_deleted(client_for, admin_user, doctor, patient):
    PatientTreatment.objects.create(patient=patient, doctor=doctor, start_date=timezone.now())
    r = client_for(admin_user).delete(f'/api/doctors/{doctor.id}')
    assert r.status_code == 409


# ---------------------------------------------------------------------
# Protocols & medicines
# ---------------------------------------------------------------------
def test_protocol_crud(client_for, doctor, patient):
    para = Medicine.objects.create(name='Paracetamol', price=Decimal('1.50'))
    tenofovir = Medicine.objects.create(name='Tenofovir', price=Decimal('12.00'))
    client = client_for(doctor.user)
    r = client.post('/api/protocols', {
        'name': 'HIV first line',
        'targetDisease': 'HIV',
        'medicines': [{'medicineId': tenofovir.id, 'dosage': '300mg', 'durationValue': 1, 'durationUnit': 'MONTH',
                       'schedule': 'MORNING'}],
    }, format='json')
    assert r.status_code == 201
    protocol = r.data['data']
    assert protocol['estimatedCost'] == 360.0
    assert protocol['createdBy'] == doctor.user.id

    pid = protocol['id']
    r = client.post(f'/api/protocols/{pid}/medicines', {'medicineId': para.id, 'dosage': '1 tablet',
                                                        'durationValue': 5}, format='json')
    assert r.status_code == 201
    assert len(r.data['data']['medicines']) == 2
    dup = client.post(f'/api/protocols/{pid}/medicines', {'medicineId': para.id, 'dosage': '1'}, format='json')
    assert dup.status_code == 409

    r = client.patch(f'/api/protocols/{pid}/medicines/{para.id}', {'durationValue': 10}, format='json')
    assert r.data['data']['estimatedCost'] == 375.0
    r = client.delete(f'/api/protocols/{pid}/medicines/{para.id}')
    assert len(r.data['data']['medicines']) == 1

    clone = client.post(f'/api/protocols/{pid}/clone', {}, format='json')
    assert clone.status_code == 201
    assert clone.data['data']['name'] == 'HIV first line (Copy)'
    assert len(clone.data['data']['medicines']) == 1

    assert len(client.get(f'/api/protocols/created-by/{doctor.user.id}').data['data']) == 2
    assert client_for(patient).get(f'/api/protocols/{pid}').status_code == 200
    assert client_for(patient).post('/api/protocols', {'name': 'x'}, format='json').status_code == 403


def test_protocol_rejects_duplicate_medicines(client_for, doctor):
    med = Medicine.objects.create(name='Tenofovir', price=Decimal('12.00'))
    line = {'medicineId': med.id, 'dosage': '300mg'}
    r = client_for(doctor.user).post('/api/protocols', {'name': 'Dup', 'medicines': [line, line]}, format='json')
    assert r.status_code == 400


def test_protocol_usage_and_popularity(client_for, doctor, patient, other_patient, protocol):
    PatientTreatment.objects.create(patient=patient, doctor=doctor, protocol=protocol, start_date=timezone.now())
    PatientTreatment.objects.create(patient=other_patient, doctor=doctor, protocol=protocol,
                                    start_date=timezone.now() - timedelta(days=30),
                                    end_date=timezone.now() - timedelta(days=20))
    client = client_for(doctor.user)
    usage = client.get(f'/api/protocols/{protocol.id}/usage').data['data']
    assert usage['totalTreatments'] == 2
    assert usage['activeTreatments'] == 1
    assert usage['uniquePatients'] == 2
    assert sum(line['cost'] for line in usage['costBreakdown']) == 21.5

    popular = client.get('/api/protocols/popular?limit=3').data['data']
    assert popular[0]['id'] == protocol.id and popular[0]['usageCount'] == 2

    assert client_for(doctor.user).delete(f'/api/protocols/{protocol.id}').status_code == 409


def test_medicine_filters_and_delete_guard(client_for, admin_user, protocol):
    client = client_for(admin_user)
    r = client.get('/api/medicines?minPrice=1.75')
    assert [m['name'] for m in r.data['data']] == ['Amoxicillin']
    assert client.get('/api/medicines?minPrice=5&maxPrice=1').status_code == 400

    used = Medicine.objects.get(name='Paracetamol')
    assert client.delete(f'/api/medicines/{used.id}').status_code == 409

    r = client.post('/api/medicines', {'name': 'Zinc', 'unit': 'tablet', 'price': '0.80'}, format='json')
    assert r.status_code == 201
    assert client.delete(f"/api/medicines/{r.data['data']['id']}").status_code == 200


# ---------------------------------------------------------------------
# Blogs
# ---------------------------------------------------------------------
def test_drafts_are_hidden_from_the_public(client_for, doctor):
    staff = client_for(doctor.user)
    r = staff.post('/api/blogs', {'title': 'Living with HIV', 'content': '<p>Hi</p><script>alert(1)</script>'},
                   format='json')
    assert r.status_code == 201
    post = r.data['data']
    assert post['isPublished'] is False
    assert post['slug'] == 'living-with-hiv'
    assert '<script>' not in post['content']

    public = APIClient()
    assert public.get('/api/blogs').data['data'] == []
    assert public.get(f"/api/blogs/{post['id']}").status_code == 404
    assert len(staff.get('/api/blogs').data['data']) == 1

    staff.patch(f"/api/blogs/{post['id']}", {'isPublished': True}, format='json')
    assert public.get(f"/api/blogs/{post['id']}").status_code == 200


def test_blog_writes_require_staff(client_for, patient):
    body = {'title': 'Hello', 'content': 'text'}
    assert APIClient().post('/api/blogs', body, format='json').status_code == 403
    assert client_for(patient).post('/api/blogs', body, format='json').status_code == 403


def test_blog_slugs_are_unique_and_titles_validated(client_for, doctor):
    staff = client_for(doctor.user)
    first = staff.post('/api/blogs', {'title': 'Hello world', 'content': 'a'}, format='json').data['data']
    second = staff.post('/api/blogs', {'title': 'Hello world', 'content': 'b'}, format='json').data['data']
    assert (first['slug'], second['slug']) == ('hello-world', 'hello-world-2')
    assert staff.post('/api/blogs', {'title': 'Hi', 'content': 'c'}, format='json').status_code == 400


def test_categories_filter_and_scope_posts(client_for, doctor):
    staff = client_for(doctor.user)
    news = staff.post('/api/blog-categories', {'title': 'News'}, format='json').data['data']
    staff.post('/api/blog-categories', {'title': 'Internal', 'isPublished': False}, format='json')
    staff.post('/api/blogs', {'title': 'Clinic news', 'content': 'x', 'categoryId': news['id'],
                              'isPublished': True}, format='json')
    staff.post('/api/blogs', {'title': 'Other post', 'content': 'y', 'isPublished': True}, format='json')

    public = APIClient()
    assert [c['title'] for c in public.get('/api/blog-categories').data['data']] == ['News']
    assert len(staff.get('/api/blog-categories').data['data']) == 2
    scoped = public.get(f"/api/blogs?categoryId={news['id']}").data['data']
    assert [p['title'] for p in scoped] == ['Clinic news']


# ---------------------------------------------------------------------
# Meeting records
# ---------------------------------------------------------------------
def _record_body(appointment, **extra):
    start = timezone.make_aware(datetime(2030, 1, 7, 9, 0))
    body = {'appointmentId': appointment.id, 'title': 'Follow-up call', 'content': 'Discussed side effects',
            'startTime': start.isoformat(), 'endTime': (start + timedelta(minutes=30)).isoformat()}
    body.update(extra)
    return body


def test_meeting_records_only_for_online_appointments(client_for, doctor, patient):
    offline = Appointment.objects.create(user=patient, doctor=doctor, appointment_time=timezone.now())
    r = client_for(doctor.user).post('/api/meeting-records', _record_body(offline), format='json')
    assert r.status_code == 400
    assert r.data['error']['message'] == 'Appointment is offline'


def test_meeting_record_access(client_for, doctor, patient, other_patient):
    online = Appointment.objects.create(user=patient, doctor=doctor, appointment_time=timezone.now(),
                                        type=Appointment.TYPE_ONLINE)
    staff = client_for(doctor.user)
    r = staff.post('/api/meeting-records', _record_body(online), format='json')
    assert r.status_code == 201
    record = r.data['data']
    assert record['patientId'] == patient.id
    assert record['recordedById'] == doctor.user.id

    assert client_for(patient).get(f"/api/meeting-records/{record['id']}").status_code == 200
    assert client_for(other_patient).get(f"/api/meeting-records/{record['id']}").status_code == 403
    assert client_for(patient).get('/api/meeting-records').status_code == 403
    assert len(client_for(patient).get(f'/api/meeting-records/patient/{patient.id}').data['data']) == 1
    assert client_for(other_patient).get(f'/api/meeting-records/patient/{patient.id}').status_code == 403

    assert staff.get(f'/api/meeting-records/appointment/{online.id}').data['data']['id'] == record['id']
    assert staff.get('/api/meeting-records?q=side').data['data'][0]['id'] == record['id']


def test_meeting_record_time_order(client_for, doctor, patient):
    online = Appointment.objects.create(user=patient, doctor=doctor, appointment_time=timezone.now(),
                                        type=Appointment.TYPE_ONLINE)
    staff = client_for(doctor.user)
    start = timezone.make_aware(datetime(2030, 1, 7, 9, 0))
    body = _record_body(online, endTime=(start - timedelta(hours=1)).isoformat())
    assert staff.post('/api/meeting-records', body, format='json').status_code == 400
    assert staff.get(f'/api/meeting-records/appointment/{online.id}').status_code == 404
