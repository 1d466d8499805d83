from datetime import datetime, timedelta
from medpractice.extensions import db
from medpractice.models.appointment_models import Appointment
from medpractice.models.patient_models import Patient
from medpractice.models.system_models import AuditLog
from conftest import auth_headers, make_document, make_note, make_patient

NEW_PATIENT = {
    'name': 'João Pereira',
    'cpf': '529.982.247-25',
    'birth_date': '1975-02-01',
    'gender': 'male',
    'phone': '(21) 98888-1234',
    'allergies': ['Dipirona'],
}


def test_create_patient_encrypts_cpf(client, doctor_headers):
    response = client.post('/api/patients', headers=doctor_headers, json=NEW_PATIENT)

    assert response.status_code == 201
    body = response.get_json()['patient']
    assert body['cpf'] == '529.982.247-25'
    assert body['phone'] == '21988881234'

    stored = db.session.get(Patient, body['id'])
    assert '52998224725' not in stored.cpf
    assert stored.get_cpf() == '52998224725'
    assert Patient.find_by_cpf('52998224725').id == stored.id


def test_create_patient_validation(client, doctor_headers, patient):
    response = client.post('/api/patients', headers=doctor_headers, json={'name': 'Only Name'})
    assert response.status_code == 400
    assert 'Missing required fields' in response.get_json()['error']

    response = client.post('/api/patients', headers=doctor_headers, json={**NEW_PATIENT, 'gender': 'x'})
    assert response.status_code == 400

    response = client.post('/api/patients', headers=doctor_headers, json={**NEW_PATIENT, 'cpf': '123'})
    assert response.status_code == 400

    # Same digits as the fixture patient, formatted differently
    response = client.post('/api/patients', headers=doctor_headers, json={**NEW_PATIENT, 'cpf': '11144477735'})
    assert response.status_code == 409


def test_list_and_search(client, doctor_headers, patient):
    make_patient(name='Carlos Lima', cpf='529.982.247-25', gender='male')

    response = client.get('/api/patients?search=carlos', headers=doctor_headers)
    assert response.status_code == 200
    body = response.get_json()
    assert [p['name'] for p in body['patients']] == ['Carlos Lima']
    assert body['pagination']['total'] == 1

    response = client.get('/api/patients?limit=1&page=2', headers=doctor_headers)
    body = response.get_json()
    assert body['pagination'] == {'current_page': 2, 'per_page': 1, 'total': 2, 'total_pages': 2}
    assert len(body['patients']) == 1


def test_update_patient(client, doctor_headers, patient):
    response = client.put(f'/api/patients/{patient.id}', headers=doctor_headers,
                          json={'blood_type': 'AB+', 'privacy_consent': True})
    assert response.status_code == 200
    body = response.get_json()['patient']
    assert body['blood_type'] == 'AB+'
    assert body['data_consent_date'] is not None

    response = client.put(f'/api/patients/{patient.id}', headers=doctor_headers, json={'blood_type': 'Z'})
    assert response.status_code == 400


def test_soft_delete(client, doctor_headers, patient):
    response = client.delete(f'/api/patients/{patient.id}', headers=doctor_headers)
    assert response.status_code == 200

    assert client.get(f'/api/patients/{patient.id}', headers=doctor_headers).status_code == 404
    stored = db.session.get(Patient, patient.id)
    assert stored.deleted_at is not None
    assert stored.status == 'inactive'


def test_assistant_cannot_delete(client, assistant, patient):
    response = client.delete(f'/api/patients/{patient.id}', headers=auth_headers(assistant))

    assert response.status_code == 403
    assert db.session.get(Patient, patient.id).deleted_at is None


def test_access_is_audited(client, doctor, doctor_headers, patient):
    client.get(f'/api/patients/{patient.id}', headers=doctor_headers)

    entry = AuditLog.query.filter_by(action='VIEW_PATIENT').one()
    assert entry.user_id == doctor.id
    assert entry.resource == 'patients'
    assert entry.resource_id == str(patient.id)
    assert entry.success is True


def test_timeline_is_newest_first(client, doctor, doctor_headers, patient):
    now = datetime.utcnow()
    make_note(patient, doctor, created_at=now - timedelta(days=3))
    make_document(patient, doctor, created_at=now - timedelta(days=1))
    make_note(patient, doctor, title='Deleted', deleted_at=now)
    appointment = Appointment(patient_id=patient.id, doctor_id=doctor.id,
                              start_time=now - timedelta(days=2), end_time=now - timedelta(days=2, minutes=-30))
    db.session.add(appointment)
    db.session.commit()

    response = client.get(f'/api/patients/{patient.id}/timeline', headers=doctor_headers)

    assert response.status_code == 200
    body = response.get_json()
    assert body['total'] == 3
    assert [e['event_type'] for e in body['timeline']] == ['document', 'appointment', 'note']


def test_patient_report(client, doctor, doctor_headers):
    patient = make_patient(primary_care_physician=doctor.id)
    make_note(patient, doctor)

    response = client.get(f'/api/patients/{patient.id}/report', headers=doctor_headers)

    assert response.status_code == 200
    report = response.get_json()['report']
    assert report['primary_care_physician']['crm'] == 'CRM-SP-1000'
    assert report['statistics']['notes_count'] == 1
    assert report['statistics']['upcoming_appointments'] == []
