from datetime import datetime, timedelta
from medpractice.extensions import db
from medpractice.models.appointment_models import Appointment
from conftest import make_document, make_note, make_patient


def test_stats_exclude_soft_deleted_rows(client, doctor, doctor_headers, patient):
    removed = make_patient(name='Removido', cpf='529.982.247-25')
    removed.deleted_at = datetime.utcnow()
    make_document(patient, doctor)
    make_document(patient, doctor, deleted_at=datetime.utcnow())
    make_note(patient, doctor)

    response = client.get('/api/dashboard/stats', headers=doctor_headers)

    assert response.status_code == 200
    stats = response.get_json()['stats']
    assert stats['totals']['patients'] == 1
    assert stats['totals']['documents'] == 1
    assert stats['totals']['notes'] == 1
    assert stats['recent_activity']['pending_extractions'] == 1


def test_recent_lists(client, doctor, doctor_headers, patient):
    start = datetime.utcnow() + timedelta(days=1)
    db.session.add(Appointment(patient_id=patient.id, doctor_id=doctor.id,
                               start_time=start, end_time=start + timedelta(minutes=30)))
    db.session.add(Appointment(patient_id=patient.id, doctor_id=doctor.id,
                               start_time=start - timedelta(days=3), end_time=start - timedelta(days=3, minutes=-30)))
    db.session.commit()

    patients = client.get('/api/dashboard/recent-patients', headers=doctor_headers).get_json()['patients']
    assert [p['id'] for p in patients] == [patient.id]

    appointments = client.get('/api/dashboard/recent-appointments', headers=doctor_headers).get_json()
    assert len(appointments['appointments']) == 1


def test_documents_by_category(client, doctor, doctor_headers, patient):
    make_document(patient, doctor)
    make_document(patient, doctor)
    make_document(patient, doctor, category='laudo')

    response = client.get('/api/dashboard/documents-by-category', headers=doctor_headers)
    assert response.get_json()['categories'] == {'exame': 2, 'laudo': 1}
