from medpractice.extensions import db
from medpractice.models.note_models import Note
from conftest import auth_headers, make_note


def _note_payload(patient_id, **fields):
    return {
        'patient_id': patient_id,
        'title': 'Retorno cardiológico',
        'content': 'Pressão arterial controlada, manter losartana 50mg.',
        'note_type': 'follow_up',
        **fields,
    }


def test_create_note(client, doctor, doctor_headers, patient):
    response = client.post('/api/notes', headers=doctor_headers,
                           json=_note_payload(patient.id, vital_signs={'bp': '120/80'}, tags=['hipertensão']))

    assert response.status_code == 201
    note = response.get_json()['note']
    assert note['user_id'] == doctor.id
    assert note['author_name'] == doctor.name
    assert note['vital_signs'] == {'bp': '120/80'}
    assert note['priority'] == 'normal'


def test_create_note_validation(client, doctor_headers, patient):
    cases = [
        {'patient_id': patient.id},
        _note_payload(patient.id, title='ab'),
        _note_payload(patient.id, content='short'),
        _note_payload(patient.id, note_type='gossip'),
        _note_payload(patient.id, priority='whenever'),
    ]
    for payload in cases:
        assert client.post('/api/notes', headers=doctor_headers, json=payload).status_code == 400

    assert client.post('/api/notes', headers=doctor_headers, json=_note_payload(9999)).status_code == 404
    assert Note.query.count() == 0


def test_assistant_has_no_access_to_notes(client, assistant, patient):
    headers = auth_headers(assistant)
    assert client.get('/api/notes', headers=headers).status_code == 403
    assert client.post('/api/notes', headers=headers, json=_note_payload(patient.id)).status_code == 403


def test_search(client, doctor, doctor_headers, patient):
    make_note(patient, doctor, content='Paciente com enxaqueca recorrente.')
    make_note(patient, doctor, content='Sem queixas nesta consulta.')

    assert client.get('/api/notes/search?q=e', headers=doctor_headers).status_code == 400

    response = client.get('/api/notes/search?q=enxaqueca', headers=doctor_headers)
    assert response.status_code == 200
    assert response.get_json()['pagination']['total'] == 1


def test_filters_by_patient_and_author(client, doctor, doctor_headers, patient):
    make_note(patient, doctor, note_type='examination')
    make_note(patient, doctor, note_type='consultation')

    response = client.get(f'/api/notes/patient/{patient.id}?note_type=examination', headers=doctor_headers)
    assert [n['note_type'] for n in response.get_json()['notes']] == ['examination']

    response = client.get(f'/api/notes/author/{doctor.id}', headers=doctor_headers)
    assert response.get_json()['pagination']['total'] == 2

    assert client.get('/api/notes/author/9999', headers=doctor_headers).status_code == 404


def test_update_and_soft_delete(client, doctor, doctor_headers, patient):
    note = make_note(patient, doctor)

    response = client.put(f'/api/notes/{note.id}', headers=doctor_headers, json={'status': 'completed'})
    assert response.status_code == 200
    assert response.get_json()['note']['status'] == 'completed'

    assert client.delete(f'/api/notes/{note.id}', headers=doctor_headers).status_code == 200
    assert client.get(f'/api/notes/{note.id}', headers=doctor_headers).status_code == 404
    assert db.session.get(Note, note.id).deleted_at is not None
