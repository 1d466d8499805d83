from datetime import datetime, timedelta
from conftest import auth_headers, make_user

START = (datetime.utcnow() + timedelta(days=2)).replace(hour=10, minute=0, second=0, microsecond=0)


def _slot(patient_id, doctor_id, start=START, minutes=30, **fields):
    return {
        'patient_id': patient_id,
        'doctor_id': doctor_id,
        'start_time': start.isoformat(),
        'end_time': (start + timedelta(minutes=minutes)).isoformat(),
        **fields,
    }


def _create(client, headers, payload):
    return client.post('/api/appointments', headers=headers, json=payload)


def test_create_appointment(client, doctor, doctor_headers, patient):
    response = _create(client, doctor_headers, _slot(patient.id, doctor.id, type='follow_up'))

    assert response.status_code == 201
    appointment = response.get_json()['appointment']
    assert appointment['duration'] == 30
    assert appointment['status'] == 'scheduled'
    assert appointment['doctor_name'] == doctor.name
    assert appointment['created_by'] == doctor.id


def test_overlapping_slot_is_a_conflict(client, doctor, doctor_headers, patient):
    first = _create(client, doctor_headers, _slot(patient.id, doctor.id)).get_json()['appointment']

    response = _create(client, doctor_headers, _slot(patient.id, doctor.id, start=START + timedelta(minutes=15)))
    assert response.status_code == 409
    assert response.get_json()['conflicting_appointment']['id'] == first['id']

    # Back-to-back slots do not overlap
    response = _create(client, doctor_headers, _slot(patient.id, doctor.id, start=START + timedelta(minutes=30)))
    assert response.status_code == 201


def test_cancelled_slot_can_be_rebooked(client, doctor, doctor_headers, patient):
    first = _create(client, doctor_headers, _slot(patient.id, doctor.id)).get_json()['appointment']
    client.post(f"/api/appointments/{first['id']}/cancel", headers=doctor_headers, json={'reason': 'Viagem'})

    assert _create(client, doctor_headers, _slot(patient.id, doctor.id)).status_code == 201


def test_invalid_appointments(client, doctor, doctor_headers, patient):
    nurse = make_user('nurse')
    assert _create(client, doctor_headers, _slot(patient.id, nurse.id)).status_code == 400
    assert _create(client, doctor_headers, _slot(9999, doctor.id)).status_code == 404
    assert _create(client, doctor_headers, _slot(patient.id, doctor.id, minutes=-30)).status_code == 400
    assert _create(client, doctor_headers, _slot(patient.id, doctor.id, type='party')).status_code == 400
    assert _create(client, doctor_headers, {'patient_id': patient.id}).status_code == 400


def test_cancel_and_confirm_transitions(client, doctor, doctor_headers, patient):
    appointment_id = _create(client, doctor_headers, _slot(patient.id, doctor.id)).get_json()['appointment']['id']

    response = client.post(f'/api/appointments/{appointment_id}/confirm', headers=doctor_headers)
    assert response.status_code == 200
    assert response.get_json()['appointment']['confirmed_at'] is not None
    assert client.post(f'/api/appointments/{appointment_id}/confirm', headers=doctor_headers).status_code == 400

    response = client.post(f'/api/appointments/{appointment_id}/cancel', headers=doctor_headers,
                           json={'reason': 'Paciente pediu remarcação'})
    assert response.status_code == 200
    assert response.get_json()['appointment']['cancellation_reason'] == 'Paciente pediu remarcação'
    assert client.post(f'/api/appointments/{appointment_id}/cancel', headers=doctor_headers).status_code == 400


def test_reschedule_into_conflict(client, doctor, doctor_headers, patient):
    _create(client, doctor_headers, _slot(patient.id, doctor.id))
    later = _create(client, doctor_headers,
                    _slot(patient.id, doctor.id, start=START + timedelta(hours=2))).get_json()['appointment']

    response = client.put(f"/api/appointments/{later['id']}", headers=doctor_headers, json={
        'start_time': START.isoformat(), 'end_time': (START + timedelta(minutes=30)).isoformat(),
    })
    assert response.status_code == 409

    response = client.get(f"/api/appointments/{later['id']}", headers=doctor_headers)
    assert response.get_json()['appointment']['start_time'] == later['start_time']


def test_listing_and_upcoming(client, doctor, doctor_headers, patient):
    _create(client, doctor_headers, _slot(patient.id, doctor.id))
    _create(client, doctor_headers, _slot(patient.id, doctor.id, start=START + timedelta(hours=1)))

    response = client.get(f'/api/appointments?doctor_id={doctor.id}', headers=doctor_headers)
    assert response.get_json()['pagination']['total'] == 2

    response = client.get('/api/appointments/upcoming?limit=1', headers=doctor_headers)
    assert len(response.get_json()['appointments']) == 1

    assert client.get('/api/appointments?date_from=yesterday', headers=doctor_headers).status_code == 400


def test_assistant_can_schedule(client, assistant, doctor, patient):
    response = _create(client, auth_headers(assistant), _slot(patient.id, doctor.id))
    assert response.status_code == 201
