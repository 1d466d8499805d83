from datetime import date, timedelta
from medpractice.extensions import db
from medpractice.models.certificate_models import MedicalCertificate
from medpractice.models.system_models import AuditLog
from conftest import auth_headers, make_user


def _issue(client, headers, patient_id, **fields):
    payload = {'patient_id': patient_id, 'diagnosis': 'Gripe', 'rest_days': 3, **fields}
    return client.post('/api/medical-certificates', headers=headers, json=payload)


def test_issue_certificate(client, doctor_headers, patient):
    response = _issue(client, doctor_headers, patient.id, start_date='2024-05-06')

    assert response.status_code == 201
    certificate = response.get_json()['certificate']
    assert certificate['certificate_number'].startswith('CERT-')
    assert len(certificate['verification_code']) == 8
    assert certificate['certificate_type'] == 'trabalho'
    assert certificate['status'] == 'active'
    assert certificate['doctor_crm'] == 'CRM-SP-1000'
    # Three days of rest starting on the 6th end on the 8th
    assert certificate['end_date'] == '2024-05-08'


def test_issue_validation(client, doctor_headers, patient):
    assert client.post('/api/medical-certificates', headers=doctor_headers,
                       json={'diagnosis': 'Gripe'}).status_code == 400
    assert _issue(client, doctor_headers, patient.id, diagnosis='  ').status_code == 400
    assert _issue(client, doctor_headers, patient.id, certificate_type='ferias').status_code == 400
    assert _issue(client, doctor_headers, patient.id, rest_days=-1).status_code == 400
    assert _issue(client, doctor_headers, patient.id, start_date='2024-05-06',
                  end_date='2024-05-01').status_code == 400
    assert _issue(client, doctor_headers, 9999).status_code == 404
    assert MedicalCertificate.query.count() == 0


def test_permissions(client, patient):
    nurse_headers = auth_headers(make_user('nurse'))
    assistant_headers = auth_headers(make_user('assistant'))

    assert _issue(client, nurse_headers, patient.id).status_code == 403
    assert client.get('/api/medical-certificates', headers=nurse_headers).status_code == 200
    assert client.get('/api/medical-certificates', headers=assistant_headers).status_code == 403


def test_listing_filters(client, doctor_headers, patient):
    _issue(client, doctor_headers, patient.id)
    _issue(client, doctor_headers, patient.id, certificate_type='comparecimento', rest_days=0)
    second = _issue(client, doctor_headers, patient.id).get_json()['certificate']
    client.put(f"/api/medical-certificates/{second['id']}/cancel", headers=doctor_headers)

    response = client.get('/api/medical-certificates?status=active', headers=doctor_headers)
    assert response.get_json()['pagination']['total'] == 2
    response = client.get('/api/medical-certificates?certificate_type=comparecimento', headers=doctor_headers)
    assert [c['rest_days'] for c in response.get_json()['certificates']] == [0]

    today = date.today()
    window = f'date_from={(today - timedelta(days=1)).isoformat()}&date_to={today.isoformat()}'
    response = client.get(f'/api/medical-certificates?{window}', headers=doctor_headers)
    assert response.get_json()['pagination']['total'] == 3

    assert client.get('/api/medical-certificates?status=lost', headers=doctor_headers).status_code == 400
    assert client.get('/api/medical-certificates?date_from=ontem&date_to=hoje',
                      headers=doctor_headers).status_code == 400


def test_get_and_cancel(client, doctor_headers, patient):
    certificate_id = _issue(client, doctor_headers, patient.id).get_json()['certificate']['id']
    url = f'/api/medical-certificates/{certificate_id}'

    assert client.get(url, headers=doctor_headers).get_json()['certificate']['id'] == certificate_id
    assert client.get('/api/medical-certificates/9999', headers=doctor_headers).status_code == 404

    response = client.put(f'{url}/cancel', headers=doctor_headers, json={'reason': 'Emitido por engano'})
    assert response.status_code == 200
    body = response.get_json()['certificate']
    assert body['status'] == 'cancelled'
    assert body['cancelled_reason'] == 'Emitido por engano'
    assert body['cancelled_at'] is not None

    assert client.put(f'{url}/cancel', headers=doctor_headers).status_code == 400
    assert AuditLog.query.filter_by(action='CANCEL_CERTIFICATE').count() == 2


def test_public_verification(client, doctor_headers, patient):
    certificate = _issue(client, doctor_headers, patient.id).get_json()['certificate']

    response = client.post('/api/medical-certificates/verify',
                           json={'verification_code': certificate['verification_code'].lower()})
    assert response.status_code == 200
    body = response.get_json()
    assert body['verified'] is True
    assert body['certificate']['patient_name'] == patient.name
    assert 'diagnosis' not in body['certificate']
    assert 'verification_code' not in body['certificate']

    response = client.post('/api/medical-certificates/verify',
                           json={'certificate_number': certificate['certificate_number']})
    assert response.get_json()['verified'] is True

    response = client.post('/api/medical-certificates/verify', json={
        'certificate_number': certificate['certificate_number'], 'verification_code': 'WRONG123',
    })
    assert response.status_code == 404
    assert response.get_json()['verified'] is False


def test_verification_input_checks(client):
    assert client.post('/api/medical-certificates/verify', json={}).status_code == 400
    assert client.post('/api/medical-certificates/verify',
                       json={'verification_code': 12345678}).status_code == 400


def test_cancelled_or_past_certificates_are_not_verified(client, doctor_headers, patient):
    cancelled = _issue(client, doctor_headers, patient.id).get_json()['certificate']
    client.put(f"/api/medical-certificates/{cancelled['id']}/cancel", headers=doctor_headers)
    past = _issue(client, doctor_headers, patient.id, start_date='2020-01-01').get_json()['certificate']

    for certificate in (cancelled, past):
        response = client.post('/api/medical-certificates/verify',
                               json={'verification_code': certificate['verification_code']})
        assert response.status_code == 200
        assert response.get_json()['verified'] is False

    assert db.session.get(MedicalCertificate, past['id']).is_expired is True
