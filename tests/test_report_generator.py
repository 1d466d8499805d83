import os
from datetime import datetime, timedelta
from medpractice.extensions import db
from medpractice.reporting.report_generator import ReportGenerator
from medpractice.reporting.writers import read_json
from conftest import make_document, make_note, make_patient, make_user


def _seed():
    now = datetime.utcnow()
    doctor = make_user('doctor', specialty='Pediatria', last_login=now - timedelta(hours=2))
    stale = make_user('nurse', email_verified=False, is_active=False)
    stale.password_changed_at = now - timedelta(days=120)
    patient = make_patient(privacy_consent=True, pre_existing_conditions=['Asma'])
    make_patient(name='Carlos Dias', cpf='529.982.247-25', birth_date='1930-01-01', gender='male')
    make_document(patient, doctor, extraction_status='completed', file_size=1000)
    make_document(patient, doctor, extraction_status='pending', file_size=3000, is_sensitive=True)
    make_note(patient, doctor, note_type='examination')
    db.session.commit()
    return doctor, patient


def test_report_sections(app, tmp_path):
    doctor, _patient = _seed()

    report = ReportGenerator(output_dir=str(tmp_path)).run()

    summary = report['summary']
    assert summary['total_users'] == 2
    assert summary['total_patients'] == 2
    assert summary['recent_activity'] == {'patients': 2, 'documents': 2, 'notes': 1}
    assert summary['system_health'] == 'healthy'

    users = report['sections']['users']
    assert users['active_vs_inactive'] == {'active': 1, 'inactive': 1, 'total': 2}
    assert users['doctors_by_specialty'] == {'Pediatria': 1}
    assert [u['email'] for u in users['most_active_users']] == [doctor.email]

    patients = report['sections']['patients']
    assert len(patients['age_distribution']) == 9
    assert patients['age_distribution']['80+'] == 1
    assert patients['medical_conditions']['with_conditions'] == 1

    documents = report['sections']['documents']
    assert documents['extraction_status'] == {'completed': 1, 'pending': 1}
    assert documents['size_statistics']['total_size'] == 4000
    assert documents['size_statistics']['max_size'] == 3000
    assert {d['patient_name'] for d in documents['recent_documents']} == {'Maria Souza'}

    notes = report['sections']['notes']
    assert notes['type_distribution'] == {'examination': 1}
    assert notes['recent_notes'][0]['user_name'] == doctor.name

    security = report['sections']['security']
    assert security['user_verification']['unverified_users'] == 1
    assert security['user_verification']['weak_passwords'] == 1
    assert security['patient_privacy']['without_consent'] == 1
    assert security['document_security']['sensitive_documents'] == 1
    assert [u['name'] for u in security['recent_access']] == [doctor.name]


def test_performance_section_is_empty_outside_postgres(app, tmp_path):
    report = ReportGenerator(output_dir=str(tmp_path)).run()

    performance = report['sections']['performance']
    assert performance['database'] == {}
    assert performance['indexes'] == []
    assert performance['system']['uptime'] >= 0
    assert performance['system']['memory_usage']['max_rss'] >= 0


def test_conclusions(app, tmp_path):
    _seed()

    report = ReportGenerator(output_dir=str(tmp_path)).run()

    types = {c['type'] for c in report['conclusions']}
    # 1 unverified user, 50% extraction, only 5 recent events
    assert types == {'security', 'efficiency', 'activity'}


def test_outputs(app, tmp_path):
    _seed()
    generator = ReportGenerator(output_dir=str(tmp_path))
    report = generator.run()

    stem = f"system_report_{report['timestamp']}"
    assert sorted(os.path.basename(p) for p in generator.output_files) == [
        f'{stem}.html', f'{stem}.json', f'{stem}.txt'
    ]
    assert read_json(os.path.join(tmp_path, f'{stem}.json')) == report

    with open(os.path.join(tmp_path, f'{stem}.txt'), encoding='utf-8') as fh:
        text = fh.read()
    assert text.startswith('=' * 60 + '\nSYSTEM REPORT\n' + '=' * 60)
    assert 'Total patients: 2' in text
    assert 'CONCLUSIONS' in text
