import os
from unittest import mock
import pytest
from sqlalchemy import inspect
from medpractice.extensions import db
from medpractice.models.document_models import Document
from medpractice.models.note_models import Note
from medpractice.reporting import maintenance
from medpractice.utils.encryption_util import encryptor
from conftest import make_document, make_note, make_patient, make_user


def _index_names():
    return {index['name'] for index in inspect(db.engine).get_indexes('documents')}


def test_migrate_creates_portable_indexes_and_rollback_drops_them(app):
    result = maintenance.migrate_database()

    assert result['indexes'] == ['idx_documents_created_at', 'idx_documents_extraction_status']
    assert {'idx_documents_created_at', 'idx_documents_extraction_status'} <= _index_names()

    maintenance.drop_additional_indexes()
    assert not {'idx_documents_created_at', 'idx_documents_extraction_status'} & _index_names()


def test_migrate_is_repeatable(app):
    maintenance.migrate_database()
    maintenance.migrate_database()


def test_update_existing_data_only_touches_formatted_values(app):
    patient = make_patient(phone='11999990000')
    # Legacy rows stored the CPF with punctuation
    patient.cpf = encryptor.encrypt('111.444.777-35')
    formatted_user = make_user('doctor', phone='(11) 98888-7777')
    clean_user = make_user('nurse', phone='11977776666')
    db.session.commit()

    updated = maintenance.update_existing_data()

    assert updated == {'patient_cpf': 1, 'patient_phone': 0, 'user_phone': 1}
    assert patient.get_cpf() == '11144477735'
    assert formatted_user.phone == '11988887777'
    assert clean_user.phone == '11977776666'


def test_integrity_check_findings(app):
    doctor = make_user('doctor')
    patient = make_patient()
    make_document(patient, doctor, extraction_status='pending')
    orphan_doc = make_document(patient, doctor, title='Orphan', extraction_status='completed')
    orphan_doc.patient_id = 9999
    orphan_note = make_note(patient, doctor)
    orphan_note.patient_id = 9999
    untyped = make_note(patient, doctor)
    untyped.note_type = None
    db.session.commit()

    findings = maintenance.check_database_integrity()

    assert findings['orphan_documents'] == [orphan_doc.id]
    assert findings['orphan_notes'] == [orphan_note.id]
    assert findings['pending_extraction'] == 1
    assert findings['notes_without_type'] == 1
    assert findings['patients_without_consent'] == 1


def test_backup_without_database_settings_is_skipped(app, monkeypatch):
    for name in ('DB_HOST', 'DB_NAME', 'DB_USER'):
        monkeypatch.delenv(name, raising=False)

    with mock.patch.object(maintenance.subprocess, 'run') as run:
        assert maintenance.backup_database() is None
    run.assert_not_called()


def test_backup_writes_dated_dump(app, monkeypatch):
    monkeypatch.setenv('DB_HOST', 'db.internal')
    monkeypatch.setenv('DB_NAME', 'sistema_medico')
    monkeypatch.setenv('DB_USER', 'postgres')

    with mock.patch.object(maintenance.subprocess, 'run') as run:
        path = maintenance.backup_database()

    assert os.path.dirname(path) == app.config['DB_BACKUP_DIR']
    assert os.path.basename(path).startswith('backup_') and path.endswith('.sql')
    command = run.call_args.args[0]
    assert command[0] == app.config['PG_DUMP_BIN']
    assert command[-1] == path


def test_unknown_action(app):
    with pytest.raises(ValueError):
        maintenance.run_action('explode')


def test_run_action_dispatches_check(app):
    assert set(maintenance.run_action('check')) == {
        'orphan_documents', 'orphan_notes', 'pending_extraction',
        'notes_without_type', 'patients_without_consent',
    }
    assert Document.query.count() == 0 and Note.query.count() == 0


def test_cli_unknown_action_prints_usage(capsys):
    import maintenance_cli

    assert maintenance_cli.main(['maintenance_cli.py', 'explode']) == 1
    assert 'Usage:' in capsys.readouterr().out


def test_cli_check_prints_findings(app, capsys):
    import maintenance_cli

    with mock.patch.object(maintenance_cli, 'create_app', return_value=app):
        assert maintenance_cli.main(['maintenance_cli.py', 'check']) == 0
    output = capsys.readouterr().out
    assert 'check completed successfully' in output
    assert '"orphan_documents": []' in output


def test_cli_failure_exit_code(app):
    import maintenance_cli

    with mock.patch.object(maintenance_cli, 'create_app', return_value=app), \
            mock.patch.object(maintenance_cli, 'run_action', side_effect=RuntimeError('db down')):
        assert maintenance_cli.main(['maintenance_cli.py', 'migrate']) == 1
