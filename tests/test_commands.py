import os
from unittest import mock
from medpractice.models.user_models import User
from medpractice.models.patient_models import Patient
from medpractice.models.appointment_models import Appointment
from medpractice.reporting import backup as backup_module


def test_seed_db_is_idempotent(app):
    runner = app.test_cli_runner()

    result = runner.invoke(args=['seed-db'])
    assert result.exit_code == 0, result.output
    assert User.query.count() == 3
    assert Patient.query.count() == 3
    assert Appointment.query.count() == 3

    result = runner.invoke(args=['seed-db'])
    assert 'skipping seed' in result.output
    assert Patient.query.count() == 3


def test_create_admin(app):
    runner = app.test_cli_runner()
    result = runner.invoke(args=[
        'create-admin', '--name', 'Root', '--email', 'root@example.com', '--password', 'Adm1n!Passw0rd'
    ])
    assert result.exit_code == 0, result.output
    assert User.query.filter_by(email='root@example.com').one().role == 'admin'

    result = runner.invoke(args=[
        'create-admin', '--name', 'Root', '--email', 'root@example.com', '--password', 'Adm1n!Passw0rd'
    ])
    assert result.exit_code == 1


def test_create_admin_rejects_weak_password(app):
    result = app.test_cli_runner().invoke(args=[
        'create-admin', '--name', 'Root', '--email', 'weak@example.com', '--password', 'short'
    ])
    assert result.exit_code == 1
    assert User.query.count() == 0


def test_report_commands_print_output_files(app):
    runner = app.test_cli_runner()
    runner.invoke(args=['seed-db'])

    result = runner.invoke(args=['analyze-data'])
    assert result.exit_code == 0, result.output
    assert 'analysis_report_' in result.output

    result = runner.invoke(args=['generate-report'])
    assert result.exit_code == 0, result.output
    assert 'system_report_' in result.output

    result = runner.invoke(args=['optimize', 'performance'])
    assert result.exit_code == 0, result.output
    assert 'performance_report_' in result.output


def test_optimize_rejects_unknown_mode(app):
    result = app.test_cli_runner().invoke(args=['optimize', 'everything'])
    assert result.exit_code != 0


def test_backup_failure_exits_with_status_1(app):
    failing = mock.Mock(side_effect=OSError('pg_dump not found'))
    with mock.patch.object(backup_module.subprocess, 'run', failing):
        result = app.test_cli_runner().invoke(args=['backup', 'create'])

    assert result.exit_code == 1
    assert os.listdir(app.config['BACKUP_DIR']) == []


def test_restore_missing_file_exits_with_status_1(app):
    result = app.test_cli_runner().invoke(args=['backup', 'restore', '/nonexistent.tar.gz'])
    assert result.exit_code == 1
