import os
from unittest import mock
from medpractice.models.system_models import AuditLog
from medpractice.models.user_models import User
from medpractice.reporting import system_check
from medpractice.reporting.writers import read_json
from conftest import make_patient

GROUPS = {'database', 'models', 'api', 'security', 'performance'}


def test_all_groups_pass_on_a_healthy_system(app, tmp_path):
    summary = system_check.run_system_check(output_dir=str(tmp_path))

    assert summary['success'] is True, summary['results']
    assert set(summary['results']) == GROUPS
    assert summary['total'] == summary['passed'] == 16
    for result in summary['results'].values():
        assert result['failed'] == 0 and result['errors'] == 0


def test_written_file_matches_returned_summary(app, tmp_path):
    summary = system_check.run_system_check(output_dir=str(tmp_path))

    assert summary['file'] == os.path.join(str(tmp_path), f"system_check_{summary['timestamp']}.json")
    assert read_json(summary['file']) == summary


def test_http_groups_cover_login_and_rejections(app, tmp_path):
    make_patient()
    summary = system_check.run_system_check(output_dir=str(tmp_path))

    api = [t['name'] for t in summary['results']['api']['tests']]
    assert api == ['Health endpoint', 'Login', 'List patients']
    security = {t['name']: t['status'] for t in summary['results']['security']['tests']}
    assert security['Invalid token rejected'] == 'passed'
    assert security['Unauthenticated write rejected'] == 'passed'

    performance = summary['results']['performance']['tests']
    assert performance[0]['response_time_ms'] < 1000
    assert performance[1]['query_time_ms'] < 2000


def test_checks_leave_no_rows_behind(app, tmp_path):
    system_check.run_system_check(output_dir=str(tmp_path))
    assert User.query.count() == 0
    assert AuditLog.query.count() == 0


def test_failures_are_recorded_not_raised(app, tmp_path):
    with mock.patch.object(User, 'validate_password_strength', return_value=True):
        summary = system_check.run_system_check(output_dir=str(tmp_path))

    security = summary['results']['security']
    assert summary['success'] is False
    assert security['failed'] == 1 and security['errors'] == 1
    failed = [t for t in security['tests'] if t['status'] == 'failed']
    assert failed[0]['name'] == 'Password policy'
    assert os.path.exists(summary['file'])


def test_slow_api_is_a_failure(app, tmp_path):
    with mock.patch.object(system_check, 'API_LIMIT_MS', 0):
        summary = system_check.run_system_check(output_dir=str(tmp_path))

    performance = summary['results']['performance']
    assert performance['failed'] == 1
    assert performance['tests'][0]['status'] == 'failed'
    assert summary['success'] is False


def test_cli_exit_codes(app):
    runner = app.test_cli_runner()

    result = runner.invoke(args=['system-check'])
    assert result.exit_code == 0
    assert 'database: 3/3 passed' in result.output
    assert 'api: 3/3 passed' in result.output

    with mock.patch.object(User, 'validate_password_strength', return_value=True):
        result = runner.invoke(args=['system-check'])
    assert result.exit_code == 1
