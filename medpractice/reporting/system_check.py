"""
Self test run by ``flask system-check``.

Checks never leave data behind. Model writes happen inside a transaction
that is rolled back, and the account used for the HTTP round trips is
deleted with its audit rows once the api group finishes. A failing check
is recorded in its group's counters and the run carries on.
"""
import os
import time
from datetime import datetime
from flask import current_app
from sqlalchemy import func, inspect, text
from medpractice.extensions import db, bcrypt
from medpractice.models.user_models import User
from medpractice.models.patient_models import Patient
from medpractice.models.document_models import Document
from medpractice.models.note_models import Note
from medpractice.models.system_models import AuditLog, RevokedToken
from medpractice.reporting.writers import ensure_dir, report_timestamp, write_json
from medpractice.utils.helpers import ValidationError, validate_cpf


CHECK_EMAIL = 'system.check@example.invalid'
CHECK_PASSWORD = 'SystemCheck#2024'
API_LIMIT_MS = 1000
QUERY_LIMIT_MS = 2000


class CheckFailed(AssertionError):
    pass


class CheckGroup:
    def __init__(self, name):
        self.name = name
        self.total = 0
        self.passed = 0
        self.failed = 0
        self.errors = 0
        self.tests = []

    def run(self, label, check):
        self.total += 1
        try:
            details = check()
        except Exception as e:
            # A failed check counts as an error for the exit status
            self.failed += 1
            self.errors += 1
            self.tests.append({'name': label, 'status': 'failed', 'error': str(e) or type(e).__name__})
            current_app.logger.warning(f'[{self.name}] {label} failed: {e}')
        else:
            self.passed += 1
            entry = {'name': label, 'status': 'passed'}
            entry.update(details or {})
            self.tests.append(entry)

    def to_dict(self):
        return {
            'total': self.total,
            'passed': self.passed,
            'failed': self.failed,
            'errors': self.errors,
            'tests': self.tests,
        }


def _expect_validation_error(func, *args):
    try:
        func(*args)
    except (ValidationError, ValueError):
        return
    raise CheckFailed('Validation did not reject invalid input')


def _expect_status(response, *statuses):
    if response.status_code not in statuses:
        raise CheckFailed(f'Expected status {statuses}, got {response.status_code}')
    return response


def _elapsed_ms(started):
    return round((time.perf_counter() - started) * 1000, 2)


def check_database():
    group = CheckGroup('database')

    def connectivity():
        db.session.execute(text('SELECT 1'))

    def basic_query():
        User.query.count()

    def insert_and_delete():
        try:
            user = User(name='System Check', email=CHECK_EMAIL, role='assistant')
            user.set_password(CHECK_PASSWORD)
            db.session.add(user)
            db.session.flush()
            if user.id is None:
                raise CheckFailed('Inserted row did not receive an id')
            db.session.delete(user)
            db.session.flush()
        finally:
            db.session.rollback()

    group.run('Database connectivity', connectivity)
    group.run('Basic user query', basic_query)
    group.run('Insert and delete in a rolled-back transaction', insert_and_delete)
    return group


def check_models():
    group = CheckGroup('models')

    def required_fields():
        _expect_validation_error(Patient().apply_payload, {}, True)

    def cpf_validation():
        _expect_validation_error(validate_cpf, '123')
        if validate_cpf('123.456.789-09') != '12345678909':
            raise CheckFailed('Formatted CPF was not normalized')

    def password_hashing():
        hashed = bcrypt.generate_password_hash('SystemCheck#2024').decode('utf-8')
        if not bcrypt.check_password_hash(hashed, 'SystemCheck#2024'):
            raise CheckFailed('Hash does not match its password')
        if bcrypt.check_password_hash(hashed, 'wrong-password'):
            raise CheckFailed('Hash matched a wrong password')

    def relationships():
        expected = [
            (Patient, 'documents', Document),
            (Patient, 'medical_notes', Note),
            (Document, 'patient', Patient),
            (Note, 'patient', Patient),
            (Note, 'user', User),
        ]
        for model, name, target in expected:
            relationship = inspect(model).relationships.get(name)
            if relationship is None or relationship.mapper.class_ is not target:
                raise CheckFailed(f'{model.__name__}.{name} does not map to {target.__name__}')
        db.session.query(Patient.id).join(Patient.documents).join(Patient.medical_notes).limit(1).all()

    group.run('Patient required fields', required_fields)
    group.run('CPF validation', cpf_validation)
    group.run('Password hashing', password_hashing)
    group.run('Model relationships', relationships)
    return group


def _create_check_user():
    _remove_check_user()
    user = User(name='System Check', email=CHECK_EMAIL, role='assistant', email_verified=True)
    user.set_password(CHECK_PASSWORD)
    db.session.add(user)
    db.session.commit()
    return user.id


def _remove_check_user():
    db.session.rollback()
    user = User.query.filter_by(email=CHECK_EMAIL).first()
    if user:
        AuditLog.query.filter_by(user_id=user.id).delete()
        db.session.delete(user)
        db.session.commit()


def check_api():
    """Round trips through the HTTP layer with a temporary account that is removed afterwards."""
    group = CheckGroup('api')
    client = current_app.test_client()
    state = {}

    def health():
        body = _expect_status(client.get('/api/health'), 200).get_json()
        if body.get('status') != 'OK':
            raise CheckFailed(f"Health status is {body.get('status')}")

    def login():
        _create_check_user()
        response = client.post('/api/auth/login', json={'email': CHECK_EMAIL, 'password': CHECK_PASSWORD})
        state['token'] = _expect_status(response, 200).get_json()['access_token']

    def list_patients():
        if 'token' not in state:
            raise CheckFailed('No token from login')
        response = client.get('/api/patients', headers={'Authorization': f"Bearer {state['token']}"})
        _expect_status(response, 200)

    try:
        group.run('Health endpoint', health)
        group.run('Login', login)
        group.run('List patients', list_patients)
    finally:
        _remove_check_user()
    return group


def check_security():
    group = CheckGroup('security')

    def password_policy():
        if User.validate_password_strength('test123'):
            raise CheckFailed('Weak password accepted')
        if not User.validate_password_strength('Str0ng!Passw0rd'):
            raise CheckFailed('Strong password rejected')

    def token_revocation():
        RevokedToken.query.count()

    def invalid_token():
        response = client.get('/api/patients', headers={'Authorization': 'Bearer invalid-token'})
        _expect_status(response, 401)

    def unauthenticated_write():
        payload = {'name': "'; DROP TABLE patients; --", 'cpf': '<script>alert(1)</script>'}
        _expect_status(client.post('/api/patients', json=payload), 401)
        if Patient.query.filter_by(name=payload['name']).count():
            raise CheckFailed('Unauthenticated request created a patient')

    client = current_app.test_client()
    group.run('Password policy', password_policy)
    group.run('Token revocation table reachable', token_revocation)
    group.run('Invalid token rejected', invalid_token)
    group.run('Unauthenticated write rejected', unauthenticated_write)
    return group


def check_performance():
    group = CheckGroup('performance')
    client = current_app.test_client()

    def api_response_time():
        started = time.perf_counter()
        _expect_status(client.get('/api/health'), 200)
        elapsed = _elapsed_ms(started)
        if elapsed >= API_LIMIT_MS:
            raise CheckFailed(f'Health endpoint took {elapsed}ms')
        return {'response_time_ms': elapsed}

    def complex_query():
        started = time.perf_counter()
        (db.session.query(Patient.id, func.count(Document.id.distinct()), func.count(Note.id.distinct()))
         .outerjoin(Document, Document.patient_id == Patient.id)
         .outerjoin(Note, Note.patient_id == Patient.id)
         .filter(Patient.deleted_at.is_(None))
         .group_by(Patient.id)
         .limit(10)
         .all())
        elapsed = _elapsed_ms(started)
        if elapsed >= QUERY_LIMIT_MS:
            raise CheckFailed(f'Patient query took {elapsed}ms')
        return {'query_time_ms': elapsed}

    group.run('API response time', api_response_time)
    group.run('Patients with documents and notes query', complex_query)
    return group


def run_system_check(output_dir=None, now=None):
    """Runs every group and writes the JSON summary.

    Returns the summary exactly as written, including its own ``file`` path
    and the ``success`` flag.
    """
    logger = current_app.logger
    logger.info('Running system self test...')
    now = now or datetime.utcnow()
    groups = [check_database(), check_models(), check_api(), check_security(), check_performance()]

    results = {group.name: group.to_dict() for group in groups}
    summary = {
        'timestamp': report_timestamp(now),
        'results': results,
        'total': sum(g.total for g in groups),
        'passed': sum(g.passed for g in groups),
        'failed': sum(g.failed for g in groups),
        'success': not any(g.errors for g in groups),
    }

    output_dir = ensure_dir(output_dir or current_app.config['REPORTS_DIR'])
    summary['file'] = os.path.join(output_dir, f"system_check_{summary['timestamp']}.json")
    write_json(summary['file'], summary)
    logger.info(f"System self test finished: {summary['passed']}/{summary['total']} passed.")
    return summary
