import sys
from datetime import datetime, timedelta
import click
from flask import current_app
from flask.cli import with_appcontext
from medpractice.extensions import db
from medpractice.models.user_models import User
from medpractice.models.patient_models import Patient
from medpractice.models.document_models import Document
from medpractice.models.note_models import Note
from medpractice.models.appointment_models import Appointment

SEED_PASSWORD = 'Medico@2024!'

SEED_USERS = [
    {'name': 'Administrador', 'email': 'admin@medpractice.local', 'role': 'admin'},
    {'name': 'Dr. João Silva', 'email': 'joao.silva@medpractice.local', 'role': 'doctor',
     'crm': 'CRM-SP-123456', 'specialty': 'Clínica Geral'},
    {'name': 'Enf. Carla Souza', 'email': 'carla.souza@medpractice.local', 'role': 'nurse'},
]

SEED_PATIENTS = [
    {
        'name': 'Ana Maria Santos', 'email': 'ana.santos@example.com', 'cpf': '123.456.789-09',
        'birth_date': '1985-03-15', 'gender': 'female', 'phone': '(11) 99999-1111',
        'blood_type': 'O+', 'allergies': ['Penicilina', 'Aspirina'],
        'medications': ['Metformina 500mg'], 'pre_existing_conditions': ['Diabetes tipo 2'],
        'family_history': ['Diabetes', 'Hipertensão'], 'privacy_consent': True,
        'address': {'street': 'Rua das Flores, 123', 'city': 'São Paulo', 'state': 'SP'},
    },
    {
        'name': 'Pedro Henrique Oliveira', 'email': 'pedro.oliveira@example.com', 'cpf': '987.654.321-00',
        'birth_date': '1990-07-20', 'gender': 'male', 'phone': '(11) 99999-3333',
        'blood_type': 'A+', 'family_history': ['Câncer de cólon'], 'privacy_consent': True,
    },
    {
        'name': 'Mariana Costa', 'email': 'mariana.costa@example.com', 'cpf': '456.789.123-00',
        'birth_date': '1992-11-08', 'gender': 'female', 'phone': '(11) 99999-5555',
        'blood_type': 'B-', 'allergies': ['Lactose'], 'medications': ['Suplemento de ferro'],
        'pre_existing_conditions': ['Anemia'],
    },
]


def _fail(message):
    current_app.logger.error(message)
    click.echo(f'Error: {message}', err=True)
    sys.exit(1)


@click.command('init-db')
@with_appcontext
def init_db_command():
    """Create every table that does not exist yet."""
    db.create_all()
    click.echo('Database initialized successfully!')


@click.command('create-admin')
@click.option('--name', prompt=True)
@click.option('--email', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@with_appcontext
def create_admin_command(name, email, password):
    """Create an administrator account."""
    if User.query.filter_by(email=email).first():
        _fail(f'A user with email {email} already exists')

    user = User(name=name, email=email, role='admin', email_verified=True)
    try:
        user.set_password(password)
    except ValueError as e:
        _fail(str(e))
    db.session.add(user)
    db.session.commit()
    click.echo(f'Administrator {email} created.')


@click.command('seed-db')
@with_appcontext
def seed_db_command():
    """Populate the database with sample users, patients, documents, notes and appointments."""
    if Patient.query.count():
        click.echo('Database already has patients, skipping seed.')
        return

    try:
        users = {}
        for data in SEED_USERS:
            user = User.query.filter_by(email=data['email']).first()
            if not user:
                user = User(email_verified=True, **data)
                user.set_password(SEED_PASSWORD)
                db.session.add(user)
            users[data['role']] = user
        db.session.flush()

        patients = []
        for data in SEED_PATIENTS:
            patient = Patient(primary_care_physician=users['doctor'].id)
            patient.apply_payload(data, creating=True)
            db.session.add(patient)
            patients.append(patient)
        db.session.flush()

        db.session.add_all([
            Document(
                patient_id=patients[0].id, uploaded_by=users['doctor'].id,
                filename='exame_sangue_ana.pdf', original_name='Exame de Sangue - Ana Santos.pdf',
                file_path='documents/seed/exame_sangue_ana.pdf', file_size=2048576,
                mime_type='application/pdf', category='exame', title='Exame de Sangue Completo',
                tags=['sangue', 'hemograma'], extraction_status='completed',
                extracted_text='Hemoglobina: 12.5 g/dL. Valores dentro da normalidade.',
            ),
            Document(
                patient_id=patients[1].id, uploaded_by=users['doctor'].id,
                filename='laudo_radiografia_pedro.pdf', original_name='Laudo de Radiografia - Pedro Oliveira.pdf',
                file_path='documents/seed/laudo_radiografia_pedro.pdf', file_size=3072000,
                mime_type='application/pdf', category='laudo', title='Laudo de Radiografia de Tórax',
                is_sensitive=True,
            ),
        ])

        note = Note(user_id=users['doctor'].id)
        note.apply_payload({
            'patient_id': patients[0].id,
            'title': 'Consulta de acompanhamento',
            'content': 'Paciente relata melhora dos sintomas. Manter metformina e retornar em 3 meses.',
            'note_type': 'consultation',
            'follow_up_required': True,
        }, creating=True)
        db.session.add(note)

        start = (datetime.utcnow() + timedelta(days=1)).replace(hour=9, minute=0, second=0, microsecond=0)
        for offset, patient in enumerate(patients):
            appointment = Appointment(created_by=users['admin'].id)
            appointment.apply_payload({
                'patient_id': patient.id,
                'doctor_id': users['doctor'].id,
                'start_time': start + timedelta(minutes=30 * offset),
                'end_time': start + timedelta(minutes=30 * (offset + 1)),
                'reason': 'Consulta de rotina',
            }, creating=True)
            db.session.add(appointment)

        db.session.commit()
    except Exception as e:
        db.session.rollback()
        current_app.logger.exception('Seeding failed')
        _fail(str(e))

    click.echo(f'Seeded {len(SEED_USERS)} users and {len(SEED_PATIENTS)} patients. '
               f'Sample user password: {SEED_PASSWORD}')


@click.command('analyze-data')
@with_appcontext
def analyze_data_command():
    """Run the data analysis and write JSON/HTML/CSV reports."""
    from medpractice.reporting.analyzer import DataAnalyzer
    try:
        analyzer = DataAnalyzer()
        analyzer.run()
    except Exception as e:
        _fail(f'Data analysis failed: {e}')
    for path in analyzer.output_files:
        click.echo(path)


@click.command('generate-report')
@with_appcontext
def generate_report_command():
    """Generate the full system report (JSON/HTML/TXT)."""
    from medpractice.reporting.report_generator import ReportGenerator
    try:
        generator = ReportGenerator()
        generator.run()
    except Exception as e:
        _fail(f'Report generation failed: {e}')
    for path in generator.output_files:
        click.echo(path)


@click.command('optimize')
@click.argument('mode', type=click.Choice(['database', 'performance']), default='database')
@with_appcontext
def optimize_command(mode):
    """Run database optimization or performance analysis."""
    from medpractice.reporting.optimizer import SystemOptimizer
    try:
        optimizer = SystemOptimizer()
        optimizer.run(mode)
    except Exception as e:
        _fail(f'Optimization failed: {e}')
    for path in optimizer.output_files:
        click.echo(path)


@click.group('backup')
def backup_group():
    """Full system backup and restore."""


@backup_group.command('create')
@with_appcontext
def backup_create_command():
    from medpractice.reporting.backup import SystemBackup
    try:
        archive = SystemBackup().create_full_backup()
    except Exception as e:
        _fail(f'Backup failed: {e}')
    click.echo(f'Backup created: {archive}')


@backup_group.command('restore')
@click.argument('backup_file', type=click.Path())
@with_appcontext
def backup_restore_command(backup_file):
    from medpractice.reporting.backup import SystemBackup
    try:
        SystemBackup().restore_backup(backup_file)
    except Exception as e:
        _fail(f'Restore failed: {e}')
    click.echo('Backup restored successfully!')


@click.command('system-check')
@with_appcontext
def system_check_command():
    """Run the non-destructive self test."""
    from medpractice.reporting.system_check import run_system_check
    try:
        summary = run_system_check()
    except Exception as e:
        _fail(f'System check failed: {e}')

    for name, result in summary['results'].items():
        click.echo(f"{name}: {result['passed']}/{result['total']} passed")
    click.echo(f"Summary written to {summary['file']}")
    if not summary['success']:
        sys.exit(1)


def register_commands(app):
    app.cli.add_command(init_db_command)
    app.cli.add_command(create_admin_command)
    app.cli.add_command(seed_db_command)
    app.cli.add_command(analyze_data_command)
    app.cli.add_command(generate_report_command)
    app.cli.add_command(optimize_command)
    app.cli.add_command(backup_group)
    app.cli.add_command(system_check_command)
