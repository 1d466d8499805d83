import pytest
from flask_jwt_extended import create_access_token
from medpractice import create_app
from medpractice.extensions import db
from medpractice.models.user_models import User
from medpractice.models.patient_models import Patient
from medpractice.models.document_models import Document
from medpractice.models.note_models import Note

PASSWORD = 'Str0ng!Passw0rd'


@pytest.fixture
def app(tmp_path):
    app = create_app('testing')
    app.config.update(
        UPLOAD_FOLDER=str(tmp_path / 'uploads'),
        REPORTS_DIR=str(tmp_path / 'reports'),
        ANALYSIS_DIR=str(tmp_path / 'analysis'),
        OPTIMIZATION_DIR=str(tmp_path / 'optimization'),
        BACKUP_DIR=str(tmp_path / 'backups'),
        DB_BACKUP_DIR=str(tmp_path / 'database' / 'backups'),
        BACKUP_SOURCE_DIRS=[str(tmp_path / 'uploads')],
    )
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def make_user(role='doctor', email=None, **fields):
    user = User(
        name=fields.pop('name', f'Test {role.title()}'),
        email=email or f'{role}@example.com',
        role=role,
        email_verified=fields.pop('email_verified', True),
        **fields
    )
    user.set_password(PASSWORD)
    db.session.add(user)
    db.session.commit()
    return user


def make_patient(name='Maria Souza', cpf='111.444.777-35', birth_date='1980-05-10', gender='female', **fields):
    created_at = fields.pop('created_at', None)
    patient = Patient()
    patient.apply_payload({'name': name, 'cpf': cpf, 'birth_date': birth_date, 'gender': gender, **fields},
                          creating=True)
    if created_at:
        patient.created_at = created_at
    db.session.add(patient)
    db.session.commit()
    return patient


def make_document(patient, user, **fields):
    document = Document(
        patient_id=patient.id,
        uploaded_by=user.id,
        filename=fields.pop('filename', 'exam.pdf'),
        original_name=fields.pop('original_name', 'Exam.pdf'),
        file_path=fields.pop('file_path', '/tmp/exam.pdf'),
        file_size=fields.pop('file_size', 1024),
        mime_type=fields.pop('mime_type', 'application/pdf'),
        category=fields.pop('category', 'exame'),
        title=fields.pop('title', 'Blood exam'),
        **fields
    )
    db.session.add(document)
    db.session.commit()
    return document


def make_note(patient, user, **fields):
    note = Note(
        patient_id=patient.id,
        user_id=user.id,
        title=fields.pop('title', 'Follow-up visit'),
        content=fields.pop('content', 'Patient reports improvement after treatment.'),
        note_type=fields.pop('note_type', 'consultation'),
        **fields
    )
    db.session.add(note)
    db.session.commit()
    return note


def auth_headers(user):
    token = create_access_token(identity=str(user.id))
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def doctor(app):
    return make_user('doctor', crm='CRM-SP-1000', specialty='Cardiologia')


@pytest.fixture
def admin(app):
    return make_user('admin')


@pytest.fixture
def assistant(app):
    return make_user('assistant')


@pytest.fixture
def doctor_headers(doctor):
    return auth_headers(doctor)


@pytest.fixture
def patient(app):
    return make_patient()
