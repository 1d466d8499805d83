import os
import subprocess
from datetime import datetime
from flask import current_app
from sqlalchemy import text
from medpractice.extensions import db
from medpractice.models.user_models import User
from medpractice.models.patient_models import Patient
from medpractice.models.document_models import Document
from medpractice.models.note_models import Note
from medpractice.reporting import statistics as stats
from medpractice.reporting.writers import ensure_dir
from medpractice.utils.helpers import has_non_digits, only_digits

MAINTENANCE_ACTIONS = ('migrate', 'rollback', 'backup', 'check')

# (name, PostgreSQL definition, portable definition or None)
ADDITIONAL_INDEXES = (
    ('idx_patients_name_fts',
     "CREATE INDEX IF NOT EXISTS idx_patients_name_fts ON patients USING gin(to_tsvector('portuguese', name))",
     None),
    ('idx_documents_text_fts',
     "CREATE INDEX IF NOT EXISTS idx_documents_text_fts ON documents "
     "USING gin(to_tsvector('portuguese', coalesce(extracted_text, '')))",
     None),
    ('idx_notes_content_fts',
     "CREATE INDEX IF NOT EXISTS idx_notes_content_fts ON notes USING gin(to_tsvector('portuguese', content))",
     None),
    ('idx_documents_created_at',
     'CREATE INDEX IF NOT EXISTS idx_documents_created_at ON documents (created_at DESC)',
     'CREATE INDEX IF NOT EXISTS idx_documents_created_at ON documents (created_at DESC)'),
    ('idx_documents_extraction_status',
     'CREATE INDEX IF NOT EXISTS idx_documents_extraction_status ON documents (extraction_status)',
     'CREATE INDEX IF NOT EXISTS idx_documents_extraction_status ON documents (extraction_status)'),
)
ADDITIONAL_INDEX_NAMES = tuple(name for name, _pg, _portable in ADDITIONAL_INDEXES)


def migrate_database():
    """Creates missing tables, adds the extra indexes, normalizes data and checks integrity."""
    logger = current_app.logger
    logger.info('Starting database migration...')
    try:
        db.create_all()
        logger.info('Database tables synchronized.')
        created = create_additional_indexes()
        updated = update_existing_data()
        findings = check_database_integrity()
    except Exception:
        db.session.rollback()
        logger.exception('Database migration failed')
        raise

    logger.info('Migration finished.')
    return {'indexes': created, 'updated': updated, 'integrity': findings}


def create_additional_indexes():
    logger = current_app.logger
    logger.info('Creating additional indexes...')
    is_postgres = stats.database_dialect() == 'postgresql'
    created = []
    for name, pg_sql, portable_sql in ADDITIONAL_INDEXES:
        statement = pg_sql if is_postgres else portable_sql
        if statement is None:
            logger.info(f'Index {name} requires PostgreSQL, skipped.')
            continue
        db.session.execute(text(statement))
        created.append(name)
    db.session.commit()
    logger.info(f'Additional indexes created: {", ".join(created) or "none"}')
    return created


def drop_additional_indexes():
    logger = current_app.logger
    logger.info('Rolling back migration...')
    try:
        for name in ADDITIONAL_INDEX_NAMES:
            db.session.execute(text(f'DROP INDEX IF EXISTS {name}'))
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception('Rollback failed')
        raise
    logger.info('Rollback finished.')
    return list(ADDITIONAL_INDEX_NAMES)


def update_existing_data():
    """Strips formatting characters from stored CPF and phone numbers."""
    logger = current_app.logger
    logger.info('Normalizing existing data...')
    updated = {'patient_cpf': 0, 'patient_phone': 0, 'user_phone': 0}

    for patient in Patient.query.all():
        cpf = patient.get_cpf()
        if has_non_digits(cpf):
            patient.set_cpf(cpf)
            updated['patient_cpf'] += 1
            logger.info(f'CPF normalized for patient {patient.id}')
        if has_non_digits(patient.phone):
            patient.phone = only_digits(patient.phone)
            updated['patient_phone'] += 1
            logger.info(f'Phone normalized for patient {patient.id}')

    for user in User.query.filter(User.phone.isnot(None)).all():
        if has_non_digits(user.phone):
            user.phone = only_digits(user.phone)
            updated['user_phone'] += 1
            logger.info(f'Phone normalized for user {user.id}')

    db.session.commit()
    logger.info('Existing data normalized.')
    return updated


def check_database_integrity():
    """Looks for broken references and incomplete records. Findings are logged, not raised."""
    logger = current_app.logger
    logger.info('Checking database integrity...')

    orphan_documents = db.session.query(Document.id, Document.title).outerjoin(
        Patient, Document.patient_id == Patient.id
    ).filter(Patient.id.is_(None)).all()
    for doc_id, title in orphan_documents:
        logger.warning(f'Document {doc_id} ({title}) references a missing patient.')

    orphan_notes = db.session.query(Note.id, Note.title).outerjoin(
        Patient, Note.patient_id == Patient.id
    ).filter(Patient.id.is_(None)).all()
    for note_id, title in orphan_notes:
        logger.warning(f'Note {note_id} ({title}) references a missing patient.')

    findings = {
        'orphan_documents': [doc_id for doc_id, _title in orphan_documents],
        'orphan_notes': [note_id for note_id, _title in orphan_notes],
        'pending_extraction': Document.query.filter(
            Document.extraction_status == 'pending', Document.extracted_text.is_(None)
        ).count(),
        'notes_without_type': Note.query.filter(Note.note_type.is_(None)).count(),
        'patients_without_consent': Patient.query.filter(Patient.privacy_consent.isnot(True)).count(),
    }

    if findings['pending_extraction']:
        logger.info(f"{findings['pending_extraction']} documents waiting for text extraction.")
    if findings['notes_without_type']:
        logger.warning(f"{findings['notes_without_type']} notes have no type.")
    if findings['patients_without_consent']:
        logger.warning(f"{findings['patients_without_consent']} patients without privacy consent.")

    logger.info('Integrity check finished.')
    return findings


def backup_database(now=None):
    """Plain SQL dump to DB_BACKUP_DIR/backup_<date>.sql. Returns the path, or None when unconfigured."""
    logger = current_app.logger
    if not all(os.environ.get(name) for name in ('DB_HOST', 'DB_NAME', 'DB_USER')):
        logger.warning('Database environment variables are not set. Backup skipped.')
        return None

    config = current_app.config
    now = now or datetime.utcnow()
    backup_dir = ensure_dir(config['DB_BACKUP_DIR'])
    backup_file = os.path.join(backup_dir, f'backup_{now.date().isoformat()}.sql')

    env = os.environ.copy()
    if config['DB_PASSWORD']:
        env['PGPASSWORD'] = config['DB_PASSWORD']
    command = [
        config['PG_DUMP_BIN'],
        '-h', config['DB_HOST'],
        '-p', str(config['DB_PORT']),
        '-U', config['DB_USER'],
        '-d', config['DB_NAME'],
        '-f', backup_file,
    ]
    logger.info('Dumping database...')
    try:
        subprocess.run(command, env=env, check=True, capture_output=True)
    except (OSError, subprocess.CalledProcessError) as e:
        logger.error(f'Database backup failed: {e}')
        raise

    logger.info(f'Database backup created: {backup_file}')
    return backup_file


def run_action(action):
    if action == 'migrate':
        return migrate_database()
    if action == 'rollback':
        return drop_additional_indexes()
    if action == 'backup':
        return backup_database()
    if action == 'check':
        return check_database_integrity()
    raise ValueError(f'Unknown maintenance action: {action}')
