import os
from datetime import datetime, timedelta
from flask import current_app
from sqlalchemy import func, text
from medpractice.extensions import db
from medpractice.models.user_models import User, PASSWORD_MAX_AGE_DAYS
from medpractice.models.patient_models import Patient
from medpractice.models.document_models import Document
from medpractice.models.note_models import Note
from medpractice.reporting import statistics as stats
from medpractice.reporting.writers import ensure_dir, report_timestamp, write_json, write_html, write_text, log_outputs
from medpractice.utils.helpers import isoformat

LARGE_PRACTICE_PATIENTS = 1000
LOW_ACTIVITY_EVENTS = 10


def _users():
    return User.query.filter(User.deleted_at.is_(None))


class ReportGenerator:
    """Builds the full system report: one section per entity plus performance and security."""

    def __init__(self, output_dir=None):
        self.output_dir = output_dir or current_app.config['REPORTS_DIR']
        self.output_files = []
        self.logger = current_app.logger

    def run(self, now=None):
        self.logger.info('Generating system report...')
        ensure_dir(self.output_dir)
        self.now = now or datetime.utcnow()

        report = {
            'timestamp': report_timestamp(self.now),
            'type': 'system',
            'title': 'System Report',
            'summary': {},
            'sections': {},
            'conclusions': [],
            'generated_by': 'System Report Generator',
        }

        try:
            self.generate_summary(report)
            self.generate_users_section(report)
            self.generate_patients_section(report)
            self.generate_documents_section(report)
            self.generate_notes_section(report)
            self.generate_performance_section(report)
            self.generate_security_section(report)
            self.generate_conclusions(report)
            self.save_reports(report)
        except Exception:
            self.logger.exception('System report generation failed')
            raise

        self.logger.info('System report generated.')
        return report

    def generate_summary(self, report):
        self.logger.info('Generating summary...')
        thirty_days_ago = self.now - timedelta(days=30)
        report['summary'] = {
            'total_users': _users().count(),
            'total_patients': Patient.active().count(),
            'total_documents': Document.active().count(),
            'total_notes': Note.active().count(),
            'recent_activity': {
                'patients': Patient.active().filter(Patient.created_at >= thirty_days_ago).count(),
                'documents': Document.active().filter(Document.created_at >= thirty_days_ago).count(),
                'notes': Note.active().filter(Note.created_at >= thirty_days_ago).count(),
            },
            'system_health': 'healthy',
            'generated_at': self.now.isoformat(),
        }

    def generate_users_section(self, report):
        self.logger.info('Generating users section...')
        users = _users()
        active = users.filter(User.is_active.is_(True)).count()
        inactive = users.filter(User.is_active.is_(False)).count()
        most_active = users.filter(
            User.is_active.is_(True), User.last_login.isnot(None)
        ).order_by(User.last_login.desc()).limit(10).all()

        report['sections']['users'] = {
            'role_distribution': stats.distribution(users, User.role),
            'active_vs_inactive': {'active': active, 'inactive': inactive, 'total': active + inactive},
            'doctors_by_specialty': stats.distribution(users.filter(User.role == 'doctor'), User.specialty),
            'most_active_users': [
                {'name': u.name, 'email': u.email, 'last_login': isoformat(u.last_login)} for u in most_active
            ],
        }

    def generate_patients_section(self, report):
        self.logger.info('Generating patients section...')
        patients = Patient.active()
        birth_dates = [row.birth_date for row in patients.with_entities(Patient.birth_date)]
        recent = patients.order_by(Patient.created_at.desc()).limit(10).all()

        report['sections']['patients'] = {
            'gender_distribution': stats.distribution(patients, Patient.gender),
            'age_distribution': stats.age_distribution(birth_dates, self.now.year, detailed=True),
            'medical_conditions': {
                'with_conditions': stats.count_non_empty(patients, Patient.pre_existing_conditions),
                'with_allergies': stats.count_non_empty(patients, Patient.allergies),
                'total_patients': report['summary']['total_patients'],
            },
            'recent_patients': [
                {
                    'name': p.name,
                    'email': p.email,
                    'birth_date': isoformat(p.birth_date),
                    'created_at': isoformat(p.created_at),
                } for p in recent
            ],
        }

    def generate_documents_section(self, report):
        self.logger.info('Generating documents section...')
        documents = Document.active()
        recent = db.session.query(Document, Patient.name).outerjoin(
            Patient, Document.patient_id == Patient.id
        ).filter(Document.deleted_at.is_(None)).order_by(Document.created_at.desc()).limit(10).all()

        report['sections']['documents'] = {
            'category_distribution': stats.distribution(documents, Document.category),
            'file_type_distribution': stats.distribution(documents, Document.mime_type),
            'size_statistics': stats.numeric_stats(documents, Document.file_size, 'size'),
            'extraction_status': stats.distribution(documents, Document.extraction_status),
            'recent_documents': [
                {
                    'original_name': doc.original_name,
                    'category': doc.category,
                    'file_size': doc.file_size,
                    'created_at': isoformat(doc.created_at),
                    'patient_name': patient_name,
                } for doc, patient_name in recent
            ],
        }

    def generate_notes_section(self, report):
        self.logger.info('Generating notes section...')
        notes = Note.active()

        by_user = db.session.query(User.name, func.count(Note.id)).join(
            Note, Note.user_id == User.id
        ).filter(Note.deleted_at.is_(None)).group_by(User.id, User.name).order_by(
            func.count(Note.id).desc()
        ).limit(10).all()

        recent = db.session.query(Note, User.name, Patient.name).outerjoin(
            User, Note.user_id == User.id
        ).outerjoin(
            Patient, Note.patient_id == Patient.id
        ).filter(Note.deleted_at.is_(None)).order_by(Note.created_at.desc()).limit(10).all()

        report['sections']['notes'] = {
            'type_distribution': stats.distribution(notes, Note.note_type),
            'notes_by_user': [{'user_name': name, 'count': int(count)} for name, count in by_user],
            'recent_notes': [
                {
                    'title': note.title,
                    'note_type': note.note_type,
                    'created_at': isoformat(note.created_at),
                    'user_name': user_name,
                    'patient_name': patient_name,
                } for note, user_name, patient_name in recent
            ],
            'length_statistics': stats.numeric_stats(notes, func.length(Note.content), 'length'),
        }

    def generate_performance_section(self, report):
        self.logger.info('Generating performance section...')
        performance = {'system': stats.process_info(), 'database': {}, 'indexes': []}

        if stats.database_dialect() == 'postgresql':
            sizes = db.session.execute(text("""
                SELECT
                    pg_size_pretty(pg_database_size(current_database())) AS db_size,
                    pg_size_pretty(pg_total_relation_size('public.patients')) AS patients_size,
                    pg_size_pretty(pg_total_relation_size('public.documents')) AS documents_size,
                    pg_size_pretty(pg_total_relation_size('public.notes')) AS notes_size
            """)).mappings().one()
            indexes = db.session.execute(text("""
                SELECT schemaname, relname AS tablename, indexrelname AS indexname,
                       pg_size_pretty(pg_relation_size(indexrelid)) AS index_size
                FROM pg_stat_user_indexes
                ORDER BY pg_relation_size(indexrelid) DESC
                LIMIT 10
            """)).mappings().all()
            performance['database'] = dict(sizes)
            performance['indexes'] = [dict(row) for row in indexes]
        else:
            self.logger.info('Database size statistics are only available on PostgreSQL.')

        report['sections']['performance'] = performance

    def generate_security_section(self, report):
        self.logger.info('Generating security section...')
        users = _users()
        password_cutoff = self.now - timedelta(days=PASSWORD_MAX_AGE_DAYS)
        recent_access = users.filter(
            User.last_login >= self.now - timedelta(hours=24)
        ).order_by(User.last_login.desc()).limit(10).all()

        report['sections']['security'] = {
            'user_verification': {
                'unverified_users': users.filter(User.email_verified.is_(False)).count(),
                # Passwords past the rotation window count as weak
                'weak_passwords': users.filter(User.password_changed_at < password_cutoff).count(),
                'total_users': report['summary']['total_users'],
            },
            'patient_privacy': {
                'without_consent': Patient.active().filter(Patient.privacy_consent.isnot(True)).count(),
                'total_patients': report['summary']['total_patients'],
            },
            'document_security': {
                'sensitive_documents': Document.active().filter(Document.is_sensitive.is_(True)).count(),
                'total_documents': report['summary']['total_documents'],
            },
            'recent_access': [
                {'name': u.name, 'last_login': isoformat(u.last_login), 'email_verified': u.email_verified}
                for u in recent_access
            ],
        }

    def generate_conclusions(self, report):
        self.logger.info('Generating conclusions...')
        conclusions = []
        summary = report['summary']

        if summary['total_patients'] > LARGE_PRACTICE_PATIENTS:
            conclusions.append({
                'type': 'growth',
                'message': 'The system serves a significant number of patients, a sign of successful adoption.',
                'priority': 'high',
            })

        unverified = report['sections']['security']['user_verification']['unverified_users']
        if unverified > 0:
            conclusions.append({
                'type': 'security',
                'message': f'{unverified} users are not verified. Every user should be verified.',
                'priority': 'high',
            })

        completed = report['sections']['documents']['extraction_status'].get('completed', 0)
        if summary['total_documents'] and completed / summary['total_documents'] < 0.8:
            conclusions.append({
                'type': 'efficiency',
                'message': 'Text extraction rate is below target. Consider improving the extraction process.',
                'priority': 'medium',
            })

        if sum(summary['recent_activity'].values()) < LOW_ACTIVITY_EVENTS:
            conclusions.append({
                'type': 'activity',
                'message': 'Recent activity is low. Check that the system is being used normally.',
                'priority': 'medium',
            })

        report['conclusions'] = conclusions

    def render_text(self, report):
        summary = report['summary']
        lines = [
            '=' * 60,
            report['title'].upper(),
            '=' * 60,
            f"Generated at: {self.now.strftime('%Y-%m-%d %H:%M:%S')} UTC",
            f"Type: {report['type']}",
            '',
            'SYSTEM SUMMARY',
            '-' * 30,
            f"Total users: {summary['total_users']}",
            f"Total patients: {summary['total_patients']}",
            f"Total documents: {summary['total_documents']}",
            f"Total notes: {summary['total_notes']}",
            '',
        ]
        if report['conclusions']:
            lines.extend(['CONCLUSIONS', '-' * 30])
            for index, conclusion in enumerate(report['conclusions'], start=1):
                lines.append(f"{index}. {conclusion['message']}")
                lines.append(f"   Type: {conclusion['type']} | Priority: {conclusion['priority']}")
                lines.append('')
        return '\n'.join(lines)

    def save_reports(self, report):
        base = os.path.join(self.output_dir, f"system_report_{report['timestamp']}")
        self.output_files = log_outputs([
            write_json(f'{base}.json', report),
            write_html(f'{base}.html', 'system_report.html', report=report, generated_at=self.now),
            write_text(f'{base}.txt', self.render_text(report)),
        ])
