import os
from datetime import datetime, timedelta
from flask import current_app
from sqlalchemy import func
from medpractice.extensions import db
from medpractice.models.user_models import User
from medpractice.models.patient_models import Patient
from medpractice.models.document_models import Document
from medpractice.models.note_models import Note
from medpractice.reporting import statistics as stats
from medpractice.reporting.writers import (
    ensure_dir, report_timestamp, write_json, write_html, write_csv, log_outputs
)

EXTRACTION_TARGET = 80
VERIFICATION_TARGET = 90


def _users():
    return User.query.filter(User.deleted_at.is_(None))


class DataAnalyzer:
    """Collects usage statistics section by section and writes JSON/HTML/CSV reports."""

    def __init__(self, output_dir=None):
        self.output_dir = output_dir or current_app.config['ANALYSIS_DIR']
        self.output_files = []
        self.logger = current_app.logger

    def run(self, now=None):
        self.logger.info('Starting system data analysis...')
        ensure_dir(self.output_dir)
        self.now = now or datetime.utcnow()

        analysis = {
            'timestamp': report_timestamp(self.now),
            'summary': {},
            'detailed': {},
            'trends': {},
            'recommendations': [],
        }

        try:
            self.analyze_system_overview(analysis)
            self.analyze_patients(analysis)
            self.analyze_documents(analysis)
            self.analyze_notes(analysis)
            self.analyze_users(analysis)
            self.analyze_trends(analysis)
            self.generate_recommendations(analysis)
            self.write_reports(analysis)
        except Exception:
            self.logger.exception('Data analysis failed')
            raise

        self.logger.info('Data analysis finished.')
        return analysis

    def analyze_system_overview(self, analysis):
        self.logger.info('Analyzing system overview...')
        thirty_days_ago = self.now - timedelta(days=30)

        patient_count = Patient.active().count()
        document_count = Document.active().count()
        note_count = Note.active().count()

        analysis['summary'] = {
            'total_users': _users().count(),
            'total_patients': patient_count,
            'total_documents': document_count,
            'total_notes': note_count,
            'recent_documents': Document.active().filter(Document.created_at >= thirty_days_ago).count(),
            'recent_notes': Note.active().filter(Note.created_at >= thirty_days_ago).count(),
            'documents_per_patient': stats.ratio(document_count, patient_count),
            'notes_per_patient': stats.ratio(note_count, patient_count),
        }

    def analyze_patients(self, analysis):
        self.logger.info('Analyzing patients...')
        patients = Patient.active()
        total = analysis['summary']['total_patients']

        with_allergies = stats.count_non_empty(patients, Patient.allergies)
        with_conditions = stats.count_non_empty(patients, Patient.pre_existing_conditions)
        birth_dates = [row.birth_date for row in patients.with_entities(Patient.birth_date)]

        analysis['detailed']['patients'] = {
            'gender_distribution': stats.distribution(patients, Patient.gender),
            'age_distribution': stats.age_distribution(birth_dates, self.now.year),
            'blood_type_distribution': stats.distribution(
                patients.filter(Patient.blood_type.isnot(None)), Patient.blood_type
            ),
            'patients_with_allergies': with_allergies,
            'patients_with_conditions': with_conditions,
            'allergy_rate': stats.format_rate(with_allergies, total),
            'condition_rate': stats.format_rate(with_conditions, total),
        }

    def analyze_documents(self, analysis):
        self.logger.info('Analyzing documents...')
        documents = Document.active()
        total = analysis['summary']['total_documents']

        extracted = documents.filter(Document.extraction_status == 'completed').count()
        sensitive = documents.filter(Document.is_sensitive.is_(True)).count()

        analysis['detailed']['documents'] = {
            'category_distribution': stats.distribution(documents, Document.category),
            'file_type_distribution': stats.distribution(documents, Document.mime_type),
            'size_stats': stats.numeric_stats(documents, Document.file_size, 'size'),
            'extracted_documents': extracted,
            'sensitive_documents': sensitive,
            'extraction_rate': stats.format_rate(extracted, total),
            'sensitivity_rate': stats.format_rate(sensitive, total),
        }

    def analyze_notes(self, analysis):
        self.logger.info('Analyzing notes...')
        notes = Note.active()

        top_authors = db.session.query(User.name, func.count(Note.id).label('count')).join(
            Note, Note.user_id == User.id
        ).filter(Note.deleted_at.is_(None)).group_by(User.id, User.name).order_by(
            func.count(Note.id).desc()
        ).limit(10).all()

        analysis['detailed']['notes'] = {
            'type_distribution': stats.distribution(notes, Note.note_type),
            'length_stats': stats.numeric_stats(notes, func.length(Note.content), 'length'),
            'notes_by_user': [{'user_name': name, 'count': int(count)} for name, count in top_authors],
        }

    def analyze_users(self, analysis):
        self.logger.info('Analyzing users...')
        users = _users()
        total = analysis['summary']['total_users']

        verified = users.filter(User.email_verified.is_(True)).count()
        active = users.filter(User.is_active.is_(True)).count()

        analysis['detailed']['users'] = {
            'role_distribution': stats.distribution(users, User.role),
            'verified_users': verified,
            'active_users': active,
            'verification_rate': stats.format_rate(verified, total),
            'activity_rate': stats.format_rate(active, total),
            'doctors_by_specialty': stats.distribution(users.filter(User.role == 'doctor'), User.specialty),
        }

    def analyze_trends(self, analysis):
        self.logger.info('Analyzing trends...')
        trends = {}
        for name, query, column in (
            ('patients', Patient.active(), Patient.created_at),
            ('documents', Document.active(), Document.created_at),
            ('notes', Note.active(), Note.created_at),
        ):
            recent, older = stats.window_counts(query, column, now=self.now)
            trends[name] = {'recent': recent, 'older': older, 'trend': stats.calculate_trend(recent, older)}
        analysis['trends'] = trends

    def generate_recommendations(self, analysis):
        self.logger.info('Generating recommendations...')
        recommendations = []
        patients = analysis['detailed']['patients']
        documents = analysis['detailed']['documents']
        users = analysis['detailed']['users']

        if patients['patients_with_allergies'] > 0:
            recommendations.append({
                'type': 'patient_safety',
                'priority': 'high',
                'title': 'Review recorded allergies',
                'description': f"{patients['patients_with_allergies']} patients have allergies on record. "
                               f"Check that every allergy is up to date.",
                'action': 'Update allergy information for all patients.',
            })

        if analysis['summary']['total_documents'] and stats.rate_value(documents['extraction_rate']) < EXTRACTION_TARGET:
            recommendations.append({
                'type': 'document_processing',
                'priority': 'medium',
                'title': 'Pending text extraction',
                'description': f"Text extraction finished for {documents['extraction_rate']} of the documents.",
                'action': 'Prioritize text extraction for pending documents.',
            })

        if analysis['summary']['total_users'] and stats.rate_value(users['verification_rate']) < VERIFICATION_TARGET:
            recommendations.append({
                'type': 'user_management',
                'priority': 'medium',
                'title': 'Unverified users',
                'description': f"{users['verification_rate']} of the users are verified.",
                'action': 'Ask pending users to verify their email address.',
            })

        if analysis['trends']['patients']['trend'] == 'increasing_fast':
            recommendations.append({
                'type': 'system_capacity',
                'priority': 'medium',
                'title': 'Fast patient growth',
                'description': 'The number of patients is growing quickly.',
                'action': 'Plan for more system capacity and staff.',
            })

        analysis['recommendations'] = recommendations

    def write_reports(self, analysis):
        base = os.path.join(self.output_dir, f"analysis_report_{analysis['timestamp']}")
        summary = analysis['summary']

        rows = [
            ['Metric', 'Value'],
            ['Total users', summary['total_users']],
            ['Total patients', summary['total_patients']],
            ['Total documents', summary['total_documents']],
            ['Total notes', summary['total_notes']],
            ['Documents per patient', summary['documents_per_patient']],
            ['Notes per patient', summary['notes_per_patient']],
            [],
            ['Recommendations'],
            ['Priority', 'Type', 'Title', 'Description', 'Action'],
        ]
        rows.extend(
            [rec['priority'], rec['type'], rec['title'], rec['description'], rec['action']]
            for rec in analysis['recommendations']
        )

        self.output_files = log_outputs([
            write_json(f'{base}.json', analysis),
            write_html(f'{base}.html', 'analysis_report.html', analysis=analysis, generated_at=self.now),
            write_csv(f'{base}.csv', rows),
        ])
