from datetime import datetime, timedelta
from flask import jsonify
from sqlalchemy import func
from medpractice.extensions import db
from medpractice.models.patient_models import Patient
from medpractice.models.document_models import Document
from medpractice.models.note_models import Note
from medpractice.models.appointment_models import Appointment
from medpractice.models.prescription_models import Prescription
from medpractice.models.user_models import User


def get_dashboard_stats():
    """Totals plus the last 30 days of activity."""
    now = datetime.utcnow()
    thirty_days_ago = now - timedelta(days=30)
    start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)

    stats = {
        'totals': {
            'patients': Patient.active().count(),
            'documents': Document.active().count(),
            'notes': Note.active().count(),
            'appointments': Appointment.query.count(),
            'prescriptions': Prescription.query.count(),
            'users': User.query.filter(User.deleted_at.is_(None)).count(),
        },
        'recent_activity': {
            'new_patients': Patient.active().filter(Patient.created_at >= thirty_days_ago).count(),
            'new_documents': Document.active().filter(Document.created_at >= thirty_days_ago).count(),
            'new_notes': Note.active().filter(Note.created_at >= thirty_days_ago).count(),
            'appointments_today': Appointment.query.filter(
                Appointment.start_time >= start_of_day,
                Appointment.start_time < start_of_day + timedelta(days=1)
            ).count(),
            'pending_extractions': Document.active().filter(Document.extraction_status == 'pending').count(),
            'active_prescriptions': Prescription.query.filter_by(status='active').count(),
        },
        'generated_at': now.isoformat(),
    }
    return jsonify({'stats': stats}), 200


def get_recent_patients():
    patients = Patient.active().order_by(Patient.created_at.desc()).limit(5).all()
    return jsonify({'patients': [p.to_dict() for p in patients]}), 200


def get_recent_appointments():
    appointments = Appointment.query.filter(
        Appointment.start_time >= datetime.utcnow()
    ).order_by(Appointment.start_time.asc()).limit(5).all()
    return jsonify({'appointments': [a.to_dict() for a in appointments]}), 200


def get_documents_by_category():
    rows = db.session.query(Document.category, func.count(Document.id)).filter(
        Document.deleted_at.is_(None)
    ).group_by(Document.category).all()
    return jsonify({'categories': {category: count for category, count in rows}}), 200
