from datetime import datetime
from flask import request, jsonify, current_app
from sqlalchemy import or_
from medpractice.extensions import db
from medpractice.models.patient_models import Patient
from medpractice.models.appointment_models import Appointment
from medpractice.models.document_models import Document
from medpractice.models.note_models import Note
from medpractice.models.prescription_models import Prescription
from medpractice.utils.helpers import ValidationError, paginate


def _get_active_patient(patient_id):
    return Patient.active().filter(Patient.id == patient_id).first()


def list_patients():
    """Lists patients with pagination, name search and status filter."""
    page = request.args.get('page', 1, type=int)
    limit = request.args.get('limit', 10, type=int)
    search = request.args.get('search', '').strip()
    status = request.args.get('status')

    query = Patient.active()
    if search:
        query = query.filter(or_(
            Patient.name.ilike(f'%{search}%'),
            Patient.email.ilike(f'%{search}%'),
        ))
    if status:
        query = query.filter(Patient.status == status)

    patients, pagination = paginate(query.order_by(Patient.created_at.desc()), page, limit)
    return jsonify({
        'patients': [p.to_dict() for p in patients],
        'pagination': pagination,
    }), 200


def get_patient(patient_id):
    patient = _get_active_patient(patient_id)
    if not patient:
        return jsonify({'error': 'Patient not found'}), 404
    return jsonify({'patient': patient.to_dict()}), 200


def create_patient():
    data = request.get_json(silent=True) or {}
    patient = Patient()
    try:
        patient.apply_payload(data, creating=True)
    except ValidationError as e:
        return jsonify({'error': str(e)}), 400

    if Patient.query.filter_by(cpf_hash=patient.cpf_hash).first():
        return jsonify({'error': 'A patient with this CPF already exists'}), 409

    try:
        db.session.add(patient)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(f"Patient {patient.id} created")
    return jsonify({'message': 'Patient created successfully', 'patient': patient.to_dict()}), 201


def update_patient(patient_id):
    patient = _get_active_patient(patient_id)
    if not patient:
        return jsonify({'error': 'Patient not found'}), 404

    data = request.get_json(silent=True) or {}
    try:
        patient.apply_payload(data)
    except ValidationError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400

    duplicate = Patient.query.filter(Patient.cpf_hash == patient.cpf_hash, Patient.id != patient.id).first()
    if duplicate:
        db.session.rollback()
        return jsonify({'error': 'A patient with this CPF already exists'}), 409

    db.session.commit()
    return jsonify({'message': 'Patient updated successfully', 'patient': patient.to_dict()}), 200


def delete_patient(patient_id):
    """Soft delete: the record stays for audit purposes."""
    patient = _get_active_patient(patient_id)
    if not patient:
        return jsonify({'error': 'Patient not found'}), 404

    patient.deleted_at = datetime.utcnow()
    patient.status = 'inactive'
    db.session.commit()
    return jsonify({'message': 'Patient deleted successfully'}), 200


def _timeline_events(patient):
    events = []
    for appointment in patient.appointments:
        events.append({
            'event_type': 'appointment',
            'event_id': appointment.id,
            'event_date': appointment.start_time,
            'title': f"{appointment.type} ({appointment.status})",
            'description': appointment.reason,
        })
    for note in patient.medical_notes.filter(Note.deleted_at.is_(None)):
        events.append({
            'event_type': 'note',
            'event_id': note.id,
            'event_date': note.created_at,
            'title': note.title,
            'description': note.note_type,
        })
    for document in patient.documents.filter(Document.deleted_at.is_(None)):
        events.append({
            'event_type': 'document',
            'event_id': document.id,
            'event_date': document.created_at,
            'title': document.title,
            'description': document.category,
        })
    for prescription in patient.prescriptions:
        events.append({
            'event_type': 'prescription',
            'event_id': prescription.id,
            'event_date': prescription.created_at,
            'title': prescription.prescription_number,
            'description': prescription.status,
        })
    events.sort(key=lambda e: e['event_date'] or datetime.min, reverse=True)
    return events


def get_patient_timeline(patient_id):
    """Appointments, notes, documents and prescriptions merged, newest first."""
    patient = _get_active_patient(patient_id)
    if not patient:
        return jsonify({'error': 'Patient not found'}), 404

    limit = min(request.args.get('limit', 50, type=int), 200)
    offset = max(request.args.get('offset', 0, type=int), 0)

    events = _timeline_events(patient)
    page = events[offset:offset + limit]
    for event in page:
        event['event_date'] = event['event_date'].isoformat() if event['event_date'] else None

    return jsonify({'timeline': page, 'total': len(events)}), 200


def generate_patient_report(patient_id):
    patient = _get_active_patient(patient_id)
    if not patient:
        return jsonify({'error': 'Patient not found'}), 404

    upcoming = patient.appointments.filter(
        Appointment.start_time > datetime.utcnow(),
        Appointment.status.in_(('scheduled', 'confirmed'))
    ).order_by(Appointment.start_time.asc()).limit(5).all()

    report = {
        'patient': patient.to_dict(),
        'primary_care_physician': {
            'id': patient.physician.id,
            'name': patient.physician.name,
            'crm': patient.physician.crm,
            'specialty': patient.physician.specialty,
        } if patient.physician else None,
        'statistics': {
            'appointments_count': patient.appointments.count(),
            'documents_count': patient.documents.filter(Document.deleted_at.is_(None)).count(),
            'notes_count': patient.medical_notes.filter(Note.deleted_at.is_(None)).count(),
            'prescriptions_count': patient.prescriptions.count(),
            'active_prescriptions': patient.prescriptions.filter(Prescription.status == 'active').count(),
            'upcoming_appointments': [a.to_dict() for a in upcoming],
        },
        'generated_at': datetime.utcnow().isoformat(),
    }
    return jsonify({'report': report}), 200
