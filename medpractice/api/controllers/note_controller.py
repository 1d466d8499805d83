from datetime import datetime
from flask import request, jsonify
from sqlalchemy import or_
from medpractice.extensions import db
from medpractice.models.note_models import Note
from medpractice.models.patient_models import Patient
from medpractice.models.user_models import User
from medpractice.utils.decorators import current_user_id
from medpractice.utils.helpers import ValidationError, paginate


def _filtered_notes(query):
    if request.args.get('note_type'):
        query = query.filter(Note.note_type == request.args['note_type'])
    if request.args.get('priority'):
        query = query.filter(Note.priority == request.args['priority'])
    if request.args.get('status'):
        query = query.filter(Note.status == request.args['status'])
    return query.order_by(Note.created_at.desc())


def _paginated(query):
    page = request.args.get('page', 1, type=int)
    limit = request.args.get('limit', 10, type=int)
    notes, pagination = paginate(_filtered_notes(query), page, limit)
    return jsonify({'notes': [n.to_dict() for n in notes], 'pagination': pagination}), 200


def list_notes():
    query = Note.active()
    if request.args.get('patient_id'):
        query = query.filter(Note.patient_id == request.args.get('patient_id', type=int))
    return _paginated(query)


def search_notes():
    term = request.args.get('q', '').strip()
    if len(term) < 2:
        return jsonify({'error': 'Search term must have at least 2 characters'}), 400

    query = Note.active().filter(or_(
        Note.title.ilike(f'%{term}%'),
        Note.content.ilike(f'%{term}%'),
    ))
    return _paginated(query)


def get_note(note_id):
    note = Note.active().filter(Note.id == note_id).first()
    if not note:
        return jsonify({'error': 'Note not found'}), 404
    return jsonify({'note': note.to_dict()}), 200


def get_patient_notes(patient_id):
    if not Patient.active().filter(Patient.id == patient_id).first():
        return jsonify({'error': 'Patient not found'}), 404
    return _paginated(Note.active().filter(Note.patient_id == patient_id))


def get_author_notes(user_id):
    if not db.session.get(User, user_id):
        return jsonify({'error': 'User not found'}), 404
    return _paginated(Note.active().filter(Note.user_id == user_id))


def create_note():
    data = request.get_json(silent=True) or {}
    note = Note(user_id=current_user_id())
    try:
        note.apply_payload(data, creating=True)
    except ValidationError as e:
        return jsonify({'error': str(e)}), 400

    if not Patient.active().filter(Patient.id == note.patient_id).first():
        return jsonify({'error': 'Patient not found'}), 404

    db.session.add(note)
    db.session.commit()
    return jsonify({'message': 'Note created successfully', 'note': note.to_dict()}), 201


def update_note(note_id):
    note = Note.active().filter(Note.id == note_id).first()
    if not note:
        return jsonify({'error': 'Note not found'}), 404

    data = request.get_json(silent=True) or {}
    try:
        note.apply_payload(data)
    except ValidationError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400

    db.session.commit()
    return jsonify({'message': 'Note updated successfully', 'note': note.to_dict()}), 200


def delete_note(note_id):
    note = Note.active().filter(Note.id == note_id).first()
    if not note:
        return jsonify({'error': 'Note not found'}), 404

    note.deleted_at = datetime.utcnow()
    db.session.commit()
    return jsonify({'message': 'Note deleted successfully'}), 200
