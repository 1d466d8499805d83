# /medpractice/api/controllers/telemedicine_controller.py
from datetime import datetime, timedelta
from flask import request, jsonify, current_app
from sqlalchemy import func
from medpractice.extensions import db, socketio
from medpractice.models.appointment_models import Appointment
from medpractice.models.telemedicine_models import (
    TelemedicineSession, TelemedicineChat, SESSION_STATUSES, MESSAGE_TYPES
)
from medpractice.utils.decorators import current_user_id
from medpractice.utils.helpers import ValidationError, paginate, parse_datetime


def create_session():
    data = request.get_json(silent=True) or {}
    appointment_id = data.get('appointment_id')
    if not appointment_id:
        return jsonify({'error': 'appointment_id is required'}), 400

    appointment = db.session.get(Appointment, appointment_id)
    if not appointment:
        return jsonify({'error': 'Appointment not found'}), 404

    existing = TelemedicineSession.query.filter_by(appointment_id=appointment_id).first()
    if existing:
        return jsonify({'message': 'Session already exists for this appointment', 'session': existing.to_dict()}), 200

    session = TelemedicineSession(
        appointment_id=appointment.id,
        doctor_id=current_user_id(),
        patient_id=appointment.patient_id,
        status='scheduled',
    )
    db.session.add(session)
    db.session.commit()
    current_app.logger.info(f"Telemedicine session {session.session_id} created for appointment {appointment.id}")
    return jsonify({'message': 'Telemedicine session created successfully', 'session': session.to_dict()}), 201


def list_sessions():
    page = request.args.get('page', 1, type=int)
    limit = request.args.get('limit', 10, type=int)
    status = request.args.get('status')
    if status and status not in SESSION_STATUSES:
        return jsonify({'error': 'Invalid status'}), 400

    query = TelemedicineSession.query
    if status:
        query = query.filter(TelemedicineSession.status == status)
    try:
        date_from = parse_datetime(request.args.get('date_from'))
        date_to = parse_datetime(request.args.get('date_to'))
    except ValidationError as e:
        return jsonify({'error': str(e)}), 400
    if date_from:
        query = query.filter(TelemedicineSession.created_at >= date_from)
    if date_to:
        query = query.filter(TelemedicineSession.created_at <= date_to)

    sessions, pagination = paginate(query.order_by(TelemedicineSession.created_at.desc()), page, limit)
    return jsonify({'sessions': [s.to_dict() for s in sessions], 'pagination': pagination}), 200


def get_session(session_id):
    session = db.session.get(TelemedicineSession, session_id)
    if not session:
        return jsonify({'error': 'Session not found'}), 404

    data = session.to_dict()
    data['appointment'] = session.appointment.to_dict() if session.appointment else None
    return jsonify({'session': data}), 200


def start_session(session_id):
    session = db.session.get(TelemedicineSession, session_id)
    if not session:
        return jsonify({'error': 'Session not found'}), 404
    if session.status not in ('scheduled', 'waiting'):
        return jsonify({'error': 'Session cannot be started in its current state'}), 400

    data = request.get_json(silent=True) or {}
    session.start(room_url=data.get('room_url'))
    db.session.commit()
    socketio.emit('session_started', session.to_dict(), to=session.room)
    return jsonify({'message': 'Session started successfully', 'session': session.to_dict()}), 200


def end_session(session_id):
    session = db.session.get(TelemedicineSession, session_id)
    if not session:
        return jsonify({'error': 'Session not found'}), 404
    if session.status != 'active':
        return jsonify({'error': 'Only active sessions can be ended'}), 400

    data = request.get_json(silent=True) or {}
    rating = data.get('quality_rating')
    if rating is not None and (not isinstance(rating, int) or not 1 <= rating <= 5):
        return jsonify({'error': 'quality_rating must be an integer between 1 and 5'}), 400
    try:
        follow_up_date = parse_datetime(data.get('follow_up_date'))
    except ValidationError as e:
        return jsonify({'error': str(e)}), 400

    session.end()
    session.session_notes = data.get('session_notes', session.session_notes)
    session.quality_rating = rating
    session.technical_issues = data.get('technical_issues')
    session.follow_up_required = bool(data.get('follow_up_required', False))
    session.follow_up_date = follow_up_date
    db.session.commit()
    socketio.emit('session_ended', session.to_dict(), to=session.room)
    return jsonify({'message': 'Session ended successfully', 'session': session.to_dict()}), 200


def get_patient_sessions(patient_id):
    sessions = TelemedicineSession.query.filter_by(patient_id=patient_id).order_by(
        TelemedicineSession.created_at.desc()
    ).all()
    return jsonify({'sessions': [s.to_dict() for s in sessions]}), 200


def send_message(session_id):
    session = db.session.get(TelemedicineSession, session_id)
    if not session:
        return jsonify({'error': 'Session not found'}), 404

    data = request.get_json(silent=True) or {}
    text = (data.get('message') or '').strip()
    if not text:
        return jsonify({'error': 'message is required'}), 400
    message_type = data.get('message_type', 'text')
    if message_type not in MESSAGE_TYPES:
        return jsonify({'error': 'Invalid message_type'}), 400

    sender_id = current_user_id()
    chat = TelemedicineChat(
        session_id=session.id,
        sender_id=sender_id,
        sender_type='doctor' if session.doctor_id == sender_id else 'patient',
        message_type=message_type,
        file_url=data.get('file_url'),
    )
    chat.set_message(text)
    db.session.add(chat)
    db.session.commit()

    payload = chat.to_dict()
    socketio.emit('new_message', payload, to=session.room)
    return jsonify({'message': 'Message sent', 'chat': payload}), 201


def get_messages(session_id):
    session = db.session.get(TelemedicineSession, session_id)
    if not session:
        return jsonify({'error': 'Session not found'}), 404

    page = request.args.get('page', 1, type=int)
    limit = request.args.get('limit', 50, type=int)
    messages, pagination = paginate(
        session.messages.order_by(TelemedicineChat.sent_at.asc()), page, limit, max_per_page=200
    )
    return jsonify({'messages': [m.to_dict() for m in messages], 'pagination': pagination}), 200


def mark_messages_read(session_id):
    session = db.session.get(TelemedicineSession, session_id)
    if not session:
        return jsonify({'error': 'Session not found'}), 404

    updated = TelemedicineChat.query.filter(
        TelemedicineChat.session_id == session.id,
        TelemedicineChat.sender_id != current_user_id(),
        TelemedicineChat.is_read.is_(False)
    ).update({'is_read': True, 'read_at': datetime.utcnow()}, synchronize_session=False)
    db.session.commit()
    return jsonify({'message': 'Messages marked as read', 'updated': updated}), 200


def get_session_stats():
    thirty_days_ago = datetime.utcnow() - timedelta(days=30)
    average = db.session.query(func.avg(TelemedicineSession.duration_minutes)).filter(
        TelemedicineSession.status == 'completed',
        TelemedicineSession.duration_minutes.isnot(None)
    ).scalar()

    stats = {'total': TelemedicineSession.query.count()}
    for status in ('active', 'completed', 'scheduled'):
        stats[status] = TelemedicineSession.query.filter_by(status=status).count()
    stats['recent'] = TelemedicineSession.query.filter(TelemedicineSession.created_at >= thirty_days_ago).count()
    stats['average_duration_minutes'] = round(float(average)) if average is not None else 0
    return jsonify({'stats': stats}), 200
