from datetime import datetime, timedelta
from flask import request, jsonify
from medpractice.extensions import db
from medpractice.models.appointment_models import Appointment
from medpractice.models.patient_models import Patient
from medpractice.models.user_models import User
from medpractice.utils.decorators import current_user_id
from medpractice.utils.helpers import ValidationError, paginate, parse_datetime


def _conflict_response(conflict):
    return jsonify({
        'error': 'Doctor already has an appointment in this time slot',
        'conflicting_appointment': conflict.to_dict(),
    }), 409


def list_appointments():
    page = request.args.get('page', 1, type=int)
    limit = request.args.get('limit', 10, type=int)

    query = Appointment.query
    if request.args.get('status'):
        query = query.filter(Appointment.status == request.args['status'])
    if request.args.get('doctor_id'):
        query = query.filter(Appointment.doctor_id == request.args.get('doctor_id', type=int))
    if request.args.get('patient_id'):
        query = query.filter(Appointment.patient_id == request.args.get('patient_id', type=int))
    try:
        date_from = parse_datetime(request.args.get('date_from'))
        date_to = parse_datetime(request.args.get('date_to'))
    except ValidationError as e:
        return jsonify({'error': str(e)}), 400
    if date_from:
        query = query.filter(Appointment.start_time >= date_from)
    if date_to:
        query = query.filter(Appointment.start_time <= date_to)

    appointments, pagination = paginate(query.order_by(Appointment.start_time.asc()), page, limit)
    return jsonify({
        'appointments': [a.to_dict() for a in appointments],
        'pagination': pagination,
    }), 200


def get_upcoming_appointments():
    limit = min(request.args.get('limit', 10, type=int), 100)
    query = Appointment.query.filter(
        Appointment.start_time > datetime.utcnow(),
        Appointment.status.in_(('scheduled', 'confirmed'))
    )
    if request.args.get('doctor_id'):
        query = query.filter(Appointment.doctor_id == request.args.get('doctor_id', type=int))
    appointments = query.order_by(Appointment.start_time.asc()).limit(limit).all()
    return jsonify({'appointments': [a.to_dict() for a in appointments]}), 200


def get_today_appointments():
    start_of_day = datetime.utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
    appointments = Appointment.query.filter(
        Appointment.start_time >= start_of_day,
        Appointment.start_time < start_of_day + timedelta(days=1)
    ).order_by(Appointment.start_time.asc()).all()
    return jsonify({'appointments': [a.to_dict() for a in appointments], 'count': len(appointments)}), 200


def get_appointment(appointment_id):
    appointment = db.session.get(Appointment, appointment_id)
    if not appointment:
        return jsonify({'error': 'Appointment not found'}), 404
    return jsonify({'appointment': appointment.to_dict()}), 200


def create_appointment():
    data = request.get_json(silent=True) or {}
    appointment = Appointment(created_by=current_user_id())
    try:
        appointment.apply_payload(data, creating=True)
    except ValidationError as e:
        return jsonify({'error': str(e)}), 400

    if not Patient.active().filter(Patient.id == appointment.patient_id).first():
        return jsonify({'error': 'Patient not found'}), 404
    doctor = db.session.get(User, appointment.doctor_id)
    if not doctor or doctor.role != 'doctor':
        return jsonify({'error': 'Invalid doctor'}), 400

    conflict = Appointment.find_conflict(appointment.doctor_id, appointment.start_time, appointment.end_time)
    if conflict:
        return _conflict_response(conflict)

    db.session.add(appointment)
    db.session.commit()
    return jsonify({'message': 'Appointment created successfully', 'appointment': appointment.to_dict()}), 201


def update_appointment(appointment_id):
    appointment = db.session.get(Appointment, appointment_id)
    if not appointment:
        return jsonify({'error': 'Appointment not found'}), 404

    data = request.get_json(silent=True) or {}
    try:
        with db.session.no_autoflush:
            appointment.apply_payload(data)
            conflict = Appointment.find_conflict(
                appointment.doctor_id, appointment.start_time, appointment.end_time,
                exclude_id=appointment.id
            )
    except ValidationError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400

    if conflict and appointment.status in ('scheduled', 'confirmed', 'in_progress'):
        db.session.rollback()
        return _conflict_response(conflict)

    db.session.commit()
    return jsonify({'message': 'Appointment updated successfully', 'appointment': appointment.to_dict()}), 200


def delete_appointment(appointment_id):
    appointment = db.session.get(Appointment, appointment_id)
    if not appointment:
        return jsonify({'error': 'Appointment not found'}), 404
    if appointment.status == 'completed':
        return jsonify({'error': 'Completed appointments cannot be deleted'}), 400

    db.session.delete(appointment)
    db.session.commit()
    return jsonify({'message': 'Appointment deleted successfully'}), 200


def cancel_appointment(appointment_id):
    appointment = db.session.get(Appointment, appointment_id)
    if not appointment:
        return jsonify({'error': 'Appointment not found'}), 404
    if appointment.status in ('cancelled', 'completed'):
        return jsonify({'error': f'Appointment is already {appointment.status}'}), 400

    data = request.get_json(silent=True) or {}
    appointment.status = 'cancelled'
    appointment.cancelled_at = datetime.utcnow()
    appointment.cancellation_reason = data.get('reason')
    db.session.commit()
    return jsonify({'message': 'Appointment cancelled successfully', 'appointment': appointment.to_dict()}), 200


def confirm_appointment(appointment_id):
    appointment = db.session.get(Appointment, appointment_id)
    if not appointment:
        return jsonify({'error': 'Appointment not found'}), 404
    if appointment.status != 'scheduled':
        return jsonify({'error': 'Only scheduled appointments can be confirmed'}), 400

    appointment.status = 'confirmed'
    appointment.confirmed_at = datetime.utcnow()
    db.session.commit()
    return jsonify({'message': 'Appointment confirmed successfully', 'appointment': appointment.to_dict()}), 200
