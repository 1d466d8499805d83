from datetime import datetime, timedelta
from flask import request, jsonify, current_app
from medpractice.extensions import db
from medpractice.models.patient_models import Patient
from medpractice.models.prescription_models import Prescription, PRESCRIPTION_STATUSES
from medpractice.utils.decorators import current_user_id
from medpractice.utils.helpers import ValidationError, paginate


def create_prescription():
    data = request.get_json(silent=True) or {}
    patient_id = data.get('patient_id')
    if not patient_id:
        return jsonify({'error': 'patient_id is required'}), 400

    if not Patient.active().filter(Patient.id == patient_id).first():
        return jsonify({'error': 'Patient not found'}), 404

    try:
        prescription = Prescription.issue(patient_id, current_user_id(), data)
    except ValidationError as e:
        return jsonify({'error': str(e)}), 400

    db.session.add(prescription)
    db.session.commit()
    current_app.logger.info(f"Prescription {prescription.prescription_number} issued")
    return jsonify({'message': 'Prescription created successfully', 'prescription': prescription.to_dict()}), 201


def list_prescriptions():
    page = request.args.get('page', 1, type=int)
    limit = request.args.get('limit', 10, type=int)
    status = request.args.get('status')
    if status and status not in PRESCRIPTION_STATUSES:
        return jsonify({'error': 'Invalid status'}), 400

    query = Prescription.query
    if status:
        query = query.filter(Prescription.status == status)
    if request.args.get('patient_id'):
        query = query.filter(Prescription.patient_id == request.args.get('patient_id', type=int))

    prescriptions, pagination = paginate(query.order_by(Prescription.created_at.desc()), page, limit)
    return jsonify({
        'prescriptions': [p.to_dict() for p in prescriptions],
        'pagination': pagination,
    }), 200


def get_prescription(prescription_id):
    prescription = db.session.get(Prescription, prescription_id)
    if not prescription:
        return jsonify({'error': 'Prescription not found'}), 404
    return jsonify({'prescription': prescription.to_dict()}), 200


def verify_prescription():
    """Public check used by pharmacies: number plus verification code."""
    data = request.get_json(silent=True) or {}
    number = data.get('prescription_number')
    code = data.get('verification_code')
    if not number or not code:
        return jsonify({'error': 'prescription_number and verification_code are required'}), 400
    if not isinstance(number, str) or not isinstance(code, str):
        return jsonify({'error': 'prescription_number and verification_code must be strings'}), 400

    prescription = Prescription.query.filter_by(
        prescription_number=number, verification_code=code.strip().upper()
    ).first()
    if not prescription:
        return jsonify({'error': 'Prescription not found or invalid code'}), 404
    if prescription.is_expired:
        return jsonify({'error': 'Prescription expired', 'expired': True}), 400

    return jsonify({
        'message': 'Prescription is valid',
        'prescription': prescription.to_dict(include_code=False),
    }), 200


def dispense_prescription(prescription_id):
    prescription = db.session.get(Prescription, prescription_id)
    if not prescription:
        return jsonify({'error': 'Prescription not found'}), 404
    if prescription.is_expired:
        return jsonify({'error': 'Prescription expired'}), 400
    if prescription.status == 'dispensed':
        return jsonify({'error': 'Prescription already dispensed'}), 400
    if prescription.status == 'cancelled':
        return jsonify({'error': 'Prescription was cancelled'}), 400

    data = request.get_json(silent=True) or {}
    prescription.status = 'dispensed'
    prescription.pharmacy_dispensed = data.get('pharmacy_dispensed')
    prescription.dispensed_at = datetime.utcnow()
    if data.get('notes'):
        prescription.append_note('Dispensed', data['notes'])

    db.session.commit()
    return jsonify({'message': 'Prescription dispensed successfully', 'prescription': prescription.to_dict()}), 200


def cancel_prescription(prescription_id):
    prescription = db.session.get(Prescription, prescription_id)
    if not prescription:
        return jsonify({'error': 'Prescription not found'}), 404
    if prescription.status == 'dispensed':
        return jsonify({'error': 'A dispensed prescription cannot be cancelled'}), 400

    data = request.get_json(silent=True) or {}
    prescription.status = 'cancelled'
    prescription.append_note('Cancelled', data.get('reason') or 'No reason given')

    db.session.commit()
    return jsonify({'message': 'Prescription cancelled successfully', 'prescription': prescription.to_dict()}), 200


def get_patient_prescriptions(patient_id):
    query = Prescription.query.filter(Prescription.patient_id == patient_id)
    if request.args.get('status'):
        query = query.filter(Prescription.status == request.args['status'])
    prescriptions = query.order_by(Prescription.created_at.desc()).all()
    return jsonify({'prescriptions': [p.to_dict() for p in prescriptions]}), 200


def get_prescription_stats():
    thirty_days_ago = datetime.utcnow() - timedelta(days=30)
    stats = {'total': Prescription.query.count()}
    for status in PRESCRIPTION_STATUSES:
        stats[status] = Prescription.query.filter_by(status=status).count()
    stats['recent'] = Prescription.query.filter(Prescription.created_at >= thirty_days_ago).count()
    return jsonify({'stats': stats}), 200
