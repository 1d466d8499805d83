from flask import request, jsonify, current_app
from medpractice.extensions import db
from medpractice.models.certificate_models import MedicalCertificate, CERTIFICATE_STATUSES, CERTIFICATE_TYPES
from medpractice.models.patient_models import Patient
from medpractice.utils.decorators import current_user_id
from medpractice.utils.helpers import ValidationError, paginate, parse_date


def create_certificate():
    data = request.get_json(silent=True) or {}
    patient_id = data.get('patient_id')
    if not patient_id:
        return jsonify({'error': 'patient_id is required'}), 400

    if not Patient.active().filter(Patient.id == patient_id).first():
        return jsonify({'error': 'Patient not found'}), 404

    try:
        certificate = MedicalCertificate.issue(patient_id, current_user_id(), data)
    except ValidationError as e:
        return jsonify({'error': str(e)}), 400

    db.session.add(certificate)
    db.session.commit()
    current_app.logger.info(f"Medical certificate {certificate.certificate_number} issued")
    return jsonify({'message': 'Medical certificate created successfully', 'certificate': certificate.to_dict()}), 201


def list_certificates():
    page = request.args.get('page', 1, type=int)
    limit = request.args.get('limit', 10, type=int)
    status = request.args.get('status')
    certificate_type = request.args.get('certificate_type')
    if status and status not in CERTIFICATE_STATUSES:
        return jsonify({'error': 'Invalid status'}), 400
    if certificate_type and certificate_type not in CERTIFICATE_TYPES:
        return jsonify({'error': 'Invalid certificate_type'}), 400

    query = MedicalCertificate.query
    if status:
        query = query.filter(MedicalCertificate.status == status)
    if certificate_type:
        query = query.filter(MedicalCertificate.certificate_type == certificate_type)
    if request.args.get('patient_id'):
        query = query.filter(MedicalCertificate.patient_id == request.args.get('patient_id', type=int))

    # Issue date range only applies when both ends are given
    try:
        date_from = parse_date(request.args.get('date_from'))
        date_to = parse_date(request.args.get('date_to'))
    except ValidationError as e:
        return jsonify({'error': str(e)}), 400
    if date_from and date_to:
        query = query.filter(db.func.date(MedicalCertificate.issued_at).between(date_from, date_to))

    certificates, pagination = paginate(query.order_by(MedicalCertificate.issued_at.desc()), page, limit)
    return jsonify({
        'certificates': [c.to_dict() for c in certificates],
        'pagination': pagination,
    }), 200


def get_certificate(certificate_id):
    certificate = db.session.get(MedicalCertificate, certificate_id)
    if not certificate:
        return jsonify({'error': 'Medical certificate not found'}), 404
    return jsonify({'certificate': certificate.to_dict()}), 200


def cancel_certificate(certificate_id):
    certificate = db.session.get(MedicalCertificate, certificate_id)
    if not certificate:
        return jsonify({'error': 'Medical certificate not found'}), 404
    if certificate.status == 'cancelled':
        return jsonify({'error': 'Medical certificate already cancelled'}), 400

    data = request.get_json(silent=True) or {}
    certificate.cancel(data.get('reason'))
    db.session.commit()
    return jsonify({'message': 'Medical certificate cancelled successfully', 'certificate': certificate.to_dict()}), 200


def verify_certificate():
    """Public check: verification code, certificate number, or both."""
    data = request.get_json(silent=True) or {}
    code = data.get('verification_code')
    number = data.get('certificate_number')
    if not code and not number:
        return jsonify({'error': 'verification_code or certificate_number is required'}), 400
    if any(value is not None and not isinstance(value, str) for value in (code, number)):
        return jsonify({'error': 'verification_code and certificate_number must be strings'}), 400

    query = MedicalCertificate.query
    if code:
        query = query.filter(MedicalCertificate.verification_code == code.strip().upper())
    if number:
        query = query.filter(MedicalCertificate.certificate_number == number.strip())
    certificate = query.first()
    if not certificate:
        return jsonify({'error': 'Medical certificate not found', 'verified': False}), 404

    return jsonify({
        'verified': certificate.is_valid,
        'certificate': certificate.to_public_dict(),
    }), 200
