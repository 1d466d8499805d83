# /medpractice/models/certificate_models.py
import time
from datetime import date, datetime, timedelta
from medpractice.extensions import db
from medpractice.utils.helpers import ValidationError, generate_unique_code, parse_date

CERTIFICATE_TYPES = ('trabalho', 'estudos', 'atividade_fisica', 'comparecimento', 'repouso', 'outros')
CERTIFICATE_STATUSES = ('active', 'cancelled', 'expired')


def generate_certificate_number():
    """CERT-<epoch millis>-<9 random chars>"""
    return f'CERT-{int(time.time() * 1000)}-{generate_unique_code(9)}'


class MedicalCertificate(db.Model):
    """Medical certificate (atestado) issued by a doctor, verifiable by third parties."""
    __tablename__ = 'medical_certificates'

    id = db.Column(db.Integer, primary_key=True)
    patient_id = db.Column(db.Integer, db.ForeignKey('patients.id'), nullable=False, index=True)
    doctor_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    appointment_id = db.Column(db.Integer, db.ForeignKey('appointments.id'))

    certificate_number = db.Column(db.String(40), unique=True, nullable=False, index=True)
    verification_code = db.Column(db.String(20), unique=True, nullable=False)
    certificate_type = db.Column(db.String(30), nullable=False, default='trabalho')
    diagnosis = db.Column(db.Text, nullable=False)
    rest_days = db.Column(db.Integer, default=0)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date)
    observations = db.Column(db.Text)
    restrictions = db.Column(db.Text)
    status = db.Column(db.String(20), nullable=False, default='active', index=True)

    issued_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)
    cancelled_at = db.Column(db.DateTime)
    cancelled_reason = db.Column(db.Text)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    patient = db.relationship('Patient', back_populates='certificates')
    doctor = db.relationship('User', foreign_keys=[doctor_id], backref='issued_certificates')
    appointment = db.relationship('Appointment', backref='certificates')

    @staticmethod
    def unique_verification_code():
        code = generate_unique_code(8)
        while MedicalCertificate.query.filter_by(verification_code=code).first():
            code = generate_unique_code(8)
        return code

    @classmethod
    def issue(cls, patient_id, doctor_id, data):
        """Builds a new certificate. A missing end date is derived from the rest days."""
        diagnosis = data.get('diagnosis')
        if not isinstance(diagnosis, str) or not diagnosis.strip():
            raise ValidationError('diagnosis is required')

        certificate_type = data.get('certificate_type') or 'trabalho'
        if certificate_type not in CERTIFICATE_TYPES:
            raise ValidationError(f'certificate_type must be one of: {", ".join(CERTIFICATE_TYPES)}')

        rest_days = data.get('rest_days') or 0
        if not isinstance(rest_days, int) or isinstance(rest_days, bool) or rest_days < 0:
            raise ValidationError('rest_days must be a non-negative integer')

        start_date = parse_date(data.get('start_date')) or date.today()
        end_date = parse_date(data.get('end_date'))
        if end_date is None and rest_days:
            end_date = start_date + timedelta(days=rest_days - 1)
        if end_date and end_date < start_date:
            raise ValidationError('end_date cannot be before start_date')

        return cls(
            patient_id=patient_id,
            doctor_id=doctor_id,
            appointment_id=data.get('appointment_id'),
            certificate_number=generate_certificate_number(),
            verification_code=cls.unique_verification_code(),
            certificate_type=certificate_type,
            diagnosis=diagnosis.strip(),
            rest_days=rest_days,
            start_date=start_date,
            end_date=end_date,
            observations=data.get('observations'),
            restrictions=data.get('restrictions'),
        )

    @property
    def is_expired(self):
        return self.end_date is not None and self.end_date < date.today()

    @property
    def is_valid(self):
        return self.status == 'active' and not self.is_expired

    def cancel(self, reason=None):
        self.status = 'cancelled'
        self.cancelled_at = datetime.utcnow()
        self.cancelled_reason = reason or 'Cancelled by the doctor'

    def to_public_dict(self):
        """Fields shown to whoever verifies the certificate, without clinical details."""
        return {
            'certificate_number': self.certificate_number,
            'patient_name': self.patient.name if self.patient else None,
            'doctor_name': self.doctor.name if self.doctor else None,
            'doctor_crm': self.doctor.crm if self.doctor else None,
            'certificate_type': self.certificate_type,
            'issued_at': self.issued_at.isoformat() if self.issued_at else None,
            'start_date': self.start_date.isoformat() if self.start_date else None,
            'end_date': self.end_date.isoformat() if self.end_date else None,
            'status': self.status,
        }

    def to_dict(self):
        data = self.to_public_dict()
        data.update({
            'id': self.id,
            'patient_id': self.patient_id,
            'doctor_id': self.doctor_id,
            'appointment_id': self.appointment_id,
            'verification_code': self.verification_code,
            'diagnosis': self.diagnosis,
            'rest_days': self.rest_days,
            'observations': self.observations,
            'restrictions': self.restrictions,
            'is_expired': self.is_expired,
            'cancelled_at': self.cancelled_at.isoformat() if self.cancelled_at else None,
            'cancelled_reason': self.cancelled_reason,
        })
        return data
